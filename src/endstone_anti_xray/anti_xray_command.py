"""
Command handler for Anti-Xray
Handles the /antixray administration command
"""

from endstone.command import CommandSender
from endstone import ColorFormat
from typing import List

from endstone_anti_xray.inventory import describe_inventory
from endstone_anti_xray.tracked_blocks import format_block_name


class AntiXrayCommand:
    """Anti-Xray command handler (static helper)"""

    LOG_TAG = "[AntiXray] "

    @staticmethod
    def handle_command(plugin, sender: CommandSender, args: List[str]) -> bool:
        """Execute command"""
        try:
            if not sender.has_permission("antixray.command"):
                sender.send_message(ColorFormat.RED + "You don't have permission to use this command.")
                return True

            if len(args) == 0:
                AntiXrayCommand.send_info(plugin, sender)
                return True

            subcommand = args[0].lower()

            if subcommand in ["help", "info", "?"]:
                AntiXrayCommand.send_info(plugin, sender)
                return True

            elif subcommand in ["reload", "rl"]:
                if not sender.has_permission("antixray.reload"):
                    sender.send_message(ColorFormat.RED + "You don't have permission to reload.")
                    return True

                plugin.reload_configuration()
                tracked = len(plugin.context.settings.tracked_blocks)
                sender.send_message(ColorFormat.GREEN + f"Anti-Xray configuration reloaded! Tracking {tracked} block types.")
                return True

            elif subcommand in ["sync"]:
                if not sender.has_permission("antixray.sync"):
                    sender.send_message(ColorFormat.RED + "You don't have permission to sync the ledger.")
                    return True

                sender.send_message(ColorFormat.YELLOW + "Syncing placed block ledger...")
                plugin.ledger.flush_to_durable_storage()
                sender.send_message(ColorFormat.GREEN + f"Ledger synced ({len(plugin.ledger)} placed blocks).")
                return True

            elif subcommand in ["status", "stats"]:
                if not sender.has_permission("antixray.reload"):
                    sender.send_message(ColorFormat.RED + "You don't have permission to view status.")
                    return True

                if len(args) >= 2:
                    AntiXrayCommand.send_player_status(plugin, sender, args[1])
                else:
                    AntiXrayCommand.send_status(plugin, sender)
                return True

            elif subcommand in ["viewinventory", "playerinv", "inv"]:
                if not sender.has_permission("antixray.playerinv"):
                    sender.send_message(ColorFormat.RED + "You don't have permission to view inventories.")
                    return True

                if len(args) < 2:
                    sender.send_message(ColorFormat.YELLOW + "Usage: /antixray viewinventory <player>")
                    return True

                target = plugin.server.get_player(args[1])
                if target is None:
                    sender.send_message(ColorFormat.RED + "Player not found: " + ColorFormat.GRAY + args[1])
                    return True

                sender.send_message(ColorFormat.GOLD + "▬" * 8 + " " + ColorFormat.BOLD + f"{target.name}'s Inventory" + ColorFormat.RESET + ColorFormat.GOLD + " " + "▬" * 8)
                for line in describe_inventory(target.inventory).split("\n"):
                    sender.send_message(ColorFormat.WHITE + line)
                sender.send_message(ColorFormat.GOLD + "▬" * 34)
                return True

            else:
                sender.send_message(ColorFormat.RED + "Unknown subcommand: " + ColorFormat.GRAY + subcommand)
                sender.send_message(ColorFormat.YELLOW + "Use " + ColorFormat.WHITE + "/antixray help" + ColorFormat.YELLOW + " for a list of commands.")
                return True

        except Exception as e:
            plugin.logger.error(f"{AntiXrayCommand.LOG_TAG}Error executing command: {str(e)}")

            try:
                sender.send_message(ColorFormat.RED + f"An error occurred: {str(e)}")
            except Exception:
                plugin.logger.error(f"{AntiXrayCommand.LOG_TAG}Error sending error message")

            return True

    @staticmethod
    def send_info(plugin, sender: CommandSender) -> None:
        """Send plugin info and the commands the sender may use"""
        sender.send_message(ColorFormat.GOLD + "▬" * 34)
        sender.send_message(ColorFormat.YELLOW + ColorFormat.BOLD + "Anti-Xray " + ColorFormat.RESET + ColorFormat.GRAY + f"v{plugin.version}")
        sender.send_message(ColorFormat.GRAY + "Alerts staff when ores are mined suspiciously fast.")
        sender.send_message("")
        sender.send_message(ColorFormat.AQUA + "/antixray help" + ColorFormat.GRAY + " - Show this help menu")

        if sender.has_permission("antixray.reload"):
            sender.send_message(ColorFormat.AQUA + "/antixray reload" + ColorFormat.GRAY + " - Reload configuration")
            sender.send_message(ColorFormat.AQUA + "/antixray status [player]" + ColorFormat.GRAY + " - Detection status")

        if sender.has_permission("antixray.sync"):
            sender.send_message(ColorFormat.AQUA + "/antixray sync" + ColorFormat.GRAY + " - Save the placed block ledger now")

        if sender.has_permission("antixray.playerinv"):
            sender.send_message(ColorFormat.AQUA + "/antixray viewinventory <player>" + ColorFormat.GRAY + " - List a player's inventory")

        sender.send_message(ColorFormat.GOLD + "▬" * 34)

    @staticmethod
    def send_status(plugin, sender: CommandSender) -> None:
        status = plugin.service.status()
        settings = plugin.context.settings

        sender.send_message(ColorFormat.GOLD + "▬" * 8 + " " + ColorFormat.BOLD + "Anti-Xray Status" + ColorFormat.RESET + ColorFormat.GOLD + " " + "▬" * 8)
        sender.send_message(ColorFormat.YELLOW + "Tracked blocks: " + ColorFormat.WHITE + str(status["tracked_blocks"]))
        sender.send_message(ColorFormat.YELLOW + "Players being tracked: " + ColorFormat.WHITE + str(status["tracked_players"]))
        sender.send_message(ColorFormat.YELLOW + "Connected players: " + ColorFormat.WHITE + str(status["moderators_cached"]))
        sender.send_message(ColorFormat.YELLOW + "Webhook: " + (ColorFormat.GREEN + "✓ Enabled" if settings.webhook.active else ColorFormat.RED + "✗ Disabled"))
        sender.send_message(ColorFormat.YELLOW + "Open webhook messages: " + ColorFormat.WHITE + str(status["webhook_messages"]))
        sender.send_message(ColorFormat.YELLOW + "Ledger: " + ColorFormat.WHITE + f"{plugin.ledger.storage} ({len(plugin.ledger)} placed blocks)")
        sender.send_message(ColorFormat.YELLOW + "Pending detection tasks: " + ColorFormat.WHITE + str(status["pending_tasks"]))
        if status["dropped_tasks"]:
            sender.send_message(ColorFormat.RED + f"Dropped detection tasks: {status['dropped_tasks']}")
        sender.send_message(ColorFormat.GOLD + "▬" * 34)

    @staticmethod
    def send_player_status(plugin, sender: CommandSender, name: str) -> None:
        target = plugin.server.get_player(name)
        if target is None:
            sender.send_message(ColorFormat.RED + "Player not found: " + ColorFormat.GRAY + name)
            return

        windows = plugin.service.tracker.snapshot(str(target.unique_id))
        sender.send_message(ColorFormat.GOLD + "▬" * 8 + " " + ColorFormat.BOLD + f"{target.name}" + ColorFormat.RESET + ColorFormat.GOLD + " " + "▬" * 8)
        if not windows:
            sender.send_message(ColorFormat.GRAY + "No tracked breaks in the current windows.")
        for block_id, window in sorted(windows.items()):
            line = ColorFormat.YELLOW + format_block_name(block_id) + ": " + ColorFormat.WHITE + f"{len(window.queue)} mined"
            if window.tracking:
                line += ColorFormat.RED + f" (alert #{window.consecutive_alert_count})"
            sender.send_message(line)
        sender.send_message(ColorFormat.GOLD + "▬" * 34)
