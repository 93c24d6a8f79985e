"""
Anti-Xray Plugin for Endstone
Watches valuable block breaks and alerts staff when a player mines ores faster than is plausible without x-ray.
"""

from endstone.plugin import Plugin
from endstone.event import (
    event_handler,
    EventPriority,
    BlockBreakEvent,
    BlockPlaceEvent,
    PlayerJoinEvent,
    PlayerQuitEvent,
)
from endstone import ColorFormat
from typing import Optional

from endstone_anti_xray import __version__
from endstone_anti_xray.context import AntiXrayContext
from endstone_anti_xray.dispatcher import has_alert_permission
from endstone_anti_xray.events import (
    BlockPosition,
    BreakOccurred,
    PlacementOccurred,
    PlayerConnected,
    PlayerDisconnected,
    PlayerRef,
)
from endstone_anti_xray.inventory import describe_inventory
from endstone_anti_xray.settings import AntiXraySettings, build_settings
from endstone_anti_xray.tracked_blocks import normalize_block_id


class AntiXrayPlugin(Plugin):
    """Main plugin class for Anti-Xray"""

    api_version = "0.10"
    version = __version__

    commands = {
        "antixray": {
            "description": "Anti-Xray administration",
            "usages": [
                "/antixray",
                "/antixray (reload|sync)<action: AntiXrayAction>",
                "/antixray (status)<action: AntiXrayStatusAction> [player: str]",
                "/antixray (viewinventory)<action: AntiXrayInventoryAction> <player: str>",
            ],
            "aliases": ["ax"],
            "permissions": ["antixray.command"],
        }
    }

    permissions = {
        "antixray.command": {
            "description": "Allows use of /antixray command",
            "default": True,
        },
        "antixray.reload": {
            "description": "Allows reloading the plugin configuration",
            "default": "op",
        },
        "antixray.sync": {
            "description": "Allows forcing a placed-block ledger sync",
            "default": "op",
        },
        "antixray.notify": {
            "description": "Receive x-ray alerts",
            "default": "op",
        },
        "antixray.playerinv": {
            "description": "Allows viewing another player's inventory",
            "default": "op",
        },
    }

    def __init__(self):
        super().__init__()
        self.context: Optional[AntiXrayContext] = None
        self.ledger = None
        self.service = None

    def on_load(self) -> None:
        """Called when the plugin is loaded"""
        self.logger.info("Anti-Xray plugin loaded!")

    def on_enable(self) -> None:
        """Called when the plugin is enabled"""
        settings = self.load_config()
        self.context = AntiXrayContext(self.logger, settings, version=self.version)

        from endstone_anti_xray.placement_ledger import PlacementLedger
        from endstone_anti_xray.service import AntiXrayService

        self.ledger = PlacementLedger(settings.ledger, self.data_folder, self.logger)
        self.service = AntiXrayService(
            self.context,
            self.ledger,
            online_players=lambda: self.server.online_players,
            run_on_main=lambda task: self.server.scheduler.run_task(self, task),
            inventory_provider=self.inventory_snapshot,
        )
        self.service.start()

        # Players already online after a plugin reload never fire a join event
        for player in self.server.online_players:
            self.service.handle(PlayerConnected(self.player_ref(player), self.receives_alerts(player)))

        self.register_events(self)

        self.logger.info(
            f"Plugin enabled (v{self.version}) - Tracked blocks: {len(settings.tracked_blocks)}, "
            f"Webhook: {'enabled' if settings.webhook.active else 'disabled'}"
        )

    def on_disable(self) -> None:
        """Called when the plugin is disabled"""
        if self.service:
            self.service.shutdown()
        if self.ledger:
            self.ledger.close()
        self.logger.info(ColorFormat.RED + "Anti-Xray plugin disabled!")

    def on_command(self, sender, command, args):
        """Handle command execution"""
        from endstone_anti_xray.anti_xray_command import AntiXrayCommand
        return AntiXrayCommand.handle_command(self, sender, args)

    def load_config(self) -> AntiXraySettings:
        """Load and validate configuration settings"""
        self.save_default_config()
        settings = build_settings(self.config, self.logger)

        self.logger.info(ColorFormat.GREEN + f"[Config] Tracking {len(settings.tracked_blocks)} block types")
        self.logger.info(ColorFormat.GREEN + f"[Config] Ledger storage: {settings.ledger.storage}")
        self.logger.info(ColorFormat.GREEN + f"[Config] Detection workers: {settings.performance.detection_workers}")
        if settings.debug:
            for block in settings.tracked_blocks:
                self.logger.info(
                    f"[DEBUG] {block.block_id}: threshold {block.alert_threshold}, "
                    f"window {block.time_window_minutes}m, subsequent {block.subsequent_alert_threshold}, "
                    f"reset {block.reset_after_minutes}m"
                )
        return settings

    def reload_configuration(self) -> None:
        """Reload configuration and reopen the ledger backend"""
        self.reload_config()
        settings = self.load_config()

        from endstone_anti_xray.placement_ledger import PlacementLedger

        # Flush/close the active ledger before reopening so backend switches apply cleanly.
        if self.ledger:
            try:
                self.ledger.close()
            except Exception as e:
                self.logger.error(f"[Ledger] Error closing ledger during reload: {str(e)}")
        self.ledger = PlacementLedger(settings.ledger, self.data_folder, self.logger)
        self.service.swap_ledger(self.ledger)
        self.service.reload(settings)

        for player in self.server.online_players:
            self.service.handle(PlayerConnected(self.player_ref(player), self.receives_alerts(player)))

        self.logger.info(ColorFormat.GREEN + "Configuration reloaded")

    @staticmethod
    def player_ref(player) -> PlayerRef:
        return PlayerRef(str(player.unique_id), player.name)

    @staticmethod
    def block_position(block) -> BlockPosition:
        return BlockPosition(block.dimension.name, int(block.x), int(block.y), int(block.z))

    def receives_alerts(self, player) -> bool:
        general = self.context.settings.general
        return has_alert_permission(player, general.notify_permission, general.permission_level, general.op_level)

    def find_online_player(self, player_id: str):
        for player in self.server.online_players:
            if str(player.unique_id) == player_id:
                return player
        return None

    def inventory_snapshot(self, player_id: str) -> Optional[str]:
        """Text listing of an online player's inventory, None when offline"""
        player = self.find_online_player(player_id)
        if player is None:
            return None
        return describe_inventory(player.inventory)

    @event_handler
    def on_player_join(self, event: PlayerJoinEvent):
        player = event.player
        receives_alerts = self.receives_alerts(player)
        self.service.handle(PlayerConnected(self.player_ref(player), receives_alerts))

    @event_handler
    def on_player_quit(self, event: PlayerQuitEvent):
        self.service.handle(PlayerDisconnected(self.player_ref(event.player)))

    @event_handler(priority=EventPriority.MONITOR)
    def on_block_break(self, event: BlockBreakEvent) -> None:
        """Hand tracked block breaks to the detection workers"""
        if event.is_cancelled:
            return
        if not event or not event.player or not event.block:
            return

        block_id = normalize_block_id(event.block.type)
        if block_id is None or block_id not in self.context.settings.tracked_blocks:
            return

        try:
            message = BreakOccurred(self.player_ref(event.player), block_id, self.block_position(event.block))
            self.service.handle(message)
        except Exception as e:
            self.logger.error(f"{AntiXrayContext.LOG_TAG}Error handling block break: {str(e)}")

    @event_handler(priority=EventPriority.MONITOR)
    def on_block_place(self, event: BlockPlaceEvent) -> None:
        """Remember player-placed ores so breaking them again is never counted"""
        if event.is_cancelled:
            return

        state = getattr(event, "block_placed_state", None) or event.block
        block_id = normalize_block_id(state.type)
        if block_id is None or block_id not in self.context.settings.tracked_blocks:
            return

        try:
            message = PlacementOccurred(self.player_ref(event.player), block_id, self.block_position(state))
            self.service.handle(message)
        except Exception as e:
            self.logger.error(f"{AntiXrayContext.LOG_TAG}Error recording block placement: {str(e)}")
