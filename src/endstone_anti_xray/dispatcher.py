"""
Alert dispatcher for Anti-Xray
Formats firing decisions for staff, plays an escalating sound and hands the
alert to the webhook path.
"""

from typing import Callable, Dict, Iterable, Optional, Set, Tuple
import threading

from endstone_anti_xray.context import AntiXrayContext
from endstone_anti_xray.tracked_blocks import DEFAULT_ALERT_MESSAGE, format_block_name
from endstone_anti_xray.tracker import AlertEvent


def colorize(message: str) -> str:
    return message.replace("&", "§")


OPERATOR_LEVEL = 4


def has_alert_permission(player, node: str, permission_level: int, op_level: int) -> bool:
    """Permission node first, then the operator level fallback."""
    try:
        if player.has_permission(node):
            return True
    except Exception:
        pass
    # Bedrock only exposes operator status, which counts as the top level
    level = OPERATOR_LEVEL if getattr(player, "is_op", False) else 0
    return level >= max(permission_level, op_level)


class ModeratorPermissionCache:
    """uuid -> receives alerts, filled on join and dropped on quit"""

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: Dict[str, bool] = {}

    def set(self, player_id: str, receives_alerts: bool) -> None:
        with self._lock:
            self._entries[player_id] = bool(receives_alerts)

    def remove(self, player_id: str) -> None:
        with self._lock:
            self._entries.pop(player_id, None)

    def receives_alerts(self, player_id: str) -> bool:
        # Unknown players fail closed
        with self._lock:
            return self._entries.get(player_id, False)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class AlertDispatcher:
    """Delivers alerts to online staff; must run on the server thread"""

    def __init__(
        self,
        context: AntiXrayContext,
        online_players: Callable[[], Iterable],
        webhook_submit: Optional[Callable[[AlertEvent, Optional[str]], None]] = None,
        inventory_provider: Optional[Callable[[str], Optional[str]]] = None,
    ):
        self.context = context
        self.online_players = online_players
        self.webhook_submit = webhook_submit
        self.inventory_provider = inventory_provider
        self.permissions = ModeratorPermissionCache()
        self._warned_sounds: Set[str] = set()
        self._warned_silent = False

    def connect(self, player_id: str, receives_alerts: bool) -> None:
        self.permissions.set(player_id, receives_alerts)
        self.context.debug(f"Updated permission cache for {player_id}: {receives_alerts}")

    def disconnect(self, player_id: str) -> None:
        self.permissions.remove(player_id)

    def format_message(self, alert: AlertEvent) -> str:
        """Fill the block's template and mark continued alerts."""
        settings = self.context.settings
        tracked = settings.tracked_blocks.get(alert.block_id)
        template = tracked.alert_message if tracked else DEFAULT_ALERT_MESSAGE
        message = (
            template.replace("{player}", alert.player.name)
            .replace("{count}", str(alert.count))
            .replace("{time}", f"{alert.time_window_minutes} minutes")
            .replace("{block}", format_block_name(alert.block_id))
            .replace("{x}", str(alert.position.x))
            .replace("{y}", str(alert.position.y))
            .replace("{z}", str(alert.position.z))
        )
        if alert.continued:
            message = settings.alerts.continued_alert_prefix + message
        return colorize(message)

    def sound_parameters(self, consecutive_alert_count: int) -> Tuple[float, float]:
        """Volume and pitch grow exponentially with each consecutive alert."""
        sound = self.context.settings.alerts.sound
        exponent = max(consecutive_alert_count - 1, 0)
        volume = sound.base_volume * (sound.volume_multiplier_per_alert ** exponent)
        pitch = sound.base_pitch * (sound.pitch_multiplier_per_alert ** exponent)
        return volume, pitch

    def dispatch(self, alert: AlertEvent) -> int:
        """Broadcast to staff and queue the webhook; returns recipients reached."""
        message = self.format_message(alert)
        sound_id = self.context.settings.alerts.sound.sound_id.strip()
        volume, pitch = self.sound_parameters(alert.consecutive_alert_count)
        if not sound_id and not self._warned_silent:
            self._warned_silent = True
            self.context.logger.warning(f"{AntiXrayContext.LOG_TAG}No alert sound configured, sending text only")

        self.context.debug(
            f"Sending alert to staff for {alert.player.name}, count: {alert.count} at ({alert.position.as_text()})"
        )

        delivered = 0
        for player in self.online_players():
            if not self.permissions.receives_alerts(str(player.unique_id)):
                continue
            try:
                player.send_message(message)
            except Exception as e:
                self.context.logger.error(f"{AntiXrayContext.LOG_TAG}Failed to alert {player.name}: {str(e)}")
                continue
            delivered += 1
            if sound_id:
                self._play_sound(player, sound_id, volume, pitch)

        self.context.logger.info(
            f"{AntiXrayContext.LOG_TAG}{alert.player.name} mined {alert.count} {alert.block_id} "
            f"in {alert.time_window_minutes}m (alert #{alert.consecutive_alert_count}, {delivered} staff notified)"
        )

        self._submit_webhook(alert)
        return delivered

    def _play_sound(self, player, sound_id: str, volume: float, pitch: float) -> None:
        try:
            player.play_sound(player.location, sound_id, volume, pitch)
        except Exception:
            if sound_id not in self._warned_sounds:
                self._warned_sounds.add(sound_id)
                self.context.logger.warning(f"{AntiXrayContext.LOG_TAG}Invalid or missing sound event: {sound_id}")

    def _submit_webhook(self, alert: AlertEvent) -> None:
        if self.webhook_submit is None or not self.context.settings.webhook.active:
            return
        inventory = None
        if self.inventory_provider is not None:
            try:
                inventory = self.inventory_provider(alert.player.unique_id)
            except Exception as e:
                self.context.debug(f"Inventory snapshot unavailable for {alert.player.name}: {str(e)}")
        try:
            self.webhook_submit(alert, inventory)
        except Exception as e:
            self.context.logger.error(f"[Webhook] Failed to queue alert for {alert.player.name}: {str(e)}")
