"""
Settings for Anti-Xray
Turns the raw plugin configuration into an immutable settings tree.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from endstone_anti_xray.tracked_blocks import TrackedBlockCatalog


@dataclass(frozen=True)
class GeneralSettings:
    notify_permission: str = "antixray.notify"
    permission_level: int = 2
    op_level: int = 2


@dataclass(frozen=True)
class AlertSoundSettings:
    sound_id: str = "note.pling"
    base_volume: float = 1.0
    base_pitch: float = 1.0
    volume_multiplier_per_alert: float = 1.0
    pitch_multiplier_per_alert: float = 1.0


@dataclass(frozen=True)
class AlertSettings:
    sound: AlertSoundSettings = field(default_factory=AlertSoundSettings)
    continued_alert_prefix: str = "&c[Continued] "


@dataclass(frozen=True)
class WebhookSettings:
    enabled: bool = False
    url: str = ""

    @property
    def active(self) -> bool:
        return self.enabled and bool(self.url)


@dataclass(frozen=True)
class LedgerSettings:
    enabled: bool = True
    storage: str = "yaml"
    mysql: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PerformanceSettings:
    detection_workers: int = 4
    detection_queue_size: int = 1024
    shutdown_grace_seconds: float = 5.0


@dataclass(frozen=True)
class AntiXraySettings:
    """Everything the core reads; swapped as a whole on reload"""

    general: GeneralSettings = field(default_factory=GeneralSettings)
    alerts: AlertSettings = field(default_factory=AlertSettings)
    webhook: WebhookSettings = field(default_factory=WebhookSettings)
    ledger: LedgerSettings = field(default_factory=LedgerSettings)
    performance: PerformanceSettings = field(default_factory=PerformanceSettings)
    debug: bool = False
    tracked_blocks: TrackedBlockCatalog = field(default_factory=TrackedBlockCatalog)


def _as_int(value, default: int, logger, name: str, minimum: Optional[int] = None) -> int:
    try:
        result = int(value)
    except (TypeError, ValueError):
        logger.warning(f"[Config] Invalid {name} value ({value!r}), using default: {default}")
        return default
    if minimum is not None and result < minimum:
        logger.warning(f"[Config] Invalid {name} value ({result}), using default: {default}")
        return default
    return result


def _as_float(value, default: float, logger, name: str) -> float:
    try:
        result = float(value)
    except (TypeError, ValueError):
        logger.warning(f"[Config] Invalid {name} value ({value!r}), using default: {default}")
        return default
    if result < 0:
        logger.warning(f"[Config] Invalid {name} value ({result}), using default: {default}")
        return default
    return result


def _section(config: Dict[str, Any], name: str, logger) -> Dict[str, Any]:
    value = config.get(name, {})
    if not isinstance(value, dict):
        logger.warning(f"[Config] Invalid [{name}] section, using defaults")
        return {}
    return value


def build_settings(config: Optional[Dict[str, Any]], logger) -> AntiXraySettings:
    """Load and validate configuration settings"""
    config = config or {}

    general_config = _section(config, "general", logger)
    general = GeneralSettings(
        notify_permission=str(general_config.get("notify-permission", "antixray.notify")),
        permission_level=_as_int(general_config.get("permission-level", 2), 2, logger, "permission-level", 0),
        op_level=_as_int(general_config.get("op-level", 2), 2, logger, "op-level", 0),
    )

    alerts_config = _section(config, "alerts", logger)
    sound_config = alerts_config.get("sound", {})
    if not isinstance(sound_config, dict):
        logger.warning("[Config] Invalid [alerts.sound] section, using defaults")
        sound_config = {}
    sound = AlertSoundSettings(
        sound_id=str(sound_config.get("sound-id", "note.pling")),
        base_volume=_as_float(sound_config.get("base-volume", 1.0), 1.0, logger, "base-volume"),
        base_pitch=_as_float(sound_config.get("base-pitch", 1.0), 1.0, logger, "base-pitch"),
        volume_multiplier_per_alert=_as_float(
            sound_config.get("volume-multiplier-per-alert", 1.0), 1.0, logger, "volume-multiplier-per-alert"
        ),
        pitch_multiplier_per_alert=_as_float(
            sound_config.get("pitch-multiplier-per-alert", 1.0), 1.0, logger, "pitch-multiplier-per-alert"
        ),
    )
    alerts = AlertSettings(
        sound=sound,
        continued_alert_prefix=str(alerts_config.get("continued-alert-prefix", "&c[Continued] ")),
    )

    webhook_config = _section(config, "webhook", logger)
    webhook = WebhookSettings(
        enabled=bool(webhook_config.get("enabled", False)),
        url=str(webhook_config.get("url", "")).strip(),
    )

    ledger_config = _section(config, "ledger", logger)
    storage = str(ledger_config.get("storage", "yaml")).lower()
    mysql_config = ledger_config.get("mysql", {})
    if not isinstance(mysql_config, dict):
        logger.warning("[Config] Invalid [ledger.mysql] section, ignoring")
        mysql_config = {}
    if mysql_config.get("enabled", False):
        storage = "mysql"
    if storage not in {"yaml", "mysql"}:
        logger.warning(f"[Config] Unknown ledger storage '{storage}', falling back to yaml.")
        storage = "yaml"
    ledger = LedgerSettings(
        enabled=bool(ledger_config.get("enabled", True)),
        storage=storage,
        mysql=dict(mysql_config),
    )

    performance_config = _section(config, "performance", logger)
    performance = PerformanceSettings(
        detection_workers=_as_int(
            performance_config.get("detection-workers", 4), 4, logger, "detection-workers", 1
        ),
        detection_queue_size=_as_int(
            performance_config.get("detection-queue-size", 1024), 1024, logger, "detection-queue-size", 1
        ),
        shutdown_grace_seconds=_as_float(
            performance_config.get("shutdown-grace-seconds", 5.0), 5.0, logger, "shutdown-grace-seconds"
        ),
    )

    debug_config = _section(config, "debug", logger)

    return AntiXraySettings(
        general=general,
        alerts=alerts,
        webhook=webhook,
        ledger=ledger,
        performance=performance,
        debug=bool(debug_config.get("enabled", False)),
        tracked_blocks=TrackedBlockCatalog.from_config(config.get("tracked-blocks"), logger),
    )
