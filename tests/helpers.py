from endstone_anti_xray.context import AntiXrayContext
from endstone_anti_xray.events import BlockPosition, BreakOccurred, PlacementOccurred, PlayerRef
from endstone_anti_xray.settings import (
    AlertSettings,
    AlertSoundSettings,
    AntiXraySettings,
    PerformanceSettings,
    WebhookSettings,
)
from endstone_anti_xray.tracked_blocks import TrackedBlockCatalog, TrackedBlockConfig


DIAMOND = "minecraft:diamond_ore"
DEBRIS = "minecraft:ancient_debris"

WEBHOOK_URL = "https://discord.com/api/webhooks/123/token"


class DummyLogger:
    def __init__(self):
        self.infos = []
        self.warnings = []
        self.errors = []

    def info(self, msg, *args):
        self.infos.append(msg % args if args else msg)

    def warning(self, msg, *args):
        self.warnings.append(msg % args if args else msg)

    def error(self, msg, *args):
        self.errors.append(msg % args if args else msg)


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> float:
        self.current += seconds
        return self.current

    def advance_minutes(self, minutes: float) -> float:
        return self.advance(minutes * 60)


class FakeLedger:
    def __init__(self):
        self.placed = {}
        self.forgotten = []
        self.flushes = 0
        self.fail_lookups = False

    def is_player_placed(self, world, x, y, z):
        if self.fail_lookups:
            raise RuntimeError("ledger offline")
        return (world, x, y, z) in self.placed

    def record_placement(self, world, x, y, z, block_id):
        self.placed[(world, x, y, z)] = block_id

    def forget(self, world, x, y, z):
        self.placed.pop((world, x, y, z), None)
        self.forgotten.append((world, x, y, z))

    def flush_to_durable_storage(self):
        self.flushes += 1


class FakeLocation:
    def __init__(self, x=0.0, y=64.0, z=0.0):
        self.x = x
        self.y = y
        self.z = z


class FakePlayer:
    def __init__(self, unique_id, name, permissions=(), is_op=False, inventory=None):
        self.unique_id = unique_id
        self.name = name
        self.permissions = set(permissions)
        self.is_op = is_op
        self.inventory = inventory
        self.location = FakeLocation()
        self.messages = []
        self.sounds = []

    def has_permission(self, node):
        return node in self.permissions

    def send_message(self, message):
        self.messages.append(message)

    def play_sound(self, location, sound, volume, pitch):
        self.sounds.append((sound, volume, pitch))


def tracked_block(block_id=DIAMOND, threshold=10, window=30, subsequent=5, reset_after=0, message=None):
    kwargs = {}
    if message is not None:
        kwargs["alert_message"] = message
    return TrackedBlockConfig(
        block_id=block_id,
        alert_threshold=threshold,
        time_window_minutes=window,
        subsequent_alert_threshold=subsequent,
        reset_after_minutes=reset_after,
        **kwargs,
    )


def make_settings(blocks=None, webhook_url="", sound=None, workers=2, queue_size=64, debug=False) -> AntiXraySettings:
    if blocks is None:
        blocks = [tracked_block()]
    return AntiXraySettings(
        alerts=AlertSettings(sound=sound or AlertSoundSettings()),
        webhook=WebhookSettings(enabled=bool(webhook_url), url=webhook_url),
        performance=PerformanceSettings(detection_workers=workers, detection_queue_size=queue_size, shutdown_grace_seconds=2.0),
        debug=debug,
        tracked_blocks=TrackedBlockCatalog(blocks),
    )


def make_context(settings=None, clock=None, logger=None) -> AntiXrayContext:
    return AntiXrayContext(
        logger or DummyLogger(),
        settings or make_settings(),
        clock=clock or FakeClock(),
        version="1.0.0",
    )


def position(x=0, y=12, z=0, world="Overworld") -> BlockPosition:
    return BlockPosition(world, x, y, z)


def break_event(player: PlayerRef, block_id=DIAMOND, x=0, y=12, z=0) -> BreakOccurred:
    return BreakOccurred(player, block_id, position(x, y, z))


def place_event(player: PlayerRef, block_id=DIAMOND, x=0, y=12, z=0) -> PlacementOccurred:
    return PlacementOccurred(player, block_id, position(x, y, z))
