"""
Tracked block catalog for Anti-Xray
Maps block identifiers to their detection thresholds.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional
import re


DEFAULT_ALERT_MESSAGE = "&c[AntiXray] &f{player} has mined {count} {block} in {time}!"

BLOCK_ID_PATTERN = re.compile(r"^[a-z0-9_.\-]+:[a-z0-9_.\-/]+$")


@dataclass(frozen=True)
class TrackedBlockConfig:
    """Detection parameters for one monitored block type"""

    block_id: str
    alert_threshold: int
    time_window_minutes: int
    subsequent_alert_threshold: int = 5
    reset_after_minutes: int = 0  # 0 = never reset
    alert_message: str = DEFAULT_ALERT_MESSAGE

    @property
    def time_window(self) -> float:
        """Window length in seconds"""
        return self.time_window_minutes * 60.0

    @property
    def reset_after_idle(self) -> float:
        """Idle reset delay in seconds, 0 when disabled"""
        return self.reset_after_minutes * 60.0


def normalize_block_id(block_id) -> Optional[str]:
    """Return a namespaced lowercase block id, or None when malformed."""
    if not isinstance(block_id, str):
        return None
    block_id = block_id.strip().lower()
    if not block_id:
        return None
    if ":" not in block_id:
        block_id = f"minecraft:{block_id}"
    if not BLOCK_ID_PATTERN.match(block_id):
        return None
    return block_id


def format_block_name(block_id: str) -> str:
    """minecraft:deepslate_diamond_ore -> Deepslate Diamond Ore"""
    path = block_id.split(":", 1)[-1]
    return " ".join(word[:1].upper() + word[1:] for word in path.split("_") if word)


def _default(block_id: str, threshold: int, window: int, subsequent: int, verb: str = "mined") -> TrackedBlockConfig:
    return TrackedBlockConfig(
        block_id=block_id,
        alert_threshold=threshold,
        time_window_minutes=window,
        subsequent_alert_threshold=subsequent,
        reset_after_minutes=10,
        alert_message=f"&c[AntiXray] &f{{player}} has {verb} {{count}} {{block}} in {{time}}!",
    )


DEFAULT_TRACKED_BLOCKS: List[TrackedBlockConfig] = [
    _default("minecraft:diamond_ore", 10, 30, 5),
    _default("minecraft:deepslate_diamond_ore", 10, 30, 5),
    _default("minecraft:ancient_debris", 5, 20, 3),
    _default("minecraft:emerald_ore", 8, 30, 4),
    _default("minecraft:deepslate_emerald_ore", 8, 30, 4),
    _default("minecraft:nether_gold_ore", 15, 30, 8),
    _default("minecraft:gold_ore", 8, 30, 4),
    _default("minecraft:deepslate_gold_ore", 8, 30, 4),
    _default("minecraft:lapis_ore", 12, 30, 6),
    _default("minecraft:deepslate_lapis_ore", 12, 30, 6),
    _default("minecraft:redstone_ore", 25, 30, 15),
    _default("minecraft:deepslate_redstone_ore", 25, 30, 15),
    _default("minecraft:iron_ore", 35, 30, 20),
    _default("minecraft:deepslate_iron_ore", 35, 30, 20),
    _default("minecraft:copper_ore", 40, 30, 20),
    _default("minecraft:deepslate_copper_ore", 40, 30, 20),
    _default("minecraft:coal_ore", 60, 30, 30),
    _default("minecraft:deepslate_coal_ore", 60, 30, 30),
    _default("minecraft:quartz_ore", 40, 30, 20),
    _default("minecraft:mob_spawner", 2, 60, 1, verb="found"),
    _default("minecraft:budding_amethyst", 4, 30, 2),
    _default("minecraft:suspicious_sand", 8, 30, 4),
    _default("minecraft:suspicious_gravel", 8, 30, 4),
]


class TrackedBlockCatalog:
    """Read-only lookup of tracked block types, replaced wholesale on reload"""

    def __init__(self, blocks: Iterable[TrackedBlockConfig] = ()):
        self._blocks: Dict[str, TrackedBlockConfig] = {}
        for block in blocks:
            self._blocks[block.block_id] = block

    @classmethod
    def from_config(cls, entries, logger) -> "TrackedBlockCatalog":
        """Build a catalog from raw config entries, skipping malformed ones."""
        if entries is None:
            return cls(DEFAULT_TRACKED_BLOCKS)
        if not isinstance(entries, list):
            logger.warning("[Config] tracked-blocks must be a list, using defaults")
            return cls(DEFAULT_TRACKED_BLOCKS)

        blocks: List[TrackedBlockConfig] = []
        for entry in entries:
            if not isinstance(entry, dict):
                logger.warning(f"[Config] Ignoring tracked block entry {entry!r}: expected a table")
                continue
            raw_id = entry.get("block-id")
            block_id = normalize_block_id(raw_id)
            if block_id is None:
                logger.warning(f"[Config] Invalid block ID format: {raw_id}")
                continue
            try:
                threshold = int(entry.get("alert-threshold", 10))
                window = int(entry.get("time-window-minutes", 30))
                subsequent = int(entry.get("subsequent-alert-threshold", 5))
                reset_after = int(entry.get("reset-after-minutes", 0))
            except (TypeError, ValueError):
                logger.warning(f"[Config] Invalid thresholds for {block_id}, skipping")
                continue
            if threshold < 1 or window < 1 or subsequent < 1 or reset_after < 0:
                logger.warning(f"[Config] Out-of-range thresholds for {block_id}, skipping")
                continue
            blocks.append(
                TrackedBlockConfig(
                    block_id=block_id,
                    alert_threshold=threshold,
                    time_window_minutes=window,
                    subsequent_alert_threshold=subsequent,
                    reset_after_minutes=reset_after,
                    alert_message=str(entry.get("alert-message", DEFAULT_ALERT_MESSAGE)),
                )
            )
        return cls(blocks)

    def get(self, block_id: str) -> Optional[TrackedBlockConfig]:
        return self._blocks.get(block_id)

    def __contains__(self, block_id: str) -> bool:
        return block_id in self._blocks

    def __len__(self) -> int:
        return len(self._blocks)

    def __iter__(self):
        return iter(self._blocks.values())
