"""
Placement provenance gate for Anti-Xray
Player-placed blocks are never suspicious: breaks on them are absorbed before
they reach the tracker.
"""

from typing import Protocol

from endstone_anti_xray.context import AntiXrayContext
from endstone_anti_xray.events import BreakOccurred, PlacementOccurred


class Ledger(Protocol):
    """Record of coordinates placed by players"""

    def is_player_placed(self, world: str, x: int, y: int, z: int) -> bool: ...

    def record_placement(self, world: str, x: int, y: int, z: int, block_id: str) -> None: ...

    def forget(self, world: str, x: int, y: int, z: int) -> None: ...

    def flush_to_durable_storage(self) -> None: ...


class PlacementProvenanceGate:
    """Consults the ledger before a break is counted"""

    def __init__(self, context: AntiXrayContext, ledger: Ledger):
        self.context = context
        self.ledger = ledger

    def admit(self, event: BreakOccurred) -> bool:
        """Return True when the break should be counted by the tracker."""
        pos = event.position
        try:
            placed = self.ledger.is_player_placed(pos.world, pos.x, pos.y, pos.z)
        except Exception as e:
            self.context.logger.error(
                f"{AntiXrayContext.LOG_TAG}Ledger lookup failed at ({pos.as_text()}) in {pos.world}, "
                f"skipping detection: {str(e)}"
            )
            return False

        if not placed:
            self.context.debug(
                f"{event.player.name} broke tracked block {event.block_id} at ({pos.as_text()}) "
                f"(confirmed not player-placed)"
            )
            return True

        try:
            self.ledger.forget(pos.world, pos.x, pos.y, pos.z)
        except Exception as e:
            self.context.logger.error(
                f"{AntiXrayContext.LOG_TAG}Failed to forget placed block at ({pos.as_text()}): {str(e)}"
            )
        self.context.debug(
            f"{event.player.name} broke player-placed block at ({pos.as_text()}) in {pos.world}, skipping"
        )
        return False

    def register_placement(self, event: PlacementOccurred) -> bool:
        """Record a placement of a tracked block type; returns True when recorded."""
        if event.block_id not in self.context.settings.tracked_blocks:
            return False
        pos = event.position
        try:
            self.ledger.record_placement(pos.world, pos.x, pos.y, pos.z, event.block_id)
        except Exception as e:
            self.context.logger.error(
                f"{AntiXrayContext.LOG_TAG}Failed to record placement at ({pos.as_text()}): {str(e)}"
            )
            return False
        self.context.debug(f"Recorded placed block {event.block_id} at ({pos.as_text()}) in {pos.world}")
        return True
