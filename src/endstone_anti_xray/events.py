"""
Inbound messages for the Anti-Xray core
The plugin translates host events into these plain objects so the detection
core never touches Endstone types.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class PlayerRef:
    """Identity of a connected player"""

    unique_id: str
    name: str


@dataclass(frozen=True)
class BlockPosition:
    """A block coordinate inside a dimension"""

    world: str
    x: int
    y: int
    z: int

    def as_text(self) -> str:
        return f"{self.x}, {self.y}, {self.z}"


@dataclass(frozen=True)
class BreakOccurred:
    player: PlayerRef
    block_id: str
    position: BlockPosition


@dataclass(frozen=True)
class PlacementOccurred:
    player: PlayerRef
    block_id: str
    position: BlockPosition


@dataclass(frozen=True)
class PlayerConnected:
    player: PlayerRef
    receives_alerts: bool


@dataclass(frozen=True)
class PlayerDisconnected:
    player: PlayerRef
