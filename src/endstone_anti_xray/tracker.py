"""
Sliding window tracker for Anti-Xray
Counts tracked block breaks per player and decides when staff must be alerted.
"""

from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, Optional
import threading

from endstone_anti_xray.context import AntiXrayContext
from endstone_anti_xray.events import BlockPosition, PlayerRef


# Window used for block types that left the catalog after a reload
FALLBACK_WINDOW_SECONDS = 30 * 60.0


@dataclass
class BreakRecord:
    timestamp: float
    position: BlockPosition


@dataclass
class BreakWindow:
    """Break history and escalation state for one player and block type"""

    queue: Deque[BreakRecord] = field(default_factory=deque)
    tracking: bool = False
    last_alert_time: float = 0.0
    last_alert_count: int = 0
    consecutive_alert_count: int = 0

    def trim(self, cutoff: float) -> None:
        while self.queue and self.queue[0].timestamp < cutoff:
            self.queue.popleft()

    @property
    def idle(self) -> bool:
        return not self.queue and not self.tracking


@dataclass(frozen=True)
class AlertEvent:
    """A firing decision handed to the dispatcher"""

    player: PlayerRef
    block_id: str
    count: int
    time_window: float
    consecutive_alert_count: int
    position: BlockPosition
    detected_at: float

    @property
    def time_window_minutes(self) -> int:
        return int(self.time_window // 60)

    @property
    def continued(self) -> bool:
        return self.consecutive_alert_count > 1


class _PlayerWindows:
    """Per-player block map; the lock serializes that player's breaks"""

    __slots__ = ("lock", "windows")

    def __init__(self):
        self.lock = threading.Lock()
        self.windows: Dict[str, BreakWindow] = {}


class SlidingWindowTracker:
    """Tracks break windows for every online player"""

    def __init__(self, context: AntiXrayContext):
        self.context = context
        self._registry_lock = threading.Lock()
        self._players: Dict[str, _PlayerWindows] = {}
        self._sessions: Dict[str, int] = {}

    def session(self, player_id: str) -> int:
        """Current session number; bumped every time the player is forgotten."""
        with self._registry_lock:
            return self._sessions.get(player_id, 0)

    def _player_windows(self, player_id: str, session: Optional[int] = None) -> Optional[_PlayerWindows]:
        with self._registry_lock:
            if session is not None and self._sessions.get(player_id, 0) != session:
                return None
            entry = self._players.get(player_id)
            if entry is None:
                entry = _PlayerWindows()
                self._players[player_id] = entry
            return entry

    def record_break(
        self,
        player: PlayerRef,
        block_id: str,
        position: BlockPosition,
        now: Optional[float] = None,
        session: Optional[int] = None,
    ) -> Optional[AlertEvent]:
        """
        Record one break and return an alert when a threshold is crossed.
        A break queued under an earlier session (before a disconnect) is ignored.
        """
        tracked = self.context.settings.tracked_blocks.get(block_id)
        if tracked is None:
            return None
        if now is None:
            now = self.context.now()

        while True:
            entry = self._player_windows(player.unique_id, session)
            if entry is None:
                return None
            with entry.lock:
                # sweep or forget_player may have unregistered the entry before we locked it
                if self._players.get(player.unique_id) is not entry:
                    continue
                return self._record(entry, tracked, player, block_id, position, now)

    def _record(self, entry: _PlayerWindows, tracked, player: PlayerRef, block_id: str,
                position: BlockPosition, now: float) -> Optional[AlertEvent]:
        window = entry.windows.get(block_id)
        if window is None:
            window = BreakWindow(last_alert_time=now)
            entry.windows[block_id] = window

        window.queue.append(BreakRecord(now, position))
        window.trim(now - tracked.time_window)
        current_count = len(window.queue)

        if window.tracking and tracked.reset_after_idle > 0:
            if now > window.last_alert_time + tracked.reset_after_idle:
                self.context.debug(
                    f"Resetting tracking for {player.name} on {block_id} after "
                    f"{tracked.reset_after_minutes} minutes"
                )
                window.queue.clear()
                window.queue.append(BreakRecord(now, position))
                window.tracking = False
                window.last_alert_time = now
                window.last_alert_count = 0
                window.consecutive_alert_count = 0
                return None

        if not window.tracking and current_count >= tracked.alert_threshold:
            window.tracking = True
            window.consecutive_alert_count = 1
        elif window.tracking and current_count >= window.last_alert_count + tracked.subsequent_alert_threshold:
            window.consecutive_alert_count += 1
        else:
            return None

        window.last_alert_time = now
        window.last_alert_count = current_count
        return AlertEvent(
            player=player,
            block_id=block_id,
            count=current_count,
            time_window=tracked.time_window,
            consecutive_alert_count=window.consecutive_alert_count,
            position=window.queue[-1].position,
            detected_at=now,
        )

    def forget_player(self, player_id: str) -> None:
        """Drop every window of a player (disconnect) and start a new session."""
        with self._registry_lock:
            self._players.pop(player_id, None)
            self._sessions[player_id] = self._sessions.get(player_id, 0) + 1

    def sweep(self, now: Optional[float] = None) -> int:
        """Trim expired breaks and drop idle windows; returns windows removed."""
        if now is None:
            now = self.context.now()
        catalog = self.context.settings.tracked_blocks

        with self._registry_lock:
            players = list(self._players.items())

        removed = 0
        for player_id, entry in players:
            with entry.lock:
                for block_id in list(entry.windows):
                    window = entry.windows[block_id]
                    tracked = catalog.get(block_id)
                    time_window = tracked.time_window if tracked else FALLBACK_WINDOW_SECONDS
                    window.trim(now - time_window)
                    if window.idle:
                        del entry.windows[block_id]
                        removed += 1
                empty = not entry.windows

            if empty:
                with self._registry_lock, entry.lock:
                    # a break may have repopulated the map since we released its lock
                    if self._players.get(player_id) is entry and not entry.windows:
                        del self._players[player_id]
        return removed

    def snapshot(self, player_id: str) -> Dict[str, BreakWindow]:
        """Copy of a player's windows, for status output and tests."""
        with self._registry_lock:
            entry = self._players.get(player_id)
        if entry is None:
            return {}
        with entry.lock:
            return {
                block_id: BreakWindow(
                    queue=deque(window.queue),
                    tracking=window.tracking,
                    last_alert_time=window.last_alert_time,
                    last_alert_count=window.last_alert_count,
                    consecutive_alert_count=window.consecutive_alert_count,
                )
                for block_id, window in entry.windows.items()
            }

    def tracked_player_count(self) -> int:
        with self._registry_lock:
            return len(self._players)
