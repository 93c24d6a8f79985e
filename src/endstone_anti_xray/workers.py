"""
Detection worker pool for Anti-Xray
Keeps ledger lookups and window updates off the server thread. Tasks for one
player always land on the same worker, so a player's breaks are processed in
the order they happened.
"""

from collections import deque
from typing import Callable, Deque, List, Optional
import threading
import time
import zlib


class _Shard:
    __slots__ = ("queue", "condition", "thread", "busy")

    def __init__(self, max_pending: int):
        self.queue: Deque[Callable[[], None]] = deque(maxlen=max_pending)
        self.condition = threading.Condition()
        self.thread: Optional[threading.Thread] = None
        self.busy = False


class ShardedWorkerPool:
    """Fixed set of worker threads with bounded, drop-oldest queues"""

    def __init__(self, logger, workers: int = 4, max_pending: int = 1024, name: str = "antixray-detect"):
        self.logger = logger
        self.name = name
        self.dropped = 0
        self._running = False
        self._lock = threading.Lock()
        self._shards: List[_Shard] = [_Shard(max_pending) for _ in range(max(1, workers))]

    def start(self) -> None:
        with self._lock:
            if self._running:
                return
            self._running = True
        for index, shard in enumerate(self._shards):
            shard.thread = threading.Thread(
                target=self._work, args=(shard,), name=f"{self.name}-{index}", daemon=True
            )
            shard.thread.start()

    def _shard_for(self, key: str) -> _Shard:
        return self._shards[zlib.crc32(key.encode("utf-8")) % len(self._shards)]

    def submit(self, key: str, task: Callable[[], None]) -> bool:
        """Queue a task for key; never blocks. Returns False once shut down."""
        if not self._running:
            return False
        shard = self._shard_for(key)
        with shard.condition:
            if len(shard.queue) == shard.queue.maxlen:
                # deque(maxlen) discards the oldest entry on append
                with self._lock:
                    self.dropped += 1
                    dropped = self.dropped
                self.logger.warning(
                    f"[AntiXray] Detection queue full, dropped oldest pending task ({dropped} dropped so far)"
                )
            shard.queue.append(task)
            shard.condition.notify()
        return True

    def _work(self, shard: _Shard) -> None:
        while True:
            with shard.condition:
                while self._running and not shard.queue:
                    shard.condition.wait()
                if not shard.queue:
                    return
                task = shard.queue.popleft()
                shard.busy = True
            try:
                task()
            except Exception as e:
                self.logger.error(f"[AntiXray] Error during detection: {str(e)}")
            finally:
                with shard.condition:
                    shard.busy = False
                    shard.condition.notify_all()

    def pending(self) -> int:
        total = 0
        for shard in self._shards:
            with shard.condition:
                total += len(shard.queue) + (1 if shard.busy else 0)
        return total

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait until every queue is drained; returns False on timeout."""
        deadline = None if timeout is None else time.monotonic() + timeout
        for shard in self._shards:
            with shard.condition:
                while shard.queue or shard.busy:
                    remaining = None if deadline is None else deadline - time.monotonic()
                    if remaining is not None and remaining <= 0:
                        return False
                    shard.condition.wait(remaining)
        return True

    def shutdown(self, grace_seconds: float = 5.0) -> None:
        """Drain for at most grace_seconds, then discard what is left."""
        if not self._running:
            return
        drained = self.join(grace_seconds)
        self._running = False
        discarded = 0
        for shard in self._shards:
            with shard.condition:
                discarded += len(shard.queue)
                shard.queue.clear()
                shard.condition.notify_all()
        if not drained:
            self.logger.warning(f"[AntiXray] Shutting down with {discarded} detection tasks discarded")
        for shard in self._shards:
            if shard.thread is not None:
                shard.thread.join(timeout=1.0)
