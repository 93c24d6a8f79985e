"""
Anti-Xray detection service
Wires the provenance gate, tracker, dispatcher, webhook notifier and cleanup
scheduler together and consumes the inbound message types.
"""

from typing import Any, Callable, Dict, Iterable, Optional

from endstone_anti_xray.context import AntiXrayContext
from endstone_anti_xray.dispatcher import AlertDispatcher
from endstone_anti_xray.events import BreakOccurred, PlacementOccurred, PlayerConnected, PlayerDisconnected
from endstone_anti_xray.provenance import Ledger, PlacementProvenanceGate
from endstone_anti_xray.scheduler import CleanupScheduler
from endstone_anti_xray.settings import AntiXraySettings
from endstone_anti_xray.tracker import AlertEvent, SlidingWindowTracker
from endstone_anti_xray.webhook import WebhookNotifier
from endstone_anti_xray.workers import ShardedWorkerPool


class AntiXrayService:
    """Detection pipeline; the host only calls handle() and the lifecycle methods"""

    def __init__(
        self,
        context: AntiXrayContext,
        ledger: Ledger,
        online_players: Callable[[], Iterable],
        run_on_main: Callable[[Callable[[], None]], Any],
        inventory_provider: Optional[Callable[[str], Optional[str]]] = None,
        notifier: Optional[WebhookNotifier] = None,
    ):
        self.context = context
        self.ledger = ledger
        self.run_on_main = run_on_main
        performance = context.settings.performance

        self.tracker = SlidingWindowTracker(context)
        self.gate = PlacementProvenanceGate(context, ledger)
        self.notifier = notifier or WebhookNotifier(context)
        self.dispatcher = AlertDispatcher(
            context,
            online_players,
            webhook_submit=self.notifier.submit,
            inventory_provider=inventory_provider,
        )
        self.workers = ShardedWorkerPool(
            context.logger,
            workers=performance.detection_workers,
            max_pending=performance.detection_queue_size,
        )
        self.cleanup = CleanupScheduler(context, self.tracker, self.notifier, ledger)

    def start(self) -> None:
        self.workers.start()
        self.cleanup.start()

    def shutdown(self) -> None:
        """Stop background work, giving queued tasks a bounded grace period."""
        grace = self.context.settings.performance.shutdown_grace_seconds
        self.cleanup.stop()
        self.workers.shutdown(grace)
        self.notifier.shutdown(grace)
        try:
            self.ledger.flush_to_durable_storage()
        except Exception as e:
            self.context.logger.error(f"[Ledger] Final sync failed: {str(e)}")

    def reload(self, settings: AntiXraySettings) -> None:
        self.context.swap_settings(settings)
        self.context.logger.info(
            f"{AntiXrayContext.LOG_TAG}Configured to track {len(settings.tracked_blocks)} blocks"
        )

    def swap_ledger(self, ledger: Ledger) -> None:
        """Point the gate and the cleanup cycle at a new ledger backend."""
        self.ledger = ledger
        self.gate.ledger = ledger
        self.cleanup.ledger = ledger

    def handle(self, message) -> bool:
        """Route one inbound message; returns True when it was accepted."""
        if isinstance(message, BreakOccurred):
            return self.on_break(message)
        if isinstance(message, PlacementOccurred):
            return self.gate.register_placement(message)
        if isinstance(message, PlayerConnected):
            self.dispatcher.connect(message.player.unique_id, message.receives_alerts)
            return True
        if isinstance(message, PlayerDisconnected):
            self.on_disconnect(message)
            return True
        raise TypeError(f"Unsupported message type: {type(message).__name__}")

    def on_break(self, event: BreakOccurred) -> bool:
        if event.block_id not in self.context.settings.tracked_blocks:
            return False
        session = self.tracker.session(event.player.unique_id)
        return self.workers.submit(event.player.unique_id, lambda: self.process_break(event, session))

    def process_break(self, event: BreakOccurred, session: Optional[int] = None) -> Optional[AlertEvent]:
        """Ledger check and window update; runs on a detection worker."""
        if not self.gate.admit(event):
            return None
        alert = self.tracker.record_break(event.player, event.block_id, event.position, session=session)
        if alert is not None:
            self.run_on_main(lambda: self.dispatcher.dispatch(alert))
        return alert

    def on_disconnect(self, message: PlayerDisconnected) -> None:
        player_id = message.player.unique_id
        self.context.debug(f"Player {message.player.name} disconnected, cleaning up")
        self.dispatcher.disconnect(player_id)
        # Breaks still queued from this session are skipped by their session number
        self.tracker.forget_player(player_id)

    def status(self) -> Dict[str, int]:
        return {
            "tracked_blocks": len(self.context.settings.tracked_blocks),
            "tracked_players": self.tracker.tracked_player_count(),
            "moderators_cached": len(self.dispatcher.permissions),
            "webhook_messages": len(self.notifier),
            "pending_tasks": self.workers.pending(),
            "dropped_tasks": self.workers.dropped,
        }
