"""
Discord webhook notifier for Anti-Xray
Mirrors staff alerts to a webhook. Alerts for the same player and block type
are coalesced into one message that is edited in place while the escalation
continues.
"""

from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Set, Tuple
import json
import threading
import time
import urllib.error
import urllib.request

from endstone_anti_xray.context import AntiXrayContext
from endstone_anti_xray.events import BlockPosition
from endstone_anti_xray.tracked_blocks import format_block_name
from endstone_anti_xray.tracker import AlertEvent


DISCORD_WEBHOOK_BASE = "https://discord.com/api/webhooks/"


@dataclass
class WebhookCacheEntry:
    """Remote message for one (player, block type) conversation"""

    message_id: str = ""
    last_updated: float = 0.0
    positions: List[BlockPosition] = field(default_factory=list)


def resolve_webhook_url(url: str) -> str:
    """Accept a full URL or the "<id>/<token>" part of a Discord webhook."""
    url = url.strip()
    if url.startswith("http://") or url.startswith("https://"):
        return url.rstrip("/")
    return DISCORD_WEBHOOK_BASE + url.strip("/")


class WebhookNotifier:
    """Creates, updates and expires webhook messages"""

    LOG_TAG = "[Webhook] "
    CACHE_TTL_SECONDS = 30 * 60
    MAX_ATTEMPTS = 3
    RETRY_DELAY_SECONDS = 2.0
    REQUEST_TIMEOUT = 10
    EMBED_COLOR = 15158332
    FIELD_LIMIT = 1024
    WORKERS = 2

    UPDATED = "updated"
    NOT_FOUND = "not-found"
    FAILED = "failed"

    def __init__(
        self,
        context: AntiXrayContext,
        retry_delay: float = RETRY_DELAY_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.context = context
        self.retry_delay = retry_delay
        self.sleep = sleep
        self._cache: Dict[str, WebhookCacheEntry] = {}
        self._cache_lock = threading.Lock()
        self._key_locks: Dict[str, threading.Lock] = {}
        self._executor: Optional[ThreadPoolExecutor] = None
        self._pending: Set[Future] = set()
        self._pending_lock = threading.Lock()

    def submit(self, alert: AlertEvent, inventory: Optional[str] = None) -> Future:
        """Queue an alert on the webhook pool without blocking the caller."""
        with self._pending_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.WORKERS, thread_name_prefix="antixray-webhook"
                )
            future = self._executor.submit(self._run, alert, inventory)
            self._pending.add(future)
        future.add_done_callback(self._discard_pending)
        return future

    def _discard_pending(self, future: Future) -> None:
        with self._pending_lock:
            self._pending.discard(future)

    def _run(self, alert: AlertEvent, inventory: Optional[str]) -> Optional[str]:
        try:
            return self.notify(alert, inventory)
        except Exception as e:
            self.context.logger.error(f"{self.LOG_TAG}Error sending X-ray alert to webhook: {str(e)}")
            return None

    def shutdown(self, grace_seconds: float = 5.0) -> None:
        """Wait up to grace_seconds for queued alerts, then drop the rest."""
        with self._pending_lock:
            executor = self._executor
            pending = list(self._pending)
            self._executor = None
        if executor is None:
            return
        _, not_done = wait(pending, timeout=grace_seconds)
        if not_done:
            self.context.logger.warning(f"{self.LOG_TAG}Discarding {len(not_done)} pending webhook alerts")
        executor.shutdown(wait=False, cancel_futures=True)

    @staticmethod
    def cache_key(alert: AlertEvent) -> str:
        return f"{alert.player.unique_id}:{alert.block_id}"

    def _lock_for(self, key: str) -> threading.Lock:
        with self._cache_lock:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._key_locks[key] = lock
            return lock

    def notify(self, alert: AlertEvent, inventory: Optional[str] = None) -> Optional[str]:
        """Create or update the remote message for this alert; returns its id."""
        webhook = self.context.settings.webhook
        if not webhook.active:
            return None
        base_url = resolve_webhook_url(webhook.url)
        key = self.cache_key(alert)

        with self._lock_for(key):
            with self._cache_lock:
                entry = self._cache.get(key)

            if entry is not None and entry.message_id and alert.continued:
                entry.positions.append(alert.position)
                payload = self.build_payload(alert, entry.positions, inventory)
                self.context.debug(f"Updating existing webhook message (ID: {entry.message_id})")
                outcome = self.update_message(base_url, entry.message_id, payload)
                with self._cache_lock:
                    if outcome == self.NOT_FOUND:
                        if self._cache.get(key) is entry:
                            del self._cache[key]
                        self.context.debug(f"Removed message ID {entry.message_id} from cache for key: {key}")
                        return None
                    entry.last_updated = self.context.now()
                return entry.message_id

            # New escalation cycle, or nothing cached for this key yet
            with self._cache_lock:
                self._cache.pop(key, None)
            positions = [alert.position]
            payload = self.build_payload(alert, positions, inventory)
            self.context.debug("Sending new webhook message")
            message_id = self.create_message(base_url, payload)
            if message_id:
                with self._cache_lock:
                    self._cache[key] = WebhookCacheEntry(message_id, self.context.now(), positions)
                self.context.debug(f"Cached webhook message ID: {message_id} for key: {key}")
            return message_id

    def sweep(self, now: Optional[float] = None) -> int:
        """Purge conversations idle for longer than the cache TTL."""
        if now is None:
            now = self.context.now()
        with self._cache_lock:
            expired = [
                key for key, entry in self._cache.items()
                if now - entry.last_updated > self.CACHE_TTL_SECONDS
            ]
            for key in expired:
                del self._cache[key]
            for key in list(self._key_locks):
                if key not in self._cache and not self._key_locks[key].locked():
                    del self._key_locks[key]
        if expired:
            self.context.debug(f"Cleaned up {len(expired)} webhook message cache entries")
        return len(expired)

    def cached_entry(self, player_id: str, block_id: str) -> Optional[WebhookCacheEntry]:
        with self._cache_lock:
            return self._cache.get(f"{player_id}:{block_id}")

    def __len__(self) -> int:
        with self._cache_lock:
            return len(self._cache)

    def build_payload(
        self,
        alert: AlertEvent,
        positions: List[BlockPosition],
        inventory: Optional[str] = None,
    ) -> Dict[str, Any]:
        block_name = format_block_name(alert.block_id)
        detected = datetime.fromtimestamp(alert.detected_at)
        continued = f"Yes (Alert #{alert.consecutive_alert_count})" if alert.continued else "No"

        return {
            "embeds": [
                {
                    "title": "X-ray Alert",
                    "description": (
                        f"Player {alert.player.name} has mined {alert.count} {block_name} "
                        f"in {alert.time_window_minutes} minutes!"
                    ),
                    "color": self.EMBED_COLOR,
                    "fields": [
                        {"name": "Continued Alert", "value": continued, "inline": True},
                        {"name": "Player", "value": alert.player.name, "inline": True},
                        {"name": "Player UUID", "value": alert.player.unique_id, "inline": True},
                        {"name": "Block ID", "value": alert.block_id, "inline": True},
                        {"name": "Detection Time", "value": detected.strftime("%Y-%m-%d %H:%M:%S"), "inline": False},
                        {"name": "Locations", "value": self._format_positions(positions), "inline": False},
                        {"name": "Player Inventory", "value": self._format_inventory(inventory), "inline": False},
                    ],
                    "timestamp": datetime.fromtimestamp(alert.detected_at, tz=timezone.utc).isoformat(),
                    "footer": {"text": f"EventAntiXray v{self.context.version}"},
                }
            ]
        }

    def _format_positions(self, positions: List[BlockPosition]) -> str:
        lines = [f"{pos.as_text()} ({pos.world})" for pos in positions]
        skipped = 0
        while lines:
            header = f"(+{skipped} earlier)\n" if skipped else ""
            value = "```\n" + header + "\n".join(lines) + "\n```"
            if len(value) <= self.FIELD_LIMIT:
                return value
            lines.pop(0)
            skipped += 1
        return "None"

    def _format_inventory(self, inventory: Optional[str]) -> str:
        if not inventory:
            return "Unavailable"
        value = f"```\n{inventory}\n```"
        if len(value) > self.FIELD_LIMIT:
            value = f"```\n{inventory[: self.FIELD_LIMIT - 12]}\n...```"
        return value

    def _request(self, method: str, url: str, payload: Dict[str, Any]) -> Tuple[int, str]:
        data = json.dumps(payload).encode("utf-8")
        req = urllib.request.Request(url, data=data, method=method)
        req.add_header("Content-Type", "application/json")
        req.add_header("User-Agent", "EventAntiXray-Webhook")
        try:
            with urllib.request.urlopen(req, timeout=self.REQUEST_TIMEOUT) as response:
                return response.status, response.read().decode("utf-8", errors="replace")
        except urllib.error.HTTPError as e:
            return e.code, e.read().decode("utf-8", errors="replace")

    def create_message(self, base_url: str, payload: Dict[str, Any]) -> Optional[str]:
        """POST a new message; returns its id or None after all attempts failed."""
        separator = "&" if "?" in base_url else "?"
        url = f"{base_url}{separator}wait=true"

        for attempt in range(1, self.MAX_ATTEMPTS + 1):
            try:
                status, body = self._request("POST", url, payload)
                if 200 <= status < 300:
                    message_id = str(json.loads(body).get("id", ""))
                    if message_id:
                        self.context.logger.info(
                            f"{self.LOG_TAG}Successfully sent X-ray alert to webhook, message ID: {message_id}"
                        )
                        return message_id
                    self.context.logger.error(f"{self.LOG_TAG}Webhook response did not contain a message id")
                else:
                    self.context.logger.error(
                        f"{self.LOG_TAG}Failed to send webhook. Response code: {status}. Error: {body[:200]}"
                    )
            except (urllib.error.URLError, OSError, ValueError) as e:
                self.context.logger.error(
                    f"{self.LOG_TAG}Error sending new webhook message, attempt {attempt}: {str(e)}"
                )
            if attempt < self.MAX_ATTEMPTS:
                self.sleep(self.retry_delay)

        self.context.logger.error(f"{self.LOG_TAG}Failed to send webhook after {self.MAX_ATTEMPTS} attempts")
        return None

    def update_message(self, base_url: str, message_id: str, payload: Dict[str, Any]) -> str:
        """PATCH an existing message; returns UPDATED, NOT_FOUND or FAILED."""
        url = f"{base_url.split('?', 1)[0]}/messages/{message_id}"

        for attempt in range(1, self.MAX_ATTEMPTS + 1):
            try:
                status, body = self._request("PATCH", url, payload)
                if 200 <= status < 300:
                    self.context.logger.info(f"{self.LOG_TAG}Successfully updated X-ray alert webhook message")
                    return self.UPDATED
                if status == 404:
                    self.context.logger.warning(f"{self.LOG_TAG}Webhook message not found (ID: {message_id})")
                    return self.NOT_FOUND
                self.context.logger.error(
                    f"{self.LOG_TAG}Failed to update webhook. Response code: {status}. Error: {body[:200]}"
                )
            except (urllib.error.URLError, OSError) as e:
                self.context.logger.error(
                    f"{self.LOG_TAG}Error updating webhook message, attempt {attempt}: {str(e)}"
                )
            if attempt < self.MAX_ATTEMPTS:
                self.sleep(self.retry_delay)

        self.context.logger.error(f"{self.LOG_TAG}Failed to update webhook after {self.MAX_ATTEMPTS} attempts")
        return self.FAILED
