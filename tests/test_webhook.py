import io
import json
import unittest
import urllib.error
from unittest.mock import MagicMock, patch

from endstone_anti_xray.events import PlayerRef
from endstone_anti_xray.tracker import AlertEvent
from endstone_anti_xray.webhook import DISCORD_WEBHOOK_BASE, WebhookNotifier, resolve_webhook_url

from tests.helpers import DIAMOND, WEBHOOK_URL, FakeClock, make_context, make_settings, position


MINER = PlayerRef("uuid-miner", "Steve")


class RecordingNotifier(WebhookNotifier):
    """Answers requests from a scripted list instead of the network"""

    def __init__(self, context, responses=None):
        super().__init__(context, retry_delay=0, sleep=lambda seconds: None)
        self.responses = list(responses or [])
        self.requests = []

    def _request(self, method, url, payload):
        self.requests.append((method, url, payload))
        if self.responses:
            response = self.responses.pop(0)
        else:
            response = (200, json.dumps({"id": str(len(self.requests))}))
        if isinstance(response, Exception):
            raise response
        return response


class WebhookNotifierTests(unittest.TestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.context = make_context(settings=make_settings(webhook_url=WEBHOOK_URL), clock=self.clock)

    def alert(self, consecutive=1, count=10, x=0):
        return AlertEvent(
            player=MINER,
            block_id=DIAMOND,
            count=count,
            time_window=1800.0,
            consecutive_alert_count=consecutive,
            position=position(x=x),
            detected_at=self.clock.current,
        )

    def test_follow_up_alert_edits_the_same_message(self):
        notifier = RecordingNotifier(self.context, [(200, '{"id": "111"}'), (200, "{}")])

        self.assertEqual(notifier.notify(self.alert()), "111")
        self.clock.advance_minutes(5)
        self.assertEqual(notifier.notify(self.alert(consecutive=2, count=15, x=9)), "111")

        methods = [method for method, _, _ in notifier.requests]
        self.assertEqual(methods, ["POST", "PATCH"])
        self.assertEqual(notifier.requests[1][1], WEBHOOK_URL + "/messages/111")
        entry = notifier.cached_entry(MINER.unique_id, DIAMOND)
        self.assertEqual(len(entry.positions), 2)
        self.assertEqual(entry.last_updated, self.clock.current)
        locations = notifier.requests[1][2]["embeds"][0]["fields"][5]["value"]
        self.assertIn("0, 12, 0 (Overworld)", locations)
        self.assertIn("9, 12, 0 (Overworld)", locations)

    def test_idle_conversation_expires_and_starts_a_new_message(self):
        notifier = RecordingNotifier(self.context)

        notifier.notify(self.alert())
        self.clock.advance_minutes(31)
        self.assertEqual(notifier.sweep(), 1)
        notifier.notify(self.alert(consecutive=2, count=15))

        methods = [method for method, _, _ in notifier.requests]
        self.assertEqual(methods, ["POST", "POST"])
        self.assertEqual(len(notifier.cached_entry(MINER.unique_id, DIAMOND).positions), 1)

    def test_sweep_keeps_recent_conversations(self):
        notifier = RecordingNotifier(self.context)
        notifier.notify(self.alert())
        self.clock.advance_minutes(29)
        self.assertEqual(notifier.sweep(), 0)
        self.assertEqual(len(notifier), 1)

    def test_fresh_cycle_creates_a_new_message(self):
        notifier = RecordingNotifier(self.context, [(200, '{"id": "1"}'), (200, '{"id": "2"}')])

        notifier.notify(self.alert())
        notifier.notify(self.alert())

        self.assertEqual([m for m, _, _ in notifier.requests], ["POST", "POST"])
        self.assertEqual(notifier.cached_entry(MINER.unique_id, DIAMOND).message_id, "2")

    def test_deleted_message_is_purged(self):
        notifier = RecordingNotifier(self.context, [(200, '{"id": "111"}'), (404, "Unknown Message")])

        notifier.notify(self.alert())
        result = notifier.notify(self.alert(consecutive=2, count=15))

        self.assertIsNone(result)
        self.assertIsNone(notifier.cached_entry(MINER.unique_id, DIAMOND))
        self.assertEqual(len(notifier.requests), 2)

        notifier.notify(self.alert(consecutive=3, count=20))
        self.assertEqual(notifier.requests[-1][0], "POST")

    def test_failed_update_keeps_entry_and_refreshes_timer(self):
        notifier = RecordingNotifier(
            self.context, [(200, '{"id": "111"}'), (500, "boom"), (502, "boom"), (503, "boom")]
        )

        notifier.notify(self.alert())
        self.clock.advance_minutes(10)
        notifier.notify(self.alert(consecutive=2, count=15))

        entry = notifier.cached_entry(MINER.unique_id, DIAMOND)
        self.assertEqual(entry.message_id, "111")
        self.assertEqual(entry.last_updated, self.clock.current)
        self.assertEqual(len(notifier.requests), 4)

    def test_creation_is_retried_three_times(self):
        sleeps = []
        notifier = RecordingNotifier(self.context, [urllib.error.URLError("down")] * 3)
        notifier.sleep = sleeps.append

        self.assertIsNone(notifier.notify(self.alert()))

        self.assertEqual(len(notifier.requests), 3)
        self.assertEqual(len(sleeps), 2)
        self.assertEqual(len(notifier), 0)
        self.assertTrue(any("after 3 attempts" in e for e in self.context.logger.errors))

    def test_creation_succeeds_on_retry(self):
        notifier = RecordingNotifier(self.context, [(500, "boom"), (200, '{"id": "42"}')])
        self.assertEqual(notifier.notify(self.alert()), "42")
        self.assertEqual(len(notifier.requests), 2)

    def test_disabled_webhook_does_nothing(self):
        self.context.swap_settings(make_settings())
        notifier = RecordingNotifier(self.context)
        self.assertIsNone(notifier.notify(self.alert()))
        self.assertEqual(notifier.requests, [])

    def test_create_asks_discord_to_wait_for_the_message(self):
        notifier = RecordingNotifier(self.context)
        notifier.notify(self.alert())
        self.assertEqual(notifier.requests[0][1], WEBHOOK_URL + "?wait=true")

    def test_submit_runs_on_the_pool(self):
        notifier = RecordingNotifier(self.context, [(200, '{"id": "77"}')])
        try:
            future = notifier.submit(self.alert(), "minecraft:diamond x3")
            self.assertEqual(future.result(timeout=5), "77")
        finally:
            notifier.shutdown(1.0)
        inventory = notifier.requests[0][2]["embeds"][0]["fields"][6]["value"]
        self.assertEqual(inventory, "```\nminecraft:diamond x3\n```")

    def test_submit_logs_unexpected_errors(self):
        notifier = RecordingNotifier(self.context, [(200, "not json")] * 3)
        try:
            self.assertIsNone(notifier.submit(self.alert()).result(timeout=5))
        finally:
            notifier.shutdown(1.0)
        self.assertTrue(self.context.logger.errors)


class PayloadTests(unittest.TestCase):
    def setUp(self):
        self.context = make_context(settings=make_settings(webhook_url=WEBHOOK_URL))
        self.notifier = WebhookNotifier(self.context)

    def alert(self, consecutive):
        return AlertEvent(MINER, DIAMOND, 15, 1800.0, consecutive, position(), 1_700_000_000.0)

    def test_payload_fields(self):
        embed = self.notifier.build_payload(self.alert(2), [position()], None)["embeds"][0]

        self.assertEqual(embed["title"], "X-ray Alert")
        self.assertEqual(embed["description"], "Player Steve has mined 15 Diamond Ore in 30 minutes!")
        self.assertEqual(embed["color"], WebhookNotifier.EMBED_COLOR)
        fields = {field["name"]: field["value"] for field in embed["fields"]}
        self.assertEqual(fields["Continued Alert"], "Yes (Alert #2)")
        self.assertEqual(fields["Player UUID"], "uuid-miner")
        self.assertEqual(fields["Block ID"], DIAMOND)
        self.assertEqual(fields["Player Inventory"], "Unavailable")
        self.assertEqual(embed["footer"]["text"], "EventAntiXray v1.0.0")
        self.assertEqual(embed["timestamp"], "2023-11-14T22:13:20+00:00")

    def test_first_alert_is_not_continued(self):
        embed = self.notifier.build_payload(self.alert(1), [position()])["embeds"][0]
        self.assertEqual(embed["fields"][0]["value"], "No")

    def test_long_location_lists_drop_oldest(self):
        positions = [position(x=i * 1000, y=-50, z=i * 1000) for i in range(100)]

        value = self.notifier._format_positions(positions)

        self.assertLessEqual(len(value), WebhookNotifier.FIELD_LIMIT)
        self.assertIn("earlier)", value)
        self.assertIn("99000, -50, 99000", value)
        self.assertNotIn("\n0, -50, 0 ", value)


class TransportTests(unittest.TestCase):
    def setUp(self):
        self.context = make_context(settings=make_settings(webhook_url=WEBHOOK_URL))
        self.notifier = WebhookNotifier(self.context, retry_delay=0, sleep=lambda seconds: None)

    @patch("endstone_anti_xray.webhook.urllib.request.urlopen")
    def test_create_message_reads_id(self, mock_urlopen):
        response = MagicMock()
        response.status = 200
        response.read.return_value = b'{"id": "999"}'
        mock_urlopen.return_value.__enter__.return_value = response

        self.assertEqual(self.notifier.create_message(WEBHOOK_URL, {"content": "x"}), "999")

        request = mock_urlopen.call_args[0][0]
        self.assertEqual(request.get_method(), "POST")
        self.assertEqual(request.full_url, WEBHOOK_URL + "?wait=true")
        self.assertEqual(json.loads(request.data), {"content": "x"})

    @patch("endstone_anti_xray.webhook.urllib.request.urlopen")
    def test_update_reports_not_found(self, mock_urlopen):
        mock_urlopen.side_effect = urllib.error.HTTPError(
            WEBHOOK_URL, 404, "Not Found", None, io.BytesIO(b'{"message": "Unknown Message"}')
        )

        outcome = self.notifier.update_message(WEBHOOK_URL, "111", {"content": "x"})

        self.assertEqual(outcome, WebhookNotifier.NOT_FOUND)
        self.assertEqual(mock_urlopen.call_count, 1)

    @patch("endstone_anti_xray.webhook.urllib.request.urlopen")
    def test_update_retries_transport_errors(self, mock_urlopen):
        mock_urlopen.side_effect = urllib.error.URLError("timed out")

        outcome = self.notifier.update_message(WEBHOOK_URL, "111", {"content": "x"})

        self.assertEqual(outcome, WebhookNotifier.FAILED)
        self.assertEqual(mock_urlopen.call_count, 3)


class ResolveUrlTests(unittest.TestCase):
    def test_full_url_is_kept(self):
        self.assertEqual(resolve_webhook_url(WEBHOOK_URL + "/"), WEBHOOK_URL)

    def test_id_and_token_are_expanded(self):
        self.assertEqual(resolve_webhook_url("123/token"), DISCORD_WEBHOOK_BASE + "123/token")


if __name__ == "__main__":
    unittest.main()
