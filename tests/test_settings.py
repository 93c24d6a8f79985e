import unittest

from endstone_anti_xray.settings import AntiXraySettings, build_settings

from tests.helpers import DummyLogger


class BuildSettingsTests(unittest.TestCase):
    def setUp(self):
        self.logger = DummyLogger()

    def test_empty_config_gives_defaults(self):
        settings = build_settings({}, self.logger)

        self.assertEqual(settings.general.notify_permission, "antixray.notify")
        self.assertEqual(settings.general.op_level, 2)
        self.assertEqual(settings.alerts.sound.sound_id, "note.pling")
        self.assertFalse(settings.webhook.active)
        self.assertEqual(settings.ledger.storage, "yaml")
        self.assertEqual(settings.performance.detection_workers, 4)
        self.assertFalse(settings.debug)
        self.assertGreater(len(settings.tracked_blocks), 0)
        self.assertEqual(self.logger.warnings, [])

    def test_full_config(self):
        config = {
            "general": {"notify-permission": "staff.alerts", "permission-level": 3, "op-level": 1},
            "alerts": {
                "continued-alert-prefix": "&6[Again] ",
                "sound": {
                    "sound-id": "random.orb",
                    "base-volume": 0.5,
                    "base-pitch": 0.8,
                    "volume-multiplier-per-alert": 1.2,
                    "pitch-multiplier-per-alert": 1.1,
                },
            },
            "webhook": {"enabled": True, "url": " 123/token "},
            "ledger": {"enabled": True, "mysql": {"enabled": True, "database": "mc", "user": "mc"}},
            "performance": {"detection-workers": 2, "detection-queue-size": 50, "shutdown-grace-seconds": 1.5},
            "debug": {"enabled": True},
            "tracked-blocks": [{"block-id": "minecraft:diamond_ore", "alert-threshold": 10}],
        }

        settings = build_settings(config, self.logger)

        self.assertEqual(settings.general.notify_permission, "staff.alerts")
        self.assertEqual(settings.general.permission_level, 3)
        self.assertEqual(settings.alerts.continued_alert_prefix, "&6[Again] ")
        self.assertEqual(settings.alerts.sound.sound_id, "random.orb")
        self.assertEqual(settings.alerts.sound.volume_multiplier_per_alert, 1.2)
        self.assertTrue(settings.webhook.active)
        self.assertEqual(settings.webhook.url, "123/token")
        self.assertEqual(settings.ledger.storage, "mysql")
        self.assertEqual(settings.ledger.mysql["database"], "mc")
        self.assertEqual(settings.performance.detection_queue_size, 50)
        self.assertEqual(settings.performance.shutdown_grace_seconds, 1.5)
        self.assertTrue(settings.debug)
        self.assertEqual(len(settings.tracked_blocks), 1)

    def test_invalid_values_fall_back_with_warning(self):
        config = {
            "general": {"permission-level": "high"},
            "alerts": {"sound": {"base-volume": -1}},
            "ledger": {"storage": "postgres"},
            "performance": {"detection-workers": 0},
            "webhook": "yes",
        }

        settings = build_settings(config, self.logger)

        self.assertEqual(settings.general.permission_level, 2)
        self.assertEqual(settings.alerts.sound.base_volume, 1.0)
        self.assertEqual(settings.ledger.storage, "yaml")
        self.assertEqual(settings.performance.detection_workers, 4)
        self.assertFalse(settings.webhook.enabled)
        self.assertEqual(len(self.logger.warnings), 5)

    def test_settings_are_immutable(self):
        settings = AntiXraySettings()
        with self.assertRaises(Exception):
            settings.debug = True


if __name__ == "__main__":
    unittest.main()
