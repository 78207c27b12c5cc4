import unittest

from calf_tracker.services.flagging import FlagThresholds
from calf_tracker.services.settings import (
    DEFAULT_NEXT_CALF_NUMBER,
    FarmSettings,
    SettingsError,
    load_settings,
    parse_setting,
)


class ParseSettingTestCase(unittest.TestCase):
    def test_integers(self):
        self.assertEqual(parse_setting("flag_percentage", " 40 "), 40)
        self.assertEqual(parse_setting("next_calf_number", "3100"), 3100)

    def test_rejects_non_numeric(self):
        with self.assertRaises(SettingsError):
            parse_setting("flag_feeding_count", "two")
        with self.assertRaises(SettingsError):
            parse_setting("flag_percentage", "")

    def test_rejects_out_of_range(self):
        with self.assertRaises(SettingsError):
            parse_setting("flag_feeding_count", "0")
        with self.assertRaises(SettingsError):
            parse_setting("flag_percentage", "101")
        with self.assertRaises(SettingsError):
            parse_setting("next_calf_number", "-5")

    def test_missed_feeding_can_be_disabled(self):
        self.assertIsNone(parse_setting("missed_feeding_hours", "off"))
        self.assertIsNone(parse_setting("missed_feeding_hours", ""))
        self.assertIsNone(parse_setting("missed_feeding_hours", None))
        self.assertEqual(parse_setting("missed_feeding_hours", "8"), 8)

    def test_unknown_key(self):
        with self.assertRaises(SettingsError):
            parse_setting("favourite_calf", "1")


class LoadSettingsTestCase(unittest.TestCase):
    def test_defaults_when_store_is_empty(self):
        settings = load_settings([])
        self.assertEqual(settings.next_calf_number, DEFAULT_NEXT_CALF_NUMBER)
        self.assertEqual(settings.thresholds, FlagThresholds())

    def test_reads_store_strings(self):
        settings = load_settings([
            ("next_calf_number", "3050"),
            ("flag_feeding_count", "3"),
            ("flag_percentage", "40"),
            ("missed_feeding_hours", "off"),
            ("theme", "dark"),
        ])
        self.assertEqual(settings.next_calf_number, 3050)
        self.assertEqual(settings.thresholds, FlagThresholds(feeding_count=3, low_percentage=40, missed_feeding_hours=None))

    def test_bad_stored_value_falls_back_to_default(self):
        with self.assertLogs("calf_tracker.services.settings", level="WARNING"):
            settings = load_settings([("flag_percentage", "NaN"), ("flag_feeding_count", "3")])
        self.assertEqual(settings.thresholds.low_percentage, 50)
        self.assertEqual(settings.thresholds.feeding_count, 3)

    def test_store_format(self):
        store = FarmSettings(thresholds=FlagThresholds(missed_feeding_hours=None)).as_store()
        self.assertEqual(store["missed_feeding_hours"], "off")
        self.assertEqual(load_settings(store.items()), FarmSettings(thresholds=FlagThresholds(missed_feeding_hours=None)))
