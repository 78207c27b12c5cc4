import unittest
from datetime import datetime, timedelta
from types import SimpleNamespace

from calf_tracker.services.flagging import (
    FLAG_HAS_NOTES,
    FLAG_LOW_CONSUMPTION,
    FLAG_MISSED_FEEDING,
    FlagThresholds,
    consumption_level,
    flag_summary,
    should_flag,
)

NOW = datetime(2026, 3, 10, 18, 0)


def history(*consumptions, notes=None, hours_ago=1, spacing=12):
    """Feedings newest first, the newest `hours_ago` before NOW."""
    feedings = []
    for i, pct in enumerate(consumptions):
        feedings.append(SimpleNamespace(
            timestamp=NOW - timedelta(hours=hours_ago + i * spacing),
            consumption=pct,
            notes=notes if i == 0 else None,
        ))
    return feedings


class ShouldFlagTestCase(unittest.TestCase):
    def setUp(self):
        self.thresholds = FlagThresholds(feeding_count=2, low_percentage=50, missed_feeding_hours=12)

    def test_all_recent_low_is_flagged(self):
        self.assertEqual(should_flag(history(40, 30), self.thresholds, now=NOW), FLAG_LOW_CONSUMPTION)

    def test_one_good_feeding_clears_low_consumption(self):
        self.assertIsNone(should_flag(history(40, 60), self.thresholds, now=NOW))

    def test_cutoff_is_inclusive(self):
        self.assertEqual(should_flag(history(50, 50), self.thresholds, now=NOW), FLAG_LOW_CONSUMPTION)

    def test_not_enough_history(self):
        self.assertIsNone(should_flag(history(0), self.thresholds, now=NOW))
        self.assertIsNone(should_flag([], self.thresholds, now=NOW))

    def test_never_flags_short_history_for_any_count(self):
        for n in range(1, 6):
            thresholds = FlagThresholds(feeding_count=n, low_percentage=100, missed_feeding_hours=1)
            short = history(*([0] * (n - 1)), notes="sick", hours_ago=48)
            self.assertIsNone(should_flag(short, thresholds, now=NOW))

    def test_only_the_most_recent_n_count(self):
        feedings = history(25, 25, 100, 100)
        self.assertEqual(should_flag(feedings, self.thresholds, now=NOW), FLAG_LOW_CONSUMPTION)
        feedings = history(100, 25, 25)
        self.assertIsNone(should_flag(feedings, self.thresholds, now=NOW))

    def test_input_order_does_not_matter(self):
        feedings = list(reversed(history(100, 25, 25)))
        self.assertIsNone(should_flag(feedings, self.thresholds, now=NOW))

    def test_low_consumption_wins_over_notes(self):
        feedings = history(25, 0, notes="Scours")
        self.assertEqual(should_flag(feedings, self.thresholds, now=NOW), FLAG_LOW_CONSUMPTION)

    def test_latest_note_flags_good_eater(self):
        feedings = history(100, 75, notes="Coughing")
        self.assertEqual(should_flag(feedings, self.thresholds, now=NOW), FLAG_HAS_NOTES)

    def test_blank_note_is_ignored(self):
        feedings = history(100, 75, notes="   ")
        self.assertIsNone(should_flag(feedings, self.thresholds, now=NOW))

    def test_note_on_older_feeding_is_ignored(self):
        feedings = history(100, 75)
        feedings[1].notes = "Was slow yesterday"
        self.assertIsNone(should_flag(feedings, self.thresholds, now=NOW))

    def test_missed_feeding(self):
        feedings = history(100, 100, hours_ago=13)
        self.assertEqual(should_flag(feedings, self.thresholds, now=NOW), FLAG_MISSED_FEEDING)

    def test_missed_feeding_window_is_strict(self):
        feedings = history(100, 100, hours_ago=12)
        self.assertIsNone(should_flag(feedings, self.thresholds, now=NOW))

    def test_notes_win_over_missed_feeding(self):
        feedings = history(100, 100, notes="Limping", hours_ago=30)
        self.assertEqual(should_flag(feedings, self.thresholds, now=NOW), FLAG_HAS_NOTES)

    def test_missed_feeding_can_be_switched_off(self):
        thresholds = FlagThresholds(feeding_count=2, low_percentage=50, missed_feeding_hours=None)
        feedings = history(100, 100, hours_ago=72)
        self.assertIsNone(should_flag(feedings, thresholds, now=NOW))

    def test_three_feeding_window(self):
        thresholds = FlagThresholds(feeding_count=3, low_percentage=50, missed_feeding_hours=12)
        self.assertIsNone(should_flag(history(25, 25), thresholds, now=NOW))
        self.assertEqual(should_flag(history(25, 25, 0), thresholds, now=NOW), FLAG_LOW_CONSUMPTION)


class DisplayHelpersTestCase(unittest.TestCase):
    def test_consumption_levels(self):
        self.assertEqual(consumption_level(25), "low")
        self.assertEqual(consumption_level(50), "fair")
        self.assertEqual(consumption_level(75), "good")

    def test_summary(self):
        self.assertEqual(flag_summary(None), {"flag": None, "flag_label": "", "actions": []})
        summary = flag_summary(FLAG_HAS_NOTES)
        self.assertEqual(summary["flag_label"], "Has notes")
        self.assertTrue(summary["actions"])
