import unittest
from datetime import datetime, timedelta

from calf_tracker.services.protocols import (
    UNKNOWN_PROTOCOL,
    ProtocolRow,
    ProtocolTable,
    age_in_days,
    classify,
)

NOW = datetime(2026, 3, 10, 9, 30)

BASIC = [
    ProtocolRow("Colostrum", "feedings", 3, 1),
    ProtocolRow("Bottles", "days", 5, 2),
    ProtocolRow("Regular", "days", 35, 3),
]

FARM_DEFAULT = BASIC + [
    ProtocolRow("PM Only", "days", 40, 4),
    ProtocolRow("Weaned", "days", 41, 5),
]


class AgeTestCase(unittest.TestCase):
    def test_whole_days_are_floored(self):
        self.assertEqual(age_in_days(NOW - timedelta(hours=47), NOW), 1)
        self.assertEqual(age_in_days(NOW - timedelta(hours=48), NOW), 2)
        self.assertEqual(age_in_days(NOW, NOW), 0)


class ClassifyTestCase(unittest.TestCase):
    def test_new_calf_on_colostrum(self):
        born = NOW - timedelta(days=2)
        self.assertEqual(classify(born, 1, BASIC, now=NOW), "Colostrum")

    def test_feeding_threshold_met_falls_through_to_days(self):
        born = NOW - timedelta(days=2)
        self.assertEqual(classify(born, 3, BASIC, now=NOW), "Bottles")

    def test_past_every_threshold_stays_in_last_protocol(self):
        born = NOW - timedelta(days=120)
        self.assertEqual(classify(born, 200, BASIC, now=NOW), "Regular")
        self.assertEqual(classify(born, 200, FARM_DEFAULT, now=NOW), "Weaned")

    def test_day_threshold_is_strict(self):
        self.assertEqual(classify(NOW - timedelta(days=4, hours=23), 5, BASIC, now=NOW), "Bottles")
        self.assertEqual(classify(NOW - timedelta(days=5), 5, BASIC, now=NOW), "Regular")

    def test_zero_threshold_never_matches(self):
        protocols = [ProtocolRow("Skip", "days", 0), ProtocolRow("Skip too", "feedings", 0), ProtocolRow("Calf", "days", 10)]
        self.assertEqual(classify(NOW, 0, protocols, now=NOW), "Calf")

    def test_configured_order_is_kept(self):
        protocols = [ProtocolRow("Late", "days", 30, 1), ProtocolRow("Early", "days", 5, 2)]
        self.assertEqual(classify(NOW - timedelta(days=2), 0, protocols, now=NOW), "Late")

    def test_empty_list_gives_unknown(self):
        self.assertEqual(classify(NOW, 0, [], now=NOW), UNKNOWN_PROTOCOL)

    def test_same_instant_same_answer(self):
        born = NOW - timedelta(days=7, hours=3)
        first = classify(born, 6, FARM_DEFAULT, now=NOW)
        self.assertEqual(classify(born, 6, FARM_DEFAULT, now=NOW), first)

    def test_result_always_comes_from_the_list(self):
        names = {p.name for p in FARM_DEFAULT}
        for days in range(0, 60, 3):
            for count in (0, 2, 3, 50):
                self.assertIn(classify(NOW - timedelta(days=days), count, FARM_DEFAULT, now=NOW), names)

    def test_growing_older_never_moves_back(self):
        born = NOW - timedelta(days=1)
        order = [p.name for p in FARM_DEFAULT]
        for count in (0, 3, 10):
            previous = 0
            for hours in range(0, 60 * 24, 6):
                stage = classify(born, count, FARM_DEFAULT, now=NOW + timedelta(hours=hours))
                index = order.index(stage)
                self.assertGreaterEqual(index, previous)
                previous = index


class ProtocolTableTestCase(unittest.TestCase):
    def test_counts_list_every_protocol(self):
        table = ProtocolTable(BASIC)
        counts = table.counts(["Bottles", "Bottles", "Regular"])
        self.assertEqual(counts, {"Colostrum": 0, "Bottles": 2, "Regular": 1})

    def test_classify_delegates_in_order(self):
        table = ProtocolTable(BASIC)
        self.assertEqual(table.names(), ["Colostrum", "Bottles", "Regular"])
        self.assertEqual(table.classify(NOW - timedelta(days=10), 6, now=NOW), "Regular")
