import unittest
from datetime import datetime, timezone

from rental_vouchers.services.time_windows import (
    duration_hours,
    elapsed_hours,
    iter_hour_segments,
    overlap_hours,
    weekday_index,
    within_days,
    within_slots,
)


MORNING = [{"start_hour": 0, "end_hour": 10}]
OVERNIGHT = [{"start_hour": 22, "end_hour": 6}]


class TestOverlapHours(unittest.TestCase):
    def test_partial_overlap_same_day(self):
        hours = overlap_hours(datetime(2025, 1, 1, 8, 0), datetime(2025, 1, 1, 12, 0), MORNING)
        self.assertAlmostEqual(hours, 2.0)

    def test_fractional_overlap_is_not_rounded(self):
        hours = overlap_hours(datetime(2025, 1, 1, 8, 30), datetime(2025, 1, 1, 9, 15), [{"start_hour": 8, "end_hour": 10}])
        self.assertAlmostEqual(hours, 0.75)

    def test_overnight_slot_wraps_to_next_day(self):
        hours = overlap_hours(datetime(2025, 1, 1, 23, 0), datetime(2025, 1, 2, 3, 0), OVERNIGHT)
        self.assertAlmostEqual(hours, 4.0)

    def test_overnight_slot_opened_the_previous_evening(self):
        hours = overlap_hours(datetime(2025, 1, 2, 1, 0), datetime(2025, 1, 2, 5, 0), OVERNIGHT)
        self.assertAlmostEqual(hours, 4.0)

    def test_equal_bounds_slot_contributes_nothing(self):
        hours = overlap_hours(datetime(2025, 1, 1, 0, 0), datetime(2025, 1, 1, 23, 0), [{"start_hour": 5, "end_hour": 5}])
        self.assertEqual(hours, 0.0)

    def test_multi_day_booking_counts_every_day(self):
        hours = overlap_hours(datetime(2025, 1, 1, 0, 0), datetime(2025, 1, 3, 0, 0), [{"start_hour": 8, "end_hour": 10}])
        self.assertAlmostEqual(hours, 4.0)

    def test_aware_datetimes_are_projected_to_local_time(self):
        # 00:00-04:00 UTC is 08:00-12:00 in Kuala Lumpur
        start = datetime(2025, 1, 1, 0, 0, tzinfo=timezone.utc)
        end = datetime(2025, 1, 1, 4, 0, tzinfo=timezone.utc)
        self.assertAlmostEqual(overlap_hours(start, end, MORNING), 2.0)

    def test_empty_or_inverted_window(self):
        self.assertEqual(overlap_hours(datetime(2025, 1, 1, 12), datetime(2025, 1, 1, 8), MORNING), 0.0)
        self.assertEqual(overlap_hours(datetime(2025, 1, 1, 8), datetime(2025, 1, 1, 12), []), 0.0)


class TestSlotAndDayChecks(unittest.TestCase):
    def test_within_slots_requires_a_full_hour(self):
        self.assertTrue(within_slots(datetime(2025, 1, 1, 8), datetime(2025, 1, 1, 12), MORNING))
        self.assertFalse(within_slots(datetime(2025, 1, 1, 9, 30), datetime(2025, 1, 1, 12), MORNING))

    def test_within_slots_without_slots(self):
        self.assertTrue(within_slots(datetime(2025, 1, 1, 14), datetime(2025, 1, 1, 16), None))

    def test_within_days_checks_every_touched_day(self):
        weekdays = [1, 2, 3, 4, 5]
        # Wednesday into Thursday
        self.assertTrue(within_days(datetime(2025, 1, 1, 20), datetime(2025, 1, 2, 2), weekdays))
        # Friday night into Saturday
        self.assertFalse(within_days(datetime(2025, 1, 3, 20), datetime(2025, 1, 4, 2), weekdays))
        self.assertTrue(within_days(datetime(2025, 1, 4, 20), datetime(2025, 1, 5, 2), []))

    def test_within_days_booking_ending_at_midnight(self):
        # Monday 10:00 to Tuesday 00:00 only touches Monday
        self.assertTrue(within_days(datetime(2025, 1, 6, 10), datetime(2025, 1, 7, 0), [1]))
        self.assertFalse(within_days(datetime(2025, 1, 6, 10), datetime(2025, 1, 7, 0, 30), [1]))

    def test_weekday_index_starts_on_sunday(self):
        self.assertEqual(weekday_index(datetime(2025, 1, 5, 12)), 0)
        self.assertEqual(weekday_index(datetime(2025, 1, 1, 12)), 3)
        self.assertEqual(weekday_index(datetime(2025, 1, 4, 12)), 6)


class TestDurations(unittest.TestCase):
    def test_duration_hours_rounds_up(self):
        self.assertEqual(duration_hours(datetime(2025, 1, 1, 8, 0), datetime(2025, 1, 1, 9, 1)), 2)
        self.assertEqual(duration_hours(datetime(2025, 1, 1, 8, 0), datetime(2025, 1, 1, 12, 0)), 4)
        self.assertEqual(duration_hours(datetime(2025, 1, 1, 12, 0), datetime(2025, 1, 1, 8, 0)), 0)

    def test_elapsed_hours_is_fractional(self):
        self.assertAlmostEqual(elapsed_hours(datetime(2025, 1, 1, 8, 0), datetime(2025, 1, 1, 9, 30)), 1.5)

    def test_hour_segments_split_on_wall_clock_boundaries(self):
        segments = list(iter_hour_segments(datetime(2025, 1, 1, 7, 30), datetime(2025, 1, 1, 9, 15)))
        self.assertEqual(segments, [(7, 0.5), (8, 1.0), (9, 0.25)])


if __name__ == "__main__":
    unittest.main()
