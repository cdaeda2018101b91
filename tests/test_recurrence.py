"""
Tests for recurring expense renewal.
"""

import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from fakes import LedgerHarness
from groupledger.interval import Interval, IntervalType, encode_interval
from groupledger.jobs import check_recurring_and_balance
from groupledger.membership import Principal, create_group
from groupledger.models import DocumentPath, Expense
from groupledger.recurrence import check_recurring, is_due, next_occurrence


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


NOW = utc(2024, 6, 15, 12)


class TestNextOccurrence(unittest.TestCase):
    """Test suite for next_occurrence."""

    def test_day(self):
        self.assertEqual(
            next_occurrence(utc(2024, 6, 1, 9), Interval(IntervalType.DAY, 7)),
            utc(2024, 6, 8, 9),
        )

    def test_week(self):
        self.assertEqual(
            next_occurrence(utc(2024, 6, 1), Interval(IntervalType.WEEK, 2)),
            utc(2024, 6, 15),
        )

    def test_month_steps_by_current_month_length(self):
        """Jan 31 + 2 months: 31 days (January), then 31 days (March)."""
        self.assertEqual(
            next_occurrence(utc(2023, 1, 31), Interval(IntervalType.MONTH, 2)),
            utc(2023, 4, 3),
        )
        self.assertEqual(
            next_occurrence(utc(2024, 1, 31), Interval(IntervalType.MONTH, 2)),
            utc(2024, 4, 2),
        )

    def test_month_single_step_february(self):
        self.assertEqual(
            next_occurrence(utc(2023, 2, 10), Interval(IntervalType.MONTH, 1)),
            utc(2023, 3, 10),
        )

    def test_year(self):
        self.assertEqual(
            next_occurrence(utc(2024, 2, 29), Interval(IntervalType.YEAR, 1)),
            utc(2025, 3, 1),
        )
        self.assertEqual(
            next_occurrence(utc(2022, 11, 5), Interval(IntervalType.YEAR, 3)),
            utc(2025, 11, 5),
        )


class TestIsDue(unittest.TestCase):
    def expense(self, date, **kwargs):
        return Expense("Rent", date, 10, "u1", recurring=True, **kwargs)

    def test_less_than_one_day_ahead_is_due(self):
        self.assertTrue(is_due(self.expense(NOW + timedelta(hours=23)), NOW))
        self.assertTrue(is_due(self.expense(NOW - timedelta(days=3)), NOW))

    def test_one_day_ahead_is_not_due(self):
        self.assertFalse(is_due(self.expense(NOW + timedelta(days=1)), NOW))

    def test_frozen_and_non_recurring(self):
        self.assertFalse(is_due(self.expense(NOW, already_recurred=True), NOW))
        self.assertFalse(is_due(Expense("Rent", NOW, 10, "u1"), NOW))


class TestCheckRecurring(unittest.TestCase):
    """Test suite for renewing expenses across groups."""

    def setUp(self):
        self.harness = LedgerHarness(publish_changes=False)
        self.store = self.harness.store
        self.store.create(DocumentPath("groups/g1"), {"name": "Flat"})

    def add_expense(self, expense_id, date, interval, **fields):
        data = {
            "name": expense_id,
            "date": date,
            "cost": 25,
            "userId": "u1",
            "userName": "Una",
            "recurring": True,
            "recurringInterval": interval,
            "alreadyRecurred": False,
        }
        data.update(fields)
        self.store.create(DocumentPath(f"groups/g1/expenses/{expense_id}"), data)

    def expenses(self):
        return {s.id: s.data for s in self.store.list_collection("groups/g1/expenses")}

    def test_renews_due_expense(self):
        """Ten days old, every 7 days: renewed to 3 days ago, original frozen."""
        start = NOW - timedelta(days=10)
        self.add_expense("rent", start, encode_interval(IntervalType.DAY, 7))

        self.assertEqual(check_recurring(self.store, NOW), 1)

        expenses = self.expenses()
        self.assertEqual(len(expenses), 2)
        self.assertTrue(expenses.pop("rent")["alreadyRecurred"])
        (successor,) = expenses.values()
        self.assertEqual(successor["date"], NOW - timedelta(days=3))
        self.assertFalse(successor["alreadyRecurred"])
        self.assertTrue(successor["recurring"])
        self.assertEqual(successor["cost"], 25)
        self.assertEqual(successor["userId"], "u1")
        self.assertEqual(successor["userName"], "Una")
        self.assertEqual(successor["recurringInterval"], encode_interval(IntervalType.DAY, 7))

    def test_one_occurrence_per_run(self):
        """A backlog is worked off one occurrence per run."""
        self.add_expense("gym", NOW - timedelta(days=20), encode_interval(IntervalType.WEEK, 1))

        self.assertEqual(check_recurring(self.store, NOW), 1)
        self.assertEqual(len(self.expenses()), 2)

        self.assertEqual(check_recurring(self.store, NOW), 1)
        self.assertEqual(check_recurring(self.store, NOW), 1)
        # Dates: -20, -13, -6, +1; the last is not due yet
        self.assertEqual(check_recurring(self.store, NOW), 0)
        self.assertEqual(len(self.expenses()), 4)

    def test_skips_not_due_frozen_and_plain(self):
        interval = encode_interval(IntervalType.DAY, 1)
        self.add_expense("future", NOW + timedelta(days=2), interval)
        self.add_expense("frozen", NOW - timedelta(days=2), interval, alreadyRecurred=True)
        self.add_expense("plain", NOW - timedelta(days=2), interval, recurring=False)

        self.assertEqual(check_recurring(self.store, NOW), 0)
        self.assertEqual(len(self.expenses()), 3)

    def test_invalid_interval_does_not_stop_the_group(self):
        self.add_expense("broken", NOW - timedelta(days=2), 7 << 29)
        self.add_expense("ok", NOW - timedelta(days=2), encode_interval(IntervalType.DAY, 1))

        self.assertEqual(check_recurring(self.store, NOW), 1)

        expenses = self.expenses()
        self.assertFalse(expenses["broken"]["alreadyRecurred"])
        self.assertTrue(expenses["ok"]["alreadyRecurred"])

    def test_failing_group_does_not_stop_the_job(self):
        self.store.create(DocumentPath("groups/g2"), {"name": "Other"})
        self.add_expense("rent", NOW - timedelta(days=1), encode_interval(IntervalType.DAY, 1))

        original = self.store.list_collection

        def flaky_list(collection_path):
            if collection_path == "groups/g2/expenses":
                raise RuntimeError("table unavailable")
            return original(collection_path)

        with patch.object(self.store, "list_collection", side_effect=flaky_list):
            self.assertEqual(check_recurring(self.store, NOW), 1)


class TestRenewalPropagation(unittest.TestCase):
    """Renewed expenses flow into the totals like any other expense."""

    def test_successor_is_counted_and_freeze_is_not(self):
        harness = LedgerHarness()
        store = harness.store
        group_id = create_group(store, Principal("una", "Una"), "Flat")
        store.create(
            DocumentPath(f"groups/{group_id}/expenses/rent"),
            {
                "name": "Rent",
                "date": NOW - timedelta(days=10),
                "cost": 25,
                "userId": "una",
                "userName": "Una",
                "recurring": True,
                "recurringInterval": encode_interval(IntervalType.DAY, 7),
                "alreadyRecurred": False,
            },
        )
        harness.drain()
        self.assertEqual(harness.data(f"groups/{group_id}")["totalExpenses"], 25)

        self.assertEqual(check_recurring(store, NOW), 1)
        harness.drain()

        self.assertEqual(harness.data(f"groups/{group_id}")["totalExpenses"], 50)
        self.assertEqual(
            harness.data(f"groups/{group_id}/members/una")["totalExpenses"], 50
        )
        user = harness.data("users/una")
        self.assertEqual(user["totalExpenses"], 50)
        self.assertEqual(user["achievementProgress"]["expensesCount"], 2)

        mirrors = {s.id: s.data for s in store.list_collection("users/una/expenses")}
        self.assertEqual(len(mirrors), 2)
        self.assertEqual(mirrors.pop("rent")["cost"], 25)
        (successor,) = mirrors.values()
        self.assertEqual(successor["date"], NOW - timedelta(days=3))
        self.assertEqual(successor["groupName"], "Flat")


class TestScheduledJob(unittest.TestCase):
    def test_runs_both_passes(self):
        harness = LedgerHarness(publish_changes=False)
        with patch("groupledger.jobs.check_recurring", return_value=2) as recurring, patch(
            "groupledger.jobs.check_balances", return_value=1
        ) as balances:
            self.assertEqual(check_recurring_and_balance(harness.store, NOW), (2, 1))
        recurring.assert_called_once_with(harness.store, NOW)
        balances.assert_called_once_with(harness.store, NOW)


if __name__ == "__main__":
    unittest.main()
