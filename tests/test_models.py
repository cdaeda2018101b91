"""
Tests for document paths, change events and record defaults.
"""

import unittest
from datetime import datetime, timedelta, timezone

from groupledger.models import (
    AchievementProgress,
    Change,
    ChangeKind,
    DocumentPath,
    Expense,
    User,
    UserGroup,
    parse_timestamp,
)


class TestDocumentPath(unittest.TestCase):
    """Test suite for DocumentPath."""

    def test_nested_path(self):
        path = DocumentPath("groups/g1/expenses/e1")
        self.assertEqual(path.id, "e1")
        self.assertEqual(path.collection, "expenses")
        self.assertEqual(path.parent, DocumentPath("groups/g1"))
        self.assertEqual(path.collection_path, "groups/g1/expenses")

    def test_root_has_no_parent(self):
        self.assertIsNone(DocumentPath("users/u1").parent)

    def test_child(self):
        self.assertEqual(
            DocumentPath.of("groups", "g1").child("members", "u1"),
            DocumentPath("groups/g1/members/u1"),
        )

    def test_rejects_collection_path(self):
        with self.assertRaises(ValueError):
            DocumentPath("groups/g1/expenses")


class TestChange(unittest.TestCase):
    """Test suite for Change."""

    def test_kind(self):
        path = DocumentPath("groups/g1")
        self.assertEqual(Change(path, None, {"a": 1}).kind, ChangeKind.CREATE)
        self.assertEqual(Change(path, {"a": 1}, None).kind, ChangeKind.DELETE)
        self.assertEqual(Change(path, {"a": 1}, {"a": 2}).kind, ChangeKind.UPDATE)

    def test_requires_a_side(self):
        with self.assertRaises(ValueError):
            Change(DocumentPath("groups/g1"), None, None)

    def test_message_keeps_timestamps_and_nesting(self):
        when = datetime(2024, 1, 31, 10, tzinfo=timezone.utc)
        change = Change(
            DocumentPath("users/u1"),
            None,
            {"latestUpdate": when, "achievementProgress": {"expensesCount": 2}},
        )

        decoded = Change.from_message(change.to_message())

        self.assertEqual(decoded.id, change.id)
        self.assertEqual(decoded.path, DocumentPath("users/u1"))
        self.assertEqual(decoded.kind, ChangeKind.CREATE)
        self.assertEqual(decoded.after.get("latestUpdate"), when)
        self.assertEqual(decoded.after.get("achievementProgress"), {"expensesCount": 2})


class TestRecordDefaults(unittest.TestCase):
    """Missing fields and records read as zero values."""

    def test_missing_progress_is_zero(self):
        progress = AchievementProgress.from_data(None)
        self.assertEqual(
            (progress.expenses_count, progress.payments_count, progress.max_negative_balance),
            (0, 0, 0),
        )

    def test_missing_user_is_zero(self):
        user = User.from_data(None)
        self.assertEqual(user.total_expenses, 0)
        self.assertEqual(user.achievement_progress.expenses_count, 0)

    def test_user_round_trip(self):
        data = {
            "totalExpenses": 10,
            "totalPayments": 4,
            "numGroups": 2,
            "achievementProgress": {
                "expensesCount": 3,
                "paymentsCount": 1,
                "maxNegativeBalance": -6,
            },
        }
        self.assertEqual(User.from_data(data).to_data(), data)

    def test_expense_flags_default_false(self):
        expense = Expense.from_data({"name": "Rent", "cost": 500, "userId": "u1"})
        self.assertFalse(expense.recurring)
        self.assertFalse(expense.already_recurred)
        self.assertIsNone(expense.date)

    def test_personal_balance(self):
        user_group = UserGroup.from_data(
            {"personalPayments": 100, "totalExpenses": 200, "numMembers": 2}
        )
        self.assertEqual(user_group.personal_balance(), 0)


class TestParseTimestamp(unittest.TestCase):
    def test_naive_is_utc(self):
        self.assertEqual(
            parse_timestamp(datetime(2024, 1, 1)),
            datetime(2024, 1, 1, tzinfo=timezone.utc),
        )

    def test_iso_string_with_offset(self):
        self.assertEqual(
            parse_timestamp("2024-01-01T02:00:00+02:00"),
            datetime(2024, 1, 1, tzinfo=timezone.utc),
        )

    def test_other_zone_converted(self):
        berlin = timezone(timedelta(hours=1))
        self.assertEqual(
            parse_timestamp(datetime(2024, 1, 1, 1, tzinfo=berlin)).tzinfo, timezone.utc
        )


if __name__ == "__main__":
    unittest.main()
