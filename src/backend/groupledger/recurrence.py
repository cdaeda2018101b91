"""
Renewal of recurring expenses.

A recurring expense whose date has been reached is renewed by creating the
next occurrence and marking the original as already recurred. Only one
occurrence is produced per run; if the new occurrence is itself already
due it is renewed by the following run.
"""

import logging
import uuid
from datetime import datetime

from .dates import add_days, add_years, day_offset, days_in_month
from .errors import InvalidInterval
from .interval import Interval, IntervalType, decode_interval
from .models import DocumentPath, Expense, Snapshot, utcnow
from .services import DocumentStore

__all__ = [
    "next_occurrence",
    "is_due",
    "renew_expense",
    "check_recurring_for_group",
    "check_recurring",
]

logger = logging.getLogger(__name__)


def next_occurrence(date: datetime, interval: Interval) -> datetime:
    """Date of the occurrence following one on the given date."""
    if interval.type is IntervalType.DAY:
        return add_days(date, interval.magnitude)
    if interval.type is IntervalType.WEEK:
        return add_days(date, 7 * interval.magnitude)
    if interval.type is IntervalType.MONTH:
        new_date = date
        for _ in range(interval.magnitude):
            # Zero-based month, as days_in_month expects
            new_date = add_days(new_date, days_in_month(new_date.month - 1, new_date.year))
        return new_date
    return add_years(date, interval.magnitude)


def is_due(expense: Expense, now: datetime) -> bool:
    """A recurring, not yet renewed expense dated less than a day from now."""
    if not expense.recurring or expense.already_recurred or expense.date is None:
        return False
    return day_offset(expense.date, now) < 1


def renew_expense(store: DocumentStore, snapshot: Snapshot) -> DocumentPath:
    """
    Create the next occurrence of an expense and freeze the original.
    Both writes share the group's partition and are committed together.
    """
    expense = Expense.from_data(snapshot.data)
    interval = decode_interval(expense.recurring_interval)

    successor = Expense(
        name=expense.name,
        date=next_occurrence(expense.date, interval),
        cost=expense.cost,
        user_id=expense.user_id,
        user_name=expense.user_name,
        recurring=True,
        recurring_interval=expense.recurring_interval,
        already_recurred=False,
    )
    successor_path = DocumentPath(snapshot.path.collection_path + "/" + uuid.uuid4().hex)

    store.commit(
        [
            ("create", successor_path, successor.to_data()),
            ("merge", snapshot.path, {"alreadyRecurred": True}),
        ]
    )
    logger.info(
        "Renewed expense %s as %s dated %s",
        snapshot.id,
        successor_path.id,
        successor.date.isoformat(),
    )
    return successor_path


def check_recurring_for_group(
    store: DocumentStore, group: Snapshot, now: datetime | None = None
) -> int:
    """Renew the due expenses of one group. Returns how many were renewed."""
    now = now or utcnow()
    group_name = group.get("name")
    if group_name is None:
        logger.warning("Invalid data for group %s: group name is undefined.", group.id)

    renewed = 0
    for snapshot in store.list_collection(f"{group.path}/expenses"):
        try:
            expense = Expense.from_data(snapshot.data)
            if not is_due(expense, now):
                continue
            renew_expense(store, snapshot)
            renewed += 1
        except InvalidInterval as e:
            logger.error("Skipping expense %s in group %s: %s", snapshot.id, group.id, e)
        except Exception as e:  # pylint: disable=broad-exception-caught
            logger.error(
                "Failed to renew expense %s in group %s: %s", snapshot.id, group.id, e
            )

    logger.info("Group %s: renewed %d recurring expenses.", group_name, renewed)
    return renewed


def check_recurring(store: DocumentStore, now: datetime | None = None) -> int:
    """Renew due expenses across all groups."""
    now = now or utcnow()
    total = 0
    for group in store.list_collection("groups"):
        try:
            total += check_recurring_for_group(store, group, now)
        except Exception as e:  # pylint: disable=broad-exception-caught
            logger.error("Failed to check recurring expenses of group %s: %s", group.id, e)
    return total
