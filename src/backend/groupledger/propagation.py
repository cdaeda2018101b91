"""
Rules keeping denormalized totals consistent with the records they summarize.

Every rule receives the before/after state of one written document and
updates the aggregates that directly depend on it. Counter updates go
through DocumentStore.increment, so concurrent writes to sibling records
cannot overwrite each other's deltas. Each increment carries the id of the
change that caused it, so a change redelivered after a partial failure adds
its deltas only once.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable

from .errors import DocumentExists, DocumentNotFound
from .models import Change, ChangeKind, DocumentPath, User, utcnow
from .services import DocumentStore
from .triggers import TriggerRegistry

__all__ = ["rules", "ensure_user", "fan_out"]

logger = logging.getLogger(__name__)

rules = TriggerRegistry()


def ensure_user(store: DocumentStore, user_id: str) -> bool:
    """Create the zeroed user record if it does not exist yet."""
    path = DocumentPath.of("users", user_id)
    if store.exists(path):
        return False
    try:
        store.create(path, User().to_data())
    except DocumentExists:
        # Another handler created it first
        return False
    logger.info("Created user record for %s", user_id)
    return True


def fan_out(store: DocumentStore, tasks: list[Callable[[], Any]]) -> list[Any]:
    """Run tasks concurrently and wait for all; the first failure is raised."""
    if not tasks:
        return []
    workers = min(store.settings.fanout_workers, len(tasks))
    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = [executor.submit(task) for task in tasks]
        return [future.result() for future in futures]


def _amount(data: dict[str, Any] | None, field: str) -> float:
    if data is None:
        return 0
    value = data.get(field)
    return 0 if value is None else value


def _adjust_member(
    store: DocumentStore,
    change: Change,
    member_path: DocumentPath,
    field: str,
    delta: float,
) -> None:
    if delta == 0:
        return
    try:
        store.increment(member_path, {field: delta}, change_id=change.id)
    except DocumentNotFound:
        logger.warning("No member record at %s, skipping %s update.", member_path, field)


class _LeafKind:  # pylint: disable=too-few-public-methods
    """How a group-level leaf record (expense or payment) is summarized."""

    def __init__(
        self,
        collection: str,
        amount_field: str,
        total_field: str,
        mirror_fields: tuple[str, ...],
    ) -> None:
        self.collection = collection
        self.amount_field = amount_field
        self.total_field = total_field
        self.mirror_fields = mirror_fields


EXPENSES = _LeafKind("expenses", "cost", "totalExpenses", ("name", "date", "cost"))
PAYMENTS = _LeafKind("payments", "payment", "totalPayments", ("date", "payment"))


def _propagate_leaf_write(store: DocumentStore, change: Change, kind: _LeafKind) -> None:
    group_path = change.path.parent
    group = store.get(group_path)
    if not group.exists:
        logger.info("Group %s no longer exists, ignoring %r", group_path.id, change)
        return

    before = change.before.data
    after = change.after.data
    before_user = before.get("userId") if before else None
    after_user = after.get("userId") if after else None
    amount_before = _amount(before, kind.amount_field)
    amount_after = _amount(after, kind.amount_field)

    def mirror_path(user_id: str) -> DocumentPath:
        return DocumentPath.of("users", user_id, kind.collection, change.path.id)

    # User side mirror
    if after is not None:
        ensure_user(store, after_user)
        mirror = {field: after.get(field) for field in kind.mirror_fields}
        mirror["groupId"] = group_path.id
        mirror["groupName"] = group.get("name")
        store.set(mirror_path(after_user), mirror, merge=False)
    if before is not None and before_user != after_user:
        store.delete(mirror_path(before_user))

    # Member totals
    if before_user == after_user:
        _adjust_member(
            store,
            change,
            group_path.child("members", after_user),
            kind.total_field,
            amount_after - amount_before,
        )
    else:
        if before is not None:
            _adjust_member(
                store,
                change,
                group_path.child("members", before_user),
                kind.total_field,
                -amount_before,
            )
        if after is not None:
            _adjust_member(
                store,
                change,
                group_path.child("members", after_user),
                kind.total_field,
                amount_after,
            )

    # Group totals
    try:
        store.increment(
            group_path,
            {kind.total_field: amount_after - amount_before},
            {"latestUpdate": utcnow()},
            change.id,
        )
    except DocumentNotFound:
        logger.info("Group %s was deleted mid-update, ignoring.", group_path.id)


@rules.on_write("groups/{groupId}/expenses/{expenseId}")
def on_group_expenses_write(store: DocumentStore, change: Change) -> None:
    """Mirror the expense to its user and update member and group totals."""
    _propagate_leaf_write(store, change, EXPENSES)


@rules.on_write("groups/{groupId}/payments/{paymentId}")
def on_group_payments_write(store: DocumentStore, change: Change) -> None:
    """Mirror the payment to its user and update member and group totals."""
    _propagate_leaf_write(store, change, PAYMENTS)


def _update_user_totals(
    store: DocumentStore, change: Change, amount_field: str, total_field: str, count_field: str
) -> None:
    user_path = change.path.parent
    delta = _amount(change.after.data, amount_field) - _amount(
        change.before.data, amount_field
    )
    deltas: dict[str, Any] = {total_field: delta}
    if change.kind is ChangeKind.CREATE:
        # Counts only ever grow; edits and deletions do not undo them
        deltas["achievementProgress"] = {count_field: 1}

    ensure_user(store, user_path.id)
    store.increment(user_path, deltas, {"latestUpdate": utcnow()}, change.id)


@rules.on_write("users/{userId}/expenses/{expenseId}")
def on_user_expenses_write(store: DocumentStore, change: Change) -> None:
    _update_user_totals(store, change, "cost", "totalExpenses", "expensesCount")


@rules.on_write("users/{userId}/payments/{paymentId}")
def on_user_payments_write(store: DocumentStore, change: Change) -> None:
    _update_user_totals(store, change, "payment", "totalPayments", "paymentsCount")


@rules.on_create("users/{userId}/groups/{groupId}")
def on_user_groups_create(store: DocumentStore, change: Change) -> None:
    user_path = change.path.parent
    ensure_user(store, user_path.id)
    store.increment(user_path, {"numGroups": 1}, change_id=change.id)


@rules.on_delete("users/{userId}/groups/{groupId}")
def on_user_groups_delete(store: DocumentStore, change: Change) -> None:
    user_path = change.path.parent
    try:
        store.increment(user_path, {"numGroups": -1}, change_id=change.id)
    except DocumentNotFound:
        logger.info("User %s no longer exists, ignoring.", user_path.id)


@rules.on_write("groups/{groupId}/members/{memberId}")
def on_group_members_write(store: DocumentStore, change: Change) -> None:
    """Keep the member's UserGroup mirror in step with the member record."""
    group_path = change.path.parent
    user_id = change.path.id
    user_group_path = DocumentPath.of("users", user_id, "groups", group_path.id)

    if change.kind is ChangeKind.DELETE:
        store.delete(user_group_path)
        return

    group = store.get(group_path)
    if not group.exists:
        logger.info("Group %s no longer exists, ignoring %r", group_path.id, change)
        return

    ensure_user(store, user_id)
    store.set(
        user_group_path,
        {
            "name": group.get("name"),
            "personalExpenses": _amount(change.after.data, "totalExpenses"),
            "personalPayments": _amount(change.after.data, "totalPayments"),
        },
    )


def _count_members(store: DocumentStore, change: Change, delta: int) -> None:
    group_path = change.path.parent
    try:
        store.increment(
            group_path, {"numMembers": delta}, {"latestUpdate": utcnow()}, change.id
        )
    except DocumentNotFound:
        logger.info("Group %s no longer exists, ignoring %r", group_path.id, change)


@rules.on_create("groups/{groupId}/members/{memberId}")
def on_group_member_create(store: DocumentStore, change: Change) -> None:
    _count_members(store, change, 1)


@rules.on_delete("groups/{groupId}/members/{memberId}")
def on_group_member_delete(store: DocumentStore, change: Change) -> None:
    _count_members(store, change, -1)


@rules.on_update("groups/{groupId}")
def on_group_update(store: DocumentStore, change: Change) -> None:
    """Copy the group's totals into every member's UserGroup mirror."""
    group_id = change.path.id
    group = change.after
    summary = {
        "totalExpenses": group.get("totalExpenses"),
        "totalPayments": group.get("totalPayments"),
        "numMembers": group.get("numMembers"),
        "latestUpdate": group.get("latestUpdate"),
    }

    members = store.list_collection(f"groups/{group_id}/members")
    fan_out(
        store,
        [
            lambda member=member: store.set(
                DocumentPath.of("users", member.id, "groups", group_id), summary
            )
            for member in members
        ],
    )


@rules.on_delete("groups/{groupId}")
def on_group_delete(store: DocumentStore, change: Change) -> None:
    """Remove the members of a deleted group. Expenses and payments are kept."""
    group_id = change.path.id
    members = store.list_collection(f"groups/{group_id}/members")
    fan_out(store, [lambda member=member: store.delete(member.path) for member in members])
    logger.info("Removed %d members of deleted group %s", len(members), group_id)
