"""
Data models for documents, change events, and the records GroupLedger keeps.
"""

import json
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

__all__ = [
    "DocumentPath",
    "Snapshot",
    "ChangeKind",
    "Change",
    "Role",
    "AchievementProgress",
    "Group",
    "Member",
    "Expense",
    "Payment",
    "User",
    "UserGroup",
    "parse_timestamp",
    "utcnow",
]


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime | None:
    """Normalize a stored timestamp (datetime or ISO string) to aware UTC."""
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if not isinstance(value, datetime):
        raise ValueError(f"Not a timestamp: {value!r}")
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _number(data: dict[str, Any], key: str) -> float:
    value = data.get(key)
    return 0 if value is None else value


class DocumentPath:
    """
    Slash separated document address, e.g. ``groups/g1/expenses/e1``.
    Segments alternate between collection names and document ids.
    """

    def __init__(self, path: str) -> None:
        segments = [s for s in path.strip("/").split("/") if s]
        if not segments or len(segments) % 2:
            raise ValueError(f"Not a document path: {path!r}")
        self.segments = tuple(segments)

    @classmethod
    def of(cls, *segments: str) -> "DocumentPath":
        """Build a path from alternating collection / id segments."""
        return cls("/".join(segments))

    @property
    def id(self) -> str:
        return self.segments[-1]

    @property
    def collection(self) -> str:
        return self.segments[-2]

    @property
    def parent(self) -> "DocumentPath | None":
        """The document owning this document's collection, if any."""
        if len(self.segments) == 2:
            return None
        return DocumentPath("/".join(self.segments[:-2]))

    @property
    def collection_path(self) -> str:
        """Path of the collection holding this document."""
        return "/".join(self.segments[:-1])

    def child(self, collection: str, doc_id: str) -> "DocumentPath":
        return DocumentPath.of(*self.segments, collection, doc_id)

    def __str__(self) -> str:
        return "/".join(self.segments)

    def __repr__(self) -> str:
        return f"DocumentPath({str(self)!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DocumentPath):
            return NotImplemented
        return self.segments == other.segments

    def __hash__(self) -> int:
        return hash(self.segments)


class Snapshot:
    """A document's fields at one point in time; data is None when absent."""

    def __init__(self, path: DocumentPath, data: dict[str, Any] | None) -> None:
        self.path = path
        self.data = data

    @property
    def exists(self) -> bool:
        return self.data is not None

    @property
    def id(self) -> str:
        return self.path.id

    def get(self, key: str, default: Any = None) -> Any:
        if self.data is None:
            return default
        return self.data.get(key, default)


class ChangeKind(Enum):
    """Lifecycle event of a single document write."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


def _encode_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return {"$date": value.isoformat()}
    if isinstance(value, dict):
        return {k: _encode_value(v) for k, v in value.items()}
    return value


def _decode_hook(obj: dict[str, Any]) -> Any:
    if set(obj) == {"$date"}:
        return parse_timestamp(obj["$date"])
    return obj


class Change:
    """Before and after state of a document write."""

    def __init__(
        self,
        path: DocumentPath,
        before: dict[str, Any] | None,
        after: dict[str, Any] | None,
        change_id: str | None = None,
    ) -> None:
        if before is None and after is None:
            raise ValueError(f"Change for {path} has neither before nor after state.")
        # Stays the same when the queue redelivers the message
        self.id = change_id or uuid.uuid4().hex
        self.path = path
        self.before = Snapshot(path, before)
        self.after = Snapshot(path, after)

    @property
    def kind(self) -> ChangeKind:
        if not self.before.exists:
            return ChangeKind.CREATE
        if not self.after.exists:
            return ChangeKind.DELETE
        return ChangeKind.UPDATE

    def to_message(self) -> str:
        """Serialize to the JSON text carried by the change queue."""
        return json.dumps(
            {
                "id": self.id,
                "path": str(self.path),
                "before": _encode_value(self.before.data),
                "after": _encode_value(self.after.data),
            }
        )

    @classmethod
    def from_message(cls, text: str) -> "Change":
        body = json.loads(text, object_hook=_decode_hook)
        return cls(
            DocumentPath(body["path"]),
            body.get("before"),
            body.get("after"),
            body.get("id"),
        )

    def __repr__(self) -> str:
        return f"Change({self.kind.value} {self.path})"


class Role(Enum):
    """Role of a member inside a group."""

    ADMIN = "admin"
    MEMBER = "member"


class AchievementProgress:
    """Gamification counters stored on the user record."""

    def __init__(
        self,
        expenses_count: int = 0,
        payments_count: int = 0,
        max_negative_balance: float = 0,
    ) -> None:
        self.expenses_count = expenses_count
        self.payments_count = payments_count
        self.max_negative_balance = max_negative_balance

    @classmethod
    def from_data(cls, data: dict[str, Any] | None) -> "AchievementProgress":
        """Read stored progress; a missing map means all counters are zero."""
        if not data:
            return cls()
        return cls(
            _number(data, "expensesCount"),
            _number(data, "paymentsCount"),
            _number(data, "maxNegativeBalance"),
        )

    def to_data(self) -> dict[str, Any]:
        return {
            "expensesCount": self.expenses_count,
            "paymentsCount": self.payments_count,
            "maxNegativeBalance": self.max_negative_balance,
        }


class Group:
    """A shared-expense unit."""

    def __init__(
        self,
        name: str | None,
        latest_update: datetime | None = None,
        total_expenses: float = 0,
        total_payments: float = 0,
        num_members: int = 0,
    ) -> None:
        self.name = name
        self.latest_update = latest_update
        self.total_expenses = total_expenses
        self.total_payments = total_payments
        self.num_members = num_members

    @classmethod
    def from_data(cls, data: dict[str, Any]) -> "Group":
        return cls(
            data.get("name"),
            parse_timestamp(data.get("latestUpdate")),
            _number(data, "totalExpenses"),
            _number(data, "totalPayments"),
            _number(data, "numMembers"),
        )

    def to_data(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "latestUpdate": self.latest_update,
            "totalExpenses": self.total_expenses,
            "totalPayments": self.total_payments,
            "numMembers": self.num_members,
        }


class Member:
    """A user's participation in a group."""

    def __init__(
        self,
        user_name: str | None,
        role: Role,
        join_date: datetime | None = None,
        total_expenses: float = 0,
        total_payments: float = 0,
    ) -> None:
        self.user_name = user_name
        self.role = role
        self.join_date = join_date
        self.total_expenses = total_expenses
        self.total_payments = total_payments

    @classmethod
    def from_data(cls, data: dict[str, Any]) -> "Member":
        try:
            role = Role(data.get("role"))
        except ValueError:
            role = Role.MEMBER
        return cls(
            data.get("userName"),
            role,
            parse_timestamp(data.get("joinDate")),
            _number(data, "totalExpenses"),
            _number(data, "totalPayments"),
        )

    def to_data(self) -> dict[str, Any]:
        return {
            "userName": self.user_name,
            "role": self.role.value,
            "joinDate": self.join_date,
            "totalExpenses": self.total_expenses,
            "totalPayments": self.total_payments,
        }


class Expense:
    """An expense recorded in a group."""

    def __init__(  # pylint: disable=too-many-arguments
        self,
        name: str | None,
        date: datetime | None,
        cost: float,
        user_id: str,
        user_name: str | None = None,
        recurring: bool = False,
        recurring_interval: int | None = None,
        already_recurred: bool = False,
    ) -> None:
        self.name = name
        self.date = date
        self.cost = cost
        self.user_id = user_id
        self.user_name = user_name
        self.recurring = recurring
        self.recurring_interval = recurring_interval
        self.already_recurred = already_recurred

    @classmethod
    def from_data(cls, data: dict[str, Any]) -> "Expense":
        return cls(
            data.get("name"),
            parse_timestamp(data.get("date")),
            _number(data, "cost"),
            data.get("userId"),
            data.get("userName"),
            data.get("recurring") is True,
            data.get("recurringInterval"),
            data.get("alreadyRecurred") is True,
        )

    def to_data(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "date": self.date,
            "cost": self.cost,
            "userId": self.user_id,
            "userName": self.user_name,
            "recurring": self.recurring,
            "recurringInterval": self.recurring_interval,
            "alreadyRecurred": self.already_recurred,
        }


class Payment:
    """A payment recorded in a group."""

    def __init__(self, date: datetime | None, payment: float, user_id: str) -> None:
        self.date = date
        self.payment = payment
        self.user_id = user_id

    @classmethod
    def from_data(cls, data: dict[str, Any]) -> "Payment":
        return cls(
            parse_timestamp(data.get("date")),
            _number(data, "payment"),
            data.get("userId"),
        )

    def to_data(self) -> dict[str, Any]:
        return {"date": self.date, "payment": self.payment, "userId": self.user_id}


class User:
    """Root record holding a user's totals across all groups."""

    def __init__(
        self,
        total_expenses: float = 0,
        total_payments: float = 0,
        num_groups: int = 0,
        achievement_progress: AchievementProgress | None = None,
    ) -> None:
        self.total_expenses = total_expenses
        self.total_payments = total_payments
        self.num_groups = num_groups
        self.achievement_progress = achievement_progress or AchievementProgress()

    @classmethod
    def from_data(cls, data: dict[str, Any] | None) -> "User":
        if data is None:
            return cls()
        return cls(
            _number(data, "totalExpenses"),
            _number(data, "totalPayments"),
            _number(data, "numGroups"),
            AchievementProgress.from_data(data.get("achievementProgress")),
        )

    def to_data(self) -> dict[str, Any]:
        return {
            "totalExpenses": self.total_expenses,
            "totalPayments": self.total_payments,
            "numGroups": self.num_groups,
            "achievementProgress": self.achievement_progress.to_data(),
        }


class UserGroup:
    """A user's denormalized view of one group they belong to."""

    def __init__(  # pylint: disable=too-many-arguments
        self,
        name: str | None = None,
        personal_expenses: float = 0,
        personal_payments: float = 0,
        total_expenses: float = 0,
        total_payments: float = 0,
        num_members: int = 0,
    ) -> None:
        self.name = name
        self.personal_expenses = personal_expenses
        self.personal_payments = personal_payments
        self.total_expenses = total_expenses
        self.total_payments = total_payments
        self.num_members = num_members

    @classmethod
    def from_data(cls, data: dict[str, Any]) -> "UserGroup":
        return cls(
            data.get("name"),
            _number(data, "personalExpenses"),
            _number(data, "personalPayments"),
            _number(data, "totalExpenses"),
            _number(data, "totalPayments"),
            _number(data, "numMembers"),
        )

    def personal_balance(self) -> float:
        """Payments made minus an equal share of the group's expenses."""
        return self.personal_payments - self.total_expenses / self.num_members
