"""
Callable operations for creating groups and managing their members.
"""

import logging
import uuid

from .errors import DocumentExists, PreconditionFailed
from .models import DocumentPath, Group, Member, Role, utcnow
from .propagation import ensure_user
from .services import DocumentStore

__all__ = [
    "Principal",
    "create_group",
    "join_group",
    "add_user_to_group",
    "leave_group",
    "kick_member",
    "register_user",
    "unregister_user",
]

logger = logging.getLogger(__name__)

UNAUTHENTICATED = "The function must be called while authenticated."


class Principal:  # pylint: disable=too-few-public-methods
    """The authenticated caller of an operation."""

    def __init__(self, user_id: str, user_name: str | None = None) -> None:
        self.user_id = user_id
        self.user_name = user_name


def _require_auth(principal: Principal | None) -> Principal:
    if principal is None or not principal.user_id:
        raise PreconditionFailed(UNAUTHENTICATED)
    return principal


def _require_group(store: DocumentStore, group_id: str) -> DocumentPath:
    if not group_id:
        raise PreconditionFailed("A group id is required.")
    group_path = DocumentPath.of("groups", group_id)
    if not store.exists(group_path):
        raise PreconditionFailed(f"Group with id {group_id} does not exist.")
    return group_path


def _parse_role(role: str) -> Role:
    try:
        return Role(role)
    except ValueError as e:
        raise PreconditionFailed(
            f"Role must be one of {', '.join(r.value for r in Role)}, got {role!r}."
        ) from e


def add_user_to_group(
    store: DocumentStore, group_id: str, user_id: str, user_name: str | None, role: Role
) -> str:
    """Write the member record for a user; the group must exist."""
    group_path = _require_group(store, group_id)
    member = Member(user_name, role, join_date=utcnow())
    try:
        store.create(group_path.child("members", user_id), member.to_data())
    except DocumentExists as e:
        raise PreconditionFailed(
            f"User {user_id} is already a member of group {group_id}."
        ) from e
    logger.info("Added user %s to group %s as %s", user_id, group_id, role.value)
    return group_id


def create_group(store: DocumentStore, principal: Principal | None, name: str) -> str:
    """Create a group and add the caller to it as admin. Returns the group id."""
    principal = _require_auth(principal)

    group_id = uuid.uuid4().hex
    store.create(DocumentPath.of("groups", group_id), Group(name, utcnow()).to_data())
    logger.info("Created group %s (%s)", group_id, name)

    return add_user_to_group(
        store, group_id, principal.user_id, principal.user_name, Role.ADMIN
    )


def join_group(
    store: DocumentStore, principal: Principal | None, group_id: str, role: str
) -> str:
    """Add the caller to an existing group with the given role."""
    principal = _require_auth(principal)
    return add_user_to_group(
        store, group_id, principal.user_id, principal.user_name, _parse_role(role)
    )


def leave_group(store: DocumentStore, principal: Principal | None, group_id: str) -> str:
    """
    Remove the caller from a group. When the group is left empty its
    expenses are frozen so that recurring ones stop renewing.
    """
    principal = _require_auth(principal)
    group_path = _require_group(store, group_id)

    store.delete(group_path.child("members", principal.user_id))

    if not store.list_collection(f"{group_path}/members"):
        expenses = store.list_collection(f"{group_path}/expenses")
        for expense in expenses:
            store.set(expense.path, {"alreadyRecurred": True})
        logger.info("Group %s abandoned, froze %d expenses.", group_id, len(expenses))

    return group_id


def kick_member(
    store: DocumentStore, principal: Principal | None, group_id: str, member_id: str
) -> str:
    """Remove another member from a group. Only group admins may do this."""
    principal = _require_auth(principal)
    group_path = _require_group(store, group_id)

    issuer = store.get(group_path.child("members", principal.user_id))
    if issuer.get("role") != Role.ADMIN.value:
        raise PreconditionFailed("The function must be called from group admins.")

    store.delete(group_path.child("members", member_id))
    logger.info("User %s kicked %s from group %s", principal.user_id, member_id, group_id)
    return group_id


def register_user(store: DocumentStore, principal: Principal | None) -> str:
    """Create the caller's user record when they sign up."""
    principal = _require_auth(principal)
    ensure_user(store, principal.user_id)
    return principal.user_id


def unregister_user(store: DocumentStore, principal: Principal | None) -> str:
    """Delete the caller's user record when they remove their account."""
    principal = _require_auth(principal)
    store.delete(DocumentPath.of("users", principal.user_id))
    logger.info("Deleted user record for %s", principal.user_id)
    return principal.user_id

