"""
Tracking of each user's worst-ever balance across their groups.
"""

import logging
from datetime import datetime

from .errors import DocumentNotFound
from .models import AchievementProgress, Snapshot, UserGroup, utcnow
from .services import DocumentStore

__all__ = ["user_balance", "check_balance_for_user", "check_balances"]

logger = logging.getLogger(__name__)


def user_balance(store: DocumentStore, user_id: str) -> float:
    """Sum of the user's personal balance over all their groups."""
    balance = 0.0
    for snapshot in store.list_collection(f"users/{user_id}/groups"):
        user_group = UserGroup.from_data(snapshot.data)
        if user_group.num_members <= 0:
            logger.warning(
                "Group %s of user %s has no member count, skipping.", snapshot.id, user_id
            )
            continue
        balance += user_group.personal_balance()
    return balance


def check_balance_for_user(
    store: DocumentStore, user: Snapshot, now: datetime | None = None
) -> bool:
    """
    Lower the user's maxNegativeBalance to the current balance if it is worse.
    The stored value never moves back towards zero. Returns True on update.
    """
    balance = user_balance(store, user.id)

    def ratchet(current: dict) -> dict | None:
        progress = AchievementProgress.from_data(current.get("achievementProgress"))
        if balance >= progress.max_negative_balance:
            return None
        progress.max_negative_balance = balance
        return {"latestUpdate": now or utcnow(), "achievementProgress": progress.to_data()}

    try:
        updated = store.update(user.path, ratchet)
    except DocumentNotFound:
        logger.info("User %s was deleted during the balance check.", user.id)
        return False

    if updated is not None:
        logger.info("New max negative balance for user %s: %s", user.id, balance)
    return updated is not None


def check_balances(store: DocumentStore, now: datetime | None = None) -> int:
    """Check every user's balance. Returns how many users were updated."""
    updated = 0
    for user in store.list_collection("users"):
        try:
            if check_balance_for_user(store, user, now):
                updated += 1
        except Exception as e:  # pylint: disable=broad-exception-caught
            logger.error("Failed to check balance of user %s: %s", user.id, e)
    return updated
