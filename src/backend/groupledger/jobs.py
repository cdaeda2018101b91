"""
Scheduled job: renew recurring expenses, then update balance achievements.
"""

import logging
from datetime import datetime

from .balance import check_balances
from .models import utcnow
from .recurrence import check_recurring
from .services import DocumentStore

__all__ = ["check_recurring_and_balance"]

logger = logging.getLogger(__name__)


def check_recurring_and_balance(
    store: DocumentStore, now: datetime | None = None
) -> tuple[int, int]:
    """Run both passes. Returns (expenses renewed, users updated)."""
    now = now or utcnow()
    logger.info("Running check recurring and balance job at %s", now.isoformat())

    renewed = check_recurring(store, now)
    updated = check_balances(store, now)

    logger.info(
        "Done! Renewed %d recurring expenses, updated %d user balances.",
        renewed,
        updated,
    )
    return renewed, updated
