"""
Configuration management for GroupLedger.
"""

import functools
import logging
import os
from typing import Any

from typeguard import TypeCheckError, check_type

__all__ = ["Settings", "get_settings", "validate_settings", "COLLECTION_TABLES"]

logger = logging.getLogger(__name__)

# Collection pattern -> (env var for the table name, default table name)
COLLECTION_TABLES: dict[str, tuple[str, str]] = {
    "groups": ("GROUPS_TABLE", "groups"),
    "groups/members": ("MEMBERS_TABLE", "members"),
    "groups/expenses": ("EXPENSES_TABLE", "expenses"),
    "groups/payments": ("PAYMENTS_TABLE", "payments"),
    "users": ("USERS_TABLE", "users"),
    "users/expenses": ("USER_EXPENSES_TABLE", "userexpenses"),
    "users/payments": ("USER_PAYMENTS_TABLE", "userpayments"),
    "users/groups": ("USER_GROUPS_TABLE", "usergroups"),
}


class Settings:  # pylint: disable=too-few-public-methods
    """Runtime settings read from the environment."""

    def __init__(self, values: dict[str, Any]) -> None:
        self.table_service_url: str = values["TableServiceUrl"]
        self.queue_service_url: str = values["QueueServiceUrl"]
        self.change_queue_name: str = values["ChangeQueueName"]
        self.tables: dict[str, str] = values["Tables"]
        self.max_update_attempts: int = values["MaxUpdateAttempts"]
        self.fanout_workers: int = values["FanoutWorkers"]


def validate_settings(values: dict) -> None:
    """Validate the structure and types of the settings dictionary."""
    try:
        check_type(values["TableServiceUrl"], str)
        check_type(values["QueueServiceUrl"], str)
        check_type(values["ChangeQueueName"], str)
        check_type(values["Tables"], dict[str, str])
        check_type(values["MaxUpdateAttempts"], int)
        check_type(values["FanoutWorkers"], int)
        if values["MaxUpdateAttempts"] < 1 or values["FanoutWorkers"] < 1:
            raise ValueError("MaxUpdateAttempts and FanoutWorkers must be positive.")

    except (KeyError, TypeCheckError, ValueError) as ex:
        logger.error("Invalid configuration: %s", ex)
        raise


def _int_from_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.error("%s must be an integer, got %r", name, raw)
        raise


@functools.lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load and validate settings, using cache if available."""
    table_service_url = os.environ.get("TABLE_SERVICE_URL")
    if not table_service_url:
        raise ValueError("TABLE_SERVICE_URL environment variable is not set.")

    queue_service_url = os.environ.get("QUEUE_SERVICE_URL")
    if not queue_service_url:
        raise ValueError("QUEUE_SERVICE_URL environment variable is not set.")

    values = {
        "TableServiceUrl": table_service_url,
        "QueueServiceUrl": queue_service_url,
        "ChangeQueueName": os.environ.get("CHANGE_QUEUE_NAME", "document-changes"),
        "Tables": {
            pattern: os.environ.get(env_name, default)
            for pattern, (env_name, default) in COLLECTION_TABLES.items()
        },
        "MaxUpdateAttempts": _int_from_env("MAX_UPDATE_ATTEMPTS", 5),
        "FanoutWorkers": _int_from_env("FANOUT_WORKERS", 8),
    }

    validate_settings(values)
    return Settings(values)
