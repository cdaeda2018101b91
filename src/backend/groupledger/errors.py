"""
Error types shared across GroupLedger.
"""

__all__ = [
    "GroupLedgerError",
    "PreconditionFailed",
    "DocumentNotFound",
    "DocumentExists",
    "ConcurrencyConflict",
    "InvalidInterval",
]


class GroupLedgerError(Exception):
    """Base class for GroupLedger errors."""


class PreconditionFailed(GroupLedgerError):
    """
    A callable operation was rejected before doing any work.

    Carries a machine-readable code that is returned to the caller
    alongside the message.
    """

    def __init__(self, message: str, code: str = "failed-precondition") -> None:
        super().__init__(message)
        self.code = code
        self.message = message


class DocumentNotFound(GroupLedgerError):
    """Requested document does not exist."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Document {path} does not exist.")
        self.path = path


class DocumentExists(GroupLedgerError):
    """Document could not be created because the key is taken."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Document {path} already exists.")
        self.path = path


class ConcurrencyConflict(GroupLedgerError):
    """Optimistic update kept losing against concurrent writers."""


class InvalidInterval(GroupLedgerError, ValueError):
    """Recurring interval cannot be packed or unpacked."""
