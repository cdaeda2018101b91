"""Services package."""

from .change_feed import ChangeFeed
from .document_store import DocumentStore

__all__ = [
    "ChangeFeed",
    "DocumentStore",
]
