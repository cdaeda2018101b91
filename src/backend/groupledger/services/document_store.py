"""Document store on top of Azure Table Storage."""

import logging
import uuid
from typing import Any, Callable

from azure.core import MatchConditions
from azure.core.credentials import AzureNamedKeyCredential
from azure.core.exceptions import (
    ResourceExistsError,
    ResourceModifiedError,
    ResourceNotFoundError,
)
from azure.data.tables import TableClient, TableTransactionError, UpdateMode
from azure.identity import DefaultAzureCredential

from ..config import Settings, get_settings
from ..errors import ConcurrencyConflict, DocumentExists, DocumentNotFound
from ..models import Change, DocumentPath, Snapshot
from .constants import AZURE_DEV_ACCOUNT_KEY, AZURE_DEV_ACCOUNT_NAME

logger = logging.getLogger(__name__)

# Nested maps are stored as "parent__child" columns
NESTED_SEPARATOR = "__"
KEY_COLUMNS = ("PartitionKey", "RowKey")

# Bookkeeping columns, never part of a document
APPLIED_CHANGES_COLUMN = "appliedChanges"
DELETE_CLAIM_COLUMN = "deleteClaim"
HIDDEN_COLUMNS = KEY_COLUMNS + (APPLIED_CHANGES_COLUMN, DELETE_CLAIM_COLUMN)

# How many applied change ids a document remembers
APPLIED_CHANGES_KEPT = 20

Publisher = Callable[[Change], None]


def flatten(data: dict[str, Any]) -> dict[str, Any]:
    """Flatten one level of nested maps and drop unset fields."""
    flat: dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, dict):
            for child_key, child_value in value.items():
                if child_value is not None:
                    flat[f"{key}{NESTED_SEPARATOR}{child_key}"] = child_value
        elif value is not None:
            flat[key] = value
    return flat


def unflatten(flat: dict[str, Any]) -> dict[str, Any]:
    """Inverse of flatten, ignoring the table key and bookkeeping columns."""
    data: dict[str, Any] = {}
    for key, value in flat.items():
        if key in HIDDEN_COLUMNS:
            continue
        if NESTED_SEPARATOR in key:
            parent, child = key.split(NESTED_SEPARATOR, 1)
            data.setdefault(parent, {})[child] = value
        else:
            data[key] = value
    return data


def _merge(before: dict[str, Any] | None, changes: dict[str, Any]) -> dict[str, Any]:
    merged = flatten(before or {})
    merged.update(flatten(changes))
    return unflatten(merged)


class DocumentStore:
    """
    Reads and writes documents addressed by DocumentPath.

    Every collection pattern (e.g. ``groups/expenses``) maps to one table.
    The parent document id is the PartitionKey, the document id the RowKey;
    top-level collections use their own name as PartitionKey.
    Each successful write is handed to the publisher as a Change.
    """

    def __init__(
        self, settings: Settings | None = None, publish: Publisher | None = None
    ) -> None:
        self._settings = settings or get_settings()
        self._table_service_url = self._settings.table_service_url
        self._tables = self._settings.tables
        self._max_attempts = self._settings.max_update_attempts
        self._publish = publish
        self._table_clients: dict[str, TableClient] = {}

    @property
    def settings(self) -> Settings:
        return self._settings

    def _get_table_client(self, table_name: str) -> TableClient:
        """Returns a TableClient, ensuring the table exists. Cached per instance."""
        if table_name in self._table_clients:
            return self._table_clients[table_name]

        # Azurite well-known credentials
        if self._table_service_url.startswith("http://"):
            client = TableClient(
                endpoint=self._table_service_url,
                table_name=table_name,
                credential=AzureNamedKeyCredential(
                    AZURE_DEV_ACCOUNT_NAME,
                    AZURE_DEV_ACCOUNT_KEY,
                ),
            )
        else:
            client = TableClient(
                endpoint=self._table_service_url,
                table_name=table_name,
                credential=DefaultAzureCredential(),
            )

        try:
            client.create_table()
        except ResourceExistsError:
            pass  # Table already exists
        except Exception as e:  # pylint: disable=broad-exception-caught
            logger.warning("Could not create table (might already exist): %s", e)

        self._table_clients[table_name] = client
        return client

    def _table_for(self, segments: tuple[str, ...]) -> str:
        pattern = "/".join(segments[0::2])
        try:
            return self._tables[pattern]
        except KeyError as e:
            raise ValueError(f"No table configured for collection '{pattern}'") from e

    def _locate(self, path: DocumentPath) -> tuple[TableClient, str, str]:
        parent = path.parent
        partition_key = parent.id if parent else path.collection
        client = self._get_table_client(self._table_for(path.segments))
        return client, partition_key, path.id

    def _notify(self, change: Change) -> None:
        if self._publish:
            self._publish(change)

    @staticmethod
    def _fetch(client: TableClient, partition_key: str, row_key: str) -> Any | None:
        try:
            return client.get_entity(partition_key=partition_key, row_key=row_key)
        except ResourceNotFoundError:
            return None

    def _read_entity(self, path: DocumentPath) -> Any | None:
        """Read the live entity; one claimed by a deleter counts as gone."""
        client, partition_key, row_key = self._locate(path)
        entity = self._fetch(client, partition_key, row_key)
        if entity is None or entity.get(DELETE_CLAIM_COLUMN):
            return None
        return entity

    def _conflict(self, path: DocumentPath, attempt: int) -> None:
        logger.info(
            "Concurrent write on %s (attempt %d/%d), retrying.",
            path,
            attempt,
            self._max_attempts,
        )

    def _give_up(self, path: DocumentPath) -> ConcurrencyConflict:
        return ConcurrencyConflict(
            f"Gave up writing {path} after {self._max_attempts} attempts."
        )

    def get(self, path: DocumentPath) -> Snapshot:
        """Fetch a document; the snapshot is empty when it does not exist."""
        entity = self._read_entity(path)
        return Snapshot(path, None if entity is None else unflatten(entity))

    def exists(self, path: DocumentPath) -> bool:
        return self._read_entity(path) is not None

    def list_collection(self, collection_path: str) -> list[Snapshot]:
        """List every document of a collection, e.g. ``groups/g1/expenses``."""
        segments = tuple(s for s in collection_path.strip("/").split("/") if s)
        if len(segments) % 2 == 0:
            raise ValueError(f"Not a collection path: {collection_path!r}")

        partition_key = segments[-2] if len(segments) > 1 else segments[0]
        client = self._get_table_client(self._table_for(segments + ("",)))
        entities = client.query_entities(
            query_filter="PartitionKey eq @pk", parameters={"pk": partition_key}
        )
        return [
            Snapshot(DocumentPath.of(*segments, entity["RowKey"]), unflatten(entity))
            for entity in entities
            if not entity.get(DELETE_CLAIM_COLUMN)
        ]

    def create(self, path: DocumentPath, data: dict[str, Any]) -> None:
        """Create a document, failing if the key is already taken."""
        client, partition_key, row_key = self._locate(path)
        entity = {"PartitionKey": partition_key, "RowKey": row_key, **flatten(data)}
        try:
            client.create_entity(entity=entity)
        except ResourceExistsError as e:
            raise DocumentExists(str(path)) from e

        self._notify(Change(path, None, unflatten(flatten(data))))

    def set(self, path: DocumentPath, data: dict[str, Any], merge: bool = True) -> None:
        """
        Upsert a document. With merge, fields not in data are kept.

        The document is either created or updated against the ETag that was
        read, so when writers race only one of them publishes the creation.
        """
        client, partition_key, row_key = self._locate(path)
        entity = {"PartitionKey": partition_key, "RowKey": row_key, **flatten(data)}
        mode = UpdateMode.MERGE if merge else UpdateMode.REPLACE

        for attempt in range(1, self._max_attempts + 1):
            current = self._read_entity(path)
            if current is None:
                try:
                    client.create_entity(entity=entity)
                except ResourceExistsError:
                    self._conflict(path, attempt)
                    continue
                self._notify(Change(path, None, unflatten(flatten(data))))
                return

            before = unflatten(current)
            try:
                client.update_entity(
                    entity=entity,
                    mode=mode,
                    etag=current.metadata["etag"],
                    match_condition=MatchConditions.IfNotModified,
                )
            except (ResourceModifiedError, ResourceNotFoundError):
                self._conflict(path, attempt)
                continue

            after = _merge(before, data) if merge else unflatten(flatten(data))
            self._notify(Change(path, before, after))
            return

        raise self._give_up(path)

    def delete(self, path: DocumentPath) -> bool:
        """
        Delete a document. Returns False if there was nothing to delete.

        The deleter first claims the entity with an ETag-conditional write;
        only the claimant removes it and publishes the deletion.
        """
        client, partition_key, row_key = self._locate(path)

        for attempt in range(1, self._max_attempts + 1):
            entity = self._fetch(client, partition_key, row_key)
            if entity is None or entity.get(DELETE_CLAIM_COLUMN):
                return False

            try:
                client.update_entity(
                    entity={
                        "PartitionKey": partition_key,
                        "RowKey": row_key,
                        DELETE_CLAIM_COLUMN: uuid.uuid4().hex,
                    },
                    mode=UpdateMode.MERGE,
                    etag=entity.metadata["etag"],
                    match_condition=MatchConditions.IfNotModified,
                )
            except ResourceModifiedError:
                self._conflict(path, attempt)
                continue
            except ResourceNotFoundError:
                return False

            client.delete_entity(partition_key=partition_key, row_key=row_key)
            self._notify(Change(path, unflatten(entity), None))
            return True

        raise self._give_up(path)

    def update(
        self,
        path: DocumentPath,
        compute: Callable[[dict[str, Any]], dict[str, Any] | None],
        change_id: str | None = None,
    ) -> dict[str, Any] | None:
        """
        Optimistic read-modify-write of an existing document.

        compute receives the current fields and returns the fields to merge,
        or None to leave the document untouched. The write is conditional on
        the ETag that was read, and is retried when another writer won.

        When change_id is given it is recorded on the document together with
        the write, and a later update carrying the same id is skipped. This
        makes a redelivered change apply its deltas once.
        Returns the merged fields, or None when nothing was written.
        """
        client, partition_key, row_key = self._locate(path)

        for attempt in range(1, self._max_attempts + 1):
            entity = self._read_entity(path)
            if entity is None:
                raise DocumentNotFound(str(path))

            applied = (entity.get(APPLIED_CHANGES_COLUMN) or "").split()
            if change_id is not None and change_id in applied:
                logger.info("Change %s already applied to %s, skipping.", change_id, path)
                return None

            before = unflatten(entity)
            changes = compute(before)
            if changes is None:
                return None

            row = {"PartitionKey": partition_key, "RowKey": row_key, **flatten(changes)}
            if change_id is not None:
                applied.append(change_id)
                row[APPLIED_CHANGES_COLUMN] = " ".join(applied[-APPLIED_CHANGES_KEPT:])

            try:
                client.update_entity(
                    entity=row,
                    mode=UpdateMode.MERGE,
                    etag=entity.metadata["etag"],
                    match_condition=MatchConditions.IfNotModified,
                )
            except ResourceModifiedError:
                self._conflict(path, attempt)
                continue
            except ResourceNotFoundError as e:
                raise DocumentNotFound(str(path)) from e

            after = _merge(before, changes)
            self._notify(Change(path, before, after))
            return after

        raise self._give_up(path)

    def increment(
        self,
        path: DocumentPath,
        deltas: dict[str, Any],
        fields: dict[str, Any] | None = None,
        change_id: str | None = None,
    ) -> dict[str, Any] | None:
        """
        Add deltas to numeric fields (missing fields count as zero) and merge
        any extra fields, atomically with respect to other writers.
        Returns None when change_id was already applied to the document.
        """
        flat_deltas = flatten(deltas)

        def compute(current: dict[str, Any]) -> dict[str, Any]:
            flat_current = flatten(current)
            changes = dict(flatten(fields or {}))
            for key, delta in flat_deltas.items():
                changes[key] = (flat_current.get(key) or 0) + delta
            return unflatten(changes)

        return self.update(path, compute, change_id)

    def commit(self, writes: list[tuple[str, DocumentPath, dict[str, Any]]]) -> None:
        """
        Apply several writes as one table transaction.

        Each write is ("create", path, data) or ("merge", path, data). All
        paths must live in the same collection of the same parent document,
        which is what Table Storage requires for an atomic batch.
        """
        if not writes:
            return

        located = [self._locate(path) for _, path, _ in writes]
        client, partition_key, _ = located[0]
        if any(loc[0] is not client or loc[1] != partition_key for loc in located):
            raise ValueError("Batched writes must share a table and partition.")

        operations: list[tuple[str, Any] | tuple[str, Any, dict[str, Any]]] = []
        changes: list[Change] = []
        for (op, path, data), (_, _, row_key) in zip(writes, located):
            entity = {"PartitionKey": partition_key, "RowKey": row_key, **flatten(data)}
            if op == "create":
                operations.append(("create", entity))
                changes.append(Change(path, None, unflatten(flatten(data))))
            elif op == "merge":
                before = self.get(path).data
                if before is None:
                    raise DocumentNotFound(str(path))
                operations.append(("update", entity, {"mode": UpdateMode.MERGE}))
                changes.append(Change(path, before, _merge(before, data)))
            else:
                raise ValueError(f"Unsupported batch operation: {op}")

        try:
            client.submit_transaction(operations)
        except TableTransactionError as e:
            logger.error("Failed to submit transaction for partition %s: %s", partition_key, e)
            raise

        for change in changes:
            self._notify(change)
