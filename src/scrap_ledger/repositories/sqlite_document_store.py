import json
import logging
import re
import sqlite3
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Callable, List, Optional

from scrap_ledger.database.connection import DatabaseManager
from scrap_ledger.repositories.base import DocumentStore, DuplicateKeyError, Record, RecordNotFoundError

logger = logging.getLogger(__name__)

# Fields owned by the store, kept in columns rather than in the JSON body
MANAGED_FIELDS = {"id": "id", "createdAt": "created_at", "updatedAt": "updated_at"}

_FIELD_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _json_default(value: Any) -> Any:
    """Serialize the non-JSON types ledger records carry"""
    if isinstance(value, Decimal):
        return str(value) # Store as string for precision
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _decimal(value: Any) -> Decimal:
    if value is None or isinstance(value, bool):
        return Decimal(0)
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return Decimal(0)
    return number if number.is_finite() else Decimal(0)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SQLiteDocumentStore(DocumentStore):
    """
    SQLite implementation of the DocumentStore.

    Each record is a JSON document in the `documents` table. Unique keys live
    in their own table so the primary key constraint rejects a second claim.
    Writes that read before writing run under BEGIN IMMEDIATE.
    """

    def __init__(self, db_manager: DatabaseManager):
        self.db = db_manager

    def list_all(
        self,
        collection: str,
        order_by: str = "createdAt",
        descending: bool = True,
    ) -> List[Record]:
        """Retrieve all records of a collection."""
        order_sql, params = self._order_clause(order_by, descending)
        conn = self.db.get_connection()
        cursor = conn.execute(
            f"SELECT * FROM documents WHERE collection = ? {order_sql}",
            [collection, *params],
        )
        return [self._row_to_record(row) for row in cursor.fetchall()]

    def get(self, collection: str, record_id: str) -> Optional[Record]:
        """Retrieve a record by ID, or None if it doesn't exist"""
        row_id = self._row_id(record_id)
        if row_id is None:
            return None

        conn = self.db.get_connection()
        cursor = conn.execute(
            "SELECT * FROM documents WHERE collection = ? AND id = ?",
            (collection, row_id),
        )
        row = cursor.fetchone()

        if row is None:
            return None

        return self._row_to_record(row)

    def insert(
        self,
        collection: str,
        record: Record,
        unique_key: Optional[str] = None,
    ) -> str:
        """Insert a record, claiming unique_key in the same transaction."""
        timestamp = _now()

        try:
            with self.db.transaction(immediate=True) as conn:
                cursor = conn.execute(
                    """
                    INSERT INTO documents (collection, data, created_at, updated_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    (collection, self._dump(record), timestamp, timestamp),
                )
                row_id = cursor.lastrowid

                if unique_key is not None:
                    conn.execute(
                        "INSERT INTO unique_keys (collection, key, document_id) VALUES (?, ?, ?)",
                        (collection, unique_key, row_id),
                    )
        except sqlite3.IntegrityError as e:
            logger.warning("Unique key %r already claimed in %s", unique_key, collection)
            raise DuplicateKeyError(
                f"Key '{unique_key}' already exists in '{collection}'"
            ) from e

        logger.debug("Inserted %s/%s", collection, row_id)
        return str(row_id)

    def update_fields(self, collection: str, record_id: str, fields: Record) -> Record:
        """Merge fields into a record."""
        with self.db.transaction(immediate=True) as conn:
            row = self._fetch_for_update(conn, collection, record_id)

            data = json.loads(row["data"])
            data.update(self._strip_managed(fields))
            timestamp = _now()

            conn.execute(
                "UPDATE documents SET data = ?, updated_at = ? WHERE id = ?",
                (self._dump(data), timestamp, row["id"]),
            )

        return self._compose(row["id"], data, row["created_at"], timestamp)

    def atomic_increment(
        self,
        collection: str,
        record_id: str,
        field: str,
        delta: Decimal,
        on_update: Optional[Callable[[Record], Optional[Record]]] = None,
        fallback_field: Optional[str] = None,
    ) -> Record:
        """Increment a numeric field under the write lock."""
        self._check_field(field)

        with self.db.transaction(immediate=True) as conn:
            row = self._fetch_for_update(conn, collection, record_id)

            data = json.loads(row["data"])
            current = data.get(field)
            if current is None and fallback_field is not None:
                current = data.get(fallback_field)
            data[field] = str(_decimal(current) + _decimal(delta))
            timestamp = _now()

            if on_update is not None:
                # Raising here rolls the increment back
                extra = on_update(self._compose(row["id"], data, row["created_at"], timestamp))
                if extra:
                    data.update(json.loads(self._dump(self._strip_managed(extra))))

            conn.execute(
                "UPDATE documents SET data = ?, updated_at = ? WHERE id = ?",
                (self._dump(data), timestamp, row["id"]),
            )

        return self._compose(row["id"], data, row["created_at"], timestamp)

    def query_where_greater_than(
        self,
        collection: str,
        field: str,
        threshold: Any,
        order_by: str,
        descending: bool = True,
        include_missing: bool = False,
    ) -> List[Record]:
        """Records whose numeric field exceeds threshold."""
        self._check_field(field)
        order_sql, order_params = self._order_clause(
            order_by, descending, numeric=(order_by == field)
        )

        path = f"$.{field}"
        condition = "CAST(json_extract(data, ?) AS REAL) > ?"
        params: List[Any] = [collection, path, float(_decimal(threshold))]
        if include_missing:
            condition = f"({condition} OR json_extract(data, ?) IS NULL)"
            params.append(path)

        conn = self.db.get_connection()
        cursor = conn.execute(
            f"""
            SELECT * FROM documents
            WHERE collection = ?
              AND {condition}
            {order_sql}
            """,
            [*params, *order_params],
        )
        return [self._row_to_record(row) for row in cursor.fetchall()]

    def delete(self, collection: str, record_id: str) -> bool:
        """Delete a record by ID."""
        row_id = self._row_id(record_id)
        if row_id is None:
            return False

        with self.db.transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM documents WHERE collection = ? AND id = ?",
                (collection, row_id),
            )
            return cursor.rowcount > 0

    def _fetch_for_update(self, conn: sqlite3.Connection, collection: str, record_id: str) -> sqlite3.Row:
        row_id = self._row_id(record_id)
        row = None
        if row_id is not None:
            row = conn.execute(
                "SELECT * FROM documents WHERE collection = ? AND id = ?",
                (collection, row_id),
            ).fetchone()

        if row is None:
            raise RecordNotFoundError(
                f"Record with ID {record_id} not found in '{collection}'"
            )
        return row

    def _order_clause(self, order_by: str, descending: bool, numeric: bool = False):
        """Build an ORDER BY clause for a managed column or a JSON field"""
        direction = "DESC" if descending else "ASC"

        if order_by in MANAGED_FIELDS:
            return f"ORDER BY {MANAGED_FIELDS[order_by]} {direction}, id {direction}", []

        self._check_field(order_by)
        expression = "json_extract(data, ?)"
        if numeric:
            expression = f"CAST({expression} AS REAL)"
        return f"ORDER BY {expression} {direction}, id {direction}", [f"$.{order_by}"]

    @staticmethod
    def _check_field(name: str) -> None:
        if not _FIELD_NAME.match(name or ""):
            raise ValueError(f"Invalid field name: {name!r}")

    @staticmethod
    def _row_id(record_id: Any) -> Optional[int]:
        try:
            return int(record_id)
        except (TypeError, ValueError):
            return None

    @staticmethod
    def _strip_managed(record: Record) -> Record:
        return {k: v for k, v in record.items() if k not in MANAGED_FIELDS}

    def _dump(self, record: Record) -> str:
        return json.dumps(self._strip_managed(record), default=_json_default, ensure_ascii=False)

    @staticmethod
    def _compose(row_id: int, data: Record, created_at: str, updated_at: str) -> Record:
        return {**data, "id": str(row_id), "createdAt": created_at, "updatedAt": updated_at}

    def _row_to_record(self, row: sqlite3.Row) -> Record:
        """Convert database row to a record mapping."""
        return self._compose(
            row["id"],
            json.loads(row["data"]),
            row["created_at"],
            row["updated_at"],
        )
