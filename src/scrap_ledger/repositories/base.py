from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

Record = Dict[str, Any]

class DuplicateKeyError(Exception):
    """Raised when a unique key is already claimed in a collection."""
    pass

class RecordNotFoundError(Exception):
    """Raised when a record cannot be found."""
    pass

class DocumentStore(ABC):
    """
    Abstract document store for ledger records.

    Records are loosely typed mappings; the store assigns `id`, `createdAt`
    and `updatedAt` and otherwise keeps whatever fields it is given.
    Normalization happens above this layer.
    """

    @abstractmethod
    def list_all(
        self,
        collection: str,
        order_by: str = "createdAt",
        descending: bool = True,
    ) -> List[Record]:
        """
        Retrieve every record of a collection.

        Args:
            collection: Collection name
            order_by: Field to order by
            descending: Largest values first when True

        Returns:
            List of records
        """
        pass

    @abstractmethod
    def get(self, collection: str, record_id: str) -> Optional[Record]:
        """
        Retrieve a record by ID.

        Returns:
            Record if found, None otherwise
        """
        pass

    @abstractmethod
    def insert(
        self,
        collection: str,
        record: Record,
        unique_key: Optional[str] = None,
    ) -> str:
        """
        Insert a new record.

        Args:
            collection: Collection name
            record: Fields to store
            unique_key: Optional key that must not already be claimed in the
                collection (e.g. "purchase:PSK-0004"). Claiming the key and
                inserting the record happen atomically.

        Returns:
            The new record's ID

        Raises:
            DuplicateKeyError: If unique_key is already claimed
        """
        pass

    @abstractmethod
    def update_fields(self, collection: str, record_id: str, fields: Record) -> Record:
        """
        Merge fields into an existing record and refresh updatedAt.

        Returns:
            The updated record

        Raises:
            RecordNotFoundError: If the record doesn't exist
        """
        pass

    @abstractmethod
    def atomic_increment(
        self,
        collection: str,
        record_id: str,
        field: str,
        delta: Decimal,
        on_update: Optional[Callable[[Record], Optional[Record]]] = None,
        fallback_field: Optional[str] = None,
    ) -> Record:
        """
        Add delta to a numeric field as one serialized write.

        No other writer can change the record between reading the current
        value and writing the new one.

        Args:
            collection: Collection name
            record_id: Record to update
            field: Numeric field to increment
            delta: Amount to add
            on_update: Optional callback receiving the incremented record.
                It may return extra fields to write in the same step, or
                raise to abort the whole update.
            fallback_field: Field holding the starting value when `field`
                is absent from the record (e.g. an older field name).

        Returns:
            The updated record

        Raises:
            RecordNotFoundError: If the record doesn't exist
        """
        pass

    @abstractmethod
    def query_where_greater_than(
        self,
        collection: str,
        field: str,
        threshold: Any,
        order_by: str,
        descending: bool = True,
        include_missing: bool = False,
    ) -> List[Record]:
        """
        Retrieve records whose numeric field is greater than threshold.

        Args:
            include_missing: Also return records that don't have the field
                at all, so the caller can derive it

        Returns:
            List of matching records ordered by order_by
        """
        pass

    @abstractmethod
    def delete(self, collection: str, record_id: str) -> bool:
        """
        Delete a record by ID.

        Returns:
            True if deleted, False if not found
        """
        pass
