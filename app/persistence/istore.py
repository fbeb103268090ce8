from abc import ABC, abstractmethod
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from app.helpers.monitoring import start_as_current_span
from app.models.query import FieldFilterModel, FilterOperatorEnum
from app.models.readiness import ReadinessEnum


class SentinelEnum(Enum):
    SERVER_TIMESTAMP = "server_timestamp"
    """Replaced by the store clock when the document is written."""


SERVER_TIMESTAMP = SentinelEnum.SERVER_TIMESTAMP


class StoreError(Exception):
    """
    Unexpected failure of the document store.
    """

    pass


class IStore(ABC):
    """
    Document store, organized in collections of JSON documents.

    Each document is identified by its `id` field, unique in its collection.
    """

    @abstractmethod
    @start_as_current_span("store_readiness")
    async def readiness(self) -> ReadinessEnum:
        pass

    @abstractmethod
    @start_as_current_span("store_insert")
    async def insert(
        self,
        collection: str,
        record: dict[str, Any],
    ) -> dict[str, Any]:
        """
        Persist a new document, with a generated `id`.

        Returns the persisted document.
        """
        pass

    @abstractmethod
    @start_as_current_span("store_get")
    async def get(
        self,
        collection: str,
        document_id: str,
    ) -> dict[str, Any] | None:
        pass

    @abstractmethod
    @start_as_current_span("store_query")
    async def query(
        self,
        collection: str,
        filters: list[FieldFilterModel],
        order_by: str | None = None,
    ) -> list[dict[str, Any]]:
        """
        Search documents matching all the filters, ascending by the `order_by` field if set.

        Raises `StoreError` for a membership filter without candidates.
        """
        pass

    @abstractmethod
    @start_as_current_span("store_update")
    async def update(
        self,
        collection: str,
        document_id: str,
        fields: dict[str, Any],
    ) -> None:
        """
        Set the given fields on an existing document, other fields are left untouched.
        """
        pass

    @abstractmethod
    @start_as_current_span("store_delete")
    async def delete(
        self,
        collection: str,
        document_id: str,
    ) -> None:
        pass

    async def close(self) -> None:
        """
        Release the backend clients, on shutdown.
        """
        return

    @staticmethod
    def _resolve_sentinels(record: dict[str, Any]) -> dict[str, Any]:
        """
        Replace sentinel values by their concrete value.

        Timestamps are serialized as ISO 8601 strings, in UTC.
        """
        now = datetime.now(UTC).isoformat()
        return {
            key: now if value is SERVER_TIMESTAMP else value
            for key, value in record.items()
        }

    @staticmethod
    def _check_filters(filters: list[FieldFilterModel]) -> None:
        for query_filter in filters:
            if query_filter.operator == FilterOperatorEnum.IN and not query_filter.value:
                raise StoreError(
                    f'Membership filter on "{query_filter.field}" requires at least one value'
                )
