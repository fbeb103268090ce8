from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any
from uuid import uuid4

from azure.core.exceptions import AzureError
from azure.cosmos import ConsistencyLevel
from azure.cosmos.aio import ContainerProxy, CosmosClient
from azure.cosmos.exceptions import CosmosResourceNotFoundError

from app.helpers.cache import lru_acache
from app.helpers.config_models.database import CosmosDbModel
from app.helpers.http import azure_transport
from app.helpers.identity import credential
from app.helpers.logging import logger
from app.helpers.monitoring import suppress
from app.models.query import FieldFilterModel, FilterOperatorEnum
from app.models.readiness import ReadinessEnum
from app.persistence.istore import IStore, StoreError


class CosmosDbStore(IStore):
    """
    Document store backed by Azure Cosmos DB.

    Each collection is a container of the configured database. Containers written to must be partitioned by the configured `partition_key` field.
    """

    _config: CosmosDbModel

    def __init__(self, config: CosmosDbModel):
        logger.info("Using Cosmos DB %s", config.database)
        self._config = config

    async def readiness(self) -> ReadinessEnum:
        """
        Check the readiness of the Cosmos DB service.

        A probe document is written, read back and deleted in the dedicated readiness container, reminders are never touched.
        """
        probe_id = str(uuid4())
        probe = {
            "id": probe_id,
            self._config.partition_key: probe_id,
            "probe": True,
        }
        try:
            async with self._use_client(self._config.readiness_collection) as db:
                await db.create_item(body=probe)
                read = await db.read_item(item=probe_id, partition_key=probe_id)
                await db.delete_item(item=probe_id, partition_key=probe_id)
            # Cosmos DB adds system properties, compare the written ones only
            if {k: read.get(k) for k in probe} != probe:
                logger.error("Readiness probe %s read back differs", probe_id)
                return ReadinessEnum.FAIL
        except AzureError:
            logger.exception("Error requesting Cosmos DB")
            return ReadinessEnum.FAIL
        except Exception:
            logger.exception("Unknown error while checking Cosmos DB readiness")
            return ReadinessEnum.FAIL
        return ReadinessEnum.OK

    async def insert(
        self,
        collection: str,
        record: dict[str, Any],
    ) -> dict[str, Any]:
        document = self._resolve_sentinels(record)
        document["id"] = str(uuid4())
        logger.debug("Inserting document %s in %s", document["id"], collection)

        async with self._use_client(collection, "insert in") as db:
            await db.create_item(body=document)
        return document

    async def get(
        self,
        collection: str,
        document_id: str,
    ) -> dict[str, Any] | None:
        logger.debug("Loading document %s from %s", document_id, collection)

        raw = None
        # Partition key is not known by the caller, query by ID across partitions
        async with self._use_client(collection, "read from") as db:
            with suppress(StopAsyncIteration):
                raw = await anext(
                    db.query_items(
                        query="SELECT * FROM c WHERE c.id = @id",
                        parameters=[{"name": "@id", "value": document_id}],
                    )
                )
        return _strip_metadata(raw) if raw else None

    async def query(
        self,
        collection: str,
        filters: list[FieldFilterModel],
        order_by: str | None = None,
    ) -> list[dict[str, Any]]:
        self._check_filters(filters)
        query, parameters = _build_query(filters, order_by)
        logger.debug("Querying %s: %s", collection, query)

        documents: list[dict[str, Any]] = []
        async with self._use_client(collection, "query") as db:
            async for raw in db.query_items(
                query=query,
                parameters=parameters,
            ):
                if raw:
                    documents.append(_strip_metadata(raw))
        return documents

    async def update(
        self,
        collection: str,
        document_id: str,
        fields: dict[str, Any],
    ) -> None:
        logger.debug("Updating document %s in %s", document_id, collection)

        document = await self.get(collection, document_id)
        if not document:
            raise StoreError(f"Document {document_id} not found in {collection}")
        document.update(self._resolve_sentinels(fields))

        # Whole document is replaced, the partition key is read from the body
        async with self._use_client(collection, "update in") as db:
            await db.replace_item(
                body=document,
                item=document_id,
            )

    async def delete(
        self,
        collection: str,
        document_id: str,
    ) -> None:
        logger.debug("Deleting document %s from %s", document_id, collection)

        document = await self.get(collection, document_id)
        if not document:
            return

        async with self._use_client(collection, "delete from") as db:
            with suppress(CosmosResourceNotFoundError):  # Concurrent deletion
                await db.delete_item(
                    item=document_id,
                    partition_key=document.get(self._config.partition_key),
                )

    async def close(self) -> None:
        """
        Close the Cosmos DB clients opened so far.

        The shared HTTP session is not closed, next calls open new clients.
        """
        clients: list[CosmosClient] = CosmosDbStore._use_service_client.cache_values()  # pyright: ignore
        for client in clients:
            await client.close()
        CosmosDbStore._use_service_client.cache_clear()  # pyright: ignore
        logger.debug("Closed %s Cosmos DB clients", len(clients))

    @lru_acache()
    async def _use_service_client(self) -> CosmosClient:
        """
        Cosmos DB client, authenticated with the access key if configured, with the Azure identity otherwise.
        """
        logger.debug("Using Cosmos DB service client for %s", self._config.endpoint)
        return CosmosClient(
            consistency_level=ConsistencyLevel.Session,
            credential=(
                self._config.access_key.get_secret_value()
                if self._config.access_key
                else await credential()
            ),
            transport=await azure_transport(),
            url=self._config.endpoint,
            # Reliability
            connection_timeout=10,
            retry_backoff_factor=0.8,
            retry_backoff_max=8,
            retry_total=3,
        )

    @asynccontextmanager
    async def _use_client(
        self,
        collection: str,
        action: str | None = None,
    ) -> AsyncGenerator[ContainerProxy, None]:
        """
        Container client of a collection.

        If `action` is set, Azure SDK errors raised in the block (HTTP responses, connection and transport failures) are converted to `StoreError`.
        """
        client = await self._use_service_client()
        container = client.get_database_client(self._config.database).get_container_client(
            collection
        )
        if not action:
            yield container
            return
        try:
            yield container
        except AzureError as e:
            logger.exception("Error accessing Cosmos DB")
            raise StoreError(f"Cannot {action} {collection}: {e.message}") from e


def _build_query(
    filters: list[FieldFilterModel],
    order_by: str | None,
) -> tuple[str, list[dict[str, Any]]]:
    """
    Build the SQL query of a filtered listing.

    Values are always passed as parameters, field names are quoted as properties.
    """
    clauses: list[str] = []
    parameters: list[dict[str, Any]] = []
    for i, field_filter in enumerate(filters):
        name = f"@value{i}"
        field = f'c["{field_filter.field}"]'
        clauses.append(
            f"ARRAY_CONTAINS({name}, {field})"
            if field_filter.operator == FilterOperatorEnum.IN
            else f"{field} = {name}"
        )
        parameters.append({"name": name, "value": field_filter.value})

    query = "SELECT * FROM c"
    if clauses:
        query += " WHERE " + " AND ".join(clauses)
    if order_by:
        query += f' ORDER BY c["{order_by}"] ASC'
    return query, parameters


def _strip_metadata(raw: dict[str, Any]) -> dict[str, Any]:
    """
    Remove the system properties added by Cosmos DB (e.g. `_rid`, `_ts`).
    """
    return {k: v for k, v in raw.items() if not k.startswith("_")}
