import json
import random
import string
from collections.abc import AsyncIterator, Iterator
from os import environ
from typing import Any

# Tests run on the memory store, config must be set before the app is imported
environ.setdefault(
    "CONFIG_JSON",
    json.dumps(
        {
            "database": {
                "mode": "memory",
            },
            "monitoring": {
                "logging": {
                    "app_level": "DEBUG",
                },
            },
        }
    ),
)

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from app.helpers.audit import AuditLogger  # noqa: E402
from app.helpers.config_models.database import CosmosDbModel, MemoryModel  # noqa: E402
from app.helpers.reminders import ReminderAdapter  # noqa: E402
from app.helpers.users import UserDirectory  # noqa: E402
from app.models.query import FieldFilterModel  # noqa: E402
from app.persistence.cosmos_db import CosmosDbStore  # noqa: E402
from app.persistence.istore import StoreError  # noqa: E402
from app.persistence.memory import MemoryStore  # noqa: E402


class MemoryStoreMock(MemoryStore):
    """
    Memory store recording the operations, and failing on demand.

    Failures are declared as `(operation, collection)` pairs, e.g. `("get", "users")`.
    """

    failures: set[tuple[str, str]]
    operations: list[tuple[str, str]]

    def __init__(self) -> None:
        super().__init__(MemoryModel())
        self.failures = set()
        self.operations = []

    async def insert(
        self,
        collection: str,
        record: dict[str, Any],
    ) -> dict[str, Any]:
        self._record("insert", collection)
        return await super().insert(collection, record)

    async def get(
        self,
        collection: str,
        document_id: str,
    ) -> dict[str, Any] | None:
        self._record("get", collection)
        return await super().get(collection, document_id)

    async def query(
        self,
        collection: str,
        filters: list[FieldFilterModel],
        order_by: str | None = None,
    ) -> list[dict[str, Any]]:
        self._record("query", collection)
        return await super().query(collection, filters, order_by)

    async def update(
        self,
        collection: str,
        document_id: str,
        fields: dict[str, Any],
    ) -> None:
        self._record("update", collection)
        return await super().update(collection, document_id, fields)

    async def delete(
        self,
        collection: str,
        document_id: str,
    ) -> None:
        self._record("delete", collection)
        return await super().delete(collection, document_id)

    def _record(self, operation: str, collection: str) -> None:
        self.operations.append((operation, collection))
        if (operation, collection) in self.failures:
            raise StoreError(f"Simulated {operation} failure on {collection}")

    def documents(self, collection: str) -> list[dict[str, Any]]:
        """
        Raw documents of a collection, in insertion order.
        """
        return list(self._collections[collection].values())


class CosmosContainerMock:
    """
    In-memory stand-in for a Cosmos DB container client.

    If `error` is set, every call raises it, like the SDK does on a lost connection.
    """

    error: Exception | None
    items: dict[str, dict[str, Any]]

    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.items = {}

    async def create_item(self, body: dict[str, Any]) -> dict[str, Any]:
        self._raise()
        self.items[body["id"]] = {**body, "_rid": "rid", "_ts": 0}
        return self.items[body["id"]]

    async def read_item(self, item: str, partition_key: Any) -> dict[str, Any]:  # noqa: ARG002
        self._raise()
        return self.items[item]

    async def replace_item(self, item: str, body: dict[str, Any]) -> dict[str, Any]:
        self._raise()
        self.items[item] = body
        return body

    async def delete_item(self, item: str, partition_key: Any) -> None:  # noqa: ARG002
        self._raise()
        self.items.pop(item)

    async def query_items(
        self,
        query: str,  # noqa: ARG002
        parameters: list[dict[str, Any]],
    ) -> AsyncIterator[dict[str, Any]]:
        # Errors surface while paging, as with the SDK pager
        self._raise()
        ids = [p["value"] for p in parameters if p["name"] == "@id"]
        for document_id, item in list(self.items.items()):
            if not ids or document_id in ids:
                yield item

    def _raise(self) -> None:
        if self.error:
            raise self.error


class CosmosClientMock:
    containers: dict[str, CosmosContainerMock]
    error: Exception | None

    def __init__(self, error: Exception | None = None) -> None:
        self.containers = {}
        self.error = error

    def get_database_client(self, database: str) -> "CosmosClientMock":  # noqa: ARG002
        return self

    def get_container_client(self, container: str) -> CosmosContainerMock:
        if container not in self.containers:
            self.containers[container] = CosmosContainerMock(self.error)
        return self.containers[container]


class CosmosDbStoreMock(CosmosDbStore):
    """
    Cosmos DB store over an in-memory client, no network involved.
    """

    client: CosmosClientMock

    def __init__(self, error: Exception | None = None) -> None:
        super().__init__(
            CosmosDbModel(
                database="reminder-service",
                endpoint="https://localhost:8081",
            )
        )
        self.client = CosmosClientMock(error)

    async def _use_service_client(self) -> CosmosClientMock:  # pyright: ignore
        return self.client


@pytest.fixture
def random_text() -> str:
    text = "".join(random.choice(string.ascii_letters) for _ in range(16))
    return text


@pytest.fixture
def store() -> MemoryStoreMock:
    return MemoryStoreMock()


@pytest.fixture
def users(store: MemoryStoreMock) -> UserDirectory:
    return UserDirectory(store)


@pytest.fixture
def audit(store: MemoryStoreMock, users: UserDirectory) -> AuditLogger:
    return AuditLogger(
        store=store,
        users=users,
    )


@pytest.fixture
def reminders(
    audit: AuditLogger,
    store: MemoryStoreMock,
    users: UserDirectory,
) -> ReminderAdapter:
    return ReminderAdapter(
        audit=audit,
        store=store,
        users=users,
    )


@pytest.fixture
def client() -> Iterator[TestClient]:
    from app.main import api

    with TestClient(api) as client:
        yield client


async def seed_user(
    store: MemoryStore,
    name: str | None,
    organization_id: str,
    role: str = "user",
) -> str:
    """
    Insert a user profile in the directory, returns its ID.
    """
    document = await store.insert(
        "users",
        {
            "name": name,
            "organizationId": organization_id,
            "role": role,
        },
    )
    return document["id"]
