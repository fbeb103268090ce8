from collections import OrderedDict, defaultdict
from copy import deepcopy
from typing import Any
from uuid import uuid4

from app.helpers.config_models.database import MemoryModel
from app.helpers.logging import logger
from app.models.query import FieldFilterModel
from app.models.readiness import ReadinessEnum
from app.persistence.istore import IStore, StoreError


class MemoryStore(IStore):
    """
    A simple in-memory document store.

    Data is lost when the process stops, use it for tests only. Documents are copied in and out, callers never share references with the store.
    """

    _collections: defaultdict[str, OrderedDict[str, dict[str, Any]]]
    _config: MemoryModel

    def __init__(self, config: MemoryModel):
        logger.warning(
            "Using memory store, data will be lost on restart, prefer a durable store like Cosmos DB"
        )
        self._collections = defaultdict(OrderedDict)
        self._config = config

    async def readiness(self) -> ReadinessEnum:
        """
        Check the readiness of the memory store.
        """
        return ReadinessEnum.OK  # Always ready, it's memory :)

    async def insert(
        self,
        collection: str,
        record: dict[str, Any],
    ) -> dict[str, Any]:
        document_id = str(uuid4())
        logger.debug("Inserting document %s in %s", document_id, collection)

        document = self._resolve_sentinels(record)
        document["id"] = document_id
        self._collections[collection][document_id] = deepcopy(document)

        return document

    async def get(
        self,
        collection: str,
        document_id: str,
    ) -> dict[str, Any] | None:
        document = self._collections[collection].get(document_id, None)
        if document is None:
            return None
        return deepcopy(document)

    async def query(
        self,
        collection: str,
        filters: list[FieldFilterModel],
        order_by: str | None = None,
    ) -> list[dict[str, Any]]:
        self._check_filters(filters)

        documents = [
            deepcopy(document)
            for document in self._collections[collection].values()
            if all(query_filter.match(document) for query_filter in filters)
        ]

        # Documents without the ordering field are excluded, like in most document stores
        if order_by:
            documents = sorted(
                (document for document in documents if order_by in document),
                key=lambda document: document[order_by],
            )

        return documents

    async def update(
        self,
        collection: str,
        document_id: str,
        fields: dict[str, Any],
    ) -> None:
        document = self._collections[collection].get(document_id, None)
        if document is None:
            raise StoreError(f"Document {document_id} not found in {collection}")
        document.update(deepcopy(self._resolve_sentinels(fields)))

    async def delete(
        self,
        collection: str,
        document_id: str,
    ) -> None:
        self._collections[collection].pop(document_id, None)
