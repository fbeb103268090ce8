from enum import Enum
from functools import cached_property

from pydantic import BaseModel, Field, SecretStr, ValidationInfo, field_validator

from app.persistence.istore import IStore


class ModeEnum(str, Enum):
    COSMOS_DB = "cosmos_db"
    """Use Azure Cosmos DB, durable."""
    MEMORY = "memory"
    """Use process memory, for tests only."""


class CosmosDbModel(BaseModel, frozen=True):
    access_key: SecretStr | None = None  # Managed identity is used if not set
    database: str
    endpoint: str
    partition_key: str = "id"
    readiness_collection: str = "readiness"  # Written to by the readiness probe, must exist

    @cached_property
    def instance(self) -> IStore:
        from app.persistence.cosmos_db import (
            CosmosDbStore,
        )

        return CosmosDbStore(self)


class MemoryModel(BaseModel, frozen=True):
    @cached_property
    def instance(self) -> IStore:
        from app.persistence.memory import (
            MemoryStore,
        )

        return MemoryStore(self)


class DatabaseModel(BaseModel):
    cosmos_db: CosmosDbModel | None = None
    memory: MemoryModel | None = MemoryModel()  # Object is fully defined by default
    mode: ModeEnum = Field(
        default=ModeEnum.COSMOS_DB,
        validate_default=True,
    )

    @field_validator("mode")
    @classmethod
    def _validate_mode(
        cls,
        mode: ModeEnum,
        info: ValidationInfo,
    ) -> ModeEnum:
        if mode == ModeEnum.COSMOS_DB and not info.data.get("cosmos_db", None):
            raise ValueError("Cosmos DB config required")
        if mode == ModeEnum.MEMORY and not info.data.get("memory", None):
            raise ValueError("Memory config required")
        return mode

    @cached_property
    def instance(self) -> IStore:
        if self.mode == ModeEnum.MEMORY:
            assert self.memory
            return self.memory.instance

        assert self.cosmos_db
        return self.cosmos_db.instance
