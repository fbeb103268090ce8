from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel


class AuditActionEnum(str, Enum):
    CREATE = "CREATE"
    DELETE = "DELETE"
    UPDATE = "UPDATE"


class LogEntryModel(BaseModel):
    """
    Audit record of a mutation.

    Entries are append-only, they are never read back nor changed by the service.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        frozen=True,
        populate_by_name=True,
    )

    action: AuditActionEnum
    details: dict[str, Any] = {}
    entity: str
    entity_id: str
    entity_name: str = "N/A"
    timestamp: datetime | None = None  # Server-assigned at write time
    user_id: str = "unknown"
    user_name: str = "Unknown"

    @field_validator("user_id", mode="before")
    @classmethod
    def _validate_user_id(cls, user_id: str | None) -> str:
        return user_id or "unknown"

    @field_validator("entity_name", mode="before")
    @classmethod
    def _validate_entity_name(cls, entity_name: str | None) -> str:
        return entity_name or "N/A"
