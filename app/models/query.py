from enum import Enum
from typing import Any

from pydantic import BaseModel, ValidationInfo, field_validator


class FilterOperatorEnum(str, Enum):
    EQUAL = "=="
    """Field value equals the filter value."""
    IN = "in"
    """Field value is one of the filter values."""


class FieldFilterModel(BaseModel, frozen=True):
    field: str
    operator: FilterOperatorEnum = FilterOperatorEnum.EQUAL
    value: Any

    @field_validator("value")
    @classmethod
    def _validate_value(cls, value: Any, info: ValidationInfo) -> Any:
        """
        Membership filters require a list of candidates.

        Emptiness is not checked here, backends decide how to handle it.
        """
        if info.data.get("operator", None) == FilterOperatorEnum.IN and not isinstance(
            value, list
        ):
            raise ValueError("Membership filter requires a list")
        return value

    def match(self, document: dict[str, Any]) -> bool:
        """
        Test a document against the filter.

        A document missing the field never matches.
        """
        if self.field not in document:
            return False
        if self.operator == FilterOperatorEnum.IN:
            return document[self.field] in self.value
        return document[self.field] == self.value
