from enum import Enum

from pydantic import BaseModel


class ReadinessEnum(str, Enum):
    FAIL = "fail"
    """The service is not ready."""
    OK = "ok"
    """The service is ready."""


class ReadinessCheckModel(BaseModel):
    id: str
    status: ReadinessEnum


class ReadinessModel(BaseModel):
    checks: list[ReadinessCheckModel]
    status: ReadinessEnum

    @classmethod
    def from_checks(cls, **checks: ReadinessEnum) -> "ReadinessModel":
        """
        Aggregate component checks, the whole readiness fails if one of them fails.
        """
        status = (
            ReadinessEnum.OK
            if all(check == ReadinessEnum.OK for check in checks.values())
            else ReadinessEnum.FAIL
        )
        return cls(
            checks=[
                ReadinessCheckModel(id=name, status=check)
                for name, check in checks.items()
            ],
            status=status,
        )
