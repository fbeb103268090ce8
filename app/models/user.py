from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class UserModel(BaseModel):
    """
    Read-only view of a user profile, owned by the user directory.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    name: str | None = None
    organization_id: str | None = None
    role: str | None = None
    user_id: str = Field(alias="id")
