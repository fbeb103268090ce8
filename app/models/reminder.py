from datetime import datetime
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, StringConstraints
from pydantic.alias_generators import to_camel

# Required text, "   " is accepted as the original clients do
RequiredStr = Annotated[str, StringConstraints(min_length=1)]


class _CamelModel(BaseModel):
    # Fields are camelCase on the wire and in the store
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class ReminderModel(_CamelModel):
    # Immutable fields
    created_at: datetime | None = Field(default=None, frozen=True)
    reminder_id: str = Field(frozen=True)
    user_id: str = Field(frozen=True)
    # Editable fields
    completed: bool = False
    description: str = ""
    due_date_time: str = Field(alias="datetime")
    title: str

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> "ReminderModel":
        """
        Build a reminder from a stored document, the document `id` is the reminder ID.
        """
        return cls.model_validate(
            {
                **document,
                "reminderId": document["id"],
            }
        )


class ReminderCreateModel(_CamelModel):
    description: str | None = None
    due_date_time: RequiredStr = Field(alias="datetime")
    title: RequiredStr
    user_id: RequiredStr

    def to_document(self) -> dict[str, Any]:
        """
        Serialize the stored fields of a new reminder.

        Server-assigned fields (ID, creation date) are not included.
        """
        return {
            "userId": self.user_id,
            "title": self.title,
            "description": self.description or "",
            "datetime": self.due_date_time,
            "completed": False,
        }


class ReminderUpdateModel(_CamelModel):
    completed: bool | None = None
    description: str | None = None
    due_date_time: RequiredStr | None = Field(default=None, alias="datetime")
    title: RequiredStr | None = None
    user_id: RequiredStr

    def delta(self) -> dict[str, Any]:
        """
        Fields to apply, by their stored name.

        A field applies when it is present and not null, even if falsy (e.g. `completed=False`, `description=""`).
        """
        return self.model_dump(
            by_alias=True,
            exclude={"user_id"},
            exclude_none=True,
            exclude_unset=True,
        )


class ReminderDeleteModel(_CamelModel):
    user_id: RequiredStr


class ReminderResponseModel(_CamelModel):
    message: str
    reminder: ReminderModel


class ReminderListModel(_CamelModel):
    reminders: list[ReminderModel]
    user_id: str


class MessageModel(_CamelModel):
    message: str
