from typing import Any

from pydantic import ValidationError

from app.helpers.audit import AuditLogger
from app.helpers.logging import logger
from app.helpers.monitoring import SpanAttributeEnum, start_as_current_span
from app.helpers.users import PATIENT_ROLE, UserDirectory
from app.models.log import AuditActionEnum
from app.models.query import FieldFilterModel, FilterOperatorEnum
from app.models.reminder import (
    ReminderCreateModel,
    ReminderModel,
    ReminderUpdateModel,
)
from app.persistence.istore import SERVER_TIMESTAMP, IStore, StoreError

_COLLECTION = "reminders"
_ENTITY = "Reminder"
_ORDER_BY = "datetime"
# Never assigned to a user, stands for an empty membership filter
_NO_MATCH_USER_ID = "none"


class ReminderNotFoundError(Exception):
    """
    Reminder does not exist, or is owned by another user.

    Both causes raise the same error, with the same message.
    """

    def __init__(self, reminder_id: str):
        super().__init__(f"Reminder {reminder_id} not found or unauthorized")
        self.reminder_id = reminder_id


class ReminderAdapter:
    """
    Reminder lifecycle over the document store.

    Every successful mutation writes an audit entry, reads are not audited.
    """

    _audit: AuditLogger
    _store: IStore
    _users: UserDirectory

    def __init__(
        self,
        audit: AuditLogger,
        store: IStore,
        users: UserDirectory,
    ):
        self._audit = audit
        self._store = store
        self._users = users

    @start_as_current_span("reminder_create")
    async def create(self, reminder: ReminderCreateModel) -> ReminderModel:
        # Enrich span
        SpanAttributeEnum.USER_ID.attribute(reminder.user_id)

        # Persist
        data = reminder.to_document()
        data["createdAt"] = SERVER_TIMESTAMP
        document = await self._store.insert(_COLLECTION, data)
        created = ReminderModel.from_document(document)

        # Enrich span
        SpanAttributeEnum.REMINDER_ID.attribute(created.reminder_id)

        await self._audit.log(
            action=AuditActionEnum.CREATE,
            details={"data": _snapshot(document)},
            entity=_ENTITY,
            entity_id=created.reminder_id,
            entity_name=created.title,
            user_id=created.user_id,
        )
        logger.info("Reminder %s created", created.reminder_id)
        return created

    @start_as_current_span("reminder_list_by_user")
    async def list_by_user(self, user_id: str) -> list[ReminderModel]:
        """
        List the reminders of a user, ascending by date.

        An unknown user has no reminders.
        """
        # Enrich span
        SpanAttributeEnum.USER_ID.attribute(user_id)

        documents = await self._store.query(
            _COLLECTION,
            filters=[FieldFilterModel(field="userId", value=user_id)],
            order_by=_ORDER_BY,
        )
        reminders = _parse_all(documents)
        logger.debug("Found %s reminders for user %s", len(reminders), user_id)
        return reminders

    @start_as_current_span("reminder_list_by_organization")
    async def list_by_organization(self, organization_id: str) -> list[ReminderModel]:
        """
        List the reminders of all the patients of an organization, ascending by date.

        Returns an empty list if anything fails.
        """
        # Enrich span
        SpanAttributeEnum.ORGANIZATION_ID.attribute(organization_id)

        try:
            patients = await self._users.search(
                organization_id=organization_id,
                role=PATIENT_ROLE,
            )
            if not patients:
                logger.info("No patients found for organization %s", organization_id)
                return []

            user_ids = [patient.user_id for patient in patients if patient.user_id]
            documents = await self._store.query(
                _COLLECTION,
                filters=[
                    FieldFilterModel(
                        field="userId",
                        operator=FilterOperatorEnum.IN,
                        value=user_ids or [_NO_MATCH_USER_ID],
                    )
                ],
                order_by=_ORDER_BY,
            )
        except StoreError:
            logger.exception(
                "Error fetching reminders for organization %s", organization_id
            )
            return []

        reminders = _parse_all(documents)
        logger.debug(
            "Found %s reminders for organization %s", len(reminders), organization_id
        )
        return reminders

    @start_as_current_span("reminder_update")
    async def update(
        self,
        reminder_id: str,
        update: ReminderUpdateModel,
    ) -> ReminderModel:
        """
        Apply the supplied fields to a reminder owned by the user.

        Returns the reminder with the changes applied. Raises `ReminderNotFoundError` if the user cannot access it.
        """
        # Enrich span
        SpanAttributeEnum.REMINDER_ID.attribute(reminder_id)
        SpanAttributeEnum.USER_ID.attribute(update.user_id)

        old_document = await self._get_owned(reminder_id, update.user_id)

        # Persist only if something changed
        delta = update.delta()
        if delta:
            await self._store.update(_COLLECTION, reminder_id, delta)
        updated = ReminderModel.from_document({**old_document, **delta})

        await self._audit.log(
            action=AuditActionEnum.UPDATE,
            details={
                "oldData": _snapshot(old_document),
                "newData": delta,
            },
            entity=_ENTITY,
            entity_id=reminder_id,
            entity_name=delta.get("title") or old_document.get("title"),
            user_id=update.user_id,
        )
        logger.info("Reminder %s updated", reminder_id)
        return updated

    @start_as_current_span("reminder_delete")
    async def delete(
        self,
        reminder_id: str,
        user_id: str,
    ) -> None:
        """
        Delete a reminder owned by the user.

        The audit entry is written before the removal, with the last state of the reminder. Raises `ReminderNotFoundError` if the user cannot access it.
        """
        # Enrich span
        SpanAttributeEnum.REMINDER_ID.attribute(reminder_id)
        SpanAttributeEnum.USER_ID.attribute(user_id)

        old_document = await self._get_owned(reminder_id, user_id)

        await self._audit.log(
            action=AuditActionEnum.DELETE,
            details={"data": _snapshot(old_document)},
            entity=_ENTITY,
            entity_id=reminder_id,
            entity_name=old_document.get("title"),
            user_id=user_id,
        )
        await self._store.delete(_COLLECTION, reminder_id)
        logger.info("Reminder %s deleted", reminder_id)

    async def _get_owned(
        self,
        reminder_id: str,
        user_id: str,
    ) -> dict[str, Any]:
        document = await self._store.get(_COLLECTION, reminder_id)
        if not document or document.get("userId") != user_id:
            raise ReminderNotFoundError(reminder_id)
        return document


def _snapshot(document: dict[str, Any]) -> dict[str, Any]:
    """
    Stored fields of a reminder, without its ID.
    """
    return {k: v for k, v in document.items() if k != "id"}


def _parse_all(documents: list[dict[str, Any]]) -> list[ReminderModel]:
    reminders: list[ReminderModel] = []
    for document in documents:
        try:
            reminders.append(ReminderModel.from_document(document))
        except ValidationError:
            logger.debug("Parsing error", exc_info=True)
    return reminders
