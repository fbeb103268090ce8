from typing import Any

from app.helpers.logging import logger
from app.helpers.monitoring import (
    SpanAttributeEnum,
    counter_add,
    record_exception,
    reminder_audit_failed,
    reminder_audit_written,
    start_as_current_span,
)
from app.helpers.users import UserDirectory
from app.models.log import AuditActionEnum, LogEntryModel
from app.persistence.istore import SERVER_TIMESTAMP, IStore

_COLLECTION = "logs"


class AuditLogger:
    """
    Append-only audit trail of the mutations.

    Logging is best-effort: failures are reported to the logs and to OpenTelemetry, but never raised to the caller.
    """

    _store: IStore
    _users: UserDirectory

    def __init__(self, store: IStore, users: UserDirectory):
        self._store = store
        self._users = users

    @start_as_current_span("audit_log")
    async def log(  # noqa: PLR0913
        self,
        action: AuditActionEnum,
        user_id: str | None,
        entity: str,
        entity_id: str,
        entity_name: str | None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Write an audit entry for a mutation.

        The actor name is resolved from the user directory, `Unknown` if it cannot be.
        """
        # Enrich span
        SpanAttributeEnum.AUDIT_ACTION.attribute(action.value)

        try:
            user_name = await self._user_name(user_id)
            entry = LogEntryModel(
                action=action,
                details=details or {},
                entity=entity,
                entity_id=entity_id,
                entity_name=entity_name,  # pyright: ignore
                user_id=user_id,  # pyright: ignore
                user_name=user_name,
            )
            document = entry.model_dump(
                by_alias=True,
                exclude={"timestamp"},
                mode="json",
            )
            document["timestamp"] = SERVER_TIMESTAMP
            await self._store.insert(_COLLECTION, document)

        # Never fail the mutation because of the audit trail
        except Exception as e:
            logger.exception("Error logging change")
            record_exception(e)
            counter_add(reminder_audit_failed, 1)
            return

        counter_add(reminder_audit_written, 1)
        logger.info(
            "Logged: %s on %s (%s, %s) by %s (%s)",
            entry.action.value,
            entry.entity,
            entry.entity_id,
            entry.entity_name,
            entry.user_id,
            entry.user_name,
        )

    async def _user_name(self, user_id: str | None) -> str:
        """
        Resolve the display name of a user.

        Returns `Unnamed User` if the user has no name, `Unknown` if the user cannot be found.
        """
        if not user_id:
            return "Unknown"
        try:
            user = await self._users.get(user_id)
        except Exception:
            logger.exception("Error fetching user %s", user_id)
            return "Unknown"
        if not user:
            return "Unknown"
        return user.name or "Unnamed User"
