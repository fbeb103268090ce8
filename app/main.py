from contextlib import asynccontextmanager
from http import HTTPStatus
from typing import Annotated

from fastapi import FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.helpers.audit import AuditLogger
from app.helpers.config import CONFIG
from app.helpers.http import close_aiohttp_sessions
from app.helpers.logging import logger
from app.helpers.monitoring import start_as_current_span
from app.helpers.reminders import ReminderAdapter, ReminderNotFoundError
from app.helpers.users import UserDirectory
from app.models.error import ErrorInnerModel, ErrorModel
from app.models.readiness import ReadinessEnum, ReadinessModel
from app.models.reminder import (
    MessageModel,
    ReminderCreateModel,
    ReminderDeleteModel,
    ReminderListModel,
    ReminderModel,
    ReminderResponseModel,
    ReminderUpdateModel,
)
from app.persistence.istore import StoreError

# First log
logger.info(
    "reminder-service v%s",
    CONFIG.version,
)

# Persistences
_db = CONFIG.database.instance
_users = UserDirectory(_db)
_audit = AuditLogger(
    store=_db,
    users=_users,
)
_reminders = ReminderAdapter(
    audit=_audit,
    store=_db,
    users=_users,
)


@asynccontextmanager
async def lifespan(app: FastAPI):  # noqa: ARG001
    yield
    await _db.close()
    await close_aiohttp_sessions()


# FastAPI
api = FastAPI(
    description="Medication reminders, with an audit trail of every change.",
    lifespan=lifespan,
    root_path=CONFIG.api.root_path,
    title="reminder-service",
    version=CONFIG.version,
)
api.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_headers=["*"],
    allow_methods=["*"],
    allow_origins=CONFIG.api.cors_origins,
)


@api.get("/health")
@start_as_current_span("health_get")
async def health_get() -> dict[str, str]:
    """
    Check if the service is running, for clients of the previous API.

    Returns a 200 OK with a status message.
    """
    return {"status": "Reminder Service is running"}


@api.get("/health/liveness")
@start_as_current_span("health_liveness_get")
async def health_liveness_get() -> None:
    """
    Liveness probe, answers as long as the process serves HTTP.

    Always returns a 200 OK.
    """
    return


@api.get(
    "/health/readiness",
    status_code=HTTPStatus.OK,
)
@start_as_current_span("health_readiness_get")
async def health_readiness_get() -> JSONResponse:
    """
    Readiness probe, checks the document store can be written and read.

    Checks are: startup, store.

    Returns a 200 OK with the check results if all of them pass, a 503 Service Unavailable otherwise.
    """
    readiness = ReadinessModel.from_checks(
        startup=ReadinessEnum.OK,
        store=await _db.readiness(),
    )
    return JSONResponse(
        content=readiness.model_dump(mode="json"),
        status_code=(
            HTTPStatus.OK
            if readiness.status == ReadinessEnum.OK
            else HTTPStatus.SERVICE_UNAVAILABLE
        ),
    )


@api.get("/api/reminders/all")
@start_as_current_span("reminder_list_by_organization_get")
async def reminder_list_by_organization_get(
    organization_id: Annotated[str, Query(alias="organizationId")],
) -> list[ReminderModel]:
    """
    REST API to list the reminders of all the patients of an organization.

    Parameters:
    - organizationId: Organization to list the reminders for

    Returns a list of reminders, ascending by date. The list is empty if the organization has no patients, or if the search failed.
    """
    return await _reminders.list_by_organization(organization_id)


@api.post(
    "/reminders",
    status_code=HTTPStatus.CREATED,
)
@start_as_current_span("reminder_post")
async def reminder_post(
    reminder: ReminderCreateModel,
) -> ReminderResponseModel:
    """
    REST API to create a reminder.

    Required body parameters is a JSON object `ReminderCreateModel`: `userId`, `title` and `datetime`. Optional `description`.

    Returns the created reminder, with its `reminderId`.
    """
    try:
        created = await _reminders.create(reminder)
    except StoreError as e:
        return _store_error("Failed to create reminder", e)
    return ReminderResponseModel(
        message="Reminder created successfully",
        reminder=created,
    )


@api.get("/reminders/{user_id}")
@start_as_current_span("reminder_list_get")
async def reminder_list_get(user_id: str) -> ReminderListModel:
    """
    REST API to list the reminders of a user.

    Returns the reminders, ascending by date. The list is empty for an unknown user.
    """
    try:
        reminders = await _reminders.list_by_user(user_id)
    except StoreError as e:
        return _store_error("Failed to fetch reminders", e)
    return ReminderListModel(
        reminders=reminders,
        user_id=user_id,
    )


@api.put("/reminders/{reminder_id}")
@start_as_current_span("reminder_put")
async def reminder_put(
    reminder_id: str,
    update: ReminderUpdateModel,
) -> ReminderResponseModel:
    """
    REST API to update a reminder.

    Required body parameter is `userId`, the owner of the reminder. Optional `title`, `description`, `datetime` and `completed`, only the supplied ones are changed.

    Returns the updated reminder. Returns a 404 Not Found if the reminder does not exist or is owned by another user.
    """
    try:
        updated = await _reminders.update(
            reminder_id=reminder_id,
            update=update,
        )
    except StoreError as e:
        return _store_error("Failed to update reminder", e)
    return ReminderResponseModel(
        message="Reminder updated successfully",
        reminder=updated,
    )


@api.delete("/reminders/{reminder_id}")
@start_as_current_span("reminder_delete")
async def reminder_delete(
    reminder_id: str,
    delete: ReminderDeleteModel,
) -> MessageModel:
    """
    REST API to delete a reminder.

    Required body parameter is `userId`, the owner of the reminder.

    Returns a 404 Not Found if the reminder does not exist or is owned by another user.
    """
    try:
        await _reminders.delete(
            reminder_id=reminder_id,
            user_id=delete.user_id,
        )
    except StoreError as e:
        return _store_error("Failed to delete reminder", e)
    return MessageModel(message="Reminder deleted successfully")


@api.exception_handler(StarletteHTTPException)
async def http_exception_handler(
    request: Request,  # noqa: ARG001
    exc: StarletteHTTPException,
) -> JSONResponse:
    """
    Handle HTTP exceptions and return the error in a standard format.
    """
    return _standard_error(
        message=exc.detail,
        status_code=HTTPStatus(exc.status_code),
    )


@api.exception_handler(ReminderNotFoundError)
async def reminder_not_found_handler(
    request: Request,  # noqa: ARG001
    exc: ReminderNotFoundError,  # noqa: ARG001
) -> JSONResponse:
    """
    Handle unknown or foreign reminders, without telling which one it is.
    """
    return _standard_error(
        message="Reminder not found or unauthorized",
        status_code=HTTPStatus.NOT_FOUND,
    )


@api.exception_handler(RequestValidationError)
@api.exception_handler(ValidationError)
async def validation_exception_handler(
    request: Request,  # noqa: ARG001
    exc: RequestValidationError | ValidationError,
) -> JSONResponse:
    """
    Handle validation exceptions and return the error in a standard format.
    """
    return _standard_error(
        details=[str(x) for x in exc.errors()],  # Pydantic returns well formatted errors, use them
        message="Validation error",
        status_code=HTTPStatus.BAD_REQUEST,
    )


def _store_error(message: str, e: StoreError) -> JSONResponse:
    """
    Generate an internal error response for a store failure.
    """
    logger.error("%s: %s", message, e)
    return _standard_error(
        details=[str(e)],
        message=message,
        status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
    )


def _standard_error(
    message: str,
    status_code: HTTPStatus,
    details: list[str] | None = None,
) -> JSONResponse:
    """
    Generate a standard error response.
    """
    model = ErrorModel(
        error=ErrorInnerModel(
            details=details or [],
            message=message,
        )
    )
    return JSONResponse(
        content=model.model_dump(mode="json"),
        status_code=status_code,
    )
