from collections.abc import Iterator
from contextlib import contextmanager
from enum import Enum
from functools import wraps
from inspect import iscoroutinefunction
from os import environ

from azure.monitor.opentelemetry import configure_azure_monitor
from opentelemetry import metrics, trace
from opentelemetry.instrumentation.aiohttp_client import AioHttpClientInstrumentor
from opentelemetry.metrics import Counter
from opentelemetry.semconv.attributes import service_attributes
from opentelemetry.trace import Status, StatusCode
from opentelemetry.trace.span import INVALID_SPAN, Span
from opentelemetry.util.types import Attributes, AttributeValue
from structlog.contextvars import bind_contextvars, get_contextvars

MODULE_NAME = "com.github.reminder-service"
VERSION = environ.get("VERSION", "0.0.0-unknown")


class SpanAttributeEnum(str, Enum):
    """
    Business attributes of a reminder operation.

    Each one is set on the current span and bound to the structured logs, so traces, metrics and logs can be joined.
    """

    AUDIT_ACTION = "audit.action"
    """Audited mutation, `CREATE`, `UPDATE` or `DELETE`."""
    ORGANIZATION_ID = "organization.id"
    """Organization a listing is scoped to."""
    REMINDER_ID = "reminder.id"
    """Reminder document ID."""
    USER_ID = "user.id"
    """Owner of the reminder, also the actor of the mutation."""

    def attribute(
        self,
        value: AttributeValue,
    ) -> None:
        bind_contextvars(**{self.value: value})
        span = _current_span()
        if span:
            span.set_attribute(self.value, value)


class SpanMeterEnum(str, Enum):
    REMINDER_AUDIT_FAILED = "reminder.audit.failed"
    """Audit entries lost, the mutation succeeded anyway."""
    REMINDER_AUDIT_WRITTEN = "reminder.audit.written"
    """Audit entries persisted."""

    def counter(self) -> Counter:
        return meter.create_counter(
            description=self.__doc__ or "",
            name=self.value,
            unit="entries",
        )


# Exporter is only enabled when Application Insights is configured
if environ.get("APPLICATIONINSIGHTS_CONNECTION_STRING"):
    configure_azure_monitor()
    AioHttpClientInstrumentor().instrument()  # Azure SDK transport
else:
    print(  # noqa: T201
        'Env "APPLICATIONINSIGHTS_CONNECTION_STRING" is not set, telemetry is not exported'
    )

_resource_attributes = {
    service_attributes.SERVICE_NAME: MODULE_NAME,
    service_attributes.SERVICE_VERSION: VERSION,
}
tracer = trace.get_tracer(
    attributes=_resource_attributes,
    instrumenting_module_name=MODULE_NAME,
)
meter = metrics.get_meter(
    name=MODULE_NAME,
)

reminder_audit_failed = SpanMeterEnum.REMINDER_AUDIT_FAILED.counter()
reminder_audit_written = SpanMeterEnum.REMINDER_AUDIT_WRITTEN.counter()


def counter_add(
    metric: Counter,
    value: int,
) -> None:
    """
    Increment a counter, tagged with the attributes bound to the current context.
    """
    metric.add(
        amount=value,
        attributes={
            **_resource_attributes,
            **get_contextvars(),  # Context wins over resource attributes
        },
    )


def record_exception(e: BaseException) -> None:
    """
    Attach a handled exception to the current span, the span status is left untouched.
    """
    span = _current_span()
    if span:
        span.record_exception(e)


def start_as_current_span(
    name: str,
    attributes: Attributes = None,
):
    """
    Decorator running the function, sync or async, inside a new span.
    """

    def decorator(func):
        if iscoroutinefunction(func):

            @wraps(func)
            async def async_wrapper(*args, **kwargs):
                with tracer.start_as_current_span(name, attributes=attributes):
                    return await func(*args, **kwargs)

            return async_wrapper

        @wraps(func)
        def wrapper(*args, **kwargs):
            with tracer.start_as_current_span(name, attributes=attributes):
                return func(*args, **kwargs)

        return wrapper

    return decorator


@contextmanager
def suppress(*exceptions: type[BaseException]) -> Iterator[None]:
    """
    Like `contextlib.suppress`, but the exception is kept on the span, and the span stays OK.
    """
    try:
        yield
    except exceptions as e:
        span = trace.get_current_span()
        span.set_status(Status(StatusCode.OK))
        span.record_exception(e)


def _current_span() -> Span | None:
    span = trace.get_current_span()
    return None if span == INVALID_SPAN else span
