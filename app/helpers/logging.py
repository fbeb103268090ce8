from logging import Logger, _nameToLevel, basicConfig

from structlog import (
    configure_once,
    get_logger as structlog_get_logger,
    make_filtering_bound_logger,
)
from structlog.contextvars import merge_contextvars
from structlog.dev import ConsoleRenderer
from structlog.processors import (
    JSONRenderer,
    StackInfoRenderer,
    TimeStamper,
    UnicodeDecoder,
    add_log_level,
    format_exc_info,
)
from structlog.stdlib import PositionalArgumentsFormatter
from structlog.typing import Processor

from app.helpers.config import CONFIG
from app.helpers.config_models.monitoring import LoggingModel, LoggingRendererEnum


def _renderers(config: LoggingModel) -> list[Processor]:
    if config.renderer == LoggingRendererEnum.JSON:
        # Exceptions are rendered as a string field, one object per line
        return [format_exc_info, JSONRenderer()]
    return [ConsoleRenderer()]


_config = CONFIG.monitoring.logging

# Dependencies log through the standard library
basicConfig(level=_config.sys_level.value)

configure_once(
    cache_logger_on_first_use=True,
    context_class=dict,
    wrapper_class=make_filtering_bound_logger(_nameToLevel[_config.app_level.value]),
    processors=[
        merge_contextvars,  # Attributes bound by the spans
        add_log_level,
        PositionalArgumentsFormatter(),  # %s-style
        TimeStamper(fmt="iso", utc=True),
        StackInfoRenderer(),
        UnicodeDecoder(),
        *_renderers(_config),
    ],
)

# Bound logger quacks like the standard one
logger: Logger = structlog_get_logger("reminder-service")
