"""
Logging Configuration

structlog on top of stdlib logging. Modules log snake_case events with
keyword context, e.g. ``logger.info("crawler_run_complete", crawled=12)``.
The API, agent CLI and crawler CLI each call ``setup_logging`` once with
their component name; Airflow configures logging for the DAG itself.
"""
import logging
import sys
from typing import Any, Optional

import structlog
from structlog.types import EventDict, Processor

from config.settings import settings

# per-request loggers, held at WARNING or above
QUIET_LOGGERS = ("httpx", "httpcore", "urllib3")


def component_context(component: str) -> Processor:
    """Processor stamping environment and component onto every entry."""

    def add_component(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict["environment"] = settings.environment
        event_dict.setdefault("component", component)
        return event_dict

    return add_component


def setup_logging(component: str = "distress_leads") -> structlog.BoundLogger:
    """
    Configure structured logging for one process.

    Args:
        component: Entry point name ("api", "agent", "crawler")

    Returns:
        Logger bound to the component
    """
    level = getattr(logging, settings.log_level.upper())
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        component_context(component),
    ]
    if settings.log_format == "json":
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors += [structlog.processors.ExceptionRenderer(), structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    return structlog.get_logger(component)


def get_logger(name: Optional[str] = None) -> structlog.BoundLogger:
    """Logger for a module, usually ``get_logger(__name__)``."""
    return structlog.get_logger(name) if name else structlog.get_logger()


def bind_cycle_context(**values: Any) -> None:
    """Bind values (e.g. cycle_id) to every log entry in the current context."""
    structlog.contextvars.bind_contextvars(**values)


def clear_cycle_context() -> None:
    """Drop values bound with bind_cycle_context."""
    structlog.contextvars.clear_contextvars()
