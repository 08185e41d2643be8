"""structlog setup for the reference discovery pipeline.

Every module logs through a module-level ``structlog.get_logger()`` with a
snake_case event name and key/value context::

    logger.warning("provider_search_failed", provider="crossref", error=str(e))

``configure_logging`` is called once by the CLI. After that each entry
carries the correlation id of the pipeline run (or ``"none"``) and any
context bound with ``bind_context``. Output goes to stderr; stdout is kept
for command results.
"""

import logging
import sys
from typing import Any, List, Optional

import structlog
from structlog.typing import EventDict, Processor, WrappedLogger

from reference_discovery.observability.context import get_correlation_id

NO_CORRELATION_ID = "none"


def add_correlation_id_processor(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Stamp the entry with the correlation id of the current run."""
    event_dict["correlation_id"] = get_correlation_id() or NO_CORRELATION_ID
    return event_dict


def _processors(json_output: bool, add_timestamp: bool) -> List[Processor]:
    chain: List[Processor] = [
        structlog.contextvars.merge_contextvars,
        add_correlation_id_processor,
        structlog.processors.add_log_level,
    ]
    if add_timestamp:
        chain.append(structlog.processors.TimeStamper(fmt="iso"))
    chain += [
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if json_output:
        chain.append(structlog.processors.JSONRenderer())
    else:
        chain.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))
    return chain


def configure_logging(
    level: str = "INFO",
    json_output: bool = True,
    add_timestamp: bool = True,
) -> None:
    """Install the processor chain and level filter.

    Args:
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL; unknown names mean INFO
        json_output: One JSON object per line, or human-readable console output
        add_timestamp: Add an ISO-8601 ``timestamp`` key
    """
    structlog.configure(
        processors=_processors(json_output, add_timestamp),
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(component: Optional[str] = None, **initial_context: Any) -> Any:
    """Logger pre-bound with a component name and any extra context."""
    if component:
        initial_context = {"component": component, **initial_context}
    logger = structlog.get_logger()
    return logger.bind(**initial_context) if initial_context else logger


def bind_context(**context: Any) -> None:
    """Bind keys to every later entry in the current task or thread."""
    structlog.contextvars.bind_contextvars(**context)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
