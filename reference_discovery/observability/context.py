"""Correlation ID context for tracing one pipeline run across providers.

The correlation ID lives in a ContextVar, so it follows asyncio tasks
spawned by the search client: every provider task inherits the ID of the
search that created it.

Usage:
    with correlation_id_context(context.request_id):
        await client.search(query)
"""

import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Generator, Optional

_correlation_id_var: ContextVar[Optional[str]] = ContextVar(
    "correlation_id", default=None
)


def set_correlation_id(corr_id: Optional[str] = None) -> str:
    """Set the correlation ID for the current context.

    Args:
        corr_id: Optional correlation ID. If None, generates a UUID4.

    Returns:
        The correlation ID that was set.
    """
    if corr_id is None:
        corr_id = str(uuid.uuid4())
    _correlation_id_var.set(corr_id)
    return corr_id


def get_correlation_id() -> Optional[str]:
    return _correlation_id_var.get()


def clear_correlation_id() -> None:
    _correlation_id_var.set(None)


@contextmanager
def correlation_id_context(
    corr_id: Optional[str] = None,
) -> Generator[str, None, None]:
    """Scope a correlation ID, restoring the previous one on exit.

    When no ID is given the current one is reused, and a new UUID is
    generated only if none is set yet. Nested pipeline stages therefore
    share the ID of the outermost run.

    Yields:
        The correlation ID in effect inside the block.
    """
    if corr_id is None:
        corr_id = get_correlation_id() or str(uuid.uuid4())

    token = _correlation_id_var.set(corr_id)
    try:
        yield corr_id
    finally:
        _correlation_id_var.reset(token)
