"""Helpers for binding per-message context to logs."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from uuid import uuid4

from src.config.logging_config import bind_context, unbind_context

CORRELATION_ID_KEY = "correlation_id"
CHAT_ID_KEY = "chat_id"


@contextmanager
def correlation_scope(
    existing_id: str | None = None, *, chat_id: int | None = None
) -> Iterator[str]:
    """Bind a correlation identifier (and optionally the chat) for the context."""

    correlation_id = existing_id or str(uuid4())
    bound: dict[str, object] = {CORRELATION_ID_KEY: correlation_id}
    if chat_id is not None:
        bound[CHAT_ID_KEY] = chat_id
    bind_context(**bound)
    try:
        yield correlation_id
    finally:
        unbind_context(*bound)


__all__ = ["CHAT_ID_KEY", "CORRELATION_ID_KEY", "correlation_scope"]
