"""Structured logging helpers (content-safe)."""

from typing import Any


def build_log_context(
    *,
    user_id: str | None = None,
    entity_type: str | None = None,
    entity_id: str | None = None,
    note_id: int | None = None,
    request_id: str | None = None,
    route: str | None = None,
    method: str | None = None,
) -> dict[str, Any]:
    """Return a log context dict. Note content is never included."""
    context: dict[str, Any] = {}
    if user_id:
        context["user_id"] = user_id
    if entity_type:
        context["entity_type"] = entity_type
    if entity_id:
        context["entity_id"] = entity_id
    if note_id is not None:
        context["note_id"] = note_id
    if request_id:
        context["request_id"] = request_id
    if route:
        context["route"] = route
    if method:
        context["method"] = method
    return context
