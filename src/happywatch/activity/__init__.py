"""Activity domain: the append-only request log and its ingestion gate."""

from __future__ import annotations

from pydantic import ValidationError as PydanticValidationError

from happywatch.activity.gate import RequestGate
from happywatch.activity.gate import TrackedCall
from happywatch.activity.memory import InMemoryEventStore
from happywatch.activity.schemas import ActivityEvent
from happywatch.activity.schemas import ActivityInput
from happywatch.activity.store import ActivityLog
from happywatch.activity.store import EventStore
from happywatch.errors import ValidationError

__all__ = [
    "ActivityEvent",
    "ActivityInput",
    "ActivityLog",
    "EventStore",
    "InMemoryEventStore",
    "RequestGate",
    "TrackedCall",
    "create_activity",
]


def create_activity(endpoint: str, **fields: object) -> ActivityInput:
    """Build an ``ActivityInput``, dropping malformed optional fields.

    Raises ``ValidationError`` only when *endpoint* is missing or blank.
    """
    try:
        return ActivityInput.model_validate({"endpoint": endpoint, **fields})
    except PydanticValidationError as exc:
        err = exc.errors()[0] if exc.errors() else {}
        msg = f"invalid activity: {err.get('msg', 'endpoint is required')}"
        raise ValidationError(msg) from exc
