"""Activity log data models."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel
from pydantic import Field
from pydantic import field_validator


class ActivityInput(BaseModel):
    """Caller-supplied description of one handled unit of work.

    Optional fields are lenient: a malformed value is dropped to ``None``
    instead of failing the append.  Only ``endpoint`` is required.
    """

    model_config = {"frozen": True}

    endpoint: str = Field(
        min_length=1,
        description="Name of the operation performed, e.g. '/message'.",
    )
    actor: str | None = Field(
        default=None,
        description="Identity of the requesting party; absent for anonymous calls.",
    )
    session: str | None = Field(
        default=None,
        description="Session grouping key.",
    )
    source: str | None = Field(
        default=None,
        description="Network-level identity of the caller (rate-limit key).",
    )
    agent: str | None = Field(
        default=None,
        description="Free-form client descriptor, informational only.",
    )
    status: int | None = Field(
        default=None,
        description="Outcome code; values >= 400 count as errors.",
    )
    duration_ms: int | None = Field(
        default=None,
        description="Processing latency in milliseconds.",
    )

    @field_validator("endpoint", mode="before")
    @classmethod
    def _strip_endpoint(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("actor", "session", "source", "agent", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> str | None:
        if not isinstance(value, str):
            return None
        return value.strip() or None

    @field_validator("status", "duration_ms", mode="before")
    @classmethod
    def _int_or_none(cls, value: Any) -> int | None:
        if value is None or isinstance(value, bool):
            return None
        try:
            number = int(value)
        except (TypeError, ValueError, OverflowError):
            return None
        return number if number >= 0 else None

    @property
    def is_error(self) -> bool:
        return self.status is not None and self.status >= 400


class ActivityEvent(ActivityInput):
    """A persisted activity record.  Never mutated after insertion."""

    id: int = Field(
        description="Store-assigned identifier, strictly increasing.",
    )
    timestamp: float = Field(
        description="Unix epoch of insertion, assigned by the store.",
    )
