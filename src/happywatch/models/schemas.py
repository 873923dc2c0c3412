"""Pydantic models for the MCP interface.

Input models validate tool arguments; output models shape responses.
FastMCP v2 serializes Pydantic models automatically.
"""

from __future__ import annotations

from pydantic import BaseModel
from pydantic import Field

from happywatch.activity.schemas import ActivityEvent
from happywatch.aggregation.schemas import ActorProgress
from happywatch.aggregation.schemas import InactiveActor
from happywatch.aggregation.schemas import LiveActor

# ---------------------------------------------------------------------------
# Output models: ingestion and admission
# ---------------------------------------------------------------------------


class RecordActivityResult(BaseModel):
    """Response from record_activity."""

    event_id: int = Field(
        default=0,
        description="Id assigned to the recorded event (0 when rejected).",
    )
    sequence: int | None = Field(
        default=None,
        description="Nth request by this actor to this endpoint, counting this one.",
    )
    status: str = Field(
        default="recorded",
        description="Ingestion status (recorded, rejected).",
    )
    error_code: str | None = Field(
        default=None,
        description="Machine-readable rejection reason.",
    )
    message: str | None = Field(
        default=None,
        description="Human-readable rejection reason.",
    )


class RateLimitResult(BaseModel):
    """Response from check_rate_limit."""

    allowed: bool = Field(
        description="Whether the caller is within quota for the current bucket.",
    )
    count: int = Field(
        default=0,
        description="Post-increment attempt count in the current bucket.",
    )
    quota: int = Field(
        default=0,
        description="Attempts allowed per bucket.",
    )
    bucket_key: int = Field(
        default=0,
        description="Index of the current fixed-width time bucket.",
    )
    status: str = Field(
        default="ok",
        description="Check status (ok, rejected).",
    )
    error_code: str | None = None
    message: str | None = None


# ---------------------------------------------------------------------------
# Output models: views
# ---------------------------------------------------------------------------


class LiveActivityResult(BaseModel):
    window_seconds: float
    actors: list[LiveActor] = Field(default_factory=list)


class ActorProgressResult(BaseModel):
    window_seconds: float
    actors: list[ActorProgress] = Field(default_factory=list)


class InactiveActorsResult(BaseModel):
    threshold_seconds: float
    actors: list[InactiveActor] = Field(default_factory=list)


class ExportResult(BaseModel):
    since: float | None = Field(
        default=None,
        description="Inclusive lower bound applied; null for the whole log.",
    )
    actor: str | None = None
    events: list[ActivityEvent] = Field(default_factory=list)


class ServiceStatus(BaseModel):
    """Response from service_status."""

    status: str = "ok"
    version: str
    requests_today: int = Field(
        description="Events recorded since midnight UTC.",
    )
    limited_sources: list[str] = Field(
        default_factory=list,
        description="Sources over quota in the current rate-limit bucket.",
    )
