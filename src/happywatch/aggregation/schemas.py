"""Result models for the windowed activity views.

All models are frozen; timestamps are Unix epoch seconds.
"""

from __future__ import annotations

from pydantic import BaseModel
from pydantic import Field


class LiveActor(BaseModel):
    """One currently active actor and their latest request."""

    model_config = {"frozen": True}

    actor: str
    last_seen: float = Field(description="Timestamp of the actor's latest event.")
    endpoint: str = Field(description="Endpoint of the actor's latest event.")
    event_id: int = Field(description="Id of the actor's latest event.")
    total_count: int = Field(description="Events by the actor in the window.")
    error_count: int = Field(description="Events with status >= 400 in the window.")


class EndpointCount(BaseModel):
    model_config = {"frozen": True}

    endpoint: str
    count: int


class TrafficSummary(BaseModel):
    """Aggregate traffic over a trailing window."""

    model_config = {"frozen": True}

    window_seconds: float
    total_count: int = 0
    actor_count: int = Field(default=0, description="Distinct non-empty actors.")
    endpoints: list[EndpointCount] = Field(default_factory=list)
    error_count: int = 0
    error_rate: float = Field(
        default=0.0,
        description="Percentage of events with status >= 400; 0 when idle.",
    )


class ActorProgress(BaseModel):
    """Per-actor rollup over a trailing window."""

    model_config = {"frozen": True}

    actor: str
    total_count: int
    first_seen: float
    last_seen: float
    sessions: int = Field(description="Distinct non-empty session keys.")


class InactiveActor(BaseModel):
    model_config = {"frozen": True}

    actor: str
    last_seen: float


class DashboardSnapshot(BaseModel):
    """All four views computed against the same instant."""

    model_config = {"frozen": True}

    generated_at: float
    live: list[LiveActor] = Field(default_factory=list)
    summary: TrafficSummary
    progress: list[ActorProgress] = Field(default_factory=list)
    inactive: list[InactiveActor] = Field(default_factory=list)
