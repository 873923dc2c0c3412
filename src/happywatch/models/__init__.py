"""Models domain: MCP interface contracts."""

from happywatch.models.schemas import ActorProgressResult
from happywatch.models.schemas import ExportResult
from happywatch.models.schemas import InactiveActorsResult
from happywatch.models.schemas import LiveActivityResult
from happywatch.models.schemas import RateLimitResult
from happywatch.models.schemas import RecordActivityResult
from happywatch.models.schemas import ServiceStatus

__all__ = [
    "ActorProgressResult",
    "ExportResult",
    "InactiveActorsResult",
    "LiveActivityResult",
    "RateLimitResult",
    "RecordActivityResult",
    "ServiceStatus",
]
