"""Aggregation domain: windowed views shared by the server and the monitor."""

from happywatch.aggregation.schemas import ActorProgress
from happywatch.aggregation.schemas import DashboardSnapshot
from happywatch.aggregation.schemas import EndpointCount
from happywatch.aggregation.schemas import InactiveActor
from happywatch.aggregation.schemas import LiveActor
from happywatch.aggregation.schemas import TrafficSummary
from happywatch.aggregation.windows import build_actor_progress
from happywatch.aggregation.windows import build_inactive_actors
from happywatch.aggregation.windows import build_live_activity
from happywatch.aggregation.windows import build_traffic_summary
from happywatch.aggregation.windows import WindowAggregator

__all__ = [
    "ActorProgress",
    "DashboardSnapshot",
    "EndpointCount",
    "InactiveActor",
    "LiveActor",
    "TrafficSummary",
    "WindowAggregator",
    "build_actor_progress",
    "build_inactive_actors",
    "build_live_activity",
    "build_traffic_summary",
]
