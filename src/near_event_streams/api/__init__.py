"""API components - sync mode controller and status aggregator."""

from near_event_streams.api.mode import StartPoint, SyncModeController, resolve_start
from near_event_streams.api.status import StatusAggregator

__all__ = ["StartPoint", "SyncModeController", "StatusAggregator", "resolve_start"]
