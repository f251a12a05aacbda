"""Protocol interfaces for all near_event_streams components."""

from near_event_streams.interfaces.source import BlockSource
from near_event_streams.interfaces.sink import EventSink
from near_event_streams.interfaces.store import CursorStore
from near_event_streams.interfaces.mode import ModeController

__all__ = [
    "BlockSource",
    "EventSink",
    "CursorStore",
    "ModeController",
]
