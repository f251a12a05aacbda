"""Structured event extraction from receipt logs."""

from near_event_streams.extraction.extractor import EVENT_PREFIX, EventExtractor, extract_log

__all__ = ["EVENT_PREFIX", "EventExtractor", "extract_log"]
