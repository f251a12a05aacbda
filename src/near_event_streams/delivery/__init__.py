"""Event delivery: the publisher and its sinks."""

from near_event_streams.delivery.http_sink import HttpSink
from near_event_streams.delivery.jsonl_sink import JsonlSink
from near_event_streams.delivery.publisher import DeliveryPublisher

__all__ = ["DeliveryPublisher", "HttpSink", "JsonlSink"]
