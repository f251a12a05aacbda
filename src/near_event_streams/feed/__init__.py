"""Chain feed: block sources and the ordered feed adapter."""

from near_event_streams.feed.adapter import ChainFeed
from near_event_streams.feed.file_source import FileStreamerSource
from near_event_streams.feed.http_source import HttpStreamerSource
from near_event_streams.feed.messages import parse_streamer_message

__all__ = ["ChainFeed", "FileStreamerSource", "HttpStreamerSource", "parse_streamer_message"]
