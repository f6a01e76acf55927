"""Status/log gateway for the dashboard."""

from .app import create_app, router
from .sse import sse_json, log_event_stream

__all__ = [
    'create_app',
    'router',
    'sse_json',
    'log_event_stream'
]
