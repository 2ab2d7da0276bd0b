"""
HTTP infrastructure - FastAPI application and server-sent event transport.
"""

from .streaming import EventChannel, SSE_HEADERS, encode_frame, pump, stream_turn
from .server import ChatRequest, create_app

__all__ = [
    'EventChannel',
    'SSE_HEADERS',
    'encode_frame',
    'pump',
    'stream_turn',
    'ChatRequest',
    'create_app'
]
