"""
WebSocket framing, extensions and message serializers.
"""

from __future__ import annotations

from .extensions import PerMessageDeflate, WebSocketExtension, parse_extension_header
from .protocol import (
    WebSocketCloseCode,
    WebSocketFrame,
    WebSocketFrameType,
    WebSocketMessage,
    WebSocketProtocol,
)
from .serializers import MessageSerializer, get_serializer

__all__ = [
    "MessageSerializer",
    "PerMessageDeflate",
    "WebSocketCloseCode",
    "WebSocketExtension",
    "WebSocketFrame",
    "WebSocketFrameType",
    "WebSocketMessage",
    "WebSocketProtocol",
    "get_serializer",
    "parse_extension_header",
]
