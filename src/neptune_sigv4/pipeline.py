"""
The per-connection protocol pipeline.

A :class:`ChannelPipeline` is an ordered list of named handlers. Inbound
data travels from the first handler to the last; whatever leaves the last
handler is delivered to the channel. Outbound messages travel from the last
handler (or from the handler that wrote them) towards the first; whatever
leaves the first handler must be ``bytes`` and is written to the socket.

Handlers are called by one thread at a time.
"""

from __future__ import annotations

import concurrent.futures
import logging
import threading
from typing import Any, List, Optional, Tuple

from ._collections import HTTPHeaderDict
from .exceptions import (
    MessageTooLargeError,
    WebSocketError,
    WebSocketHandshakeError,
    WebSocketProtocolError,
)
from .http_messages import FullHttpResponse, HandshakeRequest, HttpContent, HttpResponseHead
from .websocket.extensions import PerMessageDeflate, parse_extension_header
from .websocket.protocol import (
    WebSocketFrame,
    WebSocketFrameType,
    WebSocketMessage,
    WebSocketProtocol,
)
from .websocket.serializers import MessageSerializer

log = logging.getLogger(__name__)

# Handler names
HTTP_CODEC = "http-codec"
AGGREGATOR = "aggregator"
WEBSOCKET_COMPRESSION_HANDLER = "web-socket-compression-handler"
WEB_SOCKET_HANDLER = "ws-handler"
WEB_SOCKET_FRAME_CODEC = "ws-frame-codec"
GREMLIN_ENCODER = "gremlin-encoder"
GREMLIN_DECODER = "gremlin-decoder"


class ChannelHandler:
    """
    Base class for pipeline handlers.

    ``read`` and ``write`` return the messages to pass on, which may be none
    or several. The default implementation passes every message through.
    """

    pipeline: Optional["ChannelPipeline"] = None

    def handler_added(self, pipeline: "ChannelPipeline") -> None:
        self.pipeline = pipeline

    def handler_removed(self) -> None:
        self.pipeline = None

    def channel_active(self) -> None:
        pass

    def channel_inactive(self) -> None:
        pass

    def read(self, msg: Any) -> List[Any]:
        return [msg]

    def write(self, msg: Any) -> List[Any]:
        return [msg]

    def exception_caught(self, exc: BaseException) -> bool:
        """Return True if the exception was handled."""
        return False


class ChannelPipeline:
    """
    An ordered chain of named handlers bound to a channel.

    The channel must provide ``write_bytes(data)`` and ``deliver(msg)``.
    """

    def __init__(self, channel: Any) -> None:
        self.channel = channel
        self._handlers: List[Tuple[str, ChannelHandler]] = []
        self._lock = threading.RLock()

    def names(self) -> List[str]:
        return [name for name, _ in self._handlers]

    def get(self, name: str) -> Optional[ChannelHandler]:
        for handler_name, handler in self._handlers:
            if handler_name == name:
                return handler
        return None

    def __contains__(self, name: object) -> bool:
        return name in self.names()

    def __len__(self) -> int:
        return len(self._handlers)

    def _index(self, name: str) -> int:
        for i, (handler_name, _) in enumerate(self._handlers):
            if handler_name == name:
                return i
        raise KeyError(f"No handler named {name!r} in the pipeline")

    def add_last(self, name: str, handler: ChannelHandler) -> "ChannelPipeline":
        with self._lock:
            if name in self:
                raise ValueError(f"Duplicate handler name: {name}")
            self._handlers.append((name, handler))
            handler.handler_added(self)
        return self

    def remove(self, name: str) -> ChannelHandler:
        with self._lock:
            _, handler = self._handlers.pop(self._index(name))
            handler.handler_removed()
            return handler

    def replace(self, old_name: str, new_name: str, handler: ChannelHandler) -> ChannelHandler:
        with self._lock:
            index = self._index(old_name)
            if new_name != old_name and new_name in self:
                raise ValueError(f"Duplicate handler name: {new_name}")
            _, old_handler = self._handlers[index]
            self._handlers[index] = (new_name, handler)
            old_handler.handler_removed()
            handler.handler_added(self)
            return old_handler

    def _snapshot(self) -> List[ChannelHandler]:
        return [handler for _, handler in self._handlers]

    def fire_channel_active(self) -> None:
        with self._lock:
            for handler in self._snapshot():
                try:
                    handler.channel_active()
                except Exception as e:
                    self.fire_exception_caught(e)

    def fire_channel_inactive(self) -> None:
        with self._lock:
            for handler in self._snapshot():
                handler.channel_inactive()

    def fire_read(self, msg: Any) -> None:
        """Pass an inbound message through every handler."""
        with self._lock:
            messages = [msg]
            try:
                for handler in self._snapshot():
                    messages = [out for m in messages for out in handler.read(m)]
                    if not messages:
                        return
            except Exception as e:
                self.fire_exception_caught(e)
                return

            for m in messages:
                self.channel.deliver(m)

    def write(self, msg: Any, origin: Optional[ChannelHandler] = None) -> None:
        """
        Pass an outbound message towards the socket.

        :param origin: The handler writing the message; only the handlers
            before it see the message. Defaults to the end of the pipeline.
        """
        with self._lock:
            handlers = self._snapshot()
            if origin is not None:
                handlers = handlers[: handlers.index(origin)]

            messages = [msg]
            for handler in reversed(handlers):
                messages = [out for m in messages for out in handler.write(m)]

            for m in messages:
                if not isinstance(m, (bytes, bytearray)):
                    raise WebSocketError(f"No handler encoded outbound {type(m).__name__}")
                self.channel.write_bytes(bytes(m))

    def fire_exception_caught(self, exc: BaseException) -> None:
        for handler in self._snapshot():
            if handler.exception_caught(exc):
                return
        log.debug(f"Unhandled pipeline exception: {exc!r}")
        self.channel.deliver(exc)


class HttpClientCodec(ChannelHandler):
    """
    Encodes the upgrade request and decodes the HTTP response.

    Responses are emitted as an :class:`HttpResponseHead` followed by
    :class:`HttpContent` chunks. Once a ``101`` response has been decoded
    the codec stops parsing; bytes that follow stay buffered until the
    WebSocket handler takes them over.
    """

    def __init__(self, max_header_size: int = 8192) -> None:
        self.max_header_size = max_header_size
        self._buffer = bytearray()
        self._remaining_body: Optional[int] = None
        self.upgraded = False

    def write(self, msg: Any) -> List[Any]:
        if not isinstance(msg, HandshakeRequest):
            return [msg]
        lines = [f"{msg.method} {msg.target} HTTP/1.1"]
        lines.extend(f"{name}: {value}" for name, value in msg.headers.items())
        return [("\r\n".join(lines) + "\r\n\r\n").encode("latin-1")]

    def read(self, msg: Any) -> List[Any]:
        if not isinstance(msg, (bytes, bytearray)):
            return [msg]

        self._buffer.extend(msg)
        out: List[Any] = []
        while self._buffer and not self.upgraded:
            if self._remaining_body is None:
                head = self._parse_head()
                if head is None:
                    break
                out.append(head)
                length = int(head.headers.get("Content-Length", "0") or 0)
                if head.status == 101:
                    self.upgraded = True
                    length = 0
                self._remaining_body = length
                if length == 0:
                    self._remaining_body = None
                    out.append(HttpContent(b"", last=True))
                continue

            chunk = bytes(self._buffer[: self._remaining_body])
            del self._buffer[: len(chunk)]
            self._remaining_body -= len(chunk)
            last = self._remaining_body == 0
            if last:
                self._remaining_body = None
            out.append(HttpContent(chunk, last=last))
        return out

    def _parse_head(self) -> Optional[HttpResponseHead]:
        end = self._buffer.find(b"\r\n\r\n")
        if end < 0:
            if len(self._buffer) > self.max_header_size:
                raise MessageTooLargeError("HTTP response header is too large")
            return None

        raw = bytes(self._buffer[:end]).decode("latin-1")
        del self._buffer[: end + 4]

        status_line, *header_lines = raw.split("\r\n")
        try:
            version, status, *reason = status_line.split(" ", 2)
            status_code = int(status)
        except ValueError as e:
            raise WebSocketProtocolError(f"Invalid HTTP status line: {status_line!r}") from e

        headers = HTTPHeaderDict()
        for line in header_lines:
            name, sep, value = line.partition(":")
            if not sep:
                raise WebSocketProtocolError(f"Invalid HTTP header line: {line!r}")
            headers.add(name.strip(), value.strip())

        return HttpResponseHead(version, status_code, reason[0] if reason else "", headers)

    def take_remaining(self) -> bytes:
        """Return and clear the bytes buffered after the response."""
        data = bytes(self._buffer)
        self._buffer.clear()
        return data


class HttpObjectAggregator(ChannelHandler):
    """Combines a response head and its content into a :class:`FullHttpResponse`."""

    def __init__(self, max_content_length: int) -> None:
        self.max_content_length = max_content_length
        self._head: Optional[HttpResponseHead] = None
        self._body = bytearray()

    def read(self, msg: Any) -> List[Any]:
        if isinstance(msg, HttpResponseHead):
            self._head = msg
            self._body.clear()
            return []

        if not isinstance(msg, HttpContent) or self._head is None:
            return [msg]

        self._body.extend(msg.data)
        if len(self._body) > self.max_content_length:
            raise MessageTooLargeError(
                f"HTTP response body exceeds the maximum of {self.max_content_length} bytes"
            )
        if not msg.last:
            return []

        head, self._head = self._head, None
        return [FullHttpResponse(head.version, head.status, head.reason, head.headers, bytes(self._body))]


class WebSocketFrameCodec(ChannelHandler):
    """Encodes and decodes WebSocket frames; installed once the upgrade succeeds."""

    def __init__(self, max_frame_payload_length: int) -> None:
        self.protocol = WebSocketProtocol(
            mask_frames=True, max_frame_payload_length=max_frame_payload_length
        )
        self._buffer = bytearray()

    def read(self, msg: Any) -> List[Any]:
        if not isinstance(msg, (bytes, bytearray)):
            return [msg]

        self._buffer.extend(msg)
        frames = []
        while True:
            decoded = self.protocol.decode_frame(self._buffer)
            if decoded is None:
                break
            frame, consumed = decoded
            del self._buffer[:consumed]
            frames.append(frame)
        return frames

    def write(self, msg: Any) -> List[Any]:
        if isinstance(msg, WebSocketFrame):
            return [self.protocol.encode_frame(msg)]
        return [msg]


class WebSocketClientCompressionHandler(ChannelHandler):
    """
    Negotiates permessage-deflate from the upgrade response and then
    compresses and decompresses data frames.
    """

    def __init__(self, extension: Optional[PerMessageDeflate] = None) -> None:
        self.extension = extension or PerMessageDeflate()

    def read(self, msg: Any) -> List[Any]:
        if isinstance(msg, FullHttpResponse):
            if msg.status == 101:
                self._negotiate(msg)
            return [msg]
        if isinstance(msg, WebSocketFrame):
            return [self.extension.decode_frame(msg)]
        return [msg]

    def _negotiate(self, response: FullHttpResponse) -> None:
        for name, params in parse_extension_header(response.headers.get("Sec-WebSocket-Extensions", "")):
            if name != self.extension.name:
                raise WebSocketHandshakeError(
                    f"Server selected an extension that was not offered: {name}", response=response
                )
            if not self.extension.accept(params):
                raise WebSocketHandshakeError(
                    f"Server answered {name} with unsupported parameters", response=response
                )
            log.debug(f"Using extension: {name}")

    def write(self, msg: Any) -> List[Any]:
        if isinstance(msg, WebSocketFrame):
            return [self.extension.encode_frame(msg)]
        return [msg]


class WebSocketClientHandler(ChannelHandler):
    """
    Drives the WebSocket handshake and handles control frames.

    The handshake is sent when the channel becomes active. The handshake
    future is resolved exactly once: with ``None`` once the server's
    response has been validated, or with the error that ended the handshake.
    """

    def __init__(self, handshaker: Any, max_content_length: int = 65536) -> None:
        self.handshaker = handshaker
        self.max_content_length = max_content_length
        self._handshake_future: concurrent.futures.Future = concurrent.futures.Future()
        self._future_lock = threading.Lock()
        self._fragments: List[WebSocketFrame] = []
        self.close_sent = False
        self.close_received = False

    def handshake_future(self) -> concurrent.futures.Future:
        return self._handshake_future

    def complete_handshake(self, exc: Optional[BaseException] = None) -> bool:
        """
        Resolve the handshake future unless it already is.

        :return: True if this call resolved the future
        """
        with self._future_lock:
            if self._handshake_future.done():
                return False
            if exc is None:
                self._handshake_future.set_result(None)
            else:
                self._handshake_future.set_exception(exc)
            return True

    def channel_active(self) -> None:
        request = self.handshaker.new_handshake_request()
        log.debug(f"Sending WebSocket upgrade request to {request.uri}")
        self.pipeline.write(request, origin=self)

    def channel_inactive(self) -> None:
        self.complete_handshake(WebSocketError("Connection closed before the WebSocket handshake completed"))

    def exception_caught(self, exc: BaseException) -> bool:
        return self.complete_handshake(exc)

    def read(self, msg: Any) -> List[Any]:
        if isinstance(msg, FullHttpResponse):
            if self._handshake_future.done():
                raise WebSocketProtocolError(f"Unexpected HTTP response: {msg.status} {msg.reason}")
            self._finish_handshake(msg)
            return []

        if isinstance(msg, WebSocketFrame):
            return self._handle_frame(msg)

        return [msg]

    def _finish_handshake(self, response: FullHttpResponse) -> None:
        self.handshaker.finish_handshake(response)

        pipeline = self.pipeline
        codec = pipeline.replace(
            HTTP_CODEC,
            WEB_SOCKET_FRAME_CODEC,
            WebSocketFrameCodec(self.handshaker.max_frame_payload_length),
        )
        if AGGREGATOR in pipeline:
            pipeline.remove(AGGREGATOR)

        if not self.complete_handshake():
            # Timed out while the response was on its way
            return

        remaining = codec.take_remaining()
        if remaining:
            pipeline.fire_read(remaining)

    def _handle_frame(self, frame: WebSocketFrame) -> List[Any]:
        if frame.opcode == WebSocketFrameType.PING:
            self.pipeline.write(WebSocketFrame.create_pong(frame.payload), origin=self)
            return []

        if frame.opcode == WebSocketFrameType.PONG:
            return []

        if frame.opcode == WebSocketFrameType.CLOSE:
            code, reason = frame.close_details()
            self.close_received = True
            log.debug(f"Received close frame: {code} {reason}")
            if not self.close_sent:
                self.close_sent = True
                self.pipeline.write(WebSocketFrame.create_close(), origin=self)
            self.pipeline.channel.mark_closed(code, reason)
            return []

        if frame.opcode == WebSocketFrameType.CONTINUATION:
            if not self._fragments:
                raise WebSocketProtocolError("Received continuation frame with no message to continue")
        elif self._fragments:
            raise WebSocketProtocolError("Received new message before previous was complete")

        self._fragments.append(frame)
        size = sum(len(f.payload) for f in self._fragments)
        if size > self.max_content_length:
            self._fragments = []
            raise MessageTooLargeError(
                f"Message exceeds the maximum of {self.max_content_length} bytes"
            )

        if not frame.fin:
            return []

        opcode = self._fragments[0].opcode
        payload = b"".join(f.payload for f in self._fragments)
        self._fragments = []
        return [WebSocketMessage(opcode=opcode, data=payload)]

    def write(self, msg: Any) -> List[Any]:
        if isinstance(msg, WebSocketFrame) and msg.opcode == WebSocketFrameType.CLOSE:
            self.close_sent = True
        return [msg]


class WebSocketRequestEncoder(ChannelHandler):
    """Serializes outbound request messages into data frames."""

    def __init__(self, serializer: MessageSerializer) -> None:
        self.serializer = serializer

    def write(self, msg: Any) -> List[Any]:
        if isinstance(msg, (WebSocketFrame, HandshakeRequest, bytes, bytearray)):
            return [msg]
        encoded = self.serializer.encode_message(msg)
        if isinstance(encoded, str):
            return [WebSocketFrame.create_text(encoded)]
        return [WebSocketFrame.create_binary(encoded)]


class WebSocketResponseDecoder(ChannelHandler):
    """Deserializes inbound messages."""

    def __init__(self, serializer: MessageSerializer) -> None:
        self.serializer = serializer

    def read(self, msg: Any) -> List[Any]:
        if isinstance(msg, WebSocketMessage):
            return [self.serializer.decode_message(msg)]
        return [msg]
