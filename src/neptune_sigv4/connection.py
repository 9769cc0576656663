"""
Socket-backed connections.

A :class:`Connection` owns a TCP (optionally TLS) socket and a
:class:`Channel` whose pipeline is configured by a channelizer. A reader
thread feeds received bytes into the pipeline; messages that come out of
it are queued for :meth:`Connection.receive`.
"""

from __future__ import annotations

import logging
import queue
import socket
import threading
import typing
from typing import Any, Optional
from urllib.parse import urlsplit

from .channelizer import SigV4WebSocketChannelizer
from .config import ConnectionSettings
from .exceptions import (
    ConnectionSetupError,
    WebSocketClosedError,
    WebSocketError,
    WebSocketTimeoutError,
)
from .http_messages import DEFAULT_PORTS
from .pipeline import ChannelPipeline
from .util.ssl_ import create_ssl_context, ssl_wrap_socket
from .websocket.protocol import WebSocketCloseCode

log = logging.getLogger(__name__)


class Channel:
    """
    A socket and the pipeline that reads from and writes to it.

    Messages that reach the end of the pipeline, and errors nobody handled,
    are queued and returned by :meth:`read`.
    """

    def __init__(self) -> None:
        self.pipeline = ChannelPipeline(self)
        self._sock: Optional[socket.socket] = None
        self._open = False
        self._inbound: "queue.Queue[Any]" = queue.Queue()
        self._reader_thread: Optional[threading.Thread] = None
        self._send_lock = threading.Lock()
        self._close_lock = threading.Lock()
        self.close_code: Optional[int] = None
        self.close_reason = ""

    @property
    def is_open(self) -> bool:
        return self._open

    def attach(self, sock: socket.socket) -> None:
        self._sock = sock
        self._open = True

    def start_reading(self) -> None:
        """Start the background thread that reads from the socket."""
        if self._reader_thread is not None:
            return

        self._reader_thread = threading.Thread(
            target=self._read_loop,
            daemon=True,
            name="neptune-sigv4-reader",
        )
        self._reader_thread.start()

    def _read_loop(self) -> None:
        sock = self._sock
        try:
            while self._open:
                try:
                    data = sock.recv(4096)
                except OSError as e:
                    if self._open:
                        self.pipeline.fire_exception_caught(WebSocketError(f"WebSocket receive error: {e}"))
                    break
                if not data:
                    # Closed by the server
                    break
                self.pipeline.fire_read(data)
        finally:
            self.close()

    def write_and_flush(self, msg: Any) -> None:
        """
        Write a message through the pipeline.

        :raises WebSocketClosedError: If the channel is closed
        """
        if not self._open:
            raise WebSocketClosedError(self.close_code or WebSocketCloseCode.ABNORMAL, self.close_reason)
        self.pipeline.write(msg)

    def write_bytes(self, data: bytes) -> None:
        with self._send_lock:
            if self._sock is None:
                raise WebSocketClosedError()
            try:
                self._sock.sendall(data)
            except OSError as e:
                raise WebSocketError(f"WebSocket send error: {e}") from e

    def deliver(self, msg: Any) -> None:
        self._inbound.put(msg)

    def read(self, timeout: Optional[float] = None) -> Any:
        """
        Return the next inbound message.

        :raises WebSocketTimeoutError: If no message arrives in time
        :raises WebSocketClosedError: Once the channel has been closed and
            every earlier message was read
        """
        try:
            message = self._inbound.get(timeout=timeout)
        except queue.Empty:
            raise WebSocketTimeoutError("Timed out waiting for WebSocket message")

        if isinstance(message, WebSocketClosedError):
            # Every later read sees the close too
            self._inbound.put(message)
        if isinstance(message, Exception):
            raise message
        return message

    def mark_closed(self, code: int, reason: str) -> None:
        """Record the close frame received from the peer and close."""
        self.close_code = code
        self.close_reason = reason
        self.close()

    def close(self) -> None:
        """Close the socket. Closing a closed channel does nothing."""
        with self._close_lock:
            if not self._open:
                return
            self._open = False

        sock, self._sock = self._sock, None
        if sock is not None:
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError as e:
                # Already disconnected
                log.debug(f"Socket shutdown failed: {e}")
            sock.close()

        self.pipeline.fire_channel_inactive()
        self._inbound.put(
            WebSocketClosedError(self.close_code or WebSocketCloseCode.ABNORMAL, self.close_reason)
        )


class Connection:
    """
    A connection to a SigV4-authenticated WebSocket endpoint.

    Basic usage::

        >>> from neptune_sigv4 import Connection, ConnectionSettings
        >>> settings = ConnectionSettings(enable_ssl=True)
        >>> with Connection("wss://my-cluster:8182/gremlin", settings) as conn:
        ...     conn.send({"requestId": "...", "op": "eval", "processor": "", "args": {...}})
        ...     response = conn.receive(timeout=30)
    """

    def __init__(
        self,
        url: str,
        settings: Optional[ConnectionSettings] = None,
        channelizer: Optional[SigV4WebSocketChannelizer] = None,
    ) -> None:
        self.uri = url
        parsed = urlsplit(url)
        self.scheme = parsed.scheme.lower()
        self.host = parsed.hostname or ""
        self.port = parsed.port or DEFAULT_PORTS.get(self.scheme)

        self.settings = settings or ConnectionSettings()
        self.channelizer = channelizer or SigV4WebSocketChannelizer()
        self.channel = Channel()
        self._opened = False
        self._closed = False

    def open(self) -> "Connection":
        """
        Connect and complete the signed WebSocket handshake.

        The pipeline is configured before any network I/O, so configuration
        errors are raised without connecting.
        """
        if self._opened:
            return self

        self.channelizer.init(self)
        self.channelizer.configure(self.channel.pipeline)

        try:
            self.channel.attach(self._connect())
            self.channel.start_reading()
            self.channel.pipeline.fire_channel_active()
            self.channelizer.connected()
        except BaseException:
            self.channel.close()
            raise

        self._opened = True
        log.debug(f"Connected to {self.uri}")
        return self

    def _connect(self) -> socket.socket:
        timeout = self.settings.connection_setup_timeout
        try:
            sock = socket.create_connection((self.host, self.port), timeout=timeout)
        except OSError as e:
            raise ConnectionSetupError(self.uri, f"Unable to connect: {e}") from e

        if self.settings.enable_ssl:
            context = self.settings.ssl_context or create_ssl_context(ca_certs=self.settings.ca_certs)
            try:
                sock = ssl_wrap_socket(sock, server_hostname=self.host, ssl_context=context)
            except OSError as e:
                sock.close()
                raise ConnectionSetupError(self.uri, f"TLS handshake failed: {e}") from e

        # The reader thread blocks; the handshake timeout is enforced by connected()
        sock.settimeout(None)
        return sock

    @property
    def is_open(self) -> bool:
        return self._opened and self.channel.is_open

    @property
    def subprotocol(self) -> Optional[str]:
        """The subprotocol selected by the server, if any."""
        handler = self.channelizer.handler
        return handler.handshaker.actual_subprotocol if handler is not None else None

    def send(self, message: Any) -> None:
        """
        Serialize and send a request message.

        :raises WebSocketClosedError: If the connection is closed
        """
        if not self.is_open:
            raise WebSocketClosedError(self.channel.close_code or WebSocketCloseCode.ABNORMAL)
        self.channel.write_and_flush(message)

    def receive(self, timeout: Optional[float] = None) -> Any:
        """
        Receive the next decoded response message.

        :raises WebSocketTimeoutError: If the timeout is reached
        :raises WebSocketClosedError: If the connection is closed
        """
        return self.channel.read(timeout=timeout)

    def keep_alive(self) -> None:
        """Send the channelizer's keep-alive message."""
        if self.channelizer.supports_keep_alive():
            self.channel.write_and_flush(self.channelizer.create_keep_alive_message())

    def close(self) -> None:
        """Send a close frame and close the socket. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True

        try:
            if self._opened:
                self.channelizer.close(self.channel)
        except WebSocketError as e:
            log.debug(f"Unable to send close frame to {self.uri}: {e}")
        finally:
            self.channel.close()

    def __enter__(self) -> "Connection":
        return self.open()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: typing.TracebackType | None,
    ) -> None:
        self.close()
