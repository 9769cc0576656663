"""
Tests for Connection against a local scripted WebSocket server.
"""

from __future__ import annotations

import json
import re
import socket
import threading

import pytest

from neptune_sigv4.channelizer import SigV4WebSocketChannelizer
from neptune_sigv4.config import ConnectionSettings
from neptune_sigv4.connection import Connection
from neptune_sigv4.credentials import StaticCredentialsProvider
from neptune_sigv4.exceptions import (
    ConnectionSetupError,
    HandshakeFailedError,
    HandshakeTimeoutError,
    UnsupportedSchemeError,
    WebSocketClosedError,
    WebSocketHandshakeError,
    WebSocketTimeoutError,
)
from neptune_sigv4.handshake import accept_key
from neptune_sigv4.properties import ChainedSigV4PropertiesProvider, SigV4Properties
from neptune_sigv4.websocket.protocol import WebSocketFrame, WebSocketFrameType, WebSocketProtocol


class ScriptedServer:
    """Accepts one connection and runs ``script(server, conn)`` on it."""

    def __init__(self, script):
        self.script = script
        self.protocol = WebSocketProtocol(mask_frames=False)
        self.request = b""
        self.received = []
        self._buffer = bytearray()
        self._listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._listener.bind(("127.0.0.1", 0))
        self._listener.listen(1)
        self.port = self._listener.getsockname()[1]
        self._thread = threading.Thread(target=self._run, daemon=True)

    def __enter__(self):
        self._thread.start()
        return self

    def __exit__(self, *exc_info):
        self._listener.close()
        self._thread.join(timeout=5)

    @property
    def url(self):
        return f"ws://127.0.0.1:{self.port}/gremlin"

    def _run(self):
        conn, _ = self._listener.accept()
        with conn:
            try:
                self.script(self, conn)
            except OSError:
                # The client may already be gone
                pass

    def read_request(self, conn):
        while b"\r\n\r\n" not in self._buffer:
            data = conn.recv(4096)
            if not data:
                break
            self._buffer.extend(data)
        end = self._buffer.index(b"\r\n\r\n") + 4
        self.request = bytes(self._buffer[:end])
        del self._buffer[:end]
        return self.request

    def accept_upgrade(self, conn):
        request = self.read_request(conn)
        key = re.search(rb"Sec-WebSocket-Key: (\S+)", request).group(1).decode("ascii")
        conn.sendall(
            (
                "HTTP/1.1 101 Switching Protocols\r\n"
                "Upgrade: websocket\r\n"
                "Connection: Upgrade\r\n"
                f"Sec-WebSocket-Accept: {accept_key(key)}\r\n"
                "\r\n"
            ).encode("latin-1")
        )

    def read_frame(self, conn):
        while True:
            decoded = self.protocol.decode_frame(self._buffer)
            if decoded is not None:
                frame, consumed = decoded
                del self._buffer[:consumed]
                self.received.append(frame)
                return frame
            data = conn.recv(4096)
            if not data:
                return None
            self._buffer.extend(data)

    def send_frame(self, conn, frame):
        conn.sendall(self.protocol.encode_frame(frame))


def make_connection(url, **settings):
    channelizer = SigV4WebSocketChannelizer(
        credentials_provider=StaticCredentialsProvider("AKID", "SECRET"),
        properties_provider=ChainedSigV4PropertiesProvider([lambda: SigV4Properties("us-east-1")]),
    )
    settings.setdefault("connection_setup_timeout", 5.0)
    return Connection(url, ConnectionSettings(**settings), channelizer)


class TestConnection:
    """Tests for Connection."""

    def test_request_response(self):
        """Test a signed handshake followed by a request and its response."""

        def script(server, conn):
            server.accept_upgrade(conn)
            request = server.read_frame(conn)
            message = json.loads(request.payload)
            server.send_frame(conn, WebSocketFrame.create_text(json.dumps({"echo": message})))
            closing = server.read_frame(conn)
            if closing is not None and closing.opcode == WebSocketFrameType.CLOSE:
                server.send_frame(conn, WebSocketFrame.create_close(1000))

        with ScriptedServer(script) as server:
            with make_connection(server.url) as connection:
                connection.send({"op": "eval", "args": {"gremlin": "g.V().limit(1)"}})
                response = connection.receive(timeout=5)

        assert response == {"echo": {"op": "eval", "args": {"gremlin": "g.V().limit(1)"}}}
        request = server.request.decode("latin-1")
        assert request.startswith("GET /gremlin HTTP/1.1\r\n")
        assert request.index("Sec-WebSocket-Version: 13") < request.index("x-amz-date: ")
        assert request.index("x-amz-date: ") < request.index("Authorization: AWS4-HMAC-SHA256")
        assert "/us-east-1/neptune-db/aws4_request" in request
        assert server.received[-1].opcode == WebSocketFrameType.CLOSE
        assert not connection.is_open

    def test_server_close(self):
        """Test that a close from the server ends the connection."""

        def script(server, conn):
            server.accept_upgrade(conn)
            server.send_frame(conn, WebSocketFrame.create_close(1001, "going away"))
            server.read_frame(conn)

        with ScriptedServer(script) as server:
            connection = make_connection(server.url).open()
            with pytest.raises(WebSocketClosedError) as exc_info:
                connection.receive(timeout=5)
            connection.close()

        assert exc_info.value.code == 1001
        assert exc_info.value.reason == "going away"
        assert server.received[0].opcode == WebSocketFrameType.CLOSE
        with pytest.raises(WebSocketClosedError):
            connection.receive(timeout=1)
        with pytest.raises(WebSocketClosedError):
            connection.send({"op": "eval"})

    def test_receive_timeout(self):
        """Test that receive gives up after the timeout."""
        done = threading.Event()

        def script(server, conn):
            server.accept_upgrade(conn)
            done.wait(5)

        with ScriptedServer(script) as server:
            connection = make_connection(server.url).open()
            try:
                with pytest.raises(WebSocketTimeoutError):
                    connection.receive(timeout=0.01)
            finally:
                done.set()
                connection.close()

    def test_handshake_timeout(self):
        """Test that a server that never answers times out the handshake."""
        done = threading.Event()

        def script(server, conn):
            server.read_request(conn)
            done.wait(5)

        with ScriptedServer(script) as server:
            connection = make_connection(server.url, connection_setup_timeout=0.05)
            try:
                with pytest.raises(HandshakeTimeoutError):
                    connection.open()
            finally:
                done.set()

        assert not connection.channel.is_open

    def test_handshake_rejected(self):
        """Test that a rejected upgrade fails connection setup."""

        def script(server, conn):
            server.read_request(conn)
            body = b'{"code": "AccessDeniedException"}'
            conn.sendall(
                b"HTTP/1.1 403 Forbidden\r\nContent-Length: %d\r\n\r\n%s" % (len(body), body)
            )

        with ScriptedServer(script) as server:
            with pytest.raises(HandshakeFailedError) as exc_info:
                make_connection(server.url).open()

        assert isinstance(exc_info.value.__cause__, WebSocketHandshakeError)
        assert "AccessDeniedException" in str(exc_info.value.__cause__)

    def test_server_disconnects_during_handshake(self):
        """Test that a dropped connection fails the handshake."""

        def script(server, conn):
            server.read_request(conn)

        with ScriptedServer(script) as server:
            with pytest.raises(HandshakeFailedError):
                make_connection(server.url).open()

    def test_connection_refused(self):
        """Test that connect errors are reported as setup errors."""
        listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        listener.bind(("127.0.0.1", 0))
        port = listener.getsockname()[1]
        listener.close()

        with pytest.raises(ConnectionSetupError):
            make_connection(f"ws://127.0.0.1:{port}/gremlin").open()

    def test_unsupported_scheme(self):
        """Test that configuration errors are raised before connecting."""
        connection = make_connection("ftp://127.0.0.1:1/gremlin")

        with pytest.raises(UnsupportedSchemeError):
            connection.open()

        assert not connection.channel.is_open

    def test_close_is_idempotent(self):
        """Test that closing twice does nothing the second time."""
        connection = make_connection("ws://127.0.0.1:1/gremlin")

        connection.close()
        connection.close()

        assert not connection.is_open
