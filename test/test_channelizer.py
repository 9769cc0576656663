"""
Tests for SigV4WebSocketChannelizer.
"""

from __future__ import annotations

from unittest import mock

import pytest

from neptune_sigv4.channelizer import SigV4WebSocketChannelizer
from neptune_sigv4.config import SERVICE_REGION, ConnectionSettings, system_properties
from neptune_sigv4.credentials import DefaultCredentialsProviderChain, StaticCredentialsProvider
from neptune_sigv4.exceptions import (
    CredentialsUnavailableError,
    HandshakeFailedError,
    HandshakeTimeoutError,
    SigV4PropertiesNotFoundError,
    SSLConfigurationError,
    UnsupportedSchemeError,
    WebSocketHandshakeError,
)
from neptune_sigv4.handshake import SigV4ClientHandshaker
from neptune_sigv4.pipeline import ChannelPipeline, WebSocketClientHandler
from neptune_sigv4.properties import ChainedSigV4PropertiesProvider, SigV4Properties
from neptune_sigv4.websocket.protocol import WebSocketFrameType


class FakeConnection:
    def __init__(self, uri, **settings):
        self.uri = uri
        self.scheme = uri.split(":", 1)[0].lower()
        self.settings = ConnectionSettings(**settings)


def make_channelizer(credentials_provider=None):
    return SigV4WebSocketChannelizer(
        credentials_provider=credentials_provider or StaticCredentialsProvider("AKID", "SECRET"),
        properties_provider=ChainedSigV4PropertiesProvider([lambda: SigV4Properties("us-east-1")]),
    )


def configured(uri="ws://localhost:8182/gremlin", credentials_provider=None, **settings):
    channelizer = make_channelizer(credentials_provider)
    channelizer.init(FakeConnection(uri, **settings))
    pipeline = ChannelPipeline(mock.Mock())
    channelizer.configure(pipeline)
    return channelizer, pipeline


class TestConfigure:
    """Tests for pipeline configuration."""

    def test_handler_order(self):
        """Test that handlers are installed in the fixed order."""
        _, pipeline = configured()

        assert pipeline.names() == [
            "http-codec",
            "aggregator",
            "web-socket-compression-handler",
            "ws-handler",
            "gremlin-encoder",
            "gremlin-decoder",
        ]

    def test_without_compression(self):
        """Test that the compression handler is optional."""
        _, pipeline = configured(enable_compression=False)

        assert "web-socket-compression-handler" not in pipeline.names()
        request = pipeline.get("ws-handler").handshaker.new_handshake_request()
        assert "Sec-WebSocket-Extensions" not in request.headers

    def test_compression_offered(self):
        """Test that compression is offered in the signed request."""
        _, pipeline = configured()

        request = pipeline.get("ws-handler").handshaker.new_handshake_request()

        assert request.headers["Sec-WebSocket-Extensions"] == "permessage-deflate; client_max_window_bits=15"
        assert "sec-websocket-extensions" in request.headers["Authorization"]

    def test_sigv4_handshaker(self):
        """Test that the WebSocket handler uses a signing handshaker."""
        channelizer, pipeline = configured(max_content_length=1024)

        handler = pipeline.get("ws-handler")
        assert handler is channelizer.handler
        assert isinstance(handler, WebSocketClientHandler)
        assert isinstance(handler.handshaker, SigV4ClientHandshaker)
        assert handler.handshaker.max_frame_payload_length == 1024
        assert pipeline.get("aggregator").max_content_length == 1024
        assert pipeline.get("web-socket-compression-handler").extension.max_message_size == 1024

    def test_unsupported_scheme(self):
        """Test that only ws and wss are accepted."""
        channelizer = make_channelizer()
        channelizer.init(FakeConnection("ftp://localhost/gremlin"))
        pipeline = ChannelPipeline(mock.Mock())

        with pytest.raises(UnsupportedSchemeError) as exc_info:
            channelizer.configure(pipeline)

        assert str(exc_info.value) == "Unsupported scheme (only ws: or wss: supported): ftp"
        assert pipeline.names() == []

    def test_wss_requires_ssl(self):
        """Test that wss without SSL is rejected before any handler is installed."""
        channelizer = make_channelizer()
        channelizer.init(FakeConnection("wss://localhost:8182/gremlin", enable_ssl=False))
        pipeline = ChannelPipeline(mock.Mock())

        with pytest.raises(SSLConfigurationError):
            channelizer.configure(pipeline)

        assert pipeline.names() == []

    def test_wss_with_ssl(self):
        """Test that wss is accepted when SSL is enabled."""
        channelizer, pipeline = configured("wss://localhost:8182/gremlin", enable_ssl=True)

        assert channelizer.supports_ssl()
        assert len(pipeline) == 6

    def test_region_from_process_property(self):
        """Test that the default resolver reads the process property."""
        system_properties.set(SERVICE_REGION, "eu-central-1")
        channelizer = SigV4WebSocketChannelizer(
            credentials_provider=StaticCredentialsProvider("AKID", "SECRET")
        )
        channelizer.init(FakeConnection("ws://localhost:8182/gremlin"))
        channelizer.configure(ChannelPipeline(mock.Mock()))

        assert channelizer.handler.handshaker.properties.service_region == "eu-central-1"

    def test_missing_region(self):
        """Test that a missing region fails configuration."""
        channelizer = SigV4WebSocketChannelizer(
            credentials_provider=StaticCredentialsProvider("AKID", "SECRET")
        )
        channelizer.init(FakeConnection("ws://localhost:8182/gremlin"))

        with pytest.raises(SigV4PropertiesNotFoundError):
            channelizer.configure(ChannelPipeline(mock.Mock()))

    def test_unknown_serializer(self):
        """Test that an unknown serializer is rejected at init."""
        with pytest.raises(ValueError):
            make_channelizer().init(FakeConnection("ws://localhost/gremlin", serializer="xml"))


class TestCredentialsProviderHook:
    def test_default(self):
        """Test that the default credentials chain is used."""
        channelizer = SigV4WebSocketChannelizer()
        with mock.patch("neptune_sigv4.credentials.botocore.session.get_session"):
            assert isinstance(channelizer.get_credentials_provider(), DefaultCredentialsProviderChain)

    def test_supplied(self):
        """Test that a supplied provider is used."""
        provider = StaticCredentialsProvider("AKID", "SECRET")
        assert SigV4WebSocketChannelizer(provider).get_credentials_provider() is provider

    def test_override(self):
        """Test that subclasses can override the provider."""
        provider = StaticCredentialsProvider("SUBCLASS", "SECRET")

        class CustomChannelizer(SigV4WebSocketChannelizer):
            def get_credentials_provider(self):
                return provider

        channelizer = CustomChannelizer(
            properties_provider=ChainedSigV4PropertiesProvider([lambda: SigV4Properties("us-east-1")])
        )
        channelizer.init(FakeConnection("ws://localhost:8182/gremlin"))
        pipeline = ChannelPipeline(mock.Mock())
        channelizer.configure(pipeline)

        request = pipeline.get("ws-handler").handshaker.new_handshake_request()
        assert "Credential=SUBCLASS/" in request.headers["Authorization"]


class TestConnected:
    """Tests for waiting on the handshake."""

    def test_success(self):
        """Test that a completed handshake returns."""
        channelizer, _ = configured()
        channelizer.handler.complete_handshake()

        channelizer.connected(timeout=0.01)

    def test_timeout(self):
        """Test that an unresolved handshake times out."""
        channelizer, _ = configured()

        with pytest.raises(HandshakeTimeoutError) as exc_info:
            channelizer.connected(timeout=0.001)

        assert "Consider increasing the WebSocket handshake timeout duration" in str(exc_info.value)
        assert exc_info.value.uri == "ws://localhost:8182/gremlin"

    def test_timeout_marks_future_failed(self):
        """Test that a late handshake completion is ignored after a timeout."""
        channelizer, _ = configured()

        with pytest.raises(HandshakeTimeoutError):
            channelizer.connected(timeout=0.001)

        assert not channelizer.handler.complete_handshake()
        assert isinstance(channelizer.handshake_future.exception(timeout=0), HandshakeTimeoutError)

    def test_default_timeout(self):
        """Test that the connection setup timeout is the default."""
        channelizer, _ = configured(connection_setup_timeout=0.001)

        with pytest.raises(HandshakeTimeoutError):
            channelizer.connected()

    def test_handshake_failure(self):
        """Test that handshake errors are wrapped with guidance."""
        channelizer, _ = configured()
        cause = WebSocketHandshakeError("WebSocket handshake failed: 403 Forbidden")
        channelizer.handler.complete_handshake(cause)

        with pytest.raises(HandshakeFailedError) as exc_info:
            channelizer.connected(timeout=1)

        assert exc_info.value.__cause__ is cause
        assert "Ensure that SSL is correctly configured" in str(exc_info.value)

    def test_credentials_error_propagates(self):
        """Test that credential failures reach the caller unchanged."""
        provider = mock.Mock()
        provider.resolve.side_effect = CredentialsUnavailableError("none")
        channelizer, pipeline = configured(credentials_provider=provider)

        pipeline.fire_channel_active()

        with pytest.raises(CredentialsUnavailableError):
            channelizer.connected(timeout=1)
        pipeline.channel.write_bytes.assert_not_called()

    def test_not_configured(self):
        """Test waiting before configuration."""
        with pytest.raises(RuntimeError):
            make_channelizer().handshake_future


class TestCloseAndKeepAlive:
    """Tests for closing and keep-alive."""

    def test_close_open_channel(self):
        """Test that an open channel is sent a close frame."""
        channel = mock.Mock(is_open=True)

        make_channelizer().close(channel)

        (frame,), _ = channel.write_and_flush.call_args
        assert frame.opcode == WebSocketFrameType.CLOSE

    def test_close_closed_channel(self):
        """Test that closing a closed channel writes nothing, twice."""
        channel = mock.Mock(is_open=False)
        channelizer = make_channelizer()

        channelizer.close(channel)
        channelizer.close(channel)

        channel.write_and_flush.assert_not_called()

    def test_keep_alive(self):
        """Test that keep-alive uses a fresh ping each time."""
        channelizer = make_channelizer()

        first = channelizer.create_keep_alive_message()
        second = channelizer.create_keep_alive_message()

        assert channelizer.supports_keep_alive()
        assert first.opcode == WebSocketFrameType.PING
        assert first is not second
