"""
Configures the pipeline of a connection to a SigV4-authenticated WebSocket
endpoint such as Amazon Neptune.
"""

from __future__ import annotations

import concurrent.futures
import logging
from typing import Any, Optional

from .credentials import CredentialsProvider, DefaultCredentialsProviderChain
from .exceptions import (
    CredentialsUnavailableError,
    HandshakeFailedError,
    HandshakeTimeoutError,
    SigningError,
    SigV4PropertiesNotFoundError,
    SSLConfigurationError,
    UnsupportedSchemeError,
)
from .handshake import WS_VERSION, SigV4ClientHandshaker
from .pipeline import (
    AGGREGATOR,
    GREMLIN_DECODER,
    GREMLIN_ENCODER,
    HTTP_CODEC,
    WEB_SOCKET_HANDLER,
    WEBSOCKET_COMPRESSION_HANDLER,
    ChannelPipeline,
    HttpClientCodec,
    HttpObjectAggregator,
    WebSocketClientCompressionHandler,
    WebSocketClientHandler,
    WebSocketRequestEncoder,
    WebSocketResponseDecoder,
)
from .properties import ChainedSigV4PropertiesProvider
from .websocket.extensions import PerMessageDeflate
from .websocket.protocol import WebSocketFrame
from .websocket.serializers import get_serializer

log = logging.getLogger(__name__)

WEB_SOCKET = "ws"
WEB_SOCKET_SECURE = "wss"

TIMEOUT_MESSAGE = (
    "Timed out while waiting to complete the connection setup. "
    "Consider increasing the WebSocket handshake timeout duration."
)
FAILURE_MESSAGE = (
    "Could not complete connection setup to the server. "
    "Ensure that SSL is correctly configured at both the client and the server. "
    "Ensure that client WebSocket handshake protocol matches the server. "
    "Ensure that the server is still reachable."
)

# Raised while building the signed request; these reach the caller unchanged
_SIGNING_ERRORS = (SigV4PropertiesNotFoundError, CredentialsUnavailableError, SigningError)


class SigV4WebSocketChannelizer:
    """
    Installs the WebSocket handlers on a connection's pipeline, with a
    handshaker that signs the upgrade request.

    Subclasses can override :meth:`get_credentials_provider` to change how
    the signing credentials are obtained.
    """

    def __init__(
        self,
        credentials_provider: Optional[CredentialsProvider] = None,
        properties_provider: Optional[ChainedSigV4PropertiesProvider] = None,
    ) -> None:
        self._credentials_provider = credentials_provider
        self.properties_provider = properties_provider or ChainedSigV4PropertiesProvider()
        self.connection: Any = None
        self.handler: Optional[WebSocketClientHandler] = None
        self._extension: Optional[PerMessageDeflate] = None
        self.request_encoder: Optional[WebSocketRequestEncoder] = None
        self.response_decoder: Optional[WebSocketResponseDecoder] = None

    def init(self, connection: Any) -> None:
        """
        Bind to a connection.

        :param connection: Provides ``uri``, ``scheme`` and ``settings``
        """
        self.connection = connection
        serializer = get_serializer(connection.settings.serializer)
        self.request_encoder = WebSocketRequestEncoder(serializer)
        self.response_decoder = WebSocketResponseDecoder(serializer)

    @property
    def scheme(self) -> str:
        return self.connection.scheme

    def supports_ssl(self) -> bool:
        return self.scheme == WEB_SOCKET_SECURE

    def supports_keep_alive(self) -> bool:
        # Keep-alive uses WebSocket ping frames
        return True

    def create_keep_alive_message(self) -> WebSocketFrame:
        return WebSocketFrame.create_ping()

    def get_credentials_provider(self) -> CredentialsProvider:
        """Return the provider of the credentials used to sign the upgrade request."""
        if self._credentials_provider is not None:
            return self._credentials_provider
        return DefaultCredentialsProviderChain()

    @property
    def handshake_future(self) -> concurrent.futures.Future:
        if self.handler is None:
            raise RuntimeError("The channelizer has not configured a pipeline")
        return self.handler.handshake_future()

    def configure(self, pipeline: ChannelPipeline) -> None:
        """
        Install the handlers on ``pipeline``.

        :raises UnsupportedSchemeError: If the URI is not ws:// or wss://
        :raises SSLConfigurationError: If a wss:// URI is used without SSL
        :raises SigV4PropertiesNotFoundError: If no signing region is configured
        """
        scheme = self.scheme
        if scheme not in (WEB_SOCKET, WEB_SOCKET_SECURE):
            raise UnsupportedSchemeError(scheme)

        settings = self.connection.settings
        if scheme == WEB_SOCKET_SECURE and not settings.enable_ssl:
            raise SSLConfigurationError(
                f"To use {WEB_SOCKET_SECURE} scheme ensure that enable_ssl is set to true in configuration"
            )

        self.handler = self._create_handler()

        pipeline.add_last(HTTP_CODEC, HttpClientCodec())
        pipeline.add_last(AGGREGATOR, HttpObjectAggregator(settings.max_content_length))
        if settings.enable_compression:
            # permessage-deflate, RFC 7692
            pipeline.add_last(
                WEBSOCKET_COMPRESSION_HANDLER,
                WebSocketClientCompressionHandler(self._extension),
            )
        pipeline.add_last(WEB_SOCKET_HANDLER, self.handler)
        pipeline.add_last(GREMLIN_ENCODER, self.request_encoder)
        pipeline.add_last(GREMLIN_DECODER, self.response_decoder)
        log.debug(f"Configured pipeline for {self.connection.uri}: {pipeline.names()}")

    def _create_handler(self) -> WebSocketClientHandler:
        settings = self.connection.settings
        self._extension = None
        extensions = []
        if settings.enable_compression:
            self._extension = PerMessageDeflate(
                compression_level=settings.compression_level,
                max_message_size=settings.max_content_length,
            )
            extensions.append(self._extension)

        handshaker = SigV4ClientHandshaker(
            self.connection.uri,
            version=WS_VERSION,
            subprotocol=settings.subprotocol,
            allow_extensions=settings.enable_compression,
            custom_headers=settings.custom_headers,
            max_frame_payload_length=settings.max_content_length,
            properties_provider=self.properties_provider,
            credentials_provider=self.get_credentials_provider(),
            extensions=extensions,
            service=settings.service,
        )
        return WebSocketClientHandler(handshaker, max_content_length=settings.max_content_length)

    def connected(self, timeout: Optional[float] = None) -> None:
        """
        Block until the WebSocket handshake has completed.

        :param timeout: Seconds to wait, defaults to the connection setup timeout
        :raises HandshakeTimeoutError: If the handshake does not complete in time
        :raises HandshakeFailedError: If the handshake failed
        """
        if timeout is None:
            timeout = self.connection.settings.connection_setup_timeout

        uri = self.connection.uri
        future = self.handshake_future
        try:
            future.result(timeout=timeout)
        except concurrent.futures.TimeoutError as e:
            timeout_error = HandshakeTimeoutError(uri, TIMEOUT_MESSAGE)
            if self.handler.complete_handshake(timeout_error):
                log.warning(f"WebSocket handshake with {uri} timed out after {timeout}s")
                raise timeout_error from e
            # Completed while the timeout was being recorded
            self._check_outcome(future)
        except _SIGNING_ERRORS:
            raise
        except Exception as e:
            log.warning(f"WebSocket handshake with {uri} failed: {e}")
            raise HandshakeFailedError(uri, FAILURE_MESSAGE) from e

    def _check_outcome(self, future: concurrent.futures.Future) -> None:
        exc = future.exception(timeout=0)
        if exc is None:
            return
        if isinstance(exc, _SIGNING_ERRORS):
            raise exc
        raise HandshakeFailedError(self.connection.uri, FAILURE_MESSAGE) from exc

    def close(self, channel: Any) -> None:
        """Send a close frame on ``channel`` if it is still open."""
        if channel.is_open:
            channel.write_and_flush(WebSocketFrame.create_close())
