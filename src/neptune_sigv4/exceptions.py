"""
Exceptions for neptune_sigv4.

This module contains all exceptions raised by neptune_sigv4.
"""

from __future__ import annotations

import typing


class SigV4Error(Exception):
    """Base exception used by this module."""

    pass


class SigV4PropertiesNotFoundError(SigV4Error):
    """
    Raised when no provider in the chain yields the properties required for
    SigV4 signing (the service region).
    """

    pass


class CredentialsUnavailableError(SigV4Error):
    """Raised when a credentials provider cannot produce usable credentials."""

    pass


class SigningError(SigV4Error):
    """
    Raised when computing the SigV4 signature of a handshake request fails.

    The request is never sent when this is raised.
    """

    pass


class ConfigurationError(SigV4Error):
    """Raised when the connection configuration is rejected before any I/O."""

    pass


class UnsupportedSchemeError(ConfigurationError):
    """Raised when the connection URI uses a scheme other than ws or wss."""

    def __init__(self, scheme: str) -> None:
        super().__init__(
            f"Unsupported scheme (only ws: or wss: supported): {scheme}"
        )
        self.scheme = scheme


class SSLConfigurationError(ConfigurationError):
    """Raised when the SSL settings do not match the connection scheme."""

    pass


class ConnectionSetupError(SigV4Error):
    """Base class for errors that make a connection unusable during setup."""

    def __init__(self, uri: str, message: str) -> None:
        super().__init__(f"{uri}: {message}")
        self.uri = uri


class HandshakeTimeoutError(ConnectionSetupError):
    """Raised when the WebSocket handshake does not complete in time."""

    pass


class HandshakeFailedError(ConnectionSetupError):
    """
    Raised when the WebSocket handshake completes with an error.

    The underlying cause is available as ``__cause__``.
    """

    pass


class WebSocketError(SigV4Error):
    """Base class for all WebSocket-related errors."""

    pass


class WebSocketHandshakeError(WebSocketError):
    """
    Raised when the server's answer to the upgrade request is not a valid
    WebSocket handshake response.
    """

    def __init__(self, message: str, response: typing.Any = None) -> None:
        super().__init__(message)
        self.response = response


class WebSocketProtocolError(WebSocketError):
    """
    Raised when a WebSocket protocol error occurs.

    This can happen if invalid frames are received or if the
    protocol is violated in some other way.
    """

    pass


class MessageTooLargeError(WebSocketProtocolError):
    """Raised when an HTTP body or frame exceeds the configured maximum."""

    pass


class WebSocketTimeoutError(WebSocketError):
    """Raised when waiting for a WebSocket message times out."""

    pass


class WebSocketClosedError(WebSocketError):
    """
    Raised when trying to use a closed WebSocket connection.
    """

    def __init__(self, code: int = 1006, reason: str = "") -> None:
        message = f"WebSocket is closed (code={code}, reason={reason})"
        super().__init__(message)
        self.code = code
        self.reason = reason
