"""
neptune_sigv4 - SigV4-signed WebSocket connections for Amazon Neptune.

neptune_sigv4 opens WebSocket connections to graph database endpoints that
authenticate the HTTP upgrade request with AWS Signature Version 4:
- Region resolution from the environment or process properties
- Pluggable credentials providers backed by botocore
- Signing of the upgrade request before it is sent
- A WebSocket pipeline with permessage-deflate and json/msgpack/cbor payloads
"""

# Import version
from ._version import __version__

# Set default logging handler to avoid "No handler found" warnings.
import logging
from logging import NullHandler

logging.getLogger(__name__).addHandler(NullHandler())

# Import exceptions first to avoid circular imports
from . import exceptions

from ._collections import HTTPHeaderDict
from .channelizer import SigV4WebSocketChannelizer
from .config import ConnectionSettings, system_properties
from .connection import Channel, Connection
from .credentials import (
    BotocoreCredentialsProvider,
    CredentialsProvider,
    CredentialsProviderChain,
    DefaultCredentialsProviderChain,
    EnvironmentCredentialsProvider,
    StaticCredentialsProvider,
    SystemPropertiesCredentialsProvider,
)
from .handshake import SigV4ClientHandshaker, WebSocketClientHandshaker
from .http_messages import HandshakeRequest
from .properties import ChainedSigV4PropertiesProvider, SigV4Properties
from .signer import SigV4RequestSigner

from .exceptions import (
    CredentialsUnavailableError,
    HandshakeFailedError,
    HandshakeTimeoutError,
    SigningError,
    SigV4Error,
    SigV4PropertiesNotFoundError,
    SSLConfigurationError,
    UnsupportedSchemeError,
)

__all__ = (
    "__version__",
    "exceptions",
    "HTTPHeaderDict",
    "Channel",
    "Connection",
    "ConnectionSettings",
    "system_properties",
    # Signing
    "ChainedSigV4PropertiesProvider",
    "SigV4Properties",
    "SigV4RequestSigner",
    "HandshakeRequest",
    "SigV4ClientHandshaker",
    "WebSocketClientHandshaker",
    "SigV4WebSocketChannelizer",
    # Credentials
    "CredentialsProvider",
    "CredentialsProviderChain",
    "DefaultCredentialsProviderChain",
    "EnvironmentCredentialsProvider",
    "StaticCredentialsProvider",
    "SystemPropertiesCredentialsProvider",
    "BotocoreCredentialsProvider",
    # Exceptions
    "SigV4Error",
    "SigV4PropertiesNotFoundError",
    "CredentialsUnavailableError",
    "SigningError",
    "UnsupportedSchemeError",
    "SSLConfigurationError",
    "HandshakeTimeoutError",
    "HandshakeFailedError",
)
