"""
Configuration for neptune_sigv4.

This module holds the process-wide configuration properties consulted by the
region resolver and the credentials chain, and the per-connection settings.
"""

from __future__ import annotations

import ssl
from dataclasses import dataclass, field
from typing import Dict, Optional

from ._collections import PropertyStore

# Name of both the environment variable and the process property holding the
# signing region
SERVICE_REGION = "SERVICE_REGION"

# Process properties read by SystemPropertiesCredentialsProvider
ACCESS_KEY_PROPERTY = "aws.accessKeyId"
SECRET_KEY_PROPERTY = "aws.secretKey"
SESSION_TOKEN_PROPERTY = "aws.sessionToken"

# Service name used in the SigV4 credential scope
NEPTUNE_SERVICE_NAME = "neptune-db"

# Process configuration properties, the counterpart of environment variables
# that an application sets from its own configuration at runtime.
system_properties = PropertyStore()


@dataclass
class ConnectionSettings:
    """Settings for a SigV4-signed WebSocket connection."""

    # Wrap the socket in TLS; required for wss:// URLs
    enable_ssl: bool = False

    # Maximum size of an aggregated HTTP response body or WebSocket frame
    max_content_length: int = 65536

    # Seconds to wait for the socket connect and the WebSocket handshake
    connection_setup_timeout: float = 15.0

    # Message serializer name, see neptune_sigv4.websocket.serializers
    serializer: str = "json"

    # Sec-WebSocket-Protocol to request, omitted when None
    subprotocol: Optional[str] = None

    # Offer permessage-deflate during the handshake
    enable_compression: bool = True
    compression_level: int = 9

    # SigV4 credential scope service
    service: str = NEPTUNE_SERVICE_NAME

    # TLS settings, a context built from certifi is used when not given
    ssl_context: Optional[ssl.SSLContext] = None
    ca_certs: Optional[str] = None

    # Extra headers merged into the upgrade request before signing
    custom_headers: Dict[str, str] = field(default_factory=dict)
