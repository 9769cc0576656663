"""
SSL utilities for neptune_sigv4.
"""

from __future__ import annotations

import socket
import ssl
from typing import Optional

import certifi

from ..exceptions import SSLConfigurationError


def create_ssl_context(
    ca_certs: Optional[str] = None,
    cert_reqs: Optional[int] = None,
    ssl_minimum_version: Optional[int] = None,
) -> ssl.SSLContext:
    """
    Creates a client :class:`ssl.SSLContext` for WebSocket connections.

    The ``certifi`` CA bundle is loaded unless ``ca_certs`` points somewhere
    else.

    Args:
        ca_certs: Path to a CA bundle, defaults to ``certifi.where()``.
        cert_reqs: The certificate requirements, defaults to CERT_REQUIRED.
        ssl_minimum_version: The minimum TLS version to use.

    Returns:
        The configured SSL context.
    """
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)

    # Disable compression to prevent CRIME attacks
    context.options |= getattr(ssl, "OP_NO_COMPRESSION", 0)

    cert_reqs = ssl.CERT_REQUIRED if cert_reqs is None else cert_reqs
    if cert_reqs == ssl.CERT_NONE:
        context.check_hostname = False
    context.verify_mode = cert_reqs

    context.minimum_version = (
        ssl.TLSVersion.TLSv1_2 if ssl_minimum_version is None else ssl_minimum_version
    )

    if cert_reqs != ssl.CERT_NONE:
        try:
            context.load_verify_locations(cafile=ca_certs or certifi.where())
        except OSError as e:
            raise SSLConfigurationError(f"Unable to load CA certificates: {e}") from e

    return context


def ssl_wrap_socket(
    sock: socket.socket,
    server_hostname: Optional[str] = None,
    ssl_context: Optional[ssl.SSLContext] = None,
    ca_certs: Optional[str] = None,
) -> ssl.SSLSocket:
    """
    Wrap ``sock`` in TLS.

    :param server_hostname:
        The expected hostname of the certificate, also sent as SNI
    :param ssl_context:
        A pre-made :class:`SSLContext` object. If none is provided, one will
        be created using :func:`create_ssl_context`.
    :param ca_certs:
        CA bundle used when a context has to be created
    """
    context = ssl_context or create_ssl_context(ca_certs=ca_certs)
    return context.wrap_socket(sock, server_hostname=server_hostname)
