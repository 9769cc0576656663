"""
WebSocket client handshakes.

:class:`WebSocketClientHandshaker` builds the standard RFC 6455 upgrade
request and validates the server's answer. It accepts a request decorator
that may rewrite the request before it is sent; :class:`SigV4ClientHandshaker`
uses that hook to attach a SigV4 signature.
"""

from __future__ import annotations

import base64
import hashlib
import logging
import os
from typing import Callable, Dict, List, Mapping, Optional

import idna

from .config import NEPTUNE_SERVICE_NAME
from .credentials import CredentialsProvider
from .exceptions import WebSocketHandshakeError
from .http_messages import DEFAULT_PORTS, FullHttpResponse, HandshakeRequest
from .properties import ChainedSigV4PropertiesProvider, SigV4Properties
from .signer import SigV4RequestSigner
from .websocket.extensions import WebSocketExtension

log = logging.getLogger(__name__)

RequestDecorator = Callable[[HandshakeRequest], HandshakeRequest]

WS_VERSION = 13
WS_GUID = "258EAFA5-E914-47DA-95CA-C5AB0DC85B11"


def _host_header(request: HandshakeRequest) -> str:
    host = request.hostname
    if ":" in host:
        host = f"[{host}]"
    elif not host.isascii():
        host = idna.encode(host, uts46=True).decode("ascii")

    if request.port is not None and request.port != DEFAULT_PORTS.get(request.scheme):
        host = f"{host}:{request.port}"
    return host


def accept_key(key: str) -> str:
    """Compute the Sec-WebSocket-Accept value expected for ``key``."""
    digest = hashlib.sha1((key + WS_GUID).encode("ascii")).digest()
    return base64.b64encode(digest).decode("ascii")


class WebSocketClientHandshaker:
    """
    Builds the WebSocket upgrade request and validates the response.

    A handshaker is good for a single handshake.
    """

    def __init__(
        self,
        uri: str,
        version: int = WS_VERSION,
        subprotocol: Optional[str] = None,
        allow_extensions: bool = True,
        custom_headers: Optional[Mapping[str, str]] = None,
        max_frame_payload_length: int = 65536,
        extensions: Optional[List[WebSocketExtension]] = None,
        request_decorator: Optional[RequestDecorator] = None,
    ) -> None:
        """
        :param uri: The ws:// or wss:// URI to connect to
        :param version: WebSocket protocol version, only 13 is supported
        :param subprotocol: Sec-WebSocket-Protocol to request, omitted if None
        :param allow_extensions: Whether extensions are offered
        :param custom_headers: Headers merged into the request
        :param max_frame_payload_length: Maximum payload of a received frame
        :param extensions: Extensions offered when ``allow_extensions`` is set
        :param request_decorator: Rewrites the request once it is complete
        """
        if version != WS_VERSION:
            raise ValueError(f"Unsupported WebSocket version: {version}")

        self.uri = uri
        self.version = version
        self.subprotocol = subprotocol
        self.allow_extensions = allow_extensions
        self.custom_headers: Dict[str, str] = dict(custom_headers or {})
        self.max_frame_payload_length = max_frame_payload_length
        self.extensions = list(extensions or []) if allow_extensions else []
        self.request_decorator = request_decorator

        self.actual_subprotocol: Optional[str] = None
        self.handshake_complete = False
        self._expected_accept: Optional[str] = None

    def new_handshake_request(self) -> HandshakeRequest:
        """
        Build the upgrade request.

        The WebSocket headers come first, then the custom headers; the
        request decorator sees the complete header set. The returned request
        is frozen.
        """
        request = HandshakeRequest(self.uri)
        key = base64.b64encode(os.urandom(16)).decode("ascii")
        self._expected_accept = accept_key(key)

        headers = request.headers
        headers["Host"] = _host_header(request)
        headers["Upgrade"] = "websocket"
        headers["Connection"] = "Upgrade"
        headers["Sec-WebSocket-Key"] = key
        headers["Sec-WebSocket-Version"] = str(self.version)

        if self.subprotocol:
            headers["Sec-WebSocket-Protocol"] = self.subprotocol

        if self.extensions:
            headers["Sec-WebSocket-Extensions"] = ", ".join(ext.offer() for ext in self.extensions)

        for name, value in self.custom_headers.items():
            headers[name] = value

        if self.request_decorator is not None:
            request = self.request_decorator(request)

        return request.freeze()

    def finish_handshake(self, response: FullHttpResponse) -> None:
        """
        Validate the server's answer to the upgrade request.

        :raises WebSocketHandshakeError: If the response does not complete
            the handshake
        """
        if response.status != 101:
            detail = response.body.decode("utf-8", errors="replace").strip()
            raise WebSocketHandshakeError(
                f"WebSocket handshake failed: {response.status} {response.reason}"
                + (f": {detail}" if detail else ""),
                response=response,
            )

        if response.headers.get("Upgrade", "").lower() != "websocket":
            raise WebSocketHandshakeError(
                "WebSocket handshake failed: 'Upgrade' header is not 'websocket'",
                response=response,
            )

        if "upgrade" not in response.headers.get("Connection", "").lower():
            raise WebSocketHandshakeError(
                "WebSocket handshake failed: 'Connection' header is not 'upgrade'",
                response=response,
            )

        if response.headers.get("Sec-WebSocket-Accept") != self._expected_accept:
            raise WebSocketHandshakeError(
                "WebSocket handshake failed: Invalid 'Sec-WebSocket-Accept' header",
                response=response,
            )

        selected = response.headers.get("Sec-WebSocket-Protocol")
        if selected and selected != self.subprotocol:
            raise WebSocketHandshakeError(
                f"Server selected unsupported protocol: {selected}",
                response=response,
            )

        self.actual_subprotocol = selected
        self.handshake_complete = True
        log.debug(f"WebSocket handshake with {self.uri} complete")


class SigV4ClientHandshaker:
    """
    A WebSocket handshaker whose upgrade request carries a SigV4 signature.

    The region is resolved once, at construction; credentials are resolved
    again for every request.
    """

    def __init__(
        self,
        uri: str,
        version: int,
        subprotocol: Optional[str],
        allow_extensions: bool,
        custom_headers: Optional[Mapping[str, str]],
        max_frame_payload_length: int,
        properties_provider: ChainedSigV4PropertiesProvider,
        credentials_provider: CredentialsProvider,
        extensions: Optional[List[WebSocketExtension]] = None,
        service: str = NEPTUNE_SERVICE_NAME,
    ) -> None:
        """
        :raises SigV4PropertiesNotFoundError: If no region can be resolved
        """
        self.properties: SigV4Properties = properties_provider.get_sigv4_properties()
        self.signer = SigV4RequestSigner(
            self.properties.service_region, credentials_provider, service=service
        )
        self.handshaker = WebSocketClientHandshaker(
            uri,
            version=version,
            subprotocol=subprotocol,
            allow_extensions=allow_extensions,
            custom_headers=custom_headers,
            max_frame_payload_length=max_frame_payload_length,
            extensions=extensions,
            request_decorator=self.signer.sign,
        )

    @property
    def uri(self) -> str:
        return self.handshaker.uri

    @property
    def max_frame_payload_length(self) -> int:
        return self.handshaker.max_frame_payload_length

    @property
    def actual_subprotocol(self) -> Optional[str]:
        return self.handshaker.actual_subprotocol

    @property
    def handshake_complete(self) -> bool:
        return self.handshaker.handshake_complete

    def new_handshake_request(self) -> HandshakeRequest:
        """
        Build the upgrade request and sign it.

        The request looks like::

            GET /gremlin HTTP/1.1
            Host: my-cluster.cluster-abc.us-east-1.neptune.amazonaws.com:8182
            Upgrade: websocket
            Connection: Upgrade
            Sec-WebSocket-Key: dGhlIHNhbXBsZSBub25jZQ==
            Sec-WebSocket-Version: 13
            x-amz-date: 20180214T002049Z
            Authorization: AWS4-HMAC-SHA256 Credential=...

        :raises CredentialsUnavailableError: If no credentials are available
        :raises SigningError: If the signature cannot be computed
        """
        return self.handshaker.new_handshake_request()

    def finish_handshake(self, response: FullHttpResponse) -> None:
        self.handshaker.finish_handshake(response)
