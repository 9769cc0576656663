"""
HTTP messages exchanged during the WebSocket upgrade.
"""

from __future__ import annotations

from typing import Mapping, Optional
from urllib.parse import urlsplit

from ._collections import HTTPHeaderDict

# Maps the WebSocket scheme to the HTTP scheme of the upgrade request
HTTP_SCHEMES = {"ws": "http", "wss": "https"}
DEFAULT_PORTS = {"ws": 80, "wss": 443}


class HandshakeRequest:
    """
    An HTTP upgrade request: method, target URI, ordered headers and an
    empty body.

    Once frozen, the headers can no longer be modified; the transport writes
    a frozen request to the wire unchanged.
    """

    def __init__(
        self,
        uri: str,
        method: str = "GET",
        headers: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.uri = uri
        self.method = method
        self.headers = HTTPHeaderDict(headers)
        self.body = b""

        parsed = urlsplit(uri)
        self.scheme = parsed.scheme.lower()
        self.hostname = parsed.hostname or ""
        self.port = parsed.port or DEFAULT_PORTS.get(self.scheme)
        self.path = parsed.path or "/"
        self.query = parsed.query

    @property
    def target(self) -> str:
        """The request target written on the request line."""
        return f"{self.path}?{self.query}" if self.query else self.path

    @property
    def signing_url(self) -> str:
        """The equivalent http(s) URL, as seen by a SigV4 verifier."""
        http_scheme = HTTP_SCHEMES.get(self.scheme, self.scheme)
        return f"{http_scheme}://{self.headers.get('Host', self.hostname)}{self.target}"

    @property
    def frozen(self) -> bool:
        return self.headers.frozen

    def freeze(self) -> "HandshakeRequest":
        self.headers.freeze()
        return self

    def copy(self) -> "HandshakeRequest":
        """Return an unfrozen copy of this request."""
        return HandshakeRequest(self.uri, self.method, self.headers.copy())

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.method} {self.uri}, headers={self.headers!r})"


class HttpResponseHead:
    """Status line and headers of an HTTP response."""

    def __init__(self, version: str, status: int, reason: str, headers: HTTPHeaderDict) -> None:
        self.version = version
        self.status = status
        self.reason = reason
        self.headers = headers

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.version} {self.status} {self.reason})"


class HttpContent:
    """A chunk of an HTTP response body; ``last`` marks the end of the body."""

    def __init__(self, data: bytes, last: bool = False) -> None:
        self.data = data
        self.last = last


class FullHttpResponse(HttpResponseHead):
    """An HTTP response with its complete body."""

    def __init__(
        self, version: str, status: int, reason: str, headers: HTTPHeaderDict, body: bytes = b""
    ) -> None:
        super().__init__(version, status, reason, headers)
        self.body = body
