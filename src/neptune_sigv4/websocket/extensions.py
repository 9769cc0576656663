"""
WebSocket extensions.

This module provides the permessage-deflate extension defined in RFC 7692.
"""

from __future__ import annotations

import dataclasses
import logging
import zlib
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple

from ..exceptions import MessageTooLargeError
from .protocol import WebSocketFrame, WebSocketFrameType

log = logging.getLogger(__name__)

# Trailer removed from compressed messages (RFC 7692 section 7.2.1)
_DEFLATE_TAIL = b"\x00\x00\xff\xff"

_DATA_OPCODES = (WebSocketFrameType.TEXT, WebSocketFrameType.BINARY)


class WebSocketExtension(ABC):
    """
    Base class for WebSocket extensions negotiated during the handshake.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Get the name of the extension."""
        pass

    @abstractmethod
    def offer(self) -> str:
        """Generate the offer for the Sec-WebSocket-Extensions header."""
        pass

    @abstractmethod
    def accept(self, params: Dict[str, Optional[str]]) -> bool:
        """
        Process the parameters the server answered the offer with.

        :return: True if the extension is now active
        """
        pass

    @abstractmethod
    def encode_frame(self, frame: WebSocketFrame) -> WebSocketFrame:
        pass

    @abstractmethod
    def decode_frame(self, frame: WebSocketFrame) -> WebSocketFrame:
        pass


class PerMessageDeflate(WebSocketExtension):
    """
    The permessage-deflate extension.

    Outgoing messages are sent as single frames and compressed as a whole;
    incoming compressed messages may span several frames. When
    ``max_message_size`` is set, a message that inflates beyond it raises
    :class:`~neptune_sigv4.exceptions.MessageTooLargeError` before the excess
    is held in memory.
    """

    def __init__(
        self,
        client_max_window_bits: Optional[int] = 15,
        client_no_context_takeover: bool = False,
        server_no_context_takeover: bool = False,
        compression_level: int = 9,
        max_message_size: Optional[int] = None,
    ) -> None:
        self.client_max_window_bits = client_max_window_bits
        self.client_no_context_takeover = client_no_context_takeover
        self.server_no_context_takeover = server_no_context_takeover
        self.compression_level = compression_level
        self.max_message_size = max_message_size

        self._client_window_bits = 15
        self._server_window_bits = 15
        self._reset_deflator = False
        self._reset_inflator = False
        self._deflator = None
        self._inflator = None
        self._inflating = False
        self._inflated_size = 0
        self._enabled = False

    @property
    def name(self) -> str:
        return "permessage-deflate"

    @property
    def enabled(self) -> bool:
        return self._enabled

    def offer(self) -> str:
        params = []
        if self.client_max_window_bits is not None:
            params.append(f"client_max_window_bits={self.client_max_window_bits}")
        if self.client_no_context_takeover:
            params.append("client_no_context_takeover")
        if self.server_no_context_takeover:
            params.append("server_no_context_takeover")
        return "; ".join([self.name] + params)

    def accept(self, params: Dict[str, Optional[str]]) -> bool:
        client_bits = self._client_window_bits
        server_bits = self._server_window_bits
        for key, value in params.items():
            if key == "client_no_context_takeover":
                self._reset_deflator = True
            elif key == "server_no_context_takeover":
                self._reset_inflator = True
            elif key in ("client_max_window_bits", "server_max_window_bits"):
                try:
                    bits = int(value or "")
                except ValueError:
                    log.warning(f"Invalid {key} in permessage-deflate response: {value}")
                    return False
                if not 8 <= bits <= 15:
                    log.warning(f"Out of range {key} in permessage-deflate response: {bits}")
                    return False
                if key == "client_max_window_bits":
                    client_bits = bits
                else:
                    server_bits = bits
            else:
                log.warning(f"Unknown permessage-deflate parameter: {key}")
                return False

        self._client_window_bits = client_bits
        self._server_window_bits = server_bits
        self._reset_deflator = self._reset_deflator or self.client_no_context_takeover
        self._deflator = self._new_deflator()
        self._inflator = zlib.decompressobj(-self._server_window_bits)
        self._enabled = True
        return True

    def _new_deflator(self):
        # zlib rejects raw deflate with 8 window bits
        return zlib.compressobj(
            self.compression_level, zlib.DEFLATED, -max(self._client_window_bits, 9)
        )

    def encode_frame(self, frame: WebSocketFrame) -> WebSocketFrame:
        if not self._enabled or frame.opcode not in _DATA_OPCODES or not frame.payload:
            return frame

        compressed = self._deflator.compress(frame.payload) + self._deflator.flush(zlib.Z_SYNC_FLUSH)
        if compressed.endswith(_DEFLATE_TAIL):
            compressed = compressed[: -len(_DEFLATE_TAIL)]

        if self._reset_deflator:
            self._deflator = self._new_deflator()

        return dataclasses.replace(frame, payload=compressed, rsv1=True)

    def decode_frame(self, frame: WebSocketFrame) -> WebSocketFrame:
        if not self._enabled:
            return frame

        if frame.opcode in _DATA_OPCODES:
            self._inflating = frame.rsv1
            self._inflated_size = 0
        elif frame.opcode != WebSocketFrameType.CONTINUATION:
            return frame

        if not self._inflating:
            return frame

        data = frame.payload + (_DEFLATE_TAIL if frame.fin else b"")
        payload = self._inflate(data)

        if frame.fin:
            self._inflating = False
            if self._reset_inflator:
                self._inflator = zlib.decompressobj(-self._server_window_bits)

        return dataclasses.replace(frame, payload=payload, rsv1=False)

    def _inflate(self, data: bytes) -> bytes:
        if self.max_message_size is None:
            return self._inflator.decompress(data)

        remaining = self.max_message_size - self._inflated_size
        payload = self._inflator.decompress(data, remaining + 1)
        self._inflated_size += len(payload)
        if len(payload) > remaining or self._inflator.unconsumed_tail:
            self._inflating = False
            raise MessageTooLargeError(
                f"Decompressed message exceeds the maximum of {self.max_message_size} bytes"
            )
        return payload


def parse_extension_header(header: str) -> List[Tuple[str, Dict[str, Optional[str]]]]:
    """
    Parse the Sec-WebSocket-Extensions header.

    :param header: The header value
    :return: List of (extension_name, parameters) tuples
    """
    extensions = []

    for ext in (header or "").split(","):
        ext = ext.strip()
        if not ext:
            continue

        parts = ext.split(";")
        params: Dict[str, Optional[str]] = {}
        for param in parts[1:]:
            param = param.strip()
            if not param:
                continue
            if "=" in param:
                key, value = param.split("=", 1)
                params[key.strip()] = value.strip().strip('"')
            else:
                params[param] = None

        extensions.append((parts[0].strip(), params))

    return extensions
