"""
WebSocket framing as defined in RFC 6455.
"""

from __future__ import annotations

import os
import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional, Tuple

from ..exceptions import MessageTooLargeError, WebSocketProtocolError


class WebSocketFrameType(IntEnum):
    """WebSocket frame types as defined in RFC 6455."""

    CONTINUATION = 0x0
    TEXT = 0x1
    BINARY = 0x2
    CLOSE = 0x8
    PING = 0x9
    PONG = 0xA


class WebSocketCloseCode(IntEnum):
    """WebSocket close codes as defined in RFC 6455."""

    NORMAL = 1000
    GOING_AWAY = 1001
    PROTOCOL_ERROR = 1002
    UNSUPPORTED_DATA = 1003
    NO_STATUS = 1005
    ABNORMAL = 1006
    INVALID_PAYLOAD = 1007
    POLICY_VIOLATION = 1008
    MESSAGE_TOO_BIG = 1009
    EXTENSION_REQUIRED = 1010
    UNEXPECTED_CONDITION = 1011
    TLS_HANDSHAKE_FAILED = 1015


@dataclass
class WebSocketFrame:
    """A single WebSocket frame."""

    opcode: WebSocketFrameType
    payload: bytes = b""
    fin: bool = True
    rsv1: bool = False
    rsv2: bool = False
    rsv3: bool = False

    @property
    def is_control(self) -> bool:
        return self.opcode >= WebSocketFrameType.CLOSE

    @classmethod
    def create_text(cls, text: str, fin: bool = True) -> "WebSocketFrame":
        return cls(WebSocketFrameType.TEXT, text.encode("utf-8"), fin=fin)

    @classmethod
    def create_binary(cls, data: bytes, fin: bool = True) -> "WebSocketFrame":
        return cls(WebSocketFrameType.BINARY, bytes(data), fin=fin)

    @classmethod
    def create_close(
        cls, code: Optional[WebSocketCloseCode] = None, reason: str = ""
    ) -> "WebSocketFrame":
        """
        Create a close frame.

        A close frame without a code carries an empty payload.
        """
        if code is None:
            return cls(WebSocketFrameType.CLOSE)
        payload = struct.pack("!H", code) + reason.encode("utf-8")
        return cls(WebSocketFrameType.CLOSE, payload)

    @classmethod
    def create_ping(cls, data: bytes = b"") -> "WebSocketFrame":
        return cls(WebSocketFrameType.PING, data)

    @classmethod
    def create_pong(cls, data: bytes = b"") -> "WebSocketFrame":
        """Create a pong frame; ``data`` should echo the ping payload."""
        return cls(WebSocketFrameType.PONG, data)

    def close_details(self) -> Tuple[int, str]:
        """Return ``(code, reason)`` of a close frame."""
        if len(self.payload) < 2:
            return WebSocketCloseCode.NO_STATUS, ""
        code = struct.unpack("!H", self.payload[:2])[0]
        return code, self.payload[2:].decode("utf-8", errors="replace")


@dataclass
class WebSocketMessage:
    """
    A complete WebSocket message, possibly reassembled from several frames.
    """

    opcode: WebSocketFrameType
    data: bytes

    @property
    def is_text(self) -> bool:
        return self.opcode == WebSocketFrameType.TEXT

    @property
    def is_binary(self) -> bool:
        return self.opcode == WebSocketFrameType.BINARY

    @property
    def text(self) -> str:
        """
        Get the message data as text.

        :raises UnicodeDecodeError: If the data is not valid UTF-8
        """
        return self.data.decode("utf-8")


class WebSocketProtocol:
    """
    Encodes and decodes WebSocket frames.

    Clients mask every outgoing frame; ``max_frame_payload_length`` bounds
    the payload of incoming frames.
    """

    def __init__(self, mask_frames: bool = True, max_frame_payload_length: int = 65536) -> None:
        self.mask_frames = mask_frames
        self.max_frame_payload_length = max_frame_payload_length

    def encode_frame(self, frame: WebSocketFrame) -> bytes:
        """
        Encode a WebSocket frame to bytes.

        :param frame: The frame to encode
        :return: The encoded frame
        """
        first_byte = (
            (0x80 if frame.fin else 0)
            | (0x40 if frame.rsv1 else 0)
            | (0x20 if frame.rsv2 else 0)
            | (0x10 if frame.rsv3 else 0)
            | (frame.opcode & 0x0F)
        )

        mask_bit = 0x80 if self.mask_frames else 0
        payload_len = len(frame.payload)
        if payload_len < 126:
            header = struct.pack("!BB", first_byte, payload_len | mask_bit)
        elif payload_len < 65536:
            header = struct.pack("!BBH", first_byte, 126 | mask_bit, payload_len)
        else:
            header = struct.pack("!BBQ", first_byte, 127 | mask_bit, payload_len)

        if not self.mask_frames:
            return header + frame.payload

        mask_key = os.urandom(4)
        return header + mask_key + apply_mask(frame.payload, mask_key)

    def decode_frame(self, data: bytes) -> Optional[Tuple[WebSocketFrame, int]]:
        """
        Decode one WebSocket frame from the start of ``data``.

        :param data: The buffered bytes
        :return: The decoded frame and the number of bytes consumed, or
            None when ``data`` does not hold a complete frame yet
        :raises WebSocketProtocolError: If the frame is invalid
        :raises MessageTooLargeError: If the payload exceeds the maximum
        """
        if len(data) < 2:
            return None

        first_byte, second_byte = data[0], data[1]
        try:
            opcode = WebSocketFrameType(first_byte & 0x0F)
        except ValueError:
            raise WebSocketProtocolError(f"Unknown opcode: {first_byte & 0x0F:#x}")

        masked = bool(second_byte & 0x80)
        payload_len = second_byte & 0x7F

        header_len = 2
        if payload_len == 126:
            if len(data) < 4:
                return None
            payload_len = struct.unpack("!H", data[2:4])[0]
            header_len = 4
        elif payload_len == 127:
            if len(data) < 10:
                return None
            payload_len = struct.unpack("!Q", data[2:10])[0]
            header_len = 10

        if payload_len > self.max_frame_payload_length:
            raise MessageTooLargeError(
                f"Frame payload of {payload_len} bytes exceeds the maximum of "
                f"{self.max_frame_payload_length} bytes"
            )

        mask_key = b""
        if masked:
            if len(data) < header_len + 4:
                return None
            mask_key = bytes(data[header_len:header_len + 4])
            header_len += 4

        if len(data) < header_len + payload_len:
            return None

        payload = bytes(data[header_len:header_len + payload_len])
        if masked:
            payload = apply_mask(payload, mask_key)

        frame = WebSocketFrame(
            opcode=opcode,
            payload=payload,
            fin=bool(first_byte & 0x80),
            rsv1=bool(first_byte & 0x40),
            rsv2=bool(first_byte & 0x20),
            rsv3=bool(first_byte & 0x10),
        )
        return frame, header_len + payload_len


def apply_mask(data: bytes, mask_key: bytes) -> bytes:
    """Apply (or remove) a 4-byte WebSocket mask."""
    if not data:
        return b""
    repeated = (mask_key * (len(data) // 4 + 1))[: len(data)]
    return (int.from_bytes(data, "big") ^ int.from_bytes(repeated, "big")).to_bytes(
        len(data), "big"
    )
