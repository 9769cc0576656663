"""
Message serializers.

A serializer turns request messages into WebSocket payloads and response
payloads back into Python objects. JSON is sent as text frames; MessagePack
and CBOR are sent as binary frames.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Type, Union

from .protocol import WebSocketMessage

log = logging.getLogger(__name__)


class MessageSerializer(ABC):
    """Base class for message serializers."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Get the name of the serializer."""
        pass

    @abstractmethod
    def encode_message(self, message: Any) -> Union[str, bytes]:
        """
        Encode a message.

        :param message: The message to encode
        :return: ``str`` for a text frame or ``bytes`` for a binary frame
        """
        pass

    @abstractmethod
    def decode_message(self, message: WebSocketMessage) -> Any:
        """
        Decode a received message.

        :raises ValueError: If the message cannot be decoded
        """
        pass


class JSONSerializer(MessageSerializer):
    """Encodes messages as JSON text."""

    @property
    def name(self) -> str:
        return "json"

    def encode_message(self, message: Any) -> str:
        return json.dumps(message)

    def decode_message(self, message: WebSocketMessage) -> Any:
        # Some servers answer JSON requests with binary frames
        return json.loads(message.data.decode("utf-8"))


class MessagePackSerializer(MessageSerializer):
    """Encodes messages with MessagePack."""

    def __init__(self) -> None:
        try:
            import msgpack
        except ImportError:
            raise ImportError(
                "The msgpack serializer requires the msgpack package. "
                "Install with: pip install neptune-sigv4[msgpack]"
            )
        self._msgpack = msgpack

    @property
    def name(self) -> str:
        return "msgpack"

    def encode_message(self, message: Any) -> bytes:
        return self._msgpack.packb(message, use_bin_type=True)

    def decode_message(self, message: WebSocketMessage) -> Any:
        if not message.is_binary:
            raise ValueError("MessagePack messages must be binary")
        # msgpack unpacking errors derive from ValueError
        return self._msgpack.unpackb(message.data, raw=False)


class CBORSerializer(MessageSerializer):
    """Encodes messages with CBOR."""

    def __init__(self) -> None:
        try:
            import cbor2
        except ImportError:
            raise ImportError(
                "The cbor serializer requires the cbor2 package. "
                "Install with: pip install neptune-sigv4[cbor]"
            )
        self._cbor2 = cbor2

    @property
    def name(self) -> str:
        return "cbor"

    def encode_message(self, message: Any) -> bytes:
        return self._cbor2.dumps(message)

    def decode_message(self, message: WebSocketMessage) -> Any:
        if not message.is_binary:
            raise ValueError("CBOR messages must be binary")
        # CBORDecodeError derives from ValueError
        return self._cbor2.loads(message.data)


# Registry of known serializers
KNOWN_SERIALIZERS: Dict[str, Type[MessageSerializer]] = {
    "json": JSONSerializer,
    "msgpack": MessagePackSerializer,
    "cbor": CBORSerializer,
}


def get_serializer(name: str) -> MessageSerializer:
    """
    Get a serializer by name.

    :raises ValueError: If the serializer is not known
    """
    if name not in KNOWN_SERIALIZERS:
        raise ValueError(f"Unknown serializer: {name}")

    return KNOWN_SERIALIZERS[name]()
