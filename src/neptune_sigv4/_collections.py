"""
Collections for neptune_sigv4.

This module provides specialized container datatypes.
"""

from __future__ import annotations

import threading
import typing
from collections.abc import Mapping, MutableMapping


class HTTPHeaderDict(MutableMapping[str, str]):
    """
    A case-insensitive mapping of HTTP headers.

    This class allows for case-insensitive lookups of HTTP headers while
    preserving the original case of the headers and the order in which they
    were first added. Signing canonicalizes headers, so the order must be
    deterministic.

    A dict may be frozen, after which any mutation raises ``TypeError``.
    """

    def __init__(
        self,
        headers: Mapping[str, str] | typing.Iterable[tuple[str, str]] | None = None,
        **kwargs: str,
    ) -> None:
        self._container: dict[str, tuple[str, str]] = {}
        self._frozen = False
        if headers is not None:
            if isinstance(headers, HTTPHeaderDict):
                self._container = headers._container.copy()
            else:
                self.extend(headers)
        if kwargs:
            self.extend(kwargs)

    def _check_mutable(self) -> None:
        if self._frozen:
            raise TypeError("Headers are frozen and can no longer be modified")

    def __getitem__(self, key: str) -> str:
        return self._container[key.lower()][1]

    def __setitem__(self, key: str, value: str) -> None:
        self._check_mutable()
        if isinstance(key, bytes):
            key = key.decode("ascii")

        key_lower = key.lower()
        if key_lower in self._container:
            # Keep the original case and position
            self._container[key_lower] = (self._container[key_lower][0], value)
        else:
            self._container[key_lower] = (key, value)

    def __delitem__(self, key: str) -> None:
        self._check_mutable()
        del self._container[key.lower()]

    def __iter__(self) -> typing.Iterator[str]:
        return (key for key, value in self._container.values())

    def __len__(self) -> int:
        return len(self._container)

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, str):
            return False
        return key.lower() in self._container

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Mapping):
            return False
        if not isinstance(other, HTTPHeaderDict):
            other = HTTPHeaderDict(other)
        return dict(self.lower_items()) == dict(other.lower_items())

    def __repr__(self) -> str:
        return f"{type(self).__name__}({dict(self.items())})"

    def copy(self) -> "HTTPHeaderDict":
        """Return an unfrozen copy of this HTTPHeaderDict."""
        return HTTPHeaderDict(self)

    def add(self, key: str, value: str) -> None:
        """
        Add a header, combining it with an existing header of the same name.

        :param key: The header name
        :param value: The header value
        """
        self._check_mutable()
        key_lower = key.lower()
        if key_lower in self._container:
            old_key, old_value = self._container[key_lower]
            self._container[key_lower] = (old_key, f"{old_value}, {value}")
        else:
            self._container[key_lower] = (key, value)

    def extend(
        self,
        headers: Mapping[str, str] | typing.Iterable[tuple[str, str]],
    ) -> None:
        """
        Add headers from another source.

        :param headers: A mapping or an iterable of ``(name, value)`` pairs
        """
        items = headers.items() if isinstance(headers, Mapping) else headers
        for key, value in items:
            self.add(key, value)

    def lower_items(self) -> typing.Iterator[tuple[str, str]]:
        """Get all headers as lowercase key-value pairs."""
        return ((key.lower(), value) for key, value in self.items())

    def items(self) -> list[tuple[str, str]]:  # type: ignore[override]
        """Get all headers as key-value pairs, in insertion order."""
        return list(self._container.values())

    def freeze(self) -> "HTTPHeaderDict":
        """Disallow any further modification and return self."""
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen


class PropertyStore:
    """
    A thread-safe string property store.

    Used for process-wide configuration that can change at runtime; every
    read sees the latest value.
    """

    def __init__(self, initial: Mapping[str, str] | None = None) -> None:
        self._container: dict[str, str] = dict(initial or {})
        self.lock = threading.RLock()

    def get(self, key: str, default: str | None = None) -> str | None:
        with self.lock:
            return self._container.get(key, default)

    def set(self, key: str, value: str) -> None:
        with self.lock:
            self._container[key] = value

    def clear(self, key: str | None = None) -> None:
        """Remove ``key``, or every property when no key is given."""
        with self.lock:
            if key is None:
                self._container.clear()
            else:
                self._container.pop(key, None)

    def __contains__(self, key: object) -> bool:
        with self.lock:
            return key in self._container

    def snapshot(self) -> dict[str, str]:
        with self.lock:
            return dict(self._container)
