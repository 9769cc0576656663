"""
SigV4 properties resolution for neptune_sigv4.

The signing region is read from an ordered chain of providers. Each provider
is a plain callable returning :class:`SigV4Properties` or ``None`` when its
source holds no value; the first provider that returns a value wins.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional

from .config import SERVICE_REGION, system_properties
from .exceptions import SigV4PropertiesNotFoundError

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class SigV4Properties:
    """Properties required to SigV4-sign a request."""

    service_region: str


SigV4PropertiesSupplier = Callable[[], Optional[SigV4Properties]]


def _properties_from_value(value: Optional[str]) -> Optional[SigV4Properties]:
    region = (value or "").strip()
    if not region:
        return None
    return SigV4Properties(service_region=region)


def properties_from_env() -> Optional[SigV4Properties]:
    """Read the service region from the ``SERVICE_REGION`` environment variable."""
    properties = _properties_from_value(os.environ.get(SERVICE_REGION))
    if properties is None:
        log.info("SigV4 properties not found as an environment variable")
    return properties


def properties_from_system() -> Optional[SigV4Properties]:
    """Read the service region from the ``SERVICE_REGION`` process property."""
    properties = _properties_from_value(system_properties.get(SERVICE_REGION))
    if properties is None:
        log.info("SigV4 properties not found in system properties")
    return properties


DEFAULT_PROVIDERS = (properties_from_env, properties_from_system)


def _provider_name(provider: SigV4PropertiesSupplier) -> str:
    return getattr(provider, "__qualname__", None) or type(provider).__name__


class ChainedSigV4PropertiesProvider:
    """
    Resolves :class:`SigV4Properties` from a chain of providers.

    Sources are re-read on every call so that changes to the environment or
    the process properties are picked up by the next connection attempt.
    """

    def __init__(self, providers: Optional[Iterable[SigV4PropertiesSupplier]] = None) -> None:
        """
        :param providers: Ordered providers to consult, defaults to the
            environment variable followed by the process property
        """
        self.providers: List[SigV4PropertiesSupplier] = list(
            DEFAULT_PROVIDERS if providers is None else providers
        )

    def get_sigv4_properties(self) -> SigV4Properties:
        """
        Get the properties from the first provider that yields a value.

        :return: The resolved properties
        :raises SigV4PropertiesNotFoundError: If no provider yields a value
        """
        for provider in self.providers:
            try:
                properties = provider()
            except SigV4PropertiesNotFoundError as e:
                log.debug(f"{_provider_name(provider)}: {e}")
                properties = None
            if properties is not None:
                log.info(
                    f"Successfully loaded SigV4 properties from provider: {_provider_name(provider)}"
                )
                return properties
            log.info(f"Unable to load SigV4 properties from provider: {_provider_name(provider)}")

        message = "Unable to load SigV4 properties from any of the providers"
        log.warning(message)
        raise SigV4PropertiesNotFoundError(message)
