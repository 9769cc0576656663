"""
AWS credentials providers for neptune_sigv4.

A provider is any object with a ``resolve()`` method returning
:class:`botocore.credentials.ReadOnlyCredentials`. Providers are called for
every signing operation and never cache, so rotated credentials are picked
up by the next connection attempt. Implementations must be safe to call from
several threads at once.
"""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

import botocore.session
from botocore.credentials import ReadOnlyCredentials
from botocore.exceptions import BotoCoreError

from .config import (
    ACCESS_KEY_PROPERTY,
    SECRET_KEY_PROPERTY,
    SESSION_TOKEN_PROPERTY,
    system_properties,
)
from .exceptions import CredentialsUnavailableError

log = logging.getLogger(__name__)


def _blank(value: Optional[str]) -> bool:
    return not (value or "").strip()


class CredentialsProvider(ABC):
    """Base class for credentials providers."""

    @abstractmethod
    def resolve(self) -> ReadOnlyCredentials:
        """
        Resolve the current credentials.

        :raises CredentialsUnavailableError: If no usable credentials exist
        """
        pass


class StaticCredentialsProvider(CredentialsProvider):
    """Returns a fixed set of credentials."""

    def __init__(self, access_key: str, secret_key: str, token: Optional[str] = None) -> None:
        if _blank(access_key) or _blank(secret_key):
            raise CredentialsUnavailableError("Access key and secret key must not be blank")
        self._credentials = ReadOnlyCredentials(access_key, secret_key, token)

    def resolve(self) -> ReadOnlyCredentials:
        return self._credentials


class EnvironmentCredentialsProvider(CredentialsProvider):
    """
    Reads credentials from ``AWS_ACCESS_KEY_ID``/``AWS_ACCESS_KEY``,
    ``AWS_SECRET_ACCESS_KEY``/``AWS_SECRET_KEY`` and ``AWS_SESSION_TOKEN``.
    """

    def resolve(self) -> ReadOnlyCredentials:
        access_key = os.environ.get("AWS_ACCESS_KEY_ID") or os.environ.get("AWS_ACCESS_KEY")
        secret_key = os.environ.get("AWS_SECRET_ACCESS_KEY") or os.environ.get("AWS_SECRET_KEY")
        if _blank(access_key) or _blank(secret_key):
            raise CredentialsUnavailableError(
                "Unable to load AWS credentials from environment variables"
            )
        token = os.environ.get("AWS_SESSION_TOKEN") or None
        return ReadOnlyCredentials(access_key.strip(), secret_key.strip(), token)


class SystemPropertiesCredentialsProvider(CredentialsProvider):
    """
    Reads credentials from the ``aws.accessKeyId``, ``aws.secretKey`` and
    ``aws.sessionToken`` process properties.
    """

    def resolve(self) -> ReadOnlyCredentials:
        access_key = system_properties.get(ACCESS_KEY_PROPERTY)
        secret_key = system_properties.get(SECRET_KEY_PROPERTY)
        if _blank(access_key) or _blank(secret_key):
            raise CredentialsUnavailableError(
                "Unable to load AWS credentials from system properties "
                f"({ACCESS_KEY_PROPERTY} and {SECRET_KEY_PROPERTY})"
            )
        token = system_properties.get(SESSION_TOKEN_PROPERTY) or None
        return ReadOnlyCredentials(access_key.strip(), secret_key.strip(), token)


class BotocoreCredentialsProvider(CredentialsProvider):
    """
    Delegates to the botocore credential chain: shared credentials and config
    files, web identity, container and instance metadata.
    """

    def __init__(self, session: Optional[botocore.session.Session] = None) -> None:
        self._session = session or botocore.session.get_session()

    def resolve(self) -> ReadOnlyCredentials:
        try:
            credentials = self._session.get_credentials()
            if credentials is None:
                raise CredentialsUnavailableError(
                    "Unable to load AWS credentials from the botocore chain"
                )
            # Refreshes expired temporary credentials
            return credentials.get_frozen_credentials()
        except BotoCoreError as e:
            raise CredentialsUnavailableError(
                f"Unable to load AWS credentials from the botocore chain: {e}"
            ) from e


class CredentialsProviderChain(CredentialsProvider):
    """Tries each provider in order and returns the first credentials found."""

    def __init__(self, providers: Iterable[CredentialsProvider]) -> None:
        self.providers: List[CredentialsProvider] = list(providers)

    def resolve(self) -> ReadOnlyCredentials:
        reasons = []
        for provider in self.providers:
            try:
                credentials = provider.resolve()
            except CredentialsUnavailableError as e:
                log.debug(f"Unable to load credentials from {type(provider).__name__}: {e}")
                reasons.append(f"{type(provider).__name__}: {e}")
                continue

            log.debug(f"Loaded credentials from {type(provider).__name__}")
            return credentials

        raise CredentialsUnavailableError(
            "Unable to load AWS credentials from any provider in the chain: "
            + "; ".join(reasons)
        )


class DefaultCredentialsProviderChain(CredentialsProviderChain):
    """
    The default chain: environment variables, then process properties, then
    the botocore chain.
    """

    def __init__(self, session: Optional[botocore.session.Session] = None) -> None:
        super().__init__(
            [
                EnvironmentCredentialsProvider(),
                SystemPropertiesCredentialsProvider(),
                BotocoreCredentialsProvider(session),
            ]
        )
