"""
Tests for credentials providers.
"""

from __future__ import annotations

from unittest import mock

import pytest
from botocore.credentials import Credentials, ReadOnlyCredentials
from botocore.exceptions import BotoCoreError, CredentialRetrievalError

from neptune_sigv4.config import (
    ACCESS_KEY_PROPERTY,
    SECRET_KEY_PROPERTY,
    SESSION_TOKEN_PROPERTY,
    system_properties,
)
from neptune_sigv4.credentials import (
    BotocoreCredentialsProvider,
    CredentialsProviderChain,
    DefaultCredentialsProviderChain,
    EnvironmentCredentialsProvider,
    StaticCredentialsProvider,
    SystemPropertiesCredentialsProvider,
)
from neptune_sigv4.exceptions import CredentialsUnavailableError


class TestStaticCredentialsProvider:
    def test_resolve(self):
        """Test that the given credentials are returned."""
        provider = StaticCredentialsProvider("AKID", "SECRET", "TOKEN")
        assert provider.resolve() == ReadOnlyCredentials("AKID", "SECRET", "TOKEN")

    def test_blank_secret(self):
        """Test that blank keys are rejected."""
        with pytest.raises(CredentialsUnavailableError):
            StaticCredentialsProvider("AKID", " ")


class TestEnvironmentCredentialsProvider:
    def test_resolve(self, monkeypatch):
        """Test reading credentials from the standard variables."""
        monkeypatch.setenv("AWS_ACCESS_KEY_ID", "AKID")
        monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "SECRET")
        monkeypatch.setenv("AWS_SESSION_TOKEN", "TOKEN")

        assert EnvironmentCredentialsProvider().resolve() == ReadOnlyCredentials(
            "AKID", "SECRET", "TOKEN"
        )

    def test_alternate_names(self, monkeypatch):
        """Test reading credentials from the alternate variable names."""
        monkeypatch.setenv("AWS_ACCESS_KEY", "AKID")
        monkeypatch.setenv("AWS_SECRET_KEY", "SECRET")

        credentials = EnvironmentCredentialsProvider().resolve()

        assert credentials.access_key == "AKID"
        assert credentials.token is None

    def test_missing(self):
        """Test that missing variables raise."""
        with pytest.raises(CredentialsUnavailableError):
            EnvironmentCredentialsProvider().resolve()


class TestSystemPropertiesCredentialsProvider:
    def test_resolve(self):
        """Test reading credentials from process properties."""
        system_properties.set(ACCESS_KEY_PROPERTY, "AKID")
        system_properties.set(SECRET_KEY_PROPERTY, "SECRET")
        system_properties.set(SESSION_TOKEN_PROPERTY, "TOKEN")

        assert SystemPropertiesCredentialsProvider().resolve() == ReadOnlyCredentials(
            "AKID", "SECRET", "TOKEN"
        )

    def test_missing_secret(self):
        """Test that a missing secret key raises."""
        system_properties.set(ACCESS_KEY_PROPERTY, "AKID")
        with pytest.raises(CredentialsUnavailableError) as exc_info:
            SystemPropertiesCredentialsProvider().resolve()
        assert SECRET_KEY_PROPERTY in str(exc_info.value)


class TestBotocoreCredentialsProvider:
    def test_resolve(self):
        """Test that frozen botocore credentials are returned."""
        session = mock.Mock()
        session.get_credentials.return_value = Credentials("AKID", "SECRET", "TOKEN")

        credentials = BotocoreCredentialsProvider(session).resolve()

        assert credentials == ReadOnlyCredentials("AKID", "SECRET", "TOKEN")

    def test_no_credentials(self):
        """Test that an empty botocore chain raises."""
        session = mock.Mock()
        session.get_credentials.return_value = None

        with pytest.raises(CredentialsUnavailableError):
            BotocoreCredentialsProvider(session).resolve()

    def test_botocore_error(self):
        """Test that botocore errors are wrapped."""
        session = mock.Mock()
        session.get_credentials.side_effect = BotoCoreError()

        with pytest.raises(CredentialsUnavailableError) as exc_info:
            BotocoreCredentialsProvider(session).resolve()

        assert isinstance(exc_info.value.__cause__, BotoCoreError)

    def test_refresh_error(self):
        """Test that errors refreshing expired credentials are wrapped."""
        session = mock.Mock()
        session.get_credentials.return_value.get_frozen_credentials.side_effect = (
            CredentialRetrievalError(provider="sts", error_msg="expired")
        )

        with pytest.raises(CredentialsUnavailableError) as exc_info:
            BotocoreCredentialsProvider(session).resolve()

        assert isinstance(exc_info.value.__cause__, CredentialRetrievalError)


class TestCredentialsProviderChain:
    def test_first_available_wins(self):
        """Test that the chain stops at the first provider with credentials."""
        failing = mock.Mock()
        failing.resolve.side_effect = CredentialsUnavailableError("nothing here")
        working = StaticCredentialsProvider("AKID", "SECRET")
        unused = mock.Mock()

        chain = CredentialsProviderChain([failing, working, unused])

        assert chain.resolve().access_key == "AKID"
        unused.resolve.assert_not_called()

    def test_all_fail(self):
        """Test that the error lists every provider's failure."""
        failing = mock.Mock()
        failing.resolve.side_effect = CredentialsUnavailableError("nothing here")

        with pytest.raises(CredentialsUnavailableError) as exc_info:
            CredentialsProviderChain([failing, failing]).resolve()

        assert str(exc_info.value).count("nothing here") == 2

    def test_default_chain_order(self, monkeypatch):
        """Test that the environment is consulted before process properties."""
        monkeypatch.setenv("AWS_ACCESS_KEY_ID", "ENV_AKID")
        monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "ENV_SECRET")
        system_properties.set(ACCESS_KEY_PROPERTY, "PROP_AKID")
        system_properties.set(SECRET_KEY_PROPERTY, "PROP_SECRET")

        chain = DefaultCredentialsProviderChain(session=mock.Mock())

        assert chain.resolve().access_key == "ENV_AKID"

    def test_default_chain_falls_back_to_botocore(self):
        """Test that botocore is consulted last."""
        session = mock.Mock()
        session.get_credentials.return_value = Credentials("BOTO_AKID", "BOTO_SECRET")

        chain = DefaultCredentialsProviderChain(session=session)

        assert chain.resolve().access_key == "BOTO_AKID"
