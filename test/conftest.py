from __future__ import annotations

import pytest

from neptune_sigv4.config import system_properties

CREDENTIAL_ENV_VARS = (
    "SERVICE_REGION",
    "AWS_ACCESS_KEY_ID",
    "AWS_ACCESS_KEY",
    "AWS_SECRET_ACCESS_KEY",
    "AWS_SECRET_KEY",
    "AWS_SESSION_TOKEN",
)


@pytest.fixture(autouse=True)
def clean_configuration(monkeypatch):
    """Run every test without ambient region or credential configuration."""
    for name in CREDENTIAL_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    system_properties.clear()
    yield
    system_properties.clear()
