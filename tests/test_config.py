"""Unit tests for core/config.py -- Settings validation and derived values."""

import pytest
from pydantic import ValidationError

from core.config import Settings

LONG_KEY = "k" * 32


def test_debug_mode_generates_secret_key():
    settings = Settings(debug=True, secret_key="")
    assert len(settings.secret_key) >= 32


def test_production_requires_secret_key():
    with pytest.raises(ValidationError, match="SECRET_KEY is required"):
        Settings(debug=False, secret_key="")


def test_short_secret_key_rejected():
    with pytest.raises(ValidationError, match="at least 32"):
        Settings(debug=True, secret_key="too-short")


def test_encryption_secret_prefers_encryption_key():
    settings = Settings(secret_key=LONG_KEY, encryption_key="dedicated-encryption-key")
    assert settings.encryption_secret == "dedicated-encryption-key"


def test_encryption_secret_falls_back_to_secret_key():
    settings = Settings(secret_key=LONG_KEY, encryption_key="")
    assert settings.encryption_secret == LONG_KEY
