"""
Unit tests for settings and verification-key loading.

Key SDET Concepts Demonstrated:
- Isolating environment-dependent code with monkeypatch.setenv/delenv
- Using tmp_path for file-based configuration
"""

from __future__ import annotations

import pytest

import config as settings
from config import get_config, load_public_key

pytestmark = pytest.mark.unit

KEY_VARS = (
    "JWT_PUBLIC_KEY",
    "JWT_PUBLIC_KEY_PATH",
    "TEST_JWT_PUBLIC_KEY",
    "TEST_JWT_PUBLIC_KEY_PATH",
)


@pytest.fixture
def clean_key_env(monkeypatch):
    for var in KEY_VARS:
        monkeypatch.delenv(var, raising=False)
    return monkeypatch


class TestLoadPublicKey:
    """Tests for ``load_public_key``."""

    def test_test_key_wins_when_testing(self, clean_key_env):
        """Test that the test key is used in testing even when a real key is set."""
        # Arrange
        clean_key_env.setenv("JWT_PUBLIC_KEY", "real-pem")
        clean_key_env.setenv("TEST_JWT_PUBLIC_KEY", "test-pem")

        # Act
        key = load_public_key(testing=True)

        # Assert
        assert key == "test-pem"

    def test_test_key_ignored_outside_testing(self, clean_key_env):
        """Test that a production app never picks up the test key."""
        # Arrange
        clean_key_env.setenv("JWT_PUBLIC_KEY", "real-pem")
        clean_key_env.setenv("TEST_JWT_PUBLIC_KEY", "test-pem")

        # Act
        key = load_public_key(testing=False)

        # Assert
        assert key == "real-pem"

    def test_key_read_from_file(self, clean_key_env, tmp_path):
        """Test that *_PATH variables are read from disk."""
        # Arrange
        key_file = tmp_path / "public.pem"
        key_file.write_text("file-pem", encoding="utf-8")
        clean_key_env.setenv("JWT_PUBLIC_KEY_PATH", str(key_file))

        # Act
        key = load_public_key(testing=False)

        # Assert
        assert key == "file-pem"

    def test_unreadable_file_is_reported(self, clean_key_env, tmp_path):
        """Test that a path to a missing file fails loudly."""
        # Arrange
        clean_key_env.setenv("JWT_PUBLIC_KEY_PATH", str(tmp_path / "missing.pem"))

        # Act & Assert
        with pytest.raises(RuntimeError, match="JWT_PUBLIC_KEY_PATH"):
            load_public_key(testing=False)

    def test_missing_key_is_reported(self, clean_key_env):
        """Test that startup fails when no verification key is configured."""
        # Arrange - all key variables cleared

        # Act & Assert
        with pytest.raises(RuntimeError, match="No token verification key"):
            load_public_key(testing=True)


@pytest.mark.parametrize(
    ("env", "expected"),
    [
        ("testing", settings.TestingConfig),
        ("development", settings.DevelopmentConfig),
        ("staging", settings.DevelopmentConfig),
    ],
)
def test_get_config(env, expected):
    """Test environment-name lookup, including the development fallback."""
    # Arrange - provided by parametrize

    # Act & Assert
    assert get_config(env) is expected
