"""
Settings for the pet-care task service.

One class per environment.  Secrets and the database location come from
environment variables; everything the lifecycle engine can be tuned with
(currency label, retry budget for concurrent edits) lives on ``Config``.
"""

from __future__ import annotations

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent
INSTANCE_DIR = BASE_DIR / "instance"


def _pem_from_env(inline_var: str, file_var: str) -> str | None:
    """Return the PEM text named by ``inline_var`` or ``file_var``, if either is set."""
    inline = os.environ.get(inline_var, "").strip()
    if inline:
        return inline

    key_file = os.environ.get(file_var, "").strip()
    if not key_file:
        return None
    try:
        return Path(key_file).read_text(encoding="utf-8")
    except OSError as exc:
        raise RuntimeError(f"{file_var} points at an unreadable file: {key_file}") from exc


def load_public_key(*, testing: bool) -> str:
    """
    Find the RSA public key that bearer tokens are verified against.

    Test runs may supply their own key through ``TEST_JWT_PUBLIC_KEY`` or
    ``TEST_JWT_PUBLIC_KEY_PATH``; otherwise ``JWT_PUBLIC_KEY`` or
    ``JWT_PUBLIC_KEY_PATH`` is required.  The service never signs tokens,
    so no private key is read.
    """
    if testing:
        test_key = _pem_from_env("TEST_JWT_PUBLIC_KEY", "TEST_JWT_PUBLIC_KEY_PATH")
        if test_key:
            return test_key

    key = _pem_from_env("JWT_PUBLIC_KEY", "JWT_PUBLIC_KEY_PATH")
    if key is None:
        raise RuntimeError(
            "No token verification key: set JWT_PUBLIC_KEY or JWT_PUBLIC_KEY_PATH."
        )
    return key


class Config:
    """
    Shared settings.

    Attributes:
        SQLALCHEMY_DATABASE_URI: Task store; ``DATABASE_URL`` or a SQLite
            file under ``instance/``.
        JWT_CLOCK_SKEW_SECONDS: Leeway applied to ``exp`` / ``iat``.
        TASK_CURRENCY_SYMBOL: Prefix of the reward label derived from a
            budget, e.g. ``"$"`` gives ``"$20"``.
        TASK_MUTATION_MAX_ATTEMPTS: Attempts an apply/assign/complete gets
            before a lost concurrent-edit race is reported as an error.
    """

    SECRET_KEY: str = os.environ.get("SECRET_KEY", "petcare-dev-only")
    SQLALCHEMY_TRACK_MODIFICATIONS: bool = False
    SQLALCHEMY_DATABASE_URI: str = os.environ.get(
        "DATABASE_URL", f"sqlite:///{INSTANCE_DIR / 'petcare.db'}"
    )

    JWT_CLOCK_SKEW_SECONDS: int = int(os.environ.get("JWT_CLOCK_SKEW_SECONDS", "30"))

    TASK_CURRENCY_SYMBOL: str = os.environ.get("TASK_CURRENCY_SYMBOL", "$")
    TASK_MUTATION_MAX_ATTEMPTS: int = int(
        os.environ.get("TASK_MUTATION_MAX_ATTEMPTS", "3")
    )


class DevelopmentConfig(Config):
    DEBUG: bool = True
    TESTING: bool = False


class TestingConfig(Config):
    """Separate SQLite file, shared across the test client's threads."""

    DEBUG: bool = True
    TESTING: bool = True
    SQLALCHEMY_DATABASE_URI: str = os.environ.get(
        "TEST_DATABASE_URL",
        f"sqlite:///{INSTANCE_DIR / 'test_petcare.db'}?check_same_thread=False",
    )
    SQLALCHEMY_ENGINE_OPTIONS: dict = {"pool_pre_ping": True}


class ProductionConfig(Config):
    DEBUG: bool = False
    TESTING: bool = False


config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}


def get_config(env: str | None = None) -> type[Config]:
    """Config class for ``env``, falling back to ``FLASK_ENV`` and then development."""
    if env is None:
        env = os.environ.get("FLASK_ENV", "development")
    return config.get(env, config["default"])
