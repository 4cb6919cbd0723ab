"""
Authorization Gate for the Pet-Care Task Service.

Turns an inbound bearer credential into an ``Identity`` (id, email, role
set) and enforces static role requirements before a lifecycle operation
runs.  Ownership checks (poster, applicant membership) are *not* made here:
they need the loaded task and live in ``lifecycle``.

This service never issues tokens; it only verifies RS256 JWTs against the
configured ``JWT_PUBLIC_KEY``.

Key Concepts Demonstrated:
- JWT verification with the ``PyJWT`` library
- Decorator pattern for endpoint authentication (``require_auth``)
- A request-scoped identity object passed explicitly to each view
- Uniform unauthenticated responses that never reveal which check failed
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from functools import wraps
from typing import Any

import jwt
from flask import current_app, request
from sqlalchemy.exc import SQLAlchemyError

from . import db
from .errors import ForbiddenError, InternalError, UnauthenticatedError
from .models import Role, User

logger = logging.getLogger(__name__)

DEFAULT_ALLOWED_ALGORITHMS = ["RS256"]
REQUIRED_TOKEN_CLAIMS = ["user_id", "iat", "exp"]


@dataclass(frozen=True)
class Identity:
    """The authenticated caller for the lifetime of one request."""

    id: int
    email: str
    roles: frozenset[Role]

    def has_any_role(self, allowed_roles: Iterable[Role]) -> bool:
        return bool(self.roles & frozenset(allowed_roles))


def verify_token(
    token: str,
    public_key: str,
    algorithms: list[str] | None = None,
) -> dict[str, Any] | None:
    """
    Decode and validate a JWT, returning the payload on success.

    Performs full verification: signature check, expiry (``exp``), issued-at
    (``iat``), and presence of all required claims.  Additionally validates
    that ``user_id`` is a positive integer.

    Args:
        token: The encoded JWT string to verify.
        public_key: The RSA public key in PEM format.
        algorithms: Acceptable signing algorithms.  Defaults to
            ``["RS256"]`` to prevent algorithm-confusion attacks.

    Returns:
        The decoded payload dictionary, or ``None`` if verification fails
        for any reason.
    """
    try:
        decoded = jwt.decode(
            token,
            public_key,
            algorithms=algorithms or DEFAULT_ALLOWED_ALGORITHMS,
            options={"require": REQUIRED_TOKEN_CLAIMS},
            leeway=int(current_app.config.get("JWT_CLOCK_SKEW_SECONDS", 30)),
        )
    except jwt.InvalidTokenError:
        return None

    user_id = decoded.get("user_id")
    if isinstance(user_id, bool) or not isinstance(user_id, int) or user_id <= 0:
        return None
    return decoded


def resolve_identity(auth_header: str | None) -> Identity:
    """
    Resolve the caller behind an ``Authorization`` header value.

    A missing or malformed header, a token that fails verification, and a
    token whose user no longer exists all raise the same
    ``UnauthenticatedError`` so callers cannot tell the cases apart.

    Raises:
        UnauthenticatedError: The credential does not identify a user.
        InternalError: The user lookup itself failed.
    """
    if not auth_header or not auth_header.startswith("Bearer "):
        raise UnauthenticatedError()

    token = auth_header[7:].strip()
    if not token:
        raise UnauthenticatedError()

    payload = verify_token(
        token,
        current_app.config["JWT_PUBLIC_KEY"],
        algorithms=DEFAULT_ALLOWED_ALGORITHMS,
    )
    if payload is None:
        raise UnauthenticatedError()

    try:
        user = db.session.get(User, payload["user_id"])
    except SQLAlchemyError as exc:
        logger.exception("User lookup failed while verifying token")
        raise InternalError("Error verifying token") from exc

    if user is None:
        raise UnauthenticatedError()

    return Identity(id=user.id, email=user.email, roles=user.role_set)


def require_role(identity: Identity | None, allowed_roles: Iterable[Role]) -> None:
    """
    Permit the call if the identity holds at least one of ``allowed_roles``.

    Raises:
        UnauthenticatedError: No identity was resolved.
        ForbiddenError: The identity holds none of the allowed roles.
    """
    if identity is None:
        raise UnauthenticatedError()
    if not identity.has_any_role(allowed_roles):
        raise ForbiddenError("Access denied. Insufficient permissions.")


def require_auth(*roles: Role) -> Callable:
    """
    Decorator that authenticates the request and optionally checks roles.

    The resolved ``Identity`` is passed to the view as the ``identity``
    keyword argument; it is created when the credential is received and
    discarded with the request.  Failures raise ``ServiceError`` subclasses
    that the blueprint's error handler renders.

    Args:
        roles: Roles of which the caller must hold at least one.  With no
            roles, any authenticated user passes.
    """

    def decorator(view_func: Callable) -> Callable:
        @wraps(view_func)
        def wrapper(*args, **kwargs):
            identity = resolve_identity(request.headers.get("Authorization"))
            if roles:
                require_role(identity, roles)
            return view_func(*args, identity=identity, **kwargs)

        return wrapper

    return decorator
