"""Bearer token verification.

Tokens are issued by the authentication service; this backend only verifies
them and reads the principal claims.
"""

from typing import Any

import jwt
from pydantic import ValidationError as SchemaValidationError

from ...config import settings
from ...core.exceptions import AuthenticationError
from ...core.logging import get_logger
from .models import RoleName
from .schemas import Principal

logger = get_logger("auth.jwt")


def decode_access_token(token: str) -> dict[str, Any] | None:
    """Decode and verify a JWT, returning its payload or None if invalid."""
    try:
        payload = jwt.decode(
            token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm]
        )
    except jwt.ExpiredSignatureError:
        logger.info("Rejected expired access token")
        return None
    except jwt.PyJWTError as exc:
        logger.info("Rejected invalid access token", extra={"error": str(exc)})
        return None

    if payload.get("type", "access") != "access":
        return None
    return payload


def principal_from_claims(payload: dict[str, Any]) -> Principal:
    """Build a principal from the ``sub`` and ``roles`` claims.

    Unknown role labels are ignored; a token without any known role yields a
    principal with no capabilities.
    """
    try:
        user_id = int(payload["sub"])
    except (KeyError, TypeError, ValueError) as exc:
        raise AuthenticationError("Invalid token payload") from exc

    raw_roles = payload.get("roles") or []
    if isinstance(raw_roles, str):
        raw_roles = [raw_roles]

    roles = set()
    for label in raw_roles:
        try:
            roles.add(RoleName(str(label).lower()))
        except ValueError:
            logger.warning("Ignoring unknown role label", extra={"role": label})

    try:
        return Principal(
            id=user_id, roles=frozenset(roles), email=payload.get("email")
        )
    except SchemaValidationError as exc:
        raise AuthenticationError("Invalid token payload") from exc
