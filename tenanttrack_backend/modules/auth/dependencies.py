"""Authentication dependencies for FastAPI."""

from typing import Annotated

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ...core.exceptions import AuthenticationError
from ...core.logging import set_principal_id
from .jwt_service import decode_access_token, principal_from_claims
from .schemas import Principal

security = HTTPBearer(auto_error=False)


async def get_current_principal(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> Principal:
    """Verify the bearer token and return the calling principal.

    No database call is made; identity and roles come from the token.
    """
    if credentials is None:
        raise AuthenticationError("Missing bearer token")

    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise AuthenticationError("Invalid or expired token")

    principal = principal_from_claims(payload)
    set_principal_id(principal.id)
    return principal


CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]
