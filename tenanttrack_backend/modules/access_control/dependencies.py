"""FastAPI dependencies for the resolved scope."""

from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ...database import get_db
from ..auth.dependencies import CurrentPrincipal
from .schemas import AccessScope
from .services import resolve_scope


async def get_current_scope(
    principal: CurrentPrincipal,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> AccessScope:
    return await resolve_scope(db, principal)


CurrentScope = Annotated[AccessScope, Depends(get_current_scope)]
