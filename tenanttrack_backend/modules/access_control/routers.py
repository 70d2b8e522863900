"""Access control API routes."""

from fastapi import APIRouter

from ..commons import BaseResponse
from .dependencies import CurrentScope
from .schemas import ScopeResponse

router = APIRouter(prefix="/me", tags=["Access Control"])


@router.get("/scope", response_model=BaseResponse[ScopeResponse])
async def get_my_scope(scope: CurrentScope):
    """Get the properties and capabilities of the calling principal."""
    return BaseResponse(
        success=True,
        data=ScopeResponse(
            user_id=scope.user_id,
            is_admin=scope.is_admin,
            property_ids=sorted(scope.property_ids),
            owned_property_ids=sorted(scope.owned_property_ids),
            staff_property_ids=sorted(scope.staff_property_ids),
            tenant_property_ids=sorted(scope.tenant_property_ids),
            tenant_ids=sorted(scope.tenant_ids),
            capabilities=sorted(scope.capabilities, key=lambda c: c.value),
        ),
    )
