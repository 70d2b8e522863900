"""Authentication schemas for TenantTrack."""

from pydantic import BaseModel, EmailStr, Field

from .models import RoleName


class Principal(BaseModel):
    """Verified caller identity for request handling."""

    id: int
    roles: frozenset[RoleName] = Field(default_factory=frozenset)
    email: EmailStr | None = None

    class Config:
        frozen = True
