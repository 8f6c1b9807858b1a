"""The acting user, threaded explicitly through every mutating call."""

from pydantic import BaseModel, Field

from order_engine.models.enums import ActorRole


class Actor(BaseModel):
    """Resolved caller identity. Authentication happens upstream."""

    id: str = Field(..., min_length=1, description="User ID")
    role: ActorRole = Field(..., description="ADMIN or CUSTOMER")

    class Config:
        frozen = True

    @property
    def is_admin(self) -> bool:
        return self.role == ActorRole.ADMIN
