"""
Actor resolution

Authentication happens upstream; the gateway forwards the caller's id and
role in X-Actor-Id / X-Actor-Role headers.
"""

from fastapi import Depends, Header, HTTPException, status
from pydantic import ValidationError as PydanticValidationError

from order_engine.models.actor import Actor


async def get_actor(
    x_actor_id: str = Header(..., description="Caller user id"),
    x_actor_role: str = Header(..., description="ADMIN or CUSTOMER"),
) -> Actor:
    """
    Build the Actor from gateway headers.

    Raises:
        HTTPException: If the headers do not describe a valid actor
    """
    try:
        return Actor(id=x_actor_id, role=x_actor_role.upper())
    except PydanticValidationError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid actor headers",
        )


async def require_admin(actor: Actor = Depends(get_actor)) -> Actor:
    if not actor.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Administrator role required",
        )
    return actor
