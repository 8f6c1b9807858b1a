"""Pydantic models for promo code requests and validation results."""

from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, Field


class ApplyPromoRequest(BaseModel):
    code: str = Field(..., min_length=1, description="Promo code")

    class Config:
        extra = "forbid"


class PromoValidationResult(BaseModel):
    """Outcome of the promo validation contract."""

    is_valid: bool
    message: str = ""
    # PromoCode row when valid
    promo_code: Optional[Any] = None
    discount: Optional[Decimal] = None

    class Config:
        arbitrary_types_allowed = True
