"""Promo code eligibility rules, run at apply time and again at acceptance."""

from decimal import Decimal

from order_engine.core.logger import setup_logger
from order_engine.db.models import utcnow
from order_engine.db.repository import PromoCodeRepository
from order_engine.models.promo import PromoValidationResult
from order_engine.services.discounts import (
    PromoDescriptor,
    calculate_promo_discount,
    to_decimal,
)

logger = setup_logger(__name__)


class PromoCodeValidator:
    """Checks whether a user may use a promo code on an order of a given total."""

    def __init__(self, promo_codes: PromoCodeRepository):
        """Initialize with the promo code gateway of the current unit of work."""
        self.promo_codes = promo_codes

    async def validate(self, code: str, user_id: str, order_total: Decimal) -> PromoValidationResult:
        """
        Validate a promo code for a user and order total.

        Checks, in order: exists and active, expiry, user exclusion, exclusive
        assignment to other users, expiry of the user's own assignment,
        maximum uses, minimum order amount.

        Args:
            code: Promo code string
            user_id: Customer the order belongs to
            order_total: Current order subtotal

        Returns:
            PromoValidationResult; when valid it carries the promo code row
            and the discount it would give on `order_total`
        """
        promo_code = await self.promo_codes.find_by_code(code)
        now = utcnow()

        if promo_code is None or not promo_code.is_active:
            return self._reject(code, "Invalid or inactive promo code")

        if promo_code.has_expiry_date and promo_code.expiry_date and promo_code.expiry_date < now:
            return self._reject(code, "This promo code has expired")

        if await self.promo_codes.is_user_excluded(promo_code.id, user_id):
            return self._reject(code, "You are not eligible to use this promo code")

        if await self.promo_codes.has_exclusive_assignment_for_others(promo_code.id, user_id):
            return self._reject(code, "This promo code is exclusively reserved for specific users")

        assignment = await self.promo_codes.find_user_assignment(user_id, promo_code.id)
        if (
            assignment is not None
            and assignment.has_expiry_date
            and assignment.expiry_date
            and assignment.expiry_date < now
        ):
            return self._reject(code, "Your access to this promo code has expired")

        if promo_code.max_uses is not None and promo_code.used_count >= promo_code.max_uses:
            return self._reject(code, "This promo code has reached its maximum usage limit")

        order_total = to_decimal(order_total)
        if promo_code.min_order_amount and order_total < to_decimal(promo_code.min_order_amount):
            return self._reject(
                code,
                f"Order total must be at least {to_decimal(promo_code.min_order_amount)} "
                "to use this promo code",
            )

        discount = calculate_promo_discount(order_total, PromoDescriptor.from_promo_code(promo_code))
        return PromoValidationResult(is_valid=True, promo_code=promo_code, discount=discount)

    @staticmethod
    def _reject(code: str, message: str) -> PromoValidationResult:
        logger.info(f"Promo code {code!r} rejected: {message}")
        return PromoValidationResult(is_valid=False, message=message)
