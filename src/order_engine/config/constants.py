"""
Centralized business constants.

Single point of truth for values shared by the pricing code and the
display layer.
"""

from decimal import Decimal

# ==============================================================================
# PRICING
# ==============================================================================

# Currency formatting
CURRENCY_DECIMAL_PLACES = 2

# Quantizer matching CURRENCY_DECIMAL_PLACES (0.01)
CURRENCY_QUANTUM = Decimal(1).scaleb(-CURRENCY_DECIMAL_PLACES)

ZERO = Decimal("0")
