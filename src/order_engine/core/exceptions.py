"""Order engine exceptions.

Raised by the service layer when input or business rules are violated.
The HTTP layer translates them into responses (see server/app.py); any
exception raised inside a unit of work rolls the transaction back.
"""

from typing import Any, Dict, Optional


class OrderEngineError(Exception):
    """Base class for all errors surfaced by the engine."""

    kind = "error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for an API error body."""
        return {"error": self.kind, "message": self.message, "details": self.details}


class ValidationError(OrderEngineError):
    """Malformed or out-of-range input. Raised before any state is touched."""

    kind = "validation_error"


class NotFoundError(OrderEngineError):
    """An order, line item or product does not exist."""

    kind = "not_found"


class IllegalTransitionError(OrderEngineError):
    """A status change violates the order state machine."""

    kind = "illegal_transition"

    def __init__(
        self,
        message: str,
        current_status: Optional[str] = None,
        requested_status: Optional[str] = None,
        actor_role: Optional[str] = None,
    ):
        super().__init__(
            message,
            {
                "current_status": current_status,
                "requested_status": requested_status,
                "actor_role": actor_role,
            },
        )
        self.current_status = current_status
        self.requested_status = requested_status
        self.actor_role = actor_role


class ConflictError(OrderEngineError):
    """Live state prevents the operation (archived product, stock, promo)."""

    kind = "conflict"


class InvariantViolation(OrderEngineError):
    """The engine was used in a way its contract forbids."""

    kind = "invariant_violation"
