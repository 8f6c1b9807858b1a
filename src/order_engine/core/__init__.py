"""Core module - Logging and error taxonomy."""

from order_engine.core.exceptions import (
    ConflictError,
    IllegalTransitionError,
    InvariantViolation,
    NotFoundError,
    OrderEngineError,
    ValidationError,
)
from order_engine.core.logger import setup_logger

__all__ = [
    "setup_logger",
    "OrderEngineError",
    "ValidationError",
    "NotFoundError",
    "IllegalTransitionError",
    "ConflictError",
    "InvariantViolation",
]
