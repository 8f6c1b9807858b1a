"""Order lifecycle and pricing-reconciliation engine."""

__version__ = "1.0.0"
