"""HTTP surface for the order engine."""
