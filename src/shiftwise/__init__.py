"""Shiftwise: shift assignment validation, explanation, plan approval and what-if simulation."""

__version__ = "0.1.0"
