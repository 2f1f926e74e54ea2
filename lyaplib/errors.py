from __future__ import annotations

from typing import Optional

__all__ = [
    "LyaplibError",
    "ConfigurationError",
    "NumericalDegeneracy",
    "IntegrationFailure",
]


class LyaplibError(Exception):
    """Base error for the lyaplib package."""


class ConfigurationError(LyaplibError, ValueError):
    """Raised when a run cannot be set up.

    Typical causes are a requested spectrum size larger than the state
    dimension, or a missing Jacobian that automatic differentiation could
    not synthesise. Supply an explicit Jacobian or fix the options.
    """


class NumericalDegeneracy(LyaplibError, ArithmeticError):
    """Raised when the deviation vectors collapse onto a lower-rank subspace."""

    def __init__(self, column: int, value: float, tolerance: float):
        self.column = column
        self.value = value
        self.tolerance = tolerance
        msg = (
            f"Deviation basis degenerated: |R[{column}, {column}]| = {abs(value):.3e} "
            f"is below tolerance {tolerance:.3e}.\n"
            "Reduce the number of deviation vectors k."
        )
        super().__init__(msg)


class IntegrationFailure(LyaplibError, RuntimeError):
    """Raised when the stepper fails or produces non-finite values."""

    def __init__(self, message: str, t: Optional[float] = None):
        self.t = t
        msg = message if t is None else f"{message} (t = {t})"
        msg += "\nAdjust dt or the solver tolerances."
        super().__init__(msg)
