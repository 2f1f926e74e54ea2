"""lyaplib: Lyapunov spectra by tangent-space integration.

Public API mirrors the NumPy backend for convenience while keeping the
module split clean.
"""

from . import numpy as numpy_backend
from .config import LyapunovConfig
from .errors import LyaplibError, ConfigurationError, NumericalDegeneracy, IntegrationFailure
from .numpy import (
    lyapunov_spectrum,
    max_lyapunov_exponent,
    lyapunov_benettin,
    lyapunov_spectra,
    gali,
    JacobianStrategy,
    ForwardDiffJacobian,
    NumericalJacobian,
    resolve_jacobian,
    TangentIntegrator,
    positive_qr,
    reorthonormalize,
    spanned_volume,
    DynamicRule,
    JacobianRule,
    continuous_rule,
    discrete_rule,
    resolve_stepper,
    register_stepper,
    VariationalStepper,
    systems,
)

numpy = numpy_backend

__all__ = [
    "lyapunov_spectrum",
    "max_lyapunov_exponent",
    "lyapunov_benettin",
    "lyapunov_spectra",
    "gali",
    "LyapunovConfig",
    "LyaplibError",
    "ConfigurationError",
    "NumericalDegeneracy",
    "IntegrationFailure",
    "JacobianStrategy",
    "ForwardDiffJacobian",
    "NumericalJacobian",
    "resolve_jacobian",
    "TangentIntegrator",
    "positive_qr",
    "reorthonormalize",
    "spanned_volume",
    "DynamicRule",
    "JacobianRule",
    "continuous_rule",
    "discrete_rule",
    "resolve_stepper",
    "register_stepper",
    "VariationalStepper",
    "systems",
    "numpy",
]

__version__ = "0.1.0"
