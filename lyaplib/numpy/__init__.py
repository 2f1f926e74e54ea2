"""NumPy-backed implementations of lyaplib routines."""

from . import systems
from .api import lyapunov_spectrum, max_lyapunov_exponent, lyapunov_benettin, lyapunov_spectra, gali
from .autodiff import JacobianStrategy, ForwardDiffJacobian, NumericalJacobian, resolve_jacobian
from .integrators import TangentIntegrator
from .qr import positive_qr, reorthonormalize, spanned_volume
from .rules import DynamicRule, JacobianRule, continuous_rule, discrete_rule
from .steppers import resolve_stepper, register_stepper, VariationalStepper

__all__ = [
    "lyapunov_spectrum",
    "max_lyapunov_exponent",
    "lyapunov_benettin",
    "lyapunov_spectra",
    "gali",
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
]
