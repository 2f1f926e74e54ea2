"""Reference dynamical systems with analytic Jacobians.

Every constructor returns a :class:`System` whose fields plug straight into
the drivers::

    sys = lorenz()
    lyapunov_spectrum(sys.rule, sys.jacobian, sys.x0, 10_000, *sys.args)

The polynomial rules only use operations that also accept torch tensors,
so they can be differentiated with ``ForwardDiffJacobian`` as well.
"""

from typing import NamedTuple, Tuple

import numpy as np

from .autodiff import stack
from .rules import DynamicRule, JacobianRule, continuous_rule, discrete_rule

TWO_PI = 2 * np.pi


class System(NamedTuple):
    rule: DynamicRule
    jacobian: JacobianRule
    x0: np.ndarray
    args: Tuple


# --------------------------------------------------------------------------
# Continuous
# --------------------------------------------------------------------------


def lorenz_rule(t, u, sigma, rho, beta):
    return stack(
        [sigma * (u[1] - u[0]), u[0] * (rho - u[2]) - u[1], u[0] * u[1] - beta * u[2]],
        like=u,
    )


def lorenz_jacobian(t, u, sigma, rho, beta):
    return np.array([
        [-sigma, sigma, 0.0],
        [rho - u[2], -1.0, -u[0]],
        [u[1], u[0], -beta],
    ])


def lorenz_rule_inplace(du, t, u, sigma, rho, beta):
    du[0] = sigma * (u[1] - u[0])
    du[1] = u[0] * (rho - u[2]) - u[1]
    du[2] = u[0] * u[1] - beta * u[2]


def lorenz_jacobian_inplace(J, t, u, sigma, rho, beta):
    J[0, 0], J[0, 1], J[0, 2] = -sigma, sigma, 0.0
    J[1, 0], J[1, 1], J[1, 2] = rho - u[2], -1.0, -u[0]
    J[2, 0], J[2, 1], J[2, 2] = u[1], u[0], -beta


def lorenz(u0=(0.0, 10.0, 0.0), *, sigma=10.0, rho=28.0, beta=8 / 3, inplace=False) -> System:
    """Lorenz (1963) convection model; exponents ≈ (0.9056, 0, -14.5723)."""
    if inplace:
        rule = continuous_rule(lorenz_rule_inplace, inplace=True)
        jac = JacobianRule(lorenz_jacobian_inplace, inplace=True)
    else:
        rule = continuous_rule(lorenz_rule)
        jac = JacobianRule(lorenz_jacobian)
    return System(rule, jac, np.array(u0, dtype=float), (sigma, rho, beta))


def roessler_rule(t, u, a, b, c):
    return stack([-u[1] - u[2], u[0] + a * u[1], b + u[2] * (u[0] - c)], like=u)


def roessler_jacobian(t, u, a, b, c):
    return np.array([
        [0.0, -1.0, -1.0],
        [1.0, a, 0.0],
        [u[2], 0.0, u[0] - c],
    ])


def roessler(u0=(1.0, -2.0, 0.1), *, a=0.2, b=0.2, c=5.7) -> System:
    """Rössler (1976) attractor; exponents ≈ (0.07, 0, -5.4)."""
    return System(
        continuous_rule(roessler_rule), JacobianRule(roessler_jacobian), np.array(u0, dtype=float), (a, b, c)
    )


def henon_heiles_rule(t, u, lam):
    return stack(
        [
            u[2],
            u[3],
            -u[0] - 2 * lam * u[0] * u[1],
            -u[1] - lam * (u[0] ** 2 - u[1] ** 2),
        ],
        like=u,
    )


def henon_heiles_jacobian(t, u, lam):
    return np.array([
        [0.0, 0.0, 1.0, 0.0],
        [0.0, 0.0, 0.0, 1.0],
        [-1.0 - 2 * lam * u[1], -2 * lam * u[0], 0.0, 0.0],
        [-2 * lam * u[0], -1.0 + 2 * lam * u[1], 0.0, 0.0],
    ])


def henon_heiles(u0=(0.0, -0.25, 0.42081, 0.0), *, lam=1.0) -> System:
    """Hénon–Heiles Hamiltonian; the spectrum comes in ± pairs summing to zero."""
    return System(
        continuous_rule(henon_heiles_rule),
        JacobianRule(henon_heiles_jacobian),
        np.array(u0, dtype=float),
        (lam,),
    )


# --------------------------------------------------------------------------
# Discrete
# --------------------------------------------------------------------------


def henon_rule(t, x, a, b):
    return stack([1.0 - a * x[0] ** 2 + x[1], b * x[0]], like=x)


def henon_jacobian(t, x, a, b):
    return np.array([[-2 * a * x[0], 1.0], [b, 0.0]])


def henon(u0=(0.0, 0.0), *, a=1.4, b=0.3) -> System:
    """Hénon (1976) map; exponents ≈ (0.4189, -1.6229)."""
    return System(discrete_rule(henon_rule), JacobianRule(henon_jacobian), np.array(u0, dtype=float), (a, b))


def towel_rule(t, x):
    return stack(
        [
            3.8 * x[0] * (1 - x[0]) - 0.05 * (x[1] + 0.35) * (1 - 2 * x[2]),
            0.1 * ((x[1] + 0.35) * (1 - 2 * x[2]) - 1) * (1 - 1.9 * x[0]),
            3.78 * x[2] * (1 - x[2]) + 0.2 * x[1],
        ],
        like=x,
    )


def towel_jacobian(t, x):
    return np.array([
        [3.8 * (1 - 2 * x[0]), -0.05 * (1 - 2 * x[2]), 0.1 * (x[1] + 0.35)],
        [
            -0.19 * ((x[1] + 0.35) * (1 - 2 * x[2]) - 1),
            0.1 * (1 - 2 * x[2]) * (1 - 1.9 * x[0]),
            -0.2 * (x[1] + 0.35) * (1 - 1.9 * x[0]),
        ],
        [0.0, 0.2, 3.78 * (1 - 2 * x[2])],
    ])


def towel(u0=(0.085, -0.121, 0.075)) -> System:
    """Rössler's folded-towel map, hyperchaotic; exponents ≈ (0.432, 0.379, -3.746)."""
    return System(discrete_rule(towel_rule), JacobianRule(towel_jacobian), np.array(u0, dtype=float), ())


def logistic_rule(t, x, r):
    return r * x * (1 - x)


def logistic_jacobian(t, x, r):
    return np.array([[r * (1 - 2 * x[0])]])


def logistic(x0=0.4, *, r=4.0) -> System:
    """Logistic map ``x -> r x (1 - x)``; the exponent is ``log 2`` at ``r = 4``."""
    return System(
        discrete_rule(logistic_rule), JacobianRule(logistic_jacobian), np.array([x0], dtype=float), (r,)
    )


def standard_map_rule(t, x, k):
    p = (x[1] + k * np.sin(x[0])) % TWO_PI
    theta = (x[0] + p) % TWO_PI
    return stack([theta, p], like=x)


def standard_map_jacobian(t, x, k):
    c = k * np.cos(x[0])
    return np.array([[1 + c, 1.0], [c, 1.0]])


def standard_map(u0=(0.001, 0.0008), *, k=0.971635) -> System:
    """Chirikov standard map on the torus; area preserving, exponents sum to zero."""
    return System(
        discrete_rule(standard_map_rule), JacobianRule(standard_map_jacobian), np.array(u0, dtype=float), (k,)
    )


__all__ = [
    "System",
    "lorenz",
    "roessler",
    "henon_heiles",
    "henon",
    "towel",
    "logistic",
    "standard_map",
]
