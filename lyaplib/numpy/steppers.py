"""Steppers advancing a state and its deviation basis over one cycle.

Every stepper implements ``stepper(f, Df, t, x, Y, dt, *args, work=None)``
returning ``(x_next, Y_next)`` after exactly ``dt`` time units, plus
``advance_state`` for integrating the state alone (transients, Benettin).
"""

import logging
import math
from functools import partial
from typing import Callable, Dict, NamedTuple, Optional, Tuple, Union

import numpy as np
from scipy.integrate import solve_ivp

from ..errors import ConfigurationError, IntegrationFailure

logger = logging.getLogger(__name__)


class Workspace(NamedTuple):
    """Buffers owned by one integrator and lent to the rules it calls."""

    du: Optional[np.ndarray] = None
    J: Optional[np.ndarray] = None


_NO_WORK = Workspace()


class VariationalStepper:
    name = "base"
    adaptive = False

    def __call__(self, f, Df, t, x, Y, dt, *args, work: Workspace = _NO_WORK):
        raise NotImplementedError

    def advance_state(self, f, t, x, dt, *args, work: Workspace = _NO_WORK):
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class _FixedStepper(VariationalStepper):
    """Splits a cycle into equal substeps no longer than ``max_step``."""

    def __init__(self, max_step: float = 0.01):
        if not max_step > 0:
            raise ConfigurationError(f"max_step must be positive, got {max_step!r}.")
        self.max_step = max_step

    def _substeps(self, dt: float) -> Tuple[int, float]:
        n_sub = max(1, math.ceil(dt / self.max_step - 1e-9))
        return n_sub, dt / n_sub

    def __call__(self, f, Df, t, x, Y, dt, *args, work: Workspace = _NO_WORK):
        n_sub, h = self._substeps(dt)
        for i in range(n_sub):
            x, Y = self.step(f, Df, t + i * h, x, Y, h, *args, work=work)
        return x, Y

    def advance_state(self, f, t, x, dt, *args, work: Workspace = _NO_WORK):
        n_sub, h = self._substeps(dt)
        for i in range(n_sub):
            x = self.step_state(f, t + i * h, x, h, *args, work=work)
        return x

    def __repr__(self) -> str:
        return f"{type(self).__name__}(max_step={self.max_step})"


class RK4Stepper(_FixedStepper):
    name = "rk4"

    def step(self, f, Df, t, x, V, dt, *args, work: Workspace = _NO_WORK):
        """
        Perform a single 4th-order Runge–Kutta step for both the state and the
        associated variational equation.

        Parameters
        ----------
        f : DynamicRule
            Vector field f(t, x, *args).
        Df : JacobianRule
            Jacobian Df(t, x, *args) returning the matrix ∂f/∂x.
        t : float
            Current time.
        x : ndarray, shape (n,)
            Current state vector.
        V : ndarray, shape (n, k)
            Current deviation basis.
        dt : float
            Step size.

        Returns
        -------
        x_next : ndarray, shape (n,)
            State at t + dt.
        V_next : ndarray, shape (n, k)
            Deviation basis at t + dt.
        """
        du, J = work
        # ---- State integration ----
        k1 = dt * f(t, x, *args, out=du)
        k2 = dt * f(t + 0.5 * dt, x + 0.5 * k1, *args, out=du)
        k3 = dt * f(t + 0.5 * dt, x + 0.5 * k2, *args, out=du)
        k4 = dt * f(t + dt, x + k3, *args, out=du)

        # ---- Variational integration ----
        K1 = dt * (Df(t, x, *args, out=J) @ V)
        K2 = dt * (Df(t + 0.5 * dt, x + 0.5 * k1, *args, out=J) @ (V + 0.5 * K1))
        K3 = dt * (Df(t + 0.5 * dt, x + 0.5 * k2, *args, out=J) @ (V + 0.5 * K2))
        K4 = dt * (Df(t + dt, x + k3, *args, out=J) @ (V + K3))

        x_next = x + (k1 + 2 * k2 + 2 * k3 + k4) / 6.0
        V_next = V + (K1 + 2 * K2 + 2 * K3 + K4) / 6.0
        return x_next, V_next

    def step_state(self, f, t, x, dt, *args, work: Workspace = _NO_WORK):
        du = work.du
        k1 = dt * f(t, x, *args, out=du)
        k2 = dt * f(t + 0.5 * dt, x + 0.5 * k1, *args, out=du)
        k3 = dt * f(t + 0.5 * dt, x + 0.5 * k2, *args, out=du)
        k4 = dt * f(t + dt, x + k3, *args, out=du)
        return x + (k1 + 2 * k2 + 2 * k3 + k4) / 6.0


class EulerStepper(_FixedStepper):
    name = "euler"

    def __init__(self, max_step: float = 0.001):
        super().__init__(max_step)

    def step(self, f, Df, t, x, V, dt, *args, work: Workspace = _NO_WORK):
        du, J = work
        V_next = V + dt * (Df(t, x, *args, out=J) @ V)
        x_next = x + dt * f(t, x, *args, out=du)
        return x_next, V_next

    def step_state(self, f, t, x, dt, *args, work: Workspace = _NO_WORK):
        return x + dt * f(t, x, *args, out=work.du)


class ScipyStepper(VariationalStepper):
    """Adaptive integration of the augmented system with ``solve_ivp``.

    The state and the flattened deviation basis are advanced together as
    ``D + D*k`` scalar equations; the Jacobian is evaluated at the evolving
    state in every internal stage.
    """

    adaptive = True

    def __init__(self, method: str = "DOP853", rtol: float = 1e-6, atol: float = 1e-9, **options):
        self.method = method
        self.rtol = rtol
        self.atol = atol
        self.options = options

    @property
    def name(self) -> str:
        return self.method.lower()

    def _solve(self, rhs, t, z0, dt):
        sol = solve_ivp(
            rhs,
            (t, t + dt),
            z0,
            method=self.method,
            rtol=self.rtol,
            atol=self.atol,
            **self.options,
        )
        if not sol.success:
            raise IntegrationFailure(f"{self.method} failed: {sol.message}", t=float(t))
        return sol.y[:, -1]

    def __call__(self, f, Df, t, x, Y, dt, *args, work: Workspace = _NO_WORK):
        n, k = Y.shape
        du, J = work

        def rhs(s, z):
            xs = z[:n]
            dz = np.empty_like(z)
            dz[:n] = f(s, xs, *args, out=du)
            dz[n:] = (Df(s, xs, *args, out=J) @ z[n:].reshape(n, k)).ravel()
            return dz

        z0 = np.concatenate([x, Y.ravel()])
        z = self._solve(rhs, t, z0, dt)
        return z[:n].astype(x.dtype, copy=False), z[n:].reshape(n, k).astype(Y.dtype, copy=False)

    def advance_state(self, f, t, x, dt, *args, work: Workspace = _NO_WORK):
        def rhs(s, z):
            return f(s, z, *args, out=work.du).copy()

        return self._solve(rhs, t, x, dt).astype(x.dtype, copy=False)

    def __repr__(self) -> str:
        return f"ScipyStepper(method={self.method!r}, rtol={self.rtol}, atol={self.atol})"


class FunctionStepper(VariationalStepper):
    """Adapts a plain ``fn(f, Df, t, x, Y, dt, *args) -> (x, Y)`` callable."""

    def __init__(self, fn: Callable):
        self.fn = fn
        self.name = getattr(fn, "__name__", "function")

    def __call__(self, f, Df, t, x, Y, dt, *args, work: Workspace = _NO_WORK):
        return self.fn(f, Df, t, x, Y, dt, *args)

    def advance_state(self, f, t, x, dt, *args, work: Workspace = _NO_WORK):
        empty = np.empty((x.size, 0), dtype=x.dtype)
        x_next, _ = self.fn(f, lambda *_a, **_k: np.zeros((x.size, x.size), dtype=x.dtype), t, x, empty, dt, *args)
        return x_next


_STEPPERS: Dict[str, Callable[..., VariationalStepper]] = {
    "rk4": RK4Stepper,
    "euler": EulerStepper,
    "rk45": partial(ScipyStepper, "RK45"),
    "dop853": partial(ScipyStepper, "DOP853"),
    "radau": partial(ScipyStepper, "Radau"),
    "bdf": partial(ScipyStepper, "BDF"),
    "lsoda": partial(ScipyStepper, "LSODA"),
}


def register_stepper(name: str, factory: Callable[..., VariationalStepper], *, overwrite: bool = False) -> None:
    """Make ``factory(**solver_options)`` available under ``name``."""
    key = name.lower()
    if key in _STEPPERS and not overwrite:
        raise ValueError(f"Stepper '{name}' is already registered.")
    _STEPPERS[key] = factory


def resolve_stepper(
    stepper: Union[str, VariationalStepper, Callable, None] = "rk4",
    **solver_options,
) -> VariationalStepper:
    """Turn a name, instance or plain callable into a ``VariationalStepper``."""
    if stepper is None:
        stepper = "rk4"
    if isinstance(stepper, VariationalStepper):
        if solver_options:
            logger.debug("Ignoring solver options %s for stepper instance %r", solver_options, stepper)
        return stepper
    if isinstance(stepper, str):
        try:
            factory = _STEPPERS[stepper.lower()]
        except KeyError as exc:
            available = ", ".join(sorted(_STEPPERS))
            raise ConfigurationError(
                f"Unknown stepper '{stepper}'. Available: {available}."
            ) from exc
        try:
            resolved = factory(**solver_options)
        except TypeError as exc:
            raise ConfigurationError(f"Invalid solver options for '{stepper}': {exc}") from exc
        logger.debug("Resolved stepper %r", resolved)
        return resolved
    if callable(stepper):
        return FunctionStepper(stepper)
    raise TypeError("stepper must be a name, a VariationalStepper or a callable.")


__all__ = [
    "Workspace",
    "VariationalStepper",
    "RK4Stepper",
    "EulerStepper",
    "ScipyStepper",
    "register_stepper",
    "resolve_stepper",
]
