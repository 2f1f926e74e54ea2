import logging
import numpy as np
from typing import Optional, Tuple, Union

from ..errors import ConfigurationError, IntegrationFailure, NumericalDegeneracy
from .qr import positive_qr, spanned_volume
from .rules import DynamicRule, JacobianRule
from .steppers import VariationalStepper, Workspace, resolve_stepper

logger = logging.getLogger(__name__)

IDLE = "idle"
ADVANCING = "advancing"
SETTLED = "settled"


class TangentIntegrator:
    """Joint evolution of a state and ``k`` deviation vectors.

    The integrator owns its state, basis, accumulator and rule buffers for
    its whole lifetime; it must not be shared between threads. Use one
    instance per trajectory.

    Maps apply the rule once per cycle and multiply the basis by the
    Jacobian at the pre-step state. Flows integrate ``dx/dt = f(x)`` and
    ``dY/dt = J(x) Y`` together with the configured stepper.
    """

    def __init__(
        self,
        f: DynamicRule,
        Df: JacobianRule,
        x0: np.ndarray,
        *args,
        k: Optional[int] = None,
        t0: float = 0.0,
        stepper: Union[str, VariationalStepper, None] = "rk4",
        solver_options: Optional[dict] = None,
        qr_method: str = "householder",
        degeneracy_tol: Optional[float] = None,
        dtype=np.float64,
    ):
        x = np.array(x0, dtype=dtype, copy=True).reshape(-1)
        n = x.size
        if n < 1:
            raise ValueError("x0 must contain at least one state variable.")
        k = n if k is None else k
        if k < 1 or k > n:
            raise ConfigurationError(
                f"k = {k} deviation vectors requested for a state of dimension {n}."
            )

        self.rule = f
        self.jacobian = Df
        self.args = args
        self.qr_method = qr_method
        self.degeneracy_tol = degeneracy_tol
        self.stepper = None if f.discrete else resolve_stepper(stepper, **(solver_options or {}))
        self.work = Workspace(
            np.empty(n, dtype=dtype) if f.inplace else None,
            np.empty((n, n), dtype=dtype) if Df.inplace else None,
        )

        self.t = t0
        self.x = x
        self.Y = np.eye(n, k, dtype=dtype)
        self.log_sums = np.zeros(k, dtype=dtype)
        self.elapsed = 0.0
        self.cycles = 0
        self.status = IDLE

    @property
    def dimension(self) -> int:
        return self.x.size

    @property
    def k(self) -> int:
        return self.Y.shape[1]

    @property
    def state(self) -> np.ndarray:
        return self.x.copy()

    @property
    def basis(self) -> np.ndarray:
        return self.Y.copy()

    def reinit(self, x0: Optional[np.ndarray] = None, Y0: Optional[np.ndarray] = None) -> None:
        """Reset the basis (to ``Y0`` or identity columns) and clear the accumulator."""
        if x0 is not None:
            self.x = np.array(x0, dtype=self.x.dtype, copy=True).reshape(self.x.shape)
        if Y0 is None:
            self.Y = np.eye(self.dimension, self.k, dtype=self.x.dtype)
        else:
            Y0 = np.array(Y0, dtype=self.x.dtype, copy=True)
            if Y0.shape != self.Y.shape:
                raise ValueError(f"Y0 must have shape {self.Y.shape}, got {Y0.shape}.")
            self.Y = Y0
        self.log_sums[:] = 0.0
        self.elapsed = 0.0
        self.cycles = 0
        self.status = IDLE

    def transient(self, Ttr: float) -> None:
        """Evolve the state alone for ``Ttr``; the basis is left untouched."""
        if Ttr <= 0:
            return
        if self.rule.discrete:
            for _ in range(int(Ttr)):
                self.x = self.rule(self.t, self.x, *self.args, out=self.work.du).copy()
                self.t += 1
        else:
            self.x = self.stepper.advance_state(self.rule, self.t, self.x, Ttr, *self.args, work=self.work)
            self.t += Ttr
        self._check_finite("transient")
        logger.debug("Transient of %s discarded, x = %s", Ttr, self.x)

    def advance(self, dt: float = 1) -> Tuple[np.ndarray, np.ndarray]:
        """Advance state and basis by one cycle (``dt`` for flows, one step for maps)."""
        self.status = ADVANCING
        try:
            if self.rule.discrete:
                J = self.jacobian(self.t, self.x, *self.args, out=self.work.J)
                self.Y = J @ self.Y
                self.x = self.rule(self.t, self.x, *self.args, out=self.work.du).copy()
                dt = 1
            else:
                self.x, self.Y = self.stepper(
                    self.rule, self.jacobian, self.t, self.x, self.Y, dt, *self.args, work=self.work
                )
            self.t += dt
            self._check_finite("advance")
        except Exception:
            self.status = IDLE
            raise
        self.elapsed += dt
        self.status = SETTLED
        return self.x, self.Y

    def reorthonormalize(self) -> np.ndarray:
        """QR-factor the advanced basis, keep ``Q`` and accumulate ``log diag(R)``."""
        Q, R = positive_qr(self.Y, self.qr_method, self.degeneracy_tol)
        self.Y = Q
        self.log_sums += np.log(np.diag(R))
        self.cycles += 1
        self.status = IDLE
        return R

    def renormalize(self) -> float:
        """Single-vector shortcut: divide by the norm and accumulate its log."""
        if self.k != 1:
            raise ConfigurationError("renormalize tracks a single deviation vector (k = 1).")
        norm = np.linalg.norm(self.Y[:, 0])
        tol = self._tolerance()
        if not norm > tol:
            raise NumericalDegeneracy(0, float(norm), float(tol))
        self.Y /= norm
        self.log_sums[0] += np.log(norm)
        self.cycles += 1
        self.status = IDLE
        return norm

    def normalize(self) -> np.ndarray:
        """Scale every deviation vector to unit length without orthogonalizing them."""
        norms = np.sqrt(np.sum(self.Y * self.Y, axis=0))
        tol = self._tolerance()
        bad = np.flatnonzero(~(norms > tol))
        if bad.size:
            j = int(bad[0])
            raise NumericalDegeneracy(j, float(norms[j]), float(tol))
        self.Y /= norms
        self.cycles += 1
        self.status = IDLE
        return norms

    def step(self, dt: float = 1) -> np.ndarray:
        """One integration cycle: advance then re-orthonormalize."""
        self.advance(dt)
        return self.reorthonormalize()

    def exponents(self) -> np.ndarray:
        """Current estimate, in QR column order."""
        if self.cycles == 0:
            return np.zeros_like(self.log_sums)
        return self.log_sums / self.elapsed

    def _tolerance(self):
        return np.finfo(self.Y.dtype).tiny if self.degeneracy_tol is None else self.degeneracy_tol

    def _check_finite(self, where: str) -> None:
        if not (np.all(np.isfinite(self.x)) and np.all(np.isfinite(self.Y))):
            raise IntegrationFailure(f"Non-finite state or deviation vectors during {where}", t=float(self.t))


def run_spectrum(
    integrator: TangentIntegrator,
    N: int,
    dt: float = 1,
    *,
    return_history: bool = False,
) -> Union[np.ndarray, Tuple[np.ndarray, np.ndarray, np.ndarray]]:
    """Run ``N`` QR cycles. Returns the estimate in QR column order."""
    k = integrator.k
    if return_history:
        LE_history = np.empty((N, k), dtype=integrator.log_sums.dtype)
        times = np.empty(N, dtype=float)

    for i in range(N):
        integrator.step(dt)
        if return_history:
            LE_history[i] = integrator.exponents()
            times[i] = integrator.elapsed

    LE = integrator.exponents()
    if return_history:
        return LE, LE_history, times
    return LE


def run_max_exponent(
    integrator: TangentIntegrator,
    N: int,
    dt: float = 1,
    *,
    return_history: bool = False,
) -> Union[float, Tuple[float, np.ndarray, np.ndarray]]:
    """Run ``N`` cycles tracking one deviation vector by norm division."""
    if return_history:
        history = np.empty(N, dtype=integrator.log_sums.dtype)
        times = np.empty(N, dtype=float)

    for i in range(N):
        integrator.advance(dt)
        integrator.renormalize()
        if return_history:
            history[i] = integrator.log_sums[0] / integrator.elapsed
            times[i] = integrator.elapsed

    lam = integrator.exponents()[0]
    if return_history:
        return lam, history, times
    return lam


def run_gali(
    integrator: TangentIntegrator,
    N: int,
    dt: float = 1,
    *,
    threshold: float = 1e-12,
) -> Tuple[np.ndarray, np.ndarray]:
    """Record the volume spanned by the normalized deviation vectors after every cycle.

    Stops early once the volume falls below ``threshold``; that last value
    is included. The first entry is the volume of the initial basis at
    elapsed time zero.
    """
    values = [spanned_volume(integrator.Y, integrator.qr_method)]
    times = [0.0]
    for _ in range(N):
        integrator.advance(dt)
        integrator.normalize()
        g = spanned_volume(integrator.Y, integrator.qr_method)
        values.append(g)
        times.append(integrator.elapsed)
        if g < threshold:
            break
    return np.asarray(values, dtype=integrator.Y.dtype), np.asarray(times, dtype=float)


__all__ = [
    "TangentIntegrator",
    "run_spectrum",
    "run_max_exponent",
    "run_gali",
]
