import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from typing import Callable, Iterable, Optional, Tuple, Union

import numpy as np

from ..config import LyapunovConfig, make_config
from ..errors import ConfigurationError
from .autodiff import JacobianStrategy, resolve_jacobian
from .integrators import TangentIntegrator, run_gali, run_max_exponent, run_spectrum
from .qr import positive_qr
from .rules import DynamicRule, as_rule
from .steppers import VariationalStepper, Workspace, resolve_stepper

logger = logging.getLogger(__name__)

JacobianLike = Union[Callable, JacobianStrategy, None]


def lyapunov_spectrum(
    f: Union[Callable, DynamicRule],
    Df: JacobianLike,
    x0: np.ndarray,
    N: Optional[int] = None,
    *args,
    dt: Optional[float] = None,
    Ttr: Optional[float] = None,
    k: Optional[int] = None,
    discrete: Optional[bool] = None,
    inplace: bool = False,
    stepper: Union[str, VariationalStepper, None] = None,
    qr_method: Optional[str] = None,
    solver_options: Optional[dict] = None,
    sort: Optional[bool] = None,
    degeneracy_tol: Optional[float] = None,
    dtype=None,
    config: Optional[LyapunovConfig] = None,
    return_history: bool = False,
) -> Union[np.ndarray, Tuple[np.ndarray, np.ndarray, np.ndarray]]:
    """
    Lyapunov spectrum by tangent-space integration and QR re-orthonormalization.

    The state is first evolved alone for ``Ttr``; then ``N`` cycles of
    length ``dt`` (one iteration for maps) advance the state together with
    ``k`` deviation vectors, each followed by a QR step whose ``log diag(R)``
    is accumulated. The sums are divided by the elapsed time ``N * dt``.

    Parameters
    ----------
    f : callable or DynamicRule
        ``f(t, x, *args)`` (``f(du, t, x, *args)`` when ``inplace``).
    Df : callable, JacobianStrategy or None
        Jacobian ``Df(t, x, *args)``; ``None`` uses forward-mode
        differentiation of ``f``.
    x0 : array_like, shape (D,)
        Initial state.
    N : int
        Number of accumulation cycles.
    *args
        System parameters forwarded to ``f`` and ``Df``.

    Returns
    -------
    LE : ndarray, shape (k,)
        Spectrum, sorted in non-increasing order unless ``sort=False``.
    LE_history, times : ndarray, only with ``return_history=True``
        Running estimates after every cycle (QR column order, unsorted)
        and the elapsed time at which each was taken.
    """
    rule, x0, cfg = _prepare(f, Df, x0, config, discrete=discrete, inplace=inplace, N=N, dt=dt, Ttr=Ttr, k=k,
                             stepper=stepper, qr_method=qr_method, solver_options=solver_options, sort=sort,
                             degeneracy_tol=degeneracy_tol, dtype=dtype)
    integrator = _make_integrator(rule, Df, x0, cfg, *args)
    integrator.transient(cfg.Ttr)

    out = run_spectrum(integrator, cfg.N, cfg.dt, return_history=return_history)
    LE = out[0] if return_history else out
    if cfg.sort:
        LE = np.sort(LE)[::-1]
    logger.debug("Spectrum after %d cycles (elapsed %s): %s", cfg.N, integrator.elapsed, LE)

    if return_history:
        return LE, out[1], out[2]
    return LE


def max_lyapunov_exponent(
    f: Union[Callable, DynamicRule],
    Df: JacobianLike,
    x0: np.ndarray,
    N: Optional[int] = None,
    *args,
    dt: Optional[float] = None,
    Ttr: Optional[float] = None,
    discrete: Optional[bool] = None,
    inplace: bool = False,
    stepper: Union[str, VariationalStepper, None] = None,
    solver_options: Optional[dict] = None,
    degeneracy_tol: Optional[float] = None,
    dtype=None,
    config: Optional[LyapunovConfig] = None,
    return_history: bool = False,
) -> Union[float, Tuple[float, np.ndarray, np.ndarray]]:
    """
    Largest Lyapunov exponent from a single deviation vector.

    Same cycle structure as :func:`lyapunov_spectrum` with ``k = 1``, but
    the vector is renormalized by its norm instead of a QR factorization.
    Returns ``lambda_1`` (and the running estimates with ``return_history``).
    """
    rule, x0, cfg = _prepare(f, Df, x0, config, discrete=discrete, inplace=inplace, N=N, dt=dt, Ttr=Ttr, k=1,
                             stepper=stepper, solver_options=solver_options, degeneracy_tol=degeneracy_tol,
                             dtype=dtype)
    integrator = _make_integrator(rule, Df, x0, cfg, *args)
    integrator.transient(cfg.Ttr)
    return run_max_exponent(integrator, cfg.N, cfg.dt, return_history=return_history)


def lyapunov_benettin(
    f: Union[Callable, DynamicRule],
    x0: np.ndarray,
    T: float,
    *args,
    d0: Optional[float] = None,
    threshold: Optional[float] = None,
    dt: Optional[float] = None,
    Ttr: Optional[float] = None,
    discrete: Optional[bool] = None,
    inplace: bool = False,
    stepper: Union[str, VariationalStepper, None] = "rk4",
    solver_options: Optional[dict] = None,
    dtype=np.float64,
    return_history: bool = False,
) -> Union[float, Tuple[float, np.ndarray, np.ndarray]]:
    """
    Largest Lyapunov exponent from two nearby trajectories (Benettin et al. 1976).

    A test trajectory starts at distance ``d0`` from the reference one.
    Whenever their distance exceeds ``threshold`` the logarithm of the
    stretching ``dist / d0`` is accumulated and the test trajectory is pulled
    back to distance ``d0`` along the current separation. No Jacobian is
    needed. ``T`` is the number of iterations for maps and the total
    evolution time for flows, checked every ``dt`` and rounded to a whole
    number of checks.
    """
    rule = as_rule(f, discrete=bool(discrete), inplace=inplace)
    if discrete is not None and discrete != rule.discrete:
        raise ConfigurationError(f"discrete={discrete} contradicts the {rule.kind} rule.")
    if rule.discrete:
        d0 = 1e-7 if d0 is None else d0
        threshold = 1e3 * d0 if threshold is None else threshold
        Ttr = 100 if Ttr is None else Ttr
        dt = 1
    else:
        d0 = 1e-9 if d0 is None else d0
        threshold = 1e4 * d0 if threshold is None else threshold
        Ttr = 10.0 if Ttr is None else Ttr
        dt = 0.1 if dt is None else dt
    if threshold <= d0:
        raise ConfigurationError("threshold must be bigger than d0.")
    if not dt > 0:
        raise ConfigurationError(f"dt must be positive, got {dt!r}.")
    n_steps = int(T) if rule.discrete else int(round(T / dt))
    if n_steps < 1:
        raise ConfigurationError(f"T = {T!r} does not cover a single step of length {dt}.")

    x1 = np.array(x0, dtype=dtype, copy=True).reshape(-1)
    n = x1.size
    work = Workspace(np.empty(n, dtype=dtype) if rule.inplace else None)
    if rule.discrete:
        def evolve(t, x):
            return rule(t, x, *args, out=work.du).copy()
    else:
        step = resolve_stepper(stepper, **(solver_options or {}))

        def evolve(t, x):
            return step.advance_state(rule, t, x, dt, *args, work=work)

    t = 0.0
    if rule.discrete:
        for _ in range(int(Ttr)):
            x1 = evolve(t, x1)
            t += dt
    elif Ttr > 0:
        x1 = step.advance_state(rule, t, x1, Ttr, *args, work=work)
        t += Ttr

    x2 = x1 + d0 * np.ones(n, dtype=dtype) / np.sqrt(n)
    lam_sum = 0.0
    done = 0
    history, times = [], []
    while done < n_steps:
        dist = d0
        steps = 0
        while dist < threshold and done < n_steps:
            x1 = evolve(t, x1)
            x2 = evolve(t, x2)
            t += dt
            done += 1
            steps += 1
            dist = np.linalg.norm(x1 - x2)
        elapsed = done * dt
        a = dist / d0
        if not rule.discrete and steps <= 1 and a > 1e4:
            logger.warning(
                "Distance between test and reference trajectory exceeded the threshold "
                "after just one evolution step; decrease dt, increase threshold or decrease d0."
            )
            raise ConfigurationError("Parameters chosen for lyapunov_benettin with a continuous system are not accurate.")
        if not np.isfinite(a) or a == 0:
            raise ConfigurationError(f"Separation became {dist!r}; the trajectories diverged or merged.")
        lam_sum += np.log(a)
        x2 = x1 + (x2 - x1) / a
        if return_history:
            history.append(lam_sum / elapsed)
            times.append(elapsed)

    lam = lam_sum / elapsed
    if return_history:
        return lam, np.asarray(history), np.asarray(times)
    return lam


def gali(
    f: Union[Callable, DynamicRule],
    Df: JacobianLike,
    x0: np.ndarray,
    k: int,
    tmax: float,
    *args,
    ws: Optional[np.ndarray] = None,
    threshold: float = 1e-12,
    dt: Optional[float] = None,
    Ttr: float = 0,
    discrete: Optional[bool] = None,
    inplace: bool = False,
    stepper: Union[str, VariationalStepper, None] = None,
    solver_options: Optional[dict] = None,
    qr_method: Optional[str] = None,
    dtype=None,
    seed: Optional[int] = None,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Generalized Alignment Index GALI_k (Skokos et al. 2007) up to ``tmax``.

    ``k`` deviation vectors evolve under the variational equations and are
    normalized every ``dt`` (every iteration for maps). GALI_k is the volume
    they span, i.e. the product of the singular values of the normalized
    basis. It decays exponentially on chaotic orbits and stays constant or
    decays as a power law on regular ones. The run stops early once GALI_k
    falls below ``threshold``.

    Parameters
    ----------
    k : int
        Number of deviation vectors, ``2 <= k <= D``.
    tmax : float
        Number of iterations for maps, total time for flows.
    ws : array_like, shape (D, k), optional
        Initial deviation vectors as columns. Random orthonormal vectors
        drawn from ``numpy.random.default_rng(seed)`` when omitted.
    dt : float, optional
        Normalization interval for flows, default ``1.0``.

    Returns
    -------
    GALI_k : ndarray
        Index at ``t[0] = 0`` and after every normalization.
    t : ndarray
        Elapsed time of each entry.
    """
    rule, x0, cfg = _prepare(f, Df, x0, None, discrete=discrete, inplace=inplace, dt=dt, Ttr=Ttr, k=k,
                             stepper=stepper, qr_method=qr_method, solver_options=solver_options, dtype=dtype)
    if cfg.k < 2:
        raise ConfigurationError(f"GALI needs at least two deviation vectors, got k = {cfg.k}.")
    if dt is None and not rule.discrete:
        cfg = replace(cfg, dt=1.0)
    N = int(tmax) if rule.discrete else int(round(tmax / cfg.dt))
    if N < 1:
        raise ConfigurationError(f"tmax = {tmax!r} does not cover a single step of length {cfg.dt}.")

    D = x0.size
    if ws is None:
        rng = np.random.default_rng(seed)
        ws = positive_qr(rng.standard_normal((D, D)))[0][:, :cfg.k]
    ws = np.array(ws, dtype=cfg.dtype)
    if ws.shape != (D, cfg.k):
        raise ValueError(f"ws must have shape {(D, cfg.k)}, got {ws.shape}.")
    norms = np.sqrt(np.sum(ws * ws, axis=0))
    if not np.all(norms > 0):
        raise ValueError("Initial deviation vectors must be non-zero.")

    integrator = _make_integrator(rule, Df, x0, cfg, *args)
    integrator.transient(cfg.Ttr)
    integrator.reinit(Y0=ws / norms)
    values, times = run_gali(integrator, N, cfg.dt, threshold=threshold)
    logger.debug("GALI_%d = %s after elapsed %s", cfg.k, values[-1], times[-1])
    return values, times


def lyapunov_spectra(
    f: Union[Callable, DynamicRule],
    Df: JacobianLike,
    initial_states: Iterable[np.ndarray],
    N: Optional[int] = None,
    *args,
    max_workers: Optional[int] = None,
    **options,
) -> np.ndarray:
    """
    Spectra for several independent initial conditions.

    Each trajectory gets its own integrator and buffers and runs in a
    bounded thread pool. Results come back in input order, shape
    ``(n_states, k)``; the first error raised by any run propagates.
    """
    states = [np.asarray(x0) for x0 in initial_states]
    if not states:
        raise ValueError("initial_states must contain at least one state.")

    def one(x0):
        return lyapunov_spectrum(f, Df, x0, N, *args, **options)

    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        results = list(pool.map(one, states))
    return np.vstack(results)


def _prepare(
    f,
    Df,
    x0,
    config: Optional[LyapunovConfig],
    *,
    discrete: Optional[bool],
    inplace: bool,
    **options,
) -> Tuple[DynamicRule, np.ndarray, LyapunovConfig]:
    if not (Df is None or callable(Df) or isinstance(Df, JacobianStrategy)):
        raise TypeError("Df must be callable, a JacobianStrategy or None.")
    x0 = np.asarray(x0)
    if x0.ndim > 1:
        raise ValueError("x0 must be one-dimensional.")
    if x0.size < 1:
        raise ValueError("x0 must contain at least one state variable.")

    if discrete is None and config is not None and not isinstance(f, DynamicRule):
        discrete = config.discrete
    rule = as_rule(f, discrete=bool(discrete), inplace=inplace)
    if discrete is not None and discrete != rule.discrete:
        raise ConfigurationError(f"discrete={discrete} contradicts the {rule.kind} rule.")

    cfg = make_config(config, **options)
    cfg = replace(cfg, discrete=rule.discrete).resolved(x0.size)
    return rule, x0, cfg


def _make_integrator(rule: DynamicRule, Df, x0: np.ndarray, cfg: LyapunovConfig, *args) -> TangentIntegrator:
    jacobian = resolve_jacobian(rule, Df)
    return TangentIntegrator(
        rule,
        jacobian,
        x0,
        *args,
        k=cfg.k,
        stepper=cfg.stepper,
        solver_options=cfg.solver_options,
        qr_method=cfg.qr_method,
        degeneracy_tol=cfg.degeneracy_tol,
        dtype=cfg.dtype,
    )


__all__ = [
    "lyapunov_spectrum",
    "max_lyapunov_exponent",
    "lyapunov_benettin",
    "lyapunov_spectra",
    "gali",
]
