"""Benchmark the speed of the Lyapunov spectrum drivers on Lorenz-96.

For every state dimension the full spectrum is computed with each QR method
(Householder through LAPACK, the Numba Gram-Schmidt kernel and the NumPy
modified Gram-Schmidt). Each method receives a configurable number of
warm-up runs (to trigger JIT compilation where applicable) before the timed
repetitions.
"""

from __future__ import annotations

import argparse
import time
from dataclasses import dataclass, field
from typing import List, Sequence

import numpy as np

from lyaplib import LyapunovConfig, lyapunov_spectrum


@dataclass
class BenchmarkConfig:
    dt: float = 0.05
    cycles: int = 200
    transient: float = 5.0
    repeats: int = 2
    warmup: int = 1
    stepper: str = "rk4"
    forcing: float = 8.0
    dims: Sequence[int] = field(default_factory=lambda: (4, 8, 16, 32, 64))
    qr_methods: Sequence[str] = ("householder", "gs", "mgs")
    perturbation: float = 0.01


@dataclass
class MethodResult:
    name: str
    dim: int
    timings: np.ndarray
    spectrum: np.ndarray


def lorenz96(_: float, x: np.ndarray, forcing: float) -> np.ndarray:
    """Lorenz-96 vector field (pure NumPy)."""
    xp1 = np.roll(x, -1)
    xm2 = np.roll(x, 2)
    xm1 = np.roll(x, 1)
    return (xp1 - xm2) * xm1 - x + forcing


def lorenz96_jacobian(_: float, x: np.ndarray, forcing: float) -> np.ndarray:  # noqa: ARG001
    """Jacobian matrix of the Lorenz-96 system (pure NumPy)."""
    k = x.size
    jac = np.zeros((k, k), dtype=np.float64)

    idx = np.arange(k)
    im1 = (idx - 1) % k
    im2 = (idx - 2) % k
    ip1 = (idx + 1) % k

    jac[idx, im1] = x[ip1] - x[im2]
    jac[idx, ip1] = x[im1]
    jac[idx, im2] = -x[im1]
    jac[idx, idx] = -1.0
    return jac


def _run(x0: np.ndarray, run_cfg: LyapunovConfig, config: BenchmarkConfig) -> np.ndarray:
    return lyapunov_spectrum(lorenz96, lorenz96_jacobian, x0, None, config.forcing, config=run_cfg)


def _benchmark_method(qr_method: str, x0: np.ndarray, config: BenchmarkConfig) -> MethodResult:
    run_cfg = LyapunovConfig(
        N=config.cycles,
        dt=config.dt,
        Ttr=config.transient,
        stepper=config.stepper,
        qr_method=qr_method,
    )
    for _ in range(max(config.warmup, 0)):
        _run(x0, run_cfg, config)

    timings: List[float] = []
    spectrum = None
    for _ in range(config.repeats):
        start = time.perf_counter()
        spectrum = _run(x0, run_cfg, config)
        timings.append(time.perf_counter() - start)

    return MethodResult(qr_method, x0.size, np.array(timings, dtype=np.float64), spectrum)


def run_benchmark(config: BenchmarkConfig) -> None:
    dims = list(config.dims)
    if not dims:
        raise ValueError("No state dimensions provided for benchmarking.")

    print(
        f"Benchmark settings: dt={config.dt}, cycles={config.cycles}, "
        f"transient={config.transient}, stepper={config.stepper}, "
        f"warmup={config.warmup}, repeats={config.repeats}, forcing={config.forcing}"
    )

    for dim in dims:
        print("\n" + "=" * 20)
        print(f"Dimension: {dim}")
        x0 = np.full(dim, config.forcing, dtype=np.float64)
        x0[0] += config.perturbation

        results: List[MethodResult] = []
        for qr_method in config.qr_methods:
            results.append(_benchmark_method(qr_method, x0, config))

        for result in results:
            timings = result.timings
            std = timings.std(ddof=1) if timings.size > 1 else 0.0
            print(f"[{result.name}] mean ± std: {timings.mean():.4f} ± {std:.4f} s")
            print(f"[{result.name}] lambda_1 = {result.spectrum[0]:.4f}, sum = {result.spectrum.sum():.4f}")

        if len(results) >= 2:
            baseline = results[0]
            for result in results[1:]:
                ratio = result.timings.mean() / baseline.timings.mean()
                print(f"Speed ratio {result.name}/{baseline.name}: {ratio:.2f}x")


def parse_args() -> BenchmarkConfig:
    default_cfg = BenchmarkConfig()
    parser = argparse.ArgumentParser(
        description="Benchmark the Lyapunov spectrum QR methods on Lorenz-96"
    )
    parser.add_argument("--dt", type=float, default=default_cfg.dt, help="Length of one QR cycle")
    parser.add_argument("--cycles", type=int, default=default_cfg.cycles, help="Number of QR cycles")
    parser.add_argument("--transient", type=float, default=default_cfg.transient, help="Discarded transient time")
    parser.add_argument("--repeats", type=int, default=default_cfg.repeats, help="Number of timed runs")
    parser.add_argument("--warmup", type=int, default=default_cfg.warmup, help="Warm-up runs for JIT compilation")
    parser.add_argument("--stepper", default=default_cfg.stepper, help="Registered stepper name")
    parser.add_argument("--forcing", type=float, default=default_cfg.forcing, help="Lorenz-96 forcing parameter F")
    parser.add_argument(
        "--perturbation",
        type=float,
        default=default_cfg.perturbation,
        help="Initial perturbation added to the first component",
    )
    parser.add_argument("--dims", type=int, nargs="+", default=None, help="State dimensions to benchmark")
    parser.add_argument("--qr-methods", nargs="+", default=None, help="QR methods to compare")

    args = parser.parse_args()
    dims = tuple(args.dims) if args.dims is not None else tuple(default_cfg.dims)
    qr_methods = tuple(args.qr_methods) if args.qr_methods is not None else tuple(default_cfg.qr_methods)

    return BenchmarkConfig(
        dt=args.dt,
        cycles=args.cycles,
        transient=args.transient,
        repeats=args.repeats,
        warmup=args.warmup,
        stepper=args.stepper,
        forcing=args.forcing,
        dims=dims,
        qr_methods=qr_methods,
        perturbation=args.perturbation,
    )


def main() -> None:
    config = parse_args()
    run_benchmark(config)


if __name__ == "__main__":
    main()
