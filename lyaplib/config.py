"""Explicit run configuration for the Lyapunov drivers."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from numbers import Integral
from typing import Any, Dict, Optional, Union

import numpy as np

from .errors import ConfigurationError

_CONTINUOUS_DEFAULTS = {"dt": 0.1, "Ttr": 10.0}
_DISCRETE_DEFAULTS = {"dt": 1, "Ttr": 100}


@dataclass(frozen=True)
class LyapunovConfig:
    """Options shared by every spectrum computation.

    ``dt`` and ``Ttr`` left as ``None`` take the defaults of the system
    kind: ``dt=0.1, Ttr=10.0`` for flows, ``dt=1, Ttr=100`` for maps.
    ``k=None`` means the full spectrum (``k = D``).
    """

    N: int = 1000
    dt: Optional[float] = None
    Ttr: Optional[float] = None
    k: Optional[int] = None
    discrete: bool = False
    stepper: Any = "rk4"
    qr_method: str = "householder"
    solver_options: Dict[str, Any] = field(default_factory=dict)
    sort: bool = True
    degeneracy_tol: Optional[float] = None
    dtype: Any = np.float64

    def with_options(self, **options) -> "LyapunovConfig":
        """Return a copy with every non-``None`` option overridden."""
        changes = {key: value for key, value in options.items() if value is not None}
        return replace(self, **changes) if changes else self

    def resolved(self, dimension: int) -> "LyapunovConfig":
        """Fill in kind-dependent defaults and validate against ``dimension``."""
        defaults = _DISCRETE_DEFAULTS if self.discrete else _CONTINUOUS_DEFAULTS
        cfg = replace(
            self,
            dt=defaults["dt"] if self.dt is None else self.dt,
            Ttr=defaults["Ttr"] if self.Ttr is None else self.Ttr,
            k=dimension if self.k is None else self.k,
        )
        cfg.validate(dimension)
        return cfg

    def validate(self, dimension: int) -> None:
        if not isinstance(self.N, Integral) or self.N < 1:
            raise ConfigurationError(f"N must be a positive integer, got {self.N!r}.")
        if self.k is not None:
            if not isinstance(self.k, Integral) or self.k < 1:
                raise ConfigurationError(f"k must be a positive integer, got {self.k!r}.")
            if self.k > dimension:
                raise ConfigurationError(
                    f"k = {self.k} deviation vectors requested but the state "
                    f"dimension is only {dimension}."
                )
        if self.dt is not None and not self.dt > 0:
            raise ConfigurationError(f"dt must be positive, got {self.dt!r}.")
        if self.Ttr is not None and self.Ttr < 0:
            raise ConfigurationError(f"Ttr must be non-negative, got {self.Ttr!r}.")
        if self.discrete:
            if self.dt is not None and self.dt != 1:
                raise ConfigurationError("Discrete systems advance one step per cycle (dt = 1).")
            if self.Ttr is not None and not isinstance(self.Ttr, Integral):
                raise ConfigurationError("Ttr must be an integer for discrete systems.")
        if self.qr_method.lower() not in _QR_METHODS:
            available = ", ".join(sorted(_QR_METHODS))
            raise ConfigurationError(
                f"Unknown qr_method '{self.qr_method}'. Available: {available}."
            )


_QR_METHODS = {"householder", "scipy", "qr", "gs", "gram-schmidt", "gram_schmidt", "numba", "mgs", "modified-gram-schmidt"}


def make_config(
    config: Union[LyapunovConfig, None] = None, **options
) -> LyapunovConfig:
    base = LyapunovConfig() if config is None else config
    return base.with_options(**options)


__all__ = [
    "LyapunovConfig",
    "make_config",
]
