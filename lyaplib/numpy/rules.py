import numpy as np
from dataclasses import dataclass
from typing import Callable, Optional, Union


@dataclass(frozen=True)
class DynamicRule:
    """A user equation of motion with a uniform call signature.

    For flows ``fn`` returns the time derivative, for maps it returns the
    next state. Out-of-place rules are called as ``fn(t, x, *args)``,
    in-place rules as ``fn(du, t, x, *args)`` and must fill ``du``.
    """

    fn: Callable
    discrete: bool = False
    inplace: bool = False

    def __call__(self, t: float, x: np.ndarray, *args, out: Optional[np.ndarray] = None) -> np.ndarray:
        if self.inplace:
            if out is None:
                out = np.empty_like(x)
            self.fn(out, t, x, *args)
            return out
        return np.asarray(self.fn(t, x, *args), dtype=x.dtype).reshape(x.shape)

    @property
    def kind(self) -> str:
        return "discrete" if self.discrete else "continuous"


@dataclass(frozen=True)
class JacobianRule:
    """Jacobian of a ``DynamicRule`` with respect to the state.

    Called as ``fn(t, x, *args) -> (D, D)`` or, in place, ``fn(J, t, x, *args)``.
    """

    fn: Callable
    inplace: bool = False

    def __call__(self, t: float, x: np.ndarray, *args, out: Optional[np.ndarray] = None) -> np.ndarray:
        if self.inplace:
            if out is None:
                out = np.empty((x.size, x.size), dtype=x.dtype)
            self.fn(out, t, x, *args)
            return out
        return np.asarray(self.fn(t, x, *args), dtype=x.dtype).reshape(x.size, x.size)


def continuous_rule(fn: Callable, *, inplace: bool = False) -> DynamicRule:
    """Wrap ``fn`` as the vector field of a flow."""
    return DynamicRule(fn, discrete=False, inplace=inplace)


def discrete_rule(fn: Callable, *, inplace: bool = False) -> DynamicRule:
    """Wrap ``fn`` as the update of a map."""
    return DynamicRule(fn, discrete=True, inplace=inplace)


def as_rule(
    f: Union[Callable, DynamicRule], *, discrete: bool = False, inplace: bool = False
) -> DynamicRule:
    if isinstance(f, DynamicRule):
        return f
    if not callable(f):
        raise TypeError("f must be callable.")
    return DynamicRule(f, discrete=discrete, inplace=inplace)


def as_jacobian(Df: Union[Callable, JacobianRule], *, inplace: bool = False) -> JacobianRule:
    if isinstance(Df, JacobianRule):
        return Df
    if not callable(Df):
        raise TypeError("Df must be callable.")
    return JacobianRule(Df, inplace=inplace)


__all__ = [
    "DynamicRule",
    "JacobianRule",
    "continuous_rule",
    "discrete_rule",
    "as_rule",
    "as_jacobian",
]
