"""Jacobian strategies used when no analytic Jacobian is supplied.

A strategy takes a ``DynamicRule`` and returns a ``JacobianRule`` honouring
the same call contract as a hand-written Jacobian, so the integrators never
know which differentiation engine is behind it.
"""

import logging
import threading
from typing import Callable, Sequence, Union

import numdifftools as nd
import numpy as np

from ..errors import ConfigurationError
from .rules import DynamicRule, JacobianRule, as_jacobian

try:
    import torch
    import torch.autograd.forward_ad as fwAD
except ModuleNotFoundError:  # pragma: no cover - optional dependency
    torch = None
    fwAD = None

logger = logging.getLogger(__name__)

# torch keeps one forward-AD level per process, shared by all threads
_DUAL_LEVEL_LOCK = threading.Lock()

_TORCH_DTYPES = (np.float32, np.float64)


class JacobianStrategy:
    """Builds a ``JacobianRule`` for a rule that has none."""

    name = "strategy"

    def __call__(self, rule: DynamicRule) -> JacobianRule:
        def jacobian(t, x, *args):
            return self.evaluate(rule, t, x, *args)

        return JacobianRule(jacobian)

    def evaluate(self, rule: DynamicRule, t: float, x: np.ndarray, *args) -> np.ndarray:
        raise NotImplementedError


class ForwardDiffJacobian(JacobianStrategy):
    """Forward-mode automatic differentiation through PyTorch dual tensors.

    The rule is called with a dual ``torch.Tensor`` in place of the state,
    once per state component, so it must only use operations that accept
    tensors. Use :func:`stack` to assemble vector outputs.

    Single and double precision states are differentiated in their own
    precision. PyTorch has no extended float type, so ``np.longdouble``
    states are differentiated in double precision; the returned Jacobian
    keeps the state dtype.

    Evaluations from several threads are serialized.
    """

    name = "forwarddiff"

    def evaluate(self, rule: DynamicRule, t: float, x: np.ndarray, *args) -> np.ndarray:
        if torch is None:
            raise ConfigurationError(
                "No Jacobian was given and PyTorch is not installed for forward-mode "
                "differentiation. Supply Df or install torch."
            )
        x = np.asarray(x)
        work_dtype = x.dtype if x.dtype.type in _TORCH_DTYPES else np.float64
        primal = torch.from_numpy(np.array(x, dtype=work_dtype))
        n = primal.numel()
        J = np.empty((n, n), dtype=x.dtype if np.issubdtype(x.dtype, np.floating) else np.float64)
        try:
            with _DUAL_LEVEL_LOCK, fwAD.dual_level():
                for j in range(n):
                    seed = torch.zeros_like(primal)
                    seed[j] = 1.0
                    dual = fwAD.make_dual(primal, seed)
                    if rule.inplace:
                        out = torch.zeros_like(primal)
                        rule.fn(out, t, dual, *args)
                    else:
                        out = rule.fn(t, dual, *args)
                    J[:, j] = _column(out, n)
        except ConfigurationError:
            raise
        except (TypeError, ValueError, RuntimeError) as exc:
            raise ConfigurationError(
                f"Forward-mode differentiation of the {rule.kind} rule failed: {exc}"
            ) from exc

        if not np.all(np.isfinite(J)):
            raise ConfigurationError(
                f"The rule is not differentiable at x = {np.asarray(x).tolist()}."
            )
        return J


def _column(out, n: int) -> np.ndarray:
    if not isinstance(out, torch.Tensor):
        raise ConfigurationError(
            f"Rule returned {type(out).__name__} for a tensor input; forward-mode "
            "differentiation needs tensor outputs."
        )
    tangent = fwAD.unpack_dual(out).tangent
    if tangent is None:
        return np.zeros(n)
    return tangent.detach().cpu().numpy().reshape(n)


class NumericalJacobian(JacobianStrategy):
    """Adaptive central finite differences via ``numdifftools``."""

    name = "numerical"

    def __init__(self, method: str = "central", **options):
        self.method = method
        self.options = options

    def evaluate(self, rule: DynamicRule, t: float, x: np.ndarray, *args) -> np.ndarray:
        n = x.size
        jac = nd.Jacobian(lambda y: rule(t, np.asarray(y, dtype=x.dtype), *args), method=self.method, **self.options)
        J = np.asarray(jac(x), dtype=x.dtype).reshape(n, n)
        if not np.all(np.isfinite(J)):
            raise ConfigurationError(
                f"The rule is not differentiable at x = {x.tolist()}."
            )
        return J


def stack(components: Sequence, like) -> Union[np.ndarray, "torch.Tensor"]:
    """Assemble a state vector of the same array type as ``like``."""
    if torch is not None and isinstance(like, torch.Tensor):
        return torch.stack([torch.as_tensor(c, dtype=like.dtype) for c in components])
    return np.array(components, dtype=np.result_type(like))


def resolve_jacobian(
    rule: DynamicRule,
    Df: Union[Callable, JacobianRule, JacobianStrategy, None],
    *,
    inplace: bool = None,
) -> JacobianRule:
    """Return a ``JacobianRule`` for ``rule``.

    ``None`` selects forward-mode differentiation; a ``JacobianStrategy``
    is applied to the rule; anything else must be a Jacobian callable.
    """
    if Df is None:
        Df = ForwardDiffJacobian()
    if isinstance(Df, JacobianStrategy):
        logger.debug("Synthesising the Jacobian with the %s strategy", Df.name)
        return Df(rule)
    return as_jacobian(Df, inplace=rule.inplace if inplace is None else inplace)


__all__ = [
    "JacobianStrategy",
    "ForwardDiffJacobian",
    "NumericalJacobian",
    "stack",
    "resolve_jacobian",
]
