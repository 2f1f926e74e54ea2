import numpy as np
from typing import Optional, Tuple

from numba import njit
import scipy.linalg

from ..errors import NumericalDegeneracy

_LAPACK_DTYPES = (np.float32, np.float64)


@njit(fastmath=True)
def gram_schmidt_qr(A: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    m, n = A.shape
    Q = np.zeros((m, n), dtype=np.float64)
    R = np.zeros((n, n), dtype=np.float64)

    for j in range(n):
        v = np.empty(m, dtype=np.float64)
        for r in range(m):
            v[r] = A[r, j]

        for i in range(j):
            s = 0.0
            for k in range(m):
                s += Q[k, i] * A[k, j]
            R[i, j] = s

            c = R[i, j]
            for k in range(m):
                v[k] -= c * Q[k, i]

        s2 = 0.0
        for k in range(m):
            s2 += v[k] * v[k]
        Rjj = np.sqrt(s2)
        R[j, j] = Rjj

        # a collapsed column is reported by the caller, not divided here
        if Rjj > 0.0:
            inv = 1.0 / Rjj
            for k in range(m):
                Q[k, j] = v[k] * inv

    return Q, R


def _qr_mgs(A: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    QR decomposition using the Modified Gram–Schmidt algorithm.

    Works for any floating dtype, including ``np.longdouble`` which LAPACK
    does not support.

    Parameters
    ----------
    A : ndarray, shape (m, n)
        Input matrix.

    Returns
    -------
    Q : ndarray, shape (m, n)
        Orthonormal basis vectors (Q.T @ Q ≈ I).
    R : ndarray, shape (n, n)
        Upper triangular matrix with non-negative diagonal.
    """
    m, n = A.shape
    Q = np.zeros((m, n), dtype=A.dtype)
    R = np.zeros((n, n), dtype=A.dtype)
    V = A.copy()

    for j in range(n):
        norm = np.sqrt(np.sum(V[:, j] * V[:, j]))
        R[j, j] = norm
        if norm == 0:
            continue
        Q[:, j] = V[:, j] / norm
        for k in range(j + 1, n):
            R[j, k] = np.dot(Q[:, j], V[:, k])
            V[:, k] = V[:, k] - R[j, k] * Q[:, j]

    return Q, R


def _householder_qr(A: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    Q, R = scipy.linalg.qr(A, overwrite_a=False, mode="economic", check_finite=False)
    # LAPACK leaves the signs of diag(R) arbitrary; flip rows/columns so that
    # diag(R) >= 0 and Q @ R is unchanged.
    signs = np.where(np.diag(R) < 0, -1.0, 1.0).astype(A.dtype)
    return Q * signs, R * signs[:, None]


def _compute_qr(Y: np.ndarray, qr_method: str) -> Tuple[np.ndarray, np.ndarray]:
    method = qr_method.lower()
    if Y.dtype.type not in _LAPACK_DTYPES:
        return _qr_mgs(Y)
    if method in {"householder", "scipy", "qr"}:
        return _householder_qr(Y)
    if method in {"gs", "gram-schmidt", "gram_schmidt", "numba"}:
        Q, R = gram_schmidt_qr(np.ascontiguousarray(Y, dtype=np.float64))
        return Q.astype(Y.dtype, copy=False), R.astype(Y.dtype, copy=False)
    if method in {"mgs", "modified-gram-schmidt"}:
        return _qr_mgs(Y)
    available = "householder, gs, mgs"
    raise ValueError(f"Unknown qr_method '{qr_method}'. Available: {available}.")


def positive_qr(
    Y: np.ndarray,
    qr_method: str = "householder",
    tol: Optional[float] = None,
) -> Tuple[np.ndarray, np.ndarray]:
    """Factor ``Y = Q @ R`` with ``diag(R) >= 0``.

    Raises ``NumericalDegeneracy`` when a diagonal entry of ``R`` is not
    above ``tol`` (default: the smallest normal number of the dtype).
    """
    if Y.ndim != 2:
        raise ValueError("Y must have shape (D, k).")
    if Y.shape[1] > Y.shape[0]:
        raise ValueError("Y must have at most as many columns as rows.")
    Q, R = _compute_qr(Y, qr_method)
    tol = np.finfo(Y.dtype).tiny if tol is None else tol
    diag = np.abs(np.diag(R))
    bad = np.flatnonzero(~(diag > tol))
    if bad.size:
        j = int(bad[0])
        raise NumericalDegeneracy(j, float(R[j, j]), float(tol))
    return Q, R


def spanned_volume(Y: np.ndarray, qr_method: str = "householder") -> float:
    """Volume of the parallelotope spanned by the columns of ``Y``.

    Equal to the product of the singular values of ``Y``, taken here as the
    product of ``|diag(R)|``. A collapsed column gives zero rather than an
    error.
    """
    if Y.ndim != 2:
        raise ValueError("Y must have shape (D, k).")
    if Y.shape[1] > Y.shape[0]:
        raise ValueError("Y must have at most as many columns as rows.")
    _, R = _compute_qr(Y, qr_method)
    return np.abs(np.prod(np.diag(R)))


def reorthonormalize(
    Y: np.ndarray,
    log_sums: np.ndarray,
    qr_method: str = "householder",
    tol: Optional[float] = None,
) -> np.ndarray:
    """Replace the stretched basis ``Y`` by ``Q`` and add ``log diag(R)`` to ``log_sums``."""
    Q, R = positive_qr(Y, qr_method, tol)
    log_sums += np.log(np.diag(R))
    return Q


__all__ = [
    "gram_schmidt_qr",
    "positive_qr",
    "reorthonormalize",
    "spanned_volume",
]
