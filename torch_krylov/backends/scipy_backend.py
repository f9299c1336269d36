"""
SciPy backend for CPU sparse linear algebra operations.

Vectors are ``numpy.ndarray`` and matrices are ``scipy.sparse.csr_matrix``.
Norms and inner products are returned as numpy scalars, so a vanishing
denominator inside a solver yields inf/nan (with a numpy RuntimeWarning)
instead of raising.
"""

import torch
import numpy as np
from typing import Tuple

from .base import Backend
from ..check import check_coo

try:
    import scipy.sparse as sp
    SCIPY_AVAILABLE = True
except ImportError:
    SCIPY_AVAILABLE = False


def is_scipy_available() -> bool:
    """Check if SciPy is available"""
    return SCIPY_AVAILABLE


def torch_coo_to_scipy_csr(
    val: torch.Tensor,
    row: torch.Tensor,
    col: torch.Tensor,
    shape: Tuple[int, int],
    dtype=None
) -> "sp.csr_matrix":
    """Convert PyTorch COO tensors to SciPy CSR matrix (duplicates are summed)"""
    if not SCIPY_AVAILABLE:
        raise ImportError("SciPy is required for the scipy backend")

    val_np = val.detach().cpu().numpy()
    row_np = row.detach().cpu().numpy()
    col_np = col.detach().cpu().numpy()
    if dtype is not None:
        val_np = val_np.astype(dtype)

    coo = sp.coo_matrix((val_np, (row_np, col_np)), shape=shape)
    csr = coo.tocsr()
    csr.sum_duplicates()
    csr.sort_indices()
    return csr


class ScipyBackend(Backend):
    """
    Backend built on numpy arrays and scipy.sparse CSR matrices (CPU only).

    Parameters
    ----------
    dtype : numpy dtype, optional
        Value type, by default numpy.float64
    """

    name = 'scipy'

    def __init__(self, dtype=np.float64):
        if not SCIPY_AVAILABLE:
            raise ImportError("SciPy is required for the scipy backend")
        self.dtype = np.dtype(dtype)

    @property
    def value_type(self) -> np.dtype:
        return self.dtype

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    def create_vector(self, n: int) -> np.ndarray:
        return np.zeros(n, dtype=self.dtype)

    def create_matrix(self,
                      val: torch.Tensor,
                      row: torch.Tensor,
                      col: torch.Tensor,
                      shape: Tuple[int, int]) -> "sp.csr_matrix":
        check_coo(val, row, col, shape)
        return torch_coo_to_scipy_csr(val, row, col, shape, dtype=self.dtype)

    def vector(self, data) -> np.ndarray:
        if isinstance(data, torch.Tensor):
            data = data.detach().cpu().numpy()
        return np.array(data, dtype=self.dtype)

    def to_tensor(self, v: np.ndarray) -> torch.Tensor:
        return torch.from_numpy(v.copy())

    # ------------------------------------------------------------------
    # Engine primitives
    # ------------------------------------------------------------------

    def residual(self, rhs, A, x, out) -> None:
        np.subtract(rhs, A @ x, out=out)

    def norm(self, v):
        return np.linalg.norm(v)

    def inner_product(self, u, v):
        return np.vdot(u, v)

    def axpby(self, a, x, b, y) -> None:
        if b:
            if b != 1:
                y *= b
            if a == 1:
                y += x
            else:
                y += a * x
        else:
            np.multiply(x, a, out=y)

    def spmv(self, a, A, x, b, y) -> None:
        t = A @ x
        if b:
            if b != 1:
                y *= b
            if a != 1:
                t *= a
            y += t
        else:
            if a != 1:
                t *= a
            y[:] = t

    def copy(self, src, dst) -> None:
        np.copyto(dst, src)

    def clear(self, v) -> None:
        v.fill(0)

    # ------------------------------------------------------------------
    # Preconditioner setup primitives
    # ------------------------------------------------------------------

    def diagonal(self, A) -> np.ndarray:
        return np.asarray(A.diagonal(), dtype=self.dtype).copy()

    def reciprocal(self, v) -> np.ndarray:
        eps = np.finfo(v.dtype).eps * 100
        return 1.0 / np.where(np.abs(v) < eps, np.ones_like(v), v)

    def vmul(self, a, x, y, b, z) -> None:
        t = x * y
        if b:
            if b != 1:
                z *= b
            if a != 1:
                t *= a
            z += t
        else:
            if a != 1:
                t *= a
            z[:] = t

    def __repr__(self) -> str:
        return f"ScipyBackend(dtype={self.dtype})"
