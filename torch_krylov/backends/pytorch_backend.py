"""
PyTorch-native backend.

Vectors are 1-D tensors and matrices are ``CachedSparseMatrix`` objects holding
a CSR tensor built once at construction. Works on both CPU and CUDA devices.

All primitives are in-place where the contract says so, so the work vectors
owned by a solver are never reallocated between iterations. Scalars
(norms and inner products) are returned as 0-dim tensors on the device, so a
vanishing denominator inside a solver yields inf/nan as on every other backend.
"""

import torch
from torch import Tensor
from typing import Tuple, Union

from .base import Backend
from ..check import check_coo


class CachedSparseMatrix:
    """
    Cached sparse matrix for efficient repeated matvec operations.
    Avoids repeated COO -> CSR conversion.
    """
    def __init__(self, val: Tensor, row: Tensor, col: Tensor, shape: Tuple[int, int]):
        indices = torch.stack([row, col], dim=0)
        coo = torch.sparse_coo_tensor(indices, val, shape, device=val.device, dtype=val.dtype)
        coo = coo.coalesce()

        self.val = coo.values()
        self.row = coo.indices()[0]
        self.col = coo.indices()[1]
        self.shape = tuple(shape)
        self.device = val.device
        self.dtype = val.dtype
        self.n = shape[0]

        # Build CSR matrix once
        self._csr = coo.to_sparse_csr()

        # Cache structures
        self._diag = None

    @property
    def nnz(self) -> int:
        return self.val.shape[0]

    def matvec(self, x: Tensor) -> Tensor:
        """Sparse matrix-vector product y = A @ x"""
        return torch.mv(self._csr, x)

    @property
    def diagonal(self) -> Tensor:
        """Get diagonal elements (cached)"""
        if self._diag is None:
            n = min(self.shape)
            self._diag = torch.zeros(n, dtype=self.dtype, device=self.device)
            diag_mask = self.row == self.col
            self._diag.scatter_add_(0, self.row[diag_mask], self.val[diag_mask])
        return self._diag

    def to_dense(self) -> Tensor:
        return self._csr.to_dense()

    def __repr__(self) -> str:
        return (f"CachedSparseMatrix(shape={self.shape}, nnz={self.nnz}, "
                f"dtype={self.dtype}, device={self.device})")


class PyTorchBackend(Backend):
    """
    Backend built on torch tensors.

    Parameters
    ----------
    device : str or torch.device, optional
        Device for all vectors and matrices, by default 'cpu'
    dtype : torch.dtype, optional
        Value type, by default torch.float64
    """

    name = 'pytorch'

    def __init__(self,
                 device: Union[str, torch.device] = 'cpu',
                 dtype: torch.dtype = torch.float64):
        self.device = torch.device(device)
        self.dtype = dtype

    @property
    def value_type(self) -> torch.dtype:
        return self.dtype

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    def create_vector(self, n: int) -> Tensor:
        return torch.zeros(n, dtype=self.dtype, device=self.device)

    def create_matrix(self,
                      val: Tensor,
                      row: Tensor,
                      col: Tensor,
                      shape: Tuple[int, int]) -> CachedSparseMatrix:
        check_coo(val, row, col, shape)
        val = val.detach().to(dtype=self.dtype, device=self.device)
        row = row.to(dtype=torch.long, device=self.device)
        col = col.to(dtype=torch.long, device=self.device)
        return CachedSparseMatrix(val, row, col, shape)

    def vector(self, data) -> Tensor:
        if isinstance(data, Tensor):
            return data.detach().to(dtype=self.dtype, device=self.device).clone()
        return torch.tensor(data, dtype=self.dtype, device=self.device)

    def to_tensor(self, v: Tensor) -> Tensor:
        return v.clone()

    # ------------------------------------------------------------------
    # Engine primitives
    # ------------------------------------------------------------------

    def residual(self, rhs: Tensor, A: CachedSparseMatrix, x: Tensor, out: Tensor) -> None:
        torch.sub(rhs, A.matvec(x), out=out)

    def norm(self, v: Tensor) -> Tensor:
        return torch.linalg.vector_norm(v)

    def inner_product(self, u: Tensor, v: Tensor) -> Tensor:
        return torch.vdot(u, v)

    def axpby(self, a, x: Tensor, b, y: Tensor) -> None:
        # a and b may be 0-dim tensors produced by norm / inner_product
        if b:
            if b != 1:
                y.mul_(b)
            y.add_(x * a)
        else:
            torch.mul(x, a, out=y)

    def spmv(self, a, A: CachedSparseMatrix, x: Tensor, b, y: Tensor) -> None:
        t = A.matvec(x)
        if b:
            if b != 1:
                y.mul_(b)
            y.add_(t, alpha=a)
        else:
            if a != 1:
                t.mul_(a)
            y.copy_(t)

    def copy(self, src: Tensor, dst: Tensor) -> None:
        dst.copy_(src)

    def clear(self, v: Tensor) -> None:
        v.zero_()

    # ------------------------------------------------------------------
    # Preconditioner setup primitives
    # ------------------------------------------------------------------

    def diagonal(self, A: CachedSparseMatrix) -> Tensor:
        return A.diagonal.clone()

    def reciprocal(self, v: Tensor) -> Tensor:
        eps = torch.finfo(v.dtype).eps * 100
        return 1.0 / torch.where(torch.abs(v) < eps, torch.ones_like(v), v)

    def vmul(self, a, x: Tensor, y: Tensor, b, z: Tensor) -> None:
        t = x * y
        if b:
            if b != 1:
                z.mul_(b)
            z.add_(t, alpha=a)
        else:
            if a != 1:
                t.mul_(a)
            z.copy_(t)

    def __repr__(self) -> str:
        return f"PyTorchBackend(device={self.device}, dtype={self.dtype})"
