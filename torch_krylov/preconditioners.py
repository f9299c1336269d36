"""
Preconditioners for the Krylov solvers.

A preconditioner M approximates A^{-1}. It is built once for a system matrix
and then applied to residual vectors inside the iteration loop:

    P.apply(r, s)     # s ~= M^{-1} r
    P.top_matrix()    # the matrix P was built for

All preconditioners here are written in terms of backend primitives only, so
each of them works on every backend. Temporaries are allocated per ``apply``
call: a single preconditioner can be shared between solvers running
concurrently.

Available preconditioners (roughly ordered by effectiveness for SPD):
- 'amg': two-level aggregation multigrid with damped Jacobi smoothing
- 'polynomial': truncated Neumann series around the diagonal
- 'jacobi': damped diagonal (Jacobi) scaling
- 'identity' / 'none': no preconditioning
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Type

import torch

from .backends.base import Backend
from .check import ConfigurationError


class Preconditioner(ABC):
    """
    Abstract base class for preconditioners.

    Parameters
    ----------
    A : backend matrix
        System matrix the preconditioner is built for
    backend : Backend
        Backend that owns A
    """

    def __init__(self, A: Any, backend: Backend):
        self.A = A
        self.backend = backend
        self.n = A.shape[0]

    @abstractmethod
    def apply(self, rhs, x) -> None:
        """Write an approximate solution of M x = rhs into x"""

    def __call__(self, rhs, x) -> None:
        self.apply(rhs, x)

    def top_matrix(self) -> Any:
        """System matrix the preconditioner was constructed for"""
        return self.A

    def __repr__(self) -> str:
        return (f"{type(self).__name__}(unknowns={self.n}, "
                f"nonzeros={self.A.nnz}, backend={self.backend!r})")


class IdentityPreconditioner(Preconditioner):
    """M = I. Reduces PCG to plain CG."""

    def apply(self, rhs, x) -> None:
        self.backend.copy(rhs, x)


class JacobiPreconditioner(Preconditioner):
    """
    Damped Jacobi relaxation used as a preconditioner: M^{-1} = omega * diag(A)^{-1}.

    Zero diagonal entries are treated as ones.
    """

    def __init__(self, A: Any, backend: Backend, omega: float = 1.0):
        super().__init__(A, backend)
        if not omega > 0:
            raise ConfigurationError(f"omega must be positive, got {omega}")
        self.omega = omega
        self.D_inv = backend.reciprocal(backend.diagonal(A))

    def apply(self, rhs, x) -> None:
        self.backend.vmul(self.omega, self.D_inv, rhs, 0, x)


class PolynomialPreconditioner(Preconditioner):
    """
    Neumann series polynomial preconditioner.

    Uses M^{-1} = sum_{k=0}^{degree} (I - D^{-1}A)^k D^{-1}, which is symmetric
    whenever A is. Positive definite for SPD A with the spectrum of D^{-1}A
    inside (0, 2), e.g. diagonally dominant matrices.

    Cost per apply: O(degree * nnz)
    """

    def __init__(self, A: Any, backend: Backend, degree: int = 3):
        super().__init__(A, backend)
        if degree < 0:
            raise ConfigurationError(f"degree must be non-negative, got {degree}")
        self.degree = degree
        self.D_inv = backend.reciprocal(backend.diagonal(A))

    def apply(self, rhs, x) -> None:
        bk = self.backend
        y = bk.create_vector(self.n)
        t = bk.create_vector(self.n)

        # k=0 term
        bk.vmul(1, self.D_inv, rhs, 0, y)
        bk.copy(y, x)

        for _ in range(self.degree):
            # y = (I - D^{-1}A) @ y
            bk.spmv(1, self.A, y, 0, t)
            bk.vmul(-1, self.D_inv, t, 1, y)
            bk.axpby(1, y, 1, x)

    def __repr__(self) -> str:
        return (f"PolynomialPreconditioner(unknowns={self.n}, nonzeros={self.A.nnz}, "
                f"degree={self.degree}, backend={self.backend!r})")


class AMGPreconditioner(Preconditioner):
    """
    Lightweight 2-level Algebraic Multigrid (AMG) preconditioner.

    - Aggregation-based coarsening: `stride` consecutive unknowns per aggregate
    - Damped Jacobi pre- and post-smoothing (same number of sweeps, so the
      V-cycle is symmetric)
    - Diagonal coarse solve using the aggregated fine diagonal

    Cost per apply: O((2 * num_smooth + 1) * nnz)
    """

    def __init__(self,
                 A: Any,
                 backend: Backend,
                 stride: int = 4,
                 num_smooth: int = 1,
                 omega: float = 0.8):
        super().__init__(A, backend)
        if stride < 1:
            raise ConfigurationError(f"stride must be at least 1, got {stride}")
        if num_smooth < 1:
            raise ConfigurationError(f"num_smooth must be at least 1, got {num_smooth}")
        if not omega > 0:
            raise ConfigurationError(f"omega must be positive, got {omega}")

        self.stride = stride
        self.num_smooth = num_smooth
        self.omega = omega

        n = self.n
        self.n_coarse = (n + stride - 1) // stride

        # Piecewise-constant prolongation and its transpose
        fine = torch.arange(n)
        coarse = fine // stride
        ones = torch.ones(n, dtype=torch.float64)
        self.P = backend.create_matrix(ones, fine, coarse, (n, self.n_coarse))
        self.R = backend.create_matrix(ones, coarse, fine, (self.n_coarse, n))

        diag = backend.diagonal(A)
        self.D_inv = backend.reciprocal(diag)

        # Coarse diagonal (aggregated)
        D_coarse = backend.create_vector(self.n_coarse)
        backend.spmv(1, self.R, diag, 0, D_coarse)
        self.D_coarse_inv = backend.reciprocal(D_coarse)

    def _smooth(self, rhs, x, t) -> None:
        bk = self.backend
        bk.residual(rhs, self.A, x, t)
        bk.vmul(self.omega, self.D_inv, t, 1, x)

    def apply(self, rhs, x) -> None:
        bk = self.backend
        t = bk.create_vector(self.n)
        res_coarse = bk.create_vector(self.n_coarse)
        e_coarse = bk.create_vector(self.n_coarse)

        # Pre-smooth starting from zero
        bk.vmul(self.omega, self.D_inv, rhs, 0, x)
        for _ in range(self.num_smooth - 1):
            self._smooth(rhs, x, t)

        # Restrict the residual
        bk.residual(rhs, self.A, x, t)
        bk.spmv(1, self.R, t, 0, res_coarse)

        # Coarse solve (diagonal)
        bk.vmul(1, self.D_coarse_inv, res_coarse, 0, e_coarse)

        # Prolong and correct
        bk.spmv(1, self.P, e_coarse, 1, x)

        # Post-smooth
        for _ in range(self.num_smooth):
            self._smooth(rhs, x, t)

    def __repr__(self) -> str:
        return (f"AMGPreconditioner(levels=2, unknowns={self.n}/{self.n_coarse}, "
                f"nonzeros={self.A.nnz}, num_smooth={self.num_smooth}, "
                f"omega={self.omega}, backend={self.backend!r})")


PRECONDITIONERS: Dict[str, Type[Preconditioner]] = {
    'identity': IdentityPreconditioner,
    'none': IdentityPreconditioner,
    'jacobi': JacobiPreconditioner,
    'polynomial': PolynomialPreconditioner,
    'amg': AMGPreconditioner,
}

DEFAULT_PRECONDITIONER = 'jacobi'


def get_preconditioner(A: Any,
                       backend: Backend,
                       name: str = DEFAULT_PRECONDITIONER,
                       **prm) -> Preconditioner:
    """
    Build a preconditioner by name.

    Parameters
    ----------
    A : backend matrix
        System matrix
    backend : Backend
        Backend that owns A
    name : str
        'identity', 'none', 'jacobi', 'polynomial' or 'amg'
    **prm
        Preconditioner parameters (omega, degree, stride, num_smooth)
    """
    if name not in PRECONDITIONERS:
        raise ValueError(f"Unknown preconditioner: {name}. "
                         f"Available: {', '.join(PRECONDITIONERS)}")
    return PRECONDITIONERS[name](A, backend, **prm)
