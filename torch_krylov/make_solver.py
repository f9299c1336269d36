"""
Convenience class that bundles a system matrix, a preconditioner built for it
and a CG solver of the matching size into one callable.

>>> solve = make_solver(val, row, col, (n, n), precond='amg', solver_prm={'tol': 1e-10})
>>> x = solve.backend.create_vector(n)
>>> iters, resid = solve(rhs, x)          # against the setup matrix
>>> iters, resid = solve(A_next, rhs, x)  # new matrix, same preconditioner
"""

from typing import Any, Mapping, Optional, Tuple, Union

import torch

from .backends import Backend, get_backend
from .cg import CG, SolveResult, SolverParams
from .check import check_square
from .preconditioners import DEFAULT_PRECONDITIONER, Preconditioner, get_preconditioner


class Solver:
    """
    Preconditioned CG solver bound to a system matrix.

    Parameters
    ----------
    A : backend matrix
        System matrix the preconditioner is built for
    backend : Backend
        Backend that owns A
    precond : str
        Preconditioner name, see ``torch_krylov.preconditioners``
    precond_prm : dict, optional
        Preconditioner parameters
    solver_prm : SolverParams or dict, optional
        CG parameters
    """

    def __init__(self,
                 A: Any,
                 backend: Backend,
                 precond: str = DEFAULT_PRECONDITIONER,
                 precond_prm: Optional[Mapping[str, Any]] = None,
                 solver_prm: Optional[Union[SolverParams, Mapping[str, Any]]] = None):
        check_square(A.shape)
        self.backend = backend
        self.n = A.shape[0]
        self.P = get_preconditioner(A, backend, precond, **(precond_prm or {}))
        self.S = CG(self.n, solver_prm, backend=backend)

    @property
    def prm(self) -> SolverParams:
        return self.S.prm

    def precond(self) -> Preconditioner:
        return self.P

    def system_matrix(self) -> Any:
        return self.P.top_matrix()

    def __call__(self, *args) -> SolveResult:
        """
        ``solver(rhs, x)`` solves against the setup matrix,
        ``solver(A, rhs, x)`` solves against A with the same preconditioner.
        """
        if len(args) == 2:
            rhs, x = args
            return self.S(self.P, rhs, x)
        if len(args) == 3:
            A, rhs, x = args
            return self.S(A, self.P, rhs, x)
        raise TypeError(f"Solver takes (rhs, x) or (A, rhs, x), got {len(args)} arguments")

    def __repr__(self) -> str:
        return f"Solver(\n  solver={self.S!r},\n  precond={self.P!r}\n)"


def make_solver(val: torch.Tensor,
                row: torch.Tensor,
                col: torch.Tensor,
                shape: Tuple[int, int],
                precond: str = DEFAULT_PRECONDITIONER,
                precond_prm: Optional[Mapping[str, Any]] = None,
                solver_prm: Optional[Union[SolverParams, Mapping[str, Any]]] = None,
                backend: Union[str, Backend] = 'pytorch',
                backend_prm: Optional[Mapping[str, Any]] = None) -> Solver:
    """
    Build a Solver from a COO matrix.

    Parameters
    ----------
    val, row, col : torch.Tensor
        [nnz] COO format sparse matrix
    shape : Tuple[int, int]
        (n, n)
    precond : str, optional
        'identity', 'jacobi', 'polynomial' or 'amg', by default 'jacobi'
    precond_prm : dict, optional
        Preconditioner parameters
    solver_prm : SolverParams or dict, optional
        maxiter / tol / detect_breakdown
    backend : str or Backend, optional
        by default 'pytorch'
    backend_prm : dict, optional
        device / dtype for the backend; dtype defaults to val.dtype

    Returns
    -------
    Solver
    """
    backend_prm = dict(backend_prm or {})
    backend_prm.setdefault('dtype', val.dtype)
    bk = get_backend(backend, **backend_prm)
    A = bk.create_matrix(val, row, col, shape)
    return Solver(A, bk, precond, precond_prm, solver_prm)
