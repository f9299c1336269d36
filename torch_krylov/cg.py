"""
Preconditioned Conjugate Gradient solver.

The solver is written only in terms of the backend operation contract, so the
same code runs on every backend. Work vectors are allocated once per solver
instance and reused across ``solve`` calls, which makes the solver cheap to
call repeatedly, e.g. once per time step with a slowly changing matrix and a
preconditioner built for the first one.

A single solver instance supports one ``solve`` at a time; independent
instances may run concurrently.
"""

import numbers
import warnings
from dataclasses import dataclass, fields
from typing import Any, Mapping, NamedTuple, Optional, Union

from .backends import Backend, get_backend
from .check import ConfigurationError


class BreakdownWarning(RuntimeWarning):
    """Issued when a CG denominator vanishes (diagnostics only)"""


class SolveResult(NamedTuple):
    """Result of iterative solve."""
    num_iters: int
    residual: float


@dataclass(frozen=True)
class SolverParams:
    """
    Solver parameters.

    Parameters
    ----------
    maxiter : int
        Maximum number of iterations, by default 100
    tol : float
        Target relative residual |rhs - A x| / |rhs|, by default 1e-8
    detect_breakdown : bool
        Warn with BreakdownWarning when rho or <q, p> vanishes. Results are
        not affected.
    """
    maxiter: int = 100
    tol: float = 1e-8
    detect_breakdown: bool = False

    def __post_init__(self):
        if isinstance(self.maxiter, bool) or not isinstance(self.maxiter, numbers.Integral):
            raise ConfigurationError(f"maxiter must be an integer, got {self.maxiter!r}")
        if self.maxiter < 1:
            raise ConfigurationError(f"maxiter must be positive, got {self.maxiter}")
        if isinstance(self.tol, bool) or not isinstance(self.tol, numbers.Real):
            raise ConfigurationError(f"tol must be a real number, got {self.tol!r}")
        if not self.tol >= 0:
            raise ConfigurationError(f"tol must be non-negative, got {self.tol}")

    @classmethod
    def from_dict(cls, prm: Mapping[str, Any]) -> "SolverParams":
        known = {f.name for f in fields(cls)}
        unknown = set(prm) - known
        if unknown:
            raise ConfigurationError(f"Unknown solver parameters: {sorted(unknown)}")
        return cls(**prm)


class CG:
    """
    Conjugate Gradients iterative solver.

    Parameters
    ----------
    n : int
        System size
    prm : SolverParams or dict, optional
        Solver parameters
    backend : str or Backend, optional
        Backend used to allocate the work vectors, by default 'pytorch'
    backend_prm : dict, optional
        Backend construction parameters (device, dtype) when `backend` is a name

    Examples
    --------
    >>> bk = PyTorchBackend()
    >>> A = bk.create_matrix(val, row, col, (n, n))
    >>> P = JacobiPreconditioner(A, bk)
    >>> solve = CG(n, SolverParams(tol=1e-10), backend=bk)
    >>> iters, resid = solve(A, P, rhs, x)
    """

    def __init__(self,
                 n: int,
                 prm: Optional[Union[SolverParams, Mapping[str, Any]]] = None,
                 backend: Union[str, Backend] = 'pytorch',
                 backend_prm: Optional[Mapping[str, Any]] = None):
        if prm is None:
            prm = SolverParams()
        elif not isinstance(prm, SolverParams):
            prm = SolverParams.from_dict(prm)

        self._prm = prm
        self._n = n
        self._backend = get_backend(backend, **(backend_prm or {}))

        self.r = self._backend.create_vector(n)
        self.s = self._backend.create_vector(n)
        self.p = self._backend.create_vector(n)
        self.q = self._backend.create_vector(n)

    @property
    def n(self) -> int:
        return self._n

    @property
    def prm(self) -> SolverParams:
        return self._prm

    @property
    def backend(self) -> Backend:
        return self._backend

    def solve(self, *args) -> SolveResult:
        """
        Solve the linear system.

        ``solve(A, P, rhs, x)`` solves A x = rhs preconditioned by P.
        ``solve(P, rhs, x)`` solves against ``P.top_matrix()``.

        The system matrix may differ from the matrix the preconditioner was
        built for, so a preconditioner built for one time step can be reused
        for several subsequent ones.

        Parameters
        ----------
        A : backend matrix
            System matrix, of size n. Should be symmetric positive definite.
        P : Preconditioner
            Any object with ``apply(rhs, x)`` and ``top_matrix()``
        rhs : backend vector
            Right-hand side, read-only
        x : backend vector
            Initial guess on entry, solution on exit

        Returns
        -------
        SolveResult
            (num_iters, residual). Not converging within maxiter is not an
            error: check the returned residual against tol. A vanishing
            rho or <q, p> is not guarded either, the residual is then nan.
        """
        if len(args) == 4:
            return self._solve(*args)
        if len(args) == 3:
            P, rhs, x = args
            return self._solve(P.top_matrix(), P, rhs, x)
        raise TypeError(f"solve() takes (A, P, rhs, x) or (P, rhs, x), got {len(args)} arguments")

    __call__ = solve

    def _solve(self, A, P, rhs, x) -> SolveResult:
        bk = self._backend
        prm = self._prm
        r, s, p, q = self.r, self.s, self.p, self.q

        bk.residual(rhs, A, x, r)

        rho1 = rho2 = 0
        norm_of_rhs = bk.norm(rhs)

        if norm_of_rhs == 0:
            bk.clear(x)
            return SolveResult(0, 0.0)

        iters = 0
        res = bk.norm(r) / norm_of_rhs

        while res > prm.tol and iters < prm.maxiter:
            P.apply(r, s)

            rho2 = rho1
            rho1 = bk.inner_product(r, s)

            if iters:
                if prm.detect_breakdown and rho2 == 0:
                    warnings.warn(f"CG breakdown at iteration {iters}: rho vanished",
                                  BreakdownWarning)
                bk.axpby(1, s, rho1 / rho2, p)
            else:
                bk.copy(s, p)

            bk.spmv(1, A, p, 0, q)

            qp = bk.inner_product(q, p)
            if prm.detect_breakdown and qp == 0:
                warnings.warn(f"CG breakdown at iteration {iters}: <q, p> vanished",
                              BreakdownWarning)
            alpha = rho1 / qp

            bk.axpby(alpha, p, 1, x)
            bk.axpby(-alpha, q, 1, r)

            iters += 1
            res = bk.norm(r) / norm_of_rhs

        return SolveResult(iters, float(res))

    def __repr__(self) -> str:
        return (f"CG(n={self._n}, maxiter={self._prm.maxiter}, tol={self._prm.tol}, "
                f"backend={self._backend!r})")
