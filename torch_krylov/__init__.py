"""
torch-krylov: backend-agnostic preconditioned Krylov solvers for PyTorch

Solves large sparse symmetric positive definite systems A x = b with the
Preconditioned Conjugate Gradient method. The solver is written against a
small backend operation contract, so the same algorithm runs unmodified on
every backend, and against a preconditioner contract, so any preconditioner
(Jacobi, polynomial, multigrid, ...) can be plugged in.

Backends
--------
- pytorch: torch tensors and cached CSR matrices (CPU & CUDA)
- scipy: numpy arrays and scipy.sparse CSR matrices (CPU)

Preconditioners
---------------
- identity, jacobi, polynomial (Neumann series), amg (two-level aggregation)

Usage
-----
>>> import torch
>>> from torch_krylov import CG, SolverParams, PyTorchBackend, JacobiPreconditioner
>>>
>>> val = torch.tensor([4.0, -1.0, -1.0, 4.0, -1.0, -1.0, 4.0], dtype=torch.float64)
>>> row = torch.tensor([0, 0, 1, 1, 1, 2, 2])
>>> col = torch.tensor([0, 1, 0, 1, 2, 1, 2])
>>>
>>> # Method 1: engine + preconditioner, reusable across solves
>>> bk = PyTorchBackend()
>>> A = bk.create_matrix(val, row, col, (3, 3))
>>> P = JacobiPreconditioner(A, bk)
>>> solve = CG(3, SolverParams(maxiter=100, tol=1e-10), backend=bk)
>>> rhs = bk.vector([1.0, 2.0, 3.0])
>>> x = bk.create_vector(3)
>>> iters, resid = solve(P, rhs, x)   # same as solve(A, P, rhs, x)
>>>
>>> # Method 2: bundled solver
>>> solver = make_solver(val, row, col, (3, 3), precond='amg')
>>> iters, resid = solver(rhs, x)
>>>
>>> # Method 3: differentiable functional API
>>> x = spsolve(val, row, col, (3, 3), torch.tensor([1.0, 2.0, 3.0], dtype=torch.float64))
"""

from .cg import (
    CG,
    SolverParams,
    SolveResult,
    BreakdownWarning,
)

from .preconditioners import (
    Preconditioner,
    IdentityPreconditioner,
    JacobiPreconditioner,
    PolynomialPreconditioner,
    AMGPreconditioner,
    PRECONDITIONERS,
    DEFAULT_PRECONDITIONER,
    get_preconditioner,
)

from .backends import (
    Backend,
    PyTorchBackend,
    ScipyBackend,
    CachedSparseMatrix,
    get_backend,
    select_backend,
    get_available_backends,
    is_scipy_available,
    BackendType,
)

from .make_solver import (
    Solver,
    make_solver,
)

from .linear_solve import (
    pcg,
    spsolve,
)

from .check import (
    ShapeException,
    ConfigurationError,
)

__version__ = "0.1.0"

__all__ = [
    # Engine
    "CG",
    "SolverParams",
    "SolveResult",
    "BreakdownWarning",
    # Preconditioners
    "Preconditioner",
    "IdentityPreconditioner",
    "JacobiPreconditioner",
    "PolynomialPreconditioner",
    "AMGPreconditioner",
    "PRECONDITIONERS",
    "DEFAULT_PRECONDITIONER",
    "get_preconditioner",
    # Backends
    "Backend",
    "PyTorchBackend",
    "ScipyBackend",
    "CachedSparseMatrix",
    "get_backend",
    "select_backend",
    "get_available_backends",
    "is_scipy_available",
    "BackendType",
    # Bundled solver
    "Solver",
    "make_solver",
    # Functional API
    "pcg",
    "spsolve",
    # Errors
    "ShapeException",
    "ConfigurationError",
    # Version
    "__version__",
]
