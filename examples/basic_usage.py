#!/usr/bin/env python
"""
Basic Usage Examples for torch-krylov

This example demonstrates:
1. The CG engine with a preconditioner on an explicit backend
2. The bundled Solver from make_solver
3. The differentiable functional API
"""

import torch
from torch_krylov import (
    CG,
    SolverParams,
    get_backend,
    get_available_backends,
    get_preconditioner,
    make_solver,
    spsolve,
)
from torch_krylov.gallery import poisson2d


# =============================================================================
# 1. Engine
# =============================================================================

def example_1_engine(backend='pytorch'):
    """Solve a 2D Poisson problem with the CG engine and a Jacobi preconditioner."""
    val, row, col, shape = poisson2d(32)
    n = shape[0]

    bk = get_backend(backend)
    A = bk.create_matrix(val, row, col, shape)
    P = get_preconditioner(A, bk, 'jacobi')
    solve = CG(n, SolverParams(maxiter=1000, tol=1e-10), backend=bk)
    print(solve)

    rhs = bk.vector(torch.ones(n, dtype=torch.float64))
    x = bk.create_vector(n)
    iters, resid = solve(A, P, rhs, x)
    print(f"[{bk.name}] iterations: {iters}, residual: {resid:.2e}")

    # the preconditioner remembers its matrix
    x = bk.create_vector(n)
    iters, resid = solve(P, rhs, x)
    print(f"[{bk.name}] iterations: {iters}, residual: {resid:.2e} (top matrix)")


# =============================================================================
# 2. Bundled solver
# =============================================================================

def example_2_make_solver():
    """Compare preconditioners through make_solver."""
    val, row, col, shape = poisson2d(32)
    n = shape[0]

    for precond in ['identity', 'jacobi', 'polynomial', 'amg']:
        solve = make_solver(val, row, col, shape, precond=precond,
                            solver_prm={'tol': 1e-10, 'maxiter': 1000})
        bk = solve.backend
        x = bk.create_vector(n)
        iters, resid = solve(bk.vector(torch.ones(n, dtype=torch.float64)), x)
        print(f"{precond:<12s} iterations: {iters:4d}  residual: {resid:.2e}")


# =============================================================================
# 3. Gradients
# =============================================================================

def example_3_gradient():
    """Backpropagate through the solve to the matrix values and right-hand side."""
    val, row, col, shape = poisson2d(16)
    n = shape[0]
    val = val.clone().requires_grad_(True)
    b = torch.ones(n, dtype=torch.float64, requires_grad=True)

    x = spsolve(val, row, col, shape, b, preconditioner='amg', tol=1e-12)
    loss = (x ** 2).sum()
    loss.backward()

    print(f"loss: {loss.item():.6f}")
    print(f"|d loss / d val|: {val.grad.norm():.6f}")
    print(f"|d loss / d b|:   {b.grad.norm():.6f}")


if __name__ == "__main__":
    print("=" * 60)
    print("1. ENGINE")
    print("=" * 60)
    for backend in get_available_backends():
        example_1_engine(backend)

    print("\n" + "=" * 60)
    print("2. BUNDLED SOLVER")
    print("=" * 60)
    example_2_make_solver()

    print("\n" + "=" * 60)
    print("3. GRADIENTS")
    print("=" * 60)
    example_3_gradient()

    print("\n" + "=" * 60)
    print("All examples completed!")
    print("=" * 60)
