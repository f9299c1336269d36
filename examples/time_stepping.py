#!/usr/bin/env python
"""
Time Stepping with a Reused Preconditioner

Implicit time stepping of the heat equation on a 2D grid solves
(M + dt K) u_{k+1} = M u_k at every step. When dt changes slowly the
matrix changes slowly too, so the preconditioner is built once and
only the CG engine is called with the new matrix.

This example demonstrates:
1. Building a Solver for the first step
2. Reusing its preconditioner for later matrices
3. Comparing preconditioners by iteration count
"""

import time
import torch
from torch_krylov import make_solver, get_backend
from torch_krylov.gallery import poisson2d


def heat_matrix(val, row, col, dt):
    """Values of I + dt K for the 5-point Laplacian K."""
    return (row == col).to(val.dtype) + dt * val


# =============================================================================
# 1. One preconditioner, many steps
# =============================================================================

def example_1_reuse(nx=64, steps=10, precond='amg', backend='auto'):
    val, row, col, shape = poisson2d(nx)
    n = shape[0]
    bk = get_backend(backend)

    dt = 0.5
    solve = make_solver(heat_matrix(val, row, col, dt), row, col, shape,
                        precond=precond, solver_prm={'tol': 1e-8, 'maxiter': 500},
                        backend=bk)
    print(solve)

    # hot square in the middle of the domain
    u0 = torch.zeros(nx, nx, dtype=torch.float64)
    u0[nx // 4: 3 * nx // 4, nx // 4: 3 * nx // 4] = 1.0
    u = bk.vector(u0.flatten())
    x = bk.create_vector(n)

    total_iters = 0
    t0 = time.perf_counter()
    for step in range(steps):
        dt *= 1.1
        A = bk.create_matrix(heat_matrix(val, row, col, dt), row, col, shape)
        iters, resid = solve(A, u, x)
        bk.copy(x, u)
        total_iters += iters
        print(f"step {step:2d}  dt={dt:.3f}  iters={iters:3d}  residual={resid:.2e}")
    elapsed = time.perf_counter() - t0

    print(f"total iterations: {total_iters}, time: {elapsed:.3f}s")
    return total_iters


# =============================================================================
# 2. Preconditioner comparison
# =============================================================================

def example_2_compare(nx=64, steps=10):
    results = {}
    for precond in ['identity', 'jacobi', 'polynomial', 'amg']:
        print(f"\n--- {precond} ---")
        results[precond] = example_1_reuse(nx, steps, precond=precond)

    print("\nTotal CG iterations:")
    for precond, iters in results.items():
        print(f"  {precond:<12s} {iters:5d}")


if __name__ == "__main__":
    print("=" * 60)
    print("1. REUSED PRECONDITIONER")
    print("=" * 60)
    example_1_reuse()

    print("\n" + "=" * 60)
    print("2. PRECONDITIONER COMPARISON")
    print("=" * 60)
    example_2_compare()
