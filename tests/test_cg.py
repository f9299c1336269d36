"""
Tests for the Preconditioned Conjugate Gradient engine.

Tests cover:
- Concrete small systems and the zero right-hand side fast path
- Iteration bound and convergence-or-exhaustion termination
- Identity preconditioner against a textbook CG reference
- Finite termination on small SPD systems
- Reuse of one engine across solves
- Parameter validation and breakdown diagnostics
"""

import dataclasses
import math
import warnings
import pytest
import torch
import numpy as np
from itertools import product
import sys

sys.path.insert(0, "..")
from torch_krylov import (
    CG,
    SolverParams,
    SolveResult,
    BreakdownWarning,
    ConfigurationError,
    IdentityPreconditioner,
    JacobiPreconditioner,
    PyTorchBackend,
    ScipyBackend,
    is_scipy_available,
)
from torch_krylov.gallery import poisson1d
from torch_krylov.random import spd_coo


BACKENDS = ['pytorch'] + (['scipy'] if is_scipy_available() else [])
DEVICES = ['cpu'] + (['cuda'] if torch.cuda.is_available() else [])


def make_backend(name: str, device: str = 'cpu'):
    if name == 'scipy':
        return ScipyBackend()
    return PyTorchBackend(device=device)


def create_diag_coo(d, dtype=torch.float64):
    """Diagonal matrix in COO format."""
    d = torch.as_tensor(d, dtype=dtype)
    idx = torch.arange(d.shape[0])
    return d, idx, idx.clone(), (d.shape[0], d.shape[0])


def create_spd_system(n: int, seed: int = 0):
    """Random SPD matrix with a known solution."""
    g = torch.Generator().manual_seed(seed)
    val, row, col, shape = spd_coo(n, density=0.3, generator=g)
    x_true = torch.randn(n, dtype=torch.float64, generator=g)
    A_dense = torch.zeros(n, n, dtype=torch.float64)
    A_dense.index_put_((row, col), val, accumulate=True)
    b = A_dense @ x_true
    return (val, row, col, shape), A_dense, b, x_true


def as_tensor(bk, v) -> torch.Tensor:
    return bk.to_tensor(v).cpu()


# ============================================================================
# Concrete scenarios
# ============================================================================

@pytest.mark.parametrize('backend', BACKENDS)
def test_diagonal_system_one_iteration(backend):
    """A = diag(2,2,2), rhs = [2,2,2] converges in one iteration to [1,1,1]."""
    bk = make_backend(backend)
    A = bk.create_matrix(*create_diag_coo([2.0, 2.0, 2.0]))
    P = IdentityPreconditioner(A, bk)
    solve = CG(3, SolverParams(maxiter=10, tol=1e-8), backend=bk)

    rhs = bk.vector([2.0, 2.0, 2.0])
    x = bk.create_vector(3)
    iters, resid = solve(A, P, rhs, x)

    assert iters == 1
    assert resid < 1e-8
    torch.testing.assert_close(as_tensor(bk, x), torch.ones(3, dtype=torch.float64))


@pytest.mark.parametrize('backend', BACKENDS)
def test_zero_rhs(backend):
    """A zero right-hand side returns (0, 0) and zeroes x whatever its initial value."""
    n = 16
    bk = make_backend(backend)
    A = bk.create_matrix(*poisson1d(n))
    P = JacobiPreconditioner(A, bk)
    solve = CG(n, backend=bk)

    rhs = bk.create_vector(n)
    x = bk.vector(torch.randn(n, dtype=torch.float64))
    result = solve(A, P, rhs, x)

    assert result == (0, 0)
    assert result.num_iters == 0
    assert result.residual == 0
    assert torch.count_nonzero(as_tensor(bk, x)) == 0


@pytest.mark.parametrize(['backend', 'device'], product(['pytorch'], DEVICES))
def test_pytorch_devices(backend, device):
    n = 32
    bk = make_backend(backend, device)
    (val, row, col, shape), A_dense, b, x_true = create_spd_system(n)
    A = bk.create_matrix(val, row, col, shape)
    P = JacobiPreconditioner(A, bk)
    solve = CG(n, SolverParams(maxiter=n, tol=1e-10), backend=bk)

    x = bk.create_vector(n)
    iters, resid = solve(A, P, bk.vector(b), x)

    assert resid <= 1e-10
    assert x.device.type == device
    torch.testing.assert_close(as_tensor(bk, x), x_true, rtol=1e-8, atol=1e-8)


# ============================================================================
# Termination
# ============================================================================

@pytest.mark.parametrize(['backend', 'maxiter'], product(BACKENDS, [1, 3, 7]))
def test_iteration_bound(backend, maxiter):
    """With tol = 0 the loop runs exactly maxiter iterations."""
    n = 64
    bk = make_backend(backend)
    A = bk.create_matrix(*poisson1d(n))
    P = IdentityPreconditioner(A, bk)
    solve = CG(n, SolverParams(maxiter=maxiter, tol=0.0), backend=bk)

    rhs = bk.vector(torch.ones(n, dtype=torch.float64))
    x = bk.create_vector(n)
    iters, resid = solve(A, P, rhs, x)

    assert iters == maxiter
    assert resid > 0


@pytest.mark.parametrize(['backend', 'tol', 'maxiter'],
                         product(BACKENDS, [1e-2, 1e-6, 1e-12], [5, 20, 200]))
def test_convergence_or_exhaustion(backend, tol, maxiter):
    n = 64
    bk = make_backend(backend)
    A = bk.create_matrix(*poisson1d(n))
    P = JacobiPreconditioner(A, bk)
    solve = CG(n, SolverParams(maxiter=maxiter, tol=tol), backend=bk)

    rhs = bk.vector(torch.linspace(-1, 1, n, dtype=torch.float64))
    x = bk.create_vector(n)
    iters, resid = solve(A, P, rhs, x)

    assert iters <= maxiter
    assert resid <= tol or iters == maxiter
    if iters < maxiter:
        assert resid <= tol


@pytest.mark.parametrize('backend', BACKENDS)
def test_non_convergence_is_silent(backend):
    """Running out of iterations is reported through the result, not raised or warned."""
    n = 64
    bk = make_backend(backend)
    A = bk.create_matrix(*poisson1d(n))
    P = IdentityPreconditioner(A, bk)
    solve = CG(n, SolverParams(maxiter=2, tol=1e-12), backend=bk)

    x = bk.create_vector(n)
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        iters, resid = solve(A, P, bk.vector(torch.ones(n, dtype=torch.float64)), x)

    assert iters == 2
    assert resid > 1e-12


@pytest.mark.parametrize('backend', BACKENDS)
def test_exact_initial_guess(backend):
    """An initial guess that already solves the system needs no iterations."""
    n = 32
    bk = make_backend(backend)
    (val, row, col, shape), A_dense, b, x_true = create_spd_system(n)
    A = bk.create_matrix(val, row, col, shape)
    P = JacobiPreconditioner(A, bk)
    solve = CG(n, backend=bk)

    x = bk.vector(x_true)
    iters, resid = solve(A, P, bk.vector(b), x)

    assert iters == 0
    assert resid <= 1e-8


# ============================================================================
# Reference behaviour
# ============================================================================

def textbook_cg_numpy(A, b, k):
    """Unpreconditioned CG from a zero initial guess, k iterations."""
    x = np.zeros_like(b)
    r = b - A @ x
    p = None
    rho_old = None
    for i in range(k):
        rho = np.vdot(r, r)
        if i == 0:
            p = r.copy()
        else:
            p = r + (rho / rho_old) * p
        q = A @ p
        alpha = rho / np.vdot(q, p)
        x = x + alpha * p
        r = r - alpha * q
        rho_old = rho
    return x


def textbook_cg_torch(A, b, k):
    x = torch.zeros_like(b)
    r = b - A @ x
    p = None
    rho_old = None
    for i in range(k):
        rho = torch.dot(r, r)
        if i == 0:
            p = r.clone()
        else:
            p = r + (rho / rho_old) * p
        q = A @ p
        alpha = rho / torch.dot(q, p)
        x = x + alpha * p
        r = r - alpha * q
        rho_old = rho
    return x


@pytest.mark.skipif(not is_scipy_available(), reason="SciPy is not installed")
@pytest.mark.parametrize('k', [1, 2, 5, 10])
def test_identity_matches_textbook_cg_bitwise(k):
    """On the numpy backend the iterates equal a textbook CG bit for bit."""
    n = 40
    bk = ScipyBackend()
    A = bk.create_matrix(*poisson1d(n))
    P = IdentityPreconditioner(A, bk)
    b = np.sin(np.linspace(0, 3, n))

    solve = CG(n, SolverParams(maxiter=k, tol=0.0), backend=bk)
    x = bk.create_vector(n)
    iters, _ = solve(A, P, b, x)

    assert iters == k
    np.testing.assert_array_equal(x, textbook_cg_numpy(A, b, k))


@pytest.mark.parametrize('k', [1, 2, 5, 10, 20])
def test_identity_matches_textbook_cg(k):
    n = 40
    bk = PyTorchBackend()
    val, row, col, shape = poisson1d(n)
    A = bk.create_matrix(val, row, col, shape)
    P = IdentityPreconditioner(A, bk)
    b = torch.sin(torch.linspace(0, 3, n, dtype=torch.float64))

    solve = CG(n, SolverParams(maxiter=k, tol=0.0), backend=bk)
    x = bk.create_vector(n)
    solve(A, P, b, x)

    torch.testing.assert_close(x, textbook_cg_torch(A.to_dense(), b, k), rtol=1e-8, atol=1e-10)


@pytest.mark.parametrize(['backend', 'n'], product(BACKENDS, [5, 20, 50]))
def test_finite_termination(backend, n):
    """Plain CG on an SPD system of size n reaches 1e-10 within n iterations."""
    bk = make_backend(backend)
    (val, row, col, shape), A_dense, b, x_true = create_spd_system(n, seed=n)
    A = bk.create_matrix(val, row, col, shape)
    P = IdentityPreconditioner(A, bk)
    solve = CG(n, SolverParams(maxiter=n, tol=1e-12), backend=bk)

    x = bk.create_vector(n)
    iters, resid = solve(A, P, bk.vector(b), x)

    assert iters <= n
    assert resid < 1e-10
    torch.testing.assert_close(as_tensor(bk, x), x_true, rtol=1e-8, atol=1e-8)


@pytest.mark.skipif(not is_scipy_available(), reason="SciPy is not installed")
def test_complex_hermitian():
    n = 24
    bk = ScipyBackend(dtype=np.complex128)
    rng = np.random.default_rng(0)
    B = rng.standard_normal((n, n)) + 1j * rng.standard_normal((n, n))
    A_dense = B @ B.conj().T + n * np.eye(n)
    row, col = np.nonzero(np.ones((n, n)))
    A = bk.create_matrix(torch.from_numpy(A_dense[row, col]),
                         torch.from_numpy(row), torch.from_numpy(col), (n, n))
    P = JacobiPreconditioner(A, bk)
    solve = CG(n, SolverParams(maxiter=4 * n, tol=1e-10), backend=bk)

    x_true = rng.standard_normal(n) + 1j * rng.standard_normal(n)
    rhs = A_dense @ x_true
    x = bk.create_vector(n)
    iters, resid = solve(A, P, rhs, x)

    assert resid <= 1e-10
    np.testing.assert_allclose(x, x_true, rtol=1e-7, atol=1e-7)


# ============================================================================
# Reuse
# ============================================================================

@pytest.mark.parametrize('backend', BACKENDS)
def test_reuse_across_solves(backend):
    """A reused engine gives the same answer as a fresh one."""
    n = 48
    bk = make_backend(backend)
    (val1, row1, col1, shape), _, b1, _ = create_spd_system(n, seed=1)
    A1 = bk.create_matrix(val1, row1, col1, shape)
    A2 = bk.create_matrix(*poisson1d(n))
    b2 = torch.cos(torch.linspace(0, 5, n, dtype=torch.float64))
    prm = SolverParams(maxiter=30, tol=1e-10)

    reused = CG(n, prm, backend=bk)
    x1 = bk.create_vector(n)
    reused(A1, JacobiPreconditioner(A1, bk), bk.vector(b1), x1)
    x2 = bk.create_vector(n)
    result_reused = reused(A2, JacobiPreconditioner(A2, bk), bk.vector(b2), x2)

    fresh = CG(n, prm, backend=bk)
    x3 = bk.create_vector(n)
    result_fresh = fresh(A2, JacobiPreconditioner(A2, bk), bk.vector(b2), x3)

    assert result_reused == result_fresh
    assert torch.equal(as_tensor(bk, x2), as_tensor(bk, x3))


@pytest.mark.parametrize('backend', BACKENDS)
def test_top_matrix_overload(backend):
    """solve(P, rhs, x) is solve(P.top_matrix(), P, rhs, x)."""
    n = 32
    bk = make_backend(backend)
    A = bk.create_matrix(*poisson1d(n))
    P = JacobiPreconditioner(A, bk)
    solve = CG(n, SolverParams(maxiter=50, tol=1e-10), backend=bk)
    rhs = bk.vector(torch.ones(n, dtype=torch.float64))

    x1 = bk.create_vector(n)
    r1 = solve(A, P, rhs, x1)
    x2 = bk.create_vector(n)
    r2 = solve.solve(P, rhs, x2)

    assert r1 == r2
    assert torch.equal(as_tensor(bk, x1), as_tensor(bk, x2))


def test_solve_arity():
    bk = PyTorchBackend()
    solve = CG(4, backend=bk)
    with pytest.raises(TypeError):
        solve(bk.create_vector(4), bk.create_vector(4))


def test_solve_does_not_modify_inputs():
    n = 16
    bk = PyTorchBackend()
    val, row, col, shape = poisson1d(n)
    A = bk.create_matrix(val, row, col, shape)
    A_before = A.to_dense().clone()
    P = JacobiPreconditioner(A, bk)
    D_inv_before = P.D_inv.clone()
    rhs = torch.rand(n, dtype=torch.float64)
    rhs_before = rhs.clone()

    CG(n, backend=bk)(A, P, rhs, bk.create_vector(n))

    assert torch.equal(A.to_dense(), A_before)
    assert torch.equal(P.D_inv, D_inv_before)
    assert torch.equal(rhs, rhs_before)


# ============================================================================
# Parameters
# ============================================================================

class TestSolverParams:
    """Parameter defaults and validation."""

    def test_defaults(self):
        prm = SolverParams()
        assert prm.maxiter == 100
        assert prm.tol == 1e-8
        assert prm.detect_breakdown is False

    @pytest.mark.parametrize('maxiter', [0, -1, 1.5, True, "10"])
    def test_invalid_maxiter(self, maxiter):
        with pytest.raises(ConfigurationError):
            SolverParams(maxiter=maxiter)

    @pytest.mark.parametrize('tol', [-1e-8, float('nan'), "1e-8", None, True])
    def test_invalid_tol(self, tol):
        with pytest.raises(ConfigurationError):
            SolverParams(tol=tol)

    def test_zero_tol_allowed(self):
        assert SolverParams(tol=0.0).tol == 0.0

    def test_configuration_error_is_value_error(self):
        with pytest.raises(ValueError):
            SolverParams(maxiter=0)

    def test_immutable(self):
        prm = SolverParams()
        with pytest.raises(dataclasses.FrozenInstanceError):
            prm.tol = 1e-3

    def test_from_dict(self):
        solve = CG(8, {'maxiter': 5, 'tol': 1e-3})
        assert solve.prm == SolverParams(maxiter=5, tol=1e-3)

    def test_from_dict_unknown_key(self):
        with pytest.raises(ConfigurationError):
            SolverParams.from_dict({'max_iter': 5})

    def test_from_dict_string_tol(self):
        with pytest.raises(ConfigurationError):
            CG(8, {'tol': '1e-8'})

    def test_engine_properties(self):
        solve = CG(8, backend='pytorch', backend_prm={'dtype': torch.float32})
        assert solve.n == 8
        assert solve.backend.value_type == torch.float32
        assert solve.r.shape == (8,)
        assert solve.r.dtype == torch.float32


# ============================================================================
# Breakdown
# ============================================================================

def create_zero_matrix(n: int):
    idx = torch.arange(n)
    return torch.zeros(n, dtype=torch.float64), idx, idx.clone(), (n, n)


@pytest.mark.skipif(not is_scipy_available(), reason="SciPy is not installed")
def test_breakdown_numpy_scalars_propagate_nan():
    n = 4
    bk = ScipyBackend()
    A = bk.create_matrix(*create_zero_matrix(n))
    P = IdentityPreconditioner(A, bk)
    solve = CG(n, SolverParams(maxiter=1, detect_breakdown=True), backend=bk)

    x = bk.create_vector(n)
    with np.errstate(all='ignore'):
        with pytest.warns(BreakdownWarning):
            iters, resid = solve(A, P, np.ones(n), x)

    assert iters == 1
    assert np.isnan(resid)


@pytest.mark.parametrize('backend', BACKENDS)
def test_breakdown_gives_nan_on_every_backend(backend):
    """A zero matrix makes <q, p> vanish: the result is nan, nothing is raised."""
    n = 4
    bk = make_backend(backend)
    A = bk.create_matrix(*create_zero_matrix(n))
    P = IdentityPreconditioner(A, bk)
    solve = CG(n, SolverParams(maxiter=1), backend=bk)

    x = bk.create_vector(n)
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", RuntimeWarning)
        iters, resid = solve(A, P, bk.vector(torch.ones(n, dtype=torch.float64)), x)

    assert iters == 1
    assert isinstance(resid, float)
    assert math.isnan(resid)


@pytest.mark.parametrize('backend', BACKENDS)
def test_detect_breakdown_does_not_change_results(backend):
    n = 32
    bk = make_backend(backend)
    A = bk.create_matrix(*poisson1d(n))
    P = JacobiPreconditioner(A, bk)
    rhs = bk.vector(torch.ones(n, dtype=torch.float64))

    results = []
    for detect in [False, True]:
        x = bk.create_vector(n)
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            results.append((CG(n, SolverParams(detect_breakdown=detect), backend=bk)(A, P, rhs, x),
                            as_tensor(bk, x)))

    assert results[0][0] == results[1][0]
    assert torch.equal(results[0][1], results[1][1])


def test_result_is_named_tuple():
    result = SolveResult(3, 1e-9)
    iters, resid = result
    assert (iters, resid) == (result.num_iters, result.residual)
