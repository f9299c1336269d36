import warnings
import torch
from torch.autograd import Function
from typing import Optional, Tuple, Union

from .backends import Backend, get_backend
from .cg import CG, SolveResult, SolverParams
from .preconditioners import get_preconditioner


def pcg(val:torch.Tensor,
        row:torch.Tensor,
        col:torch.Tensor,
        shape:Tuple[int,int],
        b:torch.Tensor,
        x0:Optional[torch.Tensor]=None,
        backend:Union[str, Backend]='auto',
        preconditioner:str='jacobi',
        tol:float=1e-8,
        maxiter:int=100)->Tuple[torch.Tensor, SolveResult]:
    """One-shot preconditioned CG solve on torch tensors, no gradient support

    Parameters
    ----------
    val : torch.Tensor
        [nnz]
    row : torch.Tensor
        [nnz]
    col : torch.Tensor
        [nnz]
    shape : Tuple[int, int]
        (n, n)
    b : torch.Tensor
        [n]
    x0 : torch.Tensor, optional
        [n] initial guess, by default zero
    backend : str, optional
        {'auto', 'pytorch', 'scipy'}, by default 'auto'
    preconditioner : str, optional
        {'identity', 'jacobi', 'polynomial', 'amg'}, by default 'jacobi'
    tol : float, optional
        relative residual tolerance, by default 1e-8
    maxiter : int, optional
        , by default 100

    Returns
    -------
    Tuple[torch.Tensor, SolveResult]
        [n] solution on the device of b, and (num_iters, residual)
    """
    n = shape[0]
    bk = get_backend(backend, device=val.device, dtype=val.dtype)
    A = bk.create_matrix(val, row, col, shape)
    P = get_preconditioner(A, bk, preconditioner)
    S = CG(n, SolverParams(maxiter=maxiter, tol=tol), backend=bk)

    rhs = bk.vector(b)
    x = bk.create_vector(n) if x0 is None else bk.vector(x0)
    result = S(A, P, rhs, x)
    return bk.to_tensor(x).to(device=b.device), result


class SparseLinearSolvePCG(Function):

    @staticmethod
    def forward(ctx,
                val:torch.Tensor,
                row:torch.Tensor,
                col:torch.Tensor,
                shape:Tuple[int, int],
                b:torch.Tensor,
                backend:str,
                preconditioner:str,
                tol:float,
                maxiter:int):
        u, result = pcg(val, row, col, shape, b, backend=backend,
                        preconditioner=preconditioner, tol=tol, maxiter=maxiter)
        if result.residual > tol:
            warnings.warn(f"PCG did not converge in {result.num_iters} iterations "
                          f"(residual={result.residual:.2e})")
        ctx.save_for_backward(val, row, col, u)
        ctx.A_shape = shape
        ctx.backend = backend
        ctx.preconditioner = preconditioner
        ctx.tol = tol
        ctx.maxiter = maxiter
        return u

    @staticmethod
    def backward(ctx, gradu):
        val, row, col, u = ctx.saved_tensors
        m, n   = ctx.A_shape
        gradb, result = pcg(val, col, row, (n, m), gradu, backend=ctx.backend,
                            preconditioner=ctx.preconditioner, tol=ctx.tol, maxiter=ctx.maxiter)
        if result.residual > ctx.tol:
            warnings.warn(f"PCG (adjoint) did not converge in {result.num_iters} iterations "
                          f"(residual={result.residual:.2e})")
        gradval= - gradb[row] * u[col]

        return gradval, None, None, None, gradb, None, None, None, None


def spsolve(val:torch.Tensor,
            row:torch.Tensor,
            col:torch.Tensor,
            shape:Tuple[int,int],
            b:torch.Tensor,
            backend:str="auto",
            preconditioner:str="jacobi",
            tol:float=1e-8,
            maxiter:int=1000)->torch.Tensor:
    """Solve the SPD Sparse Linear Equation of Pytorch represented in COO format with gradient support

    Only the val and b can receive gradient

    .. math::
        Ax = b

    Parameters
    ----------
    val : torch.Tensor
        [nnz]
    row : torch.Tensor
        [nnz]
    col : torch.Tensor
        [nnz]
    shape : Tuple[int, int]
        (n, n)
    b : torch.Tensor
        [n]
    backend : str, optional
        {'auto', 'pytorch', 'scipy'}, by default "auto"
    preconditioner : str, optional
        {'identity', 'jacobi', 'polynomial', 'amg'}, by default "jacobi"
    tol : float, optional
        relative residual tolerance, by default 1e-8
    maxiter : int, optional
        , by default 1000

    Returns
    -------
    torch.Tensor
        [n]
    """

    # assertion
    assert val.dim() == 1, f"val must be 1D tensor, got {val.dim()}"
    assert row.dim() == 1, f"row must be 1D tensor, got {row.dim()}"
    assert col.dim() == 1, f"col must be 1D tensor, got {col.dim()}"
    assert b.dim() == 1, f"b must be 1D tensor, got {b.dim()}"
    assert shape[0] > 0, f"shape[0] must be positive, got {shape[0]}"
    assert shape[0] == shape[1], f"shape must be square, got {shape}"
    assert val.size(0) == row.size(0), f"val and row must have same size, got {val.size(0)} and {row.size(0)}"
    assert val.size(0) == col.size(0), f"val and col must have same size, got {val.size(0)} and {col.size(0)}"
    assert b.size(0) == shape[0], f"b and shape[0] must have same size, got {b.size(0)} and {shape[0]}"
    assert tol >= 0, f"tol must be non-negative, got {tol}"
    assert maxiter > 0, f"maxiter must be positive, got {maxiter}"
    assert val.dtype == b.dtype, f"val and b must have same dtype, got {val.dtype} and {b.dtype}"
    if val.dtype != torch.float64:
        warnings.warn("You'd better use float64 to maintain good precision")

    return SparseLinearSolvePCG.apply(val, row, col, shape, b, backend, preconditioner, tol, maxiter)
