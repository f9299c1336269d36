import torch
from typing import Optional, Tuple


def spd_coo(n:int,
            density:float=0.3,
            dtype=torch.float64,
            device=torch.device('cpu'),
            generator:Optional[torch.Generator]=None
            )->Tuple[torch.Tensor,
                     torch.Tensor,
                     torch.Tensor,
                     Tuple[int, int]]:
    """
    random sparse symmetric positive definite COO matrix generator

    Builds ``B B^T + n I`` and drops the small off-diagonal entries
    symmetrically. The ``n I`` shift keeps the result diagonally dominant
    enough to stay positive definite after sparsification.

    Parameters
    ----------
    n : int
        size of the matrix
    density : float, optional
        approximate fraction of off-diagonal entries kept, by default 0.3
    dtype : torch.dtype, optional
        Data type of the matrix, by default torch.float64
    device : torch.device, optional
        Device of the matrix, by default torch.device('cpu')
    generator : torch.Generator, optional
        for reproducible matrices

    Returns
    -------
    Tuple[torch.Tensor, torch.Tensor, torch.Tensor, Tuple[int, int]]
        val: torch.Tensor
            [nnz] values of the sparse matrix
        row: torch.Tensor
            [nnz] row indices of the sparse matrix
        col: torch.Tensor
            [nnz] column indices of the sparse matrix
        shape: tuple
            (n,n) shape of the sparse matrix
    """
    assert 0 <= density <= 1, f"density must be in [0, 1], got {density}"

    B = torch.rand(n, n, dtype=torch.float64, generator=generator) / n ** 0.5
    A = B @ B.T
    keep = torch.rand(n, n, dtype=torch.float64, generator=generator) < density
    keep = keep | keep.T
    A = torch.where(keep, A, torch.zeros_like(A))
    A = A + torch.eye(n, dtype=torch.float64) * n
    A = A.to(dtype=dtype, device=device).to_sparse_coo()
    return A.values(), A.indices()[0], A.indices()[1], (n, n)
