import torch
from typing import Optional, Tuple


def poisson1d(n:int,
              dtype=torch.float64,
              device=torch.device('cpu')
              )->Tuple[torch.Tensor,
                       torch.Tensor,
                       torch.Tensor,
                       Tuple[int, int]]:
    """
    1D Poisson matrix (3-point stencil, Dirichlet boundaries) in COO format

    Parameters
    ----------
    n : int
        number of unknowns
    dtype : torch.dtype, optional
        by default torch.float64
    device : torch.device, optional
        by default cpu

    Returns
    -------
    Tuple[torch.Tensor, torch.Tensor, torch.Tensor, Tuple[int, int]]
        val, row, col, shape
    """
    idx = torch.arange(n, device=device)
    row = torch.cat([idx, idx[1:], idx[:-1]])
    col = torch.cat([idx, idx[1:] - 1, idx[:-1] + 1])
    val = torch.cat([
        torch.full((n,), 2.0, dtype=dtype, device=device),
        torch.full((2 * (n - 1),), -1.0, dtype=dtype, device=device),
    ])
    return val, row, col, (n, n)


def poisson2d(nx:int,
              ny:Optional[int]=None,
              dtype=torch.float64,
              device=torch.device('cpu')
              )->Tuple[torch.Tensor,
                       torch.Tensor,
                       torch.Tensor,
                       Tuple[int, int]]:
    """
    2D Poisson matrix (5-point stencil, Dirichlet boundaries) in COO format,
    unknowns numbered row by row

    Parameters
    ----------
    nx : int
        grid points along x
    ny : int, optional
        grid points along y, by default nx

    Returns
    -------
    Tuple[torch.Tensor, torch.Tensor, torch.Tensor, Tuple[int, int]]
        val, row, col, shape
    """
    ny = nx if ny is None else ny
    N = nx * ny
    idx = torch.arange(N, device=device)
    i, j = idx // nx, idx % nx

    left_mask = j > 0
    right_mask = j < nx - 1
    up_mask = i > 0
    down_mask = i < ny - 1

    row = torch.cat([idx, idx[left_mask], idx[right_mask], idx[up_mask], idx[down_mask]])
    col = torch.cat([idx, idx[left_mask] - 1, idx[right_mask] + 1, idx[up_mask] - nx, idx[down_mask] + nx])
    n_off = int(left_mask.sum() + right_mask.sum() + up_mask.sum() + down_mask.sum())
    val = torch.cat([
        torch.full((N,), 4.0, dtype=dtype, device=device),
        torch.full((n_off,), -1.0, dtype=dtype, device=device),
    ])
    return val, row, col, (N, N)
