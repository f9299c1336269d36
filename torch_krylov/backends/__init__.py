"""
Backend management for torch-krylov

This module provides a unified interface for the numerical backends the Krylov
solvers run on. Every backend implements the same operation contract
(see ``torch_krylov.backends.base``), so a solver written once runs unmodified
on each of them.

Backends:
- 'pytorch': PyTorch-native (CPU & CUDA) - vectors are tensors, matrices are cached CSR tensors
- 'scipy': SciPy backend (CPU only) - vectors are numpy arrays, matrices are scipy CSR matrices

Usage:
    backend = get_backend('pytorch', device='cuda', dtype=torch.float32)
    backend = get_backend('scipy')
    backend = get_backend('auto', device='cpu')  # scipy when installed, else pytorch
"""

from typing import Optional, List, Literal, Union
import torch

from .base import Backend
from .pytorch_backend import PyTorchBackend, CachedSparseMatrix
from .scipy_backend import ScipyBackend, is_scipy_available

# Type aliases
BackendType = Literal['pytorch', 'scipy', 'auto']

BACKENDS = {
    'pytorch': PyTorchBackend,
    'scipy': ScipyBackend,
}


def get_available_backends() -> List[str]:
    """Get list of available backends"""
    backends = ['pytorch']  # Always available

    if is_scipy_available():
        backends.append('scipy')

    return backends


def select_backend(device: Optional[Union[str, torch.device]] = None) -> str:
    """
    Auto-select a backend for the given device.

    - CPU: scipy (when installed), otherwise pytorch
    - CUDA: pytorch

    Parameters
    ----------
    device : torch.device, optional
        Target device, by default cpu

    Returns
    -------
    str
        Backend name ('pytorch' or 'scipy')
    """
    device = torch.device('cpu' if device is None else device)

    if device.type == 'cpu':
        if is_scipy_available():
            return 'scipy'
        return 'pytorch'

    elif device.type == 'cuda':
        if not torch.cuda.is_available():
            raise RuntimeError("CUDA is not available")
        return 'pytorch'

    else:
        raise ValueError(f"Unsupported device type: {device.type}")


def get_backend(backend: Union[str, Backend] = 'pytorch',
                device: Optional[Union[str, torch.device]] = None,
                dtype: Optional[torch.dtype] = None) -> Backend:
    """
    Get a backend instance by name.

    Parameters
    ----------
    backend : str or Backend
        'pytorch', 'scipy' or 'auto'. A Backend instance is returned unchanged.
    device : torch.device, optional
        Device for the pytorch backend. The scipy backend only supports cpu.
    dtype : torch.dtype, optional
        Value type, by default torch.float64

    Returns
    -------
    Backend
    """
    if isinstance(backend, Backend):
        return backend

    if backend == 'auto':
        backend = select_backend(device)

    dtype = torch.float64 if dtype is None else dtype

    if backend == 'pytorch':
        return PyTorchBackend(device='cpu' if device is None else device, dtype=dtype)
    elif backend == 'scipy':
        if device is not None and torch.device(device).type != 'cpu':
            raise ValueError(f"scipy backend only supports cpu, got {device}")
        if not is_scipy_available():
            raise ImportError("SciPy is required for the scipy backend")
        return ScipyBackend(dtype=torch.empty(0, dtype=dtype).numpy().dtype)
    else:
        raise ValueError(f"Unknown backend: {backend}. "
                         f"Available: {', '.join(list(BACKENDS) + ['auto'])}")


__all__ = [
    "Backend",
    "BackendType",
    "BACKENDS",
    "PyTorchBackend",
    "ScipyBackend",
    "CachedSparseMatrix",
    "get_backend",
    "select_backend",
    "get_available_backends",
    "is_scipy_available",
]
