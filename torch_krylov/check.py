import torch


class ShapeException(Exception):
    def __init__(self, name, shape, expected_shape):
        self.name = name
        self.shape = shape
        self.expected_shape = expected_shape
        super().__init__(f"{name} has shape {shape} expected {expected_shape}")


class ConfigurationError(ValueError):
    """Raised when solver or preconditioner parameters are invalid"""


def check_coo(val:torch.Tensor,
              row:torch.Tensor,
              col:torch.Tensor,
              shape:tuple
              ):
    """
    Check the COO format

    Parameters
    ----------

    val: torch.Tensor
        [nnz] values of the sparse matrix
    row: torch.Tensor
        [nnz] row indices of the sparse matrix
    col: torch.Tensor
        [nnz] column indices of the sparse matrix
    shape: tuple
        (m,n) shape of the sparse matrix

    """
    if not len(shape) == 2:
        raise ShapeException("shape", shape, "(m,n)")
    if not (shape[0] > 0 and shape[1] > 0):
        raise ShapeException("shape", shape, "(m,n)")
    if not val.ndim == 1:
        raise ShapeException("val", val.shape, "[nnz]")
    if not row.ndim == 1:
        raise ShapeException("row", row.shape, "[nnz]")
    if not col.ndim == 1:
        raise ShapeException("col", col.shape, "[nnz]")
    if not val.shape[0] == row.shape[0]:
        raise ShapeException("row", row.shape, f"[{val.shape[0]}]")
    if not val.shape[0] == col.shape[0]:
        raise ShapeException("col", col.shape, f"[{val.shape[0]}]")


def check_square(shape:tuple):
    """
    Check that a matrix shape is square, as required by the Krylov solvers

    Parameters
    ----------
    shape: tuple
        (m,n) shape of the sparse matrix
    """
    m, n = shape
    if m != n:
        raise ShapeException("shape", shape, f"({m},{m})")
