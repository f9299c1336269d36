"""
Operation contract shared by all numerical backends.

A backend owns the storage of vectors and matrices and implements a small set
of BLAS-like primitives on them. The Krylov solvers are written only in terms
of these primitives, so swapping the backend (PyTorch on CPU/CUDA, SciPy) does
not change the algorithm.

Engine primitives:

- ``create_vector(n)``
- ``residual(rhs, A, x, out)``: out = rhs - A x
- ``norm(v)``: Euclidean norm
- ``inner_product(u, v)``: sum(conj(u) * v)
- ``axpby(a, x, b, y)``: y = a x + b y
- ``spmv(a, A, x, b, y)``: y = a A x + b y
- ``copy(src, dst)``, ``clear(v)``

Preconditioner setup primitives:

- ``create_matrix(val, row, col, shape)``
- ``diagonal(A)``, ``reciprocal(v)``
- ``vmul(a, x, y, b, z)``: z = a x * y + b z

For ``axpby``, ``spmv`` and ``vmul`` the output is not read when ``b == 0``,
so it may hold garbage (including NaN) on entry.

Scalars returned by ``norm`` and ``inner_product`` must follow IEEE division
(0-dim tensors, numpy scalars), so a vanishing denominator in a solver yields
inf/nan instead of raising.
"""

from abc import ABC, abstractmethod
from typing import Any, Tuple


class Backend(ABC):
    """Abstract numerical backend"""

    #: registry name of the backend
    name: str = ''

    @property
    @abstractmethod
    def value_type(self) -> Any:
        """Scalar type of vectors and matrices"""

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    @abstractmethod
    def create_vector(self, n: int) -> Any:
        """Allocate a zero vector of length n"""

    @abstractmethod
    def create_matrix(self, val, row, col, shape: Tuple[int, int]) -> Any:
        """Build a backend matrix from COO tensors"""

    @abstractmethod
    def vector(self, data) -> Any:
        """Copy a tensor, array or sequence into a new backend vector"""

    @abstractmethod
    def to_tensor(self, v) -> Any:
        """Copy a backend vector into a torch.Tensor"""

    # ------------------------------------------------------------------
    # Engine primitives
    # ------------------------------------------------------------------

    @abstractmethod
    def residual(self, rhs, A, x, out) -> None:
        """out = rhs - A x"""

    @abstractmethod
    def norm(self, v):
        """Euclidean norm of v"""

    @abstractmethod
    def inner_product(self, u, v):
        """sum(conj(u) * v)"""

    @abstractmethod
    def axpby(self, a, x, b, y) -> None:
        """y = a x + b y"""

    @abstractmethod
    def spmv(self, a, A, x, b, y) -> None:
        """y = a A x + b y"""

    @abstractmethod
    def copy(self, src, dst) -> None:
        """dst = src"""

    @abstractmethod
    def clear(self, v) -> None:
        """v = 0"""

    # ------------------------------------------------------------------
    # Preconditioner setup primitives
    # ------------------------------------------------------------------

    @abstractmethod
    def diagonal(self, A) -> Any:
        """Main diagonal of A as a new vector"""

    @abstractmethod
    def reciprocal(self, v) -> Any:
        """Element-wise 1/v, with near-zero entries treated as 1"""

    @abstractmethod
    def vmul(self, a, x, y, b, z) -> None:
        """z = a x * y + b z (element-wise product)"""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(value_type={self.value_type})"
