"""Zero-copy argument views.

A view borrows a caller's buffer for the duration of one dispatched call.
It never allocates or copies: dense views alias the caller's array, sparse
views alias the (values, inner indices, outer pointers) triplet.

Safety Model:
    1. A view is valid from construction until ``release()``.
    2. The dispatcher releases every view when the call returns.
    3. ``move(view)`` transfers the buffer to the caller; the moved view is
       returned as a plain array/matrix and is not released.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Tuple, Union

import numpy as np
import scipy.sparse as sp

from ..errors import ViewReleasedError
from ..types.registry import ConcreteType, SparseLayout
from .tags import type_of

__all__ = [
    'DenseView',
    'SparseView',
    'Moved',
    'move',
    'make_view',
]


class _BorrowedView:
    """Validity tracking shared by dense and sparse views."""

    def __init__(self, ctype: ConcreteType):
        self.ctype = ctype
        self._released = False
        self._transferred = False

    @property
    def is_valid(self) -> bool:
        return not self._released

    @property
    def is_transferred(self) -> bool:
        return self._transferred

    def _check(self) -> None:
        if self._released:
            raise ViewReleasedError(
                f"{type(self).__name__}[{self.ctype.tag}] used after its call returned"
            )

    def release(self) -> None:
        """Invalidate the view. Releasing twice is harmless."""
        self._released = True

    def __enter__(self):
        return self

    def __exit__(self, *exc) -> None:
        self.release()


class DenseView(_BorrowedView):
    """Non-owning view of a caller's dense array.

    Example:
        >>> a = np.ones((3, 2))
        >>> with DenseView(a) as v:
        ...     v.array[0, 0] = 5.0
        >>> float(a[0, 0])
        5.0
    """

    def __init__(self, array: np.ndarray, ctype: Optional[ConcreteType] = None):
        if not isinstance(array, np.ndarray):
            raise TypeError(f"DenseView needs a numpy.ndarray, got {type(array).__name__}")
        super().__init__(ctype or type_of(array))
        self._array = array.view()

    @property
    def array(self) -> np.ndarray:
        """The aliased buffer (shares memory with the caller's array)."""
        self._check()
        return self._array

    @property
    def shape(self) -> Tuple[int, ...]:
        return self.array.shape

    @property
    def dtype(self) -> np.dtype:
        return self.array.dtype

    def __array__(self, dtype=None, copy=None):
        if dtype is not None and np.dtype(dtype) != self.array.dtype:
            raise TypeError("DenseView does not convert element types")
        return self.array

    def detach(self) -> np.ndarray:
        self._check()
        self._transferred = True
        return self._array

    def __repr__(self) -> str:
        state = "valid" if self.is_valid else "released"
        return f"DenseView({self.ctype.tag}, shape={self._array.shape}, {state})"


class SparseView(_BorrowedView):
    """Non-owning view of a caller's CSR/CSC matrix as its buffer triplet."""

    def __init__(self, matrix: Any, ctype: Optional[ConcreteType] = None):
        if not sp.issparse(matrix) or matrix.format not in ("csr", "csc"):
            raise TypeError(
                f"SparseView needs a scipy CSR/CSC matrix, got {type(matrix).__name__}"
            )
        super().__init__(ctype or type_of(matrix))
        self._data = matrix.data
        self._indices = matrix.indices
        self._indptr = matrix.indptr
        self._shape = matrix.shape

    @property
    def layout(self) -> SparseLayout:
        return self.ctype.layout

    @property
    def data(self) -> np.ndarray:
        """Non-zero values."""
        self._check()
        return self._data

    @property
    def indices(self) -> np.ndarray:
        """Inner indices (column indices for CSR, row indices for CSC)."""
        self._check()
        return self._indices

    @property
    def indptr(self) -> np.ndarray:
        """Outer pointers."""
        self._check()
        return self._indptr

    @property
    def shape(self) -> Tuple[int, int]:
        self._check()
        return self._shape

    @property
    def nnz(self) -> int:
        return int(self.indptr[-1])

    def to_scipy(self):
        """A scipy matrix over the same buffers (no copy)."""
        self._check()
        cls = sp.csr_matrix if self.layout is SparseLayout.CSR else sp.csc_matrix
        return cls((self._data, self._indices, self._indptr), shape=self._shape, copy=False)

    def detach(self):
        matrix = self.to_scipy()
        self._transferred = True
        return matrix

    def __repr__(self) -> str:
        state = "valid" if self.is_valid else "released"
        return f"SparseView({self.ctype.tag}, shape={self._shape}, {state})"


View = Union[DenseView, SparseView]


@dataclass(frozen=True)
class Moved:
    """A value whose ownership is handed back to the caller."""
    value: Any

    def unwrap(self) -> Any:
        if isinstance(self.value, (DenseView, SparseView)):
            return self.value.detach()
        return self.value


def move(value: Any) -> Moved:
    """Hand ``value`` (possibly a view) back to the caller through the dispatcher."""
    return Moved(value)


def make_view(value: Any, ctype: ConcreteType) -> Any:
    """Wrap ``value`` for a specialization parameter of type ``ctype``."""
    if ctype.is_dense:
        return DenseView(value, ctype)
    if ctype.is_sparse:
        return SparseView(value, ctype)
    return value
