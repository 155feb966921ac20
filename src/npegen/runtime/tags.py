"""
Runtime type tags.

Reports the concrete type of a value exactly as the dispatcher compares it:
numpy arrays by dtype, scipy.sparse matrices by format and dtype. No
widening or narrowing is applied; a float32 array is only ever
``dense_f32``.
"""

from __future__ import annotations

from typing import Any, Optional

import numpy as np
import scipy.sparse as sp

from ..types.registry import ConcreteType, ElementType, SparseLayout

_DTYPE_ELEMENTS = {
    np.dtype(np.float32): ElementType.float32,
    np.dtype(np.float64): ElementType.float64,
    np.dtype(np.int32): ElementType.int32,
    np.dtype(np.int64): ElementType.int64,
}

_FORMAT_LAYOUTS = {
    "csr": SparseLayout.CSR,
    "csc": SparseLayout.CSC,
}


def element_type(dtype: Any) -> Optional[ElementType]:
    """Element type of a numpy dtype, None if unsupported."""
    return _DTYPE_ELEMENTS.get(np.dtype(dtype))


def type_of(value: Any) -> Optional[ConcreteType]:
    """
    Concrete type of a runtime value.

    Returns:
        ConcreteType for supported dense/sparse values, None otherwise
    """
    if isinstance(value, np.ndarray):
        elem = _DTYPE_ELEMENTS.get(value.dtype)
        return ConcreteType.dense(elem) if elem is not None else None
    if sp.issparse(value):
        layout = _FORMAT_LAYOUTS.get(value.format)
        elem = _DTYPE_ELEMENTS.get(value.dtype)
        if layout is None or elem is None:
            return None
        return ConcreteType.sparse(elem, layout)
    return None


def type_tag(value: Any) -> str:
    """
    Tag of a runtime value, used in dispatch and in error messages.

    Unsupported arrays still get a descriptive tag (e.g. 'dense<float16>',
    'coo<float64>') so that mismatches are diagnosable.
    """
    ctype = type_of(value)
    if ctype is not None:
        return ctype.tag
    if isinstance(value, np.ndarray):
        return f"dense<{value.dtype}>"
    if sp.issparse(value):
        return f"{value.format}<{value.dtype}>"
    return type(value).__name__
