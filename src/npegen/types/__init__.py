"""
Concrete type system: the closed set of dispatchable types and their
C++ spellings.
"""

from .registry import (
    ConcreteType,
    ElementType,
    SparseLayout,
    TypeKind,
    TypeRegistry,
    TOKEN_TABLE,
    NUMERIC_TYPES,
)
from .cpp_mapper import CppTypeMapper

__all__ = [
    "ConcreteType",
    "ElementType",
    "SparseLayout",
    "TypeKind",
    "TypeRegistry",
    "TOKEN_TABLE",
    "NUMERIC_TYPES",
    "CppTypeMapper",
]
