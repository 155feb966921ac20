"""
Type registry for binding-relevant concrete types.

This module defines the closed set of concrete types a specialization can be
generated for, and the fixed table mapping literal type tokens (as written in
``npe_arg`` declarations) to those types.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional


class TypeKind(Enum):
    """Storage classification of a concrete type."""
    DENSE = auto()    # Contiguous n-d array
    SPARSE = auto()   # Compressed sparse matrix (values, indices, pointers)
    OPAQUE = auto()   # Host-language object passed through unchanged


class ElementType(Enum):
    """Numeric element types supported by dense and sparse storage."""

    float32 = "float32"
    float64 = "float64"
    int32 = "int32"
    int64 = "int64"

    def __str__(self) -> str:
        return self.value

    @property
    def short(self) -> str:
        """Short tag suffix (e.g., 'f64')."""
        return _ELEMENT_SHORT[self]


class SparseLayout(Enum):
    """Compressed sparse storage layouts."""

    CSR = "csr"
    CSC = "csc"

    def __str__(self) -> str:
        return self.value


_ELEMENT_SHORT = {
    ElementType.float32: "f32",
    ElementType.float64: "f64",
    ElementType.int32: "i32",
    ElementType.int64: "i64",
}


@dataclass(frozen=True)
class ConcreteType:
    """
    One binding-relevant type.

    Dense and sparse types are identified by their element type (and layout);
    opaque types carry the verbatim host type they were declared with.
    """
    kind: TypeKind
    element: Optional[ElementType] = None
    layout: Optional[SparseLayout] = None
    host_type: Optional[str] = None

    @classmethod
    def dense(cls, element: ElementType) -> "ConcreteType":
        return cls(TypeKind.DENSE, element=element)

    @classmethod
    def sparse(
        cls, element: ElementType, layout: SparseLayout = SparseLayout.CSR
    ) -> "ConcreteType":
        return cls(TypeKind.SPARSE, element=element, layout=layout)

    @classmethod
    def opaque(cls, host_type: str) -> "ConcreteType":
        return cls(TypeKind.OPAQUE, host_type=" ".join(host_type.split()))

    @property
    def is_dense(self) -> bool:
        return self.kind is TypeKind.DENSE

    @property
    def is_sparse(self) -> bool:
        return self.kind is TypeKind.SPARSE

    @property
    def is_opaque(self) -> bool:
        return self.kind is TypeKind.OPAQUE

    @property
    def tag(self) -> str:
        """
        Canonical tag, e.g. 'dense_f64', 'csr_f32'.

        Opaque types use their host type text.
        """
        if self.kind is TypeKind.DENSE:
            return f"dense_{self.element.short}"
        if self.kind is TypeKind.SPARSE:
            return f"{self.layout.value}_{self.element.short}"
        return self.host_type

    @property
    def symbol_fragment(self) -> str:
        """Identifier-safe fragment used in specialization symbols."""
        if self.kind is TypeKind.OPAQUE:
            return "".join(c if c.isalnum() else "_" for c in self.host_type)
        return self.tag

    def to_dense(self) -> "ConcreteType":
        """Dense type with the same element type."""
        if self.kind is TypeKind.OPAQUE:
            raise ValueError(f"Opaque type {self.host_type} has no dense form")
        return ConcreteType.dense(self.element)

    def to_sparse(self) -> "ConcreteType":
        """Sparse type with the same element type (dense maps to CSR)."""
        if self.kind is TypeKind.OPAQUE:
            raise ValueError(f"Opaque type {self.host_type} has no sparse form")
        return ConcreteType.sparse(self.element, self.layout or SparseLayout.CSR)

    def __str__(self) -> str:
        return self.tag

    @classmethod
    def from_tag(cls, tag: str) -> "ConcreteType":
        """Inverse of :attr:`tag`; unknown tags become opaque types."""
        resolved = TOKEN_TABLE.get(tag)
        if resolved is not None:
            return resolved
        return cls.opaque(tag)


# =============================================================================
# Literal Type Tokens
# =============================================================================

# Spellings accepted for each element type after a storage prefix
ELEMENT_ALIASES: dict[ElementType, tuple[str, ...]] = {
    ElementType.float32: ("float", "f32", "float32"),
    ElementType.float64: ("double", "f64", "float64"),
    ElementType.int32: ("int", "i32", "int32"),
    ElementType.int64: ("long", "longlong", "i64", "int64"),
}

# Storage prefixes; 'sparse_' is shorthand for the CSR layout
STORAGE_PREFIXES: dict[str, tuple[TypeKind, Optional[SparseLayout]]] = {
    "dense_": (TypeKind.DENSE, None),
    "sparse_": (TypeKind.SPARSE, SparseLayout.CSR),
    "csr_": (TypeKind.SPARSE, SparseLayout.CSR),
    "csc_": (TypeKind.SPARSE, SparseLayout.CSC),
}


def _build_token_table() -> dict[str, ConcreteType]:
    table: dict[str, ConcreteType] = {}
    for prefix, (kind, layout) in STORAGE_PREFIXES.items():
        for element, aliases in ELEMENT_ALIASES.items():
            for alias in aliases:
                table[prefix + alias] = ConcreteType(kind, element=element, layout=layout)
    return table


TOKEN_TABLE: dict[str, ConcreteType] = _build_token_table()


# Every non-opaque concrete type, in canonical order
NUMERIC_TYPES: tuple[ConcreteType, ...] = tuple(
    [ConcreteType.dense(e) for e in ElementType]
    + [ConcreteType.sparse(e, layout) for layout in SparseLayout for e in ElementType]
)


class TypeRegistry:
    """
    Lookup of literal type tokens.

    Tokens are matched exactly against :data:`TOKEN_TABLE`. Tokens that look
    like numeric tags (carry a storage prefix) but are not in the table are
    reported as unknown rather than silently treated as host types.
    """

    def __init__(self, extra_tokens: Optional[dict[str, ConcreteType]] = None):
        self._tokens = dict(TOKEN_TABLE)
        if extra_tokens:
            self._tokens.update(extra_tokens)

    def register_token(self, token: str, ctype: ConcreteType) -> None:
        """Register an additional literal token."""
        self._tokens[token] = ctype

    def lookup(self, token: str) -> Optional[ConcreteType]:
        """
        Look up a literal type token.

        Args:
            token: Token text (e.g., "dense_float", "csc_i64")

        Returns:
            ConcreteType if the token is a known numeric tag, None otherwise
        """
        return self._tokens.get(token.strip())

    def is_tag_shaped(self, token: str) -> bool:
        """Check if a token carries a numeric storage prefix."""
        token = token.strip()
        return token.isidentifier() and any(token.startswith(p) for p in STORAGE_PREFIXES)

    @property
    def tokens(self) -> list[str]:
        return sorted(self._tokens)
