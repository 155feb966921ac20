"""
Declaration data structures.

These dataclasses represent a scanned ``npe_function`` declaration in a
host-language-agnostic way. They are immutable: later stages return updated
copies instead of mutating them.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Optional

from ..types.registry import ConcreteType


@dataclass(frozen=True)
class SourceLocation:
    """Source code location for error reporting."""
    file: Optional[Path]
    line: int
    column: int = 1

    def __str__(self) -> str:
        name = self.file if self.file is not None else "<source>"
        return f"{name}:{self.line}:{self.column}"


class ConstraintKind(Enum):
    """How a constrained argument derives its type from its referent."""

    MATCHES = "matches"          # identical concrete type
    DENSE_LIKE = "dense_like"    # same element type, dense storage
    SPARSE_LIKE = "sparse_like"  # same element type, sparse storage

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class TypeConstraint:
    """A constraint tying an argument's type to a previously declared argument."""
    kind: ConstraintKind
    reference: str

    def project(self, ctype: ConcreteType) -> ConcreteType:
        """Type of the constrained argument when the referent has ``ctype``."""
        if self.kind is ConstraintKind.MATCHES:
            return ctype
        if self.kind is ConstraintKind.DENSE_LIKE:
            return ctype.to_dense()
        return ctype.to_sparse()

    def __str__(self) -> str:
        return f"{self.kind.value}({self.reference})"


@dataclass(frozen=True)
class ArgumentSpec:
    """
    One declared argument.

    Exactly one of ``type_tokens`` and ``constraint`` is set by the scanner.
    ``types`` is filled in by the resolver.
    """
    name: str
    position: int
    type_tokens: tuple[str, ...] = ()
    constraint: Optional[TypeConstraint] = None
    default: Optional[str] = None
    location: Optional[SourceLocation] = None
    types: Optional[tuple[ConcreteType, ...]] = None

    @property
    def is_constrained(self) -> bool:
        return self.constraint is not None

    @property
    def is_resolved(self) -> bool:
        return self.types is not None

    @property
    def has_default(self) -> bool:
        return self.default is not None

    @property
    def is_opaque(self) -> bool:
        """True once resolved to a single pass-through host type."""
        return bool(self.types) and all(t.is_opaque for t in self.types)

    def with_types(self, types: tuple[ConcreteType, ...]) -> "ArgumentSpec":
        return replace(self, types=types)

    @property
    def declaration(self) -> str:
        """Declared type list as written (normalised)."""
        if self.constraint is not None:
            return str(self.constraint)
        return ", ".join(self.type_tokens)


@dataclass(frozen=True)
class FunctionSpec:
    """
    Complete representation of one annotated source file.

    ``body`` is captured verbatim and never parsed; ``preamble`` and
    ``epilogue`` hold the host code surrounding the declaration.
    """
    name: str
    arguments: tuple[ArgumentSpec, ...] = ()
    body: str = ""
    doc: Optional[str] = None
    preamble: str = ""
    epilogue: str = ""
    path: Optional[Path] = None
    location: Optional[SourceLocation] = None
    move_lines: tuple[int, ...] = field(default_factory=tuple)

    @property
    def module_name(self) -> str:
        """Derive the artifact stem from the file path."""
        if self.path is not None:
            return self.path.stem
        return self.name

    @property
    def arg_names(self) -> list[str]:
        return [a.name for a in self.arguments]

    @property
    def is_resolved(self) -> bool:
        return all(a.is_resolved for a in self.arguments)

    def argument(self, name: str) -> Optional[ArgumentSpec]:
        for arg in self.arguments:
            if arg.name == name:
                return arg
        return None

    def with_arguments(self, arguments: tuple[ArgumentSpec, ...]) -> "FunctionSpec":
        return replace(self, arguments=arguments)

    @property
    def signature(self) -> str:
        """Declared signature string, for diagnostics."""
        params = ", ".join(f"{a.name}: {a.declaration}" for a in self.arguments)
        return f"{self.name}({params})"
