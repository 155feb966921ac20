"""
Annotated source scanning module.
"""

from .spec_types import (
    ArgumentSpec,
    ConstraintKind,
    FunctionSpec,
    SourceLocation,
    TypeConstraint,
)
from .scanner import AnnotationScanner, tokenize

__all__ = [
    "ArgumentSpec",
    "ConstraintKind",
    "FunctionSpec",
    "SourceLocation",
    "TypeConstraint",
    "AnnotationScanner",
    "tokenize",
]
