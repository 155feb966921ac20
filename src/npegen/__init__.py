"""
npegen

Declare a numeric extension function once, generate one specialization per
accepted combination of argument types plus a runtime dispatcher.
"""

__version__ = "0.1.0"
__author__ = "npegen developers"

from .config import CodegenConfig
from .errors import (
    NpeError,
    FileAccessError,
    DeclarationSyntaxError,
    UnresolvedReferenceError,
    ConfigurationError,
    TypeMismatchError,
    ViewReleasedError,
)
from .pipeline import GenerationPipeline, build_module

__all__ = [
    "CodegenConfig",
    "NpeError",
    "FileAccessError",
    "DeclarationSyntaxError",
    "UnresolvedReferenceError",
    "ConfigurationError",
    "TypeMismatchError",
    "ViewReleasedError",
    "GenerationPipeline",
    "build_module",
    "__version__",
]
