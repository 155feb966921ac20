"""
Error handling for npegen.

Build-time errors (file access, syntax, references, configuration) abort generation for a
single source file. Runtime errors (type mismatch, released views) are raised
back to the caller of a dispatcher.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Optional, Sequence

if TYPE_CHECKING:
    from .parser.spec_types import SourceLocation


# =============================================================================
# Error Codes
# =============================================================================

NPE_OK = 0

# General errors (1-9)
NPE_ERROR_UNKNOWN = 1
NPE_ERROR_INTERNAL = 2
NPE_ERROR_IO = 3

# Declaration errors (10-19)
NPE_ERROR_SYNTAX = 10

# Constraint errors (20-29)
NPE_ERROR_UNRESOLVED_REFERENCE = 20

# Configuration errors (30-39)
NPE_ERROR_CONFIGURATION = 30

# Dispatch errors (40-49)
NPE_ERROR_TYPE_MISMATCH = 40

# View errors (50-59)
NPE_ERROR_VIEW_RELEASED = 50


_ERROR_MESSAGES = {
    NPE_OK: "Success",
    NPE_ERROR_UNKNOWN: "Unknown error",
    NPE_ERROR_INTERNAL: "Internal error",
    NPE_ERROR_IO: "File could not be read or written",
    NPE_ERROR_SYNTAX: "Malformed declaration",
    NPE_ERROR_UNRESOLVED_REFERENCE: "Unresolved argument reference",
    NPE_ERROR_CONFIGURATION: "Invalid configuration",
    NPE_ERROR_TYPE_MISMATCH: "No specialization matches the argument types",
    NPE_ERROR_VIEW_RELEASED: "View used after release",
}


# =============================================================================
# Exception Classes
# =============================================================================

class NpeError(Exception):
    """
    Base exception for all npegen errors.

    Every error carries a numeric code and a human readable message.
    """

    OK = NPE_OK
    ERROR_UNKNOWN = NPE_ERROR_UNKNOWN
    ERROR_INTERNAL = NPE_ERROR_INTERNAL
    ERROR_IO = NPE_ERROR_IO
    ERROR_SYNTAX = NPE_ERROR_SYNTAX
    ERROR_UNRESOLVED_REFERENCE = NPE_ERROR_UNRESOLVED_REFERENCE
    ERROR_CONFIGURATION = NPE_ERROR_CONFIGURATION
    ERROR_TYPE_MISMATCH = NPE_ERROR_TYPE_MISMATCH
    ERROR_VIEW_RELEASED = NPE_ERROR_VIEW_RELEASED

    default_code = NPE_ERROR_UNKNOWN

    def __init__(self, message: Optional[str] = None, code: Optional[int] = None):
        if code is None:
            code = self.default_code
        self.code = code
        if message is None:
            message = _ERROR_MESSAGES.get(code, f"Unknown error (code={code})")
        self.message = message
        super().__init__(message)


class FileAccessError(NpeError):
    """
    A source could not be read, or an artifact could not be written.

    Attributes:
        path: File that failed
        offset: Byte offset of an undecodable byte, if that was the cause
    """

    default_code = NPE_ERROR_IO

    def __init__(self, message: str, path: Optional[Path] = None, offset: Optional[int] = None):
        self.path = path
        self.offset = offset
        if path is not None:
            message = f"{path}: {message}"
        super().__init__(message)


class DeclarationSyntaxError(NpeError):
    """A declaration marker is malformed, missing or out of order."""

    default_code = NPE_ERROR_SYNTAX

    def __init__(
        self,
        message: str,
        location: Optional["SourceLocation"] = None,
        construct: Optional[str] = None,
    ):
        self.location = location
        self.construct = construct
        if location is not None:
            message = f"{location}: {message}"
        super().__init__(message)

    @property
    def line(self) -> Optional[int]:
        return self.location.line if self.location is not None else None


class UnresolvedReferenceError(NpeError):
    """A type constraint names an argument that is unknown or not yet declared."""

    default_code = NPE_ERROR_UNRESOLVED_REFERENCE

    def __init__(
        self,
        message: str,
        argument: Optional[str] = None,
        reference: Optional[str] = None,
        location: Optional["SourceLocation"] = None,
    ):
        self.argument = argument
        self.reference = reference
        self.location = location
        if location is not None:
            message = f"{location}: {message}"
        super().__init__(message)


class ConfigurationError(NpeError):
    """Invalid configuration, or an expansion larger than the configured limit."""

    default_code = NPE_ERROR_CONFIGURATION


class TypeMismatchError(NpeError, TypeError):
    """
    Raised by a dispatcher when no specialization accepts the argument types.

    Attributes:
        function: Name of the dispatched function
        argument: Name of the first argument no accepted combination matches
        actual: Type tag reported for that argument
        accepted: Every accepted combination, as tuples of type tags
    """

    default_code = NPE_ERROR_TYPE_MISMATCH

    def __init__(
        self,
        function: str,
        argument: Optional[str],
        actual: str,
        accepted: Sequence[Sequence[str]],
        arg_names: Sequence[str] = (),
    ):
        self.function = function
        self.argument = argument
        self.actual = actual
        self.accepted = [tuple(c) for c in accepted]

        lines = [
            f"{function}(): no specialization for argument "
            f"'{argument}' of type {actual}."
        ]
        header = ", ".join(arg_names)
        lines.append(f"Accepted combinations ({header}):" if header else "Accepted combinations:")
        for combo in self.accepted:
            lines.append("    (" + ", ".join(combo) + ")")
        super().__init__("\n".join(lines))


class ViewReleasedError(NpeError, RuntimeError):
    """A borrowed view was accessed after the call that created it returned."""

    default_code = NPE_ERROR_VIEW_RELEASED


__all__ = [
    "NPE_OK",
    "NPE_ERROR_UNKNOWN",
    "NPE_ERROR_INTERNAL",
    "NPE_ERROR_IO",
    "NPE_ERROR_SYNTAX",
    "NPE_ERROR_UNRESOLVED_REFERENCE",
    "NPE_ERROR_CONFIGURATION",
    "NPE_ERROR_TYPE_MISMATCH",
    "NPE_ERROR_VIEW_RELEASED",
    "NpeError",
    "FileAccessError",
    "DeclarationSyntaxError",
    "UnresolvedReferenceError",
    "ConfigurationError",
    "TypeMismatchError",
    "ViewReleasedError",
]
