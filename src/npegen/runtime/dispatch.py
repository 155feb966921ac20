"""
Python-side dispatcher.

Implements the same contract as the emitted native dispatcher over the same
DispatchTable: exact tag comparison, linear first-match scan in generation
order, and a TypeMismatchError listing every accepted combination when the
scan falls through. Specializations are plain Python callables keyed by
their specialization identifier.

Usage:
    table = DispatchTable.from_json(Path("foo.npe.json").read_text())
    foo = Dispatcher(table)

    @foo.register("npe_foo__dense_f64")
    def _(a):
        return move(a)

    foo(np.zeros(3))
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Mapping, Optional, Sequence

from ..errors import NpeError, NPE_ERROR_INTERNAL, TypeMismatchError
from ..parser.scanner import AnnotationScanner, literal_python_default
from ..types.expander import Combination, CombinationExpander, DispatchTable
from ..types.resolver import TypeSetResolver
from .tags import type_tag
from .views import DenseView, Moved, SparseView, make_view

logger = logging.getLogger("npegen.runtime")

_MISSING = object()


class Dispatcher:
    """
    Runtime entry point for one function.

    The table is read-only after construction; calls share no mutable state
    beyond the registered implementations, so a Dispatcher may be called
    concurrently.
    """

    def __init__(
        self,
        table: DispatchTable,
        implementations: Optional[Mapping[str, Callable]] = None,
        defaults: Optional[Mapping[str, Any]] = None,
    ):
        self.table = table
        self._impls: dict[str, Callable] = {}
        for identifier, fn in (implementations or {}).items():
            self.register(identifier, fn)

        raw_defaults = table.defaults or (None,) * len(table.arg_names)
        self._defaults: dict[str, Any] = {}
        for name, expr in zip(table.arg_names, raw_defaults):
            if expr is None:
                continue
            value = literal_python_default(expr, _MISSING)
            if value is _MISSING:
                # Host-only default: callers must pass the argument
                logger.debug("%s: default of %s is not a Python literal: %s", table.function, name, expr)
                continue
            self._defaults[name] = value
        self._defaults.update(defaults or {})

    # -------------------------------------------------------------------------
    # Construction
    # -------------------------------------------------------------------------

    @classmethod
    def from_manifest(
        cls, path: Path, implementations: Optional[Mapping[str, Callable]] = None
    ) -> "Dispatcher":
        """Load the table written by the manifest generator."""
        table = DispatchTable.from_json(Path(path).read_text())
        return cls(table, implementations)

    @classmethod
    def from_source(
        cls,
        text: str,
        implementations: Optional[Mapping[str, Callable]] = None,
        max_combinations: Optional[int] = None,
    ) -> "Dispatcher":
        """Scan, resolve and expand annotated source text in one step."""
        spec = TypeSetResolver().resolve(AnnotationScanner().parse_text(text))
        table = CombinationExpander(max_combinations).expand(spec)
        return cls(table, implementations)

    def register(self, identifier: str, fn: Optional[Callable] = None):
        """
        Register the implementation of one specialization.

        Can be used directly or as a decorator.
        """
        if identifier not in self.table.identifiers:
            raise KeyError(
                f"{self.name}: '{identifier}' is not a specialization of this function"
            )

        def decorator(func: Callable) -> Callable:
            self._impls[identifier] = func
            return func

        if fn is not None:
            return decorator(fn)
        return decorator

    @property
    def name(self) -> str:
        return self.table.function

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    def bind(self, *args, **kwargs) -> list[Any]:
        """Map positional and keyword arguments onto declared positions."""
        names = self.table.arg_names
        if len(args) > len(names):
            raise TypeError(
                f"{self.name}() takes {len(names)} arguments but {len(args)} were given"
            )
        values = list(args) + [_MISSING] * (len(names) - len(args))
        for key, value in kwargs.items():
            if key not in names:
                raise TypeError(f"{self.name}() got an unexpected keyword argument '{key}'")
            idx = names.index(key)
            if values[idx] is not _MISSING:
                raise TypeError(f"{self.name}() got multiple values for argument '{key}'")
            values[idx] = value
        for idx, name in enumerate(names):
            if values[idx] is _MISSING:
                if name not in self._defaults:
                    raise TypeError(f"{self.name}() missing required argument '{name}'")
                values[idx] = self._defaults[name]
        return values

    def tags(self, values: Sequence[Any]) -> list[Optional[str]]:
        """Type tag per argument; opaque positions are not inspected."""
        tags: list[Optional[str]] = [None] * len(values)
        for i in self.table.dispatch_positions:
            tags[i] = type_tag(values[i])
        return tags

    def resolve(self, values: Sequence[Any]) -> Combination:
        """
        Select the specialization for bound argument values.

        Raises:
            TypeMismatchError: If no combination matches exactly
        """
        tags = self.tags(values)
        combo = self.table.lookup(tags)
        if combo is not None:
            logger.debug("%s: dispatching to %s", self.name, combo.identifier)
            return combo

        pos = self.table.first_mismatch(tags)
        raise TypeMismatchError(
            function=self.name,
            argument=self.table.arg_names[pos] if pos is not None else None,
            actual=tags[pos] if pos is not None else "unknown",
            accepted=self.table.accepted(),
            arg_names=self.table.arg_names,
        )

    def select(self, *args, **kwargs) -> Combination:
        """Combination that a call with these arguments would invoke."""
        return self.resolve(self.bind(*args, **kwargs))

    def __call__(self, *args, **kwargs) -> Any:
        values = self.bind(*args, **kwargs)
        combo = self.resolve(values)
        impl = self._impls.get(combo.identifier)
        if impl is None:
            raise NpeError(
                f"{self.name}: no implementation registered for {combo.identifier}",
                NPE_ERROR_INTERNAL,
            )

        views = [make_view(v, t) for v, t in zip(values, combo.types)]
        try:
            result = impl(*views)
            if isinstance(result, Moved):
                result = result.unwrap()
            return result
        finally:
            for view in views:
                if isinstance(view, (DenseView, SparseView)) and not view.is_transferred:
                    view.release()

    def __repr__(self) -> str:
        return (
            f"Dispatcher({self.name}, {len(self.table)} specialization(s), "
            f"{len(self._impls)} registered)"
        )
