"""
Combination expansion.

Arguments linked by constraints are partitioned into type classes with a
union-find; the cross-product is taken over classes, never over arguments,
so matched arguments do not multiply the number of specializations.

Enumeration order: the first class (by declaration of its representative) is
the outermost loop, later classes vary faster. This order is preserved in
the DispatchTable and decides dispatch priority.
"""

from __future__ import annotations

import itertools
import json
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Iterator, Optional, Sequence

from ..errors import ConfigurationError
from ..parser.spec_types import ArgumentSpec, FunctionSpec
from .registry import ConcreteType

logger = logging.getLogger("npegen.expander")

SYMBOL_PREFIX = "npe_"

DEFAULT_MAX_COMBINATIONS = 256


# =============================================================================
# Union-Find
# =============================================================================

class UnionFind:
    """Disjoint sets over argument names; the earliest-declared name is the root."""

    def __init__(self, names: Sequence[str]):
        self._order = {name: i for i, name in enumerate(names)}
        self._parent = {name: name for name in names}

    def find(self, name: str) -> str:
        root = name
        while self._parent[root] != root:
            root = self._parent[root]
        while self._parent[name] != root:
            self._parent[name], name = root, self._parent[name]
        return root

    def union(self, a: str, b: str) -> str:
        ra, rb = self.find(a), self.find(b)
        if ra == rb:
            return ra
        if self._order[rb] < self._order[ra]:
            ra, rb = rb, ra
        self._parent[rb] = ra
        return ra

    def groups(self) -> dict[str, list[str]]:
        out: dict[str, list[str]] = {}
        for name in sorted(self._order, key=self._order.__getitem__):
            out.setdefault(self.find(name), []).append(name)
        return out


# =============================================================================
# Data Model
# =============================================================================

@dataclass(frozen=True)
class TypeClass:
    """Arguments whose types are fixed together by constraints."""
    representative: ArgumentSpec
    members: tuple[str, ...]

    @property
    def types(self) -> tuple[ConcreteType, ...]:
        return self.representative.types

    @property
    def size(self) -> int:
        return len(self.types)

    @property
    def is_numeric(self) -> bool:
        return not self.representative.is_opaque


@dataclass(frozen=True)
class Combination:
    """One full per-argument type assignment and its specialization symbol."""
    index: int
    arg_names: tuple[str, ...]
    types: tuple[ConcreteType, ...]
    identifier: str

    @property
    def tags(self) -> tuple[str, ...]:
        return tuple(t.tag for t in self.types)

    def type_of(self, name: str) -> ConcreteType:
        return self.types[self.arg_names.index(name)]

    def as_dict(self) -> dict[str, ConcreteType]:
        return dict(zip(self.arg_names, self.types))

    def __str__(self) -> str:
        return f"{self.identifier}(" + ", ".join(self.tags) + ")"


@dataclass(frozen=True)
class DispatchTable:
    """
    Ordered combinations of one function, in generation order.

    Only numeric arguments take part in dispatch; opaque arguments are
    converted by the binding layer and never compared.
    """
    function: str
    arg_names: tuple[str, ...]
    combinations: tuple[Combination, ...]
    dispatch_positions: tuple[int, ...] = ()
    defaults: tuple[Optional[str], ...] = field(default=())

    def __len__(self) -> int:
        return len(self.combinations)

    def __iter__(self) -> Iterator[Combination]:
        return iter(self.combinations)

    def __getitem__(self, index: int) -> Combination:
        return self.combinations[index]

    @property
    def identifiers(self) -> list[str]:
        return [c.identifier for c in self.combinations]

    def accepted(self) -> list[tuple[str, ...]]:
        """Accepted combinations as tag tuples, in dispatch order."""
        return [c.tags for c in self.combinations]

    def entry_matches(self, combo: Combination, tags: Sequence[Optional[str]]) -> bool:
        return all(combo.types[i].tag == tags[i] for i in self.dispatch_positions)

    def lookup(self, tags: Sequence[Optional[str]]) -> Optional[Combination]:
        """
        First combination whose dispatched types equal ``tags`` exactly.

        Args:
            tags: One type tag per argument (opaque positions are ignored)
        """
        for combo in self.combinations:
            if self.entry_matches(combo, tags):
                return combo
        return None

    def first_mismatch(self, tags: Sequence[Optional[str]]) -> Optional[int]:
        """
        Position of the first dispatched argument that no combination
        consistent with the preceding arguments accepts.
        """
        candidates = list(self.combinations)
        for i in self.dispatch_positions:
            candidates = [c for c in candidates if c.types[i].tag == tags[i]]
            if not candidates:
                return i
        return None

    def to_dict(self) -> dict[str, Any]:
        defaults = self.defaults or (None,) * len(self.arg_names)
        return {
            "function": self.function,
            "arguments": [
                {"name": n, "default": d} for n, d in zip(self.arg_names, defaults)
            ],
            "dispatch_positions": list(self.dispatch_positions),
            "combinations": [
                {"identifier": c.identifier, "types": list(c.tags)}
                for c in self.combinations
            ],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DispatchTable":
        names = tuple(a["name"] for a in data["arguments"])
        combos = tuple(
            Combination(
                index=i,
                arg_names=names,
                types=tuple(ConcreteType.from_tag(t) for t in entry["types"]),
                identifier=entry["identifier"],
            )
            for i, entry in enumerate(data["combinations"])
        )
        return cls(
            function=data["function"],
            arg_names=names,
            combinations=combos,
            dispatch_positions=tuple(data["dispatch_positions"]),
            defaults=tuple(a.get("default") for a in data["arguments"]),
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2) + "\n"

    @classmethod
    def from_json(cls, text: str) -> "DispatchTable":
        return cls.from_dict(json.loads(text))


# =============================================================================
# Expander
# =============================================================================

class CombinationExpander:
    """
    Expands a resolved FunctionSpec into its DispatchTable.

    Args:
        max_combinations: Upper bound on the number of specializations;
            None disables the check
    """

    def __init__(self, max_combinations: Optional[int] = DEFAULT_MAX_COMBINATIONS):
        self.max_combinations = max_combinations

    def partition(self, spec: FunctionSpec) -> list[TypeClass]:
        """Type classes in declaration order of their representatives."""
        if not spec.is_resolved:
            raise ValueError(f"{spec.name}: arguments must be resolved before expansion")
        uf = UnionFind(spec.arg_names)
        for arg in spec.arguments:
            if arg.constraint is not None:
                uf.union(arg.constraint.reference, arg.name)
        return [
            TypeClass(representative=spec.argument(root), members=tuple(members))
            for root, members in uf.groups().items()
        ]

    def count(self, spec: FunctionSpec) -> int:
        """Number of combinations, computed without enumerating them."""
        return math.prod(c.size for c in self.partition(spec))

    def check_limit(self, spec: FunctionSpec, classes: list[TypeClass]) -> int:
        total = math.prod(c.size for c in classes)
        if self.max_combinations is not None and total > self.max_combinations:
            sizes = " x ".join(
                f"{c.representative.name}[{c.size}]" for c in classes if c.size > 1
            )
            raise ConfigurationError(
                f"{spec.name}: expansion yields {total} specializations "
                f"({sizes}), more than max_combinations={self.max_combinations}"
            )
        return total

    def expand(self, spec: FunctionSpec) -> DispatchTable:
        """
        Enumerate all valid combinations.

        Raises:
            ConfigurationError: If the expansion exceeds ``max_combinations``
        """
        classes = self.partition(spec)
        total = self.check_limit(spec, classes)
        roots = [c.representative.name for c in classes]
        numeric_roots = {c.representative.name for c in classes if c.is_numeric}

        combos = []
        for index, choice in enumerate(itertools.product(*(c.types for c in classes))):
            assigned: dict[str, ConcreteType] = dict(zip(roots, choice))
            for arg in spec.arguments:
                if arg.constraint is not None:
                    assigned[arg.name] = arg.constraint.project(
                        assigned[arg.constraint.reference]
                    )
            fragments = [assigned[r].symbol_fragment for r in roots if r in numeric_roots]
            combos.append(Combination(
                index=index,
                arg_names=tuple(spec.arg_names),
                types=tuple(assigned[n] for n in spec.arg_names),
                identifier=specialization_identifier(spec.name, fragments),
            ))

        logger.debug(
            "%s: %d type class(es), %d combination(s)", spec.name, len(classes), total
        )
        return DispatchTable(
            function=spec.name,
            arg_names=tuple(spec.arg_names),
            combinations=tuple(combos),
            dispatch_positions=tuple(
                a.position for a in spec.arguments if not a.is_opaque
            ),
            defaults=tuple(a.default for a in spec.arguments),
        )


def specialization_identifier(function: str, fragments: Sequence[str]) -> str:
    """Symbol of one specialization, e.g. ``npe_foo__dense_f64__csr_f32``."""
    if not fragments:
        return f"{SYMBOL_PREFIX}{function}__generic"
    return f"{SYMBOL_PREFIX}{function}__" + "__".join(fragments)
