"""
Type-set resolution.

Turns every argument's declared type tokens (or constraint) into its ordered,
deduplicated set of concrete types. Arguments are resolved in declaration
order, so a constraint may only reference an argument declared before it.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..errors import DeclarationSyntaxError, UnresolvedReferenceError
from ..parser.spec_types import ArgumentSpec, ConstraintKind, FunctionSpec
from .registry import ConcreteType, TypeRegistry

logger = logging.getLogger("npegen.resolver")


class TypeSetResolver:
    """
    Resolves declared type lists to concrete type sets.

    Rules:
    - literal tokens map one-to-one through the registry; duplicates collapse
      and first-declared order is kept
    - an argument is either all numeric tags or exactly one opaque host type
    - ``matches(x)`` copies x's resolved set; ``dense_like(x)`` and
      ``sparse_like(x)`` map it element-wise
    """

    def __init__(self, registry: Optional[TypeRegistry] = None):
        self.registry = registry or TypeRegistry()

    def resolve(self, spec: FunctionSpec) -> FunctionSpec:
        """
        Resolve every argument of ``spec``.

        Returns:
            A new FunctionSpec whose arguments carry their concrete type sets

        Raises:
            UnresolvedReferenceError: A constraint names an unknown, later or
                self argument, or derives storage from an opaque argument
            DeclarationSyntaxError: An argument's literal type list is invalid
        """
        resolved: dict[str, ArgumentSpec] = {}
        declared = {a.name for a in spec.arguments}
        out = []
        for arg in spec.arguments:
            if arg.constraint is not None:
                types = self._resolve_constraint(arg, resolved, declared)
            else:
                types = self._resolve_literals(arg)
            new_arg = arg.with_types(types)
            resolved[arg.name] = new_arg
            out.append(new_arg)
            logger.debug(
                "%s.%s -> {%s}", spec.name, arg.name, ", ".join(t.tag for t in types)
            )
        return spec.with_arguments(tuple(out))

    def _resolve_literals(self, arg: ArgumentSpec) -> tuple[ConcreteType, ...]:
        if not arg.type_tokens:
            raise DeclarationSyntaxError(
                f"argument '{arg.name}' declares no types",
                location=arg.location,
                construct="npe_arg",
            )

        numeric: list[ConcreteType] = []
        opaque: list[str] = []
        for token in arg.type_tokens:
            ctype = self.registry.lookup(token)
            if ctype is not None:
                if ctype not in numeric:
                    numeric.append(ctype)
            elif self.registry.is_tag_shaped(token):
                raise DeclarationSyntaxError(
                    f"argument '{arg.name}': unknown type tag '{token}'",
                    location=arg.location,
                    construct="npe_arg",
                )
            else:
                opaque.append(token)

        if numeric and opaque:
            raise DeclarationSyntaxError(
                f"argument '{arg.name}' mixes numeric type tags with host type "
                f"'{opaque[0]}'",
                location=arg.location,
                construct="npe_arg",
            )
        if len(opaque) > 1:
            raise DeclarationSyntaxError(
                f"argument '{arg.name}' declares more than one host type "
                f"({', '.join(opaque)})",
                location=arg.location,
                construct="npe_arg",
            )
        if opaque:
            return (ConcreteType.opaque(opaque[0]),)
        return tuple(numeric)

    def _resolve_constraint(
        self,
        arg: ArgumentSpec,
        resolved: dict[str, ArgumentSpec],
        declared: set[str],
    ) -> tuple[ConcreteType, ...]:
        constraint = arg.constraint
        ref = constraint.reference
        if ref == arg.name:
            raise UnresolvedReferenceError(
                f"argument '{arg.name}' cannot reference itself in {constraint}",
                argument=arg.name,
                reference=ref,
                location=arg.location,
            )
        referent = resolved.get(ref)
        if referent is None:
            if ref in declared:
                message = (
                    f"argument '{arg.name}' references '{ref}' before it is declared"
                )
            else:
                message = f"argument '{arg.name}' references unknown argument '{ref}'"
            raise UnresolvedReferenceError(
                message, argument=arg.name, reference=ref, location=arg.location
            )

        if constraint.kind is ConstraintKind.MATCHES:
            return referent.types

        if referent.is_opaque:
            raise UnresolvedReferenceError(
                f"argument '{arg.name}': {constraint} needs a numeric referent, "
                f"'{ref}' is {referent.types[0].host_type}",
                argument=arg.name,
                reference=ref,
                location=arg.location,
            )
        projected: list[ConcreteType] = []
        for ctype in referent.types:
            p = constraint.project(ctype)
            if p not in projected:
                projected.append(p)
        return tuple(projected)


def resolve(spec: FunctionSpec, registry: Optional[TypeRegistry] = None) -> FunctionSpec:
    """Convenience wrapper around :class:`TypeSetResolver`."""
    return TypeSetResolver(registry).resolve(spec)
