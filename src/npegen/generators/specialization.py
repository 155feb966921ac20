"""
Specialization emitter.

Emits one self-contained C++ function per combination. The author's body is
copied verbatim, except that the bound type aliases of every argument

    npe_Matrix_<arg>   owning Eigen type with the argument's scalar/storage
    npe_Scalar_<arg>   scalar type
    npe_Map_<arg>      non-owning view type of the parameter

are replaced by the concrete spellings for that combination. Replacement is
token-based, so occurrences inside comments and string literals are kept.
"""

from __future__ import annotations

from ..errors import NpeError, NPE_ERROR_INTERNAL
from ..parser.scanner import TokenKind, tokenize
from ..types.expander import Combination
from .base import ExpandedFunction, TemplateRenderer

ALIAS_PREFIXES = ("npe_Matrix_", "npe_Scalar_", "npe_Map_")


class SpecializationEmitter(TemplateRenderer):
    """Emits the specialization functions of one expanded function."""

    template = "specialization.cpp.j2"

    def aliases(self, combo: Combination) -> dict[str, str]:
        """Alias identifier -> concrete C++ type under ``combo``."""
        out = {}
        for name, ctype in zip(combo.arg_names, combo.types):
            binding = self.mapper.bind(ctype)
            out[f"npe_Matrix_{name}"] = binding.matrix_type
            out[f"npe_Scalar_{name}"] = binding.scalar_type
            out[f"npe_Map_{name}"] = binding.map_type
        return out

    def substitute(self, body: str, aliases: dict[str, str]) -> str:
        """Replace alias identifiers in ``body``; everything else is kept."""
        parts = []
        last = 0
        for tok in tokenize(body):
            if tok.kind is TokenKind.IDENT and tok.text in aliases:
                parts.append(body[last:tok.start])
                parts.append(aliases[tok.text])
                last = tok.end
        parts.append(body[last:])
        return "".join(parts)

    def parameters(self, combo: Combination) -> list[dict[str, str]]:
        return [
            {"name": name, "type": self.mapper.param_type(ctype)}
            for name, ctype in zip(combo.arg_names, combo.types)
        ]

    def emit_one(self, unit: ExpandedFunction, combo: Combination) -> str:
        return self.render(
            self.template,
            combo=combo,
            params=self.parameters(combo),
            body=self.substitute(unit.spec.body, self.aliases(combo)),
            function=unit.name,
        )

    def emit(self, unit: ExpandedFunction) -> list[str]:
        """
        Emit every specialization, in dispatch-table order.

        Raises:
            NpeError: If two combinations map to the same symbol
        """
        symbols = unit.table.identifiers
        if len(set(symbols)) != len(symbols):
            raise NpeError(
                f"{unit.name}: specialization symbols are not unique", NPE_ERROR_INTERNAL
            )
        return [self.emit_one(unit, combo) for combo in unit.table]
