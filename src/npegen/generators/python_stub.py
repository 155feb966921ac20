"""
Python typing stub generator.

Generates a ``.pyi`` stub for each compiled function so that IDEs and type
checkers see the declared signature, with the accepted type combinations
listed in the docstring.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from ..parser.spec_types import ArgumentSpec
from .base import ExpandedFunction, GeneratedFile, Generator


@dataclass
class FunctionStub:
    """Function stub for .pyi generation."""
    name: str
    params: List[str]  # ["a: numpy.ndarray", "k: int = ...", ...]
    return_type: str = "Any"
    doc_lines: List[str] = field(default_factory=list)


class StubGenerator(Generator):
    """Generator for ``<stem>.pyi`` typing stubs."""

    template = "stub.pyi.j2"

    def get_output_path(self, unit: ExpandedFunction) -> Path:
        return self.output_path(unit, ".pyi")

    def annotation(self, arg: ArgumentSpec) -> str:
        names: list[str] = []
        for ctype in arg.types:
            pyi = self.mapper.pyi_type(ctype)
            if pyi not in names:
                names.append(pyi)
        if len(names) == 1:
            return names[0]
        return "Union[" + ", ".join(names) + "]"

    def build_stub(self, unit: ExpandedFunction) -> FunctionStub:
        params = []
        for arg in unit.spec.arguments:
            param = f"{arg.name}: {self.annotation(arg)}"
            if arg.has_default:
                param += " = ..."
            params.append(param)

        doc_lines = []
        if unit.spec.doc:
            doc_lines.extend(unit.spec.doc.strip().splitlines())
            doc_lines.append("")
        table = unit.table
        dispatched = [table.arg_names[i] for i in table.dispatch_positions]
        if dispatched:
            doc_lines.append(f"Accepted combinations ({', '.join(dispatched)}):")
            for combo in table:
                tags = [combo.types[i].tag for i in table.dispatch_positions]
                doc_lines.append("    (" + ", ".join(tags) + ")")

        return FunctionStub(name=unit.name, params=params, doc_lines=doc_lines)

    def generate(self, unit: ExpandedFunction) -> GeneratedFile:
        stub = self.build_stub(unit)
        content = self.render(
            self.template,
            stub=stub,
            source=unit.spec.path.name if unit.spec.path else unit.name,
            uses_union=any("Union[" in p for p in stub.params),
        )
        return GeneratedFile(
            path=self.get_output_path(unit),
            content=content,
            source=unit.spec.path,
        )
