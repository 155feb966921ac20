"""
Dispatcher emitter.

Emits the single runtime entry point of a function. The entry point reads
the type tag of every numeric argument once, tests the dispatch table in
generation order and calls the first specialization whose types match
exactly. Opaque arguments are converted by the binding layer and passed
through. A table miss always ends in ``npe::type_mismatch_error``.
"""

from __future__ import annotations

from ..types.expander import Combination
from .base import ExpandedFunction, TemplateRenderer


def tag_variable(name: str) -> str:
    return f"npe_tag_{name}"


class DispatcherEmitter(TemplateRenderer):
    """Emits ``npe_dispatch_<name>`` for one expanded function."""

    template = "dispatcher.cpp.j2"

    def parameters(self, unit: ExpandedFunction) -> list[dict[str, str]]:
        params = []
        for arg in unit.spec.arguments:
            if arg.is_opaque:
                ptype = self.mapper.param_type(arg.types[0])
            else:
                ptype = "pybind11::object"
            params.append({"name": arg.name, "type": ptype})
        return params

    def condition(self, unit: ExpandedFunction, combo: Combination) -> str:
        tests = [
            f"{tag_variable(combo.arg_names[i])} == {self.mapper.type_tag(combo.types[i])}"
            for i in unit.table.dispatch_positions
        ]
        return " && ".join(tests) if tests else "true"

    def call_arguments(self, combo: Combination) -> list[str]:
        args = []
        for name, ctype in zip(combo.arg_names, combo.types):
            if ctype.is_opaque:
                args.append(name)
            else:
                args.append(f"{self.mapper.param_type(ctype)}({name})")
        return args

    def entries(self, unit: ExpandedFunction) -> list[dict]:
        return [
            {
                "identifier": combo.identifier,
                "condition": self.condition(unit, combo),
                "arguments": self.call_arguments(combo),
            }
            for combo in unit.table
        ]

    def emit(self, unit: ExpandedFunction) -> str:
        table = unit.table
        dispatched = [table.arg_names[i] for i in table.dispatch_positions]
        return self.render(
            self.template,
            function=unit.name,
            symbol=unit.dispatcher_symbol,
            params=self.parameters(unit),
            dispatched=dispatched,
            tag_variable=tag_variable,
            entries=self.entries(unit),
            accepted=[
                [combo.types[i].tag for i in table.dispatch_positions]
                for combo in table
            ],
        )
