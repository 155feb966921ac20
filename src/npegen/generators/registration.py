"""
Registration emitters.

The per-function fragment exposes ``npe_dispatch_<name>`` to the host
interpreter under the declared name. The module fragment declares every
registration function of a build and calls them from one
``PYBIND11_MODULE`` block. The actual registration mechanics belong to
pybind11.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from ..config import CodegenConfig
from ..types.cpp_mapper import CppTypeMapper
from .base import ExpandedFunction, GeneratedFile, TemplateRenderer


class RegistrationEmitter(TemplateRenderer):
    """Emits ``npe_register_<name>(pybind11::module_&)`` for one function."""

    template = "registration.cpp.j2"

    def arguments(self, unit: ExpandedFunction) -> list[dict[str, Optional[str]]]:
        return [
            {"name": arg.name, "default": arg.default}
            for arg in unit.spec.arguments
        ]

    def emit(self, unit: ExpandedFunction) -> str:
        return self.render(
            self.template,
            function=unit.name,
            symbol=unit.register_symbol,
            dispatcher=unit.dispatcher_symbol,
            doc=unit.spec.doc or "",
            arguments=self.arguments(unit),
        )


class ModuleRegistrationEmitter(TemplateRenderer):
    """Emits the translation unit that defines the compiled module."""

    template = "module.cpp.j2"

    def __init__(self, config: CodegenConfig, mapper: Optional[CppTypeMapper] = None):
        super().__init__(mapper)
        self.config = config

    def get_output_path(self, module_name: str) -> Path:
        return self.config.output_dir_abs / f"{module_name}_module.cpp"

    def generate(
        self,
        units: list[ExpandedFunction],
        module_name: Optional[str] = None,
    ) -> GeneratedFile:
        module_name = module_name or self.config.generation.module_name
        content = self.render(
            self.template,
            module=module_name,
            functions=[
                {"name": u.name, "symbol": u.register_symbol, "source": u.spec.path}
                for u in units
            ],
        )
        return GeneratedFile(path=self.get_output_path(module_name), content=content)
