"""
Native translation unit generator.

Assembles one ``<stem>.npe.cpp`` per annotated source: the author's host code
before the declaration, every specialization, the dispatcher, the
registration function, and the host code after ``npe_end_code()``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from ..config import CodegenConfig
from ..types.cpp_mapper import CppTypeMapper
from .base import ExpandedFunction, GeneratedFile, Generator
from .dispatcher import DispatcherEmitter
from .registration import RegistrationEmitter
from .specialization import SpecializationEmitter


class NativeSourceGenerator(Generator):
    """Generator for the C++ translation unit of one function."""

    template = "translation_unit.cpp.j2"

    def __init__(self, config: CodegenConfig, mapper: Optional[CppTypeMapper] = None):
        super().__init__(config, mapper)
        self.specializations = SpecializationEmitter(self.mapper)
        self.dispatcher = DispatcherEmitter(self.mapper)
        self.registration = RegistrationEmitter(self.mapper)

    def get_output_path(self, unit: ExpandedFunction) -> Path:
        return self.output_path(unit, ".npe.cpp")

    def generate(self, unit: ExpandedFunction) -> GeneratedFile:
        content = self.render(
            self.template,
            unit=unit,
            source=unit.spec.path.name if unit.spec.path else unit.name,
            preamble=unit.spec.preamble,
            specializations=self.specializations.emit(unit),
            dispatcher=self.dispatcher.emit(unit),
            registration=self.registration.emit(unit),
            epilogue=unit.spec.epilogue,
        )
        return GeneratedFile(
            path=self.get_output_path(unit),
            content=content,
            source=unit.spec.path,
        )
