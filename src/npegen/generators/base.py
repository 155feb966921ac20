"""
Base classes for code generators.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from jinja2 import Environment, FileSystemLoader, PackageLoader, select_autoescape

from ..config import CodegenConfig
from ..parser.spec_types import FunctionSpec
from ..types.cpp_mapper import CppTypeMapper
from ..types.expander import DispatchTable


@dataclass
class GeneratedFile:
    """Represents a generated file."""
    path: Path
    content: str
    source: Optional[Path] = None  # Annotated source file


@dataclass(frozen=True)
class ExpandedFunction:
    """A resolved declaration together with its dispatch table."""
    spec: FunctionSpec
    table: DispatchTable

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def dispatcher_symbol(self) -> str:
        return f"npe_dispatch_{self.spec.name}"

    @property
    def register_symbol(self) -> str:
        return f"npe_register_{self.spec.name}"


def _create_jinja_env() -> Environment:
    """Create and configure the Jinja2 environment."""
    options = dict(
        autoescape=select_autoescape(default=False),
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
    )
    try:
        env = Environment(loader=PackageLoader("npegen", "templates"), **options)
    except (ValueError, ImportError):
        # Fallback: load from the source tree
        templates_dir = Path(__file__).parent.parent / "templates"
        env = Environment(loader=FileSystemLoader(str(templates_dir)), **options)

    env.filters["cpp_string"] = cpp_string_literal
    env.filters["raw_string"] = cpp_raw_string_literal
    return env


class TemplateRenderer:
    """Lazy access to the shared Jinja2 environment."""

    _env: Optional[Environment] = None

    def __init__(self, mapper: Optional[CppTypeMapper] = None):
        self.mapper = mapper or CppTypeMapper()

    @property
    def env(self) -> Environment:
        if TemplateRenderer._env is None:
            TemplateRenderer._env = _create_jinja_env()
        return TemplateRenderer._env

    def render(self, template: str, **context) -> str:
        return self.env.get_template(template).render(**context)


class Generator(TemplateRenderer, ABC):
    """
    Abstract base class for file generators.

    Subclasses implement specific generation logic for different
    artifacts (native source, typing stub, dispatch manifest).
    """

    def __init__(self, config: CodegenConfig, mapper: Optional[CppTypeMapper] = None):
        """
        Initialize the generator.

        Args:
            config: Codegen configuration
            mapper: Type mapper (defaults to CppTypeMapper)
        """
        super().__init__(mapper)
        self.config = config

    @abstractmethod
    def generate(self, unit: ExpandedFunction) -> GeneratedFile:
        """
        Generate one artifact for an expanded function.

        Args:
            unit: Resolved declaration and dispatch table

        Returns:
            Generated file content
        """
        pass

    @abstractmethod
    def get_output_path(self, unit: ExpandedFunction) -> Path:
        """Output file path for an expanded function."""
        pass

    def generate_all(self, units: list[ExpandedFunction]) -> list[GeneratedFile]:
        return [self.generate(u) for u in units]

    def output_path(self, unit: ExpandedFunction, suffix: str) -> Path:
        return self.config.output_dir_abs / f"{unit.spec.module_name}{suffix}"


def cpp_string_literal(text: str) -> str:
    """Quote text as an ordinary C++ string literal."""
    escaped = (
        text.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\t", "\\t")
    )
    return f'"{escaped}"'


def cpp_raw_string_literal(text: str) -> str:
    """Quote text as a C++ raw string literal with a non-colliding delimiter."""
    delim = "npe_doc"
    n = 0
    while f"){delim}\"" in text:
        n += 1
        delim = f"npe_doc{n}"
    return f'R"{delim}({text}){delim}"'

