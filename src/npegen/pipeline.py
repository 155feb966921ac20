"""
Generation pipeline.

Runs Scanner -> Resolver -> Expander -> emitters once per annotated source.
Every artifact of a file is rendered in memory before anything is written,
so a file that fails at any stage leaves no partial output behind. A failure
in one file never affects the other files of a build.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional, Union

from .config import CodegenConfig, SOURCE_SUFFIXES
from .errors import ConfigurationError, FileAccessError, NpeError
from .generators import (
    ExpandedFunction,
    GeneratedFile,
    Generator,
    ManifestGenerator,
    ModuleRegistrationEmitter,
    NativeSourceGenerator,
    StubGenerator,
)
from .parser.scanner import AnnotationScanner
from .types.expander import CombinationExpander
from .types.resolver import TypeSetResolver

logger = logging.getLogger("npegen.pipeline")


def find_sources(
    source_dir: Path,
    suffixes: tuple[str, ...] = SOURCE_SUFFIXES,
    exclude_dirs: Optional[set[str]] = None,
) -> list[Path]:
    """Find all annotated sources in a directory (generated files excluded)."""
    if exclude_dirs is None:
        exclude_dirs = {"__pycache__", ".git", "build"}

    sources = []
    for path in source_dir.rglob("*"):
        if path.suffix not in suffixes or not path.is_file():
            continue
        # Skip excluded directories and our own output
        if any(excl in path.relative_to(source_dir).parts for excl in exclude_dirs):
            continue
        if path.name.endswith(".npe.cpp") or path.name.endswith("_module.cpp"):
            continue
        sources.append(path)

    return sorted(sources)


@dataclass
class FileResult:
    """Outcome of generating one annotated source."""
    source: Path
    unit: Optional[ExpandedFunction] = None
    files: list[GeneratedFile] = field(default_factory=list)
    written: list[Path] = field(default_factory=list)
    error: Optional[NpeError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class BuildResult:
    """Outcome of building one module from several sources."""
    module_name: str
    results: list[FileResult] = field(default_factory=list)
    module_file: Optional[GeneratedFile] = None

    @property
    def ok(self) -> bool:
        return all(r.ok for r in self.results)

    @property
    def failures(self) -> list[FileResult]:
        return [r for r in self.results if not r.ok]

    @property
    def units(self) -> list[ExpandedFunction]:
        return [r.unit for r in self.results if r.ok]


class GenerationPipeline:
    """
    Per-file generation driver.

    Args:
        config: Codegen configuration (defaults to CodegenConfig())
    """

    def __init__(self, config: Optional[CodegenConfig] = None):
        self.config = config or CodegenConfig()
        self.scanner = AnnotationScanner()
        self.resolver = TypeSetResolver()
        self.expander = CombinationExpander(self.config.generation.max_combinations)

        self.generators: list[Generator] = [NativeSourceGenerator(self.config)]
        if self.config.generation.emit_stubs:
            self.generators.append(StubGenerator(self.config))
        if self.config.generation.emit_manifest:
            self.generators.append(ManifestGenerator(self.config))
        self.module_emitter = ModuleRegistrationEmitter(self.config)

    # -------------------------------------------------------------------------
    # Stages
    # -------------------------------------------------------------------------

    def expand_text(self, text: str, path: Optional[Path] = None) -> ExpandedFunction:
        """Scan, resolve and expand annotated source text."""
        spec = self.scanner.parse_text(text, path=path)
        spec = self.resolver.resolve(spec)
        table = self.expander.expand(spec)
        logger.info(
            "%s: %d specialization(s) of %s", path or spec.name, len(table), spec.name
        )
        return ExpandedFunction(spec=spec, table=table)

    def expand_file(self, path: Path) -> ExpandedFunction:
        path = Path(path)
        try:
            text = path.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise FileAccessError(
                f"cannot decode byte 0x{e.object[e.start]:02x} at offset {e.start}",
                path=path,
                offset=e.start,
            ) from e
        except OSError as e:
            raise FileAccessError(f"cannot read source: {e.strerror or e}", path=path) from e
        return self.expand_text(text, path=path)

    def render(self, unit: ExpandedFunction) -> list[GeneratedFile]:
        """Render every artifact of one function in memory."""
        return [g.generate(unit) for g in self.generators]

    def write(self, files: Iterable[GeneratedFile]) -> list[Path]:
        """
        Write rendered artifacts, all or none.

        Each artifact is staged next to its target and renamed into place
        only once every artifact has been staged.

        Raises:
            FileAccessError: If staging fails; staged files are removed
        """
        staged: list[tuple[Path, Path]] = []
        target: Optional[Path] = None
        try:
            for result in files:
                target = result.path
                # Check if file exists and overwrite is disabled
                if result.path.exists() and not self.config.generation.overwrite:
                    logger.info("Skipping (exists): %s", result.path)
                    continue
                result.path.parent.mkdir(parents=True, exist_ok=True)
                tmp = result.path.with_name(result.path.name + ".tmp")
                staged.append((tmp, result.path))
                tmp.write_text(result.content, encoding="utf-8")
        except OSError as e:
            for tmp, _ in staged:
                tmp.unlink(missing_ok=True)
            raise FileAccessError(f"cannot write: {e.strerror or e}", path=target) from e

        written = []
        for tmp, target in staged:
            tmp.replace(target)
            logger.debug("Generated: %s", target)
            written.append(target)
        return written

    # -------------------------------------------------------------------------
    # Drivers
    # -------------------------------------------------------------------------

    def _failed(self, path: Path, error: NpeError) -> FileResult:
        logger.error("Error processing %s: %s", path, error)
        return FileResult(source=path, error=error)

    def _commit(self, result: FileResult) -> FileResult:
        """Write a rendered result; a write failure fails the file."""
        try:
            result.written = self.write(result.files)
        except FileAccessError as e:
            return self._failed(result.source, e)
        return result

    def _claim_outputs(self, result: FileResult, claimed: dict[Path, Path]) -> FileResult:
        """Fail a result whose artifacts another source of this run already produces."""
        for generated in result.files:
            owner = claimed.get(generated.path)
            if owner is not None:
                return self._failed(
                    result.source,
                    ConfigurationError(
                        f"{result.source}: output {generated.path.name} is already "
                        f"generated from {owner}"
                    ),
                )
        for generated in result.files:
            claimed[generated.path] = result.source
        return result

    def process(self, path: Path, write: bool = True) -> FileResult:
        """
        Generate all artifacts of one source.

        Build-time errors are captured in the result, not raised.
        """
        path = Path(path)
        try:
            unit = self.expand_file(path)
            files = self.render(unit)
        except NpeError as e:
            return self._failed(path, e)

        result = FileResult(source=path, unit=unit, files=files)
        if write:
            result = self._commit(result)
        return result

    def generate(self, paths: Iterable[Path], write: bool = True) -> list[FileResult]:
        """Generate several sources; sources whose outputs collide fail after the first."""
        claimed: dict[Path, Path] = {}
        results = []
        for path in paths:
            result = self.process(path, write=False)
            if result.ok:
                result = self._claim_outputs(result, claimed)
            if result.ok and write:
                result = self._commit(result)
            results.append(result)
        return results

    def build_module(
        self,
        paths: Iterable[Path],
        module_name: Optional[str] = None,
        write: bool = True,
    ) -> BuildResult:
        """
        Generate every source of a module plus the module fragment.

        The module fragment registers the functions of the sources that
        generated successfully. A duplicate function name or an output path
        shared with an earlier source fails the later file.
        """
        module_name = module_name or self.config.generation.module_name
        if not module_name.isidentifier():
            raise ConfigurationError(f"Invalid module name: {module_name!r}")

        build = BuildResult(module_name=module_name)
        seen: dict[str, Path] = {}
        claimed: dict[Path, Path] = {}
        for path in paths:
            result = self.process(path, write=False)
            if result.ok:
                name = result.unit.name
                if name in seen:
                    result = self._failed(
                        result.source,
                        ConfigurationError(
                            f"{path}: function '{name}' is already defined in {seen[name]}"
                        ),
                    )
                else:
                    result = self._claim_outputs(result, claimed)
            if result.ok:
                seen[result.unit.name] = result.source
                if write:
                    result = self._commit(result)
            build.results.append(result)

        build.module_file = self.module_emitter.generate(build.units, module_name)
        if write:
            self.write([build.module_file])

        logger.info(
            "Module %s: %d function(s), %d failure(s)",
            module_name,
            len(build.units),
            len(build.failures),
        )
        return build


def build_module(
    sources: Iterable[Union[str, Path]],
    module_name: Optional[str] = None,
    config: Optional[CodegenConfig] = None,
    write: bool = True,
) -> BuildResult:
    """
    Build integration entry point: annotated sources in, one module out.

    Example:
        >>> result = build_module(["src/foo.cpp", "src/bar.cpp"], "mymodule")
        >>> result.ok
        True
    """
    pipeline = GenerationPipeline(config)
    return pipeline.build_module([Path(s) for s in sources], module_name, write=write)
