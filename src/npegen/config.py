"""
Configuration system for npegen.

Supports:
- TOML configuration files (npegen.toml)
- CLI argument overrides
- Environment variable fallback (NPEGEN_CONFIG)
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from .errors import ConfigurationError
from .types.expander import DEFAULT_MAX_COMBINATIONS

CONFIG_FILENAME = "npegen.toml"
CONFIG_ENV_VAR = "NPEGEN_CONFIG"

# Suffixes of annotated sources picked up when a directory is given
SOURCE_SUFFIXES = (".cpp", ".cc", ".cxx")


@dataclass
class PathsConfig:
    """Path configuration."""

    source_dir: Path = field(default_factory=lambda: Path("src"))
    output_dir: Path = field(default_factory=lambda: Path("build/npegen"))


@dataclass
class GenerationConfig:
    """Generation options."""

    overwrite: bool = True
    max_combinations: Optional[int] = DEFAULT_MAX_COMBINATIONS
    emit_stubs: bool = True
    emit_manifest: bool = True
    module_name: str = "npe_module"

    def validate(self) -> None:
        if self.max_combinations is not None:
            if isinstance(self.max_combinations, bool) or not isinstance(self.max_combinations, int):
                raise ConfigurationError(
                    f"generation.max_combinations must be an integer, "
                    f"got {self.max_combinations!r}"
                )
            if self.max_combinations < 1:
                raise ConfigurationError(
                    f"generation.max_combinations must be positive, "
                    f"got {self.max_combinations}"
                )
        if not self.module_name.isidentifier():
            raise ConfigurationError(
                f"generation.module_name must be an identifier, got {self.module_name!r}"
            )


@dataclass
class CodegenConfig:
    """Main configuration container."""

    project_root: Path = field(default_factory=Path.cwd)
    paths: PathsConfig = field(default_factory=PathsConfig)
    generation: GenerationConfig = field(default_factory=GenerationConfig)

    def __post_init__(self):
        """Ensure project_root is a Path."""
        if isinstance(self.project_root, str):
            self.project_root = Path(self.project_root)
        self.generation.validate()

    @classmethod
    def from_file(cls, path: Path) -> "CodegenConfig":
        """Load configuration from a TOML file."""
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigurationError(f"{path}: {e}") from e

        return cls._from_dict(data, Path(path).parent)

    @classmethod
    def _from_dict(cls, data: dict, base_path: Path) -> "CodegenConfig":
        """Create config from dictionary."""
        paths_data = data.get("paths", {})
        gen_data = data.get("generation", {})

        paths = PathsConfig(
            source_dir=Path(paths_data.get("source_dir", "src")),
            output_dir=Path(paths_data.get("output_dir", "build/npegen")),
        )

        # 0 in the file disables the limit
        max_combinations = gen_data.get("max_combinations", DEFAULT_MAX_COMBINATIONS)
        if max_combinations == 0:
            max_combinations = None

        generation = GenerationConfig(
            overwrite=gen_data.get("overwrite", True),
            max_combinations=max_combinations,
            emit_stubs=gen_data.get("emit_stubs", True),
            emit_manifest=gen_data.get("emit_manifest", True),
            module_name=gen_data.get("module_name", "npe_module"),
        )

        return cls(
            project_root=base_path,
            paths=paths,
            generation=generation,
        )

    @classmethod
    def find_config(cls, start_path: Optional[Path] = None) -> Optional[Path]:
        """Find npegen.toml in current or parent directories."""
        if start_path is None:
            start_path = Path.cwd()

        current = start_path.resolve()

        for _ in range(10):  # Max 10 levels up
            config_path = current / CONFIG_FILENAME
            if config_path.exists():
                return config_path

            parent = current.parent
            if parent == current:
                break
            current = parent

        return None

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "CodegenConfig":
        """
        Load configuration.

        Order: explicit path, $NPEGEN_CONFIG, auto-discovered npegen.toml,
        defaults rooted at the current directory.
        """
        if config_path is None:
            env_path = os.environ.get(CONFIG_ENV_VAR)
            if env_path:
                config_path = Path(env_path)
                if not config_path.exists():
                    raise ConfigurationError(
                        f"{CONFIG_ENV_VAR} points to missing file {config_path}"
                    )
        if config_path is None:
            config_path = cls.find_config()

        if config_path is not None:
            if not config_path.exists():
                raise ConfigurationError(f"Configuration file not found: {config_path}")
            return cls.from_file(config_path)

        # Return default config with current directory as root
        return cls(project_root=Path.cwd())

    def resolve_path(self, path: Path) -> Path:
        """Resolve a relative path against project root."""
        if path.is_absolute():
            return path
        return self.project_root / path

    @property
    def source_dir_abs(self) -> Path:
        """Absolute path to the annotated source directory."""
        return self.resolve_path(self.paths.source_dir)

    @property
    def output_dir_abs(self) -> Path:
        """Absolute path to the generated output directory."""
        return self.resolve_path(self.paths.output_dir)
