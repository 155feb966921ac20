"""
Tests for configuration loading.
"""

from pathlib import Path

import pytest

from npegen.config import CONFIG_ENV_VAR, CodegenConfig, GenerationConfig
from npegen.errors import ConfigurationError


CONFIG_TEXT = """\
[paths]
source_dir = "native"
output_dir = "generated"

[generation]
overwrite = false
max_combinations = 64
emit_stubs = false
module_name = "fastmath"
"""


class TestDefaults:
    """Test default configuration values."""

    def test_defaults(self):
        config = CodegenConfig()
        assert config.generation.max_combinations == 256
        assert config.generation.overwrite is True
        assert config.generation.emit_stubs is True
        assert config.generation.emit_manifest is True
        assert config.generation.module_name == "npe_module"
        assert config.paths.output_dir == Path("build/npegen")

    def test_string_root(self, tmp_path):
        config = CodegenConfig(project_root=str(tmp_path))
        assert config.project_root == tmp_path
        assert config.source_dir_abs == tmp_path / "src"


class TestFromFile:
    """Test TOML loading."""

    def test_from_file(self, tmp_path):
        path = tmp_path / "npegen.toml"
        path.write_text(CONFIG_TEXT)
        config = CodegenConfig.from_file(path)
        assert config.project_root == tmp_path
        assert config.source_dir_abs == tmp_path / "native"
        assert config.output_dir_abs == tmp_path / "generated"
        assert config.generation.overwrite is False
        assert config.generation.max_combinations == 64
        assert config.generation.emit_stubs is False
        assert config.generation.emit_manifest is True
        assert config.generation.module_name == "fastmath"

    def test_zero_disables_limit(self, tmp_path):
        path = tmp_path / "npegen.toml"
        path.write_text("[generation]\nmax_combinations = 0\n")
        assert CodegenConfig.from_file(path).generation.max_combinations is None

    def test_invalid_toml(self, tmp_path):
        path = tmp_path / "npegen.toml"
        path.write_text("[generation\n")
        with pytest.raises(ConfigurationError):
            CodegenConfig.from_file(path)

    @pytest.mark.parametrize("text", [
        "[generation]\nmax_combinations = -3\n",
        "[generation]\nmax_combinations = \"many\"\n",
        "[generation]\nmodule_name = \"my-module\"\n",
    ])
    def test_invalid_values(self, tmp_path, text):
        path = tmp_path / "npegen.toml"
        path.write_text(text)
        with pytest.raises(ConfigurationError):
            CodegenConfig.from_file(path)

    def test_validate(self):
        with pytest.raises(ConfigurationError):
            GenerationConfig(max_combinations=True).validate()


class TestDiscovery:
    """Test configuration discovery."""

    def test_find_in_parent(self, tmp_path):
        (tmp_path / "npegen.toml").write_text(CONFIG_TEXT)
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert CodegenConfig.find_config(nested) == (tmp_path / "npegen.toml").resolve()

    def test_load_explicit(self, tmp_path):
        path = tmp_path / "custom.toml"
        path.write_text(CONFIG_TEXT)
        assert CodegenConfig.load(path).generation.module_name == "fastmath"

    def test_load_missing_explicit(self, tmp_path):
        with pytest.raises(ConfigurationError):
            CodegenConfig.load(tmp_path / "missing.toml")

    def test_load_from_env(self, tmp_path, monkeypatch):
        path = tmp_path / "env.toml"
        path.write_text(CONFIG_TEXT)
        monkeypatch.setenv(CONFIG_ENV_VAR, str(path))
        assert CodegenConfig.load().generation.module_name == "fastmath"

    def test_env_points_to_missing_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv(CONFIG_ENV_VAR, str(tmp_path / "nope.toml"))
        with pytest.raises(ConfigurationError, match=CONFIG_ENV_VAR):
            CodegenConfig.load()

    def test_load_defaults(self, tmp_path, monkeypatch):
        monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
        monkeypatch.chdir(tmp_path)
        monkeypatch.setattr(CodegenConfig, "find_config", classmethod(lambda cls, start=None: None))
        config = CodegenConfig.load()
        assert config.project_root.resolve() == tmp_path.resolve()
        assert config.generation.module_name == "npe_module"
