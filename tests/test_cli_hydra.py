"""Tests for the Hydra-based CLI (cli.py)."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest
from hydra import compose, initialize_config_dir
from omegaconf import OmegaConf

from srs_assembler._hydra_conf import CLI_ONLY_KEYS, SrsaConf, register_configs
from srs_assembler.cli import _MODE_DISPATCH, _check_mode, _get_config_dir, _to_project_config
from srs_assembler.models import ProjectConfig

SAMPLE_PROJECT = Path(__file__).resolve().parent.parent / "examples" / "sample_project"


class TestSampleProjectConfig:
    """Verify examples/sample_project/config.yaml composes against the schema."""

    def test_config_loads(self):
        register_configs()
        with initialize_config_dir(config_dir=str(SAMPLE_PROJECT), version_base=None):
            cfg = compose(config_name="config")
            assert cfg.mode == "run"
            assert cfg.no_cache is False
            assert cfg.project_name == "library-portal-srs"
            # Schema defaults fill keys the file leaves out
            assert cfg.generation.min_body_chars == 20

    def test_overrides_apply(self):
        register_configs()
        with initialize_config_dir(config_dir=str(SAMPLE_PROJECT), version_base=None):
            cfg = compose(config_name="config", overrides=["mode=check", "document=out.md", "reconciler.mismatch_threshold=0.6"])
            assert cfg.mode == "check"
            assert cfg.document == "out.md"
            assert cfg.reconciler.mismatch_threshold == 0.6

    def test_converts_to_project_config(self, monkeypatch):
        monkeypatch.setenv("AZURE_OPENAI_API_KEY", "test")
        monkeypatch.setenv("AZURE_OPENAI_API_VERSION", "2024-06-01")
        monkeypatch.setenv("AZURE_OPENAI_ENDPOINT", "https://test.openai.azure.com")

        register_configs()
        with initialize_config_dir(config_dir=str(SAMPLE_PROJECT), version_base=None):
            cfg = compose(config_name="config")
            pc = _to_project_config(cfg)
            assert isinstance(pc, ProjectConfig)
            assert pc.units_path == "units.json"
            assert pc.azure.api_key == "test"
            assert pc.fallback_sections == ["Function Description", "Business Rules", "Data Fields"]


class TestModeDispatch:
    """Verify mode dispatch table."""

    def test_all_modes_present(self):
        assert set(_MODE_DISPATCH.keys()) == {"run", "extract", "analyze", "check"}

    def test_all_modes_are_callable(self):
        for name, handler in _MODE_DISPATCH.items():
            assert callable(handler), f"Handler for mode {name!r} is not callable"

    def test_check_mode_requires_document(self):
        cfg = OmegaConf.create({"mode": "check", "document": None})
        with pytest.raises(SystemExit) as exc_info:
            _check_mode(cfg)
        assert exc_info.value.code == 1


class TestConfigDir:
    def test_separate_argument(self, monkeypatch):
        monkeypatch.setattr(sys, "argv", ["srsa", "--config-dir", "examples/sample_project", "mode=run"])
        assert _get_config_dir() == Path("examples/sample_project")

    def test_equals_form(self, monkeypatch):
        monkeypatch.setattr(sys, "argv", ["srsa", "--config-dir=proj"])
        assert _get_config_dir() == Path("proj")

    def test_defaults_to_cwd(self, monkeypatch):
        monkeypatch.setattr(sys, "argv", ["srsa"])
        assert _get_config_dir() == Path.cwd()


class TestCliOnlyKeys:
    """CLI_ONLY_KEYS should match the extra fields in SrsaConf."""

    def test_cli_keys_not_in_project_config(self):
        pc_fields = set(ProjectConfig.model_fields.keys())
        for key in CLI_ONLY_KEYS:
            assert key not in pc_fields, f"CLI-only key {key!r} found in ProjectConfig"

    def test_cli_keys_in_srsa_conf(self):
        conf_fields = set(SrsaConf.__dataclass_fields__)
        for key in CLI_ONLY_KEYS:
            assert key in conf_fields, f"CLI-only key {key!r} not found in SrsaConf"

    def test_schema_covers_project_config(self):
        conf_fields = set(SrsaConf.__dataclass_fields__)
        assert set(ProjectConfig.model_fields) <= conf_fields
