"""Tests for the Config manager."""
import os
from pathlib import Path

import pytest

from backend.services.shared import config as config_module
from backend.services.shared.config import (
    DEFAULT_SETTINGS,
    REPO_ROOT,
    Config,
    get_config,
    reset_config,
)


@pytest.fixture(autouse=True)
def reset_singleton():
    reset_config()
    yield
    reset_config()


class TestConfigDotNotation:
    def test_get_top_level_key(self, sample_settings):
        cfg = Config(str(sample_settings))
        assert cfg.get("sampler") is not None

    def test_get_nested_key(self, sample_settings):
        cfg = Config(str(sample_settings))
        assert cfg.get("sampler.batch_size") == 10

    def test_get_float(self, sample_settings):
        cfg = Config(str(sample_settings))
        assert cfg.get("sampler.interval") == 0.1

    def test_get_missing_key_returns_default(self, sample_settings):
        cfg = Config(str(sample_settings))
        assert cfg.get("nonexistent.key") is None
        assert cfg.get("nonexistent.key", "fallback") == "fallback"

    def test_null_value_is_none(self, sample_settings):
        cfg = Config(str(sample_settings))
        assert cfg.get("remote.timeout") is None


class TestConfigPaths:
    def test_get_path_returns_path_object(self, sample_settings):
        cfg = Config(str(sample_settings))
        assert isinstance(cfg.get_path("paths.scratch_dir"), Path)

    def test_absolute_path_kept(self, sample_settings, tmp_dir):
        cfg = Config(str(sample_settings))
        assert cfg.get_path("paths.scratch_dir") == tmp_dir / "temp"

    def test_relative_path_resolves_against_repo_root(self, tmp_dir):
        cfg_path = tmp_dir / "rel.yaml"
        cfg_path.write_text("paths:\n  scratch_dir: temp\n")
        cfg = Config(str(cfg_path))
        assert cfg.get_path("paths.scratch_dir") == REPO_ROOT / "temp"

    def test_get_path_missing_key_raises(self, sample_settings):
        cfg = Config(str(sample_settings))
        with pytest.raises(KeyError):
            cfg.get_path("paths.nonexistent_path_key_xyz")


class TestConfigPort:
    def test_port_from_yaml(self, sample_settings, monkeypatch):
        monkeypatch.delenv("PORT", raising=False)
        assert Config(str(sample_settings)).port() == 3000

    def test_port_env_overrides(self, sample_settings, monkeypatch):
        monkeypatch.setenv("PORT", "8080")
        assert Config(str(sample_settings)).port() == 8080

    def test_port_default_when_unset_everywhere(self, tmp_dir, monkeypatch):
        monkeypatch.delenv("PORT", raising=False)
        cfg_path = tmp_dir / "bare.yaml"
        cfg_path.write_text("sampler:\n  interval: 0.1\n")
        assert Config(str(cfg_path)).port() == 3000

    def test_bad_port_env_raises(self, sample_settings, monkeypatch):
        monkeypatch.setenv("PORT", "eighty")
        with pytest.raises(ValueError):
            Config(str(sample_settings)).port()


class TestDotenvLoading:
    VAR = "AUDIO_ANALYSIS_DOTENV_TEST"

    @pytest.fixture(autouse=True)
    def clean_var(self):
        os.environ.pop(self.VAR, None)
        yield
        os.environ.pop(self.VAR, None)

    @pytest.fixture
    def repo_root(self, tmp_dir, monkeypatch):
        root = tmp_dir / "repo"
        root.mkdir()
        monkeypatch.setattr(config_module, "REPO_ROOT", root)
        return root

    def test_repo_env_file_loaded(self, sample_settings, repo_root):
        (repo_root / ".env").write_text(f"{self.VAR}=from_file\n")
        assert Config(str(sample_settings)).get_env(self.VAR) == "from_file"

    def test_environment_beats_env_file(self, sample_settings, repo_root, monkeypatch):
        (repo_root / ".env").write_text(f"{self.VAR}=from_file\n")
        monkeypatch.setenv(self.VAR, "from_env")
        assert Config(str(sample_settings)).get_env(self.VAR) == "from_env"

    def test_home_env_file_ignored(self, sample_settings, repo_root, tmp_dir, monkeypatch):
        home = tmp_dir / "home"
        (home / ".claude").mkdir(parents=True)
        (home / ".claude" / ".env").write_text(f"{self.VAR}=from_home\n")
        monkeypatch.setenv("HOME", str(home))
        assert Config(str(sample_settings)).get_env(self.VAR) is None


class TestConfigEnv:
    def test_get_env(self, sample_settings, monkeypatch):
        monkeypatch.setenv("AUDIO_TEST_VAR", "abc")
        assert Config(str(sample_settings)).get_env("AUDIO_TEST_VAR") == "abc"

    def test_get_env_with_default(self, sample_settings):
        cfg = Config(str(sample_settings))
        assert cfg.get_env("NONEXISTENT_ENV_VAR_XYZ") is None
        assert cfg.get_env("NONEXISTENT_ENV_VAR_XYZ", "default") == "default"


class TestConfigSingleton:
    def test_get_config_returns_same_instance(self, sample_settings):
        cfg1 = get_config(str(sample_settings))
        cfg2 = get_config()
        assert cfg1 is cfg2

    def test_reset_clears_singleton(self, sample_settings):
        cfg1 = get_config(str(sample_settings))
        reset_config()
        cfg2 = get_config(str(sample_settings))
        assert cfg1 is not cfg2

    def test_get_config_defaults_to_bundled_settings(self):
        cfg = get_config()
        assert cfg.get("sampler.interval") == 0.1
        assert cfg.get("sampler.batch_size") == 10
        assert "{asset_id}" in cfg.get("remote.url_template")

    def test_bundled_settings_exist(self):
        assert DEFAULT_SETTINGS.exists()


class TestConfigValidation:
    def test_missing_file_raises(self, tmp_dir):
        with pytest.raises(FileNotFoundError):
            Config(str(tmp_dir / "nonexistent.yaml"))

    def test_non_mapping_raises(self, tmp_dir):
        bad = tmp_dir / "list.yaml"
        bad.write_text("- a\n- b\n")
        with pytest.raises(ValueError):
            Config(str(bad))

    def test_invalid_yaml_raises(self, tmp_dir):
        bad = tmp_dir / "bad.yaml"
        bad.write_text("key: [unclosed bracket\n")
        with pytest.raises(Exception):
            Config(str(bad))
