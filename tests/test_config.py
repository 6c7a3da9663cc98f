"""
Unit tests for configuration loading.
"""

import pytest

from catalog_composer.config import AppConfig, get_config, load_config, load_yaml_config, reset_config


@pytest.fixture
def settings_dir(tmp_path, monkeypatch):
    """Working directory with its own config/ folder."""
    (tmp_path / "config").mkdir()
    monkeypatch.chdir(tmp_path)
    for name in ('COMPOSER_ENV', 'LOG_LEVEL', 'ASSETS_DIR', 'CATALOG_FILE', 'OUTPUT_DIR', 'FONT_PATH'):
        monkeypatch.delenv(name, raising=False)
    return tmp_path / "config"


class TestLoadYamlConfig:

    def test_missing_file_is_empty(self, tmp_path):
        assert load_yaml_config(str(tmp_path / "nope.yaml")) == {}

    def test_empty_file_is_empty(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")

        assert load_yaml_config(str(path)) == {}

    def test_invalid_yaml_is_empty(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("key: [unclosed")

        assert load_yaml_config(str(path)) == {}

    def test_non_mapping_is_empty(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- CANVAS_SIZE\n- 800\n")

        assert load_yaml_config(str(path)) == {}


class TestLoadConfig:
    """Test layering of base, environment and env-var settings."""

    def test_defaults_without_files(self, settings_dir):
        config = load_config("development")

        assert config.CANVAS_SIZE == 800
        assert config.FILM_MIN_OVERLAP_PX == 6
        assert config.ENVIRONMENT == "development"

    def test_environment_file_overrides_base(self, settings_dir):
        (settings_dir / "settings.yaml").write_text("LOG_LEVEL: INFO\nITEM_TIMEOUT_S: 30\n")
        (settings_dir / "settings_production.yaml").write_text("LOG_LEVEL: WARNING\n")

        config = load_config("production")

        assert config.LOG_LEVEL == "WARNING"
        assert config.ITEM_TIMEOUT_S == 30
        assert config.ENVIRONMENT == "production"

    def test_env_vars_override_files(self, settings_dir, monkeypatch):
        (settings_dir / "settings.yaml").write_text("ASSETS_DIR: from-file\n")
        monkeypatch.setenv('ASSETS_DIR', 'from-env')

        assert load_config().ASSETS_DIR == 'from-env'

    def test_invalid_settings_fall_back_to_defaults(self, settings_dir):
        (settings_dir / "settings.yaml").write_text("CANVAS_SIZE: not-a-number\n")

        assert load_config().CANVAS_SIZE == AppConfig().CANVAS_SIZE


class TestGlobalConfig:

    def test_get_config_is_memoized(self, settings_dir):
        assert get_config() is get_config()

    def test_reset_config(self, settings_dir, monkeypatch):
        first = get_config()
        monkeypatch.setenv('OUTPUT_DIR', 'elsewhere')

        reset_config()

        assert get_config() is not first
        assert get_config().OUTPUT_DIR == 'elsewhere'
