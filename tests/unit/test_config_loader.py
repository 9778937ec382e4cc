"""Unit tests for the YAML config loader."""

import pytest

from todonotify.config import (
    DEFAULT_CONFIG,
    ConfigError,
    ConfigLoader,
    get_config_loader,
    reset_config_loader,
)


@pytest.fixture
def isolated(tmp_path, monkeypatch):
    """Run with no config file reachable from cwd, home or the environment."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.delenv("TODONOTIFY_CONFIG", raising=False)
    monkeypatch.delenv("TODONOTIFY_ENV", raising=False)
    return tmp_path


class TestConfigLoader:
    def test_defaults_without_file(self, isolated):
        loader = ConfigLoader(isolated / "missing.yaml")

        assert loader.get_config() == DEFAULT_CONFIG
        assert loader.get_config() is not DEFAULT_CONFIG

    def test_file_is_merged_over_defaults(self, isolated):
        path = isolated / "custom.yaml"
        path.write_text(
            "server:\n"
            "  base_url: https://todo.example.com\n"
            "native:\n"
            "  ntfy:\n"
            "    topic: my-todos\n"
        )

        loader = ConfigLoader(path)

        assert loader.get_server_config()["base_url"] == "https://todo.example.com"
        assert loader.get_server_config()["stream_path"] == "/api/notifications/stream"
        assert loader.get_ntfy_config()["topic"] == "my-todos"
        assert loader.get_ntfy_config()["url"] == "https://ntfy.sh"
        assert loader.get_stream_config()["max_reconnect_attempts"] == 5

    def test_env_vars_are_interpolated(self, isolated, monkeypatch):
        monkeypatch.setenv("NTFY_TOKEN", "tk_secret")
        monkeypatch.delenv("UNSET_TOPIC", raising=False)
        path = isolated / "config.yaml"
        path.write_text("native:\n  ntfy:\n    token: ${NTFY_TOKEN}\n    topic: $UNSET_TOPIC\n")

        loader = ConfigLoader(path)

        assert loader.get_ntfy_config()["token"] == "tk_secret"
        assert loader.get_ntfy_config()["topic"] == "${UNSET_TOPIC}"

    def test_found_in_cwd(self, isolated):
        (isolated / "config.yaml").write_text("toasts:\n  max_toasts: 3\n")

        loader = ConfigLoader()

        assert loader.config_path == isolated / "config.yaml"
        assert loader.get_toasts_config()["max_toasts"] == 3

    def test_env_specific_file_wins(self, isolated, monkeypatch):
        monkeypatch.setenv("TODONOTIFY_ENV", "dev")
        (isolated / "config.yaml").write_text("logging:\n  level: INFO\n")
        (isolated / "config.dev.yaml").write_text("logging:\n  level: DEBUG\n")

        loader = ConfigLoader()

        assert loader.get_logging_config()["level"] == "DEBUG"

    def test_config_env_var(self, isolated, monkeypatch):
        path = isolated / "elsewhere.yaml"
        path.write_text("stream:\n  base_reconnect_delay_ms: 250\n")
        monkeypatch.setenv("TODONOTIFY_CONFIG", str(path))

        loader = ConfigLoader()

        assert loader.get_stream_config()["base_reconnect_delay_ms"] == 250

    def test_invalid_yaml_raises(self, isolated):
        path = isolated / "broken.yaml"
        path.write_text("server: [unclosed\n")

        with pytest.raises(ConfigError):
            ConfigLoader(path)

    def test_non_mapping_root_raises(self, isolated):
        path = isolated / "list.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ConfigError):
            ConfigLoader(path)


class TestSingleton:
    def test_shared_instance_until_reset(self, isolated):
        first = get_config_loader()

        assert get_config_loader() is first
        reset_config_loader()
        assert get_config_loader() is not first
