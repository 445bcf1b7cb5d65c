"""
Config loading and ${VAR:default} interpolation.
"""
from pathlib import Path

from omnichat.config import _resolve_env, load_config, reset_config

REPO_CONFIG = Path(__file__).parent.parent / "config" / "app.yaml"


class TestResolveEnv:
    def test_default_used_when_unset(self, monkeypatch):
        monkeypatch.delenv("OMNICHAT_TEST_VAR", raising=False)
        assert _resolve_env("${OMNICHAT_TEST_VAR:fallback}") == "fallback"

    def test_environment_wins(self, monkeypatch):
        monkeypatch.setenv("OMNICHAT_TEST_VAR", "from-env")
        assert _resolve_env("${OMNICHAT_TEST_VAR:fallback}") == "from-env"

    def test_scalars_are_coerced(self, monkeypatch):
        monkeypatch.setenv("OMNICHAT_TEST_PORT", "9090")
        assert _resolve_env("${OMNICHAT_TEST_PORT:8080}") == 9090
        assert _resolve_env("0.5") == 0.5
        assert _resolve_env("TRUE") is True

    def test_nested_structures(self, monkeypatch):
        monkeypatch.setenv("OMNICHAT_TEST_VAR", "x")
        assert _resolve_env({"a": ["${OMNICHAT_TEST_VAR}", 1]}) == {"a": ["x", 1]}


class TestLoadConfig:
    def test_repo_config(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        monkeypatch.setenv("RATE_LIMITS_ENABLED", "false")
        monkeypatch.delenv("OPENAI_API_BASE", raising=False)
        reset_config()

        cfg = load_config(str(REPO_CONFIG))

        assert cfg.gateway.api_key == "sk-test"
        assert cfg.gateway.base_url == "https://api.openai.com/v1"
        assert cfg.rate_limits.enabled is False
        assert cfg.rate_limits.endpoints.chat_messages == "30/minute"
        assert cfg.storage.max_upload_bytes == 100 * 1024 * 1024

    def test_env_var_selects_file(self, tmp_path, monkeypatch):
        path = tmp_path / "custom.yaml"
        path.write_text("app:\n  name: Custom\n  unknown_key: ignored\nstorage:\n  max_upload_bytes: 10\n")
        monkeypatch.setenv("OMNICHAT_CONFIG", str(path))
        reset_config()

        cfg = load_config()

        assert cfg.app.name == "Custom"
        assert cfg.storage.max_upload_bytes == 10
        assert cfg.database.url.startswith("sqlite+aiosqlite://")

    def test_missing_file_gives_defaults(self, tmp_path):
        reset_config()

        cfg = load_config(str(tmp_path / "absent.yaml"))

        assert cfg.app.mock_auth is True
        assert cfg.rate_limits.enabled is True
