"""Tests for TOML configuration and typed settings."""

from pathlib import Path

from legacyvibe import config, config_manager


class TestConfigManager:
    """Tests for reading and writing the TOML file."""

    def test_defaults_without_file(self, temp_home: Path):
        """Missing file falls back to Anthropic defaults."""
        assert config_manager.load_full_config() == {}
        assert config_manager.load_config()["provider"] == "anthropic"

        settings = config_manager.load_settings()
        assert settings.llm.model == config.DEFAULT_MODEL
        assert settings.analysis.max_tokens_per_chunk == 150_000
        assert settings.analysis.content_char_budget == 4_000

    def test_save_preserves_other_sections(self, temp_home: Path):
        assert config_manager.save_section("github", {"token": "ghp_x"})
        assert config_manager.save_config("ollama", "llama3", endpoint="http://localhost:11434/api/generate")

        full = config_manager.load_full_config()
        assert full["github"] == {"token": "ghp_x"}
        assert full["llm"] == {
            "provider": "ollama",
            "model": "llama3",
            "endpoint": "http://localhost:11434/api/generate",
        }
        assert (temp_home / "config.toml").exists()

    def test_corrupt_file_is_ignored(self, temp_home: Path):
        temp_home.mkdir(parents=True)
        (temp_home / "config.toml").write_text("[llm\nprovider = ")
        assert config_manager.load_full_config() == {}

    def test_unknown_keys_are_dropped(self, temp_home: Path):
        config_manager.save_section("analysis", {"max_workers": 4, "colour": "teal"})
        assert config_manager.load_settings().analysis.max_workers == 4

    def test_provider_defaults(self):
        assert config_manager.get_provider_config("groq")["model"] == "llama-3.3-70b-versatile"
        assert config_manager.get_provider_config("nope")["provider"] == "anthropic"


class TestEnvironmentFallbacks:
    """Tests for credential fallbacks."""

    def test_env_fills_empty_credentials(self, temp_home: Path, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-123")
        monkeypatch.setenv("GITHUB_TOKEN", "ghp_env")

        settings = config_manager.load_settings()
        assert settings.llm.api_key == "sk-ant-123"
        assert settings.github.token == "ghp_env"

    def test_file_values_win(self, temp_home: Path, monkeypatch):
        monkeypatch.setenv("GITHUB_TOKEN", "ghp_env")
        config_manager.save_section("github", {"token": "ghp_file"})
        assert config_manager.load_settings().github.token == "ghp_file"

    def test_anthropic_key_only_for_anthropic(self, temp_home: Path, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-123")
        config_manager.save_config("openai", "gpt-4o")
        assert config_manager.load_settings().llm.api_key == ""


class TestSettingsDisplay:
    def test_secrets_are_masked(self, temp_home: Path):
        config_manager.save_config("anthropic", "m", api_key="sk-ant-secret")
        shown = config_manager.settings_as_dict(config_manager.load_settings())

        assert shown["llm"]["api_key"] == "sk-a…"
        assert shown["github"]["token"] == ""

    def test_reveal(self, temp_home: Path):
        config_manager.save_config("anthropic", "m", api_key="sk-ant-secret")
        shown = config_manager.settings_as_dict(config_manager.load_settings(), redact=False)
        assert shown["llm"]["api_key"] == "sk-ant-secret"
