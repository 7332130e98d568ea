"""Configuration manager for LegacyVibe using TOML files."""

from __future__ import annotations

import os
from dataclasses import asdict, fields
from typing import Any, Dict

import toml

from . import config
from .config import AnalysisSettings, GitHubSettings, LLMSettings, Settings


# Default configurations for each provider
DEFAULT_CONFIGS = {
    "anthropic": {
        "provider": "anthropic",
        "model": "claude-sonnet-4-5-20250929",
        "api_key": "",
    },
    "openai": {
        "provider": "openai",
        "model": "gpt-4o",
        "api_key": "",
    },
    "openrouter": {
        "provider": "openrouter",
        "model": "anthropic/claude-sonnet-4.5",
        "api_key": "",
        "endpoint": "https://openrouter.ai/api/v1/chat/completions",
    },
    "groq": {
        "provider": "groq",
        "model": "llama-3.3-70b-versatile",
        "api_key": "",
    },
    "ollama": {
        "provider": "ollama",
        "model": "qwen2.5-coder:7b",
        "endpoint": "http://127.0.0.1:11434/api/generate",
    },
}


def load_full_config() -> Dict[str, Any]:
    """Load the entire TOML config (all sections)."""
    if not config.CONFIG_FILE.exists():
        return {}
    try:
        with open(config.CONFIG_FILE, "r") as f:
            return toml.load(f)
    except (OSError, toml.TomlDecodeError):
        return {}


def load_config() -> Dict[str, Any]:
    """Load the ``[llm]`` section.

    Returns:
        Provider settings. Falls back to Anthropic defaults when the file
        or section is missing.
    """
    return load_full_config().get("llm", DEFAULT_CONFIGS["anthropic"].copy())


def _save_full_config(payload: Dict[str, Any]) -> bool:
    """Write entire config dict to TOML file, preserving all sections."""
    config.ensure_base_dirs()
    try:
        with open(config.CONFIG_FILE, "w") as f:
            toml.dump(payload, f)
        return True
    except OSError:
        return False


def save_config(provider: str, model: str, api_key: str = "", endpoint: str = "") -> bool:
    """Save LLM configuration to the TOML file.

    Preserves other sections (``[github]``, ``[analysis]``).

    Args:
        provider: Provider name (anthropic, openai, openrouter, groq, ollama)
        model: Model name
        api_key: API key for cloud providers
        endpoint: Custom endpoint (Ollama or OpenAI-compatible gateways)

    Returns:
        True if saved successfully, False otherwise
    """
    section: Dict[str, Any] = {"provider": provider, "model": model}
    if api_key:
        section["api_key"] = api_key
    if endpoint:
        section["endpoint"] = endpoint
    return save_section("llm", section)


def save_section(name: str, values: Dict[str, Any]) -> bool:
    """Replace one top-level section, keeping the others intact."""
    payload = load_full_config()
    payload[name] = values
    return _save_full_config(payload)


def get_provider_config(provider: str) -> Dict[str, Any]:
    """Get default configuration for a specific provider."""
    return DEFAULT_CONFIGS.get(provider, DEFAULT_CONFIGS["anthropic"]).copy()


def _pick(cls, section: Dict[str, Any]) -> Dict[str, Any]:
    """Keep only keys that ``cls`` declares, dropping unknown TOML entries."""
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in section.items() if k in names}


def load_settings() -> Settings:
    """Build typed settings from the TOML file and environment.

    ``ANTHROPIC_API_KEY`` and ``GITHUB_TOKEN`` fill in credentials that the
    file leaves empty.
    """
    payload = load_full_config()

    llm = LLMSettings(**_pick(LLMSettings, payload.get("llm", {})))
    if not llm.api_key and llm.provider == "anthropic":
        llm.api_key = os.environ.get("ANTHROPIC_API_KEY", "")

    github = GitHubSettings(**_pick(GitHubSettings, payload.get("github", {})))
    if not github.token:
        github.token = os.environ.get("GITHUB_TOKEN", "")

    analysis = AnalysisSettings(**_pick(AnalysisSettings, payload.get("analysis", {})))
    return Settings(llm=llm, github=github, analysis=analysis)


def settings_as_dict(settings: Settings, redact: bool = True) -> Dict[str, Dict[str, Any]]:
    """Flatten settings for display, masking secrets unless ``redact`` is off."""
    out = {
        "llm": asdict(settings.llm),
        "github": asdict(settings.github),
        "analysis": asdict(settings.analysis),
    }
    if redact:
        for section, key in (("llm", "api_key"), ("github", "token")):
            value = out[section].get(key) or ""
            out[section][key] = f"{value[:4]}…" if value else ""
    return out
