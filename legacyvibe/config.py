"""Configuration paths, defaults, and typed settings for LegacyVibe."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

BASE_DIR = Path(os.environ.get("LEGACYVIBE_HOME", str(Path.home() / ".legacyvibe"))).expanduser()
DB_PATH = BASE_DIR / "blueprints.db"
CONFIG_FILE = BASE_DIR / "config.toml"

DEFAULT_PROVIDER = "anthropic"
DEFAULT_MODEL = "claude-sonnet-4-5-20250929"
DEFAULT_GITHUB_API = "https://api.github.com"
DEFAULT_USER = "local"

# Chunking and deep-sampling limits
DEFAULT_MAX_TOKENS_PER_CHUNK = 150_000
DEFAULT_MAX_KEY_FILES = 20
DEFAULT_MAX_FILE_SIZE_KB = 100
DEFAULT_MAX_FETCH_FILES = 50
DEFAULT_CONTENT_CHAR_BUDGET = 4_000
DEFAULT_HISTORY_LIMIT = 10


@dataclass
class LLMSettings:
    """Provider selection for the structured-generation step."""

    provider: str = DEFAULT_PROVIDER
    model: str = DEFAULT_MODEL
    api_key: str = ""
    endpoint: str = ""
    timeout: int = 120


@dataclass
class GitHubSettings:
    """Credentials for the repository listing and content providers."""

    token: str = ""
    api_url: str = DEFAULT_GITHUB_API
    timeout: int = 20


@dataclass
class AnalysisSettings:
    """Tunables for chunking and per-chunk file sampling."""

    max_tokens_per_chunk: int = DEFAULT_MAX_TOKENS_PER_CHUNK
    max_key_files: int = DEFAULT_MAX_KEY_FILES
    max_file_size_kb: int = DEFAULT_MAX_FILE_SIZE_KB
    max_fetch_files: int = DEFAULT_MAX_FETCH_FILES
    content_char_budget: int = DEFAULT_CONTENT_CHAR_BUDGET
    max_workers: int = 1
    history_limit: int = DEFAULT_HISTORY_LIMIT
    default_user: str = DEFAULT_USER

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_kb * 1024


@dataclass
class Settings:
    llm: LLMSettings = field(default_factory=LLMSettings)
    github: GitHubSettings = field(default_factory=GitHubSettings)
    analysis: AnalysisSettings = field(default_factory=AnalysisSettings)


def ensure_base_dirs() -> None:
    """Create the base directory for local storage if needed."""
    BASE_DIR.mkdir(parents=True, exist_ok=True)
