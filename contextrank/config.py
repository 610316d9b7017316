"""Configuration paths and provider settings for the local analysis cache."""

from __future__ import annotations

import os
from pathlib import Path

BASE_DIR = Path(os.environ.get("CONTEXTRANK_HOME", str(Path.home() / ".contextrank"))).expanduser()
CACHE_DB_PATH = BASE_DIR / "cache.db"
CONFIG_FILE = BASE_DIR / "config.toml"

# Records older than this are evicted from the durable cache.
CACHE_MAX_AGE_SECONDS = 30 * 24 * 60 * 60

# Load configuration from TOML file (if available)
try:
    from .config_manager import load_config
    _toml_config = load_config()
except ImportError:
    _toml_config = {}

# Generative provider used by the tri-model classifier (set via `ctxr set-llm`)
LLM_PROVIDER = _toml_config.get("provider", "ollama")
LLM_API_KEY = _toml_config.get("api_key", "")
LLM_MODEL = _toml_config.get("model", "qwen2.5-coder:7b")
LLM_ENDPOINT = _toml_config.get("endpoint", "http://127.0.0.1:11434/api/generate")


def ensure_base_dirs() -> None:
    """Create the base directory for the cache database and config file."""
    BASE_DIR.mkdir(parents=True, exist_ok=True)
