"""Configuration manager for ContextRank using TOML files.

The config file (``~/.contextrank/config.toml``) has three sections:

* ``[llm]``       : generative provider for the tri-model classifier.
* ``[embeddings]``: embedding model key.
* ``[scoring]``   : overrides for any field of :class:`ScoringConfig`.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, fields
from typing import Any, Dict

import toml

from .config import BASE_DIR, CONFIG_FILE

logger = logging.getLogger(__name__)

# Default configurations for each provider
DEFAULT_CONFIGS = {
    "ollama": {
        "provider": "ollama",
        "model": "qwen2.5-coder:7b",
        "endpoint": "http://127.0.0.1:11434/api/generate",
    },
    "groq": {
        "provider": "groq",
        "model": "llama-3.3-70b-versatile",
        "api_key": "",
    },
    "openai": {
        "provider": "openai",
        "model": "gpt-4o-mini",
        "api_key": "",
    },
    "anthropic": {
        "provider": "anthropic",
        "model": "claude-3-5-haiku-20241022",
        "api_key": "",
    },
    "openrouter": {
        "provider": "openrouter",
        "model": "google/gemini-2.0-flash-exp:free",
        "api_key": "",
        "endpoint": "https://openrouter.ai/api/v1/chat/completions",
    },
}


@dataclass
class ScoringConfig:
    """Tunable constants for hybrid and tri-model ranking.

    None of these values has a documented derivation; they are empirical
    defaults and every one can be overridden from ``[scoring]``.
    """

    # Hybrid (structure + semantic)
    structure_weight: float = 0.4
    semantic_weight: float = 0.6
    synergy_multiplier: float = 2.0
    score_cap: float = 5.0

    # Semantic blending
    content_similarity_weight: float = 0.7
    filename_similarity_weight: float = 0.3

    # Tri-model four-way weights
    tri_structure_weight: float = 0.25
    tri_semantic_weight: float = 0.35
    tri_relationship_weight: float = 0.15
    tri_classification_weight: float = 0.25
    full_synergy_multiplier: float = 1.8
    basic_synergy_multiplier: float = 1.4
    entry_point_multiplier: float = 1.5
    full_synergy_relationship_threshold: float = 0.3
    full_synergy_classification_threshold: float = 0.5

    # Classifier throttling
    classification_batch_size: int = 5
    classification_batch_delay: float = 0.1
    # 0 classifies every candidate; a positive value caps it
    max_classified_files: int = 0

    # Result shaping
    max_results: int = 20

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "ScoringConfig":
        """Build a config from a (possibly partial) dict, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        kwargs: Dict[str, Any] = {}
        for key, value in payload.items():
            if key not in known:
                logger.warning("Ignoring unknown scoring option '%s'", key)
                continue
            default = getattr(cls, key)
            try:
                kwargs[key] = type(default)(value)
            except (TypeError, ValueError):
                logger.warning("Invalid value for scoring option '%s': %r", key, value)
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def load_full_config() -> Dict[str, Any]:
    """Load the entire TOML config (all sections)."""
    if not CONFIG_FILE.exists():
        return {}
    try:
        with open(CONFIG_FILE, "r") as f:
            return toml.load(f)
    except (OSError, toml.TomlDecodeError) as exc:
        logger.warning("Could not read config file %s: %s", CONFIG_FILE, exc)
        return {}


def _save_full_config(config: Dict[str, Any]) -> bool:
    """Write entire config dict to TOML file, preserving all sections."""
    BASE_DIR.mkdir(parents=True, exist_ok=True)
    try:
        with open(CONFIG_FILE, "w") as f:
            toml.dump(config, f)
        return True
    except OSError as exc:
        logger.warning("Could not write config file %s: %s", CONFIG_FILE, exc)
        return False


def load_config() -> Dict[str, Any]:
    """Load the ``[llm]`` section.

    Falls back to Ollama defaults if the file or section doesn't exist.
    """
    full = load_full_config()
    return full.get("llm", DEFAULT_CONFIGS["ollama"].copy())


def save_config(provider: str, model: str, api_key: str = "", endpoint: str = "") -> bool:
    """Save LLM configuration, preserving the other sections.

    Args:
        provider: Provider name (ollama, groq, openai, anthropic, openrouter)
        model: Model name
        api_key: API key for cloud providers
        endpoint: Custom endpoint (Ollama or OpenAI-compatible gateways)

    Returns:
        True if saved successfully, False otherwise
    """
    config = load_full_config()
    config["llm"] = {
        "provider": provider,
        "model": model,
    }
    if api_key:
        config["llm"]["api_key"] = api_key
    if endpoint:
        config["llm"]["endpoint"] = endpoint
    return _save_full_config(config)


# ------------------------------------------------------------------
# Embedding configuration
# ------------------------------------------------------------------

def load_embedding_config() -> Dict[str, Any]:
    """Load the ``[embeddings]`` section, or an empty dict."""
    full = load_full_config()
    return full.get("embeddings", {})


def save_embedding_config(model_key: str) -> bool:
    """Save the embedding model choice, preserving ``[llm]`` and ``[scoring]``."""
    config = load_full_config()
    config["embeddings"] = {"model": model_key}
    return _save_full_config(config)


# ------------------------------------------------------------------
# Scoring configuration
# ------------------------------------------------------------------

def load_scoring_config() -> ScoringConfig:
    """Return :class:`ScoringConfig` with any ``[scoring]`` overrides applied."""
    full = load_full_config()
    return ScoringConfig.from_dict(full.get("scoring", {}))


def save_scoring_value(key: str, value: Any) -> bool:
    """Persist a single ``[scoring]`` override.

    Raises:
        KeyError: if *key* is not a :class:`ScoringConfig` field.
    """
    if key not in {f.name for f in fields(ScoringConfig)}:
        raise KeyError(key)
    config = load_full_config()
    config.setdefault("scoring", {})[key] = value
    return _save_full_config(config)


def get_provider_config(provider: str) -> Dict[str, Any]:
    """Default configuration for *provider* (Ollama when unknown)."""
    return DEFAULT_CONFIGS.get(provider, DEFAULT_CONFIGS["ollama"]).copy()
