"""Tests for TOML configuration handling."""

import pytest

from contextrank import config_manager
from contextrank.config_manager import ScoringConfig


class TestLLMConfig:
    def test_defaults_to_ollama(self):
        cfg = config_manager.load_config()

        assert cfg["provider"] == "ollama"
        assert cfg["endpoint"].endswith("/api/generate")

    def test_save_and_load(self):
        assert config_manager.save_config("openrouter", "some/model", api_key="or-key")

        cfg = config_manager.load_config()
        assert cfg == {"provider": "openrouter", "model": "some/model", "api_key": "or-key"}

    def test_sections_are_preserved(self):
        config_manager.save_embedding_config("minilm")
        config_manager.save_scoring_value("score_cap", 4.0)
        config_manager.save_config("ollama", "qwen")

        full = config_manager.load_full_config()
        assert full["embeddings"] == {"model": "minilm"}
        assert full["scoring"] == {"score_cap": 4.0}

    def test_corrupt_file_is_ignored(self, isolated_home, caplog):
        isolated_home.mkdir(parents=True, exist_ok=True)
        (isolated_home / "config.toml").write_text("[llm\nprovider = ")

        assert config_manager.load_full_config() == {}
        assert "Could not read config file" in caplog.text

    def test_provider_defaults(self):
        assert config_manager.get_provider_config("groq")["model"] == "llama-3.3-70b-versatile"
        assert config_manager.get_provider_config("unknown")["provider"] == "ollama"


class TestScoringConfig:
    def test_defaults(self):
        cfg = ScoringConfig()

        assert (cfg.tri_structure_weight, cfg.tri_semantic_weight,
                cfg.tri_relationship_weight, cfg.tri_classification_weight) == (0.25, 0.35, 0.15, 0.25)
        assert (cfg.full_synergy_multiplier, cfg.basic_synergy_multiplier, cfg.entry_point_multiplier) == (1.8, 1.4, 1.5)
        assert cfg.score_cap == 5.0
        assert cfg.max_classified_files == 0

    def test_from_dict_coerces_and_ignores_unknown(self, caplog):
        cfg = ScoringConfig.from_dict({"max_results": 7.0, "synergy_multiplier": "2.5", "bogus": 1})

        assert cfg.max_results == 7
        assert isinstance(cfg.max_results, int)
        assert cfg.synergy_multiplier == 2.5
        assert "Ignoring unknown scoring option 'bogus'" in caplog.text

    def test_invalid_value_keeps_default(self):
        assert ScoringConfig.from_dict({"score_cap": "lots"}).score_cap == 5.0

    def test_roundtrip_through_file(self):
        config_manager.save_scoring_value("entry_point_multiplier", 2.0)

        assert config_manager.load_scoring_config().entry_point_multiplier == 2.0

    def test_unknown_key_rejected(self):
        with pytest.raises(KeyError):
            config_manager.save_scoring_value("not_a_field", 1)
