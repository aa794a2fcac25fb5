"""Tests for engine configuration loading from engine.toml."""

from __future__ import annotations

import tomllib

from promptbench.config import (
    ENGINE_TOML_PATH,
    EngineSettings,
    Settings,
    load_engine_settings,
)


class TestEngineSettingsDefaults:
    """Defaults when engine.toml says nothing."""

    def test_generation_defaults(self):
        llm = EngineSettings().defaults.as_llm_config()
        assert llm.provider == "openai"
        assert llm.model == "gpt-4"
        assert llm.temperature == 0.7
        assert llm.max_tokens == 2000

    def test_batch_defaults(self):
        s = EngineSettings()
        assert s.batch.max_workers == 5
        assert s.batch.timeout_seconds == 60.0

    def test_scoring_defaults(self):
        scoring = EngineSettings().scoring
        assert scoring.weights.pass_rate == 0.4
        assert scoring.weights.average_score == 0.3
        assert scoring.weights.latency == 0.2
        assert scoring.weights.cost == 0.1
        assert scoring.max_reasonable_latency_ms == 10000
        assert scoring.max_reasonable_cost == 1.0

    def test_five_presets(self):
        names = [p.name for p in EngineSettings().scoring.presets]
        assert names == [
            "Balanced",
            "Accuracy First",
            "Speed Optimized",
            "Cost Effective",
            "Production Ready",
        ]

    def test_default_pricing(self):
        table = EngineSettings().cost_table()
        assert table.lookup("openai", "gpt-4").input_rate_per_1k == 0.03
        assert table.lookup("anthropic", "claude-3-haiku") is not None


class TestEngineSettingsOverrides:
    def test_override_batch(self):
        s = EngineSettings.model_validate({"batch": {"max_workers": 2}})
        assert s.batch.max_workers == 2
        assert s.batch.timeout_seconds == 60.0

    def test_override_weights(self):
        data = {"scoring": {"weights": {"pass_rate": 1.0, "average_score": 0, "latency": 0, "cost": 0}}}
        s = EngineSettings.model_validate(data)
        assert s.scoring.weights.pass_rate == 1.0
        assert len(s.scoring.presets) == 5  # unchanged

    def test_pricing_replaced_wholesale(self):
        data = {
            "pricing": [
                {"provider": "x", "model": "y", "input_rate_per_1k": 1, "output_rate_per_1k": 1}
            ]
        }
        table = EngineSettings.model_validate(data).cost_table()
        assert len(table) == 1
        assert table.lookup("openai", "gpt-4") is None

    def test_empty_dict_uses_defaults(self):
        assert EngineSettings.model_validate({}).batch.max_workers == 5

    def test_preset_lookup_is_case_insensitive(self):
        preset = EngineSettings().get_preset("accuracy first")
        assert preset is not None
        assert preset.weights.pass_rate == 0.6
        assert EngineSettings().get_preset("Nope") is None


class TestEngineToml:
    def test_file_parses(self):
        with open(ENGINE_TOML_PATH, "rb") as f:
            data = tomllib.load(f)
        s = EngineSettings.model_validate(data)
        assert s.batch.max_workers == 5
        assert s.get_preset("Production Ready").weights.pass_rate == 0.5
        assert s.cost_table().lookup("openai", "gpt-3.5-turbo").output_rate_per_1k == 0.002

    def test_load_from_path(self):
        assert load_engine_settings(ENGINE_TOML_PATH).defaults.model == "gpt-4"

    def test_missing_file_gives_defaults(self, tmp_path):
        s = load_engine_settings(tmp_path / "absent.toml")
        assert s.batch.max_workers == 5

    def test_custom_file(self, tmp_path):
        path = tmp_path / "engine.toml"
        path.write_text("[batch]\nmax_workers = 9\n\n[defaults]\nmodel = \"gpt-4-turbo\"\n")
        s = load_engine_settings(path)
        assert s.batch.max_workers == 9
        assert s.defaults.model == "gpt-4-turbo"


class TestSettings:
    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("JSON_LOGS", "true")
        s = Settings(_env_file=None)
        assert s.openai_api_key == "sk-env"
        assert s.log_level == "DEBUG"
        assert s.json_logs is True
