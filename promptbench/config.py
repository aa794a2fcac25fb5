"""Application configuration using pydantic-settings.

Loads secrets and environment overrides from environment variables and .env.
Engine behavior (generation defaults, worker pool, scoring weights, presets,
model pricing) is loaded from engine.toml.

Priority: explicit arguments > Environment variables (.env) > engine.toml > hardcoded defaults
"""

from __future__ import annotations

import tomllib
from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from promptbench.schemas.evaluation import LLMConfig
from promptbench.schemas.scoring import (
    CostTable,
    ModelPricing,
    ScoringPreset,
    ScoringWeights,
)

ENGINE_TOML_PATH = Path(__file__).parent.parent / "engine.toml"


# ---------------------------------------------------------------------------
# Engine settings from engine.toml
# ---------------------------------------------------------------------------


class DefaultsTable(BaseModel):
    """The [defaults] table: generation parameters when a variant declares none."""

    provider: str = "openai"
    model: str = "gpt-4"
    temperature: float = 0.7
    max_tokens: int = 2000

    def as_llm_config(self) -> LLMConfig:
        return LLMConfig(
            provider=self.provider,
            model=self.model,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )


class BatchTable(BaseModel):
    """The [batch] table."""

    max_workers: int = Field(default=5, ge=1)
    timeout_seconds: float = Field(default=60.0, gt=0)


def _default_presets() -> list[ScoringPreset]:
    return [
        ScoringPreset(
            name="Balanced",
            description="Equal weight to accuracy, quality, speed, and cost",
            weights=ScoringWeights(pass_rate=0.4, average_score=0.3, latency=0.2, cost=0.1),
        ),
        ScoringPreset(
            name="Accuracy First",
            description="Prioritize correctness over everything else",
            weights=ScoringWeights(pass_rate=0.6, average_score=0.3, latency=0.1, cost=0.0),
        ),
        ScoringPreset(
            name="Speed Optimized",
            description="Fast responses are most important",
            weights=ScoringWeights(pass_rate=0.3, average_score=0.2, latency=0.4, cost=0.1),
        ),
        ScoringPreset(
            name="Cost Effective",
            description="Minimize costs while maintaining quality",
            weights=ScoringWeights(pass_rate=0.3, average_score=0.2, latency=0.1, cost=0.4),
        ),
        ScoringPreset(
            name="Production Ready",
            description="Focus on reliability and consistency",
            weights=ScoringWeights(pass_rate=0.5, average_score=0.3, latency=0.1, cost=0.1),
        ),
    ]


class ScoringTable(BaseModel):
    """The [scoring] table."""

    weights: ScoringWeights = Field(default_factory=ScoringWeights)
    max_reasonable_latency_ms: float = Field(default=10000.0, gt=0)
    max_reasonable_cost: float = Field(default=1.0, gt=0)
    presets: list[ScoringPreset] = Field(default_factory=_default_presets)


def _default_pricing() -> list[ModelPricing]:
    rates = {
        ("openai", "gpt-4"): (0.03, 0.06),
        ("openai", "gpt-4-turbo"): (0.01, 0.03),
        ("openai", "gpt-3.5-turbo"): (0.0015, 0.002),
        ("anthropic", "claude-3-opus"): (0.015, 0.075),
        ("anthropic", "claude-3-sonnet"): (0.003, 0.015),
        ("anthropic", "claude-3-haiku"): (0.00025, 0.00125),
    }
    return [
        ModelPricing(
            provider=provider,
            model=model,
            input_rate_per_1k=rate_in,
            output_rate_per_1k=rate_out,
        )
        for (provider, model), (rate_in, rate_out) in rates.items()
    ]


class EngineSettings(BaseModel):
    """Configuration loaded from engine.toml."""

    defaults: DefaultsTable = Field(default_factory=DefaultsTable)
    batch: BatchTable = Field(default_factory=BatchTable)
    scoring: ScoringTable = Field(default_factory=ScoringTable)
    pricing: list[ModelPricing] = Field(default_factory=_default_pricing)

    def get_preset(self, name: str) -> ScoringPreset | None:
        """Look up a scoring preset by name (case-insensitive)."""
        wanted = name.strip().lower()
        for preset in self.scoring.presets:
            if preset.name.lower() == wanted:
                return preset
        return None

    def cost_table(self) -> CostTable:
        return CostTable(self.pricing)


_ENGINE_SETTINGS_CACHE: EngineSettings | None = None


def load_engine_settings(path: Path) -> EngineSettings:
    """Parse an engine.toml file. Missing file -> defaults."""
    if not path.exists():
        return EngineSettings()
    with open(path, "rb") as f:
        data = tomllib.load(f)
    return EngineSettings.model_validate(data)


def get_engine_settings() -> EngineSettings:
    """Load and cache engine settings from engine.toml."""
    global _ENGINE_SETTINGS_CACHE
    if _ENGINE_SETTINGS_CACHE is None:
        _ENGINE_SETTINGS_CACHE = load_engine_settings(ENGINE_TOML_PATH)
    return _ENGINE_SETTINGS_CACHE


# ---------------------------------------------------------------------------
# Environment settings from .env (API keys, secrets, env-var overrides)
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Generation provider (OpenAI-compatible endpoint)
    openai_api_key: str = ""
    openai_base_url: str | None = None

    # Logging
    log_level: str = "INFO"
    json_logs: bool = False


def get_settings() -> Settings:
    """Create and return a Settings instance."""
    return Settings()
