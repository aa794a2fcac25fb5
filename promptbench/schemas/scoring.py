"""Scoring and ranking schemas."""

from __future__ import annotations

from collections.abc import Iterable
from enum import StrEnum

from pydantic import BaseModel, Field


class Recommendation(StrEnum):
    PRODUCTION = "production"
    CANDIDATE = "candidate"
    DISCARD = "discard"


class ScoringWeights(BaseModel):
    """Relative weight of each component of the composite score.

    Intended to sum to 1 but not required to; the composite is clamped.
    """

    pass_rate: float = Field(default=0.4, ge=0.0, le=1.0)
    average_score: float = Field(default=0.3, ge=0.0, le=1.0)
    latency: float = Field(default=0.2, ge=0.0, le=1.0)
    cost: float = Field(default=0.1, ge=0.0, le=1.0)


class ScoringPreset(BaseModel):
    name: str
    description: str = ""
    weights: ScoringWeights = Field(default_factory=ScoringWeights)


class ModelPricing(BaseModel):
    """USD per 1000 tokens for one (provider, model)."""

    provider: str
    model: str
    input_rate_per_1k: float = Field(..., ge=0.0)
    output_rate_per_1k: float = Field(..., ge=0.0)


class CostTable:
    """Lookup of pricing rows keyed by ``(provider, model)``.

    A missing entry means cost is unknown for that variant, which suppresses
    cost tags and scores the cost component as best-case.
    """

    def __init__(self, rows: Iterable[ModelPricing] = ()) -> None:
        self._rows: dict[tuple[str, str], ModelPricing] = {
            (r.provider, r.model): r for r in rows
        }

    def lookup(self, provider: str, model: str) -> ModelPricing | None:
        return self._rows.get((provider, model))

    def __len__(self) -> int:
        return len(self._rows)

    def __contains__(self, key: object) -> bool:
        return key in self._rows


class PerformanceMetrics(BaseModel):
    pass_rate: float = Field(..., ge=0.0, le=1.0)
    average_score: float = Field(..., ge=0.0, le=1.0)
    average_latency: float = Field(..., ge=0.0)
    median_latency: float | None = Field(default=None, ge=0.0)
    p95_latency: float | None = Field(default=None, ge=0.0)
    estimated_cost_per_run: float | None = Field(default=None, ge=0.0)
    total_tokens_used: int | None = Field(default=None, ge=0)
    consistency_score: float | None = Field(default=None, ge=0.0, le=1.0)
    success_rate: float = Field(..., ge=0.0, le=1.0)
    error_rate: float = Field(..., ge=0.0, le=1.0)


class Ranking(BaseModel):
    variant_id: str
    variant_name: str
    rank: int = Field(..., ge=1)
    score: int = Field(..., ge=0, le=100)
    metrics: PerformanceMetrics
    tags: list[str] = Field(default_factory=list)
    recommendation: Recommendation


class MetricWinners(BaseModel):
    """Winning variant id per metric; None on a tie or when cost is unknown."""

    overall: str | None = None
    pass_rate: str | None = None
    latency: str | None = None
    cost: str | None = None


class MetricDifferences(BaseModel):
    """``a - b`` for each compared metric."""

    pass_rate: float
    score: int
    latency: float
    cost: float | None = None


class Comparison(BaseModel):
    variant_a: Ranking
    variant_b: Ranking
    winners: MetricWinners
    differences: MetricDifferences
    preferred: str | None = None
    reasoning: str


class LeaderboardEntry(BaseModel):
    variant_id: str
    variant_name: str
    rank: int = Field(..., ge=1)
    average_score: int = Field(..., ge=0, le=100)
    evaluation_count: int = Field(..., ge=1)
    metrics: PerformanceMetrics
    tags: list[str] = Field(default_factory=list)
    recommendation: Recommendation
    trend: int = 0
