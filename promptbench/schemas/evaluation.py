"""Records produced and consumed by the batch evaluator."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CriterionResult(BaseModel):
    """Outcome of one criterion against one output."""

    model_config = ConfigDict(frozen=True)

    criterion_id: str
    passed: bool
    score: float = Field(..., ge=0.0, le=1.0)
    message: str = ""
    details: dict[str, Any] | None = None


class TokenUsage(BaseModel):
    input_tokens: int = Field(default=0, ge=0)
    output_tokens: int = Field(default=0, ge=0)

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class LLMConfig(BaseModel):
    """Model parameters a variant declares for its generation calls."""

    provider: str = "openai"
    model: str
    temperature: float | None = None
    max_tokens: int | None = Field(default=None, gt=0)


class Variant(BaseModel):
    """One candidate prompt template under evaluation."""

    id: str
    name: str
    content: str
    llm: LLMConfig | None = None


class DatasetItem(BaseModel):
    """A fixed input (and optional expected output) shared by every variant."""

    id: str
    input: Any = Field(default_factory=dict)
    expected_output: Any = None


class GenerationResult(BaseModel):
    """What the generation collaborator hands back for one prompt."""

    text: str
    token_usage: TokenUsage | None = None


class ItemEvaluation(BaseModel):
    """Verdict for one (variant, dataset item) pair.

    ``latency_ms`` is None when the generation call failed; downstream
    success-rate metrics rely on that distinction.
    """

    dataset_item_id: str
    input: Any = None
    actual_output: str = ""
    expected_output: Any = None
    results: list[CriterionResult] = Field(default_factory=list)
    overall_score: float = Field(..., ge=0.0, le=1.0)
    passed: bool
    latency_ms: float | None = Field(default=None, ge=0.0)
    token_usage: TokenUsage | None = None
    error: str | None = None
    executed_at: datetime = Field(default_factory=_utcnow)


class VariantSummary(BaseModel):
    """Per-variant rollup of item evaluations."""

    variant_id: str
    variant_name: str
    llm: LLMConfig | None = None
    evaluations: list[ItemEvaluation] = Field(default_factory=list)
    total_items: int = 0
    passed_items: int = 0
    failed_items: int = 0
    average_score: float = Field(default=0.0, ge=0.0, le=1.0)
    average_latency: float | None = None
    pass_rate: float = Field(default=0.0, ge=0.0, le=1.0)


class BatchStatus(StrEnum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class BatchResult(BaseModel):
    batch_id: str
    status: BatchStatus
    started_at: datetime
    completed_at: datetime
    variant_summaries: list[VariantSummary] = Field(default_factory=list)
