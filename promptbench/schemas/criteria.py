"""Typed evaluation criteria.

A criterion is a tagged union keyed by ``type``: each of the thirteen kinds
has its own config model carrying only the fields its evaluator reads, so
presence checks happen once, at validation time.

Criteria arrive from stored test suites as plain dicts. ``coerce_criterion``
validates one such dict; when validation fails it returns an
``InvalidCriterion`` placeholder instead of raising, so a single malformed
rule surfaces as a failing result next to its siblings rather than aborting
the whole suite.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum
from typing import Annotated, Any, Literal, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    model_validator,
)


class CriterionType(StrEnum):
    """The thirteen deterministic check kinds."""

    MUST_CONTAIN = "must_contain"
    MUST_NOT_CONTAIN = "must_not_contain"
    REGEX_MATCH = "regex_match"
    REGEX_NOT_MATCH = "regex_not_match"
    TOKEN_LIMIT_MAX = "token_limit_max"
    TOKEN_LIMIT_MIN = "token_limit_min"
    LENGTH_MAX_CHARS = "length_max_chars"
    LENGTH_MIN_CHARS = "length_min_chars"
    JSON_SCHEMA_VALID = "json_schema_valid"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    EXACT_MATCH = "exact_match"
    SIMILARITY_THRESHOLD = "similarity_threshold"


# ---------------------------------------------------------------------------
# Per-kind configuration
# ---------------------------------------------------------------------------


class _Config(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)


class TextSetConfig(_Config):
    """must_contain / must_not_contain: one string or a list of strings."""

    text: str | None = None
    texts: list[str] | None = None
    case_sensitive: bool = Field(default=True, alias="caseSensitive")

    @model_validator(mode="after")
    def _require_text_or_texts(self) -> TextSetConfig:
        if not self.text and not self.texts:
            raise ValueError("must provide either 'text' or 'texts'")
        return self


class RegexConfig(_Config):
    pattern: str = Field(..., min_length=1)
    flags: str = ""


class LimitConfig(_Config):
    """Token or character limits. ``value`` is the bound being enforced."""

    value: float = Field(..., gt=0)


class JsonSchemaConfig(_Config):
    # Accepted for forward compatibility; only structural validity is checked.
    schema_: dict[str, Any] | None = Field(default=None, alias="schema")


class AffixConfig(_Config):
    text: str = Field(..., min_length=1)
    case_sensitive: bool = Field(default=True, alias="caseSensitive")


class ExactMatchConfig(_Config):
    """Target text; falls back to the dataset item's expected output."""

    text: str | None = None
    case_sensitive: bool = Field(default=True, alias="caseSensitive")


class SimilarityConfig(_Config):
    threshold: float = Field(..., ge=0.0, le=1.0)
    reference_text: str | None = Field(default=None, alias="referenceText")


# ---------------------------------------------------------------------------
# Criteria
# ---------------------------------------------------------------------------


class _CriterionBase(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    name: str = ""
    description: str | None = None
    weight: float = Field(default=1.0, ge=0.0, le=1.0)
    required: bool = True


class MustContainCriterion(_CriterionBase):
    type: Literal["must_contain"] = "must_contain"
    config: TextSetConfig


class MustNotContainCriterion(_CriterionBase):
    type: Literal["must_not_contain"] = "must_not_contain"
    config: TextSetConfig


class RegexMatchCriterion(_CriterionBase):
    type: Literal["regex_match"] = "regex_match"
    config: RegexConfig


class RegexNotMatchCriterion(_CriterionBase):
    type: Literal["regex_not_match"] = "regex_not_match"
    config: RegexConfig


class TokenLimitMaxCriterion(_CriterionBase):
    type: Literal["token_limit_max"] = "token_limit_max"
    config: LimitConfig


class TokenLimitMinCriterion(_CriterionBase):
    type: Literal["token_limit_min"] = "token_limit_min"
    config: LimitConfig


class LengthMaxCharsCriterion(_CriterionBase):
    type: Literal["length_max_chars"] = "length_max_chars"
    config: LimitConfig


class LengthMinCharsCriterion(_CriterionBase):
    type: Literal["length_min_chars"] = "length_min_chars"
    config: LimitConfig


class JsonSchemaValidCriterion(_CriterionBase):
    type: Literal["json_schema_valid"] = "json_schema_valid"
    config: JsonSchemaConfig = Field(default_factory=JsonSchemaConfig)


class StartsWithCriterion(_CriterionBase):
    type: Literal["starts_with"] = "starts_with"
    config: AffixConfig


class EndsWithCriterion(_CriterionBase):
    type: Literal["ends_with"] = "ends_with"
    config: AffixConfig


class ExactMatchCriterion(_CriterionBase):
    type: Literal["exact_match"] = "exact_match"
    config: ExactMatchConfig = Field(default_factory=ExactMatchConfig)


class SimilarityThresholdCriterion(_CriterionBase):
    type: Literal["similarity_threshold"] = "similarity_threshold"
    config: SimilarityConfig


Criterion = Annotated[
    Union[
        MustContainCriterion,
        MustNotContainCriterion,
        RegexMatchCriterion,
        RegexNotMatchCriterion,
        TokenLimitMaxCriterion,
        TokenLimitMinCriterion,
        LengthMaxCharsCriterion,
        LengthMinCharsCriterion,
        JsonSchemaValidCriterion,
        StartsWithCriterion,
        EndsWithCriterion,
        ExactMatchCriterion,
        SimilarityThresholdCriterion,
    ],
    Field(discriminator="type"),
]

_CRITERION_ADAPTER: TypeAdapter[Criterion] = TypeAdapter(Criterion)


class InvalidCriterion(BaseModel):
    """Stand-in for a criterion whose stored definition failed validation."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    type: str = "unknown"
    weight: float = 1.0
    required: bool = True
    error: str


def format_validation_error(exc: ValidationError) -> str:
    """Compact one-line rendering of a pydantic ValidationError."""
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err["loc"]) or "criterion"
        parts.append(f"{loc}: {err['msg']}")
    return "; ".join(parts)


def _lenient_weight(raw: Any) -> float:
    try:
        weight = float(raw)
    except (TypeError, ValueError):
        return 1.0
    return max(0.0, min(1.0, weight))


def parse_criterion(data: Mapping[str, Any]) -> Criterion:
    """Validate a criterion dict into its typed form. Raises ValidationError."""
    return _CRITERION_ADAPTER.validate_python(dict(data))


def coerce_criterion(
    criterion: Criterion | InvalidCriterion | Mapping[str, Any],
) -> Criterion | InvalidCriterion:
    """Return a typed criterion, or an InvalidCriterion describing why not."""
    if isinstance(criterion, (_CriterionBase, InvalidCriterion)):
        return criterion
    try:
        return parse_criterion(criterion)
    except ValidationError as exc:
        return InvalidCriterion(
            id=str(criterion.get("id", "")),
            name=str(criterion.get("name", "")),
            type=str(criterion.get("type", "unknown")),
            weight=_lenient_weight(criterion.get("weight", 1.0)),
            required=bool(criterion.get("required", True)),
            error=format_validation_error(exc),
        )
