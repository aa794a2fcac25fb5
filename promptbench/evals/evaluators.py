"""Deterministic criterion evaluators.

Each evaluator is a standalone function that checks one output against one
typed criterion and returns a CriterionResult with a score in [0, 1].

Evaluators raise CriterionConfigError for problems with the criterion itself
(bad regex, no reference text to compare against). ``evaluate_output`` turns
those, and criteria that failed validation on load, into failing results so
one broken rule never hides the outcome of the others.
"""

from __future__ import annotations

import json
import math
import re
from collections.abc import Callable, Mapping, Sequence
from typing import Any

import structlog

from promptbench.errors import CriterionConfigError
from promptbench.schemas.criteria import (
    AffixConfig,
    Criterion,
    CriterionType,
    InvalidCriterion,
    LimitConfig,
    RegexConfig,
    TextSetConfig,
    coerce_criterion,
)
from promptbench.schemas.evaluation import CriterionResult

logger = structlog.get_logger(__name__)

_CHARS_PER_TOKEN = 4

# JavaScript-style flag letters accepted in stored criteria. g/u/y have no
# effect on a single search and are ignored.
_REGEX_FLAGS: dict[str, int] = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
    "x": re.VERBOSE,
    "g": 0,
    "u": 0,
    "y": 0,
}


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------


def count_tokens(text: str) -> int:
    """Approximate token count: ~4 characters per token."""
    return math.ceil(len(text) / _CHARS_PER_TOKEN)


def calculate_similarity(text1: str, text2: str) -> float:
    """Jaccard similarity of the lower-cased word sets of two texts."""
    words1 = set(text1.lower().split())
    words2 = set(text2.lower().split())
    union = words1 | words2
    if not union:
        return 0.0
    return len(words1 & words2) / len(union)


def _fold(text: str, case_sensitive: bool) -> str:
    return text if case_sensitive else text.lower()


def _compile(config: RegexConfig) -> re.Pattern[str]:
    flags = 0
    for letter in config.flags:
        if letter not in _REGEX_FLAGS:
            raise CriterionConfigError(f"Invalid regex flag: {letter!r}")
        flags |= _REGEX_FLAGS[letter]
    try:
        return re.compile(config.pattern, flags)
    except (re.error, OverflowError, RecursionError) as exc:
        raise CriterionConfigError(
            f"Invalid regex pattern: {config.pattern} ({exc})"
        ) from exc


def _result(
    criterion: Criterion,
    passed: bool,
    score: float,
    message: str,
    details: dict[str, Any] | None = None,
) -> CriterionResult:
    return CriterionResult(
        criterion_id=criterion.id,
        passed=passed,
        score=max(0.0, min(1.0, score)),
        message=message,
        details=details,
    )


# ---------------------------------------------------------------------------
# Evaluators
# ---------------------------------------------------------------------------


def _found_texts(output: str, config: TextSetConfig) -> list[str]:
    haystack = _fold(output, config.case_sensitive)
    return [
        t for t in config.texts or [] if _fold(t, config.case_sensitive) in haystack
    ]


def evaluate_must_contain(output: str, expected: str | None, criterion: Criterion) -> CriterionResult:
    config: TextSetConfig = criterion.config
    if config.text:
        passed = _fold(config.text, config.case_sensitive) in _fold(output, config.case_sensitive)
        message = (
            f'Contains "{config.text}"' if passed else f'Missing required text: "{config.text}"'
        )
        return _result(criterion, passed, 1.0 if passed else 0.0, message)

    texts = config.texts or []
    found = _found_texts(output, config)
    passed = len(found) == len(texts)
    message = (
        "Contains all required texts"
        if passed
        else f"Missing {len(texts) - len(found)} required texts"
    )
    return _result(
        criterion,
        passed,
        len(found) / len(texts),
        message,
        {"found_texts": found, "missing_texts": [t for t in texts if t not in found]},
    )


def evaluate_must_not_contain(output: str, expected: str | None, criterion: Criterion) -> CriterionResult:
    config: TextSetConfig = criterion.config
    if config.text:
        passed = _fold(config.text, config.case_sensitive) not in _fold(output, config.case_sensitive)
        message = (
            f'Correctly excludes "{config.text}"'
            if passed
            else f'Contains forbidden text: "{config.text}"'
        )
        return _result(criterion, passed, 1.0 if passed else 0.0, message)

    texts = config.texts or []
    found = _found_texts(output, config)
    passed = not found
    message = (
        "Correctly excludes all forbidden texts"
        if passed
        else f"Contains {len(found)} forbidden texts"
    )
    return _result(
        criterion,
        passed,
        1.0 - len(found) / len(texts),
        message,
        {"found_forbidden_texts": found},
    )


def evaluate_regex_match(output: str, expected: str | None, criterion: Criterion) -> CriterionResult:
    config: RegexConfig = criterion.config
    matched = _compile(config).search(output) is not None
    message = (
        f"Matches pattern: {config.pattern}"
        if matched
        else f"Does not match pattern: {config.pattern}"
    )
    return _result(criterion, matched, 1.0 if matched else 0.0, message)


def evaluate_regex_not_match(output: str, expected: str | None, criterion: Criterion) -> CriterionResult:
    config: RegexConfig = criterion.config
    matched = _compile(config).search(output) is not None
    message = (
        f"Matches forbidden pattern: {config.pattern}"
        if matched
        else f"Correctly avoids pattern: {config.pattern}"
    )
    return _result(criterion, not matched, 0.0 if matched else 1.0, message)


def _max_limit(criterion: Criterion, count: int, unit: str) -> CriterionResult:
    limit = criterion.config.value
    passed = count <= limit
    score = 1.0 if passed else max(0.0, 1.0 - (count - limit) / limit)
    return _result(
        criterion,
        passed,
        score,
        f"{unit} count: {count}/{limit:g}",
        {"count": count, "limit": limit, "exceeded": count - limit},
    )


def _min_limit(criterion: Criterion, count: int, unit: str) -> CriterionResult:
    limit = criterion.config.value
    passed = count >= limit
    score = 1.0 if passed else count / limit
    return _result(
        criterion,
        passed,
        score,
        f"{unit} count: {count}/{limit:g} minimum",
        {"count": count, "limit": limit, "shortfall": limit - count},
    )


def evaluate_token_limit_max(output: str, expected: str | None, criterion: Criterion) -> CriterionResult:
    return _max_limit(criterion, count_tokens(output), "Token")


def evaluate_token_limit_min(output: str, expected: str | None, criterion: Criterion) -> CriterionResult:
    return _min_limit(criterion, count_tokens(output), "Token")


def evaluate_length_max_chars(output: str, expected: str | None, criterion: Criterion) -> CriterionResult:
    return _max_limit(criterion, len(output), "Character")


def evaluate_length_min_chars(output: str, expected: str | None, criterion: Criterion) -> CriterionResult:
    return _min_limit(criterion, len(output), "Character")


def evaluate_json_schema_valid(output: str, expected: str | None, criterion: Criterion) -> CriterionResult:
    # Structural check only: the output must be a JSON object or array.
    try:
        parsed = json.loads(output)
    except (ValueError, RecursionError) as exc:
        return _result(criterion, False, 0.0, "Invalid JSON format", {"error": str(exc)})
    passed = isinstance(parsed, (dict, list))
    return _result(
        criterion,
        passed,
        1.0 if passed else 0.0,
        "Valid JSON format" if passed else "JSON is not an object or array",
    )


def evaluate_starts_with(output: str, expected: str | None, criterion: Criterion) -> CriterionResult:
    config: AffixConfig = criterion.config
    passed = _fold(output, config.case_sensitive).startswith(
        _fold(config.text, config.case_sensitive)
    )
    message = f'Starts with "{config.text}"' if passed else f'Does not start with "{config.text}"'
    return _result(criterion, passed, 1.0 if passed else 0.0, message)


def evaluate_ends_with(output: str, expected: str | None, criterion: Criterion) -> CriterionResult:
    config: AffixConfig = criterion.config
    passed = _fold(output, config.case_sensitive).endswith(
        _fold(config.text, config.case_sensitive)
    )
    message = f'Ends with "{config.text}"' if passed else f'Does not end with "{config.text}"'
    return _result(criterion, passed, 1.0 if passed else 0.0, message)


def evaluate_exact_match(output: str, expected: str | None, criterion: Criterion) -> CriterionResult:
    config = criterion.config
    target = config.text or expected
    if not target:
        raise CriterionConfigError(
            "Must provide either 'text' in config or an expected output for exact_match"
        )
    passed = _fold(output, config.case_sensitive) == _fold(target, config.case_sensitive)
    return _result(
        criterion,
        passed,
        1.0 if passed else 0.0,
        "Exact match" if passed else "Does not match exactly",
    )


def evaluate_similarity_threshold(output: str, expected: str | None, criterion: Criterion) -> CriterionResult:
    config = criterion.config
    target = config.reference_text or expected
    if not target:
        raise CriterionConfigError(
            "Must provide either 'referenceText' in config or an expected output "
            "for similarity_threshold"
        )
    similarity = calculate_similarity(output, target)
    passed = similarity >= config.threshold
    return _result(
        criterion,
        passed,
        similarity,
        f"Similarity: {similarity * 100:.1f}% (threshold: {config.threshold * 100:.1f}%)",
        {
            "similarity": similarity,
            "threshold": config.threshold,
            "target": "reference_text" if config.reference_text else "expected_output",
        },
    )


EVALUATORS: dict[str, Callable[[str, str | None, Criterion], CriterionResult]] = {
    CriterionType.MUST_CONTAIN: evaluate_must_contain,
    CriterionType.MUST_NOT_CONTAIN: evaluate_must_not_contain,
    CriterionType.REGEX_MATCH: evaluate_regex_match,
    CriterionType.REGEX_NOT_MATCH: evaluate_regex_not_match,
    CriterionType.TOKEN_LIMIT_MAX: evaluate_token_limit_max,
    CriterionType.TOKEN_LIMIT_MIN: evaluate_token_limit_min,
    CriterionType.LENGTH_MAX_CHARS: evaluate_length_max_chars,
    CriterionType.LENGTH_MIN_CHARS: evaluate_length_min_chars,
    CriterionType.JSON_SCHEMA_VALID: evaluate_json_schema_valid,
    CriterionType.STARTS_WITH: evaluate_starts_with,
    CriterionType.ENDS_WITH: evaluate_ends_with,
    CriterionType.EXACT_MATCH: evaluate_exact_match,
    CriterionType.SIMILARITY_THRESHOLD: evaluate_similarity_threshold,
}


# ---------------------------------------------------------------------------
# Public entry points
# ---------------------------------------------------------------------------


def _error_result(criterion_id: str, error: str) -> CriterionResult:
    return CriterionResult(
        criterion_id=criterion_id,
        passed=False,
        score=0.0,
        message=f"evaluation error: {error}",
    )


def evaluate_criterion(
    output: str,
    expected: str | None,
    criterion: Criterion | InvalidCriterion,
) -> CriterionResult:
    """Evaluate one criterion; configuration problems become a failing result."""
    if isinstance(criterion, InvalidCriterion):
        logger.warning("criterion_invalid", criterion_id=criterion.id, error=criterion.error)
        return _error_result(criterion.id, criterion.error)

    try:
        return EVALUATORS[criterion.type](output, expected, criterion)
    except CriterionConfigError as exc:
        logger.warning(
            "criterion_error",
            criterion_id=criterion.id,
            type=criterion.type,
            error=str(exc),
        )
        return _error_result(criterion.id, str(exc))


def evaluate_output(
    output: str,
    expected: str | None,
    criteria: Sequence[Criterion | InvalidCriterion | Mapping[str, Any]],
) -> list[CriterionResult]:
    """Evaluate an output against every criterion, preserving order.

    Args:
        output: The candidate text.
        expected: The dataset item's expected output, if any.
        criteria: Typed criteria or raw criterion dicts.

    Returns:
        One CriterionResult per criterion, in input order.
    """
    return [
        evaluate_criterion(output, expected, coerce_criterion(c)) for c in criteria
    ]
