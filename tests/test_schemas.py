"""Tests for criterion and evaluation schemas."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from promptbench.schemas.criteria import (
    ExactMatchCriterion,
    InvalidCriterion,
    JsonSchemaValidCriterion,
    MustContainCriterion,
    SimilarityThresholdCriterion,
    coerce_criterion,
    parse_criterion,
)
from promptbench.schemas.evaluation import CriterionResult, ItemEvaluation, TokenUsage
from promptbench.schemas.scoring import CostTable, ModelPricing


class TestParseCriterion:
    def test_discriminates_on_type(self):
        crit = parse_criterion(
            {"id": "c1", "type": "must_contain", "config": {"text": "hi"}}
        )
        assert isinstance(crit, MustContainCriterion)
        assert crit.config.text == "hi"
        assert crit.weight == 1.0
        assert crit.required is True

    def test_camel_case_aliases(self):
        crit = parse_criterion(
            {
                "id": "c1",
                "type": "similarity_threshold",
                "config": {"threshold": 0.8, "referenceText": "hello world"},
            }
        )
        assert isinstance(crit, SimilarityThresholdCriterion)
        assert crit.config.reference_text == "hello world"

    def test_json_schema_alias(self):
        crit = parse_criterion(
            {"id": "j", "type": "json_schema_valid", "config": {"schema": {"type": "object"}}}
        )
        assert isinstance(crit, JsonSchemaValidCriterion)
        assert crit.config.schema_ == {"type": "object"}

    def test_optional_configs_default(self):
        assert isinstance(parse_criterion({"id": "e", "type": "exact_match"}), ExactMatchCriterion)
        assert isinstance(
            parse_criterion({"id": "j", "type": "json_schema_valid"}), JsonSchemaValidCriterion
        )

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            parse_criterion({"id": "x", "type": "llm_judge", "config": {}})

    def test_weight_out_of_range_rejected(self):
        with pytest.raises(ValidationError):
            parse_criterion(
                {"id": "x", "type": "must_contain", "weight": 2, "config": {"text": "a"}}
            )

    def test_criteria_are_frozen(self):
        crit = parse_criterion({"id": "c1", "type": "must_contain", "config": {"text": "a"}})
        with pytest.raises(ValidationError):
            crit.weight = 0.5


class TestCoerceCriterion:
    def test_passes_typed_criteria_through(self):
        crit = parse_criterion({"id": "c1", "type": "starts_with", "config": {"text": "a"}})
        assert coerce_criterion(crit) is crit

    def test_invalid_dict_becomes_placeholder(self):
        crit = coerce_criterion(
            {"id": "bad", "type": "regex_match", "weight": 0.5, "required": False, "config": {}}
        )
        assert isinstance(crit, InvalidCriterion)
        assert crit.id == "bad"
        assert crit.type == "regex_match"
        assert crit.weight == 0.5
        assert crit.required is False
        assert "pattern" in crit.error

    def test_placeholder_clamps_weight(self):
        crit = coerce_criterion({"id": "bad", "type": "nope", "weight": 7})
        assert isinstance(crit, InvalidCriterion)
        assert crit.weight == 1.0

    def test_placeholder_tolerates_garbage_weight(self):
        crit = coerce_criterion({"id": "bad", "type": "nope", "weight": "heavy"})
        assert crit.weight == 1.0

    def test_text_set_requires_text(self):
        crit = coerce_criterion({"id": "m", "type": "must_not_contain", "config": {"texts": []}})
        assert isinstance(crit, InvalidCriterion)
        assert "text" in crit.error


class TestEvaluationRecords:
    def test_token_usage_total(self):
        assert TokenUsage(input_tokens=3, output_tokens=4).total_tokens == 7

    def test_criterion_result_score_bounds(self):
        with pytest.raises(ValidationError):
            CriterionResult(criterion_id="c", passed=True, score=1.5)

    def test_failed_item_has_no_latency(self):
        item = ItemEvaluation(
            dataset_item_id="i1", overall_score=0.0, passed=False, error="boom"
        )
        assert item.latency_ms is None
        assert item.results == []


class TestCostTable:
    def test_lookup(self):
        table = CostTable(
            [ModelPricing(provider="openai", model="m", input_rate_per_1k=1, output_rate_per_1k=2)]
        )
        assert table.lookup("openai", "m").output_rate_per_1k == 2
        assert table.lookup("openai", "other") is None
        assert ("openai", "m") in table
        assert len(table) == 1
