"""Tests for dataset sampling and prompt variable substitution."""

from __future__ import annotations

import pytest

from promptbench.errors import BatchInputError
from promptbench.evals.dataset import (
    expected_output_text,
    sample_items,
    substitute_variables,
)
from promptbench.schemas.evaluation import DatasetItem


def _items(n: int) -> list[DatasetItem]:
    return [DatasetItem(id=f"item-{i}", input={"n": i}) for i in range(n)]


class TestSampleItems:
    def test_no_cap_returns_all(self):
        assert [i.id for i in sample_items(_items(3))] == ["item-0", "item-1", "item-2"]

    def test_takes_first_n_in_order(self):
        assert [i.id for i in sample_items(_items(5), 2)] == ["item-0", "item-1"]

    def test_cap_larger_than_dataset(self):
        assert len(sample_items(_items(2), 10)) == 2

    def test_seeded_sample_is_reproducible(self):
        items = _items(20)
        first = sample_items(items, 5, seed=42)
        second = sample_items(items, 5, seed=42)
        assert [i.id for i in first] == [i.id for i in second]
        assert len(first) == 5

    def test_seeded_sample_keeps_dataset_order(self):
        items = _items(20)
        picked = [items.index(i) for i in sample_items(items, 6, seed=7)]
        assert picked == sorted(picked)

    @pytest.mark.parametrize("size", [0, -3])
    def test_rejects_non_positive_size(self, size):
        with pytest.raises(BatchInputError, match="sample_size"):
            sample_items(_items(3), size)


class TestSubstituteVariables:
    def test_double_braces(self):
        assert substitute_variables("Classify: {{text}}", {"text": "great"}) == "Classify: great"

    def test_single_braces(self):
        assert substitute_variables("Hi {name}!", {"name": "Ada"}) == "Hi Ada!"

    def test_double_braces_leave_no_stray_braces(self):
        assert substitute_variables("{{a}} and {a}", {"a": "x"}) == "x and x"

    def test_unknown_placeholder_untouched(self):
        assert substitute_variables("{{missing}}", {"other": 1}) == "{{missing}}"

    def test_non_string_values(self):
        assert substitute_variables("n={n}", {"n": 3}) == "n=3"
        assert substitute_variables("{{obj}}", {"obj": {"k": 1}}) == '{"k": 1}'

    def test_replacement_is_literal(self):
        assert substitute_variables("{{v}}", {"v": r"\1 $0"}) == r"\1 $0"

    @pytest.mark.parametrize("variables", [None, "raw text", ["a", "b"]])
    def test_non_mapping_input_leaves_template(self, variables):
        assert substitute_variables("Classify: {{text}}", variables) == "Classify: {{text}}"


class TestExpectedOutputText:
    def test_string_passthrough(self):
        assert expected_output_text("positive") == "positive"

    def test_none(self):
        assert expected_output_text(None) is None

    def test_structured_values_serialized(self):
        assert expected_output_text({"label": "positive"}) == '{"label": "positive"}'
        assert expected_output_text(42) == "42"
