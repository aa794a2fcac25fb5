"""Dataset item helpers: sampling, template substitution, expected output text."""

from __future__ import annotations

import json
import random
import re
from collections.abc import Sequence
from typing import Any

from promptbench.errors import BatchInputError
from promptbench.schemas.evaluation import DatasetItem


def sample_items(
    items: Sequence[DatasetItem],
    sample_size: int | None = None,
    seed: int | None = None,
) -> list[DatasetItem]:
    """Cap a dataset to ``sample_size`` items.

    Without a seed the first ``sample_size`` items (dataset order) are taken.
    With a seed a reproducible random subset is drawn, kept in dataset order.
    """
    if sample_size is not None and sample_size < 1:
        raise BatchInputError(f"sample_size must be >= 1, got {sample_size}")
    if sample_size is None or sample_size >= len(items):
        return list(items)
    if seed is None:
        return list(items[:sample_size])
    picked = sorted(random.Random(seed).sample(range(len(items)), sample_size))
    return [items[i] for i in picked]


def _render_value(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def substitute_variables(template: str, variables: Any) -> str:
    """Fill ``{{name}}`` and ``{name}`` placeholders from an input mapping.

    Double-brace placeholders are replaced first so ``{{name}}`` never leaves
    stray braces behind. Unknown placeholders are left untouched, and a
    non-mapping input returns the template unchanged.
    """
    if not isinstance(variables, dict):
        return template

    result = template
    for key, value in variables.items():
        rendered = _render_value(value)
        name = re.escape(str(key))
        for pattern in (rf"\{{\{{{name}\}}\}}", rf"\{{{name}\}}"):
            result = re.sub(pattern, lambda _m: rendered, result)
    return result


def expected_output_text(expected: Any) -> str | None:
    """Render an item's expected output as text for the evaluators."""
    if expected is None:
        return None
    if isinstance(expected, str):
        return expected
    return json.dumps(expected, ensure_ascii=False)
