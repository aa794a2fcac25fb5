"""Exception hierarchy for the evaluation engine.

Three tiers, matching where each failure is contained:
- CriterionConfigError: a single criterion is malformed. Converted into a
  failing CriterionResult by the evaluator, never raised past it.
- GenerationError: the text generator failed for one item. Isolated to that
  item's evaluation; the batch keeps going.
- BatchInputError: the batch itself is unusable (no items, no variants,
  duplicate variant ids). Raised before any generation call is made.
"""

from __future__ import annotations


class PromptBenchError(Exception):
    """Base class for all engine errors."""


class CriterionConfigError(PromptBenchError, ValueError):
    """A criterion's configuration cannot be evaluated."""


class GenerationError(PromptBenchError):
    """The generation collaborator did not produce a usable completion."""


class BatchInputError(PromptBenchError, ValueError):
    """A batch request violates its preconditions."""
