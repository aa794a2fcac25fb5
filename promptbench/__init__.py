"""promptbench: deterministic evaluation and ranking of prompt variants.

Pipeline, bottom-up:
- evals.evaluators: check one output against typed pass/fail criteria
- evals.runner: run variants x dataset items through a text generator
- evals.scoring: turn batch summaries into metrics, scores and rankings
"""

from promptbench.evals.evaluators import evaluate_output
from promptbench.evals.runner import BatchEvaluator, run_batch_evaluation
from promptbench.evals.scoring import build_leaderboard, compare_two, rank_variants

__all__ = [
    "BatchEvaluator",
    "build_leaderboard",
    "compare_two",
    "evaluate_output",
    "rank_variants",
    "run_batch_evaluation",
]
