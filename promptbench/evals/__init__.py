"""Evaluation pipeline: deterministic checks, batch runs, scoring.

Key components:
- evaluators: the thirteen criterion kinds and evaluate_output
- dataset: sampling and prompt template substitution
- runner: bounded-concurrency batch orchestration and per-variant rollups
- scoring: metrics, composite score, tags, recommendation, ranking
"""
