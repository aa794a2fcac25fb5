"""Deterministic scoring, tagging and ranking of evaluated prompt variants.

Batch summaries provide the raw measurements. Everything here is a pure
reduction over them: metrics are derived per variant, folded into a 0-100
composite score under caller-supplied weights, and the variants are ordered
by that score. Nothing is cached between calls.
"""

from __future__ import annotations

import math
import statistics
from collections.abc import Sequence

import structlog

from promptbench.config import get_engine_settings
from promptbench.schemas.evaluation import VariantSummary
from promptbench.schemas.scoring import (
    Comparison,
    CostTable,
    LeaderboardEntry,
    MetricDifferences,
    MetricWinners,
    PerformanceMetrics,
    Ranking,
    Recommendation,
    ScoringWeights,
)

logger = structlog.get_logger(__name__)


def _clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------


def _estimate_cost(summary: VariantSummary, cost_table: CostTable | None) -> float | None:
    if cost_table is None or summary.llm is None:
        return None
    pricing = cost_table.lookup(summary.llm.provider, summary.llm.model)
    if pricing is None:
        return None

    costs = [
        (
            e.token_usage.input_tokens * pricing.input_rate_per_1k
            + e.token_usage.output_tokens * pricing.output_rate_per_1k
        )
        / 1000.0
        for e in summary.evaluations
        if e.latency_ms is not None and e.token_usage is not None
    ]
    if not costs:
        return None
    return sum(costs) / len(costs)


def calculate_metrics(
    summary: VariantSummary, cost_table: CostTable | None = None
) -> PerformanceMetrics:
    """Derive performance metrics for one variant from its batch summary."""
    evaluations = summary.evaluations
    latencies = sorted(e.latency_ms for e in evaluations if e.latency_ms is not None)

    median_latency = p95_latency = None
    if latencies:
        n = len(latencies)
        median_latency = latencies[n // 2]
        p95_latency = latencies[min(n - 1, math.floor(n * 0.95))]

    success_rate = len(latencies) / len(evaluations) if evaluations else 0.0

    consistency = None
    if evaluations:
        scores = [e.overall_score for e in evaluations]
        variance = statistics.variance(scores) if len(scores) > 1 else 0.0
        consistency = max(0.0, 1.0 - math.sqrt(variance))

    total_tokens = None
    used = [
        e.token_usage.total_tokens
        for e in evaluations
        if e.latency_ms is not None and e.token_usage is not None
    ]
    if used:
        total_tokens = sum(used)

    return PerformanceMetrics(
        pass_rate=_clamp01(summary.pass_rate),
        average_score=_clamp01(summary.average_score),
        average_latency=summary.average_latency or 0.0,
        median_latency=median_latency,
        p95_latency=p95_latency,
        estimated_cost_per_run=_estimate_cost(summary, cost_table),
        total_tokens_used=total_tokens,
        consistency_score=consistency,
        success_rate=success_rate,
        error_rate=1.0 - success_rate,
    )


def calculate_composite_score(
    metrics: PerformanceMetrics,
    weights: ScoringWeights | None = None,
    max_latency_ms: float | None = None,
    max_cost: float | None = None,
) -> int:
    """Combine metrics into a 0-100 score.

    Latency and cost are inverted onto [0, 1] against their "reasonable"
    ceilings; unknown cost counts as best case. The weighted sum is damped by
    the success rate so hard failures drag every component down.
    """
    weights = weights or ScoringWeights()
    scoring_cfg = get_engine_settings().scoring
    max_latency_ms = max_latency_ms or scoring_cfg.max_reasonable_latency_ms
    max_cost = max_cost or scoring_cfg.max_reasonable_cost

    norm_latency = max(0.0, 1.0 - metrics.average_latency / max_latency_ms)
    if metrics.estimated_cost_per_run is None:
        norm_cost = 1.0
    else:
        norm_cost = max(0.0, 1.0 - metrics.estimated_cost_per_run / max_cost)

    composite = (
        metrics.pass_rate * weights.pass_rate
        + metrics.average_score * weights.average_score
        + norm_latency * weights.latency
        + norm_cost * weights.cost
    )
    reliability_adjusted = composite * metrics.success_rate
    return max(0, min(100, _round_half_up(reliability_adjusted * 100)))


def generate_tags(metrics: PerformanceMetrics) -> list[str]:
    """Qualitative, non-exclusive tags for a variant."""
    tags: list[str] = []

    if metrics.pass_rate >= 0.9:
        tags.append("highly-accurate")
    elif metrics.pass_rate >= 0.8:
        tags.append("accurate")
    elif metrics.pass_rate < 0.6:
        tags.append("needs-improvement")

    if metrics.average_latency < 1000:
        tags.append("fast")
    elif metrics.average_latency < 3000:
        tags.append("moderate-speed")
    else:
        tags.append("slow")

    cost = metrics.estimated_cost_per_run
    if cost is not None:
        if cost < 0.01:
            tags.append("cost-effective")
        elif cost > 0.1:
            tags.append("expensive")

    if metrics.success_rate >= 0.99:
        tags.append("reliable")
    elif metrics.success_rate < 0.9:
        tags.append("unreliable")

    consistency = metrics.consistency_score
    if consistency is not None:
        if consistency >= 0.9:
            tags.append("consistent")
        elif consistency < 0.7:
            tags.append("inconsistent")

    return tags


def generate_recommendation(metrics: PerformanceMetrics, score: int) -> Recommendation:
    if metrics.pass_rate >= 0.85 and metrics.success_rate >= 0.95 and score >= 75:
        return Recommendation.PRODUCTION
    if metrics.pass_rate < 0.6 or metrics.success_rate < 0.8 or score < 40:
        return Recommendation.DISCARD
    return Recommendation.CANDIDATE


# ---------------------------------------------------------------------------
# Ranking
# ---------------------------------------------------------------------------


def rank_variants(
    summaries: Sequence[VariantSummary],
    weights: ScoringWeights | None = None,
    cost_table: CostTable | None = None,
) -> list[Ranking]:
    """Score every variant and order them best first.

    Ties keep input order. Ranks are 1..N without gaps.
    """
    weights = weights or get_engine_settings().scoring.weights

    scored = []
    for summary in summaries:
        metrics = calculate_metrics(summary, cost_table)
        score = calculate_composite_score(metrics, weights)
        scored.append((summary, metrics, score))

    scored.sort(key=lambda entry: entry[2], reverse=True)

    rankings = [
        Ranking(
            variant_id=summary.variant_id,
            variant_name=summary.variant_name,
            rank=position,
            score=score,
            metrics=metrics,
            tags=generate_tags(metrics),
            recommendation=generate_recommendation(metrics, score),
        )
        for position, (summary, metrics, score) in enumerate(scored, start=1)
    ]
    logger.info(
        "variants_ranked",
        count=len(rankings),
        leader=rankings[0].variant_id if rankings else None,
    )
    return rankings


# ---------------------------------------------------------------------------
# Pairwise comparison
# ---------------------------------------------------------------------------


def _higher(a: float, b: float, id_a: str, id_b: str) -> str | None:
    if a > b:
        return id_a
    if b > a:
        return id_b
    return None


def _comparison_reasoning(winner: Ranking, loser: Ranking, winners: MetricWinners) -> str:
    reasons = []
    if winners.pass_rate == winner.variant_id:
        reasons.append(
            f"{winner.variant_name} has a higher pass rate "
            f"({winner.metrics.pass_rate * 100:.1f}% vs {loser.metrics.pass_rate * 100:.1f}%)"
        )
    if winners.latency == winner.variant_id:
        reasons.append(
            f"{winner.variant_name} is faster "
            f"({winner.metrics.average_latency:.0f}ms vs {loser.metrics.average_latency:.0f}ms)"
        )
    if winners.cost == winner.variant_id:
        reasons.append(f"{winner.variant_name} is more cost-effective")
    return ", and ".join(reasons)


def compare_two(ranking_a: Ranking, ranking_b: Ranking) -> Comparison:
    """Side-by-side verdict for two ranked variants.

    Higher pass rate, lower latency and lower cost win their metric; the
    overall winner has the higher composite score. Cost is only compared when
    both variants have a cost estimate.
    """
    id_a, id_b = ranking_a.variant_id, ranking_b.variant_id
    ma, mb = ranking_a.metrics, ranking_b.metrics

    cost_a, cost_b = ma.estimated_cost_per_run, mb.estimated_cost_per_run
    both_costed = cost_a is not None and cost_b is not None

    winners = MetricWinners(
        overall=_higher(ranking_a.score, ranking_b.score, id_a, id_b),
        pass_rate=_higher(ma.pass_rate, mb.pass_rate, id_a, id_b),
        # Lower is better: swap the operands.
        latency=_higher(mb.average_latency, ma.average_latency, id_a, id_b),
        cost=_higher(cost_b, cost_a, id_a, id_b) if both_costed else None,
    )
    differences = MetricDifferences(
        pass_rate=ma.pass_rate - mb.pass_rate,
        score=ranking_a.score - ranking_b.score,
        latency=ma.average_latency - mb.average_latency,
        cost=cost_a - cost_b if both_costed else None,
    )

    reasoning = ""
    if winners.overall == id_a:
        reasoning = _comparison_reasoning(ranking_a, ranking_b, winners)
    elif winners.overall == id_b:
        reasoning = _comparison_reasoning(ranking_b, ranking_a, winners)
    if not reasoning:
        reasoning = "Performance is very similar between both variants."

    return Comparison(
        variant_a=ranking_a,
        variant_b=ranking_b,
        winners=winners,
        differences=differences,
        preferred=winners.overall,
        reasoning=reasoning,
    )


# ---------------------------------------------------------------------------
# Leaderboard across runs
# ---------------------------------------------------------------------------


def build_leaderboard(
    ranking_runs: Sequence[Sequence[Ranking]], limit: int = 20
) -> list[LeaderboardEntry]:
    """Aggregate rankings from several evaluation runs into one leaderboard.

    Runs are given oldest first. Scores, pass rates and latencies are
    averaged per variant; tags and recommendation come from the variant's
    latest run, and ``trend`` is its latest score minus its first.
    """
    by_variant: dict[str, list[Ranking]] = {}
    for run in ranking_runs:
        for ranking in run:
            by_variant.setdefault(ranking.variant_id, []).append(ranking)

    entries = []
    for variant_id, history in by_variant.items():
        n = len(history)
        latest = history[-1]
        metrics = latest.metrics.model_copy(
            update={
                "pass_rate": sum(r.metrics.pass_rate for r in history) / n,
                "average_latency": sum(r.metrics.average_latency for r in history) / n,
            }
        )
        entries.append(
            dict(
                variant_id=variant_id,
                variant_name=latest.variant_name,
                average_score=_round_half_up(sum(r.score for r in history) / n),
                evaluation_count=n,
                metrics=metrics,
                tags=list(latest.tags),
                recommendation=latest.recommendation,
                trend=latest.score - history[0].score if n > 1 else 0,
            )
        )

    entries.sort(key=lambda e: e["average_score"], reverse=True)
    return [
        LeaderboardEntry(rank=position, **entry)
        for position, entry in enumerate(entries[:limit], start=1)
    ]
