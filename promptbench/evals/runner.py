"""Batch evaluation runner.

Runs every prompt variant against every sampled dataset item through an
injected text generator, scores each output with the deterministic
evaluators, and rolls the item verdicts up into per-variant summaries.

Generation calls are the only slow, failing operation, so they run on a
fixed-size pool of asyncio workers draining a shared job queue. Each worker
writes its ItemEvaluation into a pre-sized slot (variant index, item index);
nothing is appended to shared lists, so completion order does not matter.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import Mapping, Sequence
from datetime import datetime, timezone
from typing import Any

import structlog

from promptbench.config import EngineSettings, get_engine_settings
from promptbench.errors import BatchInputError
from promptbench.evals.dataset import (
    expected_output_text,
    sample_items,
    substitute_variables,
)
from promptbench.evals.evaluators import count_tokens, evaluate_criterion
from promptbench.logging_config import bound_batch_context
from promptbench.models import TextGenerator, resolve_llm_config
from promptbench.schemas.criteria import Criterion, InvalidCriterion, coerce_criterion
from promptbench.schemas.evaluation import (
    BatchResult,
    BatchStatus,
    CriterionResult,
    DatasetItem,
    GenerationResult,
    ItemEvaluation,
    TokenUsage,
    Variant,
    VariantSummary,
)

logger = structlog.get_logger(__name__)

PASS_THRESHOLD = 0.5

_Job = tuple[int, int, Variant, DatasetItem]


# ---------------------------------------------------------------------------
# Pure aggregation
# ---------------------------------------------------------------------------


def aggregate_item(
    results: Sequence[CriterionResult],
    criteria: Sequence[Criterion | InvalidCriterion],
) -> tuple[float, bool]:
    """Weighted overall score and pass/fail verdict for one item.

    ``results[i]`` must belong to ``criteria[i]``. The item passes only if the
    weighted score is above 0.5 *and* every required criterion passed.
    """
    if not results:
        return 0.0, False

    total_weight = 0.0
    weighted = 0.0
    required_ok = True
    for result, criterion in zip(results, criteria, strict=True):
        if criterion.required and not result.passed:
            required_ok = False
        total_weight += criterion.weight
        weighted += result.score * criterion.weight

    overall = weighted / total_weight if total_weight > 0 else 0.0
    overall = max(0.0, min(1.0, overall))
    return overall, required_ok and overall > PASS_THRESHOLD


def summarize_variant(
    variant: Variant,
    evaluations: Sequence[ItemEvaluation],
    engine_settings: EngineSettings | None = None,
) -> VariantSummary:
    """Roll item evaluations up into a VariantSummary.

    The summary records the model the variant actually ran on, with unset
    parameters filled from engine.toml [defaults], so it can be priced.
    """
    total = len(evaluations)
    passed = sum(1 for e in evaluations if e.passed)
    latencies = [e.latency_ms for e in evaluations if e.latency_ms is not None]

    return VariantSummary(
        variant_id=variant.id,
        variant_name=variant.name,
        llm=resolve_llm_config(variant.llm, engine_settings),
        evaluations=list(evaluations),
        total_items=total,
        passed_items=passed,
        failed_items=total - passed,
        average_score=(
            sum(e.overall_score for e in evaluations) / total if total else 0.0
        ),
        average_latency=sum(latencies) / len(latencies) if latencies else None,
        pass_rate=passed / total if total else 0.0,
    )


def _failed_item(item: DatasetItem, error: str, **fields: Any) -> ItemEvaluation:
    return ItemEvaluation(
        dataset_item_id=item.id,
        input=item.input,
        expected_output=item.expected_output,
        overall_score=0.0,
        passed=False,
        error=error,
        **fields,
    )


def _check_inputs(variants: Sequence[Variant], items: Sequence[DatasetItem]) -> None:
    if not variants:
        raise BatchInputError("No prompt variants to evaluate")
    if not items:
        raise BatchInputError("No dataset items found")
    seen: set[str] = set()
    for variant in variants:
        if variant.id in seen:
            raise BatchInputError(f"Duplicate variant id: {variant.id}")
        seen.add(variant.id)


# ---------------------------------------------------------------------------
# Batch evaluator
# ---------------------------------------------------------------------------


class BatchEvaluator:
    """Evaluate prompt variants over a dataset with bounded concurrency.

    Args:
        generator: The text generation collaborator.
        max_workers: Concurrent in-flight generation calls. None = engine.toml.
        timeout_seconds: Per-call generation timeout. None = engine.toml.
        engine_settings: Optional settings; loaded from engine.toml if omitted.
    """

    def __init__(
        self,
        generator: TextGenerator,
        max_workers: int | None = None,
        timeout_seconds: float | None = None,
        engine_settings: EngineSettings | None = None,
    ) -> None:
        engine_settings = engine_settings or get_engine_settings()
        self._generator = generator
        self._engine_settings = engine_settings
        self._max_workers = (
            engine_settings.batch.max_workers if max_workers is None else max_workers
        )
        self._timeout = (
            engine_settings.batch.timeout_seconds
            if timeout_seconds is None
            else timeout_seconds
        )
        if self._max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {self._max_workers}")
        if self._timeout <= 0:
            raise ValueError(f"timeout_seconds must be > 0, got {self._timeout}")

    @property
    def max_workers(self) -> int:
        return self._max_workers

    async def evaluate_item(
        self,
        variant: Variant,
        item: DatasetItem,
        criteria: Sequence[Criterion | InvalidCriterion],
    ) -> ItemEvaluation:
        """Generate an output for one item and score it.

        A failing, timed-out or malformed generation call yields a failed
        evaluation with no latency instead of raising. A crash while scoring
        a generated output yields a failed evaluation that keeps the output
        and latency.
        """
        start = time.perf_counter()
        try:
            prompt = substitute_variables(variant.content, item.input)
            generation = await asyncio.wait_for(
                self._generator.generate(prompt, variant.llm),
                timeout=self._timeout,
            )
            latency_ms = (time.perf_counter() - start) * 1000.0
            if isinstance(generation, str):
                generation = GenerationResult(text=generation)
            elif not isinstance(generation, GenerationResult):
                generation = GenerationResult.model_validate(generation)
        except Exception as exc:
            error = (
                f"Generation timed out after {self._timeout:g}s"
                if isinstance(exc, TimeoutError)
                else f"{type(exc).__name__}: {exc}"
            )
            logger.warning(
                "item_failed",
                variant_id=variant.id,
                item_id=item.id,
                error=error,
            )
            return _failed_item(item, error)

        output = generation.text
        usage = generation.token_usage or TokenUsage(
            input_tokens=count_tokens(prompt),
            output_tokens=count_tokens(output),
        )
        try:
            expected = expected_output_text(item.expected_output)
            results = [evaluate_criterion(output, expected, c) for c in criteria]
            overall, passed = aggregate_item(results, criteria)
        except Exception as exc:
            error = f"Evaluation failed: {type(exc).__name__}: {exc}"
            logger.error(
                "item_evaluation_crashed",
                variant_id=variant.id,
                item_id=item.id,
                error=error,
            )
            return _failed_item(
                item, error, actual_output=output, latency_ms=latency_ms, token_usage=usage
            )

        logger.debug(
            "item_evaluated",
            variant_id=variant.id,
            item_id=item.id,
            score=round(overall, 3),
            passed=passed,
            latency_ms=round(latency_ms, 1),
        )
        return ItemEvaluation(
            dataset_item_id=item.id,
            input=item.input,
            actual_output=output,
            expected_output=item.expected_output,
            results=results,
            overall_score=overall,
            passed=passed,
            latency_ms=latency_ms,
            token_usage=usage,
        )

    async def _worker(
        self,
        queue: asyncio.Queue[_Job],
        slots: list[list[ItemEvaluation | None]],
        criteria: Sequence[Criterion | InvalidCriterion],
        cancel_event: asyncio.Event,
    ) -> None:
        while not cancel_event.is_set():
            try:
                v_idx, i_idx, variant, item = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            try:
                slots[v_idx][i_idx] = await self.evaluate_item(variant, item, criteria)
            except Exception as exc:
                error = f"{type(exc).__name__}: {exc}"
                logger.error(
                    "item_crashed", variant_id=variant.id, item_id=item.id, error=error
                )
                slots[v_idx][i_idx] = _failed_item(item, error)

    async def run_batch(
        self,
        variants: Sequence[Variant],
        items: Sequence[DatasetItem],
        criteria: Sequence[Criterion | InvalidCriterion | Mapping[str, Any]],
        sample_size: int | None = None,
        seed: int | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> BatchResult:
        """Evaluate every variant on every sampled item.

        Args:
            variants: Prompt variants; ids must be unique.
            items: Dataset items shared by all variants.
            criteria: The test suite, typed or as raw dicts.
            sample_size: Cap on the number of items evaluated.
            seed: Draw a reproducible random sample instead of the first items.
            cancel_event: Setting it stops scheduling new items; results for
                completed items are kept and the batch reports ``cancelled``.

        Raises:
            BatchInputError: No variants, no items, duplicate variant ids, or
                an invalid sample size.
        """
        sampled = sample_items(items, sample_size, seed)
        _check_inputs(variants, sampled)
        suite = [coerce_criterion(c) for c in criteria]
        cancel_event = cancel_event or asyncio.Event()

        batch_id = str(uuid.uuid4())
        started_at = datetime.now(timezone.utc)

        with bound_batch_context(batch_id):
            logger.info(
                "batch_started",
                variants=len(variants),
                items=len(sampled),
                criteria=len(suite),
                max_workers=self._max_workers,
            )

            queue: asyncio.Queue[_Job] = asyncio.Queue()
            for v_idx, variant in enumerate(variants):
                for i_idx, item in enumerate(sampled):
                    queue.put_nowait((v_idx, i_idx, variant, item))
            slots: list[list[ItemEvaluation | None]] = [
                [None] * len(sampled) for _ in variants
            ]

            worker_count = min(self._max_workers, queue.qsize())
            await asyncio.gather(
                *(
                    self._worker(queue, slots, suite, cancel_event)
                    for _ in range(worker_count)
                )
            )

            summaries = []
            complete = True
            for variant, variant_slots in zip(variants, slots, strict=True):
                done = [e for e in variant_slots if e is not None]
                complete = complete and len(done) == len(variant_slots)
                summary = summarize_variant(variant, done, self._engine_settings)
                summaries.append(summary)
                logger.info(
                    "variant_completed",
                    variant_id=variant.id,
                    total=summary.total_items,
                    passed=summary.passed_items,
                    pass_rate=round(summary.pass_rate, 3),
                )

            status = BatchStatus.COMPLETED if complete else BatchStatus.CANCELLED
            logger.info("batch_finished", status=status.value)

        return BatchResult(
            batch_id=batch_id,
            status=status,
            started_at=started_at,
            completed_at=datetime.now(timezone.utc),
            variant_summaries=summaries,
        )


async def run_batch_evaluation(
    variants: Sequence[Variant],
    items: Sequence[DatasetItem],
    criteria: Sequence[Criterion | InvalidCriterion | Mapping[str, Any]],
    generator: TextGenerator,
    sample_size: int | None = None,
    max_workers: int | None = None,
    timeout_seconds: float | None = None,
) -> list[VariantSummary]:
    """Run a batch and return only the per-variant summaries."""
    evaluator = BatchEvaluator(
        generator, max_workers=max_workers, timeout_seconds=timeout_seconds
    )
    result = await evaluator.run_batch(variants, items, criteria, sample_size=sample_size)
    return result.variant_summaries
