"""Rich console rendering for batch results and variant rankings."""

from __future__ import annotations

from collections.abc import Sequence

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from promptbench.schemas.evaluation import BatchResult
from promptbench.schemas.scoring import Ranking, Recommendation

console = Console()

_RECOMMENDATION_STYLE = {
    Recommendation.PRODUCTION: "green",
    Recommendation.CANDIDATE: "yellow",
    Recommendation.DISCARD: "red",
}


def _fmt_ratio(value: float) -> str:
    color = "green" if value >= 0.8 else "yellow" if value >= 0.5 else "red"
    return f"[{color}]{value * 100:.0f}%[/{color}]"


def _fmt_latency(value: float | None) -> str:
    if value is None:
        return "[dim]n/a[/dim]"
    color = "green" if value < 1000 else "yellow" if value < 3000 else "red"
    return f"[{color}]{value:.0f}ms[/{color}]"


def print_batch_report(result: BatchResult, out: Console | None = None) -> None:
    """Print per-variant pass/fail counts for one batch."""
    out = out or console
    if not result.variant_summaries:
        out.print("[yellow]No results to display.[/yellow]")
        return

    table = Table(title=f"Batch {result.batch_id[:8]} ({result.status})", show_lines=True)
    table.add_column("Variant", style="cyan", max_width=40)
    table.add_column("Items", justify="right")
    table.add_column("Passed", justify="right")
    table.add_column("Failed", justify="right")
    table.add_column("Pass Rate", justify="center")
    table.add_column("Avg Score", justify="center")
    table.add_column("Avg Latency", justify="center")

    for s in result.variant_summaries:
        table.add_row(
            escape(s.variant_name),
            str(s.total_items),
            f"[green]{s.passed_items}[/green]",
            f"[red]{s.failed_items}[/red]" if s.failed_items else "0",
            _fmt_ratio(s.pass_rate),
            f"{s.average_score:.2f}",
            _fmt_latency(s.average_latency),
        )

    out.print(table)

    errors = [
        (s.variant_name, e.dataset_item_id, e.error)
        for s in result.variant_summaries
        for e in s.evaluations
        if e.error
    ]
    if errors:
        out.print(f"\n[bold red]{len(errors)} generation failure(s):[/bold red]")
        for variant_name, item_id, error in errors:
            out.print(f"  - {escape(variant_name)} / {escape(item_id)}: {escape(error)}")


def print_leaderboard(rankings: Sequence[Ranking], out: Console | None = None) -> None:
    """Print ranked variants with score, key metrics, tags and recommendation."""
    out = out or console
    if not rankings:
        out.print("[yellow]No rankings to display.[/yellow]")
        return

    table = Table(title="Prompt Variant Leaderboard", show_lines=True)
    table.add_column("#", justify="right", style="bold")
    table.add_column("Variant", style="cyan", max_width=40)
    table.add_column("Score", justify="center")
    table.add_column("Pass Rate", justify="center")
    table.add_column("Latency", justify="center")
    table.add_column("Cost/Run", justify="right")
    table.add_column("Tags", style="magenta")
    table.add_column("Recommendation", justify="center")

    for r in rankings:
        cost = r.metrics.estimated_cost_per_run
        style = _RECOMMENDATION_STYLE[r.recommendation]
        table.add_row(
            str(r.rank),
            escape(r.variant_name),
            f"[bold]{r.score}[/bold]",
            _fmt_ratio(r.metrics.pass_rate),
            _fmt_latency(r.metrics.average_latency),
            f"${cost:.4f}" if cost is not None else "[dim]n/a[/dim]",
            escape(", ".join(r.tags)),
            f"[{style}]{r.recommendation.upper()}[/{style}]",
        )

    out.print(table)
