"""
Run summary and exit status.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict

import click

from .executor import TargetOutcome, TargetRunResult
from .orchestrator import FleetRunReport
from .stages import StageKind, StageResult, StageStatus

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130

SEPARATOR = "=" * 60

STATUS_ICONS = {
    StageStatus.SUCCESS: "✅",
    StageStatus.FAILED: "❌",
    StageStatus.NOT_ATTEMPTED: "⏭️ ",
}

OUTCOME_LABELS = {
    TargetOutcome.SUCCEEDED: "✅ SUCCEEDED",
    TargetOutcome.DEGRADED: "⚠️  DEGRADED",
    TargetOutcome.FAILED: "❌ FAILED",
}


@dataclass
class FleetSummary:
    """Aggregate counts for a run."""

    total: int
    stage_successes: Dict[StageKind, int] = field(default_factory=dict)
    outcomes: Dict[TargetOutcome, int] = field(default_factory=dict)
    sites_with_errors: int = 0

    def rate(self, kind: StageKind) -> float:
        return self._percent(self.stage_successes.get(kind, 0))

    @property
    def succeeded(self) -> int:
        """Sites where every stage succeeded."""
        return self.outcomes.get(TargetOutcome.SUCCEEDED, 0)

    @property
    def overall_rate(self) -> float:
        return self._percent(self.succeeded)

    def _percent(self, count: int) -> float:
        if not self.total:
            return 0.0
        return count / self.total * 100


def summarize(report: FleetRunReport) -> FleetSummary:
    results = report.results
    return FleetSummary(
        total=len(results),
        stage_successes={
            kind: sum(1 for r in results if r.stage(kind).success) for kind in StageKind
        },
        outcomes={
            outcome: sum(1 for r in results if r.outcome == outcome)
            for outcome in TargetOutcome
        },
        sites_with_errors=sum(1 for r in results if r.errors),
    )


def exit_code_for(report: FleetRunReport) -> int:
    """0 only when nothing failed; 130 when interrupted; 1 otherwise."""
    if report.dry_run:
        return EXIT_SUCCESS
    if report.interrupted:
        return EXIT_INTERRUPTED
    if any(result.errors for result in report.results):
        return EXIT_FAILURE
    return EXIT_SUCCESS


def format_stage(stage: StageResult) -> str:
    icon = STATUS_ICONS[stage.status]
    if stage.status == StageStatus.NOT_ATTEMPTED:
        return f"{stage.kind.label}: {icon} not attempted"
    return f"{stage.kind.label}: {icon} ({stage.duration:.1f}s)"


def _timestamp(value: datetime) -> str:
    return value.isoformat(timespec="seconds")


def render_site(result: TargetRunResult, echo: Callable[..., None]) -> None:
    echo(f"\n   {result.site_id} ({result.site_title}): {OUTCOME_LABELS[result.outcome]}")
    for kind in StageKind:
        echo(f"      {format_stage(result.stage(kind))}")
    echo(f"      Total: {result.total_duration:.1f}s")
    if result.site_url:
        echo(f"      Site URL: {result.site_url}")
    if result.errors:
        echo(f"      Errors: {', '.join(result.errors)}")


def render_dry_run(report: FleetRunReport, echo: Callable[..., None] = click.echo) -> int:
    echo("\n🔍 DRY RUN MODE: This is a preview of what would happen")
    echo("   No actual deployments will be performed\n")
    for site in report.planned:
        echo(f"   - would deploy {site.id} ({site.title})")
    return exit_code_for(report)


def render(report: FleetRunReport, echo: Callable[..., None] = click.echo) -> int:
    """Print the run summary and return the process exit code."""
    if report.dry_run:
        return render_dry_run(report, echo)

    summary = summarize(report)

    echo("\n" + SEPARATOR)
    echo("📊 Final Summary")
    echo(SEPARATOR)

    duration = report.duration
    echo(f"\n⏱️  Overall Duration: {duration:.1f}s ({duration / 60:.1f} minutes)")
    if report.finished_at:
        echo(f"🕐 Completed at: {_timestamp(report.finished_at)}")

    echo("\n📈 Per-Site Results:")
    for result in report.results:
        render_site(result, echo)

    if report.skipped:
        echo("\n⏭️  Not started (interrupted):")
        for site in report.skipped:
            echo(f"   - {site.id} ({site.title})")

    echo("\n📊 Overall Statistics:")
    echo(f"   Sites processed: {summary.total}")
    for kind in StageKind:
        successes = summary.stage_successes.get(kind, 0)
        echo(
            f"   {kind.label} success rate: {successes}/{summary.total} "
            f"({summary.rate(kind):.1f}%)"
        )
    echo(
        f"   Overall success rate: {summary.succeeded}/{summary.total} "
        f"({summary.overall_rate:.1f}%)"
    )
    echo(
        f"   Succeeded: {summary.outcomes.get(TargetOutcome.SUCCEEDED, 0)}, "
        f"degraded: {summary.outcomes.get(TargetOutcome.DEGRADED, 0)}, "
        f"failed: {summary.outcomes.get(TargetOutcome.FAILED, 0)}"
    )
    echo(f"   Sites with errors: {summary.sites_with_errors}")

    code = exit_code_for(report)
    if code == EXIT_INTERRUPTED:
        echo("\n⚠️  Operation cancelled by user")
    elif code == EXIT_FAILURE:
        echo("\n⚠️  Some deployments failed. Check the errors above.")
    else:
        echo("\n🎉 All deployments completed successfully!")
    return code
