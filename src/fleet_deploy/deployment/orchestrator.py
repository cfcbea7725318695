"""
Fleet orchestration: run every selected site through the pipeline in order.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence

from ..credentials import BaseCredentials
from ..exceptions import SelectionError
from ..sites import Site, SiteRegistry
from .executor import SiteExecutor, TargetRunResult

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class FleetRunReport:
    """Ordered per-site results of one run."""

    planned: List[Site] = field(default_factory=list)
    results: List[TargetRunResult] = field(default_factory=list)
    started_at: datetime = field(default_factory=_now)
    finished_at: Optional[datetime] = None
    dry_run: bool = False
    interrupted: bool = False

    def append(self, result: TargetRunResult) -> None:
        if self.finished_at is not None:
            raise RuntimeError("Report is already finalized")
        self.results.append(result)

    def finalize(self) -> "FleetRunReport":
        if self.finished_at is None:
            self.finished_at = _now()
        return self

    @property
    def duration(self) -> float:
        end = self.finished_at or _now()
        return (end - self.started_at).total_seconds()

    @property
    def skipped(self) -> List[Site]:
        """Planned sites that never started because the run was interrupted."""
        done = {result.site_id for result in self.results}
        return [site for site in self.planned if site.id not in done]


def parse_site_ids(value: Optional[str]) -> List[str]:
    """Split a comma-separated ``--sites`` value, dropping blanks."""
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def select_sites(all_sites: Sequence[Site], selected_ids: Optional[Sequence[str]]) -> List[Site]:
    """
    Filter sites by id, keeping registry order.

    Raises:
        SelectionError: if there are no sites, or a non-empty selection
            matches none of them
    """
    available = [site.id for site in all_sites]
    if not all_sites:
        raise SelectionError(list(selected_ids or []), available)

    if not selected_ids:
        return list(all_sites)

    wanted = set(selected_ids)
    sites = [site for site in all_sites if site.id in wanted]
    if not sites:
        raise SelectionError(list(selected_ids), available)

    unknown = sorted(wanted - set(available))
    if unknown:
        logger.warning(f"Ignoring unknown site(s): {', '.join(unknown)}")
    return sites


class FleetOrchestrator:
    """Deploy a set of sites one after another."""

    def __init__(
        self,
        registry: SiteRegistry,
        executor: SiteExecutor,
        credential_resolver: Callable[[], BaseCredentials],
        on_site_start: Optional[Callable[[Site, int, int], None]] = None,
    ):
        """
        Initialize orchestrator.

        Args:
            registry: Deployable sites
            executor: Runs one site's pipeline
            credential_resolver: Returns the base credentials; raises
                MissingCredentials when they are unavailable
            on_site_start: Called with (site, position, total) before each site
        """
        self.registry = registry
        self.executor = executor
        self.credential_resolver = credential_resolver
        self.on_site_start = on_site_start
        self._stop = threading.Event()

    def request_stop(self) -> None:
        """Stop before the next site starts; the current site finishes."""
        self._stop.set()

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    def plan(self, selected_ids: Optional[Sequence[str]] = None) -> List[Site]:
        return select_sites(self.registry.list_sites(), selected_ids)

    def run(
        self, selected_ids: Optional[Sequence[str]] = None, dry_run: bool = False
    ) -> FleetRunReport:
        """
        Run the fleet deployment.

        A ``KeyboardInterrupt`` raised while a site runs ends the loop; the
        report then holds the sites that finished and is marked interrupted.

        Raises:
            SelectionError: if the selection matches no site
            MissingCredentials: if the base credentials are unavailable
        """
        sites = self.plan(selected_ids)
        report = FleetRunReport(planned=sites, dry_run=dry_run)

        if dry_run:
            logger.info(f"Dry run: {len(sites)} site(s) would be deployed")
            return report.finalize()

        base = self.credential_resolver()

        total = len(sites)
        try:
            for position, site in enumerate(sites, start=1):
                if self.stop_requested:
                    logger.warning(f"Stopping before {site.id}: interrupted")
                    report.interrupted = True
                    break

                if self.on_site_start:
                    self.on_site_start(site, position, total)
                report.append(self.executor.execute(site, base))
        except KeyboardInterrupt:
            # The site in progress has no result; it is reported as not started
            logger.warning("Aborted by second interrupt")
            self.request_stop()

        if self.stop_requested:
            report.interrupted = True
        return report.finalize()
