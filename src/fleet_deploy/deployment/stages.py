"""
Pipeline stage runners.

Each runner wraps one external collaborator call, times it and turns the
outcome (or any exception) into a StageResult. Runners never raise.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Protocol

from ..credentials import ScopedCredentials
from ..outputs import InfrastructureOutputs
from ..sites import Site

logger = logging.getLogger(__name__)


class StageKind(Enum):
    """Reported pipeline stages, in execution order."""

    BUILD = "build"
    UPLOAD = "upload"
    INVALIDATE = "invalidate"

    @property
    def label(self) -> str:
        return {
            StageKind.BUILD: "Build",
            StageKind.UPLOAD: "Upload",
            StageKind.INVALIDATE: "CloudFront Invalidation",
        }[self]


class StageStatus(Enum):
    """Status of a pipeline stage."""

    SUCCESS = "success"
    FAILED = "failed"
    NOT_ATTEMPTED = "not_attempted"


@dataclass(frozen=True)
class StageResult:
    """Outcome of one stage for one site."""

    kind: StageKind
    status: StageStatus
    duration: float = 0.0
    error: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def success(self) -> bool:
        return self.status == StageStatus.SUCCESS

    @property
    def attempted(self) -> bool:
        return self.status != StageStatus.NOT_ATTEMPTED

    @classmethod
    def not_attempted(cls, kind: StageKind) -> "StageResult":
        return cls(kind=kind, status=StageStatus.NOT_ATTEMPTED)


@dataclass
class StageOutcome:
    """What a collaborator reports back."""

    success: bool
    error: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


class ArtifactBuilder(Protocol):
    def build(self, site: Site, api_url: str) -> StageOutcome:
        ...


class ArtifactUploader(Protocol):
    def upload(
        self,
        site: Site,
        artifact_dir: Path,
        bucket_name: str,
        credentials: ScopedCredentials,
    ) -> StageOutcome:
        ...


class CacheInvalidator(Protocol):
    def invalidate(
        self, site: Site, distribution_id: str, credentials: ScopedCredentials
    ) -> StageOutcome:
        ...


def _timed(kind: StageKind, site: Site, call: Callable[[], StageOutcome]) -> StageResult:
    """Run a collaborator call, recording duration whether it succeeds or not."""
    start = time.monotonic()
    try:
        outcome = call()
    except Exception as e:
        duration = time.monotonic() - start
        logger.error(f"{kind.label} raised for {site.id}: {e}")
        return StageResult(kind, StageStatus.FAILED, duration, error=str(e) or type(e).__name__)

    duration = time.monotonic() - start
    if outcome.success:
        logger.info(f"{kind.label} completed for {site.id} ({duration:.1f}s)")
        return StageResult(kind, StageStatus.SUCCESS, duration, details=dict(outcome.details))

    logger.error(f"{kind.label} failed for {site.id}: {outcome.error}")
    return StageResult(
        kind,
        StageStatus.FAILED,
        duration,
        error=outcome.error or "unknown error",
        details=dict(outcome.details),
    )


def run_build(
    site: Site,
    credentials: ScopedCredentials,
    outputs: InfrastructureOutputs,
    builder: ArtifactBuilder,
) -> StageResult:
    """Build the site's artifact against its resolved API URL."""
    return _timed(StageKind.BUILD, site, lambda: builder.build(site, outputs.api_url))


def run_upload(
    site: Site,
    credentials: ScopedCredentials,
    outputs: InfrastructureOutputs,
    uploader: ArtifactUploader,
    artifact_dir: Path,
) -> StageResult:
    """Upload the built artifact to the site's bucket."""
    return _timed(
        StageKind.UPLOAD,
        site,
        lambda: uploader.upload(site, artifact_dir, outputs.bucket_name, credentials),
    )


def run_invalidate(
    site: Site,
    credentials: ScopedCredentials,
    outputs: InfrastructureOutputs,
    invalidator: CacheInvalidator,
) -> StageResult:
    """Invalidate the site's distribution."""
    return _timed(
        StageKind.INVALIDATE,
        site,
        lambda: invalidator.invalidate(site, outputs.distribution_id, credentials),
    )
