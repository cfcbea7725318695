"""
Per-site pipeline execution.

A site moves through START -> OUTPUTS_RESOLVED -> BUILT -> UPLOADED ->
INVALIDATED -> DONE. Any failure before the upload completes moves it to
FAILED and the remaining stages are recorded as not attempted. An
invalidation failure after a successful upload still ends in DONE, with the
result marked as degraded.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from ..config import DeployConfig
from ..credentials import BaseCredentials, CredentialProvider
from ..exceptions import ConfigurationError, ElevationDenied, OutputsUnavailable, SiteNotFound
from ..outputs import OutputsReader, resolve_outputs
from ..sites import Site, SiteRegistry
from .stages import (
    ArtifactBuilder,
    ArtifactUploader,
    CacheInvalidator,
    StageKind,
    StageResult,
    run_build,
    run_invalidate,
    run_upload,
)

logger = logging.getLogger(__name__)


class TargetState(Enum):
    """Pipeline state of one site."""

    START = "start"
    OUTPUTS_RESOLVED = "outputs_resolved"
    BUILT = "built"
    UPLOADED = "uploaded"
    INVALIDATED = "invalidated"
    DONE = "done"
    FAILED = "failed"


class TargetOutcome(Enum):
    """Overall result of one site."""

    SUCCEEDED = "succeeded"
    DEGRADED = "degraded"
    FAILED = "failed"


@dataclass
class TargetRunResult:
    """Everything that happened to one site during a run."""

    site_id: str
    site_title: str
    stages: Dict[StageKind, StageResult] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    state: TargetState = TargetState.START
    site_url: Optional[str] = None
    _finalized: bool = field(default=False, repr=False, compare=False)

    def _check_open(self) -> None:
        if self._finalized:
            raise RuntimeError(f"Result for {self.site_id} is already finalized")

    def record(self, stage: StageResult) -> None:
        self._check_open()
        self.stages[stage.kind] = stage

    def add_error(self, message: str) -> None:
        self._check_open()
        self.errors.append(message)

    def advance(self, state: TargetState) -> None:
        self._check_open()
        self.state = state

    def fail(self, message: str) -> None:
        self.add_error(message)
        self.advance(TargetState.FAILED)

    def finalize(self) -> "TargetRunResult":
        """Fill in stages that never ran and freeze the result."""
        if self._finalized:
            return self
        for kind in StageKind:
            if kind not in self.stages:
                self.stages[kind] = StageResult.not_attempted(kind)
        self._finalized = True
        return self

    @property
    def finalized(self) -> bool:
        return self._finalized

    def stage(self, kind: StageKind) -> StageResult:
        return self.stages.get(kind) or StageResult.not_attempted(kind)

    @property
    def outcome(self) -> TargetOutcome:
        if self.state != TargetState.DONE:
            return TargetOutcome.FAILED
        if self.errors or not self.stage(StageKind.INVALIDATE).success:
            return TargetOutcome.DEGRADED
        return TargetOutcome.SUCCEEDED

    @property
    def total_duration(self) -> float:
        return sum(stage.duration for stage in self.stages.values())

    @property
    def stage_flags(self) -> Dict[StageKind, bool]:
        return {kind: self.stage(kind).success for kind in StageKind}


class SiteExecutor:
    """Drive one site through the deployment pipeline."""

    def __init__(
        self,
        config: DeployConfig,
        registry: SiteRegistry,
        credential_provider: CredentialProvider,
        outputs_reader: OutputsReader,
        builder: ArtifactBuilder,
        uploader: ArtifactUploader,
        invalidator: CacheInvalidator,
    ):
        self.config = config
        self.registry = registry
        self.credential_provider = credential_provider
        self.outputs_reader = outputs_reader
        self.builder = builder
        self.uploader = uploader
        self.invalidator = invalidator

    def execute(self, site: Site, base: BaseCredentials) -> TargetRunResult:
        """
        Deploy one site.

        Never raises for failures of this site; every problem ends up in the
        returned result's error list.
        """
        result = TargetRunResult(site_id=site.id, site_title=site.title)
        try:
            self._run_pipeline(site, base, result)
        except Exception as e:
            logger.exception(f"Unexpected error deploying {site.id}")
            result.fail(f"Unexpected error: {e}")
        return result.finalize()

    def _run_pipeline(self, site: Site, base: BaseCredentials, result: TargetRunResult) -> None:
        try:
            account = self.registry.account_for(site.id)
            credentials = self.credential_provider.elevate(site, base, account)
        except (ConfigurationError, SiteNotFound, ElevationDenied) as e:
            result.fail(f"Credential elevation failed: {e}")
            return

        try:
            outputs = resolve_outputs(site, credentials, self.outputs_reader)
        except OutputsUnavailable as e:
            result.fail(f"Infrastructure outputs unavailable: {e}")
            return
        result.advance(TargetState.OUTPUTS_RESOLVED)

        build = run_build(site, credentials, outputs, self.builder)
        result.record(build)
        if not build.success:
            result.fail(f"Build failed: {build.error}")
            return
        result.advance(TargetState.BUILT)

        artifact_dir = build.details.get("artifact_dir") or self.config.build_output_dir(site.id)
        upload = run_upload(site, credentials, outputs, self.uploader, Path(artifact_dir))
        result.record(upload)
        if not upload.success:
            result.fail(f"Upload failed: {upload.error}")
            return
        result.advance(TargetState.UPLOADED)
        result.site_url = outputs.site_url

        invalidation = run_invalidate(site, credentials, outputs, self.invalidator)
        result.record(invalidation)
        if invalidation.success:
            result.advance(TargetState.INVALIDATED)
        else:
            result.add_error(f"CloudFront invalidation failed: {invalidation.error}")

        result.advance(TargetState.DONE)
