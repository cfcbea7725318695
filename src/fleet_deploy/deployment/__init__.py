"""
Deployment pipeline: stage runners, per-site executor, fleet orchestrator and reporter.
"""

from .builder import CommandArtifactBuilder
from .executor import SiteExecutor, TargetOutcome, TargetRunResult, TargetState
from .invalidator import CloudFrontInvalidator
from .orchestrator import FleetOrchestrator, FleetRunReport, parse_site_ids, select_sites
from .reporter import exit_code_for, render, summarize
from .stages import StageKind, StageOutcome, StageResult, StageStatus
from .uploader import S3ArtifactUploader

__all__ = [
    "CloudFrontInvalidator",
    "CommandArtifactBuilder",
    "FleetOrchestrator",
    "FleetRunReport",
    "S3ArtifactUploader",
    "SiteExecutor",
    "StageKind",
    "StageOutcome",
    "StageResult",
    "StageStatus",
    "TargetOutcome",
    "TargetRunResult",
    "TargetState",
    "exit_code_for",
    "parse_site_ids",
    "render",
    "select_sites",
    "summarize",
]
