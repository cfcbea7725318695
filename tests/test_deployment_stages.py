"""
Tests for deployment.stages module.
"""

from pathlib import Path
from unittest.mock import Mock, patch

import pytest

from fleet_deploy.deployment.stages import (
    StageKind,
    StageOutcome,
    StageResult,
    StageStatus,
    run_build,
    run_invalidate,
    run_upload,
)
from fleet_deploy.outputs import InfrastructureOutputs
from fleet_deploy.sites import Site


@pytest.fixture
def site() -> Site:
    return Site(id="siteA", title="Site A", account_id="111111111111")


@pytest.fixture
def outputs() -> InfrastructureOutputs:
    return InfrastructureOutputs(
        bucket_name="site-a-bucket",
        distribution_id="E123",
        distribution_domain="d123.cloudfront.net",
        api_url="https://api.example.com",
    )


class TestStageResult:
    """Test StageResult."""

    def test_not_attempted(self) -> None:
        result = StageResult.not_attempted(StageKind.UPLOAD)

        assert result.status == StageStatus.NOT_ATTEMPTED
        assert result.success is False
        assert result.attempted is False
        assert result.duration == 0.0

    def test_failed_is_attempted(self) -> None:
        result = StageResult(StageKind.BUILD, StageStatus.FAILED, 3.0, error="x")

        assert result.attempted is True
        assert result.success is False

    def test_immutable(self) -> None:
        result = StageResult(StageKind.BUILD, StageStatus.SUCCESS)
        with pytest.raises(Exception):
            result.status = StageStatus.FAILED

    def test_labels(self) -> None:
        assert [kind.label for kind in StageKind] == [
            "Build",
            "Upload",
            "CloudFront Invalidation",
        ]


class TestRunners:
    """Test stage runners."""

    def test_build_success(self, site, scoped_credentials, outputs) -> None:
        builder = Mock()
        builder.build.return_value = StageOutcome(True, details={"artifact_dir": Path("dist")})

        result = run_build(site, scoped_credentials, outputs, builder)

        builder.build.assert_called_once_with(site, "https://api.example.com")
        assert result.kind == StageKind.BUILD
        assert result.success
        assert result.details["artifact_dir"] == Path("dist")

    def test_build_failure_carries_message(self, site, scoped_credentials, outputs) -> None:
        builder = Mock()
        builder.build.return_value = StageOutcome(False, error="exit code 2")

        result = run_build(site, scoped_credentials, outputs, builder)

        assert result.status == StageStatus.FAILED
        assert result.error == "exit code 2"

    def test_exception_becomes_failed_result(self, site, scoped_credentials, outputs) -> None:
        uploader = Mock()
        uploader.upload.side_effect = ValueError("disk on fire")

        result = run_upload(site, scoped_credentials, outputs, uploader, Path("dist"))

        assert result.status == StageStatus.FAILED
        assert result.error == "disk on fire"

    def test_upload_passes_bucket_and_credentials(self, site, scoped_credentials, outputs) -> None:
        uploader = Mock()
        uploader.upload.return_value = StageOutcome(True)

        run_upload(site, scoped_credentials, outputs, uploader, Path("dist"))

        uploader.upload.assert_called_once_with(
            site, Path("dist"), "site-a-bucket", scoped_credentials
        )

    def test_invalidate_passes_distribution(self, site, scoped_credentials, outputs) -> None:
        invalidator = Mock()
        invalidator.invalidate.return_value = StageOutcome(True)

        result = run_invalidate(site, scoped_credentials, outputs, invalidator)

        invalidator.invalidate.assert_called_once_with(site, "E123", scoped_credentials)
        assert result.kind == StageKind.INVALIDATE

    @pytest.mark.parametrize("succeed", [True, False])
    def test_duration_recorded_either_way(self, site, scoped_credentials, outputs, succeed) -> None:
        builder = Mock()
        builder.build.return_value = StageOutcome(succeed, error=None if succeed else "nope")

        with patch("fleet_deploy.deployment.stages.time.monotonic", side_effect=[10.0, 14.5]):
            result = run_build(site, scoped_credentials, outputs, builder)

        assert result.duration == pytest.approx(4.5)

    def test_duration_recorded_on_exception(self, site, scoped_credentials, outputs) -> None:
        invalidator = Mock()
        invalidator.invalidate.side_effect = RuntimeError("timeout")

        with patch("fleet_deploy.deployment.stages.time.monotonic", side_effect=[1.0, 3.0]):
            result = run_invalidate(site, scoped_credentials, outputs, invalidator)

        assert result.duration == pytest.approx(2.0)
        assert result.error == "timeout"
