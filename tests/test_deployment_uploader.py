"""
Tests for S3 upload and CloudFront invalidation collaborators.
"""

from pathlib import Path
from unittest.mock import Mock, patch

import boto3
import pytest
from botocore.exceptions import ClientError
from moto import mock_aws

from fleet_deploy.config import DeployConfig
from fleet_deploy.credentials import ScopedCredentials
from fleet_deploy.deployment.invalidator import CloudFrontInvalidator
from fleet_deploy.deployment.uploader import S3ArtifactUploader
from fleet_deploy.sites import Site

BUCKET = "site-a-bucket"


@pytest.fixture
def site() -> Site:
    return Site(id="siteA", title="Site A", account_id="111111111111")


@pytest.fixture
def artifact_dir(tmp_path) -> Path:
    dist = tmp_path / "dist-siteA"
    (dist / "assets" / "fonts").mkdir(parents=True)
    (dist / "index.html").write_text("<html></html>")
    (dist / "favicon.ico").write_bytes(b"\x00\x00")
    (dist / "assets" / "index-abc123.js").write_text("console.log(1)")
    (dist / "assets" / "fonts" / "inter.woff2").write_bytes(b"font")
    (dist / "README.md").write_text("not uploaded")
    return dist


@pytest.fixture
def moto_credentials(aws_credentials) -> ScopedCredentials:
    return ScopedCredentials(
        access_key_id="testing",
        secret_access_key="testing",
        session_token="testing",
        region="us-east-1",
        account_id="123456789012",
        site_id="siteA",
    )


class TestS3ArtifactUploader:
    """Test S3ArtifactUploader."""

    def test_content_types(self) -> None:
        uploader = S3ArtifactUploader()

        assert uploader.get_content_type(Path("index.html")) == "text/html"
        assert uploader.get_content_type(Path("a.WOFF2")) == "font/woff2"
        assert uploader.get_content_type(Path("blob.unknownext")) == "application/octet-stream"

    def test_cache_control(self) -> None:
        uploader = S3ArtifactUploader()

        assert "immutable" in uploader.get_cache_control("assets/index-abc.js")
        assert "max-age=0" in uploader.get_cache_control("index.html")
        assert uploader.get_cache_control("favicon.ico") == "public, max-age=86400"

    def test_collect_files(self, artifact_dir) -> None:
        keys = [key for _, key in S3ArtifactUploader().collect_files(artifact_dir)]

        assert keys == [
            "index.html",
            "favicon.ico",
            "assets/fonts/inter.woff2",
            "assets/index-abc123.js",
        ]

    def test_upload_and_delete_stale_assets(self, site, artifact_dir, moto_credentials) -> None:
        with mock_aws():
            s3 = boto3.client("s3", region_name="us-east-1")
            s3.create_bucket(Bucket=BUCKET)
            s3.put_object(Bucket=BUCKET, Key="assets/index-old999.js", Body=b"old")
            s3.put_object(Bucket=BUCKET, Key="episodes/keep.json", Body=b"{}")

            outcome = S3ArtifactUploader().upload(site, artifact_dir, BUCKET, moto_credentials)

            keys = sorted(obj["Key"] for obj in s3.list_objects_v2(Bucket=BUCKET)["Contents"])
            index = s3.get_object(Bucket=BUCKET, Key="index.html")

        assert outcome.success, outcome.error
        assert outcome.details == {"files_uploaded": 4, "files_deleted": 1}
        assert keys == [
            "assets/fonts/inter.woff2",
            "assets/index-abc123.js",
            "episodes/keep.json",
            "favicon.ico",
            "index.html",
        ]
        assert index["ContentType"] == "text/html"
        assert index["CacheControl"] == "public, max-age=0, must-revalidate"

    def test_missing_bucket_fails(self, site, artifact_dir, moto_credentials) -> None:
        with mock_aws():
            outcome = S3ArtifactUploader().upload(site, artifact_dir, "no-such-bucket", moto_credentials)

        assert outcome.success is False
        assert "no-such-bucket" in outcome.error

    def test_missing_index_fails_without_calls(self, site, tmp_path, scoped_credentials) -> None:
        with patch.object(ScopedCredentials, "session") as mock_session:
            outcome = S3ArtifactUploader().upload(site, tmp_path, BUCKET, scoped_credentials)

        assert outcome.success is False
        assert "index.html" in outcome.error
        mock_session.assert_not_called()


class TestCloudFrontInvalidator:
    """Test CloudFrontInvalidator."""

    @pytest.fixture
    def cloudfront(self):
        client = Mock()
        with patch.object(ScopedCredentials, "session") as mock_session:
            mock_session.return_value.client.return_value = client
            yield client

    def test_creates_invalidation(self, site, scoped_credentials, cloudfront) -> None:
        cloudfront.create_invalidation.return_value = {"Invalidation": {"Id": "I2J3K4"}}

        outcome = CloudFrontInvalidator(DeployConfig()).invalidate(site, "E2ABC", scoped_credentials)

        assert outcome.success
        assert outcome.details["invalidation_id"] == "I2J3K4"
        kwargs = cloudfront.create_invalidation.call_args.kwargs
        assert kwargs["DistributionId"] == "E2ABC"
        assert kwargs["InvalidationBatch"]["Paths"] == {
            "Quantity": 2,
            "Items": ["/index.html", "/assets/*"],
        }
        assert kwargs["InvalidationBatch"]["CallerReference"].startswith("siteA-")

    def test_failure(self, site, scoped_credentials, cloudfront) -> None:
        cloudfront.create_invalidation.side_effect = ClientError(
            {"Error": {"Code": "NoSuchDistribution", "Message": "missing"}},
            "CreateInvalidation",
        )

        outcome = CloudFrontInvalidator(DeployConfig()).invalidate(site, "EBAD", scoped_credentials)

        assert outcome.success is False
        assert "NoSuchDistribution" in outcome.error
