"""
Shared fixtures and fake collaborators for deployment tests.
"""

from pathlib import Path
from typing import Any, List, Optional, Set

import pytest

from fleet_deploy.config import DeployConfig
from fleet_deploy.credentials import BaseCredentials, ScopedCredentials
from fleet_deploy.deployment.executor import SiteExecutor
from fleet_deploy.deployment.orchestrator import FleetOrchestrator
from fleet_deploy.deployment.stages import StageOutcome
from fleet_deploy.exceptions import ElevationDenied, OutputsUnavailable
from fleet_deploy.outputs import InfrastructureOutputs
from fleet_deploy.sites import AccountInfo, Site, SiteRegistry


class FakeCollaborator:
    """Records calls and fails or raises for selected site ids."""

    def __init__(self, fail: Optional[Set[str]] = None, explode: Optional[Set[str]] = None):
        self.fail = set(fail or ())
        self.explode = set(explode or ())
        self.calls: List[tuple] = []

    def _outcome(self, site_id: str, error: str, **details: Any) -> StageOutcome:
        if site_id in self.explode:
            raise RuntimeError(f"{type(self).__name__} exploded for {site_id}")
        if site_id in self.fail:
            return StageOutcome(success=False, error=error)
        return StageOutcome(success=True, details=details)


class FakeCredentialProvider(FakeCollaborator):
    def elevate(self, site: Site, base: BaseCredentials, account: AccountInfo) -> ScopedCredentials:
        self.calls.append((site.id, account.account_id))
        if site.id in self.explode:
            raise RuntimeError("sts unreachable")
        if site.id in self.fail:
            raise ElevationDenied(f"AccessDenied for {account.account_id}")
        return ScopedCredentials(
            access_key_id=f"ASIA-{site.id}",
            secret_access_key=f"secret-{site.id}",
            session_token=f"token-{site.id}",
            region=base.region,
            account_id=account.account_id,
            site_id=site.id,
        )


class FakeOutputsReader(FakeCollaborator):
    def read(self, site: Site, credentials: ScopedCredentials) -> InfrastructureOutputs:
        self.calls.append((site.id, credentials.site_id))
        if site.id in self.fail:
            raise OutputsUnavailable("terraform output failed")
        return InfrastructureOutputs(
            bucket_name=f"{site.id}-bucket",
            distribution_id=f"E{site.id.upper()}",
            distribution_domain=f"{site.id}.cloudfront.net",
            api_url=f"https://api.{site.id}.example.com",
        )


class FakeBuilder(FakeCollaborator):
    def build(self, site: Site, api_url: str) -> StageOutcome:
        self.calls.append((site.id, api_url))
        return self._outcome(
            site.id, "Build failed with exit code: 1", artifact_dir=Path(f"dist-{site.id}")
        )


class FakeUploader(FakeCollaborator):
    def upload(self, site, artifact_dir, bucket_name, credentials) -> StageOutcome:
        self.calls.append((site.id, artifact_dir, bucket_name, credentials.site_id))
        return self._outcome(site.id, "AccessDenied on PutObject", files_uploaded=3)


class FakeInvalidator(FakeCollaborator):
    def invalidate(self, site, distribution_id, credentials) -> StageOutcome:
        self.calls.append((site.id, distribution_id, credentials.site_id))
        return self._outcome(site.id, "TooManyInvalidationsInProgress", invalidation_id="I1")


class Fleet:
    """A wired orchestrator plus handles on all of its fakes."""

    def __init__(self, registry: SiteRegistry, config: DeployConfig):
        self.registry = registry
        self.config = config
        self.credentials = FakeCredentialProvider()
        self.outputs = FakeOutputsReader()
        self.builder = FakeBuilder()
        self.uploader = FakeUploader()
        self.invalidator = FakeInvalidator()
        self.base_resolutions = 0

    def base_credentials(self) -> BaseCredentials:
        self.base_resolutions += 1
        return BaseCredentials("AKIAAUTOMATION", "automation-secret", "us-east-1")

    @property
    def executor(self) -> SiteExecutor:
        return SiteExecutor(
            config=self.config,
            registry=self.registry,
            credential_provider=self.credentials,
            outputs_reader=self.outputs,
            builder=self.builder,
            uploader=self.uploader,
            invalidator=self.invalidator,
        )

    def orchestrator(self) -> FleetOrchestrator:
        return FleetOrchestrator(
            registry=self.registry,
            executor=self.executor,
            credential_resolver=self.base_credentials,
        )

    @property
    def external_calls(self) -> int:
        return sum(
            len(fake.calls)
            for fake in (self.credentials, self.outputs, self.builder, self.uploader, self.invalidator)
        )


@pytest.fixture
def config() -> DeployConfig:
    return DeployConfig()


@pytest.fixture
def registry() -> SiteRegistry:
    sites = [
        Site(id="siteA", title="Site A", account_id="111111111111"),
        Site(id="siteB", title="Site B", account_id="222222222222"),
    ]
    accounts = {
        "siteA": AccountInfo(account_id="111111111111"),
        "siteB": AccountInfo(account_id="222222222222"),
    }
    return SiteRegistry(sites, accounts)


@pytest.fixture
def fleet(registry, config) -> Fleet:
    return Fleet(registry, config)


@pytest.fixture
def base_credentials() -> BaseCredentials:
    return BaseCredentials("AKIAAUTOMATION", "automation-secret", "us-east-1")


@pytest.fixture
def scoped_credentials() -> ScopedCredentials:
    return ScopedCredentials(
        access_key_id="ASIA-siteA",
        secret_access_key="secret-siteA",
        session_token="token-siteA",
        region="us-east-1",
        account_id="111111111111",
        site_id="siteA",
    )


@pytest.fixture
def aws_credentials(monkeypatch) -> None:
    """Mocked AWS credentials for moto."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")
