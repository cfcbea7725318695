"""
Automation credentials and per-site role elevation.

The long-lived automation credentials are resolved once per run. Every site
then gets its own short-lived credentials by assuming the automation role in
that site's account. Scoped credentials are never cached or shared across
sites.
"""

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Union

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .config import DeployConfig
from .exceptions import ElevationDenied, MissingCredentials
from .sites import AccountInfo, Site

logger = logging.getLogger(__name__)

REQUIRED_KEYS = ("AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY", "AWS_REGION")


@dataclass(frozen=True)
class BaseCredentials:
    """Long-lived automation credentials."""

    access_key_id: str
    secret_access_key: str = field(repr=False)
    region: str

    def session(self) -> boto3.Session:
        return boto3.Session(
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
            region_name=self.region,
        )


@dataclass(frozen=True)
class ScopedCredentials:
    """Temporary credentials for exactly one site in one run."""

    access_key_id: str
    secret_access_key: str = field(repr=False)
    session_token: str = field(repr=False)
    region: str
    account_id: str
    site_id: str
    expiration: Optional[datetime] = None

    def as_env(self) -> Dict[str, str]:
        """Environment variables for subprocess tools (terraform, aws cli)."""
        return {
            "AWS_ACCESS_KEY_ID": self.access_key_id,
            "AWS_SECRET_ACCESS_KEY": self.secret_access_key,
            "AWS_SESSION_TOKEN": self.session_token,
            "AWS_REGION": self.region,
            "AWS_DEFAULT_REGION": self.region,
        }

    def session(self) -> boto3.Session:
        """Create a boto3 session bound to these credentials only."""
        return boto3.Session(
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
            aws_session_token=self.session_token,
            region_name=self.region,
        )


def parse_env_file(content: str) -> Dict[str, str]:
    """Parse ``KEY=VALUE`` lines, skipping blanks and comments."""
    values = {}
    for line in content.splitlines():
        trimmed = line.strip()
        if not trimmed or trimmed.startswith("#"):
            continue
        key, sep, value = trimmed.partition("=")
        if not sep:
            continue
        key = key.strip()
        if key.startswith("export "):
            key = key[len("export "):].strip()
        values[key] = value.strip().strip('"').strip("'")
    return values


def resolve_base_credentials(
    credentials_file: Optional[Union[str, Path]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> BaseCredentials:
    """
    Resolve the automation credentials for this run.

    Values from the credentials file win; keys it does not define are taken
    from the process environment.

    Raises:
        MissingCredentials: if any required key is absent or blank
    """
    environ = os.environ if environ is None else environ
    source = "environment"
    values: Dict[str, str] = {}

    if credentials_file is not None:
        path = Path(credentials_file)
        if path.exists():
            logger.info(f"Loading automation credentials from {path}")
            try:
                values = parse_env_file(path.read_text())
            except OSError as e:
                raise MissingCredentials(list(REQUIRED_KEYS), source=f"{path}: {e}") from e
            source = str(path)

    for key in REQUIRED_KEYS:
        if not values.get(key) and environ.get(key):
            values[key] = environ[key]

    missing = [key for key in REQUIRED_KEYS if not values.get(key)]
    if missing:
        raise MissingCredentials(missing, source=source)

    return BaseCredentials(
        access_key_id=values["AWS_ACCESS_KEY_ID"],
        secret_access_key=values["AWS_SECRET_ACCESS_KEY"],
        region=values["AWS_REGION"],
    )


class CredentialProvider:
    """Assume the automation role in a site's account."""

    def __init__(
        self,
        config: DeployConfig,
        sts_client_factory: Optional[Callable[[BaseCredentials], Any]] = None,
    ):
        """
        Initialize credential provider.

        Args:
            config: Deployment configuration (role and session naming)
            sts_client_factory: Builds an STS client from base credentials;
                defaults to a boto3 session bound to those credentials
        """
        self.config = config
        self._sts_client_factory = sts_client_factory or (
            lambda base: base.session().client("sts")
        )

    def elevate(
        self, site: Site, base: BaseCredentials, account: AccountInfo
    ) -> ScopedCredentials:
        """
        Get temporary credentials for one site.

        Raises:
            ElevationDenied: if the role cannot be assumed
        """
        role_arn = self.config.role_arn(account.account_id)
        session_name = self.config.session_name(site.id)
        logger.info(f"Assuming {role_arn} for {site.id}")

        try:
            sts = self._sts_client_factory(base)
            response = sts.assume_role(
                RoleArn=role_arn,
                RoleSessionName=session_name,
                DurationSeconds=self.config.session_duration_seconds,
            )
            creds = response["Credentials"]
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "Unknown")
            raise ElevationDenied(
                f"Failed to assume role {role_arn}", details=f"{code}: {e}"
            ) from e
        except (BotoCoreError, KeyError) as e:
            raise ElevationDenied(
                f"Failed to assume role {role_arn}", details=str(e)
            ) from e

        return ScopedCredentials(
            access_key_id=creds["AccessKeyId"],
            secret_access_key=creds["SecretAccessKey"],
            session_token=creds["SessionToken"],
            region=base.region,
            account_id=account.account_id,
            site_id=site.id,
            expiration=creds.get("Expiration"),
        )
