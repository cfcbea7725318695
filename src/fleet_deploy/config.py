"""
Configuration management for fleet deployments.

Defaults live on the DeployConfig dataclass and may be overridden from a
YAML file (``fleet-deploy.yaml`` in the working directory by default).
"""

import time
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Dict, Any, Optional, Union, List

import yaml

from .exceptions import ConfigurationError

DEFAULT_CONFIG_FILE = "fleet-deploy.yaml"


@dataclass
class DeployConfig:
    """Settings shared by every site in a fleet run."""

    # AWS
    aws_region: str = "us-east-1"

    # Site registry
    sites_dir: str = "sites"
    account_mappings_file: str = ".site-account-mappings.json"

    # Automation credentials
    credentials_file: str = ".env.automation"
    role_name: str = "browse-dot-show-automation-role"
    role_arn_pattern: str = "arn:aws:iam::{account_id}:role/{role_name}"
    session_name_pattern: str = "automation-deploy-{site_id}-{timestamp}"
    session_duration_seconds: int = 3600

    # Infrastructure outputs
    outputs_source: str = "terraform"
    terraform_dir: str = "terraform/sites"
    stack_name_pattern: str = "{site_id}-site"
    output_keys: Dict[str, str] = field(
        default_factory=lambda: {
            "bucket_name": "s3_bucket_name",
            "distribution_id": "cloudfront_distribution_id",
            "distribution_domain": "cloudfront_distribution_domain_name",
            "api_url": "search_api_invoke_url",
        }
    )

    # Build
    build_command: str = "pnpm client:build:specific-site {site_id}"
    build_output_pattern: str = "packages/client/dist-{site_id}"
    build_env: Dict[str, str] = field(
        default_factory=lambda: {"NODE_OPTIONS": "--max-old-space-size=6144"}
    )

    # CloudFront
    invalidation_paths: List[str] = field(
        default_factory=lambda: ["/index.html", "/assets/*"]
    )

    def format_name(self, pattern: str, **kwargs) -> str:
        """Format a naming pattern with config variables."""
        variables = {
            "role_name": self.role_name,
            "region": self.aws_region,
            **kwargs,
        }
        try:
            return pattern.format(**variables)
        except KeyError as e:
            raise ConfigurationError(
                f"Unknown placeholder {e} in pattern", details=pattern
            ) from e

    def role_arn(self, account_id: str) -> str:
        """Get the automation role ARN in an account."""
        return self.format_name(self.role_arn_pattern, account_id=account_id)

    def session_name(self, site_id: str, timestamp: Optional[int] = None) -> str:
        """Get a role session name; STS limits these to 64 characters."""
        if timestamp is None:
            timestamp = int(time.time() * 1000)
        name = self.format_name(
            self.session_name_pattern, site_id=site_id, timestamp=timestamp
        )
        return name[:64]

    def stack_name(self, site_id: str) -> str:
        return self.format_name(self.stack_name_pattern, site_id=site_id)

    def build_output_dir(self, site_id: str) -> Path:
        return Path(self.format_name(self.build_output_pattern, site_id=site_id))

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        return {k: v for k, v in self.__dict__.items() if not k.startswith("_")}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeployConfig":
        """Create config from dictionary, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(
                f"Unknown configuration key(s): {', '.join(unknown)}"
            )
        config = cls(**data)
        if config.outputs_source not in ("terraform", "cloudformation"):
            raise ConfigurationError(
                f"Unsupported outputs_source: {config.outputs_source}",
                details="expected 'terraform' or 'cloudformation'",
            )
        missing_keys = {
            "bucket_name",
            "distribution_id",
            "distribution_domain",
            "api_url",
        } - set(config.output_keys)
        if missing_keys:
            raise ConfigurationError(
                f"output_keys is missing: {', '.join(sorted(missing_keys))}"
            )
        return config


def load_config(config_path: Optional[Union[str, Path]] = None) -> DeployConfig:
    """
    Load deployment configuration.

    Args:
        config_path: YAML file to read. When omitted, ``fleet-deploy.yaml`` in
            the current directory is used if it exists.

    Returns:
        DeployConfig with file values merged over the defaults
    """
    if config_path is None:
        candidate = Path.cwd() / DEFAULT_CONFIG_FILE
        if not candidate.exists():
            return DeployConfig()
        config_path = candidate

    path = Path(config_path)
    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {path}")

    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}", details=str(e)) from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration in {path} must be a mapping")

    merged = {**DeployConfig().to_dict(), **data}
    return DeployConfig.from_dict(merged)
