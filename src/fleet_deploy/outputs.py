"""
Infrastructure output resolution.

Outputs are read fresh for every site on every run, using only that site's
scoped credentials.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Protocol

from botocore.exceptions import BotoCoreError, ClientError

from .config import DeployConfig
from .credentials import ScopedCredentials
from .exceptions import OutputsUnavailable
from .shell import run_command
from .sites import Site

logger = logging.getLogger(__name__)

OUTPUT_FIELDS = ("bucket_name", "distribution_id", "distribution_domain", "api_url")


@dataclass(frozen=True)
class InfrastructureOutputs:
    """Provisioned endpoints of one site."""

    bucket_name: str
    distribution_id: str
    distribution_domain: str
    api_url: str

    @classmethod
    def from_mapping(
        cls, outputs: Mapping[str, Any], keys: Mapping[str, str]
    ) -> "InfrastructureOutputs":
        """
        Pick the required fields out of raw outputs.

        Terraform ``output -json`` wraps values as ``{"value": ...}``; plain
        values are accepted too. Any missing or empty field is an error.
        """
        values: Dict[str, str] = {}
        missing = []
        for field_name in OUTPUT_FIELDS:
            output_key = keys[field_name]
            raw = outputs.get(output_key)
            if isinstance(raw, dict):
                raw = raw.get("value")
            if raw is None or str(raw).strip() == "":
                missing.append(output_key)
            else:
                values[field_name] = str(raw).strip()

        if missing:
            raise OutputsUnavailable(
                "Infrastructure outputs incomplete",
                details=f"missing: {', '.join(missing)}",
            )
        return cls(**values)

    @property
    def site_url(self) -> str:
        return f"https://{self.distribution_domain}"


class OutputsReader(Protocol):
    def read(self, site: Site, credentials: ScopedCredentials) -> InfrastructureOutputs:
        ...


class TerraformOutputsReader:
    """Read outputs with ``terraform output -json``."""

    def __init__(self, config: DeployConfig):
        self.config = config

    def read(self, site: Site, credentials: ScopedCredentials) -> InfrastructureOutputs:
        logger.info(f"Getting deployment details from Terraform for {site.id}")
        result = run_command(
            ["terraform", "output", "-json"],
            cwd=self.config.terraform_dir,
            env={**credentials.as_env(), "SITE_ID": site.id},
        )
        if not result.ok:
            raise OutputsUnavailable(
                f"terraform output failed with exit code {result.returncode}",
                details=result.stderr.strip() or None,
            )

        try:
            outputs = json.loads(result.stdout or "{}")
        except ValueError as e:
            raise OutputsUnavailable(
                "terraform output returned invalid JSON", details=str(e)
            ) from e

        if not isinstance(outputs, dict):
            raise OutputsUnavailable("terraform output returned no outputs")

        return InfrastructureOutputs.from_mapping(outputs, self.config.output_keys)


class StackOutputsReader:
    """Read outputs from the site's CloudFormation stack."""

    def __init__(self, config: DeployConfig):
        self.config = config

    def read(self, site: Site, credentials: ScopedCredentials) -> InfrastructureOutputs:
        stack_name = self.config.stack_name(site.id)
        logger.info(f"Getting stack outputs from {stack_name}")

        try:
            cloudformation = credentials.session().client("cloudformation")
            response = cloudformation.describe_stacks(StackName=stack_name)
        except ClientError as e:
            raise OutputsUnavailable(
                f"Failed to describe stack {stack_name}", details=str(e)
            ) from e
        except BotoCoreError as e:
            raise OutputsUnavailable(
                f"Failed to describe stack {stack_name}", details=str(e)
            ) from e

        stacks = response.get("Stacks") or []
        if not stacks:
            raise OutputsUnavailable(f"Stack {stack_name} not found")

        outputs = {}
        for output in stacks[0].get("Outputs", []):
            outputs[output["OutputKey"]] = output["OutputValue"]

        return InfrastructureOutputs.from_mapping(outputs, self.config.output_keys)


def create_outputs_reader(config: DeployConfig) -> OutputsReader:
    if config.outputs_source == "cloudformation":
        return StackOutputsReader(config)
    return TerraformOutputsReader(config)


def resolve_outputs(
    site: Site, credentials: ScopedCredentials, reader: OutputsReader
) -> InfrastructureOutputs:
    """
    Resolve one site's outputs with that site's credentials.

    Raises:
        OutputsUnavailable: if the outputs cannot be read or are incomplete
    """
    if credentials.site_id != site.id:
        raise OutputsUnavailable(
            f"Credentials for {credentials.site_id} cannot be used for {site.id}"
        )
    return reader.read(site, credentials)
