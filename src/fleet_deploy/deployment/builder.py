"""
Client build for a single site.
"""

import logging
import shlex
from pathlib import Path
from typing import List, Optional

from ..config import DeployConfig
from ..shell import run_command
from ..sites import Site
from .stages import StageOutcome

logger = logging.getLogger(__name__)


class CommandArtifactBuilder:
    """Build a site's client bundle with the configured build command."""

    def __init__(self, config: DeployConfig, cwd: Optional[Path] = None):
        """
        Initialize the builder.

        Args:
            config: Deployment configuration
            cwd: Directory the build command runs in (defaults to current)
        """
        self.config = config
        self.cwd = Path(cwd) if cwd else Path.cwd()

    def build_command(self, site: Site) -> List[str]:
        return shlex.split(self.config.format_name(self.config.build_command, site_id=site.id))

    def validate_build_output(self, artifact_dir: Path) -> List[str]:
        """Check that the build produced an index page and assets."""
        errors = []
        if not (artifact_dir / "index.html").is_file():
            errors.append(f"{artifact_dir / 'index.html'} not found")
        if not (artifact_dir / "assets").is_dir():
            errors.append(f"{artifact_dir / 'assets'} directory not found")
        return errors

    def build(self, site: Site, api_url: str) -> StageOutcome:
        logger.info(f"Building client for {site.id}...")

        build_env = {
            **self.config.build_env,
            "SITE_ID": site.id,
            "VITE_SEARCH_API_URL": api_url,
            "VITE_S3_HOSTED_FILES_BASE_URL": "/",
        }

        result = run_command(self.build_command(site), cwd=self.cwd, env=build_env)
        if not result.ok:
            message = f"Build failed with exit code: {result.returncode}"
            stderr = result.stderr.strip()
            if stderr:
                message = f"{message}: {stderr.splitlines()[-1]}"
            return StageOutcome(success=False, error=message)

        artifact_dir = self.cwd / self.config.build_output_dir(site.id)
        errors = self.validate_build_output(artifact_dir)
        if errors:
            return StageOutcome(success=False, error="; ".join(errors))

        return StageOutcome(success=True, details={"artifact_dir": artifact_dir})
