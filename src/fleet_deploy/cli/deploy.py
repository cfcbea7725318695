#!/usr/bin/env python3
"""
Deploy all sites: build, upload and invalidate every site with automation credentials.
"""

import logging
import signal
import sys
from datetime import datetime, timezone
from typing import Any, Optional

import click

from ..config import DeployConfig, load_config
from ..credentials import CredentialProvider, resolve_base_credentials
from ..deployment import (
    CloudFrontInvalidator,
    CommandArtifactBuilder,
    FleetOrchestrator,
    S3ArtifactUploader,
    SiteExecutor,
    parse_site_ids,
    render,
)
from ..deployment.reporter import EXIT_FAILURE, EXIT_INTERRUPTED, SEPARATOR
from ..exceptions import FleetDeployError, MissingCredentials, SelectionError
from ..outputs import create_outputs_reader
from ..sites import Site, SiteRegistry

EPILOG = """\b
Examples:
  fleet-deploy                            Deploy all sites
  fleet-deploy --sites=hardfork,naddpod   Deploy only specific sites
  fleet-deploy --dry-run                  Show what would be done
"""


def build_orchestrator(config: DeployConfig, registry: SiteRegistry) -> FleetOrchestrator:
    """Wire the default AWS collaborators into an orchestrator."""
    executor = SiteExecutor(
        config=config,
        registry=registry,
        credential_provider=CredentialProvider(config),
        outputs_reader=create_outputs_reader(config),
        builder=CommandArtifactBuilder(config),
        uploader=S3ArtifactUploader(),
        invalidator=CloudFrontInvalidator(config),
    )
    return FleetOrchestrator(
        registry=registry,
        executor=executor,
        credential_resolver=lambda: resolve_base_credentials(config.credentials_file),
    )


def announce_site(site: Site, position: int, total: int) -> None:
    click.echo(f"\n{SEPARATOR}")
    click.echo(f"🚀 Deploying {site.id} ({site.title}) - {position}/{total}")
    click.echo(SEPARATOR)


def install_interrupt_handler(orchestrator: FleetOrchestrator) -> Optional[Any]:
    """
    First Ctrl+C stops after the current site; a second one aborts immediately.
    """

    def handler(signum: int, frame: Any) -> None:
        if orchestrator.stop_requested:
            raise KeyboardInterrupt
        orchestrator.request_stop()
        click.echo(
            "\n⚠️  Interrupt received, stopping after the current site "
            "(press Ctrl+C again to abort)",
            err=True,
        )

    try:
        return signal.signal(signal.SIGINT, handler)
    except ValueError:
        # Not on the main thread
        return None


class DeployCommand(click.Command):
    """Command whose usage errors exit 1 like every other fatal error."""

    def make_context(self, info_name, args, parent=None, **extra):
        try:
            return super().make_context(info_name, args, parent=parent, **extra)
        except click.UsageError as e:
            e.exit_code = EXIT_FAILURE
            raise


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@click.command(
    cls=DeployCommand,
    epilog=EPILOG,
    context_settings={"help_option_names": ["-h", "--help"]},
)
@click.option("--sites", "sites", help="Deploy only these sites (comma-separated ids)")
@click.option("--dry-run", is_flag=True, help="Show what would be done without executing")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    help="YAML configuration file (defaults to ./fleet-deploy.yaml)",
)
@click.option("--verbose", "-v", is_flag=True, help="Log progress of every stage")
def main(sites: Optional[str], dry_run: bool, config_path: Optional[str], verbose: bool) -> None:
    """Deploy client files for all sites to S3 and invalidate CloudFront.

    Each site is deployed into its own AWS account by assuming the automation
    role with the credentials from .env.automation.
    """
    configure_logging(verbose)

    click.echo("🚀 Deploy All Sites - Automated Client Deployment")
    click.echo(SEPARATOR)
    click.echo(f"Started at: {datetime.now(timezone.utc).isoformat(timespec='seconds')}")

    selected = parse_site_ids(sites)

    try:
        config = load_config(config_path)
        registry = SiteRegistry.discover(config)
        orchestrator = build_orchestrator(config, registry)
        orchestrator.on_site_start = announce_site
        planned = orchestrator.plan(selected)
    except SelectionError as e:
        click.echo(f"❌ {e}", err=True)
        if e.available:
            click.echo(f"Available sites: {', '.join(e.available)}", err=True)
        sys.exit(EXIT_FAILURE)
    except FleetDeployError as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(EXIT_FAILURE)

    if selected:
        click.echo(f"\n🎯 Running for selected sites only: {', '.join(selected)}")

    click.echo(f"\n📍 Found {len(planned)} site(s) to deploy:")
    for site in planned:
        click.echo(f"   - {site.id} ({site.title})")

    previous_handler = install_interrupt_handler(orchestrator)
    try:
        report = orchestrator.run(selected, dry_run=dry_run)
    except MissingCredentials as e:
        click.echo(f"❌ Failed to load automation credentials: {e}", err=True)
        click.echo(
            f"Please ensure {config.credentials_file} exists and contains all "
            "required credentials",
            err=True,
        )
        sys.exit(EXIT_FAILURE)
    except KeyboardInterrupt:
        click.echo("\n\n⚠️  Operation cancelled by user", err=True)
        sys.exit(EXIT_INTERRUPTED)
    except Exception as e:
        click.echo(f"\n❌ Unexpected error: {e}", err=True)
        sys.exit(EXIT_FAILURE)
    finally:
        if previous_handler is not None:
            signal.signal(signal.SIGINT, previous_handler)

    sys.exit(render(report))


if __name__ == "__main__":
    main()
