"""
Site registry.

Sites are discovered from ``site.config.json`` files. Sites under
``my-sites/`` take priority; ``origin-sites/`` is only used when
``my-sites/`` holds no sites. Account ownership comes from a separate JSON
mapping file that is kept out of version control.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Union

from .config import DeployConfig
from .exceptions import ConfigurationError, SiteNotFound

logger = logging.getLogger(__name__)

MY_SITES_DIR = "my-sites"
ORIGIN_SITES_DIR = "origin-sites"
SITE_CONFIG_FILE = "site.config.json"


@dataclass(frozen=True)
class Site:
    """One deployable site."""

    id: str
    title: str
    account_id: Optional[str] = None
    domain: str = ""


@dataclass(frozen=True)
class AccountInfo:
    """AWS account a site is deployed into."""

    account_id: str
    bucket_name: Optional[str] = None


def load_sites_from_directory(directory: Path) -> List[Dict[str, str]]:
    """Load raw site metadata from every ``*/site.config.json`` under a directory."""
    if not directory.is_dir():
        return []

    sites = []
    for entry in sorted(directory.iterdir()):
        if not entry.is_dir() or entry.name == "node_modules":
            continue

        config_path = entry / SITE_CONFIG_FILE
        if not config_path.exists():
            continue

        try:
            with open(config_path, "r") as f:
                site_config = json.load(f)
            site_id = site_config["id"]
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.error(f"Error loading site config from {config_path}: {e}")
            continue

        if site_id != entry.name:
            logger.warning(
                f'Site ID "{site_id}" doesn\'t match directory name "{entry.name}"'
            )

        app_header = site_config.get("appHeader") or {}
        sites.append(
            {
                "id": site_id,
                "title": app_header.get("primaryTitle") or site_id,
                "domain": site_config.get("domain", ""),
            }
        )

    return sites


def load_account_mappings(path: Union[str, Path]) -> Dict[str, AccountInfo]:
    """
    Load the site to account mapping file.

    The file is a JSON object of ``{"site_id": {"accountId": ..., "bucketName": ...}}``.
    """
    mappings_path = Path(path)
    if not mappings_path.exists():
        raise ConfigurationError(
            f"Site account mappings file not found: {mappings_path}",
            details="create it in the repository root",
        )

    try:
        with open(mappings_path, "r") as f:
            raw = json.load(f)
    except (OSError, ValueError) as e:
        raise ConfigurationError(
            f"Failed to load site account mappings from {mappings_path}",
            details=str(e),
        ) from e

    if not isinstance(raw, dict):
        raise ConfigurationError(f"{mappings_path} must contain a JSON object")

    mappings = {}
    for site_id, entry in raw.items():
        if not isinstance(entry, dict) or not entry.get("accountId"):
            raise ConfigurationError(
                f"Account mapping for {site_id} has no accountId"
            )
        mappings[site_id] = AccountInfo(
            account_id=str(entry["accountId"]),
            bucket_name=entry.get("bucketName"),
        )
    return mappings


class SiteRegistry:
    """Read-only view of the deployable sites and their accounts."""

    def __init__(
        self,
        sites: List[Site],
        account_mappings: Optional[Mapping[str, AccountInfo]] = None,
        mappings_error: Optional[ConfigurationError] = None,
    ):
        """
        Initialize registry.

        Args:
            sites: Deployable sites
            account_mappings: Account of each mapped site
            mappings_error: Why the mapping file could not be loaded; raised
                by ``account_for`` so each site fails on its own
        """
        self._sites = sorted(sites, key=lambda s: s.id)
        self._accounts: Dict[str, AccountInfo] = dict(account_mappings or {})
        self._mappings_error = mappings_error

    @classmethod
    def from_mappings(
        cls,
        sites: List[Dict[str, str]],
        account_mappings: Mapping[str, AccountInfo],
        mappings_error: Optional[ConfigurationError] = None,
    ) -> "SiteRegistry":
        """Build a registry, attaching each site's account id where mapped."""
        resolved = []
        for raw in sites:
            account = account_mappings.get(raw["id"])
            resolved.append(
                Site(
                    id=raw["id"],
                    title=raw.get("title") or raw["id"],
                    account_id=account.account_id if account else None,
                    domain=raw.get("domain", ""),
                )
            )
        return cls(resolved, account_mappings, mappings_error)

    @classmethod
    def discover(cls, config: DeployConfig) -> "SiteRegistry":
        """
        Discover sites on disk and load their account mappings.

        A missing or broken mapping file does not stop discovery; the error is
        kept and raised when a site's account is looked up.
        """
        sites_dir = Path(config.sites_dir)

        raw_sites = load_sites_from_directory(sites_dir / MY_SITES_DIR)
        if raw_sites:
            logger.info(
                f"Found {len(raw_sites)} site(s) in {MY_SITES_DIR}/, "
                f"ignoring {ORIGIN_SITES_DIR}/"
            )
        else:
            raw_sites = load_sites_from_directory(sites_dir / ORIGIN_SITES_DIR)
            logger.info(
                f"No sites in {MY_SITES_DIR}/, using {len(raw_sites)} site(s) "
                f"from {ORIGIN_SITES_DIR}/"
            )

        try:
            mappings = load_account_mappings(config.account_mappings_file)
        except ConfigurationError as e:
            logger.warning(str(e))
            return cls.from_mappings(raw_sites, {}, mappings_error=e)
        return cls.from_mappings(raw_sites, mappings)

    def list_sites(self) -> List[Site]:
        return list(self._sites)

    def ids(self) -> List[str]:
        return [site.id for site in self._sites]

    def account_for(self, site_id: str) -> AccountInfo:
        """
        Look up the account a site deploys into.

        Raises:
            ConfigurationError: if the mapping file could not be loaded
            SiteNotFound: if the site has no mapping
        """
        if self._mappings_error is not None:
            raise ConfigurationError(
                self._mappings_error.message, details=self._mappings_error.details
            )
        try:
            return self._accounts[site_id]
        except KeyError:
            raise SiteNotFound(site_id, sorted(self._accounts)) from None

    def __len__(self) -> int:
        return len(self._sites)
