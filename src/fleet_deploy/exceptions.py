"""
Exception types for fleet deployments.

Process-level errors abort the run before any site is touched. Per-site errors
are caught by the site executor and recorded on that site's result.
"""

from typing import Optional, List


class FleetDeployError(Exception):
    """Base error for fleet deployment failures."""

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} ({self.details})"
        return self.message


class ConfigurationError(FleetDeployError):
    """Raised when configuration is invalid or cannot be loaded."""


class MissingCredentials(FleetDeployError):
    """Raised when the automation credentials are absent or malformed."""

    def __init__(self, missing: List[str], source: Optional[str] = None):
        self.missing = list(missing)
        message = f"Missing required credential(s): {', '.join(self.missing)}"
        super().__init__(message, details=source)


class SelectionError(FleetDeployError):
    """Raised when a site selection matches no deployable site."""

    def __init__(self, requested: List[str], available: List[str]):
        self.requested = list(requested)
        self.available = list(available)
        if self.requested:
            message = f"No matching sites found for: {', '.join(self.requested)}"
        else:
            message = "No sites found"
        super().__init__(message)


class SiteNotFound(FleetDeployError):
    """Raised when a site has no account mapping."""

    def __init__(self, site_id: str, available: Optional[List[str]] = None):
        self.site_id = site_id
        self.available = list(available or [])
        super().__init__(
            f"No account mapping found for site: {site_id}",
            details=f"available: {', '.join(self.available)}" if self.available else None,
        )


class ElevationDenied(FleetDeployError):
    """Raised when the automation role cannot be assumed for a site."""


class OutputsUnavailable(FleetDeployError):
    """Raised when a site's infrastructure outputs cannot be resolved."""
