"""
Fleet Deploy - build, upload and invalidate many static sites across AWS accounts.
"""

__version__ = "1.0.0"

from .config import DeployConfig, load_config
from .sites import Site, SiteRegistry

__all__ = ["DeployConfig", "Site", "SiteRegistry", "load_config"]
