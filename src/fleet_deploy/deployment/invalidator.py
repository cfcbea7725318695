"""
CloudFront cache invalidation.
"""

import logging
import time

from botocore.exceptions import BotoCoreError, ClientError

from ..config import DeployConfig
from ..credentials import ScopedCredentials
from ..sites import Site
from .stages import StageOutcome

logger = logging.getLogger(__name__)


class CloudFrontInvalidator:
    """Create a CloudFront invalidation for the configured paths."""

    def __init__(self, config: DeployConfig):
        self.config = config

    def invalidate(
        self, site: Site, distribution_id: str, credentials: ScopedCredentials
    ) -> StageOutcome:
        paths = list(self.config.invalidation_paths)
        logger.info(f"Invalidating CloudFront cache for {site.id} ({distribution_id})")

        try:
            cloudfront = credentials.session().client("cloudfront")
            response = cloudfront.create_invalidation(
                DistributionId=distribution_id,
                InvalidationBatch={
                    "Paths": {"Quantity": len(paths), "Items": paths},
                    "CallerReference": f"{site.id}-{int(time.time() * 1000)}",
                },
            )
        except (ClientError, BotoCoreError) as e:
            return StageOutcome(
                success=False,
                error=f"Failed to create CloudFront invalidation: {e}",
            )

        invalidation_id = response["Invalidation"]["Id"]
        logger.info(f"Created invalidation {invalidation_id}")
        return StageOutcome(success=True, details={"invalidation_id": invalidation_id})
