"""
Upload of a built client to a site's S3 bucket.
"""

import logging
import mimetypes
from pathlib import Path
from typing import Any, List, Set, Tuple

from botocore.exceptions import BotoCoreError, ClientError

from ..credentials import ScopedCredentials
from ..sites import Site
from .stages import StageOutcome

logger = logging.getLogger(__name__)

ASSETS_PREFIX = "assets/"
ROOT_FILES = ("index.html", "favicon.ico")
DELETE_BATCH_SIZE = 1000


class S3ArtifactUploader:
    """Upload ``index.html``, ``favicon.ico`` and ``assets/`` to S3."""

    # Content type mappings
    CONTENT_TYPES = {
        ".html": "text/html",
        ".css": "text/css",
        ".js": "application/javascript",
        ".json": "application/json",
        ".png": "image/png",
        ".jpg": "image/jpeg",
        ".jpeg": "image/jpeg",
        ".gif": "image/gif",
        ".svg": "image/svg+xml",
        ".ico": "image/x-icon",
        ".txt": "text/plain",
        ".xml": "application/xml",
        ".woff": "font/woff",
        ".woff2": "font/woff2",
        ".ttf": "font/ttf",
        ".map": "application/json",
        ".webp": "image/webp",
        ".mp3": "audio/mpeg",
        ".msgpack": "application/x-msgpack",
    }

    # Cache control settings by file type
    CACHE_CONTROL = {
        "static": "public, max-age=31536000, immutable",  # hashed assets
        "html": "public, max-age=0, must-revalidate",
        "default": "public, max-age=86400",
    }

    def get_content_type(self, file_path: Path) -> str:
        ext = file_path.suffix.lower()
        if ext in self.CONTENT_TYPES:
            return self.CONTENT_TYPES[ext]

        content_type, _ = mimetypes.guess_type(str(file_path))
        return content_type or "application/octet-stream"

    def get_cache_control(self, key: str) -> str:
        if key.startswith(ASSETS_PREFIX):
            return self.CACHE_CONTROL["static"]
        if key.endswith((".html", ".htm")):
            return self.CACHE_CONTROL["html"]
        return self.CACHE_CONTROL["default"]

    def collect_files(self, artifact_dir: Path) -> List[Tuple[Path, str]]:
        """List local files with their S3 keys."""
        files = []
        for name in ROOT_FILES:
            path = artifact_dir / name
            if path.is_file():
                files.append((path, name))

        assets_dir = artifact_dir / "assets"
        if assets_dir.is_dir():
            for file_path in sorted(assets_dir.rglob("*")):
                if file_path.is_file():
                    key = ASSETS_PREFIX + file_path.relative_to(assets_dir).as_posix()
                    files.append((file_path, key))
        return files

    def _remote_asset_keys(self, s3: Any, bucket_name: str) -> Set[str]:
        keys = set()
        paginator = s3.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=bucket_name, Prefix=ASSETS_PREFIX):
            for obj in page.get("Contents", []):
                keys.add(obj["Key"])
        return keys

    def _delete_stale(self, s3: Any, bucket_name: str, stale: List[str]) -> None:
        for i in range(0, len(stale), DELETE_BATCH_SIZE):
            batch = stale[i:i + DELETE_BATCH_SIZE]
            s3.delete_objects(
                Bucket=bucket_name,
                Delete={"Objects": [{"Key": key} for key in batch], "Quiet": True},
            )

    def upload(
        self,
        site: Site,
        artifact_dir: Path,
        bucket_name: str,
        credentials: ScopedCredentials,
    ) -> StageOutcome:
        artifact_dir = Path(artifact_dir)
        if not (artifact_dir / "index.html").is_file():
            return StageOutcome(
                success=False, error=f"index.html not found in {artifact_dir}"
            )

        files = self.collect_files(artifact_dir)
        logger.info(f"Uploading {len(files)} files to S3 bucket {bucket_name} for {site.id}")

        try:
            s3 = credentials.session().client("s3")

            for file_path, key in files:
                with open(file_path, "rb") as f:
                    s3.put_object(
                        Bucket=bucket_name,
                        Key=key,
                        Body=f.read(),
                        ContentType=self.get_content_type(file_path),
                        CacheControl=self.get_cache_control(key),
                    )

            local_assets = {key for _, key in files if key.startswith(ASSETS_PREFIX)}
            stale = sorted(self._remote_asset_keys(s3, bucket_name) - local_assets)
            if stale:
                logger.info(f"Deleting {len(stale)} stale assets from {bucket_name}")
                self._delete_stale(s3, bucket_name, stale)

        except ClientError as e:
            return StageOutcome(success=False, error=f"Failed to upload to {bucket_name}: {e}")
        except (BotoCoreError, OSError) as e:
            return StageOutcome(success=False, error=f"Failed to upload to {bucket_name}: {e}")

        return StageOutcome(
            success=True,
            details={"files_uploaded": len(files), "files_deleted": len(stale)},
        )
