"""Optional S3 mirroring of finished artifacts.

When ``MEDIA_OPS_MIRROR_BUCKET`` is set, the server uploads a copy of
every registered artifact to ``s3://<bucket>/outputs/<artifact_id>``.
The local file stays the download source; mirroring is best-effort.

When running locally against LocalStack, set ``LOCALSTACK_HOSTNAME`` to
route requests to the local S3 endpoint.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from media_ops import ProcessedArtifact

logger = logging.getLogger(__name__)

# Lazy-initialised S3 client (created on first upload).
_s3_client = None

CONTENT_TYPE_MAP = {
    ".mp4": "video/mp4",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
}

MIRROR_PREFIX = "outputs"


def _get_s3_client():
    global _s3_client
    if _s3_client is None:
        kwargs: dict = {}
        if os.environ.get("LOCALSTACK_HOSTNAME"):
            kwargs["endpoint_url"] = f"http://{os.environ['LOCALSTACK_HOSTNAME']}:4566"
            kwargs["aws_access_key_id"] = "test"
            kwargs["aws_secret_access_key"] = "test"
        _s3_client = boto3.client("s3", **kwargs)
    return _s3_client


def upload_to_s3(
    bucket: str,
    key: str,
    local_path: Path,
    content_type: str | None = None,
) -> None:
    """Upload a local file to S3."""
    logger.info("Uploading %s → s3://%s/%s", local_path, bucket, key)
    kwargs: dict = {}
    if content_type:
        kwargs["ExtraArgs"] = {"ContentType": content_type}
    _get_s3_client().upload_file(str(local_path), bucket, key, **kwargs)
    size = local_path.stat().st_size
    logger.info("Uploaded %d bytes", size)


def mirror_artifact(bucket: str, artifact: ProcessedArtifact) -> str | None:
    """Copy *artifact* to S3.  Returns the key, or ``None`` if the upload failed.

    Failures are logged and swallowed: the artifact is already
    downloadable from local storage.
    """
    key = f"{MIRROR_PREFIX}/{artifact.artifact_id}"
    try:
        upload_to_s3(
            bucket,
            key,
            artifact.path,
            CONTENT_TYPE_MAP.get(artifact.path.suffix.lower()),
        )
    except (BotoCoreError, ClientError, OSError):
        logger.exception("Failed to mirror %s to S3 (best-effort, continuing)", artifact.artifact_id)
        return None
    return key
