# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_runner


from pathlib import Path

import anyio
import boto3
from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger

from coreason_runner.config import RunnerConfig

PRESIGNED_URL_TTL = 3600


class S3Storage:
    """Uploads collected output files to an S3 compatible bucket."""

    def __init__(
        self,
        bucket: str,
        region: str | None = None,
        access_key: str | None = None,
        secret_key: str | None = None,
        endpoint_url: str | None = None,
        key_prefix: str = "",
        url_ttl: int = PRESIGNED_URL_TTL,
    ):
        """Initializes the S3Storage backend.

        Args:
            bucket: The S3 bucket name.
            region: Optional AWS region name.
            access_key: Optional AWS access key ID.
            secret_key: Optional AWS secret access key.
            endpoint_url: Optional endpoint URL for S3-compatible services (e.g., MinIO).
            key_prefix: Prefix prepended to every object key.
            url_ttl: Lifetime of the presigned download URL, in seconds.
        """
        self.bucket = bucket
        self.key_prefix = key_prefix.strip("/")
        self.url_ttl = url_ttl
        self.client = boto3.client(
            "s3",
            region_name=region,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            endpoint_url=endpoint_url,
        )

    @classmethod
    def from_config(cls, config: RunnerConfig) -> "S3Storage | None":
        """Build a backend from the S3 settings, or None when no bucket is configured."""
        if not config.s3_bucket:
            return None
        return cls(
            bucket=config.s3_bucket,
            region=config.s3_region,
            access_key=config.s3_access_key,
            secret_key=config.s3_secret_key,
            endpoint_url=config.s3_endpoint_url,
        )

    def object_key(self, object_name: str, namespace: str | None = None) -> str:
        parts = [p for p in (self.key_prefix, namespace, object_name) if p]
        return "/".join(parts)

    async def upload_file(self, file_path: Path, object_name: str, namespace: str | None = None) -> str:
        """Upload a file and return a presigned URL for it.

        Args:
            file_path: The local path to the file.
            object_name: The destination object name.
            namespace: Optional key segment grouping the files of one workspace.

        Returns:
            str: A presigned GET URL.

        Raises:
            FileNotFoundError: If the local file does not exist.
            ClientError: If the upload to S3 fails.
        """
        if not file_path.exists():
            raise FileNotFoundError(f"File not found: {file_path}")

        key = self.object_key(object_name, namespace)
        logger.info(f"Uploading {file_path.name} to s3://{self.bucket}/{key}")

        def _upload_and_sign() -> str:
            self.client.upload_file(str(file_path), self.bucket, key)
            url: str = self.client.generate_presigned_url(
                ClientMethod="get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=self.url_ttl,
            )
            return url

        try:
            return await anyio.to_thread.run_sync(_upload_and_sign)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to upload {file_path.name} to S3: {e}")
            raise
