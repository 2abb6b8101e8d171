"""S3 publication of the packaged archive and the CloudFormation template."""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from .config import ProvisionConfig
from .errors import TransportError, aws_error_code, aws_error_message
from .models import sanitized_name

logger = logging.getLogger("stack_provisioner.publisher")


@dataclass(frozen=True)
class PublishedObject:
    bucket: str
    key: str
    location: str


def template_key(service_name: str, body: str) -> str:
    digest = hashlib.sha1(body.encode("utf-8")).hexdigest()
    return f"{sanitized_name(service_name)}-{digest}-cf.json"


def _describe(exc: Exception) -> str:
    if isinstance(exc, ClientError):
        return f"{aws_error_code(exc)}: {aws_error_message(exc)}"
    return str(exc)


class ArtifactPublisher:
    def __init__(self, s3_client: Any, config: ProvisionConfig) -> None:
        self._client = s3_client
        self.config = config

    def object_url(self, bucket: str, key: str) -> str:
        if self.config.endpoint_url:
            return f"{self.config.endpoint_url.rstrip('/')}/{bucket}/{key}"
        if self.config.region == "us-east-1":
            return f"https://{bucket}.s3.amazonaws.com/{key}"
        return f"https://{bucket}.s3.{self.config.region}.amazonaws.com/{key}"

    def publish_archive(self, archive_path: Path, bucket: str) -> PublishedObject:
        """Upload the archive under its own filename; the local file is removed either way."""
        key = archive_path.name
        logger.info("Uploading ZIP archive to S3 bucket=%s key=%s", bucket, key)
        try:
            self._client.upload_file(
                str(archive_path),
                bucket,
                key,
                ExtraArgs={"ContentType": "application/zip"},
            )
        except (ClientError, BotoCoreError, OSError) as exc:
            raise TransportError("S3_ARCHIVE_UPLOAD_FAILED", f"s3://{bucket}/{key} ({_describe(exc)})") from exc
        finally:
            archive_path.unlink(missing_ok=True)
        published = PublishedObject(bucket=bucket, key=key, location=self.object_url(bucket, key))
        logger.info("ZIP archive uploaded: %s", published.location)
        return published

    def publish_template(self, service_name: str, bucket: str, body: str) -> PublishedObject:
        key = template_key(service_name, body)
        logger.info("Uploading CloudFormation template key=%s", key)
        logger.debug("CloudFormation template:\n%s", body)
        try:
            self._client.put_object(
                Bucket=bucket,
                Key=key,
                Body=body.encode("utf-8"),
                ContentType="application/json",
            )
        except (ClientError, BotoCoreError) as exc:
            raise TransportError("S3_TEMPLATE_UPLOAD_FAILED", f"s3://{bucket}/{key} ({_describe(exc)})") from exc
        published = PublishedObject(bucket=bucket, key=key, location=self.object_url(bucket, key))
        logger.info("CloudFormation template uploaded: %s", published.location)
        return published

    def delete_archive(self, bucket: str, key: str) -> None:
        try:
            self._client.delete_object(Bucket=bucket, Key=key)
        except (ClientError, BotoCoreError) as exc:
            raise TransportError("S3_ARCHIVE_DELETE_FAILED", f"s3://{bucket}/{key} ({_describe(exc)})") from exc
