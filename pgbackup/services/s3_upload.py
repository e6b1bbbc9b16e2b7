from __future__ import annotations

import logging
from typing import Any, Optional

import boto3
from boto3.exceptions import Boto3Error
from boto3.s3.transfer import TransferConfig
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from pgbackup.core.exceptions import UploadFailed
from pgbackup.models import ARCHIVE_CONTENT_TYPE, ArchiveFile, UploadDescriptor, remote_key_for

logger = logging.getLogger("pgbackup.s3")

_MB = 1024 * 1024


class S3Uploader:
    """A thin wrapper around a boto3 S3 client used to push backup archives."""

    def __init__(
        self,
        bucket: str,
        *,
        access_key_id: str = "",
        secret_access_key: str = "",
        endpoint: str = "",
        region: str = "auto",
        subfolder: str = "",
        public_access_url: str = "",
        client: Any = None,
        transfer_config: Optional[TransferConfig] = None,
    ):
        if not bucket:
            raise ValueError("S3_BUCKET must be set")

        self._bucket = bucket
        self._subfolder = subfolder.strip("/")
        self._public_access_url = public_access_url.rstrip("/")
        self._transfer_config = transfer_config or TransferConfig(
            multipart_threshold=64 * _MB,
            multipart_chunksize=16 * _MB,
            max_concurrency=4,
        )

        if client is None:
            if endpoint:
                logger.info("Using custom endpoint: %s", endpoint)
            try:
                client = boto3.client(
                    "s3",
                    endpoint_url=endpoint or None,
                    aws_access_key_id=access_key_id or None,
                    aws_secret_access_key=secret_access_key or None,
                    region_name=region or "auto",
                    # Custom endpoints (R2, MinIO) need path-style addressing.
                    config=BotoConfig(s3={"addressing_style": "path"}),
                )
            except (BotoCoreError, ValueError) as exc:
                raise UploadFailed("Could not create S3 client", bucket=bucket, key="", detail=str(exc)) from exc
        self._client = client

    @classmethod
    def from_settings(cls, settings, client: Any = None) -> "S3Uploader":
        return cls(
            settings.bucket,
            access_key_id=settings.access_key_id,
            secret_access_key=settings.secret_access_key,
            endpoint=settings.endpoint,
            region=settings.region,
            subfolder=settings.bucket_subfolder,
            public_access_url=settings.public_access_url,
            client=client,
        )

    @property
    def bucket(self) -> str:
        return self._bucket

    def remote_key(self, name: str) -> str:
        return remote_key_for(name, self._subfolder)

    def describe(self, name: str) -> UploadDescriptor:
        return UploadDescriptor(
            bucket=self._bucket,
            key=self.remote_key(name),
            content_type=ARCHIVE_CONTENT_TYPE,
            subfolder=self._subfolder or None,
        )

    def public_url(self, key: str) -> Optional[str]:
        if not self._public_access_url:
            return None
        return f"{self._public_access_url}/{key}"

    def upload(self, archive: ArchiveFile, descriptor: UploadDescriptor) -> None:
        """Stream the archive to the bucket. Raises UploadFailed on any store or transport error."""
        logger.info("Uploading backup to s3://%s/%s ...", descriptor.bucket, descriptor.key)
        try:
            with open(archive.path, "rb") as body:
                if descriptor.content_md5:
                    # Multipart uploads cannot carry a whole-object Content-MD5, so send a single PUT.
                    self._client.put_object(
                        Bucket=descriptor.bucket,
                        Key=descriptor.key,
                        Body=body,
                        ContentLength=archive.size,
                        ContentType=descriptor.content_type,
                        ContentMD5=descriptor.content_md5,
                    )
                else:
                    self._client.upload_fileobj(
                        body,
                        descriptor.bucket,
                        descriptor.key,
                        ExtraArgs={"ContentType": descriptor.content_type},
                        Config=self._transfer_config,
                    )
        except ClientError as exc:
            error = exc.response.get("Error", {})
            detail = f"{error.get('Code', 'Unknown')}: {error.get('Message', str(exc))}"
            logger.error(
                "event=upload_failure bucket=%s key=%s error=%s", descriptor.bucket, descriptor.key, detail
            )
            raise UploadFailed("Upload rejected by object store", bucket=descriptor.bucket, key=descriptor.key, detail=detail) from exc
        except (BotoCoreError, Boto3Error, OSError) as exc:
            logger.error(
                "event=upload_failure bucket=%s key=%s error=%s", descriptor.bucket, descriptor.key, exc
            )
            raise UploadFailed("Upload failed", bucket=descriptor.bucket, key=descriptor.key, detail=str(exc)) from exc

        logger.info("Backup uploaded to s3://%s/%s", descriptor.bucket, descriptor.key)
