"""
S3 storage client for backup artifacts.

Uploads compressed dumps under a caller-chosen key, lists objects by prefix
and deletes single objects.
"""

import logging
import os
from datetime import timezone
from typing import List, Optional

import boto3
from botocore.exceptions import ClientError, BotoCoreError

from .models import BackupError, RemoteObject


URI_SCHEME = 'store'
CONTENT_TYPE = 'application/gzip'
CONTENT_ENCODING = 'gzip'
MULTIPART_THRESHOLD = 100 * 1024 * 1024
MULTIPART_CHUNK_SIZE = 10 * 1024 * 1024


class StoreError(BackupError):
    """Raised when a list, delete or connection check fails."""
    pass


class UploadError(BackupError):
    """Raised when an upload fails."""
    pass


def _describe(e: Exception) -> str:
    if isinstance(e, ClientError):
        error_code = e.response.get('Error', {}).get('Code', 'Unknown')
        return f" ({error_code}): {e}"
    return f": {e}"


class S3Storage:
    """
    Handler for storing backups in an S3 bucket.

    Objects are written with gzip content headers so downloads are
    recognised as compressed dumps.
    """

    def __init__(self, access_key: str, secret_key: str, bucket_name: str,
                 region: str = 'us-east-1', endpoint_url: Optional[str] = None,
                 logger: Optional[logging.Logger] = None):
        """
        Initialize S3 storage handler.

        Args:
            access_key: AWS access key ID
            secret_key: AWS secret access key
            bucket_name: S3 bucket name
            region: AWS region (default: us-east-1)
            endpoint_url: Custom endpoint for S3-compatible stores
            logger: Logger for upload progress
        """
        self.bucket_name = bucket_name
        self.region = region
        self.logger = logger or logging.getLogger(__name__)

        try:
            self.s3_client = boto3.client(
                's3',
                aws_access_key_id=access_key,
                aws_secret_access_key=secret_key,
                region_name=region,
                endpoint_url=endpoint_url
            )
        except (BotoCoreError, ValueError) as e:
            raise StoreError(f"Failed to initialize S3 client: {e}")

    @classmethod
    def from_config(cls, store_config, logger: Optional[logging.Logger] = None) -> 'S3Storage':
        """Create a handler from a validated StoreConfig."""
        return cls(
            access_key=store_config.access_key_id,
            secret_key=store_config.secret_access_key,
            bucket_name=store_config.bucket,
            region=store_config.region,
            endpoint_url=store_config.endpoint_url,
            logger=logger
        )

    def uri_for(self, key: str) -> str:
        return f"{URI_SCHEME}://{self.bucket_name}/{key}"

    def upload(self, local_path: str, remote_key: str):
        """
        Upload a local file to S3 under remote_key.

        The file is streamed from disk; files above 100MB go through a
        multipart upload in 10MB parts.

        Args:
            local_path: Path to local file
            remote_key: Destination S3 key

        Raises:
            UploadError: If the file is missing or the upload fails
        """
        if not os.path.exists(local_path):
            raise UploadError(f"Local file not found: {local_path}")

        try:
            file_size = os.path.getsize(local_path)

            if file_size > MULTIPART_THRESHOLD:
                self._multipart_upload(local_path, remote_key)
            else:
                self._simple_upload(local_path, remote_key)

        except (ClientError, BotoCoreError, OSError) as e:
            raise UploadError(f"S3 upload failed{_describe(e)}") from e

    def _simple_upload(self, local_path: str, remote_key: str):
        with open(local_path, 'rb') as f:
            self.s3_client.put_object(
                Bucket=self.bucket_name,
                Key=remote_key,
                Body=f,
                ContentType=CONTENT_TYPE,
                ContentEncoding=CONTENT_ENCODING
            )

    def _multipart_upload(self, local_path: str, remote_key: str):
        """
        Upload a large file part by part, aborting the upload on any error.

        Args:
            local_path: Path to local file
            remote_key: Destination S3 key
        """
        response = self.s3_client.create_multipart_upload(
            Bucket=self.bucket_name,
            Key=remote_key,
            ContentType=CONTENT_TYPE,
            ContentEncoding=CONTENT_ENCODING
        )
        upload_id = response['UploadId']

        parts = []

        try:
            with open(local_path, 'rb') as f:
                part_number = 1

                while True:
                    data = f.read(MULTIPART_CHUNK_SIZE)
                    if not data:
                        break

                    response = self.s3_client.upload_part(
                        Bucket=self.bucket_name,
                        Key=remote_key,
                        PartNumber=part_number,
                        UploadId=upload_id,
                        Body=data
                    )

                    parts.append({
                        'PartNumber': part_number,
                        'ETag': response['ETag']
                    })

                    part_number += 1

            self.s3_client.complete_multipart_upload(
                Bucket=self.bucket_name,
                Key=remote_key,
                UploadId=upload_id,
                MultipartUpload={'Parts': parts}
            )

        except Exception:
            try:
                self.s3_client.abort_multipart_upload(
                    Bucket=self.bucket_name,
                    Key=remote_key,
                    UploadId=upload_id
                )
            except (ClientError, BotoCoreError) as abort_error:
                self.logger.warning(f"[db-backup] Failed to abort multipart upload {upload_id}: {abort_error}")
            raise

    def delete(self, key: str):
        """
        Delete an object from S3.

        Args:
            key: S3 object key to delete

        Raises:
            StoreError: If deletion fails
        """
        try:
            self.s3_client.delete_object(
                Bucket=self.bucket_name,
                Key=key
            )
        except (ClientError, BotoCoreError) as e:
            raise StoreError(f"S3 delete failed{_describe(e)}") from e

    def list_objects(self, prefix: str) -> List[RemoteObject]:
        """
        List every object under prefix, following pagination to the end.

        Args:
            prefix: S3 key prefix to filter by

        Returns:
            Flat list of RemoteObject with timezone-aware last_modified

        Raises:
            StoreError: If listing fails
        """
        try:
            objects = []
            paginator = self.s3_client.get_paginator('list_objects_v2')

            for page in paginator.paginate(Bucket=self.bucket_name, Prefix=prefix):
                for obj in page.get('Contents', []):
                    last_modified = obj['LastModified']
                    if last_modified.tzinfo is None:
                        last_modified = last_modified.replace(tzinfo=timezone.utc)
                    objects.append(RemoteObject(
                        key=obj['Key'],
                        last_modified=last_modified,
                        size=obj.get('Size', 0)
                    ))

            return objects

        except (ClientError, BotoCoreError) as e:
            raise StoreError(f"S3 list failed{_describe(e)}") from e

    def test_connection(self) -> bool:
        """
        Test S3 connection and bucket access.

        Returns:
            True if connection is successful

        Raises:
            StoreError: If connection test fails
        """
        try:
            self.s3_client.head_bucket(Bucket=self.bucket_name)
            return True
        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code', 'Unknown')
            if error_code == '404':
                raise StoreError(f"Bucket does not exist: {self.bucket_name}")
            elif error_code == '403':
                raise StoreError(f"Access denied to bucket: {self.bucket_name}")
            else:
                raise StoreError(f"S3 connection test failed ({error_code}): {e}")
        except BotoCoreError as e:
            raise StoreError(f"Failed to connect to S3: {e}")
