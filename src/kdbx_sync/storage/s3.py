"""S3 (and S3-compatible) object storage backend."""

import logging
from pathlib import Path
from typing import Optional, Union

from botocore.exceptions import BotoCoreError, ClientError

from ..auth.cloud_auth import AWSAuth
from ..exceptions import RemoteError, RemoteNotFoundError
from .base import RemoteFile, RemoteStorage

logger = logging.getLogger(__name__)


class S3Storage(RemoteStorage):
    """Objects stored as ``<prefix><name>`` in a single bucket.

    Folders do not exist in S3; a folder reference is just a key prefix.
    """

    def __init__(self, auth: AWSAuth, bucket: str, prefix: str = ""):
        """Initialize the backend.

        Args:
            auth: AWS authentication handler
            bucket: Target bucket name
            prefix: Optional key prefix for the database and its backups
        """
        self.auth = auth
        self.bucket = bucket
        self.prefix = prefix.rstrip('/') + '/' if prefix else ''
        self._client = None

    @property
    def name(self) -> str:
        return f"s3://{self.bucket}"

    @property
    def client(self):
        if self._client is None:
            self._client = self.auth.get_s3_client()
        return self._client

    def _key(self, name: str) -> str:
        return f"{self.prefix}{name}"

    def find_by_name(self, name: str) -> RemoteFile:
        key = self._key(name)
        try:
            head = self.client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            code = e.response.get('Error', {}).get('Code')
            if code in ('404', 'NoSuchKey', 'NotFound'):
                raise RemoteNotFoundError(f"{key} not found in {self.name}") from e
            raise RemoteError(f"can't look up {key}: {e}") from e
        except BotoCoreError as e:
            raise RemoteError(f"can't look up {key}: {e}") from e
        return RemoteFile(id=key, name=name, mime_type=head.get('ContentType'))

    def find_folder(self, name: str) -> RemoteFile:
        return RemoteFile(id=self._key(name).rstrip('/') + '/', name=name, is_folder=True)

    def download_to(self, remote_file: RemoteFile, local_path: Union[str, Path]) -> None:
        try:
            self.client.download_file(self.bucket, remote_file.id, str(local_path))
        except (ClientError, BotoCoreError) as e:
            raise RemoteError(f"download error: {e}", path=local_path) from e

    def upload_replacing(self, remote_file: RemoteFile, local_path: Union[str, Path]) -> RemoteFile:
        extra_args = {'ContentType': remote_file.mime_type} if remote_file.mime_type else None
        try:
            self.client.upload_file(str(local_path), self.bucket, remote_file.id, ExtraArgs=extra_args)
        except (ClientError, BotoCoreError) as e:
            raise RemoteError(f"can't upload {remote_file.id}: {e}", path=local_path) from e
        return remote_file

    def copy_as(self, remote_file: RemoteFile, new_name: str,
                parent: Optional[RemoteFile] = None) -> RemoteFile:
        folder = parent.id if parent is not None else self.prefix
        key = f"{folder}{new_name}"
        try:
            self.client.copy_object(
                Bucket=self.bucket,
                Key=key,
                CopySource={'Bucket': self.bucket, 'Key': remote_file.id},
            )
        except (ClientError, BotoCoreError) as e:
            raise RemoteError(f"can't create backup: {e}") from e
        return RemoteFile(id=key, name=new_name, mime_type=remote_file.mime_type)

    def test_connection(self) -> bool:
        try:
            self.client.head_bucket(Bucket=self.bucket)
            return True
        except (ClientError, BotoCoreError) as e:
            logger.error(f"S3 connection test failed: {e}")
            return False
