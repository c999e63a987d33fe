"""Google Drive backend."""

import logging
import os
from pathlib import Path
from typing import Optional, Union

from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaFileUpload, MediaIoBaseDownload

from ..auth.google_auth import GoogleDriveAuth
from ..exceptions import RemoteError, RemoteNotFoundError
from .base import RemoteFile, RemoteStorage

logger = logging.getLogger(__name__)

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
FILE_FIELDS = "id, name, mimeType, parents"


def _quote(value: str) -> str:
    """Escape a value for use inside a Drive query string literal."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


class GoogleDriveStorage(RemoteStorage):
    """Objects addressed by name anywhere in the user's drive.

    Lookups return the first non-trashed match, so names are expected to be
    unique within the drive.
    """

    def __init__(self, auth: Optional[GoogleDriveAuth] = None, service=None):
        """Initialize the backend.

        Args:
            auth: Credential source used to build the Drive service on first use
            service: Prebuilt Drive v3 service (takes precedence over ``auth``)
        """
        if auth is None and service is None:
            raise ValueError("either auth or service is required")
        self.auth = auth
        self._service = service

    @property
    def name(self) -> str:
        return "Google Drive"

    @property
    def service(self):
        if self._service is None:
            creds = self.auth.get_credentials()
            self._service = build("drive", "v3", credentials=creds, cache_discovery=False)
        return self._service

    def _to_remote_file(self, item: dict) -> RemoteFile:
        return RemoteFile(
            id=item["id"],
            name=item.get("name", ""),
            mime_type=item.get("mimeType"),
            parents=list(item.get("parents") or []),
            is_folder=item.get("mimeType") == FOLDER_MIME_TYPE,
        )

    def _query_first(self, query: str, name: str) -> RemoteFile:
        try:
            response = self.service.files().list(q=query, fields=f"files({FILE_FIELDS})").execute()
        except HttpError as e:
            raise RemoteError(f"file not found on google drive: {e}") from e

        files = response.get("files", [])
        if not files:
            raise RemoteNotFoundError(f"{name} not found on google drive")
        return self._to_remote_file(files[0])

    def find_by_name(self, name: str) -> RemoteFile:
        return self._query_first(f"name = '{_quote(name)}' and trashed = false", name)

    def find_folder(self, name: str) -> RemoteFile:
        query = f"name = '{_quote(name)}' and mimeType = '{FOLDER_MIME_TYPE}' and trashed = false"
        try:
            return self._query_first(query, name)
        except RemoteNotFoundError as e:
            raise RemoteNotFoundError(f"can't find backup folder {name}") from e

    def download_to(self, remote_file: RemoteFile, local_path: Union[str, Path]) -> None:
        request = self.service.files().get_media(fileId=remote_file.id)
        try:
            with open(local_path, 'wb') as f:
                downloader = MediaIoBaseDownload(f, request)
                done = False
                while not done:
                    status, done = downloader.next_chunk()
                    if status:
                        logger.debug(f"Download {remote_file.name}: {int(status.progress() * 100)}%")
                f.flush()
                os.fsync(f.fileno())
        except HttpError as e:
            raise RemoteError(f"download error: {e}", path=local_path) from e
        except OSError as e:
            raise RemoteError(f"can't create local copy: {e}", path=local_path) from e

    def upload_replacing(self, remote_file: RemoteFile, local_path: Union[str, Path]) -> RemoteFile:
        metadata = {"name": remote_file.name}
        if remote_file.mime_type:
            metadata["mimeType"] = remote_file.mime_type
        media = MediaFileUpload(
            str(local_path),
            mimetype=remote_file.mime_type or "application/octet-stream",
            resumable=False,
        )
        try:
            updated = self.service.files().update(
                fileId=remote_file.id,
                body=metadata,
                media_body=media,
                fields=FILE_FIELDS,
            ).execute()
        except HttpError as e:
            raise RemoteError(f"can't upload file on google drive: {e}", path=local_path) from e
        return self._to_remote_file(updated)

    def copy_as(self, remote_file: RemoteFile, new_name: str,
                parent: Optional[RemoteFile] = None) -> RemoteFile:
        body = {"name": new_name}
        if parent is not None:
            body["parents"] = [parent.id]
        try:
            copied = self.service.files().copy(
                fileId=remote_file.id, body=body, fields=FILE_FIELDS
            ).execute()
        except HttpError as e:
            raise RemoteError(f"can't create backup: {e}") from e
        return self._to_remote_file(copied)

    def test_connection(self) -> bool:
        try:
            self.service.files().list(pageSize=1, fields="files(id)").execute()
            return True
        except HttpError as e:
            logger.error(f"Google Drive connection test failed: {e}")
            return False
