"""OneDrive backend on top of the Microsoft Graph REST API."""

import logging
import os
import time
from pathlib import Path
from typing import Any, Dict, Optional, Union
from urllib.parse import quote

import requests

from ..auth.microsoft_auth import MicrosoftGraphAuth
from ..exceptions import RemoteError, RemoteNotFoundError
from .base import RemoteFile, RemoteStorage

logger = logging.getLogger(__name__)

GRAPH_ROOT = "https://graph.microsoft.com/v1.0"


class OneDriveStorage(RemoteStorage):
    """Objects addressed by path below ``root_path`` in the signed-in user's drive."""

    def __init__(self, auth: MicrosoftGraphAuth, root_path: str = "", timeout: float = 60.0,
                 copy_poll_interval: float = 1.0, copy_max_polls: int = 60,
                 session: Optional[requests.Session] = None):
        """Initialize the backend.

        Args:
            auth: Microsoft Graph authentication handler
            root_path: Drive folder holding the database (empty for the drive root)
            timeout: Per-request timeout in seconds
            copy_poll_interval: Seconds between polls of an asynchronous copy
            copy_max_polls: Polls before a copy is considered failed
            session: HTTP session to use (a new one by default)
        """
        self.auth = auth
        self.root_path = root_path.strip('/')
        self.timeout = timeout
        self.copy_poll_interval = copy_poll_interval
        self.copy_max_polls = copy_max_polls
        self.session = session or requests.Session()

    @property
    def name(self) -> str:
        return "OneDrive"

    def _item_url(self, name: str) -> str:
        path = f"{self.root_path}/{name}" if self.root_path else name
        return f"{GRAPH_ROOT}/me/drive/root:/{quote(path)}"

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        headers = kwargs.pop('headers', {})
        headers.update(self.auth.get_auth_headers())
        try:
            response = self.session.request(method, url, headers=headers, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise RemoteError(f"OneDrive request failed: {e}") from e
        if response.status_code == 404:
            raise RemoteNotFoundError(f"not found on OneDrive: {url}")
        if response.status_code >= 400:
            raise RemoteError(f"OneDrive returned {response.status_code}: {response.text[:200]}")
        return response

    def _to_remote_file(self, item: Dict[str, Any]) -> RemoteFile:
        parent = item.get('parentReference') or {}
        return RemoteFile(
            id=item['id'],
            name=item.get('name', ''),
            mime_type=(item.get('file') or {}).get('mimeType'),
            parents=[parent['id']] if parent.get('id') else [],
            is_folder=item.get('folder') is not None,
            drive_id=parent.get('driveId'),
        )

    def find_by_name(self, name: str) -> RemoteFile:
        return self._to_remote_file(self._request('GET', self._item_url(name)).json())

    def find_folder(self, name: str) -> RemoteFile:
        folder = self.find_by_name(name)
        if not folder.is_folder:
            raise RemoteError(f"{name} on OneDrive is not a folder")
        return folder

    def download_to(self, remote_file: RemoteFile, local_path: Union[str, Path]) -> None:
        response = self._request('GET', f"{GRAPH_ROOT}/me/drive/items/{remote_file.id}/content", stream=True)
        try:
            with open(local_path, 'wb') as f:
                for chunk in response.iter_content(chunk_size=65536):
                    f.write(chunk)
                f.flush()
                os.fsync(f.fileno())
        except requests.RequestException as e:
            raise RemoteError(f"download error: {e}", path=local_path) from e
        except OSError as e:
            raise RemoteError(f"can't create local copy: {e}", path=local_path) from e

    def upload_replacing(self, remote_file: RemoteFile, local_path: Union[str, Path]) -> RemoteFile:
        try:
            data = Path(local_path).read_bytes()
        except OSError as e:
            raise RemoteError(f"can't open db file: {e}", path=local_path) from e
        response = self._request(
            'PUT',
            f"{GRAPH_ROOT}/me/drive/items/{remote_file.id}/content",
            data=data,
            headers={'Content-Type': remote_file.mime_type or 'application/octet-stream'},
        )
        return self._to_remote_file(response.json())

    def copy_as(self, remote_file: RemoteFile, new_name: str,
                parent: Optional[RemoteFile] = None) -> RemoteFile:
        body: Dict[str, Any] = {'name': new_name}
        if parent is not None:
            body['parentReference'] = {'id': parent.id}
            if parent.drive_id:
                body['parentReference']['driveId'] = parent.drive_id

        response = self._request('POST', f"{GRAPH_ROOT}/me/drive/items/{remote_file.id}/copy", json=body)
        monitor_url = response.headers.get('Location')
        if not monitor_url:
            raise RemoteError("OneDrive copy returned no monitor URL")
        resource_id = self._wait_for_copy(monitor_url)
        return RemoteFile(
            id=resource_id,
            name=new_name,
            mime_type=remote_file.mime_type,
            parents=[parent.id] if parent is not None else list(remote_file.parents),
            drive_id=parent.drive_id if parent is not None else remote_file.drive_id,
        )

    def _wait_for_copy(self, monitor_url: str) -> str:
        """Poll an asynchronous copy until it completes and return the new item id."""
        for _ in range(self.copy_max_polls):
            try:
                # The monitor URL is pre-authenticated and rejects bearer tokens
                response = self.session.get(monitor_url, timeout=self.timeout)
            except requests.RequestException as e:
                raise RemoteError(f"can't create backup: {e}") from e
            status = response.json() if response.content else {}
            state = status.get('status')
            if state == 'completed' and status.get('resourceId'):
                return status['resourceId']
            if state == 'failed':
                raise RemoteError(f"can't create backup: {status.get('error', status)}")
            time.sleep(self.copy_poll_interval)
        raise RemoteError("can't create backup: copy did not complete in time")

    def test_connection(self) -> bool:
        try:
            self._request('GET', f"{GRAPH_ROOT}/me/drive")
            return True
        except RemoteError as e:
            logger.error(f"OneDrive connection test failed: {e}")
            return False
