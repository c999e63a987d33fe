"""Remote storage capability used by the commit protocol.

The protocol only ever talks to a :class:`RemoteStorage`; which backend sits
behind it (cloud drive, object store, mounted folder) is a configuration detail.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Union

logger = logging.getLogger(__name__)

REMOTE_BACKUP_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S"


@dataclass
class RemoteFile:
    """Reference to an object in remote storage."""
    id: str
    name: str
    mime_type: Optional[str] = None
    parents: List[str] = field(default_factory=list)
    is_folder: bool = False
    drive_id: Optional[str] = None


class RemoteStorage(ABC):
    """Find, download, upload and copy named objects in a remote store."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable backend name."""

    @abstractmethod
    def find_by_name(self, name: str) -> RemoteFile:
        """Locate an object by name.

        Raises:
            RemoteNotFoundError: No such object
            RemoteError: The lookup failed
        """

    @abstractmethod
    def download_to(self, remote_file: RemoteFile, local_path: Union[str, Path]) -> None:
        """Write the object's current bytes to ``local_path``.

        Raises:
            RemoteError: The transfer failed
        """

    @abstractmethod
    def upload_replacing(self, remote_file: RemoteFile, local_path: Union[str, Path]) -> RemoteFile:
        """Replace the object's content with ``local_path``, keeping its name and metadata.

        Raises:
            RemoteError: The upload failed
        """

    @abstractmethod
    def copy_as(self, remote_file: RemoteFile, new_name: str,
                parent: Optional[RemoteFile] = None) -> RemoteFile:
        """Duplicate an object under ``new_name`` inside ``parent``.

        Raises:
            RemoteError: The copy failed
        """

    def find_folder(self, name: str) -> RemoteFile:
        """Locate a folder by name (defaults to :meth:`find_by_name`)."""
        return self.find_by_name(name)

    def test_connection(self) -> bool:
        """Check that the backend is reachable.

        Returns:
            True if connection is successful, False otherwise
        """
        return True

    def backup_file(self, name: str, folder_name: str, now: Optional[datetime] = None) -> RemoteFile:
        """Copy the object ``name`` to ``<folder_name>/<timestamp>-<name>``.

        Args:
            name: Object to snapshot
            folder_name: Remote folder receiving snapshots
            now: Timestamp to embed (defaults to the current time)

        Returns:
            Reference to the snapshot
        """
        folder = self.find_folder(folder_name)
        original = self.find_by_name(name)
        backup_name = f"{(now or datetime.now()).strftime(REMOTE_BACKUP_TIMESTAMP_FORMAT)}-{name}"
        snapshot = self.copy_as(original, backup_name, folder)
        logger.info(f"Remote {name} backed up as {folder_name}/{backup_name} on {self.name}")
        return snapshot

    def download_file(self, name: str, local_path: Union[str, Path]) -> RemoteFile:
        """Find ``name`` and download it to ``local_path``."""
        remote_file = self.find_by_name(name)
        self.download_to(remote_file, local_path)
        logger.info(f"Downloaded {name} from {self.name} to {local_path}")
        return remote_file

    def upload_file(self, name: str, local_path: Union[str, Path]) -> RemoteFile:
        """Find ``name`` and replace its content with ``local_path``."""
        remote_file = self.find_by_name(name)
        updated = self.upload_replacing(remote_file, local_path)
        logger.info(f"Uploaded {local_path} to {self.name} as {name}")
        return updated
