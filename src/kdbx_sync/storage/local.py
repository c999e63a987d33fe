"""Local filesystem mirror used as remote storage.

For USB drives, NAS mounts or folders kept in sync by another client.
"""

import shutil
from pathlib import Path
from typing import Optional, Union

from ..exceptions import RemoteError, RemoteNotFoundError
from ..utils.file_utils import FileHelper
from .base import RemoteFile, RemoteStorage


class LocalMirrorStorage(RemoteStorage):
    """Remote storage rooted at a local directory."""

    def __init__(self, root: Union[str, Path], create_folders: bool = True):
        """Initialize the mirror.

        Args:
            root: Directory standing in for the remote store
            create_folders: Create folders on lookup instead of failing
        """
        self.root = Path(root)
        self.create_folders = create_folders

    @property
    def name(self) -> str:
        return f"local:{self.root}"

    def _ref(self, path: Path) -> RemoteFile:
        return RemoteFile(
            id=str(path),
            name=path.name,
            parents=[str(path.parent)],
            is_folder=path.is_dir(),
        )

    def find_by_name(self, name: str) -> RemoteFile:
        path = self.root / name
        if not path.exists():
            raise RemoteNotFoundError(f"file not found in mirror: {name}", path=path)
        return self._ref(path)

    def find_folder(self, name: str) -> RemoteFile:
        path = self.root / name
        if not path.is_dir():
            if not self.create_folders:
                raise RemoteNotFoundError(f"folder not found in mirror: {name}", path=path)
            try:
                path.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise RemoteError(f"can't create folder in mirror: {e}", path=path) from e
        return self._ref(path)

    def download_to(self, remote_file: RemoteFile, local_path: Union[str, Path]) -> None:
        try:
            FileHelper.copy_durable(remote_file.id, local_path)
        except OSError as e:
            raise RemoteError(f"can't copy remote db locally: {e}", path=remote_file.id) from e

    def upload_replacing(self, remote_file: RemoteFile, local_path: Union[str, Path]) -> RemoteFile:
        try:
            FileHelper.replace_durable(remote_file.id, Path(local_path).read_bytes())
        except OSError as e:
            raise RemoteError(f"can't upload file to mirror: {e}", path=remote_file.id) from e
        return self._ref(Path(remote_file.id))

    def copy_as(self, remote_file: RemoteFile, new_name: str,
                parent: Optional[RemoteFile] = None) -> RemoteFile:
        target_dir = Path(parent.id) if parent else Path(remote_file.id).parent
        target = target_dir / new_name
        try:
            shutil.copy2(remote_file.id, target)
        except OSError as e:
            raise RemoteError(f"can't create backup: {e}", path=target) from e
        return self._ref(target)

    def test_connection(self) -> bool:
        return self.root.is_dir()
