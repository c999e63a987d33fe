"""Timestamped local snapshots of the database file."""

import logging
import os
import stat
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Union

from ..exceptions import BackupNotFoundError, LocalFileError
from ..utils.file_utils import FileHelper

logger = logging.getLogger(__name__)

BACKUP_TIMESTAMP_FORMAT = "%Y-%m-%dT%H-%M-%S.%f"


@dataclass(frozen=True)
class BackupSnapshot:
    """An immutable copy of the database file in the backup directory."""
    path: Path
    modified_time: float

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def modified(self) -> datetime:
        return datetime.fromtimestamp(self.modified_time)


class BackupManager:
    """Write and locate snapshots of a local database file."""

    def __init__(self, backup_dir: Union[str, Path]):
        """Initialize backup manager.

        Args:
            backup_dir: Directory holding the snapshots (created on first backup)
        """
        self.backup_dir = Path(backup_dir)

    def take_backup(self, source_path: Union[str, Path], now: Optional[datetime] = None) -> Path:
        """Copy the source file to ``<backup_dir>/<timestamp>-<file name>``.

        The snapshot keeps the source's permission bits, is flushed to disk and
        is created exclusively, so an existing snapshot is never overwritten.

        Args:
            source_path: Database file to snapshot
            now: Timestamp to embed (defaults to the current time)

        Returns:
            Path of the new snapshot

        Raises:
            LocalFileError: If the source is unreadable or the snapshot can't be written
        """
        source_path = Path(source_path)
        timestamp = (now or datetime.now()).strftime(BACKUP_TIMESTAMP_FORMAT)

        try:
            info = source_path.stat()
            data = source_path.read_bytes()
        except OSError as e:
            raise LocalFileError(f"can't read local database file: {e}", path=source_path) from e

        try:
            self.backup_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
        except OSError as e:
            raise LocalFileError(f"can't create backup directory: {e}", path=self.backup_dir) from e

        snapshot_path = self.backup_dir / f"{timestamp}-{source_path.name}"
        try:
            FileHelper.write_durable(snapshot_path, data, exclusive=True)
            os.chmod(snapshot_path, stat.S_IMODE(info.st_mode))
        except OSError as e:
            raise LocalFileError(f"can't write a backup file: {e}", path=snapshot_path) from e

        logger.info(f"Local database backed up to {snapshot_path}")
        return snapshot_path

    def list_backups(self) -> List[BackupSnapshot]:
        """List usable snapshots in directory iteration order.

        Hidden names, directories and anything that is not a regular file are skipped.

        Raises:
            LocalFileError: If the backup directory cannot be read
        """
        snapshots = []
        try:
            with os.scandir(self.backup_dir) as entries:
                for dir_entry in entries:
                    if FileHelper.is_hidden_name(dir_entry.name):
                        continue
                    if not dir_entry.is_file(follow_symlinks=False):
                        continue
                    snapshots.append(BackupSnapshot(
                        path=Path(dir_entry.path),
                        modified_time=dir_entry.stat(follow_symlinks=False).st_mtime,
                    ))
        except OSError as e:
            raise LocalFileError(f"can't read backup directory: {e}", path=self.backup_dir) from e
        return snapshots

    def latest_backup(self) -> BackupSnapshot:
        """Return the snapshot with the greatest modification time.

        The first snapshot encountered wins ties.

        Raises:
            BackupNotFoundError: If no snapshot remains after filtering
            LocalFileError: If the backup directory cannot be read
        """
        latest = None
        for snapshot in self.list_backups():
            if latest is None or snapshot.modified_time > latest.modified_time:
                latest = snapshot

        if latest is None:
            raise BackupNotFoundError("no backup found", path=self.backup_dir)
        return latest


def take_backup(source_path: Union[str, Path], backup_dir: Union[str, Path]) -> Path:
    """Snapshot ``source_path`` into ``backup_dir``."""
    return BackupManager(backup_dir).take_backup(source_path)


def latest_backup(backup_dir: Union[str, Path]) -> BackupSnapshot:
    """Most recent snapshot in ``backup_dir``."""
    return BackupManager(backup_dir).latest_backup()
