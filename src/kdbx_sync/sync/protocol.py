"""Commit protocol for one sync round.

A round runs a fixed, linear sequence of states. Every state must complete
before the next one starts and any failure ends the round without compensating
actions; the snapshots taken by the first two states are what an operator
recovers from.

1. backup_local     snapshot the local database into the backup directory
2. backup_remote    duplicate the remote database into the remote backup folder
3. download_remote  fetch the remote database to the remote copy path
4. merge            merge local and remote copy into the sync file
5. verify_backup    the latest snapshot must match the local database byte for byte
6. promote          remove remote copy, remove original, rename sync file into place
7. upload_remote    replace the remote database with the promoted local file

Nothing is deleted before verify_backup has succeeded.
"""

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Protocol

from ..config.settings import DatabaseSettings
from ..exceptions import (
    IntegrityError,
    KdbxSyncError,
    LocalFileError,
    PromotionError,
    RemoteError,
    UploadPendingError,
)
from ..storage.base import RemoteStorage
from ..utils.file_utils import FileHelper
from ..utils.logging import TimedOperation
from ..vault.database import DatabaseCodec
from .backup_manager import BackupManager
from .checksum import equal_content
from .merge import MergeEngine, MergeResult

logger = logging.getLogger(__name__)


class SyncState(str, Enum):
    """States of a sync round, in execution order."""
    BACKUP_LOCAL = "backup_local"
    BACKUP_REMOTE = "backup_remote"
    DOWNLOAD_REMOTE = "download_remote"
    MERGE = "merge"
    VERIFY_BACKUP = "verify_backup"
    PROMOTE = "promote"
    UPLOAD_REMOTE = "upload_remote"
    DONE = "done"


REMOTE_STATES = (SyncState.BACKUP_REMOTE, SyncState.DOWNLOAD_REMOTE, SyncState.UPLOAD_REMOTE)


class PassphraseSource(Protocol):
    def get_passphrase(self) -> str:
        ...


@dataclass
class StateResult:
    """A completed state and how long it took."""
    state: SyncState
    duration: float


@dataclass
class RoundReport:
    """Outcome of a round."""
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: Optional[datetime] = None
    states: List[StateResult] = field(default_factory=list)
    local_backup: Optional[Path] = None
    remote_backup: Optional[str] = None
    merge: Optional[MergeResult] = None

    @property
    def completed(self) -> bool:
        return bool(self.states) and self.states[-1].state == SyncState.DONE

    @property
    def duration(self) -> float:
        return sum(result.duration for result in self.states)


class SyncRound:
    """Run the backup, merge, verify, promote and upload sequence once.

    The round talks to the remote store only through :class:`RemoteStorage`
    and gets the passphrase from an injected ``credentials`` object, so the
    same sequence runs against any backend and any secret source.
    """

    def __init__(
        self,
        settings: DatabaseSettings,
        storage: RemoteStorage,
        codec: DatabaseCodec,
        credentials: Optional[PassphraseSource] = None,
        remote_name: Optional[str] = None,
        remote_backup_folder: str = "Backups",
        clock: Callable[[], datetime] = datetime.now,
    ):
        """Initialize a round.

        Args:
            settings: Local database locations
            storage: Remote storage backend
            codec: Codec for the database format
            credentials: Passphrase source (required by :meth:`run`)
            remote_name: Name of the remote database (defaults to the local file name)
            remote_backup_folder: Remote folder receiving remote snapshots
            clock: Source of the timestamps embedded in snapshot names
        """
        self.settings = settings
        self.storage = storage
        self.codec = codec
        self.credentials = credentials
        self.remote_name = remote_name or settings.file_name
        self.remote_backup_folder = remote_backup_folder
        self.clock = clock
        self.backups = BackupManager(settings.backup_path)
        self.merger = MergeEngine(codec)
        self.report = RoundReport()
        self._passphrase: Optional[str] = None

    def run(self) -> RoundReport:
        """Execute every state in order.

        Returns:
            Report of the completed round

        Raises:
            KdbxSyncError: The first failure, stamped with the failing state
        """
        if self.credentials is None:
            raise KdbxSyncError("no passphrase source configured")

        self.report = RoundReport()
        # Resolved before anything touches the disk; may block on the browser form.
        self._passphrase = self.credentials.get_passphrase()

        logger.info(f"Sync round for {self.settings.full_file_path} against {self.storage.name}")
        try:
            self._run_state(SyncState.BACKUP_LOCAL, self._backup_local)
            self._run_state(SyncState.BACKUP_REMOTE, self._backup_remote)
            self._run_state(SyncState.DOWNLOAD_REMOTE, self._download_remote)
            self._run_state(SyncState.MERGE, self._merge)
            self._run_state(SyncState.VERIFY_BACKUP, self._verify_backup)
            self._run_state(SyncState.PROMOTE, self._promote)
            self._run_state(SyncState.UPLOAD_REMOTE, self._upload_remote)
        finally:
            self._passphrase = None
            self.report.finished_at = datetime.now()

        self.report.states.append(StateResult(SyncState.DONE, 0.0))
        logger.info(f"Sync round completed in {self.report.duration:.2f}s")
        return self.report

    def upload(self) -> None:
        """Run only the upload state, e.g. to finish a round that stopped after promotion."""
        self._run_state(SyncState.UPLOAD_REMOTE, self._upload_remote)

    def _run_state(self, state: SyncState, action: Callable[[], None]) -> None:
        with TimedOperation(logger, state.value.replace('_', ' ')) as timer:
            try:
                action()
            except KdbxSyncError as e:
                if e.state is None:
                    e.state = state.value
                raise
            except OSError as e:
                raise LocalFileError(str(e), path=e.filename, state=state.value) from e
            except Exception as e:
                if state not in REMOTE_STATES:
                    raise
                raise RemoteError(f"{self.storage.name} failed: {e}", state=state.value) from e
        self.report.states.append(StateResult(state, timer.duration))

    def _backup_local(self) -> None:
        self.report.local_backup = self.backups.take_backup(self.settings.full_file_path, now=self.clock())

    def _backup_remote(self) -> None:
        snapshot = self.storage.backup_file(self.remote_name, self.remote_backup_folder, now=self.clock())
        self.report.remote_backup = snapshot.name

    def _download_remote(self) -> None:
        self.storage.download_file(self.remote_name, self.settings.remote_copy_path)

    def _merge(self) -> None:
        FileHelper.copy_durable(self.settings.full_file_path, self.settings.sync_file_path)
        self.report.merge = self.merger.merge_files(
            self.settings.full_file_path,
            self.settings.remote_copy_path,
            self.settings.sync_file_path,
            self._passphrase,
        )

    def _verify_backup(self) -> None:
        snapshot = self.backups.latest_backup()
        if self.report.local_backup is not None and snapshot.path != self.report.local_backup:
            logger.warning(f"Latest backup {snapshot.name} is not the snapshot taken by this round")
        if not equal_content(snapshot.path, self.settings.full_file_path):
            raise IntegrityError(
                "latest backup does not match the local database, refusing to replace it",
                path=snapshot.path,
            )
        logger.info(f"Backup {snapshot.name} matches {self.settings.file_name}")

    def _promote(self) -> None:
        steps = [
            ("remove_remote_copy", self.settings.remote_copy_path,
             lambda: os.remove(self.settings.remote_copy_path)),
            ("remove_original", self.settings.full_file_path,
             lambda: os.remove(self.settings.full_file_path)),
            ("rename_sync_file", self.settings.sync_file_path,
             lambda: os.rename(self.settings.sync_file_path, self.settings.full_file_path)),
        ]
        for step, path, action in steps:
            try:
                action()
            except OSError as e:
                raise PromotionError(f"can't {step.replace('_', ' ')}: {e}", step=step, path=path) from e
            logger.debug(f"Promotion step {step} done")

    def _upload_remote(self) -> None:
        try:
            self.storage.upload_file(self.remote_name, self.settings.full_file_path)
        except Exception as e:
            raise UploadPendingError(
                f"local database was promoted but {self.remote_name} on {self.storage.name} "
                f"was not updated ({e}); retry with `kdbx-sync upload`",
                path=self.settings.full_file_path,
            ) from e
