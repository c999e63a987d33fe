"""Three-way entry merge between the local database and a remote copy.

Entries are correlated by UUID only. For a UUID present on both sides the
whole entry with the strictly later modification time wins; equal or missing
timestamps keep the local entry. Entries present on one side only are carried
through, so a deletion on one side is resurrected from the other.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Union

from ..exceptions import DecodeError, EncodeError, LocalFileError, SaveError
from ..utils.file_utils import FileHelper
from ..vault.database import DatabaseCodec, DatabaseHandle
from ..vault.models import Entry

logger = logging.getLogger(__name__)


@dataclass
class MergeResult:
    """Merged entries split into the three groups they were drawn from."""
    common: List[Entry] = field(default_factory=list)
    local_only: List[Entry] = field(default_factory=list)
    remote_only: List[Entry] = field(default_factory=list)
    remote_wins: int = 0

    @property
    def entries(self) -> List[Entry]:
        """Output collection: common, then local-only, then remote-only."""
        return self.common + self.local_only + self.remote_only

    def __len__(self) -> int:
        return len(self.common) + len(self.local_only) + len(self.remote_only)

    def summary(self) -> Dict[str, int]:
        return {
            'common': len(self.common),
            'local_only': len(self.local_only),
            'remote_only': len(self.remote_only),
            'remote_wins': self.remote_wins,
            'total': len(self),
        }


def index_by_uuid(entries: Iterable[Entry]) -> Dict[str, Entry]:
    """Map fixed-width hex UUIDs to entries (a repeated UUID keeps the last entry)."""
    return {entry.uuid_key: entry for entry in entries}


def is_newer(candidate: Entry, current: Entry) -> bool:
    """True only if both timestamps are set and ``candidate``'s is strictly later."""
    if candidate.last_modified is None or current.last_modified is None:
        return False
    return candidate.last_modified > current.last_modified


def merge_entries(local_entries: Iterable[Entry], remote_entries: Iterable[Entry]) -> MergeResult:
    """Compute the union of two entry collections keyed by UUID.

    Args:
        local_entries: Entries of the local database
        remote_entries: Entries of the downloaded remote copy

    Returns:
        MergeResult whose ``entries`` cover every UUID exactly once
    """
    local_map = index_by_uuid(local_entries)
    remote_map = index_by_uuid(remote_entries)
    result = MergeResult()

    for key, local_entry in local_map.items():
        remote_entry = remote_map.get(key)
        if remote_entry is None:
            result.local_only.append(local_entry)
        elif is_newer(remote_entry, local_entry):
            result.common.append(remote_entry)
            result.remote_wins += 1
        else:
            result.common.append(local_entry)

    for key, remote_entry in remote_map.items():
        if key not in local_map:
            result.remote_only.append(remote_entry)

    return result


class MergeEngine:
    """Decode local, remote copy and scratch databases and write the merge into scratch."""

    def __init__(self, codec: DatabaseCodec):
        self.codec = codec

    def _decode(self, file_path: Path, passphrase: str, label: str) -> DatabaseHandle:
        try:
            data = file_path.read_bytes()
        except OSError as e:
            raise LocalFileError(f"can't open {label} database file: {e}", path=file_path) from e
        try:
            return self.codec.decode(data, passphrase, source=str(file_path))
        except DecodeError as e:
            raise DecodeError(f"can't initialize {label} database: {e.message}", path=file_path) from e

    def merge_files(
        self,
        local_path: Union[str, Path],
        remote_copy_path: Union[str, Path],
        sync_path: Union[str, Path],
        passphrase: str,
    ) -> MergeResult:
        """Merge ``local_path`` and ``remote_copy_path`` into the scratch file at ``sync_path``.

        The scratch file must already hold a copy of the local database; its
        container structure is kept and only its entries are replaced. On
        return the scratch file has been encoded and flushed to disk.

        Raises:
            DecodeError: One of the three files can't be decoded
            SaveError: The scratch database can't be encoded or written
        """
        local_path, remote_copy_path, sync_path = Path(local_path), Path(remote_copy_path), Path(sync_path)

        local = self._decode(local_path, passphrase, "local")
        remote_copy = self._decode(remote_copy_path, passphrase, "remote copy")
        scratch = self._decode(sync_path, passphrase, "sync")

        local.unlock_protected()
        remote_copy.unlock_protected()
        try:
            result = merge_entries(local.entries, remote_copy.entries)
            scratch.replace_entries(result.entries)
        finally:
            local.lock_protected()
            remote_copy.lock_protected()

        scratch.lock_protected()
        self.save(scratch, sync_path)

        logger.info(
            f"Merged {len(result)} entries ({len(result.common)} common, "
            f"{len(result.local_only)} local only, {len(result.remote_only)} remote only, "
            f"{result.remote_wins} updated from remote)"
        )
        return result

    def save(self, handle: DatabaseHandle, file_path: Union[str, Path]) -> None:
        """Encode a handle and flush it to ``file_path``.

        Raises:
            SaveError: Encoding or writing failed
        """
        try:
            data = self.codec.encode(handle)
        except EncodeError as e:
            raise SaveError(f"can't save sync database: {e.message}", path=file_path) from e
        try:
            FileHelper.write_durable(file_path, data)
        except OSError as e:
            raise SaveError(f"can't save sync database: {e}", path=file_path) from e
