"""Synchronization engine: checksums, backups, merge and the commit protocol."""

from .backup_manager import BackupManager, BackupSnapshot
from .checksum import equal_content
from .merge import MergeEngine, MergeResult, merge_entries
from .protocol import RoundReport, SyncRound, SyncState

__all__ = [
    "BackupManager",
    "BackupSnapshot",
    "MergeEngine",
    "MergeResult",
    "RoundReport",
    "SyncRound",
    "SyncState",
    "equal_content",
    "merge_entries",
]
