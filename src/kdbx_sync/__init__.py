"""
KeePass Database Sync

Keeps a local encrypted password database synchronized with a copy on a
cloud drive. Every round snapshots both sides, merges entries by UUID and
only replaces the local file after the snapshot has been verified.
"""

__version__ = "1.0.0"
__author__ = "kdbx-sync"
__description__ = "Sync an encrypted password database with a cloud drive copy"

from .config.settings import SyncConfig
from .sync.protocol import SyncRound

__all__ = ["SyncConfig", "SyncRound"]
