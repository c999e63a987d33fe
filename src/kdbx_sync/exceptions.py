"""Error taxonomy for the synchronization engine.

Every component raises a subclass of :class:`KdbxSyncError`. The commit protocol
stamps the failing state (and the path involved, when known) onto the error before
re-raising it, so the CLI can print the whole causal chain and exit non-zero.
"""

from pathlib import Path
from typing import Optional, Union


class KdbxSyncError(Exception):
    """Base class for all kdbx-sync failures."""

    def __init__(
        self,
        message: str,
        path: Optional[Union[str, Path]] = None,
        state: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.path = str(path) if path is not None else None
        self.state = state

    def __str__(self) -> str:
        parts = [self.message]
        if self.path:
            parts.append(f"(path: {self.path})")
        if self.state:
            parts.append(f"[state: {self.state}]")
        return " ".join(parts)


class ConfigurationError(KdbxSyncError):
    """Missing or invalid configuration."""


class InputError(KdbxSyncError):
    """Bad passphrase or a corrupt/unreadable database. Safe to retry after fixing input."""


class DecodeError(InputError):
    """A database file could not be decoded with the given passphrase."""


class EncodeError(KdbxSyncError):
    """A database handle could not be serialized."""


class LocalFileError(KdbxSyncError):
    """A filesystem operation on a local path failed."""


class SaveError(LocalFileError):
    """The merged database could not be written and flushed to disk."""


class BackupNotFoundError(LocalFileError):
    """The backup directory holds no usable snapshot."""


class PromotionError(LocalFileError):
    """One of the promote sub-steps failed."""

    def __init__(self, message: str, step: str, path: Optional[Union[str, Path]] = None,
                 state: Optional[str] = None):
        super().__init__(message, path=path, state=state)
        self.step = step


class IntegrityError(KdbxSyncError):
    """The latest backup does not match the local database. Needs operator review."""


class RemoteError(KdbxSyncError):
    """A remote storage operation failed."""


class RemoteNotFoundError(RemoteError):
    """The requested remote object does not exist."""


class UploadPendingError(RemoteError):
    """The local database was promoted but the remote copy was not updated."""


class CredentialError(KdbxSyncError):
    """A passphrase or authorization code could not be obtained."""


class CallbackError(CredentialError):
    """The interactive callback delivered an error instead of a value."""


class ListenerError(CallbackError):
    """The local callback listener failed to bind or serve."""
