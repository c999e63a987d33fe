"""Decoded database handles and the codec interface that produces them."""

import copy
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

from .models import Entry, EntryField, ProtectedValueCipher


class DatabaseHandle:
    """An in-memory decoded database.

    Handles start locked: protected field values are sealed until
    :meth:`unlock_protected` is called. Codecs subclass this to keep whatever
    container structure they need to re-encode the database.
    """

    def __init__(self, entries: Iterable[Entry], passphrase: str, source: Optional[str] = None):
        self._entries: List[Entry] = list(entries)
        self.passphrase = passphrase
        self.source = source
        self._cipher = ProtectedValueCipher()
        self._locked = False
        self.lock_protected()

    @property
    def entries(self) -> List[Entry]:
        return self._entries

    @property
    def is_locked(self) -> bool:
        return self._locked

    def replace_entries(self, entries: Iterable[Entry]) -> None:
        """Make this handle's entry collection equal to ``entries``.

        Entries are deep-copied so the handles they came from are left untouched.
        Protected values must be readable, i.e. the source handles unlocked.
        The handle is unlocked afterwards since the copies hold plain text.
        """
        copies = []
        for entry in entries:
            if any(f.is_sealed for f in entry.fields):
                raise ValueError(f"Entry {entry.uuid_key} is sealed by another handle; unlock it first")
            copies.append(copy.deepcopy(entry))
        self._entries = copies
        self._locked = False
        self._entries_replaced(copies)

    def _entries_replaced(self, entries: List[Entry]) -> None:
        """Hook for codecs that mirror entries into a native structure."""

    def lock_protected(self) -> None:
        for entry in self._entries:
            for entry_field in entry.fields:
                self._cipher.seal(entry_field)
        self._locked = True

    def unlock_protected(self) -> None:
        for entry in self._entries:
            for entry_field in entry.fields:
                self._cipher.unseal(entry_field)
        self._locked = False

    def reveal(self, entry_field: EntryField) -> Optional[str]:
        """Plain-text value of one of this handle's fields, for encoding."""
        return self._cipher.reveal(entry_field)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        state = "locked" if self._locked else "unlocked"
        return f"<{self.__class__.__name__} {self.source or '<memory>'} entries={len(self._entries)} {state}>"


class DatabaseCodec(ABC):
    """Turns encrypted database bytes into handles and back."""

    #: short name used in configuration
    format_name = ""

    @abstractmethod
    def decode(self, data: bytes, passphrase: str, source: Optional[str] = None) -> DatabaseHandle:
        """Decode and decrypt a database file.

        Raises:
            DecodeError: wrong passphrase or corrupt file
        """

    @abstractmethod
    def encode(self, handle: DatabaseHandle) -> bytes:
        """Encrypt and serialize a handle.

        Raises:
            EncodeError: the handle cannot be serialized
        """

    @abstractmethod
    def create(self, passphrase: str, source: Optional[str] = None) -> DatabaseHandle:
        """Create an empty database handle."""
