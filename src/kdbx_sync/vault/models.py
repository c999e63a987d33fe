"""In-memory model of password database entries."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, List, Optional

from cryptography.fernet import Fernet


@dataclass
class EntryField:
    """One key/value pair of an entry.

    A protected field holds its plain text in ``value`` only while the owning
    handle is unlocked; when locked, ``value`` is None and ``sealed`` holds the
    token produced by the handle's :class:`ProtectedValueCipher`.
    """
    key: str
    value: Optional[str] = None
    protected: bool = False
    sealed: Optional[bytes] = None

    @property
    def is_sealed(self) -> bool:
        return self.sealed is not None


@dataclass
class Entry:
    """One password record, identified across databases by its UUID only."""
    uuid: uuid.UUID
    fields: List[EntryField] = field(default_factory=list)
    last_modified: Optional[datetime] = None
    native: Any = None  # codec-specific representation (e.g. KeePass XML element)

    @property
    def uuid_key(self) -> str:
        """Fixed-width hex rendering used as the correlation key."""
        return self.uuid.hex

    def get_field(self, key: str) -> Optional[EntryField]:
        for entry_field in self.fields:
            if entry_field.key == key:
                return entry_field
        return None

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """Return a field's plain-text value (None while it is sealed)."""
        entry_field = self.get_field(key)
        if entry_field is None:
            return default
        return entry_field.value

    def set(self, key: str, value: str, protected: bool = False) -> None:
        entry_field = self.get_field(key)
        if entry_field is None:
            self.fields.append(EntryField(key=key, value=value, protected=protected))
        else:
            entry_field.value = value
            entry_field.protected = protected
            entry_field.sealed = None

    @property
    def title(self) -> Optional[str]:
        return self.get("Title")

    def touch(self, when: Optional[datetime] = None) -> None:
        """Mark the entry as modified now (or at ``when``)."""
        self.last_modified = when or datetime.now(timezone.utc)


class ProtectedValueCipher:
    """Seals protected field values with a random key that never leaves memory."""

    def __init__(self):
        self._fernet = Fernet(Fernet.generate_key())

    def seal(self, entry_field: EntryField) -> None:
        if not entry_field.protected or entry_field.is_sealed or entry_field.value is None:
            return
        entry_field.sealed = self._fernet.encrypt(entry_field.value.encode('utf-8'))
        entry_field.value = None

    def unseal(self, entry_field: EntryField) -> None:
        if not entry_field.is_sealed:
            return
        entry_field.value = self._fernet.decrypt(entry_field.sealed).decode('utf-8')
        entry_field.sealed = None

    def reveal(self, entry_field: EntryField) -> Optional[str]:
        """Plain text of a field without changing its lock state."""
        if entry_field.is_sealed:
            return self._fernet.decrypt(entry_field.sealed).decode('utf-8')
        return entry_field.value
