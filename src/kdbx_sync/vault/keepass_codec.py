"""KeePass (.kdbx) codec backed by pykeepass.

Only the entries of the root group take part in synchronization. Entries keep
their XML element as ``native`` so a whole-entry selection carries history,
icons, attachments references and times along unchanged.

Attachment references are not remapped: an entry taken from another database
keeps the ``Binary Ref`` indices of that database's attachment pool.
"""

import io
import logging
from datetime import timezone
from typing import List, Optional

from pykeepass import PyKeePass, create_database
from pykeepass.exceptions import CredentialsError

from ..exceptions import DecodeError, EncodeError
from .database import DatabaseCodec, DatabaseHandle
from .models import Entry, EntryField

logger = logging.getLogger(__name__)


class KeePassHandle(DatabaseHandle):
    """Handle wrapping a :class:`pykeepass.PyKeePass` instance.

    The ``Entry.fields`` of a KeePass handle are a read view over the XML
    elements; the elements themselves are what gets written back. While the
    handle is locked the protected ``Value`` texts of those elements are
    blanked, and they are filled in again from the sealed fields on unlock
    and for the duration of :meth:`KeePassCodec.encode`.
    """

    def __init__(self, kp: PyKeePass, passphrase: str, source: Optional[str] = None):
        self.kp = kp
        entries = [_entry_from_native(item) for item in kp.root_group.entries]
        super().__init__(entries, passphrase, source)

    def _entries_replaced(self, entries: List[Entry]) -> None:
        group = self.kp.root_group._element
        for element in group.findall('Entry'):
            group.remove(element)

        # entries precede subgroups inside a KeePass group element
        subgroups = group.findall('Group')
        position = list(group).index(subgroups[0]) if subgroups else len(group)
        for offset, entry in enumerate(entries):
            if entry.native is None:
                raise ValueError(f"Entry {entry.uuid_key} has no KeePass element to write")
            group.insert(position + offset, entry.native)

    def lock_protected(self) -> None:
        super().lock_protected()
        self._write_protected_values(revealed=False)

    def unlock_protected(self) -> None:
        super().unlock_protected()
        self._write_protected_values(revealed=True)

    def _write_protected_values(self, revealed: bool) -> None:
        for entry in self._entries:
            if entry.native is None:
                continue
            for string in entry.native.findall('String'):
                value_element = string.find('Value')
                if value_element is None or value_element.get('Protected') != 'True':
                    continue
                entry_field = entry.get_field(string.findtext('Key'))
                if entry_field is not None:
                    value_element.text = self.reveal(entry_field) if revealed else None


def _entry_from_native(item) -> Entry:
    element = item._element
    fields = []
    for string in element.findall('String'):
        key = string.findtext('Key')
        value_element = string.find('Value')
        if key is None or value_element is None:
            continue
        fields.append(EntryField(
            key=key,
            value=value_element.text or "",
            protected=value_element.get('Protected') == 'True',
        ))

    try:
        last_modified = item.mtime
    except (AttributeError, ValueError):
        last_modified = None
    if last_modified is not None and last_modified.tzinfo is None:
        last_modified = last_modified.replace(tzinfo=timezone.utc)

    return Entry(uuid=item.uuid, fields=fields, last_modified=last_modified, native=element)


class KeePassCodec(DatabaseCodec):
    """Codec for KeePass 3.x/4.x databases protected by a passphrase."""

    format_name = "keepass"

    def create(self, passphrase: str, source: Optional[str] = None) -> KeePassHandle:
        kp = create_database(io.BytesIO(), password=passphrase)
        return KeePassHandle(kp, passphrase, source=source)

    def decode(self, data: bytes, passphrase: str, source: Optional[str] = None) -> KeePassHandle:
        try:
            kp = PyKeePass(io.BytesIO(data), password=passphrase)
        except CredentialsError as e:
            raise DecodeError("can't initialize database: wrong passphrase", path=source) from e
        except Exception as e:
            # pykeepass surfaces corrupt input through many parser exception types
            raise DecodeError(f"can't initialize database: {e}", path=source) from e

        logger.debug(f"Decoded KeePass database {source} ({len(kp.root_group.entries)} root entries)")
        return KeePassHandle(kp, passphrase, source=source)

    def encode(self, handle: DatabaseHandle) -> bytes:
        if not isinstance(handle, KeePassHandle):
            raise EncodeError(
                f"can't encode {type(handle).__name__} as a KeePass database", path=handle.source
            )

        buffer = io.BytesIO()
        handle._write_protected_values(revealed=True)
        try:
            handle.kp.password = handle.passphrase
            handle.kp.save(buffer)
        except Exception as e:
            raise EncodeError(f"can't encode KeePass database: {e}", path=handle.source) from e
        finally:
            if handle.is_locked:
                handle._write_protected_values(revealed=False)
        return buffer.getvalue()
