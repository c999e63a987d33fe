"""Passphrase-encrypted vault format built on Fernet.

File layout::

    b"KSV1" | iterations (uint32, big endian) | salt (16 bytes) | Fernet token

The token decrypts to a JSON document holding the container metadata and the
entries. Protected field values are stored as inner Fernet tokens so they stay
opaque even inside the decrypted payload.
"""

import base64
import json
import os
import struct
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from dateutil import parser as date_parser

from ..exceptions import DecodeError, EncodeError
from .database import DatabaseCodec, DatabaseHandle
from .models import Entry, EntryField

MAGIC = b"KSV1"
SALT_SIZE = 16
HEADER = struct.Struct(">4sI16s")
FORMAT_VERSION = 1
MAX_ITERATIONS = 10_000_000


class VaultHandle(DatabaseHandle):
    """Handle for the vault format; ``meta`` is the container structure."""

    def __init__(self, entries: Iterable[Entry], passphrase: str, source: Optional[str] = None,
                 meta: Optional[Dict[str, Any]] = None):
        self.meta: Dict[str, Any] = dict(meta or {})
        super().__init__(entries, passphrase, source)


class FernetVaultCodec(DatabaseCodec):
    """Codec for ``KSV1`` vault files."""

    format_name = "vault"

    def __init__(self, iterations: int = 100000):
        """Initialize the codec.

        Args:
            iterations: PBKDF2 iterations used when encoding. Decoding always
                uses the count recorded in the file header,
                which must lie in 1..MAX_ITERATIONS.
        """
        self.iterations = iterations

    @staticmethod
    def derive_key(passphrase: str, salt: bytes, iterations: int) -> bytes:
        """Derive a Fernet key from a passphrase.

        Args:
            passphrase: Database passphrase
            salt: Random per-file salt
            iterations: PBKDF2 iteration count

        Returns:
            Base64 encoded 32-byte key
        """
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=iterations,
        )
        return base64.urlsafe_b64encode(kdf.derive(passphrase.encode('utf-8')))

    def create(self, passphrase: str, source: Optional[str] = None) -> VaultHandle:
        meta = {
            'name': 'kdbx-sync vault',
            'created': datetime.now(timezone.utc).isoformat(),
        }
        return VaultHandle([], passphrase, source=source, meta=meta)

    def decode(self, data: bytes, passphrase: str, source: Optional[str] = None) -> VaultHandle:
        if len(data) < HEADER.size or not data.startswith(MAGIC):
            raise DecodeError("can't initialize database: not a vault file", path=source)

        _, iterations, salt = HEADER.unpack(data[:HEADER.size])
        if not 1 <= iterations <= MAX_ITERATIONS:
            raise DecodeError(
                f"can't initialize database: corrupt header (iteration count {iterations})",
                path=source,
            )
        try:
            fernet = Fernet(self.derive_key(passphrase, salt, iterations))
        except (TypeError, ValueError) as e:
            raise DecodeError("can't initialize database: corrupt header", path=source) from e

        try:
            payload = json.loads(fernet.decrypt(data[HEADER.size:]).decode('utf-8'))
        except InvalidToken as e:
            raise DecodeError(
                "can't initialize database: wrong passphrase or corrupt file", path=source
            ) from e
        except (UnicodeDecodeError, ValueError) as e:
            raise DecodeError("can't initialize database: malformed payload", path=source) from e

        if not isinstance(payload, dict):
            raise DecodeError("can't initialize database: malformed payload", path=source)
        if payload.get('version') != FORMAT_VERSION:
            raise DecodeError(
                f"can't initialize database: unsupported vault version {payload.get('version')}",
                path=source,
            )

        try:
            entries = [self._entry_from_dict(item, fernet) for item in payload.get('entries', [])]
        except (InvalidToken, KeyError, ValueError, TypeError, AttributeError) as e:
            raise DecodeError("can't initialize database: malformed entry", path=source) from e

        return VaultHandle(entries, passphrase, source=source, meta=payload.get('meta', {}))

    def encode(self, handle: DatabaseHandle) -> bytes:
        if not isinstance(handle, VaultHandle):
            raise EncodeError(
                f"can't encode {type(handle).__name__} as a vault file", path=handle.source
            )

        salt = os.urandom(SALT_SIZE)
        fernet = Fernet(self.derive_key(handle.passphrase, salt, self.iterations))

        try:
            payload = {
                'version': FORMAT_VERSION,
                'meta': handle.meta,
                'entries': [self._entry_to_dict(entry, handle, fernet) for entry in handle.entries],
            }
            token = fernet.encrypt(json.dumps(payload, ensure_ascii=False).encode('utf-8'))
        except (InvalidToken, TypeError, ValueError) as e:
            raise EncodeError("can't encode vault database", path=handle.source) from e

        return HEADER.pack(MAGIC, self.iterations, salt) + token

    @staticmethod
    def _entry_from_dict(item: Dict[str, Any], fernet: Fernet) -> Entry:
        fields = []
        for raw in item.get('fields', []):
            value = raw.get('value')
            protected = bool(raw.get('protected', False))
            if protected and value is not None:
                value = fernet.decrypt(value.encode('ascii')).decode('utf-8')
            fields.append(EntryField(key=raw['key'], value=value, protected=protected))

        last_modified = None
        if item.get('last_modified'):
            last_modified = date_parser.isoparse(item['last_modified'])
            if last_modified.tzinfo is None:
                last_modified = last_modified.replace(tzinfo=timezone.utc)

        return Entry(uuid=uuid.UUID(hex=item['uuid']), fields=fields, last_modified=last_modified)

    @staticmethod
    def _entry_to_dict(entry: Entry, handle: DatabaseHandle, fernet: Fernet) -> Dict[str, Any]:
        fields = []
        for entry_field in entry.fields:
            value = handle.reveal(entry_field)
            if entry_field.protected and value is not None:
                value = fernet.encrypt(value.encode('utf-8')).decode('ascii')
            fields.append({'key': entry_field.key, 'value': value, 'protected': entry_field.protected})

        return {
            'uuid': entry.uuid_key,
            'last_modified': entry.last_modified.isoformat() if entry.last_modified else None,
            'fields': fields,
        }
