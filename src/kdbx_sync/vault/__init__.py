"""Encrypted password database codecs and in-memory handles."""

from ..exceptions import ConfigurationError
from .database import DatabaseCodec, DatabaseHandle
from .fernet_codec import FernetVaultCodec, VaultHandle
from .models import Entry, EntryField


def create_codec(format_name: str, **options) -> DatabaseCodec:
    """Build the codec for a configured database format.

    Args:
        format_name: ``keepass`` or ``vault``
        **options: Codec specific options (e.g. ``iterations`` for ``vault``)

    Returns:
        Codec instance
    """
    if format_name == "vault":
        return FernetVaultCodec(**options)
    if format_name == "keepass":
        from .keepass_codec import KeePassCodec
        return KeePassCodec()
    raise ConfigurationError(f"Unknown database format: {format_name}")


__all__ = [
    "DatabaseCodec",
    "DatabaseHandle",
    "Entry",
    "EntryField",
    "FernetVaultCodec",
    "VaultHandle",
    "create_codec",
]
