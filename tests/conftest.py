"""Shared fixtures: a fast vault codec, entry builders and a local sync layout."""

import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from types import SimpleNamespace

import pytest

from kdbx_sync.config.settings import DatabaseSettings
from kdbx_sync.storage.local import LocalMirrorStorage
from kdbx_sync.vault.fernet_codec import FernetVaultCodec
from kdbx_sync.vault.models import Entry

PASSPHRASE = "correct horse battery staple"
EPOCH = datetime(2024, 1, 1, tzinfo=timezone.utc)


def at(seconds):
    """Timestamp ``seconds`` after a fixed epoch."""
    return EPOCH + timedelta(seconds=seconds)


class FakeCredentials:
    """Passphrase source that counts how often it was asked."""

    def __init__(self, passphrase=PASSPHRASE):
        self.passphrase = passphrase
        self.calls = 0

    def get_passphrase(self):
        self.calls += 1
        return self.passphrase


@pytest.fixture
def codec():
    return FernetVaultCodec(iterations=1000)


@pytest.fixture
def make_entry():
    def _make(title, modified=None, password="secret", entry_uuid=None):
        entry = Entry(uuid=entry_uuid or uuid.uuid4(), last_modified=modified)
        entry.set("Title", title)
        entry.set("UserName", f"{title.lower()}@example.com")
        entry.set("Password", password, protected=True)
        return entry
    return _make


@pytest.fixture
def write_vault(codec):
    """Write a vault file holding ``entries`` and return its path."""
    def _write(path, entries, passphrase=PASSPHRASE):
        path = Path(path)
        handle = codec.create(passphrase, source=str(path))
        handle.replace_entries(entries)
        handle.lock_protected()
        path.write_bytes(codec.encode(handle))
        return path
    return _write


@pytest.fixture
def read_vault(codec):
    """Decode a vault file and return an unlocked handle."""
    def _read(path, passphrase=PASSPHRASE):
        handle = codec.decode(Path(path).read_bytes(), passphrase, source=str(path))
        handle.unlock_protected()
        return handle
    return _read


@pytest.fixture
def sync_env(tmp_path):
    """Local database directory plus a local mirror acting as the remote."""
    local_dir = tmp_path / "local"
    remote_dir = tmp_path / "remote"
    local_dir.mkdir()
    remote_dir.mkdir()
    settings = DatabaseSettings(directory=str(local_dir), file_name="passwords.kdbx", format="vault")
    return SimpleNamespace(
        settings=settings,
        local_dir=local_dir,
        remote_dir=remote_dir,
        remote_path=remote_dir / settings.file_name,
        storage=LocalMirrorStorage(remote_dir),
        credentials=FakeCredentials(),
    )


@pytest.fixture
def passphrase():
    return PASSPHRASE


@pytest.fixture
def timestamp():
    """Build timestamps relative to a fixed epoch."""
    return at
