"""Tests for the vault codec and handle locking."""

import json

import pytest
from cryptography.fernet import Fernet

from kdbx_sync.exceptions import ConfigurationError, DecodeError, EncodeError
from kdbx_sync.vault import create_codec
from kdbx_sync.vault.database import DatabaseHandle
from kdbx_sync.vault.fernet_codec import HEADER, MAGIC, MAX_ITERATIONS, FernetVaultCodec


class TestFernetVaultCodec:

    def test_entries_survive_encoding(self, codec, make_entry, timestamp, passphrase):
        entry = make_entry("Mail", timestamp(42), password="hunter2")
        handle = codec.create(passphrase)
        handle.replace_entries([entry])

        decoded = codec.decode(codec.encode(handle), passphrase)
        decoded.unlock_protected()

        [result] = decoded.entries
        assert result.uuid == entry.uuid
        assert result.last_modified == timestamp(42)
        assert result.get("Password") == "hunter2"
        assert result.get_field("Password").protected
        assert not result.get_field("Title").protected

    def test_header_records_iterations(self, passphrase):
        data = FernetVaultCodec(iterations=1234).encode(FernetVaultCodec().create(passphrase))

        magic, iterations, _ = HEADER.unpack(data[:HEADER.size])
        assert magic == MAGIC
        assert iterations == 1234

    def test_protected_values_are_not_in_plain_payload(self, codec, make_entry, passphrase):
        handle = codec.create(passphrase)
        handle.replace_entries([make_entry("Bank", password="very-secret-value")])
        data = codec.encode(handle)

        _, iterations, salt = HEADER.unpack(data[:HEADER.size])
        payload = Fernet(codec.derive_key(passphrase, salt, iterations)).decrypt(data[HEADER.size:])

        assert b"very-secret-value" not in payload
        assert json.loads(payload)["entries"][0]["fields"][0]["value"] == "Bank"

    def test_wrong_passphrase(self, codec, passphrase):
        data = codec.encode(codec.create(passphrase))

        with pytest.raises(DecodeError, match="wrong passphrase"):
            codec.decode(data, "not the passphrase")

    def test_not_a_vault(self, codec, passphrase):
        with pytest.raises(DecodeError, match="not a vault file"):
            codec.decode(b"KDBX....", passphrase, source="x.kdbx")

    @pytest.mark.parametrize("iterations", [0, MAX_ITERATIONS + 1, 0xFFFFFFFF])
    def test_corrupt_iteration_count(self, codec, passphrase, iterations):
        data = HEADER.pack(MAGIC, iterations, b"\0" * 16) + b"garbage"

        with pytest.raises(DecodeError, match="corrupt header"):
            codec.decode(data, passphrase, source="x.kdbx")

    def test_entry_of_wrong_shape(self, codec, passphrase):
        salt = b"\1" * 16
        fernet = Fernet(codec.derive_key(passphrase, salt, codec.iterations))
        payload = json.dumps({"version": 1, "entries": ["not-an-object"]}).encode("utf-8")
        data = HEADER.pack(MAGIC, codec.iterations, salt) + fernet.encrypt(payload)

        with pytest.raises(DecodeError, match="malformed entry"):
            codec.decode(data, passphrase)

    def test_encode_rejects_foreign_handle(self, codec):
        with pytest.raises(EncodeError):
            codec.encode(DatabaseHandle([], "pass"))


class TestHandleLocking:

    def test_decoded_handle_starts_locked(self, codec, make_entry, passphrase):
        handle = codec.create(passphrase)
        handle.replace_entries([make_entry("A", password="pw")])
        decoded = codec.decode(codec.encode(handle), passphrase)

        assert decoded.is_locked
        password = decoded.entries[0].get_field("Password")
        assert password.value is None
        assert password.is_sealed
        assert decoded.entries[0].get("Title") == "A"

    def test_unlock_restores_plain_text(self, codec, make_entry, passphrase):
        handle = codec.create(passphrase)
        handle.replace_entries([make_entry("A", password="pw")])
        handle.lock_protected()

        handle.unlock_protected()

        assert not handle.is_locked
        assert handle.entries[0].get("Password") == "pw"

    def test_replace_entries_refuses_sealed_entries(self, codec, make_entry, passphrase):
        source = codec.create(passphrase)
        source.replace_entries([make_entry("A")])
        source.lock_protected()

        with pytest.raises(ValueError, match="sealed"):
            codec.create(passphrase).replace_entries(source.entries)

    def test_replace_entries_copies(self, codec, make_entry, passphrase):
        entry = make_entry("A", password="pw")
        handle = codec.create(passphrase)
        handle.replace_entries([entry])

        handle.lock_protected()

        assert entry.get("Password") == "pw"


class TestCreateCodec:

    def test_vault_options(self):
        codec = create_codec("vault", iterations=10)

        assert isinstance(codec, FernetVaultCodec)
        assert codec.iterations == 10

    def test_unknown_format(self):
        with pytest.raises(ConfigurationError):
            create_codec("zip")
