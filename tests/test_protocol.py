"""Tests for the sync round state machine."""

import os
import uuid
from datetime import datetime
from unittest.mock import patch

import pytest

from kdbx_sync.exceptions import (
    DecodeError,
    IntegrityError,
    LocalFileError,
    PromotionError,
    RemoteError,
    RemoteNotFoundError,
    UploadPendingError,
)
from kdbx_sync.sync.protocol import SyncRound, SyncState


@pytest.fixture
def populated(sync_env, make_entry, timestamp, write_vault):
    """Local and remote databases sharing one entry that was edited remotely."""
    shared = uuid.uuid4()
    write_vault(sync_env.settings.full_file_path, [
        make_entry("A", timestamp(10), password="local-a", entry_uuid=shared),
        make_entry("B", timestamp(5), password="local-b"),
    ])
    write_vault(sync_env.remote_path, [
        make_entry("A", timestamp(20), password="remote-a", entry_uuid=shared),
        make_entry("C", timestamp(1), password="remote-c"),
    ])
    return sync_env


def make_round(env, codec, **kwargs):
    return SyncRound(env.settings, env.storage, codec, env.credentials,
                     clock=lambda: datetime(2024, 6, 1, 9, 30, 0), **kwargs)


def passwords(handle):
    return sorted(entry.get("Password") for entry in handle.entries)


class TestFullRound:

    def test_round_merges_promotes_and_uploads(self, populated, codec, read_vault):
        report = make_round(populated, codec).run()

        assert report.completed
        assert [r.state for r in report.states] == [
            SyncState.BACKUP_LOCAL,
            SyncState.BACKUP_REMOTE,
            SyncState.DOWNLOAD_REMOTE,
            SyncState.MERGE,
            SyncState.VERIFY_BACKUP,
            SyncState.PROMOTE,
            SyncState.UPLOAD_REMOTE,
            SyncState.DONE,
        ]
        expected = ["local-b", "remote-a", "remote-c"]
        assert passwords(read_vault(populated.settings.full_file_path)) == expected
        assert passwords(read_vault(populated.remote_path)) == expected
        assert report.merge.summary()['total'] == 3

    def test_scratch_files_are_gone(self, populated, codec):
        make_round(populated, codec).run()

        assert not populated.settings.remote_copy_path.exists()
        assert not populated.settings.sync_file_path.exists()
        assert populated.settings.full_file_path.exists()

    def test_both_sides_are_backed_up(self, populated, codec):
        original_local = populated.settings.full_file_path.read_bytes()
        original_remote = populated.remote_path.read_bytes()

        report = make_round(populated, codec).run()

        assert report.local_backup.read_bytes() == original_local
        assert report.remote_backup == "2024-06-01T09:30:00-passwords.kdbx"
        assert (populated.remote_dir / "Backups" / report.remote_backup).read_bytes() == original_remote

    def test_passphrase_resolved_once(self, populated, codec):
        make_round(populated, codec).run()

        assert populated.credentials.calls == 1

    def test_custom_remote_name(self, populated, codec, read_vault):
        os.rename(populated.remote_path, populated.remote_dir / "shared.kdbx")

        make_round(populated, codec, remote_name="shared.kdbx").run()

        assert passwords(read_vault(populated.remote_dir / "shared.kdbx")) == [
            "local-b", "remote-a", "remote-c",
        ]


class TestAbortedRounds:

    def test_missing_local_database(self, sync_env, codec):
        with pytest.raises(LocalFileError) as exc_info:
            make_round(sync_env, codec).run()

        assert exc_info.value.state == SyncState.BACKUP_LOCAL.value

    def test_missing_remote_database(self, populated, codec):
        original = populated.settings.full_file_path.read_bytes()
        populated.remote_path.unlink()

        with pytest.raises(RemoteNotFoundError) as exc_info:
            make_round(populated, codec).run()

        assert exc_info.value.state == SyncState.BACKUP_REMOTE.value
        assert populated.settings.full_file_path.read_bytes() == original

    def test_decode_failure_happens_before_destructive_steps(self, populated, codec, make_entry,
                                                             write_vault):
        write_vault(populated.remote_path, [make_entry("X")], passphrase="someone else's")
        original = populated.settings.full_file_path.read_bytes()

        with pytest.raises(DecodeError) as exc_info:
            make_round(populated, codec).run()

        assert exc_info.value.state == SyncState.MERGE.value
        assert populated.settings.full_file_path.read_bytes() == original
        assert populated.settings.remote_copy_path.exists()

    def test_backup_mismatch_blocks_promotion(self, populated, codec):
        sync_round = make_round(populated, codec)
        original_merge = sync_round._merge

        def merge_then_tamper():
            original_merge()
            latest = sync_round.backups.latest_backup()
            latest.path.write_bytes(b"tampered")

        sync_round._merge = merge_then_tamper
        original = populated.settings.full_file_path.read_bytes()

        with pytest.raises(IntegrityError) as exc_info:
            sync_round.run()

        assert exc_info.value.state == SyncState.VERIFY_BACKUP.value
        assert populated.settings.full_file_path.read_bytes() == original
        assert populated.settings.remote_copy_path.exists()
        assert populated.settings.sync_file_path.exists()

    def test_promotion_failure_names_the_step(self, populated, codec):
        sync_round = make_round(populated, codec)
        real_rename = os.rename

        def failing_rename(src, dst):
            if str(src) == str(populated.settings.sync_file_path):
                raise PermissionError(13, "Permission denied", str(src))
            return real_rename(src, dst)

        with patch("kdbx_sync.sync.protocol.os.rename", side_effect=failing_rename):
            with pytest.raises(PromotionError) as exc_info:
                sync_round.run()

        assert exc_info.value.step == "rename_sync_file"
        assert exc_info.value.state == SyncState.PROMOTE.value
        assert not populated.settings.remote_copy_path.exists()
        assert populated.settings.sync_file_path.exists()

    def test_upload_failure_is_reported_as_pending(self, populated, codec, read_vault):
        sync_round = make_round(populated, codec)

        with patch.object(populated.storage, "upload_replacing",
                          side_effect=RemoteError("quota exceeded")):
            with pytest.raises(UploadPendingError) as exc_info:
                sync_round.run()

        error = exc_info.value
        assert isinstance(error, RemoteError)
        assert error.state == SyncState.UPLOAD_REMOTE.value
        assert "kdbx-sync upload" in str(error)
        assert isinstance(error.__cause__, RemoteError)
        # local side already promoted
        assert passwords(read_vault(populated.settings.full_file_path)) == [
            "local-b", "remote-a", "remote-c",
        ]

    def test_upload_can_be_retried(self, populated, codec):
        with patch.object(populated.storage, "upload_replacing", side_effect=RemoteError("offline")):
            with pytest.raises(UploadPendingError):
                make_round(populated, codec).run()

        SyncRound(populated.settings, populated.storage, codec).upload()

        assert populated.remote_path.read_bytes() == populated.settings.full_file_path.read_bytes()

    def test_unexpected_backend_error_becomes_remote_error(self, populated, codec):
        with patch.object(populated.storage, "copy_as", side_effect=RuntimeError("socket closed")):
            with pytest.raises(RemoteError) as exc_info:
                make_round(populated, codec).run()

        assert exc_info.value.state == SyncState.BACKUP_REMOTE.value


class TestScratchFileCollision:

    def test_merge_never_truncates_the_database(self, populated, codec):
        original = populated.settings.full_file_path.read_bytes()
        populated.settings = populated.settings.copy(update={"sync_db_name": "passwords.kdbx"})

        with pytest.raises(LocalFileError) as excinfo:
            make_round(populated, codec).run()

        assert excinfo.value.state == SyncState.MERGE.value
        assert populated.settings.full_file_path.read_bytes() == original
