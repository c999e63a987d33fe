"""Tests for the S3 and OneDrive backends with mocked clients."""

from datetime import datetime
from unittest.mock import MagicMock, Mock

import pytest
from botocore.exceptions import ClientError

from kdbx_sync.exceptions import RemoteError, RemoteNotFoundError
from kdbx_sync.storage.onedrive import GRAPH_ROOT, OneDriveStorage
from kdbx_sync.storage.s3 import S3Storage


@pytest.fixture
def s3():
    client = MagicMock()
    auth = Mock()
    auth.get_s3_client.return_value = client
    return S3Storage(auth, "vault-bucket", prefix="keepass"), client


class TestS3Storage:

    def test_find_by_name(self, s3):
        storage, client = s3
        client.head_object.return_value = {"ContentType": "application/octet-stream"}

        found = storage.find_by_name("passwords.kdbx")

        assert found.id == "keepass/passwords.kdbx"
        client.head_object.assert_called_once_with(Bucket="vault-bucket", Key="keepass/passwords.kdbx")

    def test_missing_object(self, s3):
        storage, client = s3
        client.head_object.side_effect = ClientError({"Error": {"Code": "404"}}, "HeadObject")

        with pytest.raises(RemoteNotFoundError):
            storage.find_by_name("passwords.kdbx")

    def test_access_denied_is_not_not_found(self, s3):
        storage, client = s3
        client.head_object.side_effect = ClientError({"Error": {"Code": "403"}}, "HeadObject")

        with pytest.raises(RemoteError) as excinfo:
            storage.find_by_name("passwords.kdbx")
        assert not isinstance(excinfo.value, RemoteNotFoundError)

    def test_backup_file_copies_under_folder_prefix(self, s3):
        storage, client = s3
        client.head_object.return_value = {}

        snapshot = storage.backup_file("passwords.kdbx", "Backups", now=datetime(2024, 6, 1, 9, 30))

        assert snapshot.id == "keepass/Backups/2024-06-01T09:30:00-passwords.kdbx"
        client.copy_object.assert_called_once_with(
            Bucket="vault-bucket",
            Key="keepass/Backups/2024-06-01T09:30:00-passwords.kdbx",
            CopySource={"Bucket": "vault-bucket", "Key": "keepass/passwords.kdbx"},
        )

    def test_upload_keeps_content_type(self, s3, tmp_path):
        storage, client = s3
        client.head_object.return_value = {"ContentType": "application/x-keepass2"}
        source = tmp_path / "passwords.kdbx"
        source.write_bytes(b"merged")

        storage.upload_file("passwords.kdbx", source)

        client.upload_file.assert_called_once_with(
            str(source), "vault-bucket", "keepass/passwords.kdbx",
            ExtraArgs={"ContentType": "application/x-keepass2"},
        )


def graph_response(status_code=200, payload=None, headers=None):
    response = Mock(status_code=status_code, headers=headers or {}, text="")
    response.json.return_value = payload or {}
    return response


@pytest.fixture
def onedrive():
    auth = Mock()
    auth.get_auth_headers.return_value = {"Authorization": "Bearer token"}
    session = MagicMock()
    storage = OneDriveStorage(auth, root_path="/KeePass/", copy_poll_interval=0, copy_max_polls=3,
                              session=session)
    return storage, session


class TestOneDriveStorage:

    def test_find_by_name_uses_root_path(self, onedrive):
        storage, session = onedrive
        session.request.return_value = graph_response(payload={
            "id": "item1", "name": "passwords.kdbx",
            "file": {"mimeType": "application/octet-stream"},
            "parentReference": {"id": "folder1", "driveId": "drive1"},
        })

        found = storage.find_by_name("passwords.kdbx")

        assert found.id == "item1"
        assert found.drive_id == "drive1"
        method, url = session.request.call_args.args
        assert method == "GET"
        assert url == f"{GRAPH_ROOT}/me/drive/root:/KeePass/passwords.kdbx"
        assert session.request.call_args.kwargs["headers"]["Authorization"] == "Bearer token"

    def test_not_found(self, onedrive):
        storage, session = onedrive
        session.request.return_value = graph_response(status_code=404)

        with pytest.raises(RemoteNotFoundError):
            storage.find_by_name("passwords.kdbx")

    def test_copy_polls_monitor(self, onedrive):
        storage, session = onedrive
        session.request.return_value = graph_response(status_code=202, headers={"Location": "https://monitor"})
        pending = Mock(content=b"{}")
        pending.json.return_value = {"status": "inProgress"}
        done = Mock(content=b"{}")
        done.json.return_value = {"status": "completed", "resourceId": "copy1"}
        session.get.side_effect = [pending, done]
        original = storage._to_remote_file({"id": "item1", "name": "passwords.kdbx"})
        folder = storage._to_remote_file({"id": "folder1", "name": "Backups", "folder": {},
                                          "parentReference": {"driveId": "drive1"}})

        copied = storage.copy_as(original, "snap.kdbx", folder)

        assert copied.id == "copy1"
        assert session.get.call_count == 2
        body = session.request.call_args.kwargs["json"]
        assert body == {"name": "snap.kdbx", "parentReference": {"id": "folder1", "driveId": "drive1"}}

    def test_copy_failure(self, onedrive):
        storage, session = onedrive
        session.request.return_value = graph_response(status_code=202, headers={"Location": "https://monitor"})
        failed = Mock(content=b"{}")
        failed.json.return_value = {"status": "failed", "error": {"code": "nameAlreadyExists"}}
        session.get.return_value = failed
        original = storage._to_remote_file({"id": "item1", "name": "passwords.kdbx"})

        with pytest.raises(RemoteError, match="can't create backup"):
            storage.copy_as(original, "snap.kdbx")

    def test_find_folder_rejects_files(self, onedrive):
        storage, session = onedrive
        session.request.return_value = graph_response(payload={"id": "item1", "name": "Backups", "file": {}})

        with pytest.raises(RemoteError, match="not a folder"):
            storage.find_folder("Backups")
