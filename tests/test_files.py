"""
File upload tests: decoding, the size ceiling, listing and deletion.
"""
import base64
from pathlib import Path
from unittest.mock import patch

import pytest

from omnichat.errors import InvalidInputError
from omnichat.models import File
from omnichat.services.file_service import decode_payload, guess_mime_type
from omnichat.services.storage import LocalStorage, file_key, image_key, sanitize_filename


def upload(client, conversation_id, filename="notes.txt", data=b"hello world", **extra):
    return client.post(
        f"/api/conversations/{conversation_id}/files",
        json={"filename": filename, "file_data": base64.b64encode(data).decode(), **extra},
    )


class TestUpload:
    def test_upload_stores_blob_and_record(self, client, conversation, app_config):
        response = upload(client, conversation["id"])

        assert response.status_code == 201
        body = response.json()
        assert body["filename"] == "notes.txt"
        assert body["mime_type"] == "text/plain"
        assert body["size"] == 11
        assert body["conversation_id"] == conversation["id"]
        assert body["url"].startswith("http://testserver/storage/")
        assert (Path(app_config.storage.root_dir) / body["file_key"]).read_bytes() == b"hello world"

    def test_stored_blob_is_served(self, client, conversation):
        body = upload(client, conversation["id"]).json()

        response = client.get(f"/storage/{body['file_key']}")

        assert response.status_code == 200
        assert response.content == b"hello world"

    def test_explicit_mime_type_wins(self, client, conversation):
        body = upload(client, conversation["id"], mime_type="application/x-custom").json()
        assert body["mime_type"] == "application/x-custom"

    def test_data_url_prefix_accepted(self, client, conversation):
        response = client.post(
            f"/api/conversations/{conversation['id']}/files",
            json={
                "filename": "a.txt",
                "file_data": "data:text/plain;base64," + base64.b64encode(b"abc").decode(),
            },
        )

        assert response.status_code == 201
        assert response.json()["size"] == 3

    def test_oversize_rejected_before_any_write(self, client, conversation, app_config, count_rows):
        too_big = b"x" * (app_config.storage.max_upload_bytes + 1)

        with patch.object(LocalStorage, "put") as put:
            response = upload(client, conversation["id"], filename="big.bin", data=too_big)

        assert response.status_code == 413
        assert response.json()["error"] == "payload_too_large"
        put.assert_not_called()
        assert count_rows(File, conversation_id=conversation["id"]) == 0

    def test_exact_limit_accepted(self, client, conversation, app_config):
        data = b"x" * app_config.storage.max_upload_bytes
        assert upload(client, conversation["id"], data=data).status_code == 201

    def test_invalid_base64_rejected(self, client, conversation, count_rows):
        response = client.post(
            f"/api/conversations/{conversation['id']}/files",
            json={"filename": "a.txt", "file_data": "not base64!!"},
        )

        assert response.status_code == 422
        assert response.json()["error"] == "invalid_input"
        assert count_rows(File, conversation_id=conversation["id"]) == 0

    def test_upload_to_foreign_conversation(self, client, conversation, other_headers):
        response = client.post(
            f"/api/conversations/{conversation['id']}/files",
            json={"filename": "a.txt", "file_data": base64.b64encode(b"abc").decode()},
            headers=other_headers,
        )
        assert response.status_code == 404


class TestListAndDelete:
    def test_list_files(self, client, conversation):
        upload(client, conversation["id"], filename="one.txt")
        upload(client, conversation["id"], filename="two.txt")

        files = client.get(f"/api/conversations/{conversation['id']}/files").json()

        assert [f["filename"] for f in files] == ["one.txt", "two.txt"]

    def test_delete_file_removes_blob(self, client, conversation, app_config, count_rows):
        body = upload(client, conversation["id"]).json()

        response = client.delete(f"/api/files/{body['id']}")

        assert response.status_code == 200
        assert count_rows(File, id=body["id"]) == 0
        assert not (Path(app_config.storage.root_dir) / body["file_key"]).exists()

    def test_foreign_delete_is_404(self, client, conversation, other_headers, count_rows):
        body = upload(client, conversation["id"]).json()

        response = client.delete(f"/api/files/{body['id']}", headers=other_headers)

        assert response.status_code == 404
        assert count_rows(File, id=body["id"]) == 1

    def test_same_millisecond_uploads_keep_separate_blobs(self, client, conversation, app_config):
        root = Path(app_config.storage.root_dir)
        with patch("omnichat.services.storage.time.time", return_value=1700000000.0):
            first = upload(client, conversation["id"], data=b"first body").json()
            second = upload(client, conversation["id"], data=b"second body").json()

        assert first["file_key"] != second["file_key"]
        assert (root / first["file_key"]).read_bytes() == b"first body"
        assert (root / second["file_key"]).read_bytes() == b"second body"

        assert client.delete(f"/api/files/{second['id']}").status_code == 200

        assert not (root / second["file_key"]).exists()
        assert (root / first["file_key"]).read_bytes() == b"first body"


class TestHelpers:
    def test_decode_payload_rejects_garbage(self):
        with pytest.raises(InvalidInputError):
            decode_payload("@@@")

    def test_guess_mime_type(self):
        assert guess_mime_type("photo.png") == "image/png"
        assert guess_mime_type("unknown.zzz") == "application/octet-stream"

    def test_sanitize_filename(self):
        assert sanitize_filename("../../etc/passwd") == "passwd"
        assert sanitize_filename("my report (final).pdf") == "my_report_final_.pdf"
        assert sanitize_filename("...") == "file"

    def test_file_key_is_user_scoped(self):
        key = file_key("user-1", "a b.txt")
        assert key.startswith("user-1/files/")
        assert key.endswith("-a_b.txt")

    def test_keys_unique_within_one_millisecond(self):
        with patch("omnichat.services.storage.time.time", return_value=1700000000.0):
            assert file_key("user-1", "a.txt") != file_key("user-1", "a.txt")
            assert image_key("user-1") != image_key("user-1")

    def test_key_for_url_only_accepts_own_urls(self, tmp_path):
        storage = LocalStorage(root_dir=str(tmp_path), public_base_url="http://x/storage")

        assert storage.key_for_url("http://x/storage/user-1/files/a.mp3?v=1") == "user-1/files/a.mp3"
        assert storage.key_for_url("http://x/storage/user-1/../user-2/a.mp3") == "user-2/a.mp3"
        assert storage.key_for_url("http://x/storage/../../etc/passwd") is None
        assert storage.key_for_url("http://169.254.169.254/latest/meta-data/iam") is None
        assert storage.key_for_url("http://x/storage-other/a.mp3") is None

    def test_storage_refuses_escaping_keys(self, tmp_path):
        storage = LocalStorage(root_dir=str(tmp_path), public_base_url="http://x")
        with pytest.raises(ValueError):
            storage.put("../outside.txt", b"x", "text/plain")

    def test_delete_missing_object(self, tmp_path):
        storage = LocalStorage(root_dir=str(tmp_path), public_base_url="http://x")
        assert storage.delete("nothing/here") is False
