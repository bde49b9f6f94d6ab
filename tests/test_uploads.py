"""API tests for logo uploads."""

from urllib3.exceptions import HTTPError

from factories import PUBLIC_URL, add_program, fetch_program, run

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


def _upload(client, data=PNG_BYTES, content_type="image/png", **form):
    return client.post("/api/upload/avatar", files={"file": ("logo.png", data, content_type)}, data=form)


class TestUploadAvatar:
    """POST /api/upload/avatar."""

    def test_public_upload_returns_url(self, client, storage, minio_client):
        response = _upload(client)

        assert response.status_code == 200
        url = response.json()["url"]
        assert url.startswith(f"{PUBLIC_URL}/{storage.bucket}/")
        assert url.endswith(".png")

        args, kwargs = minio_client.put_object.call_args
        assert args[0] == storage.bucket
        assert kwargs["length"] == len(PNG_BYTES)
        assert kwargs["content_type"] == "image/png"

    def test_missing_bucket_created(self, client, minio_client):
        minio_client.bucket_exists.return_value = False
        _upload(client)
        minio_client.make_bucket.assert_called_once()
        minio_client.set_bucket_policy.assert_called_once()

    def test_no_file(self, client):
        assert client.post("/api/upload/avatar", data={"programId": ""}).status_code == 400

    def test_bad_type_rejected(self, client, minio_client):
        response = _upload(client, data=b"<svg/>", content_type="image/svg+xml")
        assert response.status_code == 400
        assert "Invalid file type" in response.json()["detail"]
        minio_client.put_object.assert_not_called()

    def test_too_large_rejected(self, client, storage, minio_client):
        storage.max_bytes = 16
        response = _upload(client)
        assert response.status_code == 400
        minio_client.put_object.assert_not_called()

    def test_storage_failure(self, client, minio_client):
        minio_client.put_object.side_effect = HTTPError("connection reset")
        assert _upload(client).status_code == 502

    def test_program_logo_requires_admin(self, client, database, minio_client):
        program = run(add_program(database, "Ledger Pro"))
        response = _upload(client, programId=program.id)
        assert response.status_code == 401
        minio_client.put_object.assert_not_called()

    def test_admin_replaces_program_logo(self, admin_client, database, storage, minio_client):
        old_url = storage.public_object_url("old.png")
        program = run(add_program(database, "Ledger Pro", logo_url=old_url))

        response = _upload(admin_client, programId=program.id)

        new_url = response.json()["url"]
        assert run(fetch_program(database, program.id)).logo_url == new_url
        minio_client.remove_object.assert_called_once_with(storage.bucket, "old.png")

    def test_admin_unknown_program(self, admin_client):
        assert _upload(admin_client, programId="missing").status_code == 404
