from app.core.exceptions import ConflictError
from fakes import create_folder, upload


def test_upload_into_root(client, storage):
    response = upload(client, "hello.txt", b"hello world")
    assert response.status_code == 201
    node = response.json()["file"]
    assert node["name"] == "hello.txt"
    assert node["size"] == 11
    assert node["isFolder"] is False
    assert node["uploadedBy"] == "admin"
    assert list(storage.objects.values()) == [b"hello world"]
    (key,) = storage.objects
    assert key.startswith("uploads/") and key.endswith("-hello.txt")


def test_upload_into_missing_folder(client):
    response = upload(client, "a.txt", b"a", parent_id="00000000-0000-4000-8000-000000000000")
    assert response.status_code == 404


def test_upload_into_protected_folder_needs_password(client):
    secret = create_folder(client, "Secret", password="abc123")
    assert upload(client, "a.txt", b"a", parent_id=secret["id"]).status_code == 403
    response = upload(
        client, "a.txt", b"a", parent_id=secret["id"], headers={"x-folder-password": "abc123"}
    )
    assert response.status_code == 201
    assert response.json()["file"]["parentId"] == secret["id"]


def test_duplicate_content_is_rejected(client):
    first = upload(client, "one.txt", b"same bytes").json()["file"]

    response = upload(client, "two.txt", b"same bytes")
    assert response.status_code == 409
    body = response.json()
    assert body["error"] == "Duplicate file detected"
    assert body["existingFile"] == {"id": first["id"], "name": "one.txt"}
    assert body["message"] == "A file with identical content already exists"


def test_app_error_accepts_message_as_extra_field():
    error = ConflictError("Duplicate file detected", message="details", existingFile={"id": "1"})
    assert error.status_code == 409
    assert error.detail == "Duplicate file detected"
    assert error.extra == {"message": "details", "existingFile": {"id": "1"}}


def test_same_name_and_size_in_folder_is_rejected(client):
    upload(client, "report.txt", b"aaaa")
    response = upload(client, "report.txt", b"bbbb")
    assert response.status_code == 409
    assert response.json()["message"] == "A file with the same name and size already exists"


def test_batch_upload_reports_partial_failures(client):
    upload(client, "existing.txt", b"already here")
    response = client.post(
        "/api/v1/files/upload/batch",
        files=[
            ("files", ("new.txt", b"new content", "text/plain")),
            ("files", ("copy.txt", b"already here", "text/plain")),
        ],
    )
    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert [item["name"] for item in body["uploaded"]] == ["new.txt"]
    assert body["failed"][0]["name"] == "copy.txt"
    assert body["failed"][0]["error"] == "Duplicate file detected"


def test_batch_upload_all_failed(client):
    upload(client, "existing.txt", b"already here")
    response = client.post(
        "/api/v1/files/upload/batch",
        files=[("files", ("copy.txt", b"already here", "text/plain"))],
    )
    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "All uploads failed"
    assert body["uploaded"] == []


def test_download_redirects_to_storage_url(client):
    node = upload(client, "photo.jpg", b"jpeg").json()["file"]
    response = client.get(f"/api/v1/files/{node['id']}/download", follow_redirects=False)
    assert response.status_code == 307
    assert response.headers["location"].startswith("https://cdn.example.com/uploads/")


def test_download_rules(client):
    folder = create_folder(client, "Docs")
    response = client.get(f"/api/v1/files/{folder['id']}/download", follow_redirects=False)
    assert response.status_code == 400

    response = client.get("/api/v1/files/00000000-0000-4000-8000-000000000000/download")
    assert response.status_code == 404

    secret = create_folder(client, "Secret", password="abc123")
    unlock = {"x-folder-password": "abc123"}
    node = upload(client, "s.txt", b"s", parent_id=secret["id"], headers=unlock).json()["file"]
    assert client.get(f"/api/v1/files/{node['id']}/download", follow_redirects=False).status_code == 403
    response = client.get(f"/api/v1/files/{node['id']}/download", headers=unlock, follow_redirects=False)
    assert response.status_code == 307


def test_delete_file_removes_object(client, storage):
    node = upload(client, "gone.txt", b"bye").json()["file"]
    response = client.delete(f"/api/v1/files/{node['id']}")
    assert response.status_code == 200
    assert response.json()["message"] == "File deleted successfully"
    assert storage.objects == {}
    assert client.get("/api/v1/files").json()["files"] == []


def test_non_empty_folder_cannot_be_deleted(client):
    folder = create_folder(client, "Docs")
    upload(client, "inside.txt", b"x", parent_id=folder["id"])

    response = client.delete(f"/api/v1/files/{folder['id']}")
    assert response.status_code == 400
    assert response.json()["error"].startswith("Cannot delete folder with contents")


def test_empty_folder_can_be_deleted(client):
    folder = create_folder(client, "Docs")
    response = client.delete(f"/api/v1/files/{folder['id']}")
    assert response.status_code == 200
    assert response.json()["message"] == "Folder deleted successfully"


def test_delete_missing_item(client):
    response = client.delete("/api/v1/files/00000000-0000-4000-8000-000000000000")
    assert response.status_code == 404
    assert response.json() == {"error": "Item not found"}
