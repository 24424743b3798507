"""文件接口集成测试：上传、列表（含响应缓存失效）、搜索、排序与权限。"""

from __future__ import annotations

import uuid

from fastapi.testclient import TestClient

from app.packages.assets.core.security import create_access_token
from app.packages.assets.services.context import ServiceContext


def _auth_headers(role: str = "editor", user_id: str = "user-7") -> dict[str, str]:
    token = create_access_token({"sub": user_id, "email": "e@example.com", "role": role})
    return {"Authorization": f"Bearer {token}"}


def _entity() -> dict[str, str]:
    return {"entityType": "episodes", "entityId": f"ep-{uuid.uuid4().hex[:8]}"}


def _upload(client: TestClient, entity: dict, name: str, content: bytes, **form) -> dict:
    response = client.post(
        "/api/v1/files",
        data={**entity, **form},
        files={"file": (name, content, "text/plain")},
        headers=_auth_headers(),
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]


def test_upload_then_list_in_order(client: TestClient):
    entity = _entity()
    first = _upload(client, entity, "intro.txt", b"intro", tags="Opening, Draft")
    second = _upload(client, entity, "outro.txt", b"outro")

    assert first["version"] == 1
    assert first["fileSize"] == 5
    assert first["tags"] == ["Draft", "Opening"]
    assert first["uploadedBy"] == "user-7"
    assert (first["sortOrder"], second["sortOrder"]) == (0, 1)

    response = client.get("/api/v1/files", params=entity, headers=_auth_headers("member"))

    assert response.status_code == 200
    files = response.json()["data"]["files"]
    assert [f["id"] for f in files] == [first["id"], second["id"]]
    assert "fileData" not in files[0]


def test_listing_is_cached_and_invalidated_on_upload(client: TestClient, services: ServiceContext):
    entity = _entity()
    _upload(client, entity, "a.txt", b"a")
    client.get("/api/v1/files", params=entity, headers=_auth_headers())
    assert services.response_cache.size() == 1

    _upload(client, entity, "b.txt", b"b")
    assert services.response_cache.size() == 0

    files = client.get("/api/v1/files", params=entity, headers=_auth_headers()).json()["data"]["files"]
    assert [f["originalName"] for f in files] == ["a.txt", "b.txt"]


def test_unknown_entity_type_is_rejected(client: TestClient):
    response = client.get(
        "/api/v1/files",
        params={"entityType": "podcasts", "entityId": "1"},
        headers=_auth_headers(),
    )

    assert response.status_code == 422
    assert response.json()["error"] == "Request validation failed"


def test_empty_upload_fails(client: TestClient):
    response = client.post(
        "/api/v1/files",
        data=_entity(),
        files={"file": ("empty.txt", b"", "text/plain")},
        headers=_auth_headers(),
    )

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Upload failed"
    assert body["data"]["reason"] == "file is empty"


def test_upload_requires_upload_permission(client: TestClient):
    response = client.post(
        "/api/v1/files",
        data=_entity(),
        files={"file": ("a.txt", b"a", "text/plain")},
        headers=_auth_headers("guest"),
    )

    assert response.status_code == 403


def test_listing_requires_authentication(client: TestClient):
    response = client.get("/api/v1/files", params=_entity())

    assert response.status_code == 401
    assert response.json()["error"] == "Authentication required"


def test_search_endpoint(client: TestClient):
    entity = _entity()
    hit = _upload(client, entity, "jingle_final.mp3", b"j")
    _upload(client, entity, "other.mp3", b"o", tags="ads")

    response = client.get(
        "/api/v1/files/search",
        params={"q": "JINGLE", **entity},
        headers=_auth_headers(),
    )
    short = client.get("/api/v1/files/search", params={"q": "j"}, headers=_auth_headers())

    assert [f["id"] for f in response.json()["data"]["files"]] == [hit["id"]]
    assert short.json()["data"]["files"] == []


def test_reorder_scenario(client: TestClient):
    entity = _entity()
    a = _upload(client, entity, "a.txt", b"a")["id"]
    b = _upload(client, entity, "b.txt", b"b")["id"]
    c = _upload(client, entity, "c.txt", b"c")["id"]

    response = client.post(
        "/api/v1/files/reorder",
        json={**entity, "fileIds": [a, b, c]},
        headers=_auth_headers(),
    )

    assert response.status_code == 200
    orders = {f["id"]: f["sortOrder"] for f in response.json()["data"]["files"]}
    assert orders == {a: 0, b: 1, c: 2}

    reversed_resp = client.post(
        "/api/v1/files/reorder",
        json={**entity, "fileIds": [c, b, a]},
        headers=_auth_headers(),
    )
    listed = client.get("/api/v1/files", params=entity, headers=_auth_headers()).json()["data"]["files"]
    assert reversed_resp.status_code == 200
    assert [f["id"] for f in listed] == [c, b, a]


def test_reorder_mismatch_returns_409(client: TestClient):
    entity = _entity()
    a = _upload(client, entity, "a.txt", b"a")["id"]
    b = _upload(client, entity, "b.txt", b"b")["id"]

    response = client.post(
        "/api/v1/files/reorder",
        json={**entity, "fileIds": [b]},
        headers=_auth_headers(),
    )

    assert response.status_code == 409
    body = response.json()
    assert body["error"] == "File set does not match current scope"
    assert body["data"]["missing"] == [a]


def test_reorder_requires_edit_role(client: TestClient):
    entity = _entity()
    a = _upload(client, entity, "a.txt", b"a")["id"]

    response = client.post(
        "/api/v1/files/reorder",
        json={**entity, "fileIds": [a]},
        headers=_auth_headers("member"),
    )

    assert response.status_code == 403


def test_patch_and_get_metadata(client: TestClient):
    entity = _entity()
    created = _upload(client, entity, "raw.txt", b"raw", tags="one")

    patched = client.patch(
        f"/api/v1/files/{created['id']}",
        json={"originalName": "Final Cut.txt", "tags": ["two", "one"], "accessLevel": "public"},
        headers=_auth_headers(),
    )
    fetched = client.get(f"/api/v1/files/{created['id']}", headers=_auth_headers("member"))

    assert patched.status_code == 200
    data = fetched.json()["data"]
    assert data["originalName"] == "Final Cut.txt"
    assert data["tags"] == ["one", "two"]
    assert data["accessLevel"] == "public"


def test_delete_missing_file_returns_404(client: TestClient):
    response = client.delete("/api/v1/files/missing", headers=_auth_headers("admin"))

    assert response.status_code == 404
    assert response.json()["error"] == "File not found"


def test_delete_requires_delete_permission(client: TestClient):
    created = _upload(client, _entity(), "keep.txt", b"k")

    response = client.delete(f"/api/v1/files/{created['id']}", headers=_auth_headers("contributor"))

    assert response.status_code == 403


def test_health_endpoint(client: TestClient):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["data"]["status"] == "healthy"
    assert response.headers.get("x-request-id")


def test_listing_read_racing_an_invalidation_is_not_cached(
    client: TestClient, services: ServiceContext, monkeypatch
):
    entity = _entity()
    _upload(client, entity, "a.txt", b"a")
    read = services.file_store.list_by_entity

    def read_then_invalidate(db, ref, folder_id=None, **kwargs):
        rows = read(db, ref, folder_id, **kwargs)
        # 读取完成后、回写前，另一个写请求失效了该实体的列表
        services.listings.invalidate(ref)
        return rows

    monkeypatch.setattr(services.file_store, "list_by_entity", read_then_invalidate)
    response = client.get("/api/v1/files", params=entity, headers=_auth_headers())

    assert response.status_code == 200
    assert len(response.json()["data"]["files"]) == 1
    assert services.response_cache.size() == 0
