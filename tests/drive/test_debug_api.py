"""调试接口测试。"""

import io

from fastapi.testclient import TestClient


def test_debug_tables_and_subtree(client: TestClient):
    client.post("/api/createdir", params={"path": "a/b"})
    client.post(
        "/api/upload",
        data={"path": "a/b"},
        files={"file": ("c.txt", io.BytesIO(b"0123456789"), "text/plain")},
    )

    nodes = client.get("/api/debug/nodes").json()["data"]
    assert nodes["count"] == 3
    by_path = {n["path"]: n for n in nodes["items"]}
    assert by_path["a/b/c.txt"]["size"] == 10

    closure = client.get("/api/debug/closure").json()["data"]
    assert closure["count"] == 6
    assert {e["depth"] for e in closure["items"]} == {0, 1, 2}

    a_id = by_path["a"]["id"]
    subtree = client.get(f"/api/debug/subtree/{a_id}").json()["data"]
    assert subtree["root_path"] == "a"
    assert [(i["path"], i["depth"]) for i in subtree["items"]] == [("a", 0), ("a/b", 1), ("a/b/c.txt", 2)]


def test_debug_subtree_missing(client: TestClient):
    resp = client.get("/api/debug/subtree/424242")
    assert resp.status_code == 404
    assert resp.json()["code"] == 404
