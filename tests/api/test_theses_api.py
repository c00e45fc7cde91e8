from __future__ import annotations

from datetime import UTC, datetime, timedelta
from uuid import UUID, uuid4


def _create(client, **payload) -> dict[str, object]:
    body = {"title": "DACH vertical SaaS", "content": "Profitable B2B software in DACH"}
    body.update(payload)
    response = client.post("/api/theses", json=body)
    assert response.status_code == 201
    return response.json()


def test_create_thesis_with_defaults(client, services):
    thesis = _create(client)

    assert thesis["is_active"] is True
    assert thesis["scan_frequency"] == "weekly"
    assert thesis["sources_count"] == 5
    assert thesis["last_scan_at"] is None
    assert thesis["next_scan_at"] is None


def test_thesis_validation(client, services):
    bad_frequency = client.post(
        "/api/theses", json={"title": "t", "content": "c", "scan_frequency": "hourly"}
    )
    bad_count = client.post("/api/theses", json={"title": "t", "content": "c", "sources_count": 0})

    assert bad_frequency.status_code == 400
    assert bad_count.status_code == 400
    assert bad_count.json()["error"].startswith("sources_count:")


def test_update_and_delete_thesis(client, services):
    thesis = _create(client)

    patched = client.patch(
        f"/api/theses/{thesis['id']}", json={"scan_frequency": "daily", "is_active": False}
    )
    deleted = client.delete(f"/api/theses/{thesis['id']}")
    gone = client.get(f"/api/theses/{thesis['id']}")

    assert patched.status_code == 200
    assert patched.json()["scan_frequency"] == "daily"
    assert patched.json()["is_active"] is False
    assert patched.json()["title"] == thesis["title"]
    assert deleted.json() == {"success": True}
    assert gone.status_code == 404


def test_unknown_thesis(client, services):
    thesis_id = uuid4()

    assert client.patch(f"/api/theses/{thesis_id}", json={"title": "x"}).status_code == 404
    assert client.delete(f"/api/theses/{thesis_id}").status_code == 404


def test_due_filter(client, services, repositories):
    due = _create(client, title="Due")
    later = _create(client, title="Later")
    _create(client, title="Paused", is_active=False)
    repositories.theses.update(
        UUID(later["id"]), {"next_scan_at": datetime.now(UTC) + timedelta(days=2)}
    )

    due_only = client.get("/api/theses?due=true").json()
    everything = client.get("/api/theses").json()

    assert [row["id"] for row in due_only] == [due["id"]]
    assert len(everything) == 3
