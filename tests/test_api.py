"""HTTP routes, through httpx.ASGITransport (the lifespan does not run)."""

from datetime import timedelta

from surelink.core.db import SessionLocal
from surelink.models.message import Message
from surelink.utils.clock import utcnow


async def test_root_health(client):
    r = await client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


async def test_api_test_reports_version(client):
    r = await client.get("/api/test")
    assert r.status_code == 200
    assert r.json()["version"] == "2.0.0"


async def test_api_health_lists_tables(client):
    r = await client.get("/api/health")
    body = r.json()
    assert r.status_code == 200
    assert body["status"] == "healthy"
    assert {"messages", "encounters"} <= set(body["database"]["tables"])


async def test_stats_counts_messages(client):
    with SessionLocal() as s:
        s.add(Message(username="a", text="hello"))
        s.commit()

    r = await client.get("/api/stats")
    assert r.status_code == 200
    assert r.json()["messages"]["total"] == 1


async def test_socket_stats_includes_coordinator_view(client):
    r = await client.get("/api/socket-stats")
    body = r.json()
    assert r.status_code == 200
    assert body["online"] == 0
    assert "usersWithLocation" in body["location"]
    assert body["chat"]["total"] == 0


async def test_cleanup_requires_secret(client):
    r = await client.post("/api/cleanup", json={"secret": "wrong"})
    assert r.status_code == 403


async def test_cleanup_deletes_old_messages(client):
    with SessionLocal() as s:
        s.add_all([
            Message(username="a", text="old", created_at=utcnow() - timedelta(days=45)),
            Message(username="a", text="new"),
        ])
        s.commit()

    r = await client.post("/api/cleanup", json={"secret": "test-secret"})

    assert r.status_code == 200
    assert r.json()["deleted"] == 1


def test_run_serves_socket_app_on_configured_port(monkeypatch):
    import surelink.main as main
    from surelink.core.config import PORT

    calls = []
    monkeypatch.setattr(main.uvicorn, "run", lambda app, **kw: calls.append((app, kw)))

    main.run()

    assert calls == [(main.asgi, {"host": "0.0.0.0", "port": PORT})]
