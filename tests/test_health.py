from taskboard.config import VERSION


def test_health(client):
    assert client.get("/api/health").json() == {"status": "ok"}


def test_version(client):
    assert client.get("/api/version").json() == {"version": VERSION}
