import pytest

from core.errors import TerminationError
from core.schemas import Domain


@pytest.fixture()
def refreshed(client):
    response = client.post("/snapshot/refresh")
    assert response.status_code == 200
    return client


def test_health_ping(client):
    assert client.get("/health/ping").get_json() == {"status": "ok"}


def test_index_redirects_to_status(client):
    response = client.get("/")
    assert response.status_code == 302
    assert response.headers["Location"].endswith("/snapshot/status")


def test_status_before_any_refresh_is_stale(client):
    body = client.get("/snapshot/status").get_json()
    assert body["snapshot_id"] == 0
    assert body["stale"] is True
    assert body["domains"] == {}


def test_refresh_reports_domain_flags(client):
    body = client.post("/snapshot/refresh").get_json()

    assert body["snapshot_id"] == 1
    assert body["degraded"] is False
    assert set(body["domains"]) == {Domain.HOST.value, Domain.PORTS.value}
    assert body["domains"]["host"]["ok"] is True


def test_ports_filters_from_query_string(refreshed):
    body = refreshed.get("/snapshot/ports?port=80&prefix=1&sort=port&desc=1").get_json()
    assert [p["port"] for p in body["ports"]] == [8080, 80]
    assert body["total"] == 2

    body = refreshed.get("/snapshot/ports?protocol=udp").get_json()
    assert [p["process_name"] for p in body["ports"]] == ["systemd-resolved"]


def test_ports_rejects_invalid_filter(refreshed):
    response = refreshed.get("/snapshot/ports?sort=color")
    assert response.status_code == 400
    assert response.get_json()["details"][0]["field"] == "sort_by"


def test_interfaces_available_only(refreshed):
    body = refreshed.get("/snapshot/interfaces?available=1").get_json()
    assert [i["name"] for i in body["interfaces"]] == ["eth0"]


def test_export_ports_as_text(refreshed):
    response = refreshed.get("/snapshot/export/ports?q=nginx")
    assert response.mimetype == "text/plain"
    lines = response.get_data(as_text=True).splitlines()
    assert lines[0].startswith("pid\tprocess_name")
    assert len(lines) == 3


def test_probe_requires_json_object(client):
    assert client.post("/probes/", json=["x"]).status_code == 400


def test_probe_validation_error(client):
    response = client.post("/probes/", json={"kind": "http", "target": "x"})
    assert response.status_code == 400
    fields = {d["field"] for d in response.get_json()["details"]}
    assert "interface_name" in fields


def test_probe_on_missing_interface_is_structured_failure(refreshed):
    response = refreshed.post(
        "/probes/",
        json={"kind": "reachability", "target": "8.8.8.8", "interface_name": "wlan7"},
    )
    body = response.get_json()

    assert response.status_code == 200
    assert body["state"] == "failed"
    assert body["error_kind"] == "interface_unavailable"


def test_terminate_protected_pid_is_forbidden(client, guard_delegate):
    response = client.post("/processes/4/terminate")
    assert response.status_code == 403
    assert guard_delegate.calls == []


def test_terminate_regular_pid(client, guard_delegate):
    response = client.post("/processes/4242/terminate")
    assert response.get_json() == {"ok": True, "pid": 4242}
    assert guard_delegate.calls == [4242]


def test_terminate_failure_is_server_error(client, service):
    def failing(pid):
        raise TerminationError("kill failed")

    service.guard._delegate = failing
    assert client.post("/processes/999/terminate").status_code == 500
