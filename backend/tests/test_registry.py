from __future__ import annotations


def test_list_workers_includes_defaults(client, seed_registry):
    response = client.get("/api/workers")

    assert response.status_code == 200
    [worker] = response.json()
    assert worker["worker_id"] == "W9"
    assert worker["department"] == "Production"
    assert worker["shift"] == "Morning"


def test_get_worker_not_found(client):
    assert client.get("/api/workers/ghost").status_code == 404


def test_get_workstation_includes_defaults(client, seed_registry):
    response = client.get("/api/workstations/S9")

    assert response.status_code == 200
    body = response.json()
    assert body["location"] == "Floor A"
    assert body["capacity"] == 1
    assert body["type"] == "press"


def test_list_workstations_empty(client):
    assert client.get("/api/workstations").json() == []


def test_get_workstation_not_found(client):
    assert client.get("/api/workstations/ghost").status_code == 404
