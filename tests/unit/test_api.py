from fastapi.testclient import TestClient


def test_process_lifecycle_over_http(client: TestClient, clock) -> None:
    create_resp = client.post(
        "/processes/batch-job",
        json={
            "id": "run-42",
            "deadline": clock.epoch + 3600,
            "tags": [{"key": "env", "value": "prod"}],
            "context": {"rows": 10},
        },
    )
    assert create_resp.status_code == 201
    created = create_resp.json()
    assert created["status"] == "ACTIVE"
    assert created["deadline_status"] == "ON_TRACK"
    assert created["started_at"] == clock.epoch
    assert created["tags"] == [{"key": "env", "value": "prod"}]
    assert created["context"] == {"rows": 10}
    assert "completed_at" not in created
    assert "internal_id" not in created

    duplicate = client.post("/processes/batch-job", json={"id": "run-42"})
    assert duplicate.status_code == 409
    assert duplicate.json()["error"] == "PROCESS_ALREADY_EXISTS"

    clock.advance(30)
    complete_resp = client.put("/processes/batch-job/run-42/complete")
    assert complete_resp.status_code == 200
    completed = complete_resp.json()
    assert completed["status"] == "COMPLETED"
    assert completed["completed_at"] == clock.epoch
    assert completed["deadline_status"] == "COMPLETED_ON_TIME"
    assert completed["duration"] == 30

    again = client.put("/processes/batch-job/run-42/complete", json={"status": "FAILED"})
    assert again.status_code == 409
    assert again.json()["error"] == "PROCESS_ALREADY_COMPLETED"

    get_resp = client.get("/processes/batch-job/run-42")
    assert get_resp.status_code == 200
    assert get_resp.json()["status"] == "COMPLETED"


def test_complete_with_failed_status(client: TestClient) -> None:
    client.post("/processes/etl", json={"id": "a"})

    resp = client.put("/processes/etl/a/complete", json={"status": "FAILED"})

    assert resp.status_code == 200
    assert resp.json()["status"] == "FAILED"


def test_complete_with_active_status_is_bad_request(client: TestClient) -> None:
    client.post("/processes/etl", json={"id": "a"})

    resp = client.put("/processes/etl/a/complete", json={"status": "ACTIVE"})

    assert resp.status_code == 400
    assert resp.json()["error"] == "INVALID_ARGUMENT"


def test_unknown_process_is_not_found(client: TestClient, clock) -> None:
    clock.advance(42)
    get_resp = client.get("/processes/etl/ghost")
    complete_resp = client.put("/processes/etl/ghost/complete")

    assert get_resp.status_code == 404
    assert complete_resp.status_code == 404
    body = get_resp.json()
    assert body["error"] == "PROCESS_NOT_FOUND"
    assert body["path"] == "/processes/etl/ghost"
    assert body["timestamp"] == clock.epoch


def test_invalid_name_is_rejected(client: TestClient) -> None:
    resp = client.post("/processes/bad%20name", json={"id": "a"})

    assert resp.status_code == 400
    assert resp.json()["error"] == "VALIDATION_ERROR"


def test_malformed_body_is_rejected_with_details(client: TestClient, clock) -> None:
    resp = client.post("/processes/etl", json={"deadline": "soon"})

    assert resp.status_code == 400
    body = resp.json()
    assert body["error"] == "VALIDATION_ERROR"
    assert body["timestamp"] == clock.epoch
    fields = {detail["field"] for detail in body["details"]}
    assert "body.id" in fields
    assert "body.deadline" in fields


def test_past_deadline_is_rejected(client: TestClient, clock) -> None:
    resp = client.post("/processes/etl", json={"id": "a", "deadline": clock.epoch - 3600})

    assert resp.status_code == 400
    assert "in the past" in resp.json()["message"]


def test_far_future_deadline_is_rejected(client: TestClient) -> None:
    resp = client.post("/processes/etl", json={"id": "a", "deadline": 10**15})

    assert resp.status_code == 400
    assert resp.json()["error"] == "VALIDATION_ERROR"
    assert resp.json()["message"] == "Deadline is out of range"


def test_list_processes_with_filters_and_paging(client: TestClient, clock) -> None:
    client.post(
        "/processes/etl",
        json={"id": "a", "deadline": clock.epoch + 10, "tags": [{"key": "env", "value": "prod"}]},
    )
    clock.advance(1)
    client.post("/processes/etl", json={"id": "b", "tags": [{"key": "env", "value": "dev"}]})
    clock.advance(1)
    client.post("/processes/report", json={"id": "c", "tags": [{"key": "env", "value": "prod"}]})
    clock.advance(100)

    everything = client.get("/processes").json()
    assert everything["total"] == 3
    assert [item["id"] for item in everything["data"]] == ["c", "b", "a"]
    assert everything["limit"] == 20 and everything["offset"] == 0
    assert everything["has_more"] is False

    tagged = client.get("/processes", params={"tags": "env:prod,env:dev", "sort_by": "name:asc"})
    assert [item["name"] for item in tagged.json()["data"]] == ["etl", "report"]

    missed = client.get("/processes", params={"deadline_status": "MISSED"}).json()
    assert [item["id"] for item in missed["data"]] == ["a"]

    by_id = client.get("/processes", params={"name": "etl", "id": "b"}).json()
    assert by_id["total"] == 1 and by_id["data"][0]["id"] == "b"

    paged = client.get("/processes", params={"limit": 2, "offset": 0}).json()
    assert len(paged["data"]) == 2
    assert paged["total"] == 3
    assert paged["has_more"] is True


def test_list_clamps_pagination(client: TestClient) -> None:
    client.post("/processes/etl", json={"id": "a"})

    body = client.get("/processes", params={"limit": 500, "offset": -3}).json()

    assert body["limit"] == 100
    assert body["offset"] == 0
    assert len(body["data"]) == 1


def test_list_rejects_unknown_status(client: TestClient) -> None:
    resp = client.get("/processes", params={"status": "PAUSED"})

    assert resp.status_code == 400
    assert resp.json()["error"] == "VALIDATION_ERROR"


def test_process_stats(client: TestClient, clock) -> None:
    client.post("/processes/etl", json={"id": "a", "deadline": clock.epoch + 5})
    client.post("/processes/etl", json={"id": "b"})
    client.put("/processes/etl/b/complete", json={"status": "FAILED"})
    clock.advance(10)

    stats = client.get("/processes/stats").json()

    assert stats["active"] == 1
    assert stats["failed"] == 1
    assert stats["completed"] == 0
    assert stats["overdue"] == 1
    assert stats["generated_at"] == clock.epoch
