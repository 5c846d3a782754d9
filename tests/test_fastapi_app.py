import pytest
from fastapi.testclient import TestClient

from conftest import FakeJobService
from tunedeck.adapters.job_registry_inmemory import InMemoryJobRegistry
from tunedeck.adapters.web.fastapi import create_app, status_for
from tunedeck.core.config import PollerConfig
from tunedeck.core.exceptions import (
    DuplicateJobError,
    InvalidTransitionError,
    PanelClosedError,
    TransportError,
    UnknownJobError,
    UploadError,
)
from tunedeck.core.managers.control_panel import ControlPanel
from tunedeck.core.managers.poller import PollerSupervisor

"""
Integration tests for the FastAPI adapter.

A FakeJobService stands in for the remote service; the poll interval is long
enough that no tick runs during a test, so the tests observe what the routes
write into the registry and that the lifespan tears every poll task down.
"""


@pytest.fixture
def fake_service():
    return FakeJobService()


@pytest.fixture
def app(fake_service):
    registry = InMemoryJobRegistry()

    def panel_factory(client):
        poller = PollerSupervisor(client, registry, PollerConfig(poll_interval=3600))
        return ControlPanel(client, registry, poller)

    return create_app(service=fake_service, panel_factory=panel_factory)


FINETUNE_BODY = {
    "file_id": "file-1",
    "dataset": "train.jsonl",
    "config": {"model_id": "gpt2", "epochs": 1},
}


def test_health_lists_polled_jobs(app, fake_service):
    fake_service.job_ids.append("abc123")
    with TestClient(app) as client:
        assert client.get("/health").json() == {"status": "ok", "polling": []}

        client.post("/finetune", json=FINETUNE_BODY)

        assert client.get("/health").json()["polling"] == ["abc123"]


def test_finetune_returns_pending_job(app, fake_service):
    fake_service.job_ids.append("abc123")
    with TestClient(app) as client:
        resp = client.post("/finetune", json=FINETUNE_BODY)

    assert resp.status_code == 201
    body = resp.json()
    assert body["id"] == "abc123"
    assert body["status"] == "pending"
    assert body["logs"] == []
    assert body["result"] is None
    assert body["metadata"]["model_id"] == "gpt2"
    assert body["metadata"]["dataset"] == "train.jsonl"
    assert fake_service.submitted[0][1]["repo_name"] == "finetuned-gpt2-train"


def test_jobs_are_listed_and_fetched(app, fake_service):
    fake_service.job_ids.extend(["a", "b"])
    with TestClient(app) as client:
        client.post("/finetune", json=FINETUNE_BODY)
        client.post("/finetune", json=FINETUNE_BODY)

        listed = client.get("/jobs").json()
        single = client.get("/jobs/b")

    assert [job["id"] for job in listed] == ["a", "b"]
    assert single.status_code == 200
    assert single.json()["id"] == "b"


def test_unknown_job_is_404(app):
    with TestClient(app) as client:
        resp = client.get("/jobs/missing")

    assert resp.status_code == 404
    assert resp.json() == {"detail": "Unknown job: missing"}


def test_submit_failure_maps_to_502(app, fake_service):
    fake_service.submit_error = TransportError("Job service returned HTTP 500: boom", status=500)
    with TestClient(app) as client:
        resp = client.post("/finetune", json=FINETUNE_BODY)
        jobs = client.get("/jobs").json()

    assert resp.status_code == 502
    assert "boom" in resp.json()["detail"]
    assert jobs == []


def test_invalid_finetune_body_is_422(app):
    with TestClient(app) as client:
        resp = client.post("/finetune", json={"file_id": "file-1", "config": {"epochs": 0}})

    assert resp.status_code == 422


def test_query_returns_service_response(app, fake_service):
    with TestClient(app) as client:
        resp = client.post("/query", json={"model_id": "abc123", "input": "Hello"})

    assert resp.status_code == 200
    assert resp.json() == {"response": "echo: Hello", "tokens": 3}
    assert fake_service.queries[0].generation_config.max_length == 100


def test_empty_query_is_rejected(app, fake_service):
    with TestClient(app) as client:
        resp = client.post("/query", json={"model_id": "abc123", "input": ""})

    assert resp.status_code == 422
    assert fake_service.queries == []


def test_models_catalog(app):
    with TestClient(app) as client:
        resp = client.get("/models")

    assert resp.status_code == 200
    assert [model["id"] for model in resp.json()] == ["gpt2", "distilgpt2"]


def test_upload_passes_file_through(app, fake_service):
    with TestClient(app) as client:
        resp = client.post(
            "/upload",
            files={"file": ("train.jsonl", b'{"text": "hi"}\n', "application/octet-stream")},
        )

    assert resp.status_code == 200
    assert resp.json() == {"file_id": "file-1", "filename": "train.jsonl"}
    assert fake_service.uploads == [("train.jsonl", b'{"text": "hi"}\n')]


def test_upload_failure_maps_to_502(app, fake_service):
    fake_service.upload_error = UploadError("Failed to upload file train.jsonl: disk full", filename="train.jsonl")
    with TestClient(app) as client:
        resp = client.post("/upload", files={"file": ("train.jsonl", b"data")})

    assert resp.status_code == 502


def test_finetuned_is_empty_until_a_job_completes(app, fake_service):
    fake_service.job_ids.append("abc123")
    with TestClient(app) as client:
        client.post("/finetune", json=FINETUNE_BODY)
        assert client.get("/finetuned").json() == []


def test_lifespan_closes_service_and_stops_polling(app, fake_service):
    fake_service.job_ids.extend(["a", "b"])
    with TestClient(app) as client:
        assert fake_service.entered is True
        client.post("/finetune", json=FINETUNE_BODY)
        client.post("/finetune", json=FINETUNE_BODY)
        poller = app.state.panel.poller
        assert poller.active_job_ids() == ["a", "b"]

    assert fake_service.exited is True
    assert poller.active_job_ids() == []
    assert poller.pending_tasks() == 0


@pytest.mark.parametrize(
    "exc,status",
    [
        (UnknownJobError("x"), 404),
        (DuplicateJobError("x"), 409),
        (InvalidTransitionError("x", "completed", "running"), 409),
        (UploadError("nope"), 502),
        (TransportError("down", status=503), 502),
        (PanelClosedError("closed"), 503),
    ],
)
def test_status_for_core_errors(exc, status):
    assert status_for(exc) == status
