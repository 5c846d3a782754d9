"""Unit tests for InMemoryJobRegistry."""

import pytest

from conftest import make_job
from tunedeck.core.exceptions import (
    DuplicateJobError,
    InvalidTransitionError,
    RegistryReentrancyError,
    UnknownJobError,
)
from tunedeck.core.models.job import JobPatch, JobStatus


class TestCreate:
    def test_create_stores_pending_job_without_logs_or_result(self, registry):
        job = make_job("abc123").model_copy(
            update={"status": JobStatus.running, "logs": ["stale"], "result": {"x": 1}}
        )

        job_id = registry.create(job)

        stored = registry.get(job_id)
        assert job_id == "abc123"
        assert stored.status == JobStatus.pending
        assert stored.logs == []
        assert stored.result is None
        assert stored.metadata.model_id == "gpt2"

    def test_duplicate_id_raises(self, registry):
        registry.create(make_job("abc123"))

        with pytest.raises(DuplicateJobError) as excinfo:
            registry.create(make_job("abc123"))
        assert excinfo.value.job_id == "abc123"

    def test_get_unknown_returns_none(self, registry):
        assert registry.get("missing") is None


class TestUpdate:
    def test_update_applies_only_set_fields(self, registry):
        registry.create(make_job("abc123"))
        registry.update("abc123", JobPatch(status=JobStatus.running, logs=["step 1"]))

        job = registry.update("abc123", JobPatch(logs=["step 1", "step 2"]))

        assert job.status == JobStatus.running
        assert job.logs == ["step 1", "step 2"]
        assert job.updated is not None

    def test_update_unknown_raises(self, registry):
        with pytest.raises(UnknownJobError):
            registry.update("missing", JobPatch(status=JobStatus.running))

    def test_terminal_status_cannot_change(self, registry):
        registry.create(make_job("abc123"))
        registry.update("abc123", JobPatch(status=JobStatus.completed, result={"ok": True}))

        with pytest.raises(InvalidTransitionError):
            registry.update("abc123", JobPatch(status=JobStatus.running))

        assert registry.get("abc123").status == JobStatus.completed

    def test_returned_snapshots_are_copies(self, registry):
        registry.create(make_job("abc123"))
        job = registry.update("abc123", JobPatch(logs=["a"]))

        job.logs.append("tampered")
        registry.get("abc123").logs.append("tampered too")

        assert registry.get("abc123").logs == ["a"]


class TestList:
    def test_list_keeps_insertion_order(self, registry):
        for job_id in ["c", "a", "b"]:
            registry.create(make_job(job_id))
        registry.update("a", JobPatch(status=JobStatus.running))

        assert [job.id for job in registry.list()] == ["c", "a", "b"]

    def test_empty_registry_lists_nothing(self, registry):
        assert registry.list() == []


class TestSubscribe:
    def test_subscriber_receives_snapshot_after_each_change(self, registry):
        snapshots = []
        registry.subscribe(snapshots.append)

        registry.create(make_job("abc123"))
        registry.update("abc123", JobPatch(status=JobStatus.running, logs=["step 1"]))

        assert len(snapshots) == 2
        assert snapshots[0][0].status == JobStatus.pending
        assert snapshots[1][0].logs == ["step 1"]

    def test_unsubscribe_stops_notifications(self, registry):
        snapshots = []
        unsubscribe = registry.subscribe(snapshots.append)
        registry.create(make_job("a"))

        unsubscribe()
        registry.create(make_job("b"))

        assert len(snapshots) == 1

    def test_mutation_from_subscriber_is_rejected(self, registry):
        errors = []

        def meddle(snapshot):
            try:
                registry.update(snapshot[0].id, JobPatch(status=JobStatus.failed))
            except RegistryReentrancyError as exc:
                errors.append(exc)

        registry.subscribe(meddle)
        registry.create(make_job("abc123"))

        assert len(errors) == 1
        assert registry.get("abc123").status == JobStatus.pending

    def test_failing_subscriber_does_not_break_updates(self, registry):
        seen = []

        def broken(snapshot):
            raise RuntimeError("render failed")

        registry.subscribe(broken)
        registry.subscribe(seen.append)

        registry.create(make_job("abc123"))

        assert registry.get("abc123") is not None
        assert len(seen) == 1


class TestMonotonicFields:
    def test_shorter_logs_are_ignored(self, registry):
        registry.create(make_job("abc123"))
        registry.update("abc123", JobPatch(status=JobStatus.running, logs=["step 1", "step 2"]))

        job = registry.update("abc123", JobPatch(logs=["step 1"]))

        assert job.logs == ["step 1", "step 2"]

    def test_stored_result_is_not_overwritten(self, registry):
        registry.create(make_job("abc123"))
        registry.update("abc123", JobPatch(status=JobStatus.running, result={"checkpoint": "a"}))

        job = registry.update("abc123", JobPatch(status=JobStatus.completed, result={"checkpoint": "b"}))

        assert job.status == JobStatus.completed
        assert job.result == {"checkpoint": "a"}

    def test_explicit_none_does_not_clear_fields(self, registry):
        registry.create(make_job("abc123"))
        registry.update("abc123", JobPatch(status=JobStatus.running, logs=["step 1"], result={"ok": True}))

        job = registry.update("abc123", JobPatch(status=None, logs=None, result=None))

        assert job.status == JobStatus.running
        assert job.logs == ["step 1"]
        assert job.result == {"ok": True}
