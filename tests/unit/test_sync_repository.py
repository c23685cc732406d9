"""
Tests del repositorio SQLAlchemy sobre SQLite en memoria.
"""
from datetime import datetime, timezone

import pytest

from reverse_etl.domain.entities.sync_record import SyncRecord
from reverse_etl.domain.entities.sync_run import SyncRun
from reverse_etl.shared.constants.sync_constants import (
    DestinationAction,
    ScheduleType,
    SyncIntervalUnit,
    SyncRecordStatus,
    SyncRunStatus,
    SyncStatus,
)
from reverse_etl.shared.exceptions.domain import EntityNotFoundException
from tests.conftest import make_sync


def record(sync_id, run_id, pk, **kwargs):
    return SyncRecord(sync_id=sync_id, sync_run_id=run_id, primary_key=pk, fingerprint=f"fp-{pk}", **kwargs)


class TestSyncs:
    def test_round_trip(self, repository):
        saved = repository.save_sync(
            make_sync(
                schedule_type=ScheduleType.INTERVAL,
                sync_interval=5,
                sync_interval_unit=SyncIntervalUnit.MINUTES,
                cursor_field="updated_at",
            )
        )
        loaded = repository.get_sync(saved.id)

        assert loaded.model.query == "SELECT * FROM users"
        assert loaded.destination.configuration == {"api_key": "key", "base_id": "app123"}
        assert loaded.sync_interval_unit == SyncIntervalUnit.MINUTES
        assert loaded.status == SyncStatus.PENDING
        assert loaded.primary_key_mapping == {"source": "id", "destination": "ID"}
        assert loaded.created_at is not None

    def test_missing_sync(self, repository):
        with pytest.raises(EntityNotFoundException):
            repository.get_sync(999)

    def test_datetime_cursor_is_stored_as_iso(self, repository):
        cursor = datetime(2024, 1, 26, 9, 20, tzinfo=timezone.utc)
        saved = repository.save_sync(make_sync(current_cursor_field=cursor))
        assert repository.get_sync(saved.id).current_cursor_field == "2024-01-26T09:20:00+00:00"


class TestSyncRuns:
    def test_create_and_save(self, repository):
        sync = repository.save_sync(make_sync())
        run = repository.create_sync_run(SyncRun(sync_id=sync.id))
        assert run.status == SyncRunStatus.PENDING

        run.start()
        run.logs.append({"level": "info", "message": "hola"})
        repository.save_sync_run(run)

        loaded = repository.get_sync_run(run.id)
        assert loaded.status == SyncRunStatus.STARTED
        assert loaded.logs == [{"level": "info", "message": "hola"}]

    def test_checkpoint_updates_run_and_sync_cursor(self, repository):
        sync = repository.save_sync(make_sync(cursor_field="updated_at"))
        run = repository.create_sync_run(SyncRun(sync_id=sync.id))
        run.current_offset = 200
        run.total_query_rows = 200
        run.skipped_rows = 15

        repository.checkpoint(run, "2024-02-01")

        loaded = repository.get_sync_run(run.id)
        assert (loaded.current_offset, loaded.total_query_rows, loaded.skipped_rows) == (200, 200, 15)
        assert repository.get_sync(sync.id).current_cursor_field == "2024-02-01"

    def test_checkpoint_without_cursor_keeps_sync_cursor(self, repository):
        sync = repository.save_sync(make_sync(current_cursor_field="2024-01-01"))
        run = repository.create_sync_run(SyncRun(sync_id=sync.id))
        repository.checkpoint(run, None)
        assert repository.get_sync(sync.id).current_cursor_field == "2024-01-01"

    def test_discard_sync_runs(self, repository):
        sync = repository.save_sync(make_sync())
        first = repository.create_sync_run(SyncRun(sync_id=sync.id))
        second = repository.create_sync_run(SyncRun(sync_id=sync.id))

        assert [r.id for r in repository.list_sync_runs(sync.id)] == [second.id, first.id]
        assert repository.discard_sync_runs(sync.id) == 2
        assert repository.list_sync_runs(sync.id) == []


class TestSyncRecords:
    def test_upsert_is_unique_per_primary_key(self, repository):
        sync = repository.save_sync(make_sync())
        run = repository.create_sync_run(SyncRun(sync_id=sync.id))
        repository.save_sync_record(record(sync.id, run.id, "1", record={"a": 1}))
        updated = repository.save_sync_record(
            record(sync.id, run.id, "1", record={"a": 2}, action=DestinationAction.UPDATE)
        )

        found = repository.find_sync_record(sync.id, "1")
        assert found.id == updated.id
        assert found.record == {"a": 2}
        assert found.action == DestinationAction.UPDATE
        assert len(repository.pending_sync_records(run.id)) == 1

    def test_same_primary_key_in_another_sync(self, repository):
        first = repository.save_sync(make_sync())
        second = repository.save_sync(make_sync())
        run = repository.create_sync_run(SyncRun(sync_id=first.id))
        a = repository.save_sync_record(record(first.id, run.id, "1"))
        b = repository.save_sync_record(record(second.id, run.id, "1"))
        assert a.id != b.id

    def test_live_keys_and_mark_deleted(self, repository):
        sync = repository.save_sync(make_sync())
        first = repository.create_sync_run(SyncRun(sync_id=sync.id))
        for pk in ("1", "2", "3"):
            repository.save_sync_record(record(sync.id, first.id, pk, status=SyncRecordStatus.SUCCESS))
        second = repository.create_sync_run(SyncRun(sync_id=sync.id))

        assert repository.mark_deleted(sync.id, second.id, ["3"]) == 1

        assert repository.live_primary_keys(sync.id) == {"1", "2"}
        pending = repository.pending_sync_records(second.id)
        assert [(r.primary_key, r.action) for r in pending] == [("3", DestinationAction.DELETE)]
        assert repository.mark_deleted(sync.id, second.id, []) == 0

    def test_update_status_appends_log(self, repository):
        sync = repository.save_sync(make_sync())
        run = repository.create_sync_run(SyncRun(sync_id=sync.id))
        saved = repository.save_sync_record(record(sync.id, run.id, "1"))

        count = repository.update_sync_record_status(
            [saved.id], SyncRecordStatus.FAILED, {"level": "error", "message": "rejected"}
        )

        assert count == 1
        found = repository.find_sync_record(sync.id, "1")
        assert found.status == SyncRecordStatus.FAILED
        assert found.logs == [{"level": "error", "message": "rejected"}]
        assert repository.pending_sync_records(run.id) == []
