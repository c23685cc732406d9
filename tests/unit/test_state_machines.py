"""
Tests de las maquinas de estado de Sync y SyncRun.
"""
import pytest

from reverse_etl.domain.entities.sync_run import SyncRun
from reverse_etl.shared.constants.sync_constants import SyncRunStatus, SyncStatus
from reverse_etl.shared.exceptions.domain import StateTransitionError
from tests.conftest import make_sync


class TestSyncStateMachine:
    """Transiciones del sync."""

    def test_initial_state_is_pending(self):
        assert make_sync().status == SyncStatus.PENDING

    def test_complete_and_fail_cycle(self):
        sync = make_sync()
        sync.complete()
        assert sync.status == SyncStatus.HEALTHY
        sync.fail()
        assert sync.status == SyncStatus.FAILED

    def test_failed_cannot_complete(self):
        sync = make_sync(status=SyncStatus.FAILED)
        assert not sync.may_complete()
        with pytest.raises(StateTransitionError):
            sync.complete()
        assert sync.status == SyncStatus.FAILED

    def test_disable_and_enable(self):
        sync = make_sync(status=SyncStatus.HEALTHY)
        sync.disable()
        assert sync.status == SyncStatus.DISABLED
        sync.enable()
        assert sync.status == SyncStatus.PENDING

    def test_enable_requires_disabled(self):
        sync = make_sync()
        with pytest.raises(StateTransitionError) as exc_info:
            sync.enable()
        assert exc_info.value.event == "enable"
        assert sync.status == SyncStatus.PENDING

    def test_unknown_event_is_rejected(self):
        sync = make_sync()
        assert not sync.may_fire("explode")
        with pytest.raises(StateTransitionError):
            sync.fire("explode")


class TestSyncRunStateMachine:
    """Transiciones de la corrida."""

    def test_happy_path(self):
        run = SyncRun(sync_id=1)
        run.start()
        run.query()
        run.queue()
        run.progress()
        run.complete()
        assert run.status == SyncRunStatus.SUCCESS
        assert run.is_terminal

    def test_query_allowed_from_pending(self):
        run = SyncRun(sync_id=1)
        run.query()
        assert run.status == SyncRunStatus.QUERYING

    def test_fail_stores_error(self):
        run = SyncRun(sync_id=1, status=SyncRunStatus.QUEUED)
        run.fail("boom")
        assert run.status == SyncRunStatus.FAILED
        assert run.error == "boom"

    def test_pending_cannot_fail(self):
        run = SyncRun(sync_id=1)
        assert not run.may_fail()
        with pytest.raises(StateTransitionError):
            run.fail("boom")
        assert run.status == SyncRunStatus.PENDING
        assert run.error is None

    @pytest.mark.parametrize(
        "status",
        [
            SyncRunStatus.PENDING,
            SyncRunStatus.STARTED,
            SyncRunStatus.QUERYING,
            SyncRunStatus.QUEUED,
            SyncRunStatus.IN_PROGRESS,
        ],
    )
    def test_abort_from_non_terminal(self, status):
        run = SyncRun(sync_id=1, status=status)
        run.abort()
        assert run.status == SyncRunStatus.CANCELED

    @pytest.mark.parametrize(
        "status",
        [SyncRunStatus.SUCCESS, SyncRunStatus.FAILED, SyncRunStatus.CANCELED],
    )
    def test_terminal_states_reject_every_event(self, status):
        run = SyncRun(sync_id=1, status=status)
        for event in SyncRun.TRANSITIONS:
            assert not run.may_fire(event)
        with pytest.raises(StateTransitionError):
            run.abort()
        assert run.status == status

    def test_skipping_states_is_rejected(self):
        run = SyncRun(sync_id=1, status=SyncRunStatus.QUERYING)
        assert not run.may_progress()
        with pytest.raises(StateTransitionError):
            run.progress()
