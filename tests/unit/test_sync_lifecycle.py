"""
Tests de los casos de uso del ciclo de vida de un sync.
"""
import pytest

from reverse_etl.application.use_cases.sync_lifecycle_use_cases import SyncLifecycleUseCases
from reverse_etl.application.use_cases.sync_run_workflow import SYNC_RUN_WORKFLOW
from reverse_etl.domain.entities.sync import ConnectorConfig
from reverse_etl.domain.entities.sync_run import SyncRun
from reverse_etl.shared.constants.sync_constants import (
    ScheduleType,
    SyncIntervalUnit,
    SyncRunStatus,
    SyncStatus,
)
from reverse_etl.shared.exceptions.domain import EntityNotFoundException, SyncValidationError
from reverse_etl.shared.exceptions.sync import OrchestratorError
from tests.conftest import FakeOrchestrator, catalog_for, make_sync


def interval_sync(**overrides):
    values = dict(schedule_type=ScheduleType.INTERVAL, sync_interval=2, sync_interval_unit=SyncIntervalUnit.HOURS)
    values.update(overrides)
    return make_sync(**values)


def use_cases(repository, orchestrator, reporter, streams=("CRM/Users", "webhook")):
    return SyncLifecycleUseCases(
        repository,
        orchestrator,
        error_reporter=reporter,
        catalog_provider=lambda sync: catalog_for(*streams),
    )


class TestCreate:
    def test_manual_sync_is_not_scheduled(self, repository, reporter):
        orchestrator = FakeOrchestrator()
        created = use_cases(repository, orchestrator, reporter).create_sync(make_sync())

        assert created.id is not None
        assert orchestrator.scheduled == []

    def test_interval_sync_is_scheduled(self, repository, reporter):
        orchestrator = FakeOrchestrator()
        created = use_cases(repository, orchestrator, reporter).create_sync(interval_sync())

        assert orchestrator.scheduled == [(created.id, "0 */2 * * *")]

    def test_invalid_sync_is_not_saved(self, repository, reporter):
        orchestrator = FakeOrchestrator()
        with pytest.raises(SyncValidationError):
            use_cases(repository, orchestrator, reporter, streams=()).create_sync(interval_sync())

        with pytest.raises(EntityNotFoundException):
            repository.get_sync(1)
        assert orchestrator.scheduled == []

    def test_http_defaults_are_applied(self, repository, reporter):
        sync = make_sync(
            destination=ConnectorConfig("http", {"destination_url": "https://hooks.test"}),
            stream_name="webhook",
        )
        created = use_cases(repository, FakeOrchestrator(), reporter).create_sync(sync)

        assert created.http_sync_settings == {"events": ["insert", "update", "delete"], "batch_size": 1000}

    def test_orchestrator_failure_keeps_saved_sync(self, repository, reporter):
        orchestrator = FakeOrchestrator(fail=True)
        created = use_cases(repository, orchestrator, reporter).create_sync(interval_sync())

        assert repository.get_sync(created.id).status == SyncStatus.PENDING
        error, context = reporter.reported[0]
        assert isinstance(error, OrchestratorError)
        assert context["workflow_id"] == f"sync-{created.id}"


class TestUpdate:
    def test_interval_change_reschedules(self, repository, reporter):
        orchestrator = FakeOrchestrator()
        cases = use_cases(repository, orchestrator, reporter)
        created = cases.create_sync(interval_sync())

        created.sync_interval = 30
        created.sync_interval_unit = SyncIntervalUnit.MINUTES
        cases.update_sync(created)

        assert orchestrator.scheduled[-1] == (created.id, "*/30 * * * *")

    def test_unrelated_change_does_not_reschedule(self, repository, reporter):
        orchestrator = FakeOrchestrator()
        cases = use_cases(repository, orchestrator, reporter)
        created = cases.create_sync(interval_sync())

        created.configuration = [{"mapping_type": "standard", "from": "id", "to": "ID"}]
        cases.update_sync(created)

        assert len(orchestrator.scheduled) == 1


class TestEnableDisable:
    def test_disable_cancels_workflow(self, repository, reporter):
        orchestrator = FakeOrchestrator()
        cases = use_cases(repository, orchestrator, reporter)
        created = cases.create_sync(interval_sync())

        disabled = cases.disable_sync(created.id)

        assert disabled.status == SyncStatus.DISABLED
        assert orchestrator.canceled == [f"sync-{created.id}"]

    def test_enable_reschedules(self, repository, reporter):
        orchestrator = FakeOrchestrator()
        cases = use_cases(repository, orchestrator, reporter)
        created = cases.create_sync(interval_sync())
        cases.disable_sync(created.id)

        enabled = cases.enable_sync(created.id)

        assert enabled.status == SyncStatus.PENDING
        assert len(orchestrator.scheduled) == 2

    def test_illegal_transition_is_ignored(self, repository, reporter):
        orchestrator = FakeOrchestrator()
        cases = use_cases(repository, orchestrator, reporter)
        created = cases.create_sync(make_sync())

        result = cases.enable_sync(created.id)

        assert result.status == SyncStatus.PENDING
        assert orchestrator.canceled == []
        assert orchestrator.scheduled == []


class TestDiscard:
    def test_discard_soft_deletes_sync_and_runs(self, repository, reporter):
        orchestrator = FakeOrchestrator()
        cases = use_cases(repository, orchestrator, reporter)
        created = cases.create_sync(make_sync())
        repository.create_sync_run(SyncRun(sync_id=created.id))

        discarded = cases.discard_sync(created.id)

        assert discarded.discarded_at is not None
        with pytest.raises(EntityNotFoundException):
            repository.get_sync(created.id)
        assert repository.list_sync_runs(created.id) == []
        assert orchestrator.canceled == [f"sync-{created.id}"]


class TestTriggerRun:
    def test_creates_pending_run_and_starts_workflow(self, repository, reporter):
        orchestrator = FakeOrchestrator()
        cases = use_cases(repository, orchestrator, reporter)
        created = cases.create_sync(make_sync())

        run = cases.trigger_run(created.id)

        assert run.status == SyncRunStatus.PENDING
        assert orchestrator.started == [
            (SYNC_RUN_WORKFLOW, {"sync_run_id": run.id, "workflow_id": f"sync-{created.id}"})
        ]

    def test_orchestrator_failure_leaves_run_pending(self, repository, reporter):
        created = repository.save_sync(make_sync())
        cases = use_cases(repository, FakeOrchestrator(fail=True), reporter)

        run = cases.trigger_run(created.id)

        assert repository.get_sync_run(run.id).status == SyncRunStatus.PENDING
        assert isinstance(reporter.reported[0][0], OrchestratorError)
