"""
Tests de la corrida completa: extraccion + carga.
"""
import pytest

from reverse_etl.application.use_cases.incremental_extract import IncrementalExtractor
from reverse_etl.application.use_cases.sync_lifecycle_use_cases import SyncLifecycleUseCases
from reverse_etl.application.use_cases.sync_run_loader import SyncRunLoader
from reverse_etl.application.use_cases.sync_run_workflow import SYNC_RUN_WORKFLOW, SyncRunWorkflow
from reverse_etl.domain.entities.sync_run import SyncRun
from reverse_etl.infrastructure.orchestration.local_orchestrator import LocalWorkflowOrchestrator
from reverse_etl.shared.constants.sync_constants import SyncRunStatus, SyncStatus
from reverse_etl.shared.exceptions.sync import BatchIOError
from tests.conftest import FakeDestination, FakeOrchestrator, FakeSource, catalog_for, make_sync


class BrokenSource(FakeSource):
    def read(self, batch_params):
        raise ConnectionError("connection reset")


def users(*ids):
    return [{"id": i, "name": f"user-{i}"} for i in ids]


def build_workflow(repository, reporter, source, destination, orchestrator=None):
    extractor = IncrementalExtractor(
        repository,
        source_factory=lambda sync: source,
        orchestrator=orchestrator,
        error_reporter=reporter,
        thread_count=2,
        batch_size=2,
    )
    loader = SyncRunLoader(
        repository,
        destination_factory=lambda sync, run_id, error_reporter: destination,
        error_reporter=reporter,
    )
    return SyncRunWorkflow(repository, extractor, loader, error_reporter=reporter)


@pytest.fixture
def sync(repository):
    return repository.save_sync(make_sync())


class TestExecute:
    def test_full_run(self, repository, sync, reporter):
        destination = FakeDestination()
        run = repository.create_sync_run(SyncRun(sync_id=sync.id))

        outcome = build_workflow(repository, reporter, FakeSource(users(1, 2, 3)), destination).execute(run.id)

        assert outcome.extraction.total_query_rows == 3
        assert outcome.load.successful_rows == 3
        saved = repository.get_sync_run(run.id)
        assert saved.status == SyncRunStatus.SUCCESS
        assert saved.started_at is not None
        assert repository.get_sync(sync.id).status == SyncStatus.HEALTHY

    def test_second_run_only_sends_changes(self, repository, sync, reporter):
        first = repository.create_sync_run(SyncRun(sync_id=sync.id))
        build_workflow(repository, reporter, FakeSource(users(1, 2, 3)), FakeDestination()).execute(first.id)

        rows = users(1, 2)
        rows[0]["name"] = "renamed"
        destination = FakeDestination()
        second = repository.create_sync_run(SyncRun(sync_id=sync.id))
        outcome = build_workflow(repository, reporter, FakeSource(rows), destination).execute(second.id)

        assert outcome.extraction.skipped_rows == 1
        sent = {(c["action"].event, r["ID"]) for c in destination.calls for r in c["records"]}
        assert sent == {("update", 1), ("delete", 3)}

    def test_canceled_run_skips_load(self, repository, sync, reporter):
        destination = FakeDestination()
        run = repository.create_sync_run(SyncRun(sync_id=sync.id))
        workflow = build_workflow(
            repository, reporter, FakeSource(users(1, 2, 3)), destination, FakeOrchestrator(cancel_after=1)
        )

        outcome = workflow.execute(run.id, workflow_id="sync-1")

        assert outcome.canceled
        assert outcome.load is None
        assert destination.calls == []
        assert repository.get_sync_run(run.id).status == SyncRunStatus.CANCELED

    def test_extraction_error_fails_run_and_sync(self, repository, sync, reporter):
        run = repository.create_sync_run(SyncRun(sync_id=sync.id))
        workflow = build_workflow(repository, reporter, BrokenSource([]), FakeDestination())

        with pytest.raises(BatchIOError):
            workflow.execute(run.id)

        saved = repository.get_sync_run(run.id)
        assert saved.status == SyncRunStatus.FAILED
        assert saved.error == BatchIOError.user_message
        assert repository.get_sync(sync.id).status == SyncStatus.FAILED


class TestWithLocalOrchestrator:
    def test_trigger_run_executes_in_background(self, repository, sync, reporter):
        orchestrator = LocalWorkflowOrchestrator()
        destination = FakeDestination()
        workflow = build_workflow(repository, reporter, FakeSource(users(1, 2)), destination, orchestrator)
        orchestrator.register(SYNC_RUN_WORKFLOW, workflow)
        lifecycle = SyncLifecycleUseCases(
            repository, orchestrator, error_reporter=reporter, catalog_provider=lambda s: catalog_for("CRM/Users")
        )

        run = lifecycle.trigger_run(sync.id)
        assert orchestrator.wait(sync.workflow_id, timeout=10)

        assert repository.get_sync_run(run.id).status == SyncRunStatus.SUCCESS
        assert orchestrator.last_heartbeat(sync.workflow_id)["sync_run_id"] == run.id
        assert sum(len(c["records"]) for c in destination.calls) == 2
