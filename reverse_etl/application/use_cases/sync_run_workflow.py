"""
Caso de uso: ejecución completa de una corrida (extracción + carga).
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from loguru import logger

from reverse_etl.application.interfaces.error_reporter import ErrorReporter
from reverse_etl.application.use_cases.incremental_extract import ExtractionResult, IncrementalExtractor
from reverse_etl.application.use_cases.sync_run_loader import LoadResult, SyncRunLoader
from reverse_etl.domain.repositories.sync_repository import ISyncRepository
from reverse_etl.infrastructure.observability.loguru_reporter import LoguruErrorReporter
from reverse_etl.shared.exceptions.base import user_message
from reverse_etl.shared.exceptions.domain import StateTransitionError
from reverse_etl.shared.utils.datetime_utils import utc_now

SYNC_RUN_WORKFLOW = "sync_run"


@dataclass
class SyncRunOutcome:
    """Resultado de ejecutar una corrida."""

    sync_run_id: int
    extraction: Optional[ExtractionResult] = None
    load: Optional[LoadResult] = None

    @property
    def canceled(self) -> bool:
        return bool(self.extraction and self.extraction.canceled)


class SyncRunWorkflow:
    """
    Orquesta una corrida: start -> extracción (querying/queued) -> carga
    (in_progress -> success|failed).

    Si la extracción o la carga lanzan una excepción, la corrida y el sync
    pasan a failed antes de propagarla.
    """

    def __init__(
        self,
        repository: ISyncRepository,
        extractor: IncrementalExtractor,
        loader: SyncRunLoader,
        error_reporter: Optional[ErrorReporter] = None,
    ) -> None:
        self.repository = repository
        self.extractor = extractor
        self.loader = loader
        self.error_reporter = error_reporter or LoguruErrorReporter()

    def execute(self, sync_run_id: int, workflow_id: Optional[str] = None) -> SyncRunOutcome:
        """
        Ejecuta la corrida indicada.

        Args:
            sync_run_id: ID de la corrida
            workflow_id: ID del workflow (heartbeats y cancelación)
        """
        outcome = SyncRunOutcome(sync_run_id=sync_run_id)
        sync_run = self.repository.get_sync_run(sync_run_id)
        if sync_run.may_start():
            sync_run.start()
            sync_run.started_at = utc_now()
            self.repository.save_sync_run(sync_run)

        logger.info(f"Ejecutando SyncRun {sync_run_id} (workflow {workflow_id})")
        try:
            outcome.extraction = self.extractor.read(sync_run_id, workflow_id=workflow_id)
            if outcome.canceled:
                logger.warning(f"SyncRun {sync_run_id} cancelado, se omite la carga")
                return outcome
            outcome.load = self.loader.load(sync_run_id)
        except Exception as e:
            self._mark_failed(sync_run_id, e)
            raise

        return outcome

    def __call__(self, workflow_id: str, sync_run_id: int) -> SyncRunOutcome:
        """Handler compatible con LocalWorkflowOrchestrator.register()."""
        return self.execute(sync_run_id, workflow_id=workflow_id)

    def _mark_failed(self, sync_run_id: int, error: Exception) -> None:
        sync_run = self.repository.get_sync_run(sync_run_id)
        if not sync_run.may_fail():
            return

        sync_run.fail(user_message(error))
        sync_run.finished_at = utc_now()
        self.repository.save_sync_run(sync_run)

        sync = self.repository.get_sync(sync_run.sync_id)
        try:
            sync.fail()
        except StateTransitionError as e:
            logger.warning(f"Transicion de sync omitida: {e.message}")
        else:
            self.repository.save_sync(sync)
        logger.error(f"SyncRun {sync_run_id} marcado como fallido: {error}")
