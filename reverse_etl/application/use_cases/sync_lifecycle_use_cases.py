"""
Casos de uso del ciclo de vida de un sync.

Aplica las transiciones de estado y sus efectos colaterales en el
orquestador (agendar, cancelar, arrancar corridas). Los fallos del
orquestador se reportan y nunca revierten el cambio local.
"""
from __future__ import annotations

from typing import Callable, Optional

from loguru import logger

from reverse_etl.application.interfaces.error_reporter import ErrorReporter
from reverse_etl.application.interfaces.workflow_orchestrator import WorkflowOrchestrator
from reverse_etl.application.use_cases.sync_run_workflow import SYNC_RUN_WORKFLOW
from reverse_etl.domain.entities.connector_types import Catalog
from reverse_etl.domain.entities.sync import Sync
from reverse_etl.domain.entities.sync_run import SyncRun
from reverse_etl.domain.repositories.sync_repository import ISyncRepository
from reverse_etl.infrastructure.observability.loguru_reporter import LoguruErrorReporter
from reverse_etl.shared.exceptions.domain import StateTransitionError
from reverse_etl.shared.exceptions.sync import OrchestratorError
from reverse_etl.shared.utils.datetime_utils import utc_now

CatalogProvider = Callable[[Sync], Optional[Catalog]]


def _default_catalog_provider(sync: Sync) -> Optional[Catalog]:
    from reverse_etl.infrastructure.external.connector_factory import build_destination

    destination = build_destination(sync)
    try:
        return destination.discover_schema()
    finally:
        destination.close()


class SyncLifecycleUseCases:
    """Casos de uso para crear, actualizar, habilitar, deshabilitar y descartar syncs."""

    def __init__(
        self,
        repository: ISyncRepository,
        orchestrator: WorkflowOrchestrator,
        error_reporter: Optional[ErrorReporter] = None,
        catalog_provider: Optional[CatalogProvider] = None,
    ):
        """
        Inicializa los casos de uso.

        Args:
            repository: Repositorio de syncs
            orchestrator: Orquestador de workflows
            error_reporter: Reporte de errores (por defecto loguru)
            catalog_provider: Descubre el catálogo del destino para validar
        """
        self.repository = repository
        self.orchestrator = orchestrator
        self.error_reporter = error_reporter or LoguruErrorReporter()
        self.catalog_provider = catalog_provider or _default_catalog_provider

    def create_sync(self, sync: Sync) -> Sync:
        """
        Valida y crea un sync; agenda su trigger si no es manual.

        Raises:
            SyncValidationError: si la configuración no es válida
        """
        sync.apply_http_sync_defaults()
        sync.validate(self.catalog_provider(sync))
        saved = self.repository.save_sync(sync)
        logger.info(f"Sync creado: {saved.id} ({saved.stream_name})")
        self._apply_side_effects(saved, previous=None)
        return saved

    def update_sync(self, sync: Sync) -> Sync:
        """
        Valida y guarda cambios; reagenda o cancela según lo que cambió.

        Raises:
            EntityNotFoundException: si el sync no existe
            SyncValidationError: si la configuración no es válida
        """
        previous = self.repository.get_sync(sync.id)
        sync.apply_http_sync_defaults()
        sync.validate(self.catalog_provider(sync))
        saved = self.repository.save_sync(sync)
        self._apply_side_effects(saved, previous=previous)
        return saved

    def disable_sync(self, sync_id: int) -> Sync:
        """Deshabilita el sync y solicita cancelar su workflow."""
        return self._transition(sync_id, "disable")

    def enable_sync(self, sync_id: int) -> Sync:
        """Vuelve el sync a pending y reagenda su trigger."""
        return self._transition(sync_id, "enable")

    def discard_sync(self, sync_id: int) -> Sync:
        """
        Descarta (soft delete) el sync y sus corridas y cancela su ejecución.
        """
        sync = self.repository.get_sync(sync_id)
        sync.discarded_at = utc_now()
        saved = self.repository.save_sync(sync)
        discarded_runs = self.repository.discard_sync_runs(sync_id)
        logger.info(f"Sync {sync_id} descartado junto a {discarded_runs} corridas")
        self._call_orchestrator("cancel", saved, lambda: self.orchestrator.cancel(saved.workflow_id))
        return saved

    def trigger_run(self, sync_id: int) -> SyncRun:
        """
        Crea una corrida pending y la arranca en el orquestador.

        Si el orquestador falla, la corrida queda pending.
        """
        sync = self.repository.get_sync(sync_id)
        sync_run = self.repository.create_sync_run(SyncRun(sync_id=sync.id))
        logger.info(f"SyncRun {sync_run.id} creado para el sync {sync_id}")
        self._call_orchestrator(
            "start",
            sync,
            lambda: self.orchestrator.start(
                SYNC_RUN_WORKFLOW,
                {"sync_run_id": sync_run.id, "workflow_id": sync.workflow_id},
            ),
        )
        return sync_run

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _transition(self, sync_id: int, event: str) -> Sync:
        sync = self.repository.get_sync(sync_id)
        previous = self.repository.get_sync(sync_id)
        try:
            sync.fire(event)
        except StateTransitionError as e:
            logger.warning(f"Transicion '{event}' rechazada para el sync {sync_id}: {e.message}")
            return sync

        saved = self.repository.save_sync(sync)
        self._apply_side_effects(saved, previous=previous)
        return saved

    def _apply_side_effects(self, sync: Sync, previous: Optional[Sync]) -> None:
        if sync.schedule_sync_required(previous):
            self._call_orchestrator(
                "schedule",
                sync,
                lambda: self.orchestrator.schedule(sync.id, sync.schedule_cron_expression()),
            )
        if sync.terminate_sync_required(previous):
            self._call_orchestrator("cancel", sync, lambda: self.orchestrator.cancel(sync.workflow_id))

    def _call_orchestrator(self, operation: str, sync: Sync, call: Callable[[], object]) -> None:
        try:
            call()
        except Exception as e:
            error = OrchestratorError(
                f"Fallo '{operation}' en el orquestador para el sync {sync.id}: {e}",
                details={"sync_id": sync.id, "operation": operation},
            )
            logger.error(error.message)
            self.error_reporter.report(error, {"sync_id": sync.id, "workflow_id": sync.workflow_id})
