"""
Caso de uso: carga de los registros pendientes de una corrida al destino.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from loguru import logger

from reverse_etl.application.interfaces.connectors import DestinationConnector
from reverse_etl.application.interfaces.error_reporter import ErrorReporter
from reverse_etl.domain.entities.connector_types import WriteResult, log_request_response
from reverse_etl.domain.entities.sync import Sync
from reverse_etl.domain.entities.sync_record import SyncRecord
from reverse_etl.domain.entities.sync_run import SyncRun
from reverse_etl.domain.repositories.sync_repository import ISyncRepository
from reverse_etl.infrastructure.observability.loguru_reporter import LoguruErrorReporter
from reverse_etl.shared.constants.sync_constants import DestinationAction, SyncRecordStatus
from reverse_etl.shared.exceptions.base import user_message
from reverse_etl.shared.exceptions.domain import StateTransitionError
from reverse_etl.shared.exceptions.sync import DestinationSetupError
from reverse_etl.shared.utils.datetime_utils import utc_now

DestinationFactory = Callable[[Sync, Optional[int], Optional[ErrorReporter]], DestinationConnector]

# Orden de envio de las acciones al destino
ACTION_ORDER = (DestinationAction.INSERT, DestinationAction.UPDATE, DestinationAction.DELETE)


@dataclass
class LoadResult:
    """Resumen de una carga."""

    sync_run_id: int
    executed: bool = True
    total_rows: int = 0
    successful_rows: int = 0
    failed_rows: int = 0
    filtered_rows: int = 0


class SyncRunLoader:
    """
    Envia los SyncRecords pendientes de una corrida al destino.

    Flujo:
    1. La corrida debe poder pasar a in_progress.
    2. Los registros se agrupan por accion y se envian en lotes del tamano
       del destino. Para destinos HTTP, las acciones fuera del filtro de
       eventos se marcan success sin llamada.
    3. Cada registro queda success o failed; la corrida termina en success
       (o failed si fallaron todos) y el sync se marca healthy o failed.
    """

    def __init__(
        self,
        repository: ISyncRepository,
        destination_factory: Optional[DestinationFactory] = None,
        error_reporter: Optional[ErrorReporter] = None,
    ) -> None:
        self.repository = repository
        self.destination_factory = destination_factory or _default_destination_factory
        self.error_reporter = error_reporter or LoguruErrorReporter()

    def load(self, sync_run_id: int) -> LoadResult:
        sync_run = self.repository.get_sync_run(sync_run_id)
        if not sync_run.may_progress():
            logger.warning(
                f"SyncRun {sync_run_id} en estado '{sync_run.status.value}' no puede pasar a in_progress, se omite"
            )
            return LoadResult(sync_run_id=sync_run_id, executed=False)

        sync = self.repository.get_sync(sync_run.sync_id)
        sync_run.progress()
        self.repository.save_sync_run(sync_run)

        result = LoadResult(sync_run_id=sync_run_id)
        try:
            destination = self.destination_factory(sync, sync_run.id, self.error_reporter)
        except DestinationSetupError as e:
            self._fail_run(sync, sync_run, e)
            raise

        try:
            records = self.repository.pending_sync_records(sync_run.id)
            logger.info(f"Cargando {len(records)} registros pendientes de la corrida {sync_run.id}")
            for action in ACTION_ORDER:
                group = [r for r in records if r.action == action]
                if group:
                    self._load_action(sync, sync_run, destination, action, group, result)
        except DestinationSetupError as e:
            self._fail_run(sync, sync_run, e)
            raise
        finally:
            destination.close()

        self._finish(sync, sync_run, result)
        return result

    def _load_action(
        self,
        sync: Sync,
        sync_run: SyncRun,
        destination: DestinationConnector,
        action: DestinationAction,
        records: List[SyncRecord],
        result: LoadResult,
    ) -> None:
        if sync.is_http_destination and action.event not in sync.http_events_filter():
            self.repository.update_sync_record_status(
                [r.id for r in records],
                SyncRecordStatus.SUCCESS,
                {"level": "info", "message": f"Evento '{action.event}' filtrado por la configuracion HTTP"},
            )
            result.filtered_rows += len(records)
            logger.info(f"{len(records)} registros '{action.event}' omitidos por el filtro de eventos")
            return

        batch_size = max(destination.batch_size, 1)
        for start in range(0, len(records), batch_size):
            batch = records[start:start + batch_size]
            write_result = self._write_batch(sync, sync_run, destination, action, batch)

            succeeded = [batch[i].id for i in write_result.succeeded_indexes]
            failed = [batch[i].id for i in write_result.failed_indexes]
            self.repository.update_sync_record_status(succeeded, SyncRecordStatus.SUCCESS)
            self.repository.update_sync_record_status(
                failed,
                SyncRecordStatus.FAILED,
                {"level": "error", "message": f"Fallo la escritura '{action.event}' en el destino"},
            )

            sync_run.total_rows += len(batch)
            sync_run.successful_rows += write_result.success
            sync_run.failed_rows += write_result.failed
            sync_run.logs.extend(write_result.logs)
            self.repository.save_sync_run(sync_run)

            result.total_rows += len(batch)
            result.successful_rows += write_result.success
            result.failed_rows += write_result.failed

    def _write_batch(
        self,
        sync: Sync,
        sync_run: SyncRun,
        destination: DestinationConnector,
        action: DestinationAction,
        batch: List[SyncRecord],
    ) -> WriteResult:
        payloads: List[Dict[str, Any]] = [record.record for record in batch]
        try:
            return destination.write(payloads, sync.destination_primary_key, action)
        except DestinationSetupError:
            raise
        except Exception as e:
            self.error_reporter.report(
                e, {"sync_id": sync.id, "sync_run_id": sync_run.id, "stage": "load", "action": action.value}
            )
            return WriteResult(
                failed=len(batch),
                failed_indexes=list(range(len(batch))),
                logs=[log_request_response("error", [action.value, len(batch)], str(e))],
            )

    def _finish(self, sync: Sync, sync_run: SyncRun, result: LoadResult) -> None:
        sync_run.finished_at = utc_now()
        if result.total_rows and not result.successful_rows:
            sync_run.fail("Todos los registros fallaron al escribirse en el destino")
            self._fire_sync(sync, "fail")
            logger.error(f"SyncRun {sync_run.id} fallido: {result.failed_rows} registros fallidos")
        else:
            sync_run.complete()
            self._fire_sync(sync, "complete")
            logger.success(
                f"SyncRun {sync_run.id} completado: {result.successful_rows} exitosos, "
                f"{result.failed_rows} fallidos, {result.filtered_rows} filtrados"
            )
        self.repository.save_sync_run(sync_run)
        self.repository.save_sync(sync)

    def _fail_run(self, sync: Sync, sync_run: SyncRun, error: Exception) -> None:
        sync_run.fail(user_message(error))
        sync_run.finished_at = utc_now()
        self._fire_sync(sync, "fail")
        self.repository.save_sync_run(sync_run)
        self.repository.save_sync(sync)

    @staticmethod
    def _fire_sync(sync: Sync, event: str) -> None:
        try:
            sync.fire(event)
        except StateTransitionError as e:
            logger.warning(f"Transicion de sync omitida: {e.message}")


def _default_destination_factory(
    sync: Sync,
    sync_run_id: Optional[int],
    error_reporter: Optional[ErrorReporter],
) -> DestinationConnector:
    from reverse_etl.infrastructure.external.connector_factory import build_destination

    return build_destination(sync, sync_run_id, error_reporter)
