"""
Caso de uso: extraccion incremental de una corrida.

Lee el origen por lotes, transforma cada fila, la deduplica por fingerprint
y deja los SyncRecords pendientes listos para el loader.
"""
from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Set

from loguru import logger

from reverse_etl.application.interfaces.connectors import SourceConnector
from reverse_etl.application.interfaces.error_reporter import ErrorReporter
from reverse_etl.application.interfaces.workflow_orchestrator import WorkflowOrchestrator
from reverse_etl.application.services.batch_query import BatchQueryRunner
from reverse_etl.application.services.fingerprint import generate_fingerprint
from reverse_etl.application.services.record_transformer import RecordTransformer
from reverse_etl.core.config import settings
from reverse_etl.domain.entities.connector_types import BatchParams
from reverse_etl.domain.entities.sync import Sync
from reverse_etl.domain.entities.sync_record import SyncRecord
from reverse_etl.domain.entities.sync_run import SyncRun
from reverse_etl.domain.repositories.sync_repository import ISyncRepository
from reverse_etl.infrastructure.observability.loguru_reporter import LoguruErrorReporter
from reverse_etl.shared.constants.sync_constants import (
    DestinationAction,
    IncrementStrategy,
    SyncRecordStatus,
)
from reverse_etl.shared.exceptions.base import user_message
from reverse_etl.shared.exceptions.sync import OrchestratorError, TransformError
from reverse_etl.shared.utils.datetime_utils import utc_now

SourceFactory = Callable[[Sync], SourceConnector]


@dataclass
class ExtractionResult:
    """Resumen de una extraccion."""

    sync_run_id: int
    executed: bool = True
    canceled: bool = False
    total_query_rows: int = 0
    skipped_rows: int = 0
    failed_rows: int = 0
    deleted_rows: int = 0


class SeenKeyTracker:
    """
    Claves vistas y contadores de la corrida, compartidos por los workers.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._keys: Set[str] = set()
        self.skipped = 0
        self.failed = 0

    def add(self, primary_key: str) -> None:
        with self._lock:
            self._keys.add(primary_key)

    def mark_skipped(self) -> None:
        with self._lock:
            self.skipped += 1

    def mark_failed(self) -> None:
        with self._lock:
            self.failed += 1

    @property
    def keys(self) -> Set[str]:
        with self._lock:
            return set(self._keys)


class IncrementalExtractor:
    """
    Extractor de una corrida.

    Flujo:
    1. Valida que la corrida pueda pasar a querying.
    2. Recorre el origen por lotes; cada lote se procesa con un pool acotado
       de threads.
    3. Persiste offset, contadores y cursor despues de cada lote y envia un
       heartbeat al orquestador; si este pide cancelar, la corrida se aborta.
    4. Marca como borrados los registros vivos que no aparecieron.
    5. Deja la corrida en queued.
    """

    def __init__(
        self,
        repository: ISyncRepository,
        source_factory: SourceFactory,
        transformer: Optional[RecordTransformer] = None,
        orchestrator: Optional[WorkflowOrchestrator] = None,
        error_reporter: Optional[ErrorReporter] = None,
        thread_count: Optional[int] = None,
        batch_size: Optional[int] = None,
    ) -> None:
        self.repository = repository
        self.source_factory = source_factory
        self.transformer = transformer or RecordTransformer()
        self.orchestrator = orchestrator
        self.error_reporter = error_reporter or LoguruErrorReporter()
        self.thread_count = thread_count or settings.EXTRACTOR_THREAD_COUNT
        self.batch_size = batch_size or settings.EXTRACTOR_BATCH_SIZE

    def read(self, sync_run_id: int, workflow_id: Optional[str] = None) -> ExtractionResult:
        """
        Ejecuta la extraccion de una corrida.

        Args:
            sync_run_id: ID de la corrida
            workflow_id: ID del workflow para los heartbeats

        Returns:
            ExtractionResult: contadores de la extraccion

        Raises:
            Exception: cualquier error de lectura o persistencia, ya reportado
        """
        sync_run = self.repository.get_sync_run(sync_run_id)
        if not sync_run.may_query():
            logger.warning(
                f"SyncRun {sync_run_id} en estado '{sync_run.status.value}' no puede pasar a querying, se omite"
            )
            return ExtractionResult(sync_run_id=sync_run_id, executed=False)

        sync = self.repository.get_sync(sync_run.sync_id)
        workflow_id = workflow_id or f"sync-run-{sync_run_id}"

        try:
            return self._extract(sync, sync_run, workflow_id)
        except Exception as e:
            self.error_reporter.report(
                e,
                {
                    "sync_id": sync.id,
                    "sync_run_id": sync_run.id,
                    "stage": "extract",
                    "user_message": user_message(e),
                },
            )
            raise

    def _extract(self, sync: Sync, sync_run: SyncRun, workflow_id: str) -> ExtractionResult:
        resumed = sync_run.current_offset not in (0, self._start_offset(sync))
        sync_run.query()
        if sync_run.started_at is None:
            sync_run.started_at = utc_now()
        if not resumed:
            # Snapshot del cursor: se mantiene fijo durante toda la corrida
            sync_run.current_cursor_field = sync.current_cursor_field
        self.repository.save_sync_run(sync_run)

        params = self.batch_params(sync, sync_run)
        tracker = SeenKeyTracker()
        logger.info(
            f"Extrayendo sync {sync.id} (run {sync_run.id}) desde offset={params.offset}, "
            f"limit={params.limit}, cursor={params.current_cursor_field!r}"
        )

        with self.source_factory(sync) as source, ThreadPoolExecutor(
            max_workers=self.thread_count, thread_name_prefix=f"extract-{sync_run.id}"
        ) as pool:
            for batch in BatchQueryRunner(source).iter_batches(params):
                skipped_before = tracker.skipped
                list(
                    pool.map(
                        lambda row: self._process_record(row, sync, sync_run, tracker),
                        batch.records,
                    )
                )

                sync_run.total_query_rows += len(batch.records)
                sync_run.skipped_rows += tracker.skipped - skipped_before
                sync_run.current_offset = batch.next_offset
                self.repository.checkpoint(sync_run, batch.next_cursor_value)
                sync.current_cursor_field = batch.next_cursor_value

                logger.debug(
                    f"Lote procesado run {sync_run.id}: {len(batch.records)} filas, "
                    f"offset siguiente={batch.next_offset}"
                )

                if self._cancel_requested(workflow_id, sync_run, params):
                    sync_run.abort()
                    sync_run.finished_at = utc_now()
                    self.repository.save_sync_run(sync_run)
                    logger.warning(
                        f"SyncRun {sync_run.id} cancelado en offset={sync_run.current_offset}"
                    )
                    return self._result(sync_run, tracker, canceled=True)

        deleted = self._enqueue_deleted_records(sync, sync_run, tracker, resumed)

        sync_run.queue()
        self.repository.save_sync_run(sync_run)
        logger.success(
            f"Extraccion completada run {sync_run.id}: {sync_run.total_query_rows} filas, "
            f"{sync_run.skipped_rows} sin cambios, {tracker.failed} fallidas, {deleted} borradas"
        )
        return self._result(sync_run, tracker, deleted=deleted)

    def batch_params(self, sync: Sync, sync_run: SyncRun) -> BatchParams:
        """Parametros de lectura segun la estrategia del origen y el checkpoint de la corrida."""
        strategy_config = sync.increment_strategy_config()
        strategy = IncrementStrategy.OFFSET
        limit = self.batch_size
        if strategy_config is not None:
            strategy = strategy_config.increment_strategy
            limit = strategy_config.limit or limit

        return BatchParams(
            query=sync.model.query,
            primary_key=sync.source_primary_key,
            offset=sync_run.current_offset or self._start_offset(sync),
            limit=limit,
            cursor_field=sync.cursor_field,
            current_cursor_field=sync_run.current_cursor_field,
            increment_strategy=strategy,
            sync_id=sync.id,
            sync_run_id=sync_run.id,
        )

    @staticmethod
    def _start_offset(sync: Sync) -> int:
        strategy_config = sync.increment_strategy_config()
        return strategy_config.offset if strategy_config is not None else 0

    # ------------------------------------------------------------------
    # Procesamiento de filas
    # ------------------------------------------------------------------

    def _process_record(
        self,
        row: Dict[str, Any],
        sync: Sync,
        sync_run: SyncRun,
        tracker: SeenKeyTracker,
    ) -> None:
        raw_key = row.get(sync.source_primary_key)
        if raw_key is None or raw_key == "":
            logger.warning(
                f"Fila sin primary key '{sync.source_primary_key}' en run {sync_run.id}, se omite"
            )
            tracker.mark_failed()
            return

        primary_key = str(raw_key)
        tracker.add(primary_key)
        existing = self.repository.find_sync_record(sync.id, primary_key)

        try:
            transformed = self.transformer.transform(sync.configuration, row)
        except TransformError as e:
            tracker.mark_failed()
            logger.warning(f"Error transformando fila {primary_key} (run {sync_run.id}): {e.message}")
            self.repository.save_sync_record(
                SyncRecord(
                    id=existing.id if existing else None,
                    sync_id=sync.id,
                    sync_run_id=sync_run.id,
                    primary_key=primary_key,
                    fingerprint=generate_fingerprint(row),
                    record={},
                    action=self._action_for(existing),
                    status=SyncRecordStatus.FAILED,
                    logs=[{"level": "error", "message": e.user_message, "error": e.message}],
                )
            )
            return

        fingerprint = generate_fingerprint(transformed)
        if (
            existing is not None
            and existing.fingerprint == fingerprint
            and existing.status == SyncRecordStatus.SUCCESS
            and existing.action != DestinationAction.DELETE
        ):
            tracker.mark_skipped()
            return

        self.repository.save_sync_record(
            SyncRecord(
                id=existing.id if existing else None,
                sync_id=sync.id,
                sync_run_id=sync_run.id,
                primary_key=primary_key,
                fingerprint=fingerprint,
                record=transformed,
                action=self._action_for(existing),
                status=SyncRecordStatus.PENDING,
            )
        )

    @staticmethod
    def _action_for(existing: Optional[SyncRecord]) -> DestinationAction:
        if existing is None or existing.action == DestinationAction.DELETE:
            return DestinationAction.INSERT
        return DestinationAction.UPDATE

    # ------------------------------------------------------------------
    # Heartbeat y borrados
    # ------------------------------------------------------------------

    def _cancel_requested(self, workflow_id: str, sync_run: SyncRun, params: BatchParams) -> bool:
        if self.orchestrator is None:
            return False
        details = {
            "sync_run_id": sync_run.id,
            "current_offset": sync_run.current_offset,
            "initial_cursor_field": params.current_cursor_field,
        }
        try:
            return bool(self.orchestrator.heartbeat(workflow_id, details))
        except Exception as e:
            error = OrchestratorError(f"Heartbeat fallido para {workflow_id}: {e}", details=details)
            logger.warning(error.message)
            self.error_reporter.report(error, {"sync_run_id": sync_run.id, "workflow_id": workflow_id})
            return False

    def _enqueue_deleted_records(
        self,
        sync: Sync,
        sync_run: SyncRun,
        tracker: SeenKeyTracker,
        resumed: bool,
    ) -> int:
        """
        Marca destination_delete los registros vivos que no aparecieron en la corrida.

        Solo aplica a lecturas completas: se omite con filtro de cursor o
        cuando la corrida se reanudo desde un checkpoint.
        """
        if sync.cursor_field:
            logger.debug(f"Sync {sync.id} incremental por cursor, se omite la deteccion de borrados")
            return 0
        if resumed:
            logger.warning(
                f"SyncRun {sync_run.id} reanudado desde un checkpoint, se omite la deteccion de borrados"
            )
            return 0

        missing: List[str] = sorted(self.repository.live_primary_keys(sync.id) - tracker.keys)
        if not missing:
            return 0
        count = self.repository.mark_deleted(sync.id, sync_run.id, missing)
        logger.info(f"{count} registros marcados para borrado en sync {sync.id}")
        return count

    @staticmethod
    def _result(
        sync_run: SyncRun,
        tracker: SeenKeyTracker,
        canceled: bool = False,
        deleted: int = 0,
    ) -> ExtractionResult:
        return ExtractionResult(
            sync_run_id=sync_run.id,
            canceled=canceled,
            total_query_rows=sync_run.total_query_rows,
            skipped_rows=sync_run.skipped_rows,
            failed_rows=tracker.failed,
            deleted_rows=deleted,
        )
