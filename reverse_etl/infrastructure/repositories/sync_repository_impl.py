"""
Implementación del repositorio de syncs usando SQLAlchemy.
"""
import threading
from contextlib import nullcontext
from datetime import date, datetime
from typing import Any, Iterable, List, Optional, Set

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.orm import Session, sessionmaker

from reverse_etl.domain.entities.sync import ConnectorConfig, QueryModel, Sync
from reverse_etl.domain.entities.sync_record import SyncRecord
from reverse_etl.domain.entities.sync_run import SyncRun
from reverse_etl.domain.repositories.sync_repository import ISyncRepository
from reverse_etl.infrastructure.database.models import SyncModel, SyncRecordModel, SyncRunModel
from reverse_etl.infrastructure.database.session import SessionLocal, session_scope
from reverse_etl.shared.constants.sync_constants import (
    DestinationAction,
    ScheduleType,
    SyncIntervalUnit,
    SyncRecordStatus,
)
from reverse_etl.shared.exceptions.domain import EntityNotFoundException
from reverse_etl.shared.utils.datetime_utils import utc_now


def _json_safe(value: Any) -> Any:
    """Los cursores de tipo fecha se guardan como ISO-8601."""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


class SqlAlchemySyncRepository(ISyncRepository):
    """
    Implementación del repositorio de syncs con SQLAlchemy.

    Cada operacion abre su propia sesion, por lo que la instancia se puede
    compartir entre threads. Con SQLite todas las operaciones se serializan;
    el upsert de SyncRecord se serializa siempre para respetar la unicidad
    (sync_id, primary_key).
    """

    def __init__(self, session_factory: sessionmaker = SessionLocal):
        """
        Inicializa el repositorio con una fabrica de sesiones.

        Args:
            session_factory: sessionmaker de SQLAlchemy
        """
        self.session_factory = session_factory
        self._record_lock = threading.RLock()
        bind = session_factory.kw.get("bind")
        is_sqlite = bind is not None and bind.dialect.name == "sqlite"
        self._lock = self._record_lock if is_sqlite else None

    def _guard(self):
        return self._lock if self._lock is not None else nullcontext()

    def _session(self):
        return session_scope(self.session_factory)

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    def get_sync(self, sync_id: int) -> Sync:
        """Obtiene un sync no descartado por su ID."""
        with self._guard(), self._session() as session:
            db_sync = session.get(SyncModel, sync_id)
            if db_sync is None or db_sync.discarded_at is not None:
                raise EntityNotFoundException("Sync", sync_id)
            return self._sync_to_entity(db_sync)

    def save_sync(self, sync: Sync) -> Sync:
        """Crea o actualiza un sync."""
        with self._guard(), self._session() as session:
            if sync.id is None:
                db_sync = SyncModel()
                session.add(db_sync)
            else:
                db_sync = session.get(SyncModel, sync.id)
                if db_sync is None:
                    raise EntityNotFoundException("Sync", sync.id)

            db_sync.workspace_id = sync.workspace_id
            db_sync.source = self._connector_to_dict(sync.source)
            db_sync.destination = self._connector_to_dict(sync.destination)
            db_sync.model = {
                "name": sync.model.name,
                "query": sync.model.query,
                "query_type": sync.model.query_type,
                "primary_key": sync.model.primary_key,
            }
            db_sync.stream_name = sync.stream_name
            db_sync.configuration = sync.configuration
            db_sync.primary_key_mapping = sync.primary_key_mapping or {}
            db_sync.http_sync_settings = sync.http_sync_settings or {}
            db_sync.schedule_type = sync.schedule_type
            db_sync.sync_interval = sync.sync_interval
            db_sync.sync_interval_unit = sync.sync_interval_unit
            db_sync.cron_expression = sync.cron_expression
            db_sync.cursor_field = sync.cursor_field
            db_sync.current_cursor_field = _json_safe(sync.current_cursor_field)
            db_sync.status = sync.status
            db_sync.discarded_at = sync.discarded_at

            session.flush()
            session.refresh(db_sync)
            return self._sync_to_entity(db_sync)

    # ------------------------------------------------------------------
    # SyncRun
    # ------------------------------------------------------------------

    def create_sync_run(self, sync_run: SyncRun) -> SyncRun:
        """Crea una corrida nueva."""
        with self._guard(), self._session() as session:
            db_run = SyncRunModel(sync_id=sync_run.sync_id)
            self._copy_run(sync_run, db_run)
            session.add(db_run)
            session.flush()
            session.refresh(db_run)
            return self._run_to_entity(db_run)

    def get_sync_run(self, sync_run_id: int) -> SyncRun:
        """Obtiene una corrida por su ID."""
        with self._guard(), self._session() as session:
            db_run = session.get(SyncRunModel, sync_run_id)
            if db_run is None:
                raise EntityNotFoundException("SyncRun", sync_run_id)
            return self._run_to_entity(db_run)

    def save_sync_run(self, sync_run: SyncRun) -> SyncRun:
        """Persiste estado, contadores y logs de una corrida."""
        with self._guard(), self._session() as session:
            db_run = session.get(SyncRunModel, sync_run.id)
            if db_run is None:
                raise EntityNotFoundException("SyncRun", sync_run.id)
            self._copy_run(sync_run, db_run)
            session.flush()
            session.refresh(db_run)
            return self._run_to_entity(db_run)

    def list_sync_runs(self, sync_id: int) -> List[SyncRun]:
        """Corridas no descartadas de un sync, mas recientes primero."""
        with self._guard(), self._session() as session:
            result = session.execute(
                select(SyncRunModel)
                .where(SyncRunModel.sync_id == sync_id, SyncRunModel.discarded_at.is_(None))
                .order_by(SyncRunModel.id.desc())
            )
            return [self._run_to_entity(db_run) for db_run in result.scalars().all()]

    def discard_sync_runs(self, sync_id: int) -> int:
        """Descarta (soft delete) todas las corridas del sync."""
        with self._guard(), self._session() as session:
            result = session.execute(
                update(SyncRunModel)
                .where(SyncRunModel.sync_id == sync_id, SyncRunModel.discarded_at.is_(None))
                .values(discarded_at=utc_now())
            )
            return result.rowcount or 0

    def checkpoint(self, sync_run: SyncRun, cursor_value: Optional[Any]) -> None:
        """Persiste progreso de la corrida y cursor del sync en una transaccion."""
        with self._guard(), self._session() as session:
            session.execute(
                update(SyncRunModel)
                .where(SyncRunModel.id == sync_run.id)
                .values(
                    current_offset=sync_run.current_offset,
                    total_query_rows=sync_run.total_query_rows,
                    skipped_rows=sync_run.skipped_rows,
                )
            )
            if cursor_value is not None:
                session.execute(
                    update(SyncModel)
                    .where(SyncModel.id == sync_run.sync_id)
                    .values(current_cursor_field=_json_safe(cursor_value))
                )

    # ------------------------------------------------------------------
    # SyncRecord
    # ------------------------------------------------------------------

    def find_sync_record(self, sync_id: int, primary_key: str) -> Optional[SyncRecord]:
        """Busca el registro de un sync por primary key."""
        with self._guard(), self._session() as session:
            db_record = self._find_record(session, sync_id, primary_key)
            return self._record_to_entity(db_record) if db_record else None

    def save_sync_record(self, sync_record: SyncRecord) -> SyncRecord:
        """Upsert por (sync_id, primary_key)."""
        with self._record_lock, self._session() as session:
            db_record = self._find_record(session, sync_record.sync_id, sync_record.primary_key)
            if db_record is None:
                db_record = SyncRecordModel(
                    sync_id=sync_record.sync_id,
                    primary_key=sync_record.primary_key,
                )
                session.add(db_record)

            db_record.sync_run_id = sync_record.sync_run_id
            db_record.fingerprint = sync_record.fingerprint
            db_record.record = sync_record.record
            db_record.action = sync_record.action
            db_record.status = sync_record.status
            db_record.logs = list(sync_record.logs or [])

            session.flush()
            session.refresh(db_record)
            return self._record_to_entity(db_record)

    def live_primary_keys(self, sync_id: int) -> Set[str]:
        """Primary keys cuyo registro no esta marcado como borrado."""
        with self._guard(), self._session() as session:
            result = session.execute(
                select(SyncRecordModel.primary_key).where(
                    SyncRecordModel.sync_id == sync_id,
                    SyncRecordModel.action != DestinationAction.DELETE,
                )
            )
            return set(result.scalars().all())

    def mark_deleted(self, sync_id: int, sync_run_id: int, primary_keys: Iterable[str]) -> int:
        """Marca los registros como destination_delete pendientes."""
        keys = list(primary_keys)
        if not keys:
            return 0
        with self._record_lock, self._session() as session:
            result = session.execute(
                update(SyncRecordModel)
                .where(
                    SyncRecordModel.sync_id == sync_id,
                    SyncRecordModel.primary_key.in_(keys),
                )
                .values(
                    action=DestinationAction.DELETE,
                    status=SyncRecordStatus.PENDING,
                    sync_run_id=sync_run_id,
                )
            )
            logger.debug(f"Sync {sync_id}: {result.rowcount} registros marcados destination_delete")
            return result.rowcount or 0

    def pending_sync_records(self, sync_run_id: int) -> List[SyncRecord]:
        """Registros pendientes de la corrida, en orden de creacion."""
        with self._guard(), self._session() as session:
            result = session.execute(
                select(SyncRecordModel)
                .where(
                    SyncRecordModel.sync_run_id == sync_run_id,
                    SyncRecordModel.status == SyncRecordStatus.PENDING,
                )
                .order_by(SyncRecordModel.id)
            )
            return [self._record_to_entity(db_record) for db_record in result.scalars().all()]

    def update_sync_record_status(
        self,
        record_ids: Iterable[int],
        status: SyncRecordStatus,
        log: Optional[dict] = None,
    ) -> int:
        """Actualiza el estado de varios registros y agrega el log si se indica."""
        ids = list(record_ids)
        if not ids:
            return 0
        with self._record_lock, self._session() as session:
            result = session.execute(select(SyncRecordModel).where(SyncRecordModel.id.in_(ids)))
            db_records = result.scalars().all()
            for db_record in db_records:
                db_record.status = status
                if log is not None:
                    db_record.logs = list(db_record.logs or []) + [log]
            return len(db_records)

    # ------------------------------------------------------------------
    # Conversiones
    # ------------------------------------------------------------------

    @staticmethod
    def _find_record(session: Session, sync_id: int, primary_key: str) -> Optional[SyncRecordModel]:
        result = session.execute(
            select(SyncRecordModel).where(
                SyncRecordModel.sync_id == sync_id,
                SyncRecordModel.primary_key == primary_key,
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    def _connector_to_dict(connector: ConnectorConfig) -> dict:
        return {
            "connector_name": connector.connector_name,
            "name": connector.name,
            "configuration": connector.configuration or {},
        }

    @staticmethod
    def _copy_run(sync_run: SyncRun, db_run: SyncRunModel) -> None:
        db_run.status = sync_run.status
        db_run.current_offset = sync_run.current_offset
        db_run.current_cursor_field = _json_safe(sync_run.current_cursor_field)
        db_run.total_query_rows = sync_run.total_query_rows
        db_run.skipped_rows = sync_run.skipped_rows
        db_run.total_rows = sync_run.total_rows
        db_run.successful_rows = sync_run.successful_rows
        db_run.failed_rows = sync_run.failed_rows
        db_run.error = sync_run.error
        db_run.logs = list(sync_run.logs or [])
        db_run.started_at = sync_run.started_at
        db_run.finished_at = sync_run.finished_at
        db_run.discarded_at = sync_run.discarded_at

    @staticmethod
    def _sync_to_entity(db_sync: SyncModel) -> Sync:
        """
        Convierte un modelo de base de datos a entidad de dominio.

        Args:
            db_sync: Modelo de SQLAlchemy

        Returns:
            Sync: Entidad de dominio
        """
        model = db_sync.model or {}
        return Sync(
            id=db_sync.id,
            workspace_id=db_sync.workspace_id,
            source=ConnectorConfig(**(db_sync.source or {})),
            destination=ConnectorConfig(**(db_sync.destination or {})),
            model=QueryModel(
                name=model.get("name", ""),
                query=model.get("query", ""),
                query_type=model.get("query_type", "raw_sql"),
                primary_key=model.get("primary_key", ""),
            ),
            stream_name=db_sync.stream_name,
            configuration=db_sync.configuration,
            primary_key_mapping=db_sync.primary_key_mapping or {},
            http_sync_settings=db_sync.http_sync_settings or {},
            schedule_type=db_sync.schedule_type or ScheduleType.MANUAL,
            sync_interval=db_sync.sync_interval,
            sync_interval_unit=SyncIntervalUnit(db_sync.sync_interval_unit) if db_sync.sync_interval_unit else None,
            cron_expression=db_sync.cron_expression,
            cursor_field=db_sync.cursor_field,
            current_cursor_field=db_sync.current_cursor_field,
            status=db_sync.status,
            discarded_at=db_sync.discarded_at,
            created_at=db_sync.created_at,
            updated_at=db_sync.updated_at,
        )

    @staticmethod
    def _run_to_entity(db_run: SyncRunModel) -> SyncRun:
        return SyncRun(
            id=db_run.id,
            sync_id=db_run.sync_id,
            status=db_run.status,
            current_offset=db_run.current_offset or 0,
            current_cursor_field=db_run.current_cursor_field,
            total_query_rows=db_run.total_query_rows or 0,
            skipped_rows=db_run.skipped_rows or 0,
            total_rows=db_run.total_rows or 0,
            successful_rows=db_run.successful_rows or 0,
            failed_rows=db_run.failed_rows or 0,
            error=db_run.error,
            logs=list(db_run.logs or []),
            started_at=db_run.started_at,
            finished_at=db_run.finished_at,
            discarded_at=db_run.discarded_at,
            created_at=db_run.created_at,
            updated_at=db_run.updated_at,
        )

    @staticmethod
    def _record_to_entity(db_record: SyncRecordModel) -> SyncRecord:
        return SyncRecord(
            id=db_record.id,
            sync_id=db_record.sync_id,
            sync_run_id=db_record.sync_run_id,
            primary_key=db_record.primary_key,
            fingerprint=db_record.fingerprint,
            record=dict(db_record.record or {}),
            action=db_record.action,
            status=db_record.status,
            logs=list(db_record.logs or []),
            created_at=db_record.created_at,
            updated_at=db_record.updated_at,
        )
