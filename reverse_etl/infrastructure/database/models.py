"""
Modelos de base de datos (ORM).
"""
from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.sql import func

from reverse_etl.infrastructure.database.session import Base
from reverse_etl.shared.constants.sync_constants import (
    DestinationAction,
    ScheduleType,
    SyncIntervalUnit,
    SyncRecordStatus,
    SyncRunStatus,
    SyncStatus,
)


def _values(enum_cls):
    """Persiste el valor del enum (p.ej. 'in_progress') en lugar de su nombre."""
    return [member.value for member in enum_cls]


class SyncModel(Base):
    """
    Modelo de base de datos para syncs.

    Origen, destino y modelo de origen se guardan como JSON: su
    persistencia propia vive fuera del motor.
    """

    __tablename__ = "syncs"

    id = Column(Integer, primary_key=True, index=True)
    workspace_id = Column(Integer, nullable=True, index=True)
    source = Column(JSON, nullable=False)
    destination = Column(JSON, nullable=False)
    model = Column(JSON, nullable=False)
    stream_name = Column(String(255), nullable=False)
    configuration = Column(JSON, nullable=False)
    primary_key_mapping = Column(JSON, nullable=True)
    http_sync_settings = Column(JSON, nullable=True)
    schedule_type = Column(SQLEnum(ScheduleType, values_callable=_values), default=ScheduleType.MANUAL)
    sync_interval = Column(Integer, nullable=True)
    sync_interval_unit = Column(SQLEnum(SyncIntervalUnit, values_callable=_values), nullable=True)
    cron_expression = Column(String(255), nullable=True)
    cursor_field = Column(String(255), nullable=True)
    current_cursor_field = Column(JSON, nullable=True)
    status = Column(SQLEnum(SyncStatus, values_callable=_values), default=SyncStatus.PENDING, index=True)
    discarded_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<Sync(id={self.id}, stream={self.stream_name}, status={self.status})>"


class SyncRunModel(Base):
    """Modelo de base de datos para corridas de sync."""

    __tablename__ = "sync_runs"

    id = Column(Integer, primary_key=True, index=True)
    sync_id = Column(Integer, ForeignKey("syncs.id"), nullable=False, index=True)
    status = Column(SQLEnum(SyncRunStatus, values_callable=_values), default=SyncRunStatus.PENDING, index=True)
    current_offset = Column(Integer, nullable=False, default=0)
    current_cursor_field = Column(JSON, nullable=True)
    total_query_rows = Column(Integer, nullable=False, default=0)
    skipped_rows = Column(Integer, nullable=False, default=0)
    total_rows = Column(Integer, nullable=False, default=0)
    successful_rows = Column(Integer, nullable=False, default=0)
    failed_rows = Column(Integer, nullable=False, default=0)
    error = Column(Text, nullable=True)
    logs = Column(JSON, nullable=False, default=list)
    started_at = Column(DateTime(timezone=True), nullable=True)
    finished_at = Column(DateTime(timezone=True), nullable=True)
    discarded_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<SyncRun(id={self.id}, sync_id={self.sync_id}, status={self.status})>"


class SyncRecordModel(Base):
    """
    Modelo de base de datos para registros de sync.
    Unico por (sync_id, primary_key).
    """

    __tablename__ = "sync_records"
    __table_args__ = (
        UniqueConstraint("sync_id", "primary_key", name="uq_sync_records_sync_pk"),
    )

    id = Column(Integer, primary_key=True, index=True)
    sync_id = Column(Integer, ForeignKey("syncs.id"), nullable=False, index=True)
    sync_run_id = Column(Integer, ForeignKey("sync_runs.id"), nullable=False, index=True)
    primary_key = Column(String(255), nullable=False)
    fingerprint = Column(String(64), nullable=False)
    record = Column(JSON, nullable=False, default=dict)
    action = Column(SQLEnum(DestinationAction, values_callable=_values), nullable=False)
    status = Column(SQLEnum(SyncRecordStatus, values_callable=_values), default=SyncRecordStatus.PENDING, index=True)
    logs = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<SyncRecord(id={self.id}, pk={self.primary_key}, action={self.action}, status={self.status})>"
