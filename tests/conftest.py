"""
Configuración de fixtures para pytest.
"""
from typing import Any, Dict, List, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from reverse_etl.application.interfaces.connectors import DestinationConnector, SourceConnector
from reverse_etl.domain.entities.connector_types import (
    BatchParams,
    Catalog,
    ConnectionStatus,
    Stream,
    WriteResult,
)
from reverse_etl.domain.entities.sync import ConnectorConfig, QueryModel, Sync
from reverse_etl.infrastructure.database.session import Base, init_db
from reverse_etl.infrastructure.repositories.sync_repository_impl import SqlAlchemySyncRepository
from reverse_etl.shared.constants.sync_constants import DestinationAction


# URL de base de datos de prueba
TEST_DATABASE_URL = "sqlite://"


@pytest.fixture(scope="function")
def db_engine():
    """
    Engine SQLite en memoria compartido entre threads.
    Crea las tablas para cada test.
    """
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(bind=db_engine, expire_on_commit=False, autoflush=False)


@pytest.fixture
def repository(session_factory) -> SqlAlchemySyncRepository:
    return SqlAlchemySyncRepository(session_factory)


def make_sync(**overrides: Any) -> Sync:
    """Sync mínimo válido con destino Airtable."""
    values: Dict[str, Any] = dict(
        source=ConnectorConfig(connector_name="postgresql", configuration={}),
        destination=ConnectorConfig(
            connector_name="airtable",
            configuration={"api_key": "key", "base_id": "app123"},
        ),
        model=QueryModel(name="users", query="SELECT * FROM users", primary_key="id"),
        stream_name="CRM/Users",
        configuration=[
            {"mapping_type": "standard", "from": "id", "to": "ID"},
            {"mapping_type": "standard", "from": "name", "to": "Name"},
        ],
        primary_key_mapping={"source": "id", "destination": "ID"},
    )
    values.update(overrides)
    return Sync(**values)


def catalog_for(*stream_names: str) -> Catalog:
    return Catalog(streams=[Stream(name=name) for name in stream_names])


class FakeSource(SourceConnector):
    """Origen en memoria paginado por offset/limit."""

    def __init__(self, rows: List[Dict[str, Any]]) -> None:
        self.rows = rows
        self.reads: List[BatchParams] = []
        self.closed = False

    def check_connection(self) -> ConnectionStatus:
        return ConnectionStatus.success()

    def discover_schema(self) -> Catalog:
        return Catalog()

    def read(self, batch_params: BatchParams) -> List[Dict[str, Any]]:
        self.reads.append(batch_params)
        start = batch_params.offset
        return [dict(r) for r in self.rows[start:start + batch_params.limit]]

    def close(self) -> None:
        self.closed = True


class FakeDestination(DestinationConnector):
    """Destino en memoria que registra cada llamada a write()."""

    def __init__(self, batch_size: int = 100, fail_keys: Optional[set] = None) -> None:
        self.batch_size = batch_size
        self.fail_keys = fail_keys or set()
        self.calls: List[Dict[str, Any]] = []
        self.closed = False

    def check_connection(self) -> ConnectionStatus:
        return ConnectionStatus.success()

    def discover_schema(self) -> Catalog:
        return catalog_for("CRM/Users")

    def write(self, records, primary_key, action=DestinationAction.INSERT) -> WriteResult:
        self.calls.append({"records": list(records), "primary_key": primary_key, "action": action})
        result = WriteResult()
        for index, record in enumerate(records):
            if record.get(primary_key) in self.fail_keys:
                result.failed += 1
                result.failed_indexes.append(index)
            else:
                result.success += 1
                result.succeeded_indexes.append(index)
        return result

    def close(self) -> None:
        self.closed = True


class FakeOrchestrator:
    """Orquestador que registra llamadas; puede fallar o pedir cancelación."""

    def __init__(self, cancel_after: Optional[int] = None, fail: bool = False) -> None:
        self.cancel_after = cancel_after
        self.fail = fail
        self.scheduled: List[tuple] = []
        self.canceled: List[str] = []
        self.started: List[tuple] = []
        self.heartbeats: List[Dict[str, Any]] = []

    def schedule(self, sync_id: int, cron_expression: str) -> str:
        if self.fail:
            raise RuntimeError("orchestrator down")
        self.scheduled.append((sync_id, cron_expression))
        return f"sync-{sync_id}"

    def cancel(self, workflow_id: str) -> None:
        if self.fail:
            raise RuntimeError("orchestrator down")
        self.canceled.append(workflow_id)

    def start(self, workflow_type: str, args: Dict[str, Any]) -> str:
        if self.fail:
            raise RuntimeError("orchestrator down")
        self.started.append((workflow_type, dict(args)))
        return args.get("workflow_id") or workflow_type

    def heartbeat(self, workflow_id: str, details: Dict[str, Any]) -> bool:
        self.heartbeats.append(dict(details))
        return self.cancel_after is not None and len(self.heartbeats) >= self.cancel_after


class RecordingReporter:
    """ErrorReporter que guarda las excepciones reportadas."""

    def __init__(self) -> None:
        self.reported: List[tuple] = []
        self.logged: List[tuple] = []

    def report(self, exception, context=None) -> None:
        self.reported.append((exception, dict(context or {})))

    def log(self, level, message, **fields) -> None:
        self.logged.append((level, message, fields))


@pytest.fixture
def reporter() -> RecordingReporter:
    return RecordingReporter()
