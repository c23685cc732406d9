"""
Registro de conectores: construye el origen y el destino de un sync.
"""
from typing import Callable, Dict, Optional

from reverse_etl.application.interfaces.connectors import DestinationConnector, SourceConnector
from reverse_etl.application.interfaces.error_reporter import ErrorReporter
from reverse_etl.domain.entities.sync import Sync
from reverse_etl.infrastructure.external.airtable.airtable_destination import AirtableDestination
from reverse_etl.infrastructure.external.http.http_destination import HttpDestination
from reverse_etl.infrastructure.external.sql.sql_source import SqlSource
from reverse_etl.shared.constants.sync_constants import AIRTABLE_CONNECTOR, HTTP_CONNECTOR
from reverse_etl.shared.exceptions.sync import DestinationSetupError, SyncPipelineError

# Conectores de origen SQL -> dialecto SQLAlchemy por defecto
SQL_SOURCE_DIALECTS: Dict[str, str] = {
    "postgresql": "postgresql",
    "postgres": "postgresql",
    "sqlite": "sqlite",
    "mysql": "mysql",
    "mariadb": "mysql",
    "sql": "postgresql",
}

DestinationBuilder = Callable[[Sync, Optional[int], Optional[ErrorReporter]], DestinationConnector]


def build_source(sync: Sync) -> SourceConnector:
    """
    Conector de origen del sync.

    Raises:
        SyncPipelineError: si el conector de origen no está soportado
    """
    name = (sync.source.connector_name or "").lower()
    if name not in SQL_SOURCE_DIALECTS:
        raise SyncPipelineError(
            f"Conector de origen no soportado: {sync.source.connector_name!r}",
            error_code="SOURCE_SETUP_ERROR",
            details={"connector_name": sync.source.connector_name},
        )
    configuration = dict(sync.source.configuration or {})
    configuration.setdefault("dialect", SQL_SOURCE_DIALECTS[name])
    return SqlSource(configuration)


def _airtable(sync: Sync, sync_run_id: Optional[int], reporter: Optional[ErrorReporter]) -> DestinationConnector:
    return AirtableDestination(
        sync.destination.configuration,
        sync.stream_name,
        error_reporter=reporter,
        sync_id=sync.id,
        sync_run_id=sync_run_id,
    )


def _http(sync: Sync, sync_run_id: Optional[int], reporter: Optional[ErrorReporter]) -> DestinationConnector:
    return HttpDestination(
        sync.destination.configuration,
        batch_size=sync.http_batch_size(),
        error_reporter=reporter,
        sync_id=sync.id,
        sync_run_id=sync_run_id,
    )


DESTINATION_BUILDERS: Dict[str, DestinationBuilder] = {
    AIRTABLE_CONNECTOR: _airtable,
    HTTP_CONNECTOR: _http,
}


def build_destination(
    sync: Sync,
    sync_run_id: Optional[int] = None,
    error_reporter: Optional[ErrorReporter] = None,
) -> DestinationConnector:
    """
    Conector de destino del sync.

    Raises:
        DestinationSetupError: si el conector de destino no está soportado
    """
    builder = DESTINATION_BUILDERS.get((sync.destination.connector_name or "").lower())
    if builder is None:
        raise DestinationSetupError(
            f"Conector de destino no soportado: {sync.destination.connector_name!r}",
            details={"connector_name": sync.destination.connector_name},
        )
    return builder(sync, sync_run_id, error_reporter)
