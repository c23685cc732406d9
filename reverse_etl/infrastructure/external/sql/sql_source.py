"""
Origen SQL genérico sobre SQLAlchemy.

La query del modelo se envuelve como subquery para aplicar el filtro de
cursor, el orden y la paginación sin reescribirla.
"""
from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Dict, List, Optional

from loguru import logger
from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import URL, Engine
from sqlalchemy.exc import SQLAlchemyError

from reverse_etl.application.interfaces.connectors import SourceConnector
from reverse_etl.core.config import normalize_database_url
from reverse_etl.domain.entities.connector_types import BatchParams, Catalog, ConnectionStatus, Stream
from reverse_etl.shared.constants.sync_constants import IncrementStrategy
from reverse_etl.shared.exceptions.sync import BatchIOError, ConnectorConnectionError

# Tipos SQL (prefijo, en minúsculas) -> tipo JSON schema
_JSON_TYPES = (
    ("bool", "boolean"),
    ("int", "integer"),
    ("serial", "integer"),
    ("numeric", "number"),
    ("decimal", "number"),
    ("float", "number"),
    ("double", "number"),
    ("real", "number"),
    ("json", "object"),
)


def build_url(configuration: Dict[str, Any]) -> str:
    """
    URL de conexión a partir de la configuración del conector.

    Acepta {"url": ...} o los componentes
    {"dialect", "host", "port", "username", "password", "database"}.
    """
    if configuration.get("url"):
        return normalize_database_url(configuration["url"])

    dialect = configuration.get("dialect") or "postgresql"
    url = URL.create(
        drivername=normalize_database_url(f"{dialect}://").split("://", 1)[0],
        username=configuration.get("username"),
        password=configuration.get("password"),
        host=configuration.get("host"),
        port=int(configuration["port"]) if configuration.get("port") else None,
        database=configuration.get("database"),
    )
    return url.render_as_string(hide_password=False)


def _json_value(value: Any) -> Any:
    """Valores de fila serializables a JSON."""
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).decode("utf-8", errors="replace")
    return value


def _json_type(sql_type: Any) -> str:
    name = str(sql_type).lower()
    for prefix, json_type in _JSON_TYPES:
        if name.startswith(prefix):
            return json_type
    return "string"


class SqlSource(SourceConnector):
    """Origen de datos para cualquier base soportada por SQLAlchemy."""

    def __init__(self, configuration: Dict[str, Any], engine: Optional[Engine] = None) -> None:
        self.configuration = configuration or {}
        self._engine = engine
        self._owns_engine = engine is None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            self._engine = create_engine(build_url(self.configuration), future=True, pool_pre_ping=True)
        return self._engine

    def check_connection(self) -> ConnectionStatus:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            error = ConnectorConnectionError(f"No se pudo conectar al origen SQL: {e}")
            logger.warning(error.message)
            return ConnectionStatus.failure(str(e))
        return ConnectionStatus.success()

    def discover_schema(self) -> Catalog:
        """Un stream por tabla, con las columnas como propiedades."""
        inspector = inspect(self.engine)
        schema = self.configuration.get("schema")
        streams = []
        for table_name in inspector.get_table_names(schema=schema):
            properties = {}
            required = []
            for column in inspector.get_columns(table_name, schema=schema):
                json_type = _json_type(column["type"])
                properties[column["name"]] = {"type": [json_type, "null"] if column.get("nullable") else json_type}
                if not column.get("nullable"):
                    required.append(column["name"])
            streams.append(
                Stream(
                    name=table_name,
                    action="fetch",
                    json_schema={"type": "object", "properties": properties, "required": required},
                )
            )
        return Catalog(streams=streams)

    def build_batch_query(self, batch_params: BatchParams) -> tuple:
        """
        SQL y parámetros para leer un lote.

        Returns:
            (sql, params)
        """
        query = batch_params.query.strip().rstrip(";")
        sql = f"SELECT * FROM ({query}) AS model_query"
        params: Dict[str, Any] = {"limit": batch_params.limit}

        preparer = self.engine.dialect.identifier_preparer
        order_by = []
        if batch_params.cursor_field:
            cursor = preparer.quote(batch_params.cursor_field)
            if batch_params.current_cursor_field is not None:
                sql += f" WHERE {cursor} >= :cursor"
                params["cursor"] = batch_params.current_cursor_field
            order_by.append(f"{cursor} ASC")
        # Sin orden total LIMIT/OFFSET puede repetir u omitir filas entre lotes
        if batch_params.primary_key and batch_params.primary_key != batch_params.cursor_field:
            order_by.append(f"{preparer.quote(batch_params.primary_key)} ASC")
        if order_by:
            sql += " ORDER BY " + ", ".join(order_by)

        if batch_params.increment_strategy == IncrementStrategy.PAGE:
            params["offset"] = max(batch_params.offset - 1, 0) * batch_params.limit
        else:
            params["offset"] = batch_params.offset

        sql += " LIMIT :limit OFFSET :offset"
        return sql, params

    def read(self, batch_params: BatchParams) -> List[Dict[str, Any]]:
        sql, params = self.build_batch_query(batch_params)
        try:
            with self.engine.connect() as conn:
                result = conn.execute(text(sql), params)
                return [
                    {key: _json_value(value) for key, value in row._mapping.items()}
                    for row in result
                ]
        except SQLAlchemyError as e:
            raise BatchIOError(
                f"Error leyendo el origen SQL: {e}",
                details={
                    "sync_id": batch_params.sync_id,
                    "sync_run_id": batch_params.sync_run_id,
                    "offset": batch_params.offset,
                },
            ) from e

    def close(self) -> None:
        if self._owns_engine and self._engine is not None:
            self._engine.dispose()
            self._engine = None
