"""
Destino Airtable con semántica de upsert.

Escritura de un lote:
1. Resolución masiva de existencia: fórmulas OR({pk}='v1', ...) en
   sub-lotes (por defecto 100 valores).
2. Chunks de hasta 10 registros (límite de la API).
3. Cada chunk se separa en updates (registro remoto existente) e inserts.
4. Un PATCH para updates y un POST para inserts, contados por separado.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from loguru import logger

from reverse_etl.application.interfaces.connectors import DestinationConnector
from reverse_etl.application.interfaces.error_reporter import ErrorReporter
from reverse_etl.core.config import settings
from reverse_etl.domain.entities.connector_types import (
    Catalog,
    ConnectionStatus,
    Stream,
    WriteResult,
    log_request_response,
)
from reverse_etl.infrastructure.external.airtable import schema_helper
from reverse_etl.infrastructure.external.airtable.airtable_client import (
    AirtableApiError,
    AirtableClient,
    build_lookup_formula,
)
from reverse_etl.infrastructure.observability.loguru_reporter import LoguruErrorReporter
from reverse_etl.shared.constants.sync_constants import DestinationAction
from reverse_etl.shared.exceptions.sync import DestinationSetupError


def _chunks(items: List[Any], size: int):
    for start in range(0, len(items), size):
        yield start, items[start:start + size]


class AirtableDestination(DestinationConnector):
    """
    Conector de destino Airtable.

    Configuración esperada: {"api_key": ..., "base_id": ...}. La tabla se
    resuelve desde el catálogo a partir del nombre del stream
    ("{base}/{tabla}").
    """

    def __init__(
        self,
        configuration: Dict[str, Any],
        stream_name: Optional[str] = None,
        *,
        client: Optional[AirtableClient] = None,
        error_reporter: Optional[ErrorReporter] = None,
        table_url: Optional[str] = None,
        lookup_batch_size: Optional[int] = None,
        chunk_size: Optional[int] = None,
        sync_id: Optional[int] = None,
        sync_run_id: Optional[int] = None,
    ) -> None:
        self.configuration = configuration or {}
        self.stream_name = stream_name
        self.client = client or AirtableClient(self.configuration.get("api_key", ""))
        self.error_reporter = error_reporter or LoguruErrorReporter()
        self.lookup_batch_size = lookup_batch_size or settings.AIRTABLE_LOOKUP_BATCH_SIZE
        self.chunk_size = chunk_size or settings.AIRTABLE_WRITE_CHUNK_SIZE
        # El loader entrega lotes del tamano de la busqueda masiva; write() los divide en chunks
        self.batch_size = self.lookup_batch_size
        self.sync_id = sync_id
        self.sync_run_id = sync_run_id
        self._table_url = table_url
        self._owns_client = client is None

    @property
    def base_id(self) -> Optional[str]:
        return self.configuration.get("base_id")

    # ------------------------------------------------------------------
    # Conexión y catálogo
    # ------------------------------------------------------------------

    def check_connection(self) -> ConnectionStatus:
        """La base configurada debe estar entre las bases accesibles."""
        try:
            bases = self.client.list_bases()
        except Exception as e:
            logger.warning(f"Airtable check_connection fallido: {e}")
            return ConnectionStatus.failure(str(e))

        if not any(base.get("id") == self.base_id for base in bases):
            return ConnectionStatus.failure("base_id not found")
        return ConnectionStatus.success()

    def discover_schema(self) -> Catalog:
        """Un stream por tabla de la base, nombrado "{base}/{tabla}"."""
        if not self.base_id:
            raise DestinationSetupError("Airtable sin base_id configurado")

        bases = self.client.list_bases()
        base = next((b for b in bases if b.get("id") == self.base_id), None)
        if base is None:
            raise DestinationSetupError(
                f"Base {self.base_id} no accesible con las credenciales",
                details={"base_id": self.base_id},
            )

        schema = self.client.get_base_schema(self.base_id)
        streams = [
            Stream(
                name=f"{base.get('name')}/{schema_helper.clean_name(table.get('name', ''))}",
                json_schema=schema_helper.get_json_schema(table),
                url=self.client.table_url(self.base_id, table["id"]),
                action="create",
                batch_support=True,
                batch_size=self.chunk_size,
                supported_sync_modes=["incremental"],
            )
            for table in schema.get("tables") or []
        ]
        logger.info(f"Airtable base {self.base_id}: {len(streams)} streams descubiertos")
        return Catalog(streams=streams)

    def resolve_table_url(self) -> str:
        """
        URL de la tabla del stream.

        Raises:
            DestinationSetupError: si no hay base o el stream no existe
        """
        if self._table_url:
            return self._table_url

        try:
            stream = self.discover_schema().find_stream_by_name(self.stream_name)
            if stream is None or not stream.url:
                raise DestinationSetupError(
                    f"Stream '{self.stream_name}' no encontrado en Airtable",
                    details={"stream_name": self.stream_name},
                )
        except DestinationSetupError as e:
            self.error_reporter.report(e, self._context("AIRTABLE:SETUP"))
            raise
        except Exception as e:
            error = DestinationSetupError(f"No se pudo descubrir el catálogo de Airtable: {e}")
            self.error_reporter.report(error, self._context("AIRTABLE:SETUP"))
            raise error from e

        self._table_url = stream.url
        return self._table_url

    # ------------------------------------------------------------------
    # Escritura
    # ------------------------------------------------------------------

    def write(
        self,
        records: List[Dict[str, Any]],
        primary_key: str,
        action: DestinationAction = DestinationAction.INSERT,
    ) -> WriteResult:
        """
        Upsert (o borrado) de un lote de registros.

        Garantiza success + failed == len(records).
        """
        if not records:
            return WriteResult()

        url = self.resolve_table_url()
        existing = self.find_existing_records(records, primary_key, url)

        if action == DestinationAction.DELETE:
            result = self._delete(records, primary_key, url, existing)
        else:
            result = self._upsert(records, primary_key, url, existing)

        logger.info(
            f"Airtable {action.event}: {result.success} exitosos, {result.failed} fallidos "
            f"de {len(records)} (sync_run {self.sync_run_id})"
        )
        return result

    def find_existing_records(
        self,
        records: List[Dict[str, Any]],
        primary_key: str,
        url: str,
    ) -> Dict[str, str]:
        """
        Mapa valor de primary key -> id de registro Airtable.

        Un sub-lote fallido se reporta y sus registros se tratan como no
        encontrados.
        """
        values = [r.get(primary_key) for r in records if r.get(primary_key) is not None]
        existing: Dict[str, str] = {}

        for _, batch in _chunks(values, self.lookup_batch_size):
            formula = build_lookup_formula(primary_key, batch)
            try:
                remote_records = self.client.find_records(url, formula)
            except Exception as e:
                logger.warning(f"Búsqueda masiva en Airtable fallida ({len(batch)} valores): {e}")
                self.error_reporter.report(e, self._context("AIRTABLE:BULK:FIND"))
                continue

            for remote in remote_records:
                value = (remote.get("fields") or {}).get(primary_key)
                if value is not None and remote.get("id"):
                    existing[str(value)] = remote["id"]

        return existing

    def _upsert(
        self,
        records: List[Dict[str, Any]],
        primary_key: str,
        url: str,
        existing: Dict[str, str],
    ) -> WriteResult:
        result = WriteResult()

        for start, chunk in _chunks(records, self.chunk_size):
            updates: List[Tuple[int, Dict[str, Any]]] = []
            inserts: List[Tuple[int, Dict[str, Any]]] = []
            for offset, record in enumerate(chunk):
                remote_id = existing.get(str(record.get(primary_key)))
                if remote_id:
                    updates.append((start + offset, {"id": remote_id, "fields": record}))
                else:
                    inserts.append((start + offset, {"fields": record}))

            pending = [start + i for i in range(len(chunk))]
            try:
                if updates:
                    self._send("PATCH", url, updates, result, pending)
                if inserts:
                    self._send("POST", url, inserts, result, pending)
            except Exception as e:
                # Todo lo que el chunk no alcanzó a contar queda como fallido
                self.error_reporter.report(e, self._context("AIRTABLE:RECORD:WRITE"))
                result.failed += len(pending)
                result.failed_indexes.extend(pending)
                result.logs.append(log_request_response("error", ["WRITE", url], str(e)))

        return result

    def _send(
        self,
        method: str,
        url: str,
        items: List[Tuple[int, Dict[str, Any]]],
        result: WriteResult,
        pending: List[int],
    ) -> None:
        indexes = [index for index, _ in items]
        payload = [body for _, body in items]
        request = [method, url, {"records": payload}]

        try:
            if method == "PATCH":
                response = self.client.update_records(url, payload)
            else:
                response = self.client.create_records(url, payload)
        except AirtableApiError as e:
            self.error_reporter.report(e, self._context(f"AIRTABLE:RECORD:{method}"))
            result.failed += len(items)
            result.failed_indexes.extend(indexes)
            result.logs.append(log_request_response("error", request, e.response_body or e.message))
        else:
            result.success += len(items)
            result.succeeded_indexes.extend(indexes)
            result.logs.append(log_request_response("info", request, response))

        for index in indexes:
            pending.remove(index)

    def _delete(
        self,
        records: List[Dict[str, Any]],
        primary_key: str,
        url: str,
        existing: Dict[str, str],
    ) -> WriteResult:
        """Borra los registros remotos; los que ya no existen cuentan como exitosos."""
        result = WriteResult()

        for start, chunk in _chunks(records, self.chunk_size):
            targets: List[Tuple[int, str]] = []
            for offset, record in enumerate(chunk):
                remote_id = existing.get(str(record.get(primary_key)))
                if remote_id:
                    targets.append((start + offset, remote_id))
                else:
                    result.success += 1
                    result.succeeded_indexes.append(start + offset)

            if not targets:
                continue

            indexes = [index for index, _ in targets]
            record_ids = [remote_id for _, remote_id in targets]
            request = ["DELETE", url, record_ids]
            try:
                response = self.client.delete_records(url, record_ids)
            except Exception as e:
                self.error_reporter.report(e, self._context("AIRTABLE:RECORD:DELETE"))
                result.failed += len(targets)
                result.failed_indexes.extend(indexes)
                result.logs.append(log_request_response("error", request, str(e)))
            else:
                result.success += len(targets)
                result.succeeded_indexes.extend(indexes)
                result.logs.append(log_request_response("info", request, response))

        return result

    def close(self) -> None:
        if self._owns_client:
            self.client.close()

    def _context(self, context: str) -> Dict[str, Any]:
        return {
            "context": context,
            "sync_id": self.sync_id,
            "sync_run_id": self.sync_run_id,
        }
