"""
Destino HTTP: entrega lotes de registros a un webhook.

Cada lote se envía en un único POST:
    {"event": "insert" | "update" | "delete", "records": [...]}
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

import requests
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
from reverse_etl.infrastructure.observability.loguru_reporter import LoguruErrorReporter
from reverse_etl.shared.constants.sync_constants import DEFAULT_HTTP_BATCH_SIZE, DestinationAction
from reverse_etl.shared.exceptions.sync import BatchIOError, DestinationSetupError

DEFAULT_STREAM_NAME = "webhook"


class HttpDestination(DestinationConnector):
    """
    Configuración esperada:
        {"destination_url": "https://...", "headers": {...}, "stream_name": "webhook"}
    """

    def __init__(
        self,
        configuration: Dict[str, Any],
        *,
        batch_size: Optional[int] = None,
        session: Optional[requests.Session] = None,
        error_reporter: Optional[ErrorReporter] = None,
        timeout_s: Optional[int] = None,
        sync_id: Optional[int] = None,
        sync_run_id: Optional[int] = None,
    ) -> None:
        self.configuration = configuration or {}
        self.batch_size = batch_size or DEFAULT_HTTP_BATCH_SIZE
        self.session = session or requests.Session()
        self._owns_session = session is None
        self.error_reporter = error_reporter or LoguruErrorReporter()
        self.timeout_s = timeout_s or settings.HTTP_TIMEOUT_S
        self.sync_id = sync_id
        self.sync_run_id = sync_run_id

    @property
    def url(self) -> str:
        url = self.configuration.get("destination_url")
        if not url:
            raise DestinationSetupError("Destino HTTP sin destination_url configurada")
        return url

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        headers.update(self.configuration.get("headers") or {})
        return headers

    def check_connection(self) -> ConnectionStatus:
        """El webhook debe responder sin error de servidor."""
        try:
            response = self.session.head(self.url, headers=self._headers(), timeout=self.timeout_s)
        except (requests.RequestException, DestinationSetupError) as e:
            return ConnectionStatus.failure(str(e))
        if response.status_code >= 500:
            return ConnectionStatus.failure(f"HTTP {response.status_code}")
        return ConnectionStatus.success()

    def discover_schema(self) -> Catalog:
        """Un único stream genérico que acepta cualquier objeto."""
        return Catalog(
            streams=[
                Stream(
                    name=self.configuration.get("stream_name") or DEFAULT_STREAM_NAME,
                    json_schema={"type": "object", "additionalProperties": True},
                    url=self.configuration.get("destination_url"),
                    batch_support=True,
                    batch_size=self.batch_size,
                )
            ]
        )

    def write(
        self,
        records: List[Dict[str, Any]],
        primary_key: str,
        action: DestinationAction = DestinationAction.INSERT,
    ) -> WriteResult:
        """Un POST por lote; el lote completo se cuenta como exitoso o fallido."""
        if not records:
            return WriteResult()

        url = self.url
        payload = {"event": action.event, "records": records}
        request = ["POST", url, payload]
        indexes = list(range(len(records)))

        try:
            response = self.session.post(url, json=payload, headers=self._headers(), timeout=self.timeout_s)
            if not 200 <= response.status_code < 300:
                raise BatchIOError(
                    f"Webhook respondió {response.status_code}: {response.text}",
                    details={"status_code": response.status_code},
                )
        except (requests.RequestException, BatchIOError) as e:
            logger.warning(f"Entrega HTTP fallida ({len(records)} registros): {e}")
            self.error_reporter.report(
                e, {"context": "HTTP:RECORD:WRITE", "sync_id": self.sync_id, "sync_run_id": self.sync_run_id}
            )
            return WriteResult(
                failed=len(records),
                failed_indexes=indexes,
                logs=[log_request_response("error", request, str(e))],
            )

        return WriteResult(
            success=len(records),
            succeeded_indexes=indexes,
            logs=[log_request_response("info", request, response.text)],
        )

    def close(self) -> None:
        if self._owns_session:
            self.session.close()
