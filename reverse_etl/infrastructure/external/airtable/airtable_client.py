"""
Cliente mínimo de Airtable REST API (sin SDKs externos).

Requisitos cubiertos:
- requests
- rate-limit/backoff (429, 5xx)
- búsqueda por fórmula (filterByFormula) con paginación por offset
- escritura en lotes: POST (insert), PATCH (update), DELETE
"""

from __future__ import annotations

import time
from typing import Any, Dict, List, Optional, Sequence, Tuple

import requests

from reverse_etl.core.config import settings
from reverse_etl.shared.exceptions.sync import BatchIOError

AIRTABLE_META_BASES_PATH = "meta/bases"


class AirtableApiError(BatchIOError):
    """Error de integración con Airtable."""

    def __init__(self, message: str, status_code: Optional[int] = None, response_body: Any = None):
        super().__init__(message, details={"status_code": status_code})
        self.status_code = status_code
        self.response_body = response_body


def escape_formula_value(value: Any) -> str:
    """Escapa comillas simples para usar el valor dentro de una fórmula."""
    return str(value).replace("'", "\\'")


def build_lookup_formula(field_name: str, values: Sequence[Any]) -> str:
    """
    Fórmula que encuentra cualquiera de los valores en el campo.

    Ejemplo: OR({id}='1', {id}='2')
    """
    field_ref = "{" + field_name + "}"
    clauses = [f"{field_ref}='{escape_formula_value(v)}'" for v in values]
    return f"OR({', '.join(clauses)})"


class AirtableClient:
    """
    Cliente HTTP de Airtable.

    Importante:
    - No hace cast de tipos de campos: el mapeo decide la forma del registro.
    - Las URLs de tabla (`{base_url}/{base_id}/{table_id}`) vienen del catálogo.
    """

    def __init__(
        self,
        token: str,
        *,
        session: Optional[requests.Session] = None,
        base_url: Optional[str] = None,
        timeout_s: Optional[int] = None,
        max_retries: Optional[int] = None,
        min_backoff_s: float = 0.8,
        max_backoff_s: float = 20.0,
    ) -> None:
        self._token = token
        self._base_url = (base_url or settings.AIRTABLE_API_URL).rstrip("/")
        self._timeout_s = timeout_s if timeout_s is not None else settings.HTTP_TIMEOUT_S
        self._max_retries = max_retries if max_retries is not None else settings.HTTP_MAX_RETRIES
        self._min_backoff_s = min_backoff_s
        self._max_backoff_s = max_backoff_s
        self._owns_session = session is None
        self._session = session or requests.Session()

    def close(self) -> None:
        """Cierra la sesion HTTP si fue creada por el cliente."""
        if self._owns_session:
            self._session.close()

    @property
    def base_url(self) -> str:
        return self._base_url

    def table_url(self, base_id: str, table_id: str) -> str:
        return f"{self._base_url}/{base_id}/{table_id}"

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    def list_bases(self) -> List[Dict[str, Any]]:
        """Bases accesibles con el token."""
        bases: List[Dict[str, Any]] = []
        offset: Optional[str] = None
        while True:
            query = [("offset", offset)] if offset else None
            payload = self._request_json("GET", f"{self._base_url}/{AIRTABLE_META_BASES_PATH}", query=query)
            bases.extend(payload.get("bases") or [])
            offset = payload.get("offset")
            if not offset:
                return bases

    def get_base_schema(self, base_id: str) -> Dict[str, Any]:
        """Tablas y campos de una base."""
        return self._request_json("GET", f"{self._base_url}/{AIRTABLE_META_BASES_PATH}/{base_id}/tables")

    # ------------------------------------------------------------------
    # Registros
    # ------------------------------------------------------------------

    def find_records(self, table_url: str, formula: str, page_size: int = 100) -> List[Dict[str, Any]]:
        """
        Registros que cumplen la fórmula (todas las páginas).
        """
        records: List[Dict[str, Any]] = []
        offset: Optional[str] = None
        while True:
            query: List[Tuple[str, Any]] = [("filterByFormula", formula), ("pageSize", page_size)]
            if offset:
                query.append(("offset", offset))
            payload = self._request_json("GET", table_url, query=query)
            records.extend(payload.get("records") or [])
            offset = payload.get("offset")
            if not offset:
                return records

    def create_records(self, table_url: str, records: List[Dict[str, Any]]) -> Dict[str, Any]:
        return self._request_json("POST", table_url, payload={"records": records})

    def update_records(self, table_url: str, records: List[Dict[str, Any]]) -> Dict[str, Any]:
        return self._request_json("PATCH", table_url, payload={"records": records})

    def delete_records(self, table_url: str, record_ids: List[str]) -> Dict[str, Any]:
        query = [("records[]", record_id) for record_id in record_ids]
        return self._request_json("DELETE", table_url, query=query)

    def _request_json(
        self,
        method: str,
        url: str,
        *,
        query: Optional[List[Tuple[str, Any]]] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Request HTTP con backoff para 429/5xx.

        Estrategia:
        - 429: respeta Retry-After si existe, si no exponencial con jitter simple.
        - 5xx: exponencial con jitter.
        - 4xx (no 429): error inmediato (config/auth mal).
        """
        headers = {
            "Authorization": f"Bearer {self._token}",
            "Content-Type": "application/json",
        }

        for attempt in range(self._max_retries + 1):
            resp = self._session.request(
                method=method,
                url=url,
                params=query,
                json=payload,
                headers=headers,
                timeout=self._timeout_s,
            )

            if 200 <= resp.status_code < 300:
                return resp.json() if resp.content else {}

            # Errores recuperables
            if resp.status_code == 429 or 500 <= resp.status_code < 600:
                if attempt >= self._max_retries:
                    raise AirtableApiError(
                        f"Airtable error {resp.status_code} tras {attempt} reintentos: {resp.text}",
                        status_code=resp.status_code,
                        response_body=resp.text,
                    )

                retry_after = resp.headers.get("Retry-After")
                if retry_after:
                    try:
                        sleep_s = float(retry_after)
                    except ValueError:
                        sleep_s = self._min_backoff_s
                else:
                    # Exponencial simple + jitter proporcional
                    base = min(self._max_backoff_s, self._min_backoff_s * (2**attempt))
                    sleep_s = base + (0.15 * base)

                time.sleep(sleep_s)
                continue

            # Errores no recuperables
            raise AirtableApiError(
                f"Airtable request falló {resp.status_code}: {resp.text}",
                status_code=resp.status_code,
                response_body=resp.text,
            )

        raise AirtableApiError(f"Airtable request sin respuesta: {method} {url}")
