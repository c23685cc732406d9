"""
Ejecucion de lecturas por lotes acotados contra un conector de origen.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Dict, Iterator, List

from loguru import logger

from reverse_etl.application.interfaces.connectors import SourceConnector
from reverse_etl.domain.entities.connector_types import BatchParams
from reverse_etl.shared.constants.sync_constants import IncrementStrategy
from reverse_etl.shared.exceptions.sync import BatchIOError


@dataclass(frozen=True)
class BatchResult:
    """Un lote leido y el punto desde donde continuar."""

    records: List[Dict[str, Any]]
    next_offset: int
    next_cursor_value: Any


class BatchQueryRunner:
    """
    Recorre el origen con lecturas sucesivas hasta agotarlo.

    - Offset: el offset avanza en `limit` filas por lote.
    - Page: el offset es el numero de pagina y avanza de a uno.
    - Cursor: el filtro `cursor >= valor inicial` se mantiene fijo durante la
      corrida; el ultimo valor visto se reporta para la proxima corrida.

    Termina cuando un lote viene vacio o trae menos de `limit` filas.
    """

    def __init__(self, source: SourceConnector) -> None:
        self._source = source

    def iter_batches(self, params: BatchParams) -> Iterator[BatchResult]:
        if params.limit <= 0:
            raise ValueError(f"limit debe ser mayor a cero (recibido: {params.limit})")

        offset = params.offset
        cursor_value = params.current_cursor_field

        while True:
            batch_params = replace(params, offset=offset)
            try:
                records = self._source.read(batch_params)
            except BatchIOError:
                raise
            except Exception as e:
                raise BatchIOError(
                    f"Fallo la lectura del lote (offset={offset}): {e}",
                    details={"offset": offset, "sync_run_id": params.sync_run_id},
                ) from e

            if not records:
                logger.debug(f"Lote vacio en offset={offset}, origen agotado")
                break

            next_offset = self._next_offset(params, offset, len(records))
            cursor_value = self._last_cursor_value(params, records, cursor_value)
            yield BatchResult(records=records, next_offset=next_offset, next_cursor_value=cursor_value)

            if len(records) < params.limit:
                break
            offset = next_offset

    @staticmethod
    def _next_offset(params: BatchParams, offset: int, batch_length: int) -> int:
        if params.increment_strategy == IncrementStrategy.PAGE:
            return offset + 1
        return offset + batch_length

    @staticmethod
    def _last_cursor_value(params: BatchParams, records: List[Dict[str, Any]], previous: Any) -> Any:
        if not params.cursor_field:
            return previous
        value = records[-1].get(params.cursor_field)
        return previous if value is None else value
