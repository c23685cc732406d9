"""
Tipos compartidos entre el motor y los conectores de origen/destino.

Se mantienen libres de I/O para poder testearlos fácilmente.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from reverse_etl.shared.constants.sync_constants import (
    ConnectionStatusType,
    IncrementStrategy,
)


@dataclass(frozen=True)
class ConnectionStatus:
    """Resultado de check_connection. Nunca se lanza como excepcion."""

    status: ConnectionStatusType
    message: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == ConnectionStatusType.SUCCEEDED

    @classmethod
    def success(cls) -> "ConnectionStatus":
        return cls(status=ConnectionStatusType.SUCCEEDED)

    @classmethod
    def failure(cls, message: Optional[str] = None) -> "ConnectionStatus":
        return cls(status=ConnectionStatusType.FAILED, message=message)


@dataclass
class Stream:
    """Stream de un catalogo (tabla de origen o de destino)."""

    name: str
    json_schema: Dict[str, Any] = field(default_factory=dict)
    url: Optional[str] = None
    action: str = "create"
    batch_support: bool = False
    batch_size: int = 1
    supported_sync_modes: List[str] = field(default_factory=lambda: ["incremental"])


@dataclass
class Catalog:
    """Catalogo descubierto de un conector."""

    streams: List[Stream] = field(default_factory=list)

    def find_stream_by_name(self, name: Optional[str]) -> Optional[Stream]:
        if not name:
            return None
        return next((s for s in self.streams if s.name == name), None)


@dataclass(frozen=True)
class IncrementStrategyConfig:
    """Configuracion de paginacion tomada del conector de origen."""

    increment_strategy: IncrementStrategy
    offset: int = 0
    limit: int = 0
    offset_variable: Optional[str] = None
    limit_variable: Optional[str] = None


@dataclass(frozen=True)
class BatchParams:
    """
    Parametros de una lectura acotada.

    offset/limit siempre vienen informados; cursor_field/current_cursor_field
    solo cuando el sync es incremental por cursor.
    """

    query: str
    primary_key: str
    offset: int
    limit: int
    cursor_field: Optional[str] = None
    current_cursor_field: Optional[Any] = None
    increment_strategy: IncrementStrategy = IncrementStrategy.OFFSET
    sync_id: Optional[int] = None
    sync_run_id: Optional[int] = None


@dataclass
class WriteResult:
    """
    Conteos agregados de una pasada de escritura.

    succeeded_indexes / failed_indexes son posiciones en el lote recibido
    y permiten marcar cada SyncRecord.
    """

    success: int = 0
    failed: int = 0
    logs: List[Dict[str, Any]] = field(default_factory=list)
    succeeded_indexes: List[int] = field(default_factory=list)
    failed_indexes: List[int] = field(default_factory=list)

    def merge(self, other: "WriteResult") -> "WriteResult":
        self.success += other.success
        self.failed += other.failed
        self.logs.extend(other.logs)
        self.succeeded_indexes.extend(other.succeeded_indexes)
        self.failed_indexes.extend(other.failed_indexes)
        return self


def log_request_response(level: str, request: Any, response: Any) -> Dict[str, Any]:
    """Entrada de log request/response para observabilidad de cada llamada."""
    return {"level": level, "request": request, "response": response}
