"""
Contratos de los conectores de origen y destino.

Los casos de uso dependen de estas interfaces, nunca de un conector concreto:
- SqlSource / AirtableDestination / HttpDestination en infraestructura.
- Fakes en memoria para tests.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List

from reverse_etl.domain.entities.connector_types import (
    BatchParams,
    Catalog,
    ConnectionStatus,
    WriteResult,
)
from reverse_etl.shared.constants.sync_constants import DestinationAction


class SourceConnector(ABC):
    """
    Origen consultable por lotes acotados.

    Cada corrida abre su propio conector y lo libera con close() (o usando
    el conector como context manager) en cualquier salida.
    """

    @abstractmethod
    def check_connection(self) -> ConnectionStatus:
        """Verifica credenciales/conectividad. Nunca lanza excepcion."""

    @abstractmethod
    def discover_schema(self) -> Catalog:
        """Descubre las tablas/columnas disponibles."""

    @abstractmethod
    def read(self, batch_params: BatchParams) -> List[Dict[str, Any]]:
        """Lee un lote de filas segun offset/limit y cursor."""

    def close(self) -> None:
        """Libera conexiones. Por defecto no hace nada."""

    def __enter__(self) -> "SourceConnector":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.close()
        return False


class DestinationConnector(ABC):
    """Destino con semantica de upsert."""

    # Tamano de lote por defecto al entregar registros al destino
    batch_size: int = 100

    @abstractmethod
    def check_connection(self) -> ConnectionStatus:
        """Verifica credenciales/conectividad. Nunca lanza excepcion."""

    @abstractmethod
    def discover_schema(self) -> Catalog:
        """Descubre los streams de destino."""

    @abstractmethod
    def write(
        self,
        records: List[Dict[str, Any]],
        primary_key: str,
        action: DestinationAction = DestinationAction.INSERT,
    ) -> WriteResult:
        """
        Escribe un lote de registros transformados.

        Reglas:
        - Fallos parciales se comunican por WriteResult.failed, no por excepciones.
        - Solo errores irrecuperables de configuracion lanzan DestinationSetupError.
        """

    def close(self) -> None:
        """Libera sesiones HTTP u otros recursos."""
