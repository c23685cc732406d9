"""
Interfaz del repositorio de syncs.
Define el contrato de persistencia que el motor delega al almacenamiento.
"""
from abc import ABC, abstractmethod
from typing import Any, Iterable, List, Optional, Set

from reverse_etl.domain.entities.sync import Sync
from reverse_etl.domain.entities.sync_record import SyncRecord
from reverse_etl.domain.entities.sync_run import SyncRun
from reverse_etl.shared.constants.sync_constants import SyncRecordStatus


class ISyncRepository(ABC):
    """
    Interfaz del repositorio de syncs, corridas y registros.

    Las implementaciones deben ser seguras para llamadas desde varios
    threads: el extractor persiste registros desde su pool de workers.
    """

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    @abstractmethod
    def get_sync(self, sync_id: int) -> Sync:
        """
        Obtiene un sync no descartado.

        Raises:
            EntityNotFoundException: si no existe o fue descartado
        """

    @abstractmethod
    def save_sync(self, sync: Sync) -> Sync:
        """Crea o actualiza un sync y retorna la entidad persistida."""

    # ------------------------------------------------------------------
    # SyncRun
    # ------------------------------------------------------------------

    @abstractmethod
    def create_sync_run(self, sync_run: SyncRun) -> SyncRun:
        """Crea una corrida y retorna la entidad con ID asignado."""

    @abstractmethod
    def get_sync_run(self, sync_run_id: int) -> SyncRun:
        """
        Obtiene una corrida por ID.

        Raises:
            EntityNotFoundException: si no existe
        """

    @abstractmethod
    def save_sync_run(self, sync_run: SyncRun) -> SyncRun:
        """Persiste estado, contadores y logs de la corrida."""

    @abstractmethod
    def list_sync_runs(self, sync_id: int) -> List[SyncRun]:
        """Corridas no descartadas de un sync, mas recientes primero."""

    @abstractmethod
    def discard_sync_runs(self, sync_id: int) -> int:
        """Descarta (soft delete) todas las corridas del sync."""

    @abstractmethod
    def checkpoint(self, sync_run: SyncRun, cursor_value: Optional[Any]) -> None:
        """
        Persiste en una sola transaccion el progreso de la corrida
        (current_offset, total_query_rows, skipped_rows) y el cursor del sync.
        """

    # ------------------------------------------------------------------
    # SyncRecord
    # ------------------------------------------------------------------

    @abstractmethod
    def find_sync_record(self, sync_id: int, primary_key: str) -> Optional[SyncRecord]:
        """Busca el registro de un sync por primary key."""

    @abstractmethod
    def save_sync_record(self, sync_record: SyncRecord) -> SyncRecord:
        """Crea o actualiza el registro unico (sync_id, primary_key)."""

    @abstractmethod
    def live_primary_keys(self, sync_id: int) -> Set[str]:
        """Primary keys del sync cuyo registro no esta marcado como borrado."""

    @abstractmethod
    def mark_deleted(self, sync_id: int, sync_run_id: int, primary_keys: Iterable[str]) -> int:
        """Marca los registros como destination_delete pendientes para la corrida."""

    @abstractmethod
    def pending_sync_records(self, sync_run_id: int) -> List[SyncRecord]:
        """Registros pendientes de escritura de la corrida."""

    @abstractmethod
    def update_sync_record_status(
        self,
        record_ids: Iterable[int],
        status: SyncRecordStatus,
        log: Optional[dict] = None,
    ) -> int:
        """Actualiza el estado (y opcionalmente agrega un log) de varios registros."""
