"""
Entidad de dominio: SyncRecord (linaje de una fila por sync).
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from reverse_etl.shared.constants.sync_constants import DestinationAction, SyncRecordStatus


@dataclass
class SyncRecord:
    """
    Registro transformado de una fila de origen.

    Es unico por (sync_id, primary_key); sync_run_id apunta a la ultima
    corrida que lo toco. Se usa para deduplicar por fingerprint y para
    detectar borrados.
    """

    sync_id: int
    sync_run_id: int
    primary_key: str
    fingerprint: str
    record: Dict[str, Any] = field(default_factory=dict)
    action: DestinationAction = DestinationAction.INSERT
    status: SyncRecordStatus = SyncRecordStatus.PENDING
    logs: List[Dict[str, Any]] = field(default_factory=list)
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
