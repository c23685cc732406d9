"""
Entidades del dominio.
"""
from reverse_etl.domain.entities.sync import ConnectorConfig, QueryModel, Sync
from reverse_etl.domain.entities.sync_record import SyncRecord
from reverse_etl.domain.entities.sync_run import SyncRun

__all__ = [
    "ConnectorConfig",
    "QueryModel",
    "Sync",
    "SyncRun",
    "SyncRecord",
]
