"""
Configuración de base de datos.

Importa todos los modelos para que se registren con Base
antes de crear las tablas.
"""
from reverse_etl.infrastructure.database.models import (
    SyncModel,
    SyncRecordModel,
    SyncRunModel,
)
