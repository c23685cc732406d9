"""
Constantes relacionadas con syncs, corridas y registros.
"""
from enum import Enum


class SyncStatus(str, Enum):
    """Estados posibles de un sync."""
    PENDING = "pending"
    HEALTHY = "healthy"
    FAILED = "failed"
    DISABLED = "disabled"


class SyncRunStatus(str, Enum):
    """Estados posibles de una corrida (SyncRun)."""
    PENDING = "pending"
    STARTED = "started"
    QUERYING = "querying"
    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELED = "canceled"


# Una corrida en cualquiera de estos estados ya no cambia.
TERMINAL_RUN_STATUSES = frozenset(
    {SyncRunStatus.SUCCESS, SyncRunStatus.FAILED, SyncRunStatus.CANCELED}
)


class ScheduleType(str, Enum):
    """Tipos de agenda de un sync."""
    MANUAL = "manual"
    INTERVAL = "interval"
    CRON_EXPRESSION = "cron_expression"


class SyncIntervalUnit(str, Enum):
    """Unidades validas para syncs por intervalo."""
    MINUTES = "minutes"
    HOURS = "hours"
    DAYS = "days"
    WEEKS = "weeks"


class MappingType(str, Enum):
    """Tipos de mapeo soportados por el transformador."""
    STANDARD = "standard"
    STATIC = "static"
    TEMPLATE = "template"
    VECTOR = "vector"


class SyncRecordStatus(str, Enum):
    """Estado de escritura de un SyncRecord."""
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class DestinationAction(str, Enum):
    """Accion que el destino debe aplicar sobre un registro."""
    INSERT = "destination_insert"
    UPDATE = "destination_update"
    DELETE = "destination_delete"

    @property
    def event(self) -> str:
        """Nombre corto del evento (insert/update/delete)."""
        return self.value.replace("destination_", "")


class IncrementStrategy(str, Enum):
    """Estrategias de paginacion del extractor."""
    OFFSET = "offset"
    PAGE = "page"


class ConnectionStatusType(str, Enum):
    """Resultado de un check_connection."""
    SUCCEEDED = "succeeded"
    FAILED = "failed"


# Conectores de destino con reglas especiales
AIRTABLE_CONNECTOR = "airtable"
HTTP_CONNECTOR = "http"

# Valores por defecto para destinos HTTP
DEFAULT_HTTP_EVENTS = ("insert", "update", "delete")
DEFAULT_HTTP_BATCH_SIZE = 1000
