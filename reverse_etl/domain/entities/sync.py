"""
Entidad de dominio: Sync.

Un Sync une un origen, un destino, un modelo (query de origen), un stream
de destino y la configuracion de mapeo. Su estado lo gobierna una maquina
de estados; los efectos colaterales (agendar/cancelar en el orquestador)
los aplica SyncLifecycleUseCases.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar, Dict, List, Optional, Union

from reverse_etl.domain.entities.connector_types import Catalog, IncrementStrategyConfig
from reverse_etl.domain.entities.state_machine import StateMachineMixin, Transition
from reverse_etl.shared.constants.sync_constants import (
    AIRTABLE_CONNECTOR,
    DEFAULT_HTTP_BATCH_SIZE,
    DEFAULT_HTTP_EVENTS,
    HTTP_CONNECTOR,
    IncrementStrategy,
    ScheduleType,
    SyncIntervalUnit,
    SyncStatus,
)
from reverse_etl.shared.exceptions.domain import SyncValidationError

MappingConfig = Union[Dict[str, str], List[Dict[str, Any]]]


@dataclass
class ConnectorConfig:
    """Conector referenciado por el sync (la persistencia del conector es externa)."""

    connector_name: str
    configuration: Dict[str, Any] = field(default_factory=dict)
    name: str = ""

    def is_connector(self, connector_name: str) -> bool:
        return (self.connector_name or "").lower() == connector_name


@dataclass
class QueryModel:
    """Modelo de origen: la query y su primary key."""

    name: str
    query: str
    query_type: str = "raw_sql"
    primary_key: str = ""


@dataclass
class Sync(StateMachineMixin):
    """
    Entidad de dominio que representa un sync.

    Estados: pending (inicial) -> healthy <-> failed; pending|healthy|failed -> disabled;
    disabled -> pending.
    """

    ENTITY_NAME: ClassVar[str] = "Sync"
    TRANSITIONS: ClassVar[Dict[str, Transition]] = {
        "complete": Transition.of([SyncStatus.PENDING, SyncStatus.HEALTHY], SyncStatus.HEALTHY),
        "fail": Transition.of([SyncStatus.PENDING, SyncStatus.HEALTHY], SyncStatus.FAILED),
        "disable": Transition.of(
            [SyncStatus.PENDING, SyncStatus.HEALTHY, SyncStatus.FAILED], SyncStatus.DISABLED
        ),
        "enable": Transition.of([SyncStatus.DISABLED], SyncStatus.PENDING),
    }

    source: ConnectorConfig
    destination: ConnectorConfig
    model: QueryModel
    stream_name: str
    configuration: MappingConfig
    id: Optional[int] = None
    workspace_id: Optional[int] = None
    primary_key_mapping: Dict[str, str] = field(default_factory=dict)
    http_sync_settings: Dict[str, Any] = field(default_factory=dict)
    schedule_type: ScheduleType = ScheduleType.MANUAL
    sync_interval: Optional[int] = None
    sync_interval_unit: Optional[SyncIntervalUnit] = None
    cron_expression: Optional[str] = None
    cursor_field: Optional[str] = None
    current_cursor_field: Optional[Any] = None
    status: SyncStatus = SyncStatus.PENDING
    discarded_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    # ------------------------------------------------------------------
    # Maquina de estados
    # ------------------------------------------------------------------

    def complete(self) -> None:
        self.fire("complete")

    def fail(self) -> None:
        self.fire("fail")

    def disable(self) -> None:
        self.fire("disable")

    def enable(self) -> None:
        self.fire("enable")

    def may_complete(self) -> bool:
        return self.may_fire("complete")

    def may_fail(self) -> bool:
        return self.may_fire("fail")

    def may_disable(self) -> bool:
        return self.may_fire("disable")

    def may_enable(self) -> bool:
        return self.may_fire("enable")

    # ------------------------------------------------------------------
    # Agenda
    # ------------------------------------------------------------------

    @property
    def is_manual(self) -> bool:
        return self.schedule_type == ScheduleType.MANUAL

    @property
    def is_discarded(self) -> bool:
        return self.discarded_at is not None

    @property
    def workflow_id(self) -> str:
        """ID estable del workflow agendado para este sync."""
        return f"sync-{self.id}"

    def schedule_cron_expression(self) -> str:
        """
        Expresion cron efectiva del sync.

        Si hay cron_expression se usa tal cual; si no, se deriva del intervalo.
        """
        if self.schedule_type == ScheduleType.CRON_EXPRESSION and self.cron_expression:
            return self.cron_expression

        unit = SyncIntervalUnit(self.sync_interval_unit) if self.sync_interval_unit else None
        interval = self.sync_interval
        if unit == SyncIntervalUnit.MINUTES:
            return f"*/{interval} * * * *"
        if unit == SyncIntervalUnit.HOURS:
            return f"0 */{interval} * * *"
        if unit == SyncIntervalUnit.DAYS:
            return f"0 0 */{interval} * *"
        if unit == SyncIntervalUnit.WEEKS:
            return f"0 0 */{interval * 7} * *"
        raise ValueError(f"Invalid sync_interval_unit: {self.sync_interval_unit}")

    def schedule_sync_required(self, previous: Optional["Sync"]) -> bool:
        """
        Indica si guardar este sync debe (re)agendar el trigger.

        Aplica a syncs nuevos o con cambios de intervalo, unidad, cron o
        status vuelto a pending; nunca a syncs manuales.
        """
        if self.is_manual:
            return False
        if previous is None:
            return True
        return (
            previous.sync_interval != self.sync_interval
            or previous.sync_interval_unit != self.sync_interval_unit
            or previous.cron_expression != self.cron_expression
            or (previous.status != self.status and self.status == SyncStatus.PENDING)
        )

    def terminate_sync_required(self, previous: Optional["Sync"]) -> bool:
        """Indica si el guardado dejo el sync en disabled."""
        return (
            previous is not None
            and previous.status != self.status
            and self.status == SyncStatus.DISABLED
        )

    # ------------------------------------------------------------------
    # Identidad y paginacion
    # ------------------------------------------------------------------

    @property
    def source_primary_key(self) -> str:
        return (self.primary_key_mapping or {}).get("source") or self.model.primary_key

    @property
    def destination_primary_key(self) -> str:
        return (self.primary_key_mapping or {}).get("destination") or self.source_primary_key

    def increment_strategy_config(self) -> Optional[IncrementStrategyConfig]:
        """
        Configuracion de paginacion del origen.

        Para estrategia Page, offset y limit toman 1 y 10 cuando vienen en cero.
        """
        source_config = self.source.configuration or {}
        increment_type = source_config.get("increment_type")
        if increment_type is None:
            return None

        offset = _to_int(source_config.get("page_start"))
        limit = _to_int(source_config.get("page_size"))
        is_page = increment_type == "Page"

        return IncrementStrategyConfig(
            increment_strategy=IncrementStrategy(str(increment_type).lower()),
            offset=(offset or 1) if is_page else offset,
            limit=(limit or 10) if is_page else limit,
            offset_variable=source_config.get("offset_param"),
            limit_variable=source_config.get("limit_param"),
        )

    # ------------------------------------------------------------------
    # Destinos HTTP
    # ------------------------------------------------------------------

    @property
    def is_http_destination(self) -> bool:
        return self.destination.is_connector(HTTP_CONNECTOR)

    def http_events_filter(self) -> List[str]:
        events = [str(e) for e in (self.http_sync_settings or {}).get("events") or []]
        return events or list(DEFAULT_HTTP_EVENTS)

    def http_batch_size(self) -> int:
        value = _to_int((self.http_sync_settings or {}).get("batch_size"))
        return value if value > 0 else DEFAULT_HTTP_BATCH_SIZE

    def apply_http_sync_defaults(self) -> None:
        """Completa eventos y batch_size por defecto para destinos HTTP."""
        if not self.is_http_destination:
            return
        settings = dict(self.http_sync_settings or {})
        settings["events"] = self.http_events_filter()
        settings["batch_size"] = self.http_batch_size()
        self.http_sync_settings = settings

    # ------------------------------------------------------------------
    # Validacion
    # ------------------------------------------------------------------

    def validate(self, catalog: Optional[Catalog]) -> None:
        """
        Valida el sync contra el catalogo descubierto del destino.

        Raises:
            SyncValidationError: con todos los errores agrupados por campo
        """
        errors: Dict[str, List[str]] = {}

        def add(field_name: str, message: str) -> None:
            errors.setdefault(field_name, []).append(message)

        if not self.configuration:
            add("configuration", "can't be blank")
        if not self.stream_name:
            add("stream_name", "can't be blank")

        if self.schedule_type == ScheduleType.INTERVAL:
            if not self.sync_interval or self.sync_interval <= 0:
                add("sync_interval", "must be greater than 0")
            if not self.sync_interval_unit:
                add("sync_interval_unit", "can't be blank")
        if self.schedule_type == ScheduleType.CRON_EXPRESSION and not self.cron_expression:
            add("cron_expression", "can't be blank")

        if catalog is None:
            add("catalog", "Catalog is missing")
        elif self.stream_name and catalog.find_stream_by_name(self.stream_name) is None:
            add("stream_name", "Add a valid stream_name associated with destination connector")

        if self.destination.is_connector(AIRTABLE_CONNECTOR):
            if not self.source_primary_key:
                add("primary_key_mapping", "Source primary key is required for Airtable syncs")
            if not self.destination_primary_key:
                add("primary_key_mapping", "Destination primary key is required for Airtable syncs")

        if self.is_http_destination:
            settings = self.http_sync_settings or {}
            if not settings.get("events"):
                add("http_sync_settings", "Select at least one HTTP event trigger")
            batch_size = settings.get("batch_size")
            if batch_size not in (None, "") and _to_int(batch_size) <= 0:
                add("http_sync_settings", "Batch size must be greater than zero")

        if errors:
            raise SyncValidationError(errors)


def _to_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0
