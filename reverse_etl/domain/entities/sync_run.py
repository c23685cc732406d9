"""
Entidad de dominio: SyncRun (una corrida de un Sync).
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar, Dict, List, Optional

from reverse_etl.domain.entities.state_machine import StateMachineMixin, Transition
from reverse_etl.shared.constants.sync_constants import TERMINAL_RUN_STATUSES, SyncRunStatus

_NON_TERMINAL = [s for s in SyncRunStatus if s not in TERMINAL_RUN_STATUSES]


@dataclass
class SyncRun(StateMachineMixin):
    """
    Corrida de un sync con sus contadores de progreso.

    Flujo: pending -> started -> querying -> queued -> in_progress -> success|failed.
    Cualquier estado no terminal puede abortarse (canceled).
    """

    ENTITY_NAME: ClassVar[str] = "SyncRun"
    TRANSITIONS: ClassVar[Dict[str, Transition]] = {
        "start": Transition.of([SyncRunStatus.PENDING], SyncRunStatus.STARTED),
        "query": Transition.of(
            [SyncRunStatus.PENDING, SyncRunStatus.STARTED], SyncRunStatus.QUERYING
        ),
        "queue": Transition.of([SyncRunStatus.QUERYING], SyncRunStatus.QUEUED),
        "progress": Transition.of([SyncRunStatus.QUEUED], SyncRunStatus.IN_PROGRESS),
        "complete": Transition.of([SyncRunStatus.IN_PROGRESS], SyncRunStatus.SUCCESS),
        "fail": Transition.of(
            [
                SyncRunStatus.STARTED,
                SyncRunStatus.QUERYING,
                SyncRunStatus.QUEUED,
                SyncRunStatus.IN_PROGRESS,
            ],
            SyncRunStatus.FAILED,
        ),
        "abort": Transition.of(_NON_TERMINAL, SyncRunStatus.CANCELED),
    }

    sync_id: int
    id: Optional[int] = None
    status: SyncRunStatus = SyncRunStatus.PENDING
    current_offset: int = 0
    current_cursor_field: Optional[Any] = None
    total_query_rows: int = 0
    skipped_rows: int = 0
    total_rows: int = 0
    successful_rows: int = 0
    failed_rows: int = 0
    error: Optional[str] = None
    logs: List[Dict[str, Any]] = field(default_factory=list)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    discarded_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_RUN_STATUSES

    def may_start(self) -> bool:
        return self.may_fire("start")

    def may_query(self) -> bool:
        return self.may_fire("query")

    def may_queue(self) -> bool:
        return self.may_fire("queue")

    def may_progress(self) -> bool:
        return self.may_fire("progress")

    def may_complete(self) -> bool:
        return self.may_fire("complete")

    def may_fail(self) -> bool:
        return self.may_fire("fail")

    def may_abort(self) -> bool:
        return self.may_fire("abort")

    def start(self) -> None:
        self.fire("start")

    def query(self) -> None:
        self.fire("query")

    def queue(self) -> None:
        self.fire("queue")

    def progress(self) -> None:
        self.fire("progress")

    def complete(self) -> None:
        self.fire("complete")

    def fail(self, error: Optional[str] = None) -> None:
        self.fire("fail")
        self.error = error

    def abort(self) -> None:
        self.fire("abort")
