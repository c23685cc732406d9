"""
Orquestador de workflows en proceso.

Ejecuta cada workflow en un thread propio y modela la cancelación con un
threading.Event por workflow_id. Los triggers agendados solo se registran:
dispararlos es responsabilidad de un scheduler externo.
"""
from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from loguru import logger

from reverse_etl.shared.exceptions.sync import OrchestratorError
from reverse_etl.shared.utils.datetime_utils import utc_now

WorkflowHandler = Callable[..., Any]


@dataclass
class ScheduledTrigger:
    """Trigger cron registrado para un sync."""

    workflow_id: str
    sync_id: int
    cron_expression: str
    registered_at: Any = field(default_factory=utc_now)


class LocalWorkflowOrchestrator:
    """
    Implementación en memoria de WorkflowOrchestrator.

    Uso:
        orchestrator = LocalWorkflowOrchestrator()
        orchestrator.register("sync_run", handler)
        workflow_id = orchestrator.start("sync_run", {"sync_run_id": 1})
        orchestrator.wait(workflow_id)
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._handlers: Dict[str, WorkflowHandler] = {}
        self._schedules: Dict[str, ScheduledTrigger] = {}
        self._cancel_events: Dict[str, threading.Event] = {}
        self._threads: Dict[str, threading.Thread] = {}
        self._heartbeats: Dict[str, Dict[str, Any]] = {}

    def register(self, workflow_type: str, handler: WorkflowHandler) -> None:
        """Asocia un handler(workflow_id=..., **args) a un tipo de workflow."""
        self._handlers[workflow_type] = handler

    # ------------------------------------------------------------------
    # WorkflowOrchestrator
    # ------------------------------------------------------------------

    def schedule(self, sync_id: int, cron_expression: str) -> str:
        workflow_id = f"sync-{sync_id}"
        with self._lock:
            self._schedules[workflow_id] = ScheduledTrigger(
                workflow_id=workflow_id, sync_id=sync_id, cron_expression=cron_expression
            )
        logger.info(f"Trigger agendado {workflow_id}: '{cron_expression}'")
        return workflow_id

    def cancel(self, workflow_id: str) -> None:
        with self._lock:
            self._schedules.pop(workflow_id, None)
            self._cancel_events.setdefault(workflow_id, threading.Event()).set()
        logger.info(f"Cancelacion solicitada para {workflow_id}")

    def start(self, workflow_type: str, args: Dict[str, Any]) -> str:
        handler = self._handlers.get(workflow_type)
        if handler is None:
            raise OrchestratorError(
                f"Tipo de workflow no registrado: {workflow_type}",
                details={"workflow_type": workflow_type},
            )

        args = dict(args)
        workflow_id = args.pop("workflow_id", None) or f"{workflow_type}-{uuid.uuid4().hex[:12]}"

        with self._lock:
            running = self._threads.get(workflow_id)
            if running is not None and running.is_alive():
                raise OrchestratorError(
                    f"El workflow {workflow_id} ya esta en ejecucion",
                    details={"workflow_id": workflow_id},
                )
            # Una cancelacion previa no afecta a la nueva ejecucion
            self._cancel_events[workflow_id] = threading.Event()
            thread = threading.Thread(
                target=self._run,
                args=(workflow_id, handler, args),
                name=f"workflow-{workflow_id}",
                daemon=True,
            )
            self._threads[workflow_id] = thread

        thread.start()
        logger.info(f"Workflow {workflow_type} iniciado: {workflow_id}")
        return workflow_id

    def heartbeat(self, workflow_id: str, details: Dict[str, Any]) -> bool:
        with self._lock:
            self._heartbeats[workflow_id] = dict(details)
            event = self._cancel_events.get(workflow_id)
        return bool(event and event.is_set())

    # ------------------------------------------------------------------
    # Consultas
    # ------------------------------------------------------------------

    def wait(self, workflow_id: str, timeout: Optional[float] = None) -> bool:
        """Espera el fin del workflow. Retorna False si sigue corriendo."""
        thread = self._threads.get(workflow_id)
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def scheduled(self, workflow_id: str) -> Optional[ScheduledTrigger]:
        with self._lock:
            return self._schedules.get(workflow_id)

    def last_heartbeat(self, workflow_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            return self._heartbeats.get(workflow_id)

    def _run(self, workflow_id: str, handler: WorkflowHandler, args: Dict[str, Any]) -> None:
        try:
            handler(workflow_id=workflow_id, **args)
        except Exception as e:
            logger.opt(exception=e).error(f"Workflow {workflow_id} fallido: {e}")
        else:
            logger.success(f"Workflow {workflow_id} finalizado")
