"""
Interfaz del orquestador externo de workflows.

No asume la forma de ningun orquestador concreto: el motor solo necesita
agendar, cancelar, arrancar workflows y enviar heartbeats.
"""

from __future__ import annotations

from typing import Any, Dict, Protocol


class WorkflowOrchestrator(Protocol):
    """
    Implementaciones:
    - LocalWorkflowOrchestrator (threads en el mismo proceso).
    - Fake en memoria para tests.
    """

    def schedule(self, sync_id: int, cron_expression: str) -> str:
        """(Re)registra el trigger agendado de un sync. Retorna el workflow_id."""

    def cancel(self, workflow_id: str) -> None:
        """Solicita cancelar cualquier ejecucion en curso o agendada del workflow."""

    def start(self, workflow_type: str, args: Dict[str, Any]) -> str:
        """Arranca un workflow ad-hoc. Retorna el workflow_id."""

    def heartbeat(self, workflow_id: str, details: Dict[str, Any]) -> bool:
        """
        Reporta liveness de una actividad.

        Returns:
            True si el orquestador solicito cancelar la ejecucion.
        """
