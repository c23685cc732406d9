"""
Interfaz del colaborador de reporte de errores y logging estructurado.

Se inyecta en los casos de uso para poder testearlos sin backend de logs.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Protocol


class ErrorReporter(Protocol):
    def report(self, exception: BaseException, context: Optional[Dict[str, Any]] = None) -> None:
        """Reporta una excepcion al sistema de tracking con su contexto."""

    def log(self, level: str, message: str, **fields: Any) -> None:
        """Registra un evento estructurado."""
