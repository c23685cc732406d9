"""
Excepciones del pipeline de extraccion, transformacion y escritura.

Politica de propagacion:
- TransformError: se captura por registro (el registro queda failed).
- BatchIOError: se captura en su alcance (lote, sub-lote o chunk).
- OrchestratorError: se loguea y reporta, nunca bloquea el cambio de estado local.
- ConnectorConnectionError: se convierte en un ConnectionStatus fallido.
- DestinationSetupError: aborta toda la escritura.
"""
from typing import Any, Dict, Optional

from reverse_etl.shared.exceptions.base import AppException


class SyncPipelineError(AppException):
    """Excepción base para errores del pipeline de sync."""

    def __init__(
        self,
        message: str,
        error_code: str = "SYNC_PIPELINE_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message=message, error_code=error_code, details=details)


class ConnectorConnectionError(SyncPipelineError):
    """El origen o destino no responde o rechaza las credenciales."""

    user_message = "No se pudo conectar con el conector"

    def __init__(self, message: str, details=None):
        super().__init__(message, error_code="CONNECTION_ERROR", details=details)


class TransformError(SyncPipelineError):
    """Fallo al renderizar o normalizar un mapeo."""

    user_message = "No se pudo transformar el registro con el mapeo configurado"

    def __init__(self, message: str, details=None):
        super().__init__(message, error_code="TRANSFORM_ERROR", details=details)


class BatchIOError(SyncPipelineError):
    """Fallo de una llamada de lectura, busqueda o escritura de un lote."""

    user_message = "Fallo la lectura o escritura de un lote de registros"

    def __init__(self, message: str, details=None):
        super().__init__(message, error_code="BATCH_IO_ERROR", details=details)


class OrchestratorError(SyncPipelineError):
    """Fallo al agendar, cancelar o enviar heartbeat al orquestador."""

    user_message = "No se pudo comunicar con el orquestador de workflows"

    def __init__(self, message: str, details=None):
        super().__init__(message, error_code="ORCHESTRATOR_ERROR", details=details)


class DestinationSetupError(SyncPipelineError):
    """Error irrecuperable de configuracion del destino."""

    user_message = "La configuracion del destino es incompleta"

    def __init__(self, message: str, details=None):
        super().__init__(message, error_code="DESTINATION_SETUP_ERROR", details=details)
