"""
Excepciones relacionadas con la lógica de dominio.
"""
from typing import Any, Dict, List

from reverse_etl.shared.exceptions.base import AppException


class DomainException(AppException):
    """Excepción base para errores de dominio."""

    def __init__(self, message: str, error_code: str = "DOMAIN_ERROR", details=None):
        super().__init__(
            message=message,
            error_code=error_code,
            details=details
        )


class EntityNotFoundException(DomainException):
    """Excepción cuando no se encuentra una entidad."""

    user_message = "El recurso solicitado no existe"

    def __init__(self, entity_name: str, entity_id: Any):
        super().__init__(
            message=f"{entity_name} con ID {entity_id} no encontrado",
            error_code="ENTITY_NOT_FOUND",
            details={"entity": entity_name, "id": str(entity_id)}
        )


class SyncValidationError(DomainException):
    """Excepción cuando la configuracion de un sync no es valida."""

    user_message = "La configuracion del sync no es valida"

    def __init__(self, errors: Dict[str, List[str]]):
        self.errors = errors
        summary = "; ".join(
            f"{field}: {', '.join(messages)}" for field, messages in errors.items()
        )
        super().__init__(
            message=f"Sync invalido - {summary}",
            error_code="SYNC_VALIDATION_ERROR",
            details={"errors": errors}
        )


class StateTransitionError(DomainException):
    """Excepción cuando se solicita una transicion de estado ilegal."""

    user_message = "La operacion no esta permitida en el estado actual"

    def __init__(self, entity_name: str, event: str, current_state: str):
        super().__init__(
            message=f"{entity_name}: evento '{event}' no permitido desde '{current_state}'",
            error_code="INVALID_STATE_TRANSITION",
            details={"entity": entity_name, "event": event, "state": current_state}
        )
        self.event = event
        self.current_state = current_state
