"""
Excepciones de la aplicación.
"""
from reverse_etl.shared.exceptions.base import AppException, user_message
from reverse_etl.shared.exceptions.domain import (
    DomainException,
    EntityNotFoundException,
    StateTransitionError,
    SyncValidationError,
)
from reverse_etl.shared.exceptions.sync import (
    BatchIOError,
    ConnectorConnectionError,
    DestinationSetupError,
    OrchestratorError,
    SyncPipelineError,
    TransformError,
)

__all__ = [
    "AppException",
    "user_message",
    # Dominio
    "DomainException",
    "EntityNotFoundException",
    "StateTransitionError",
    "SyncValidationError",
    # Pipeline
    "SyncPipelineError",
    "ConnectorConnectionError",
    "TransformError",
    "BatchIOError",
    "OrchestratorError",
    "DestinationSetupError",
]
