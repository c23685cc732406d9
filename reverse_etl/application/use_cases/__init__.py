"""
Casos de uso de la aplicacion.
"""
from .incremental_extract import ExtractionResult, IncrementalExtractor
from .sync_lifecycle_use_cases import SyncLifecycleUseCases
from .sync_run_loader import LoadResult, SyncRunLoader
from .sync_run_workflow import SYNC_RUN_WORKFLOW, SyncRunOutcome, SyncRunWorkflow

__all__ = [
    "IncrementalExtractor",
    "ExtractionResult",
    "SyncRunLoader",
    "LoadResult",
    "SyncRunWorkflow",
    "SyncRunOutcome",
    "SYNC_RUN_WORKFLOW",
    "SyncLifecycleUseCases",
]
