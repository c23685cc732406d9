"""
CLI: ejecución de syncs reverse ETL en proceso.

Uso recomendado:
  - Ejecutar como job (cron/systemd timer) o a mano para depurar un sync.
  - Cada ejecución corre extracción + carga completas en este proceso.

Variables de entorno:
  - DATABASE_URL (sqlite:///... o postgresql://...)
  - LOG_LEVEL / LOG_FILE (opcionales)

Ejecución:
  python scripts/run_sync.py --init-db
  python scripts/run_sync.py --sync-id 12
  python scripts/run_sync.py --run-id 340
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from dotenv import load_dotenv
from loguru import logger

# Permite ejecutar este script desde cualquier cwd sin instalar el paquete.
_REPO_ROOT = Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

# Cargar variables desde .env si existe (antes de importar la configuración).
load_dotenv(_REPO_ROOT / ".env", override=False)

from reverse_etl.application.use_cases import (
    IncrementalExtractor,
    SyncLifecycleUseCases,
    SyncRunLoader,
    SyncRunWorkflow,
    SYNC_RUN_WORKFLOW,
)
from reverse_etl.core.logging import setup_logging
from reverse_etl.infrastructure.database.session import init_db
from reverse_etl.infrastructure.external.connector_factory import build_destination, build_source
from reverse_etl.infrastructure.observability.loguru_reporter import LoguruErrorReporter
from reverse_etl.infrastructure.orchestration.local_orchestrator import LocalWorkflowOrchestrator
from reverse_etl.infrastructure.repositories.sync_repository_impl import SqlAlchemySyncRepository
from reverse_etl.shared.exceptions.base import AppException


def build_workflow(repository, orchestrator, reporter) -> SyncRunWorkflow:
    extractor = IncrementalExtractor(
        repository,
        source_factory=build_source,
        orchestrator=orchestrator,
        error_reporter=reporter,
    )
    loader = SyncRunLoader(repository, destination_factory=build_destination, error_reporter=reporter)
    return SyncRunWorkflow(repository, extractor, loader, error_reporter=reporter)


def main() -> int:
    parser = argparse.ArgumentParser(description="Ejecuta syncs reverse ETL")
    parser.add_argument("--init-db", action="store_true", help="Crea las tablas si no existen.")
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--sync-id", type=int, help="Crea una corrida para el sync y la ejecuta.")
    group.add_argument("--run-id", type=int, help="Ejecuta una corrida existente.")
    args = parser.parse_args()

    setup_logging()

    if args.init_db:
        init_db()
        logger.success("Tablas creadas")

    if args.sync_id is None and args.run_id is None:
        if not args.init_db:
            parser.print_help()
        return 0

    reporter = LoguruErrorReporter()
    repository = SqlAlchemySyncRepository()
    orchestrator = LocalWorkflowOrchestrator()
    workflow = build_workflow(repository, orchestrator, reporter)
    orchestrator.register(SYNC_RUN_WORKFLOW, workflow)

    try:
        if args.sync_id is not None:
            lifecycle = SyncLifecycleUseCases(repository, orchestrator, error_reporter=reporter)
            sync_run = lifecycle.trigger_run(args.sync_id)
            orchestrator.wait(repository.get_sync(args.sync_id).workflow_id)
            sync_run = repository.get_sync_run(sync_run.id)
        else:
            sync = repository.get_sync(repository.get_sync_run(args.run_id).sync_id)
            workflow.execute(args.run_id, workflow_id=sync.workflow_id)
            sync_run = repository.get_sync_run(args.run_id)
    except AppException as e:
        logger.error(f"Error ejecutando el sync: {e.message}")
        return 1

    logger.info(
        f"SyncRun {sync_run.id}: estado={sync_run.status.value}, leidas={sync_run.total_query_rows}, "
        f"sin cambios={sync_run.skipped_rows}, exitosas={sync_run.successful_rows}, "
        f"fallidas={sync_run.failed_rows}"
    )
    return 0 if sync_run.status.value == "success" else 1


if __name__ == "__main__":
    raise SystemExit(main())
