"""
Configuracion de loguru para los procesos del motor de sync.
"""
import sys
from typing import Optional

from loguru import logger

from reverse_etl.core.config import settings


def setup_logging(level: Optional[str] = None, log_file: Optional[str] = None) -> None:
    """
    Configura los sinks de loguru: consola y archivo con rotacion.

    Args:
        level: Nivel de log (default: settings.LOG_LEVEL)
        log_file: Archivo de log (default: settings.LOG_FILE). Cadena vacia desactiva el archivo.
    """
    level = (level or settings.LOG_LEVEL).upper()
    log_file = settings.LOG_FILE if log_file is None else log_file

    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
            "<cyan>{name}</cyan> - <level>{message}</level> | {extra}"
        ),
    )

    if log_file:
        logger.add(
            log_file,
            rotation="500 MB",
            retention="10 days",
            level=level,
            enqueue=True,
        )

    logger.debug(
        f"Logging configurado para {settings.APP_NAME} [{settings.ENVIRONMENT}] "
        f"(level={level}, file={log_file or '-'})"
    )
