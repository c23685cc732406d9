"""
ErrorReporter por defecto basado en loguru.
"""
from typing import Any, Dict, Optional

from loguru import logger

from reverse_etl.shared.exceptions.base import AppException


class LoguruErrorReporter:
    """
    Reporta excepciones como logs estructurados.

    El contexto viaja en `extra` (logger.bind) para que los sinks JSON
    o de archivo lo serialicen junto al mensaje.
    """

    def report(self, exception: BaseException, context: Optional[Dict[str, Any]] = None) -> None:
        fields = dict(context or {})
        fields["error_type"] = type(exception).__name__
        if isinstance(exception, AppException):
            fields["error_code"] = exception.error_code
        logger.bind(**fields).opt(exception=exception).error(f"Excepcion reportada: {exception}")

    def log(self, level: str, message: str, **fields: Any) -> None:
        logger.bind(**fields).log(level.upper(), message)
