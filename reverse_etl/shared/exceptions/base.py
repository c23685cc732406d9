"""
Excepción base para todas las excepciones personalizadas del motor de sync.
"""
from typing import Optional, Dict, Any


class AppException(Exception):
    """
    Excepción base de la aplicación.
    Todas las excepciones personalizadas deben heredar de esta clase.
    """

    # Mensaje legible para el usuario final (nunca el texto crudo de la excepcion)
    user_message = "Ha ocurrido un error interno"

    def __init__(
        self,
        message: str,
        error_code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        """
        Inicializa la excepción.

        Args:
            message: Mensaje de error descriptivo
            error_code: Código de error personalizado
            details: Detalles adicionales del error
        """
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


def user_message(exc: BaseException) -> str:
    """
    Retorna un mensaje clasificado y legible para mostrar al usuario.
    Las excepciones que no son de la aplicacion se reportan de forma generica.
    """
    if isinstance(exc, AppException):
        return exc.user_message
    return AppException.user_message
