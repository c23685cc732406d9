"""
Servicio de embeddings para mapeos de tipo vector.

embedding_config esperado:
    {"mode": "open_ai", "api_key": "...", "model": "text-embedding-3-small"}
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from loguru import logger
from openai import OpenAI

from reverse_etl.shared.exceptions.sync import TransformError

OPEN_AI_MODE = "open_ai"
DEFAULT_OPEN_AI_MODEL = "text-embedding-3-small"


class EmbeddingService:
    """Genera embeddings con el proveedor indicado en la configuración."""

    def __init__(self, embedding_config: Dict[str, Any], client: Optional[OpenAI] = None) -> None:
        self.embedding_config = embedding_config or {}
        self.mode = self.embedding_config.get("mode", OPEN_AI_MODE)
        if self.mode != OPEN_AI_MODE:
            raise TransformError(
                f"Modo de embedding no soportado: {self.mode!r}",
                details={"mode": self.mode},
            )
        self.model = self.embedding_config.get("model") or DEFAULT_OPEN_AI_MODEL
        self._client = client or OpenAI(api_key=self.embedding_config.get("api_key"))

    def generate_embedding(self, text: Any) -> List[float]:
        """
        Embedding del texto.

        Raises:
            TransformError: si el texto está vacío o el proveedor falla
        """
        if text is None or str(text).strip() == "":
            raise TransformError("No se puede generar un embedding de un valor vacío")

        try:
            response = self._client.embeddings.create(model=self.model, input=str(text))
        except Exception as e:
            logger.error(f"Error del proveedor de embeddings ({self.model}): {e}")
            raise TransformError(f"Error generando embedding: {e}", details={"model": self.model}) from e

        return list(response.data[0].embedding)
