"""
Transformador de registros: aplica la configuracion de mapeo a una fila de origen.

Formatos de configuracion:
- Legacy: dict plano {campo_origen: "ruta.destino"} (equivale a mapeos standard).
- Lista ordenada de entradas con `mapping_type` (standard, static, template, vector).

Las entradas se aplican en orden sobre un unico objeto de salida; una entrada
posterior puede sobreescribir la ruta de una anterior.
"""
from __future__ import annotations

import json
import re
import threading
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol

from jinja2 import TemplateError
from jinja2.sandbox import SandboxedEnvironment

from reverse_etl.application.services.template_filters import CUSTOM_FILTERS
from reverse_etl.shared.constants.sync_constants import MappingType
from reverse_etl.shared.exceptions.sync import TransformError

_BOOLEAN_LITERALS = {"true": True, "false": False}
_NUMERIC_REGEX = re.compile(r"[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?")
_ARRAY_MARKER = "[]"


class EmbeddingProvider(Protocol):
    def generate_embedding(self, text: Any) -> List[float]:
        ...


EmbeddingFactory = Callable[[Dict[str, Any]], EmbeddingProvider]


@dataclass(frozen=True)
class MappingEntry:
    """Una entrada de mapeo ya validada."""

    mapping_type: MappingType
    to: str
    from_: Any = None
    embedding_config: Optional[Dict[str, Any]] = None
    escape_quotes: bool = True

    @property
    def dest_keys(self) -> List[str]:
        return self.to.split(".")


def parse_mapping_config(mapping_config: Any) -> List[MappingEntry]:
    """
    Normaliza la configuracion (legacy o lista) a entradas tipadas.

    Raises:
        TransformError: si una entrada no tiene destino o su tipo no existe
    """
    if isinstance(mapping_config, Mapping):
        return [
            MappingEntry(
                mapping_type=MappingType.STANDARD,
                from_=source_key,
                to=dest_path,
                escape_quotes=False,
            )
            for source_key, dest_path in mapping_config.items()
        ]

    entries: List[MappingEntry] = []
    for raw in mapping_config or []:
        try:
            mapping_type = MappingType(raw.get("mapping_type"))
        except ValueError as e:
            raise TransformError(
                f"mapping_type desconocido: {raw.get('mapping_type')!r}",
                details={"mapping": raw},
            ) from e
        if not raw.get("to"):
            raise TransformError("Mapeo sin ruta de destino ('to')", details={"mapping": raw})
        entries.append(
            MappingEntry(
                mapping_type=mapping_type,
                to=raw["to"],
                from_=raw.get("from"),
                embedding_config=raw.get("embedding_config"),
            )
        )
    return entries


def _finalize(value: Any) -> Any:
    """Renderiza listas/dicts como JSON, booleanos en minuscula y None como vacio."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, dict)):
        return json.dumps(value, ensure_ascii=False)
    return value


_template_env = SandboxedEnvironment(autoescape=False, finalize=_finalize)
_template_env.filters.update(CUSTOM_FILTERS)


@lru_cache(maxsize=512)
def _compile_template(source: str):
    return _template_env.from_string(source)


def render_template(source: str, context: Mapping[str, Any]) -> str:
    """
    Renderiza un template contra la fila de origen.

    Raises:
        TransformError: si el template no compila o un filtro falla
    """
    try:
        return _compile_template(source).render(dict(context))
    except TransformError:
        raise
    except (TemplateError, TypeError, ValueError, re.error) as e:
        raise TransformError(
            f"Error renderizando template: {e}",
            details={"template": source},
        ) from e
    except Exception as e:
        raise TransformError(
            f"Error evaluando template: {e}",
            details={"template": source},
        ) from e


def normalize_template_output(value: Any) -> Any:
    """
    Interpreta el texto renderizado como un valor tipado.

    Orden: contenedor JSON -> string JSON entre comillas -> booleano ->
    null -> numero (int sin '.'/exponente, float en otro caso) -> texto original.
    """
    if not isinstance(value, str):
        return value

    stripped = value.strip()
    if not stripped:
        return value

    if stripped.startswith(("{", "[")):
        try:
            return json.loads(stripped)
        except json.JSONDecodeError:
            pass

    if len(stripped) >= 2 and stripped.startswith('"') and stripped.endswith('"'):
        try:
            return json.loads(stripped)
        except json.JSONDecodeError:
            pass

    lowered = stripped.lower()
    if lowered in _BOOLEAN_LITERALS:
        return _BOOLEAN_LITERALS[lowered]

    if lowered == "null":
        return None

    if _NUMERIC_REGEX.fullmatch(stripped):
        if re.search(r"[eE.]", stripped):
            return float(stripped)
        return int(stripped)

    return value


def _default_embedding_factory(embedding_config: Dict[str, Any]) -> EmbeddingProvider:
    from reverse_etl.infrastructure.external.embeddings.embedding_service import EmbeddingService

    return EmbeddingService(embedding_config=embedding_config)


class RecordTransformer:
    """
    Aplica mapeos a una fila. Sin efectos colaterales salvo la llamada al
    servicio de embeddings en mapeos vector.
    """

    def __init__(self, embedding_factory: Optional[EmbeddingFactory] = None) -> None:
        self._embedding_factory = embedding_factory or _default_embedding_factory
        self._embedding_providers: Dict[str, EmbeddingProvider] = {}
        self._embedding_lock = threading.Lock()
        self._handlers: Dict[MappingType, Callable[[MappingEntry, Mapping[str, Any]], Any]] = {
            MappingType.STANDARD: self._standard_value,
            MappingType.STATIC: self._static_value,
            MappingType.TEMPLATE: self._template_value,
            MappingType.VECTOR: self._vector_value,
        }

    def transform(self, mapping_config: Any, record: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Transforma una fila de origen a la forma del destino.

        Raises:
            TransformError: si algun mapeo falla
        """
        destination: Dict[str, Any] = {}
        for entry in parse_mapping_config(mapping_config):
            value = self._handlers[entry.mapping_type](entry, record)
            set_destination_value(destination, entry.dest_keys, value)
        return destination

    # ------------------------------------------------------------------
    # Handlers por tipo de mapeo
    # ------------------------------------------------------------------

    @staticmethod
    def _standard_value(entry: MappingEntry, record: Mapping[str, Any]) -> Any:
        value = record.get(entry.from_)
        if entry.escape_quotes and isinstance(value, str):
            return value.replace("'", "''")
        return value

    @staticmethod
    def _static_value(entry: MappingEntry, record: Mapping[str, Any]) -> Any:
        return entry.from_

    @staticmethod
    def _template_value(entry: MappingEntry, record: Mapping[str, Any]) -> Any:
        rendered = render_template(str(entry.from_ or ""), record)
        return normalize_template_output(rendered)

    def _vector_value(self, entry: MappingEntry, record: Mapping[str, Any]) -> Any:
        value = record.get(entry.from_)
        if not entry.embedding_config:
            return value
        try:
            return self._embedding_provider(entry.embedding_config).generate_embedding(value)
        except TransformError:
            raise
        except Exception as e:
            raise TransformError(
                f"Error generando embedding: {e}",
                details={"from": entry.from_},
            ) from e

    def _embedding_provider(self, embedding_config: Dict[str, Any]) -> EmbeddingProvider:
        """Un proveedor por configuracion, compartido entre filas y threads."""
        key = json.dumps(embedding_config, sort_keys=True, default=str)
        with self._embedding_lock:
            provider = self._embedding_providers.get(key)
            if provider is None:
                provider = self._embedding_factory(embedding_config)
                self._embedding_providers[key] = provider
        return provider


def set_destination_value(destination: Dict[str, Any], dest_keys: List[str], value: Any) -> None:
    """
    Escribe `value` en la ruta indicada.

    Segmentos `nombre[]`:
    - intermedio: opera sobre el ultimo objeto del array; crea uno nuevo si el
      array esta vacio o si el ultimo objeto ya tiene ocupada la ruta restante.
    - final: agrega el valor al array.

    Un valor previo de otro tipo en la ruta se reemplaza (gana la ultima entrada).
    """
    current = destination
    last_index = len(dest_keys) - 1

    for index, key in enumerate(dest_keys):
        is_array_key = key.endswith(_ARRAY_MARKER)
        name = key[: -len(_ARRAY_MARKER)] if is_array_key else key
        if index == last_index:
            if is_array_key:
                _ensure_list(current, name).append(value)
            else:
                current[name] = value
            return

        if is_array_key:
            items = _ensure_list(current, name)
            remaining = dest_keys[index + 1:]
            if not items or not isinstance(items[-1], dict) or _path_occupied(items[-1], remaining):
                items.append({})
            current = items[-1]
        else:
            if not isinstance(current.get(name), dict):
                current[name] = {}
            current = current[name]


def _ensure_list(container: Dict[str, Any], name: str) -> List[Any]:
    if not isinstance(container.get(name), list):
        container[name] = []
    return container[name]


def _path_occupied(element: Any, keys: List[str]) -> bool:
    """Indica si la ruta (sin segmentos de array) ya tiene un valor en el objeto."""
    current = element
    for key in keys:
        if key.endswith(_ARRAY_MARKER) or not isinstance(current, dict) or key not in current:
            return False
        current = current[key]
    return True
