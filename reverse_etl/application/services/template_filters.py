"""
Filtros personalizados para los mapeos de tipo template (Jinja2).

Filtros disponibles:
- cast(value, "string" | "number" | "boolean")
- parse_json(value)
- to_json_array(value, delimiter=",")
- regex_replace(value, pattern, replacement="", flags="")
- match_regex(value, pattern, flags="")
- to_datetime(value, source_format)

Uso en un mapeo:
    {{ reason_sk | cast('number') }}
    {{ levels | to_json_array('|') }}
    {{ name | regex_replace('[0-9]+', 'N', 'i') }}
"""
from __future__ import annotations

import json
import re
from datetime import datetime, timezone
from typing import Any, Callable, Dict

from reverse_etl.shared.exceptions.sync import TransformError

# Valores que se interpretan como False al castear a boolean
_FALSE_VALUES = frozenset({"0", "f", "false", "off"})

_LEADING_FLOAT = re.compile(r"\s*[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?")

# Flags de una letra soportados; cualquier otra letra se acepta sin efecto
_REGEX_FLAGS = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "x": re.VERBOSE,
}


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, dict, tuple, set)):
        return len(value) == 0
    return False


def _to_string(value: Any) -> str:
    return "" if value is None else str(value)


def _to_number(value: Any) -> float:
    """Convierte a float tomando el prefijo numerico; sin prefijo retorna 0.0."""
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        return float(value)
    match = _LEADING_FLOAT.match(_to_string(value))
    return float(match.group(0)) if match else 0.0


def _to_boolean(value: Any) -> Any:
    """None y cadenas vacias quedan en None; los valores falsos conocidos en False."""
    if value is None or (isinstance(value, str) and value == ""):
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    return str(value).strip().lower() not in _FALSE_VALUES


_CAST_METHODS: Dict[str, Callable[[Any], Any]] = {
    "string": _to_string,
    "number": _to_number,
    "boolean": _to_boolean,
}


def cast(value: Any, type_name: str) -> Any:
    """Castea a string/number/boolean. Tipos desconocidos retornan el valor original."""
    method = _CAST_METHODS.get(type_name)
    return method(value) if method else value


def parse_json(value: Any) -> Any:
    """Parsea un string JSON. Retorna el valor original si esta vacio, no es string o falla."""
    if _is_blank(value) or not isinstance(value, str):
        return value
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return value


def to_json_array(value: Any, delimiter: str = ",") -> list:
    """
    Convierte el valor en una lista.

    - vacio -> []
    - lista -> la misma lista
    - string JSON de lista/objeto -> lista (el objeto queda envuelto)
    - string -> split por delimitador, sin espacios ni elementos vacios
    - cualquier otro valor -> [valor]
    """
    if _is_blank(value):
        return []
    if isinstance(value, (list, tuple)):
        return list(value)

    if isinstance(value, str):
        stripped = value.strip()
        if stripped.startswith("[") or stripped.startswith("{"):
            try:
                parsed = json.loads(stripped)
            except json.JSONDecodeError:
                parsed = None
            if isinstance(parsed, list):
                return parsed
            if isinstance(parsed, dict):
                return [parsed]
        return [part.strip() for part in value.split(delimiter) if part.strip()]

    return [value]


def build_regexp(pattern: str, flags: str = "") -> re.Pattern:
    options = 0
    for flag in flags or "":
        options |= _REGEX_FLAGS.get(flag, 0)
    return re.compile(pattern, options)


def regex_replace(value: Any, pattern: str, replacement: str = "", flags: str = "") -> str:
    """Reemplaza todas las coincidencias del patron."""
    return build_regexp(pattern, flags).sub(replacement, _to_string(value))


def match_regex(value: Any, pattern: str, flags: str = "") -> Any:
    """
    Retorna el valor si coincide con el patron.

    Raises:
        TransformError: si el valor no coincide
    """
    if build_regexp(pattern, flags).search(_to_string(value)):
        return value
    raise TransformError(
        "Input does not match regex pattern",
        details={"pattern": pattern},
    )


def to_datetime(value: Any, source_format: str) -> Any:
    """
    Parsea una fecha con formato strptime y la retorna en ISO-8601.

    Fechas sin zona horaria se asumen UTC. Texto sobrante al final del
    valor (p.ej. " AM") se ignora. Valores vacios se retornan tal cual.
    """
    if _is_blank(value):
        return value

    text = str(value)
    try:
        parsed = datetime.strptime(text, source_format)
    except ValueError as e:
        prefix = "unconverted data remains: "
        message = str(e)
        if not message.startswith(prefix):
            raise
        remainder = message[len(prefix):]
        parsed = datetime.strptime(text[: len(text) - len(remainder)], source_format)

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.isoformat()


CUSTOM_FILTERS: Dict[str, Callable[..., Any]] = {
    "cast": cast,
    "parse_json": parse_json,
    "to_json_array": to_json_array,
    "regex_replace": regex_replace,
    "match_regex": match_regex,
    "to_datetime": to_datetime,
}
