"""
Conversion del schema de tablas Airtable a JSON schema de streams.
"""
import re
from typing import Any, Dict

_STRING = {"type": ["string", "null"]}
_NUMBER = {"type": ["number", "null"]}
_BOOLEAN = {"type": ["boolean", "null"]}
_STRING_ARRAY = {"type": ["array", "null"], "items": {"type": "string"}}

# Tipos de campo Airtable -> JSON schema
FIELD_TYPE_SCHEMAS: Dict[str, Dict[str, Any]] = {
    "singleLineText": _STRING,
    "multilineText": _STRING,
    "richText": _STRING,
    "email": _STRING,
    "url": _STRING,
    "phoneNumber": _STRING,
    "singleSelect": _STRING,
    "date": {"type": ["string", "null"], "format": "date"},
    "dateTime": {"type": ["string", "null"], "format": "date-time"},
    "number": _NUMBER,
    "currency": _NUMBER,
    "percent": _NUMBER,
    "duration": _NUMBER,
    "rating": _NUMBER,
    "autoNumber": _NUMBER,
    "count": _NUMBER,
    "checkbox": _BOOLEAN,
    "multipleSelects": _STRING_ARRAY,
    "multipleRecordLinks": _STRING_ARRAY,
    "multipleAttachments": {"type": ["array", "null"], "items": {"type": "object"}},
}

_INVALID_NAME_CHARS = re.compile(r"[^a-zA-Z0-9_]")


def clean_name(name: str) -> str:
    """Nombre de tabla apto para identificar un stream."""
    return _INVALID_NAME_CHARS.sub("_", (name or "").strip())


def get_json_schema(table: Dict[str, Any]) -> Dict[str, Any]:
    """
    JSON schema de una tabla a partir de sus campos.

    Los tipos no reconocidos se exponen como string.
    """
    properties = {
        field["name"]: dict(FIELD_TYPE_SCHEMAS.get(field.get("type"), _STRING))
        for field in table.get("fields") or []
        if field.get("name")
    }
    return {
        "$schema": "http://json-schema.org/draft-07/schema#",
        "additionalProperties": True,
        "type": "object",
        "properties": properties,
    }
