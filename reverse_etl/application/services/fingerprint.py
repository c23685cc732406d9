"""
Fingerprint de contenido de un registro transformado.
"""
import hashlib
import json
from typing import Any, Mapping


def generate_fingerprint(record: Mapping[str, Any]) -> str:
    """
    SHA-256 del registro serializado de forma canonica (claves ordenadas).

    Dos registros con el mismo contenido producen el mismo fingerprint sin
    importar el orden de insercion de sus claves.
    """
    payload = json.dumps(record, sort_keys=True, default=str, ensure_ascii=False, separators=(",", ":"))
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()
