"""
Servicios de aplicacion.

Contiene la logica reutilizable del pipeline que no pertenece
a un caso de uso especifico.
"""
from reverse_etl.application.services.batch_query import BatchQueryRunner, BatchResult
from reverse_etl.application.services.fingerprint import generate_fingerprint
from reverse_etl.application.services.record_transformer import (
    MappingEntry,
    RecordTransformer,
    normalize_template_output,
    parse_mapping_config,
    render_template,
)

__all__ = [
    # Lectura por lotes
    "BatchQueryRunner",
    "BatchResult",
    # Transformacion
    "RecordTransformer",
    "MappingEntry",
    "parse_mapping_config",
    "render_template",
    "normalize_template_output",
    "generate_fingerprint",
]
