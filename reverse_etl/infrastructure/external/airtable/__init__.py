"""
Destino Airtable: upsert por lotes sobre la REST API.

- Búsqueda masiva de registros existentes por primary key.
- Escritura en chunks de 10 registros (PATCH para updates, POST para inserts).
- Backoff ante 429/5xx respetando Retry-After.
"""
