"""
Motor de ejecución de syncs reverse ETL.

Lee filas de un origen SQL, las transforma con la configuración de mapeo
del sync y las escribe en un destino (Airtable, webhook HTTP) con
semántica de upsert.
"""

__version__ = "0.1.0"
