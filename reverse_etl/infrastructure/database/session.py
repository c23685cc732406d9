"""
Gestión de sesiones de base de datos.
"""
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from reverse_etl.core.config import settings


# Base para modelos de SQLAlchemy
Base = declarative_base()


def _create_engine_args(database_url: str) -> dict:
    """
    Construye los argumentos del engine segun el tipo de base de datos.
    PostgreSQL usa pool de conexiones; SQLite se comparte entre threads.
    """
    args = {
        "echo": settings.DEBUG,
        "future": True,
    }

    # Configuracion de pool solo para PostgreSQL
    if database_url.startswith("postgresql"):
        args.update({
            "pool_size": settings.DB_POOL_SIZE,
            "max_overflow": settings.DB_MAX_OVERFLOW,
            "pool_pre_ping": True,  # Verifica conexion antes de usar
        })
    elif database_url.startswith("sqlite"):
        args["connect_args"] = {"check_same_thread": False}

    return args


def create_db_engine(database_url: Optional[str] = None) -> Engine:
    """Crea un engine para la URL indicada (por defecto la de la configuracion)."""
    url = database_url or settings.effective_database_url
    return create_engine(url, **_create_engine_args(url))


# Engine de base de datos
engine = create_db_engine()

# Session factory
SessionLocal = sessionmaker(
    bind=engine,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


@contextmanager
def session_scope(factory: sessionmaker = SessionLocal) -> Iterator[Session]:
    """
    Sesion transaccional: commit al salir, rollback ante cualquier error.

    Yields:
        Session: Sesión de base de datos
    """
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(bind: Optional[Engine] = None) -> None:
    """Inicializa la base de datos creando todas las tablas."""
    # Registra los modelos en el metadata antes de crear las tablas
    from reverse_etl.infrastructure.database import models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)


def close_db() -> None:
    """Cierra las conexiones de la base de datos."""
    engine.dispose()
