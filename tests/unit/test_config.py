"""
Tests de configuracion y reporte de errores.
"""
import sys

import pytest
from loguru import logger

from reverse_etl.core.config import Settings, normalize_database_url, settings
from reverse_etl.core.logging import setup_logging
from reverse_etl.infrastructure.observability.loguru_reporter import LoguruErrorReporter
from reverse_etl.shared.exceptions.base import AppException, user_message
from reverse_etl.shared.exceptions.sync import TransformError


@pytest.mark.parametrize(
    "dsn, expected",
    [
        ("postgresql+asyncpg://u:p@h:5432/db", "postgresql+psycopg://u:p@h:5432/db"),
        ("postgres://u@h/db", "postgresql+psycopg://u@h/db"),
        ("postgresql://u@h/db", "postgresql+psycopg://u@h/db"),
        ("sqlite:///reverse_etl.db", "sqlite:///reverse_etl.db"),
        ("not-a-url", "not-a-url"),
    ],
)
def test_normalize_database_url(dsn, expected):
    assert normalize_database_url(dsn) == expected


def test_settings_read_environment(monkeypatch):
    monkeypatch.setenv("EXTRACTOR_THREAD_COUNT", "9")
    monkeypatch.setenv("DATABASE_URL", "postgres://u@h/db")
    config = Settings()
    assert config.EXTRACTOR_THREAD_COUNT == 9
    assert config.effective_database_url == "postgresql+psycopg://u@h/db"


def test_user_message_hides_raw_errors():
    assert user_message(TransformError("jinja exploded")) == TransformError.user_message
    assert user_message(KeyError("secret")) == AppException.user_message


def test_reporter_logs_context():
    records = []
    sink_id = logger.add(lambda message: records.append(message.record), level="ERROR")
    try:
        LoguruErrorReporter().report(TransformError("bad template"), {"sync_id": 3})
    finally:
        logger.remove(sink_id)

    assert records[0]["extra"]["sync_id"] == 3
    assert records[0]["extra"]["error_code"] == "TRANSFORM_ERROR"


def test_setup_logging_reports_app_and_environment(monkeypatch, capsys):
    monkeypatch.setattr(settings, "APP_NAME", "sync-engine")
    monkeypatch.setattr(settings, "ENVIRONMENT", "staging")
    try:
        setup_logging(level="debug", log_file="")
        err = capsys.readouterr().err
    finally:
        logger.remove()
        logger.add(sys.stderr)

    assert "sync-engine [staging]" in err
    assert "level=DEBUG" in err
