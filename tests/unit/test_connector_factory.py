"""
Tests del registro de conectores.
"""
import pytest

from reverse_etl.domain.entities.sync import ConnectorConfig
from reverse_etl.infrastructure.external.airtable.airtable_destination import AirtableDestination
from reverse_etl.infrastructure.external.connector_factory import build_destination, build_source
from reverse_etl.infrastructure.external.http.http_destination import HttpDestination
from reverse_etl.infrastructure.external.sql.sql_source import SqlSource
from reverse_etl.shared.exceptions.sync import DestinationSetupError, SyncPipelineError
from tests.conftest import make_sync


class TestBuildSource:
    def test_sql_source_with_default_dialect(self):
        source = build_source(make_sync(source=ConnectorConfig("Postgres", {"host": "db"})))
        assert isinstance(source, SqlSource)
        assert source.configuration == {"host": "db", "dialect": "postgresql"}

    def test_unsupported_source(self):
        with pytest.raises(SyncPipelineError) as exc_info:
            build_source(make_sync(source=ConnectorConfig("salesforce", {})))
        assert exc_info.value.error_code == "SOURCE_SETUP_ERROR"


class TestBuildDestination:
    def test_airtable(self, reporter):
        sync = make_sync(id=4)
        destination = build_destination(sync, sync_run_id=9, error_reporter=reporter)
        assert isinstance(destination, AirtableDestination)
        assert destination.stream_name == "CRM/Users"
        assert (destination.sync_id, destination.sync_run_id) == (4, 9)
        assert destination.batch_size == 100

    def test_http_uses_sync_batch_size(self):
        sync = make_sync(
            destination=ConnectorConfig("http", {"destination_url": "https://hooks.test"}),
            http_sync_settings={"events": ["insert"], "batch_size": 25},
        )
        destination = build_destination(sync)
        assert isinstance(destination, HttpDestination)
        assert destination.batch_size == 25

    def test_unsupported_destination(self):
        with pytest.raises(DestinationSetupError):
            build_destination(make_sync(destination=ConnectorConfig("hubspot", {})))
