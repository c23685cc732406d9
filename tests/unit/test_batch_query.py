"""
Tests del recorrido por lotes del origen.
"""
import pytest

from reverse_etl.application.services.batch_query import BatchQueryRunner
from reverse_etl.domain.entities.connector_types import BatchParams
from reverse_etl.shared.constants.sync_constants import IncrementStrategy
from reverse_etl.shared.exceptions.sync import BatchIOError
from tests.conftest import FakeSource


class PagedSource(FakeSource):
    """Origen paginado por numero de pagina (1-based)."""

    def read(self, batch_params):
        self.reads.append(batch_params)
        start = (batch_params.offset - 1) * batch_params.limit
        return [dict(r) for r in self.rows[start:start + batch_params.limit]]


class BrokenSource(FakeSource):
    def read(self, batch_params):
        raise ConnectionError("connection reset")


def rows(count):
    return [{"id": i, "updated_at": f"2024-01-{i + 1:02d}"} for i in range(count)]


def params(**overrides):
    values = dict(query="SELECT 1", primary_key="id", offset=0, limit=2)
    values.update(overrides)
    return BatchParams(**values)


class TestOffsetStrategy:
    def test_reads_until_short_batch(self):
        source = FakeSource(rows(5))
        batches = list(BatchQueryRunner(source).iter_batches(params()))
        assert [len(b.records) for b in batches] == [2, 2, 1]
        assert [b.next_offset for b in batches] == [2, 4, 5]
        assert [p.offset for p in source.reads] == [0, 2, 4]

    def test_stops_on_empty_batch(self):
        source = FakeSource(rows(4))
        batches = list(BatchQueryRunner(source).iter_batches(params()))
        assert [len(b.records) for b in batches] == [2, 2]
        assert [p.offset for p in source.reads] == [0, 2, 4]

    def test_empty_source(self):
        source = FakeSource([])
        assert list(BatchQueryRunner(source).iter_batches(params())) == []

    def test_starts_from_checkpoint(self):
        source = FakeSource(rows(5))
        batches = list(BatchQueryRunner(source).iter_batches(params(offset=4)))
        assert [r["id"] for b in batches for r in b.records] == [4]


class TestPageStrategy:
    def test_page_number_increments_by_one(self):
        source = PagedSource(rows(5))
        batches = list(
            BatchQueryRunner(source).iter_batches(params(offset=1, increment_strategy=IncrementStrategy.PAGE))
        )
        assert [b.next_offset for b in batches] == [2, 3, 4]
        assert [r["id"] for b in batches for r in b.records] == [0, 1, 2, 3, 4]


class TestCursor:
    def test_reports_last_cursor_value(self):
        source = FakeSource(rows(3))
        batches = list(
            BatchQueryRunner(source).iter_batches(
                params(cursor_field="updated_at", current_cursor_field="2023-12-31")
            )
        )
        assert [b.next_cursor_value for b in batches] == ["2024-01-02", "2024-01-03"]
        # El filtro inicial no cambia entre lotes
        assert {p.current_cursor_field for p in source.reads} == {"2023-12-31"}

    def test_keeps_previous_value_when_cursor_is_null(self):
        source = FakeSource([{"id": 1, "updated_at": None}])
        batches = list(
            BatchQueryRunner(source).iter_batches(params(cursor_field="updated_at", current_cursor_field="x"))
        )
        assert batches[0].next_cursor_value == "x"


class TestErrors:
    def test_non_positive_limit(self):
        with pytest.raises(ValueError):
            list(BatchQueryRunner(FakeSource([])).iter_batches(params(limit=0)))

    def test_read_errors_become_batch_io_errors(self):
        with pytest.raises(BatchIOError) as exc_info:
            list(BatchQueryRunner(BrokenSource([])).iter_batches(params()))
        assert exc_info.value.details["offset"] == 0
