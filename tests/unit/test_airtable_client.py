"""
Tests del cliente HTTP de Airtable con una sesion falsa.
"""
import pytest
import requests

from reverse_etl.infrastructure.external.airtable.airtable_client import AirtableApiError, AirtableClient


class DummyResponse:
    def __init__(self, status_code, payload=None, headers=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.headers = headers or {}
        self.text = text
        self.content = b"{}" if payload is not None else b""

    def json(self):
        return self._payload


class DummySession:
    """Devuelve las respuestas en orden y registra cada request."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.requests = []
        self.closed = False

    def request(self, **kwargs):
        self.requests.append(kwargs)
        return self.responses.pop(0)

    def close(self):
        self.closed = True


def client_with(*responses, max_retries=2):
    session = DummySession(responses)
    client = AirtableClient(
        "token",
        session=session,
        base_url="https://api.airtable.test/v0/",
        max_retries=max_retries,
        min_backoff_s=0,
        max_backoff_s=0,
    )
    return client, session


class TestRequests:
    def test_sends_bearer_token(self):
        client, session = client_with(DummyResponse(200, {"records": []}))
        client.create_records("https://api.airtable.test/v0/app/tbl", [{"fields": {"a": 1}}])

        sent = session.requests[0]
        assert sent["method"] == "POST"
        assert sent["headers"]["Authorization"] == "Bearer token"
        assert sent["json"] == {"records": [{"fields": {"a": 1}}]}

    def test_retries_rate_limit(self):
        client, session = client_with(
            DummyResponse(429, headers={"Retry-After": "0"}),
            DummyResponse(200, {"bases": [{"id": "app1"}]}),
        )
        assert client.list_bases() == [{"id": "app1"}]
        assert len(session.requests) == 2

    def test_gives_up_after_max_retries(self):
        client, session = client_with(
            DummyResponse(503, text="unavailable"),
            DummyResponse(503, text="unavailable"),
            max_retries=1,
        )
        with pytest.raises(AirtableApiError) as exc_info:
            client.get_base_schema("app1")
        assert exc_info.value.status_code == 503
        assert len(session.requests) == 2

    def test_client_errors_are_not_retried(self):
        client, session = client_with(DummyResponse(422, text="INVALID_VALUE"))
        with pytest.raises(AirtableApiError) as exc_info:
            client.update_records("https://api.airtable.test/v0/app/tbl", [])
        assert exc_info.value.response_body == "INVALID_VALUE"
        assert len(session.requests) == 1


class TestPagination:
    def test_find_records_follows_offset(self):
        client, session = client_with(
            DummyResponse(200, {"records": [{"id": "rec1"}], "offset": "next"}),
            DummyResponse(200, {"records": [{"id": "rec2"}]}),
        )
        found = client.find_records("https://api.airtable.test/v0/app/tbl", "OR({ID}='1')")

        assert [r["id"] for r in found] == ["rec1", "rec2"]
        assert ("offset", "next") in session.requests[1]["params"]
        assert ("filterByFormula", "OR({ID}='1')") in session.requests[0]["params"]

    def test_delete_sends_record_ids_as_query(self):
        client, session = client_with(DummyResponse(200, {"records": []}))
        client.delete_records("https://api.airtable.test/v0/app/tbl", ["rec1", "rec2"])
        assert session.requests[0]["params"] == [("records[]", "rec1"), ("records[]", "rec2")]

    def test_table_url(self):
        client, _ = client_with()
        assert client.table_url("app1", "tbl1") == "https://api.airtable.test/v0/app1/tbl1"


class TestClose:
    def test_keeps_injected_session_open(self):
        client, session = client_with()
        client.close()
        assert not session.closed

    def test_closes_own_session(self, monkeypatch):
        session = DummySession([])
        monkeypatch.setattr(requests, "Session", lambda: session)
        AirtableClient("token").close()
        assert session.closed
