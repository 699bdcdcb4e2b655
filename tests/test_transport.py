"""Tests for the HTTP transport."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import requests

from sparqlmux.errors import QueryError, TransportError
from sparqlmux.tasks import QueryOptions, TaskMethod
from sparqlmux.transport import HttpTransport, MimeTypes


def make_response(text: str, status: int = 200, content_type: str = "application/sparql-results+json"):
    resp = MagicMock()
    resp.text = text
    resp.status_code = status
    resp.headers = {"content-type": content_type}
    return resp


@pytest.fixture()
def session():
    return MagicMock(spec=requests.Session)


class TestExecute:
    """Request building and response decoding."""

    def test_select_uses_get_with_reasoning(self, session):
        session.get.return_value = make_response('{"head":{"vars":["s"]},"results":{"bindings":[]}}')
        transport = HttpTransport("http://localhost:5820/", session=session)

        body, status = transport.execute(
            TaskMethod.QUERY,
            QueryOptions(query="SELECT ?s WHERE { ?s ?p ?o }", database="my db", reasoning=True),
        )

        assert status == 200
        assert body == {"head": {"vars": ["s"]}, "results": {"bindings": []}}
        url = session.get.call_args.args[0]
        kwargs = session.get.call_args.kwargs
        assert url == "http://localhost:5820/my%20db/query"
        assert kwargs["params"]["reasoning"] == "true"
        assert kwargs["headers"]["Accept"] == MimeTypes.QUERY_ACCEPT

    def test_reasoning_omitted_when_unset(self, session):
        session.get.return_value = make_response("{}")
        transport = HttpTransport("http://localhost:5820", session=session)
        transport.execute(TaskMethod.QUERY, QueryOptions(query="ASK {}", database="db"))
        assert "reasoning" not in session.get.call_args.kwargs["params"]

    def test_update_is_posted_to_update_endpoint(self, session):
        session.post.return_value = make_response("", content_type="text/plain")
        transport = HttpTransport("http://localhost:5820", session=session)

        body, status = transport.execute(
            TaskMethod.QUERY,
            QueryOptions(query="INSERT DATA { <urn:a> <urn:b> <urn:c> }", database="db"),
        )

        assert body == {}
        assert session.post.call_args.args[0] == "http://localhost:5820/db/update"
        session.get.assert_not_called()

    def test_graph_query_defaults_to_jsonld(self, session):
        session.get.return_value = make_response('{"@graph": []}', content_type="application/ld+json")
        transport = HttpTransport("http://localhost:5820", session=session)

        body, _ = transport.execute(
            TaskMethod.QUERY_GRAPH, QueryOptions(query="CONSTRUCT WHERE { ?s ?p ?o }", database="db"),
        )

        assert body == {"@graph": []}
        assert session.get.call_args.kwargs["headers"]["Accept"] == MimeTypes.JSONLD

    def test_text_payload_and_custom_mimetype(self, session):
        session.get.return_value = make_response("<urn:a> <urn:b> <urn:c> .", content_type="text/turtle")
        transport = HttpTransport("http://localhost:5820", session=session)

        body, _ = transport.execute(
            TaskMethod.QUERY_GRAPH,
            QueryOptions(query="CONSTRUCT WHERE { ?s ?p ?o }", database="db", mimetype="text/turtle"),
        )

        assert body == "<urn:a> <urn:b> <urn:c> ."
        assert session.get.call_args.kwargs["headers"]["Accept"] == "text/turtle"

    def test_error_status_is_reported_not_raised(self, session):
        session.get.return_value = make_response("Service Unavailable", status=503, content_type="text/plain")
        transport = HttpTransport("http://localhost:5820", session=session)

        body, status = transport.execute(TaskMethod.QUERY, QueryOptions(query="ASK {}", database="db"))

        assert (body, status) == ("Service Unavailable", 503)

    def test_network_failure_raises_transport_error(self, session):
        session.get.side_effect = requests.exceptions.ConnectionError("refused")
        transport = HttpTransport("http://localhost:5820", session=session)

        with pytest.raises(TransportError, match="refused"):
            transport.execute(TaskMethod.QUERY, QueryOptions(query="ASK {}", database="db"))

    def test_missing_database(self, session):
        transport = HttpTransport("http://localhost:5820", session=session)
        with pytest.raises(QueryError):
            transport.execute(TaskMethod.QUERY, QueryOptions(query="ASK {}"))

    def test_long_query_uses_post(self, session):
        session.post.return_value = make_response("{}")
        transport = HttpTransport("http://localhost:5820", session=session)
        query = "SELECT * WHERE { ?s ?p ?o } # " + "x" * HttpTransport.MAX_GET_LENGTH

        transport.execute(TaskMethod.QUERY, QueryOptions(query=query, database="db"))

        assert session.post.call_args.args[0] == "http://localhost:5820/db/query"

    def test_get_graph_is_not_a_transport_method(self, session):
        transport = HttpTransport("http://localhost:5820", session=session)
        with pytest.raises(ValueError):
            transport.execute(TaskMethod.GET_GRAPH, QueryOptions(query="ASK {}", database="db"))


def test_auth_and_close(session):
    transport = HttpTransport("http://localhost:5820", auth=("admin", "secret"), session=session)
    assert session.auth == ("admin", "secret")
    with transport:
        pass
    session.close.assert_called_once()
