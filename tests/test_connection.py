"""Tests for the Connection façade."""

from __future__ import annotations

import threading

import pytest
from rdflib import Graph, URIRef
from rdflib.plugins.sparql import prepareUpdate

from sparqlmux.cache import MemoryBackend
from sparqlmux.config import TestSettings
from sparqlmux.connection import Connection
from sparqlmux.errors import CodecError, ResultShapeError
from sparqlmux.tasks import TaskMethod
from sparqlmux.transport import HttpTransport

from .fakes import SELECT_BODY, FakeTransport

EX = "http://example.org/"
NQUADS = f"<{EX}a> <{EX}p> <{EX}b> .\n"
QUERY = "SELECT ?s ?o WHERE { ?s a ?o }"


@pytest.fixture()
def conn(make_connection):
    return make_connection(FakeTransport((SELECT_BODY, 200)))


class TestShapedResults:
    """Result shaping over one binding row."""

    def test_get_col_values(self, conn):
        assert conn.get_col_values(QUERY) == ["urn:a"]

    def test_get_var_value(self, conn):
        assert conn.get_var_value(QUERY) == "urn:a"

    def test_get_results_values(self, conn):
        assert conn.get_results_values(QUERY) == [{"s": "urn:a", "o": "urn:b"}]

    def test_get_results(self, conn):
        assert conn.get_results(QUERY) == SELECT_BODY["results"]["bindings"]

    def test_get_col(self, conn):
        assert conn.get_col(QUERY) == [{"type": "uri", "value": "urn:a"}]

    def test_get_var(self, conn):
        assert conn.get_var(QUERY) == {"type": "uri", "value": "urn:a"}

    def test_get_results_frame(self, conn):
        frame = conn.get_results_frame(QUERY)
        assert list(frame.columns) == ["s", "o"]
        assert frame.iloc[0]["o"] == "urn:b"

    def test_values_drop_datatype_and_language(self, make_connection):
        body = {
            "head": {"vars": ["label"]},
            "results": {
                "bindings": [
                    {"label": {"type": "literal", "value": "chat", "xml:lang": "fr"}},
                    {"label": {"type": "literal", "value": "3", "datatype": "http://www.w3.org/2001/XMLSchema#int"}},
                ],
            },
        }
        conn = make_connection(FakeTransport((body, 200)))
        assert conn.get_results_values("SELECT ?label WHERE { ?s ?p ?label }") == [
            {"label": "chat"},
            {"label": "3"},
        ]

    def test_empty_result(self, make_connection):
        body = {"head": {"vars": ["s"]}, "results": {"bindings": []}}
        conn = make_connection(FakeTransport((body, 200)))
        assert conn.get_var("SELECT ?s WHERE { ?s ?p ?o }") is None
        assert conn.get_var_value("SELECT ?s WHERE { ?s ?p ?o }") is None
        assert conn.get_col_values("SELECT ?s WHERE { ?s ?p ?o }") == []

    def test_unbound_first_variable(self, make_connection):
        body = {"head": {"vars": ["s", "o"]}, "results": {"bindings": [{"o": {"type": "uri", "value": "urn:b"}}]}}
        conn = make_connection(FakeTransport((body, 200)))
        assert conn.get_col_values(QUERY) == [None]
        assert conn.get_var_value(QUERY) is None

    def test_error_text_is_not_a_result(self, make_connection):
        conn = make_connection(FakeTransport(("Unknown database", 200)))
        with pytest.raises(ResultShapeError, match="Unknown database"):
            conn.get_results(QUERY)


class TestOptions:
    """Option normalization and defaults."""

    def test_default_database_applied(self, make_connection):
        transport = FakeTransport()
        conn = make_connection(transport, default_database="people")
        conn.query(QUERY)
        assert transport.calls[0][1].database == "people"

    def test_explicit_database_wins(self, make_connection):
        transport = FakeTransport()
        conn = make_connection(transport, default_database="people")
        conn.query({"query": QUERY, "database": "places"})
        assert transport.calls[0][1].database == "places"

    def test_default_database_accessors(self, make_connection):
        conn = make_connection(FakeTransport())
        conn.set_default_database("other")
        assert conn.get_default_database() == "other"
        conn.set_default_database("")
        assert conn.get_default_database() is None

    def test_identical_queries_hit_the_cache(self, make_connection):
        transport = FakeTransport()
        conn = make_connection(transport)
        assert conn.get_col_values(QUERY) == conn.get_col_values(QUERY)
        assert len(transport.calls) == 1

    def test_cache_false_forces_dispatch(self, make_connection):
        transport = FakeTransport()
        conn = make_connection(transport)
        conn.query({"query": QUERY, "cache": False})
        conn.query({"query": QUERY, "cache": False})
        assert len(transport.calls) == 2

    def test_queue_configuration_passthrough(self, make_connection):
        conn = make_connection(FakeTransport(), concurrency=2)
        conn.set_concurrency(5)
        conn.set_delay(0.25)
        conn.set_max_retries(7)
        state = conn.queue_state
        assert (state.concurrency_limit, state.max_concurrency) == (5, 5)
        assert state.base_delay == 0.25
        assert state.max_retries == 7


class TestGraphs:
    """Graph retrieval and insertion."""

    def test_query_graph_returns_raw_payload(self, make_connection):
        transport = FakeTransport(("@prefix ex: <http://example.org/> .", 200))
        conn = make_connection(transport)
        body = conn.query_graph({"query": "CONSTRUCT WHERE { ?s ?p ?o }", "mimetype": "text/turtle"})
        assert body.startswith("@prefix")
        assert transport.calls[0][0] is TaskMethod.QUERY_GRAPH

    def test_get_graph_compacts_with_context(self, make_connection):
        conn = make_connection(FakeTransport((NQUADS, 200)))
        doc = conn.get_graph("CONSTRUCT WHERE { ?s ?p ?o }", context={"ex": EX})
        assert doc["@id"] == "ex:a"
        assert doc["ex:p"] == {"@id": "ex:b"}

    def test_get_graph_expand(self, make_connection):
        conn = make_connection(FakeTransport((NQUADS, 200)))
        doc = conn.get_graph("CONSTRUCT WHERE { ?s ?p ?o }", form="expand")
        assert doc == [{"@id": f"{EX}a", f"{EX}p": [{"@id": f"{EX}b"}]}]

    def test_get_graph_flatten(self, make_connection):
        conn = make_connection(FakeTransport((NQUADS, 200)))
        doc = conn.get_graph({"query": "CONSTRUCT WHERE { ?s ?p ?o }", "form": "flatten"})
        assert f"{EX}a" in [node["@id"] for node in doc]

    def test_get_graph_raw_is_default_without_context(self, make_connection):
        conn = make_connection(FakeTransport((NQUADS, 200)))
        doc = conn.get_graph("CONSTRUCT WHERE { ?s ?p ?o }")
        assert doc == [{"@id": f"{EX}a", f"{EX}p": [{"@id": f"{EX}b"}]}]

    def test_get_graph_as_rdflib(self, make_connection):
        conn = make_connection(FakeTransport((NQUADS, 200)))
        dataset = conn.get_graph("CONSTRUCT WHERE { ?s ?p ?o }", form="graph")
        subjects = [s for s, _, _, _ in dataset.quads((None, None, None, None))]
        assert subjects == [URIRef(f"{EX}a")]

    def test_get_graph_empty_payload(self, make_connection):
        conn = make_connection(FakeTransport(({}, 200)))
        assert conn.get_graph("CONSTRUCT WHERE { ?s ?p ?o }") == []

    def test_codec_errors_are_not_retried(self, make_connection):
        transport = FakeTransport(("this is not n-quads", 200))
        conn = make_connection(transport, max_retries=3)
        with pytest.raises(CodecError):
            conn.get_graph("CONSTRUCT WHERE { ?s ?p ?o }", form="expand")
        assert len(transport.calls) == 1

    def test_insert_jsonld(self, make_connection):
        transport = FakeTransport(({}, 200))
        conn = make_connection(transport)

        conn.insert_graph({"@id": f"{EX}a", f"{EX}p": {"@id": f"{EX}b"}})

        method, options = transport.calls[0]
        assert method is TaskMethod.QUERY
        assert options.query == f"INSERT DATA {{ {NQUADS.strip()} }}"
        assert options.cache is False

    def test_insert_into_named_graph(self, make_connection):
        transport = FakeTransport(({}, 200))
        conn = make_connection(transport)

        conn.insert_graph({"@id": f"{EX}a", f"{EX}p": {"@id": f"{EX}b"}}, graph_uri="urn:g")

        assert transport.calls[0][1].query == f"INSERT DATA {{ GRAPH <urn:g> {{ {NQUADS.strip()} }} }}"

    def test_insert_rdflib_graph(self, make_connection):
        transport = FakeTransport(({}, 200))
        conn = make_connection(transport)
        graph = Graph()
        graph.add((URIRef(f"{EX}a"), URIRef(f"{EX}p"), URIRef(f"{EX}b")))

        conn.insert_graph(graph, database="other")

        options = transport.calls[0][1]
        assert NQUADS.strip() in options.query
        assert options.database == "other"

    def test_repeated_inserts_are_never_cached(self, make_connection):
        transport = FakeTransport(({}, 200))
        conn = make_connection(transport)
        doc = {"@id": f"{EX}a", f"{EX}p": {"@id": f"{EX}b"}}
        conn.insert_graph(doc)
        conn.insert_graph(doc)
        assert len(transport.calls) == 2

    def test_insert_named_graph_document_uses_graph_block(self, make_connection):
        transport = FakeTransport(({}, 200))
        conn = make_connection(transport)

        conn.insert_graph({"@id": "urn:g", "@graph": [{"@id": "urn:a", "urn:p": {"@id": "urn:b"}}]})

        query = transport.calls[0][1].query
        assert query == "INSERT DATA { GRAPH <urn:g> { <urn:a> <urn:p> <urn:b> . } }"
        prepareUpdate(query)

    def test_insert_mixed_default_and_named_graphs(self, make_connection):
        transport = FakeTransport(({}, 200))
        conn = make_connection(transport)
        doc = {
            "@id": "urn:g",
            "urn:q": {"@id": "urn:c"},
            "@graph": [{"@id": "urn:a", "urn:p": {"@id": "urn:b"}}],
        }

        conn.insert_graph(doc)
        conn.insert_graph(doc, graph_uri="urn:h")

        first, second = (options.query for _, options in transport.calls)
        assert first == (
            "INSERT DATA { <urn:g> <urn:q> <urn:c> . GRAPH <urn:g> { <urn:a> <urn:p> <urn:b> . } }"
        )
        assert second == (
            "INSERT DATA { GRAPH <urn:h> { <urn:g> <urn:q> <urn:c> . } "
            "GRAPH <urn:g> { <urn:a> <urn:p> <urn:b> . } }"
        )
        prepareUpdate(first)
        prepareUpdate(second)


class TestLifecycle:
    """Construction and closing."""

    def test_from_settings(self):
        conn = Connection.from_settings(TestSettings())
        assert isinstance(conn.transport, HttpTransport)
        assert conn.transport.endpoint_url == "http://stardog.test:5820"
        assert isinstance(conn.cache.backend, MemoryBackend)
        assert conn.get_default_database() == "testdb"
        assert conn.queue_state.base_delay == 0.0
        conn.close()

    def test_context_manager_closes_transport(self, make_connection):
        transport = FakeTransport()
        with make_connection(transport) as conn:
            conn.query(QUERY)
        assert transport.closed

    def test_close_waits_for_running_tasks(self, make_connection):
        release = threading.Event()

        def slow(method, options):
            release.wait(5)
            return ({}, 200)

        transport = FakeTransport(slow)
        conn = make_connection(transport)
        future = conn.submit(TaskMethod.QUERY, "INSERT DATA { <urn:a> <urn:p> <urn:b> }")

        closer = threading.Thread(target=conn.close)
        closer.start()
        closer.join(0.2)
        assert closer.is_alive()
        assert not transport.closed

        release.set()
        closer.join(5)
        assert future.done()
        assert transport.closed

    def test_close_gives_up_after_timeout(self, make_connection):
        release = threading.Event()

        def stuck(method, options):
            release.wait(5)
            return ({}, 200)

        transport = FakeTransport(stuck)
        conn = make_connection(transport)
        conn.submit(TaskMethod.QUERY, "INSERT DATA { <urn:a> <urn:p> <urn:b> }")

        conn.close(timeout=0.05)

        assert transport.closed
        release.set()
