"""RDF / JSON-LD conversion used by the graph operations.

JSON-LD algorithms come from pyld; rdflib handles graph objects.  Every
failure is re-raised as :class:`~sparqlmux.errors.CodecError`.
"""

from __future__ import annotations

import logging
from typing import Any, Union

from pyld import jsonld
from pyld.jsonld import JsonLdProcessor
from rdflib import Dataset, Graph

from sparqlmux.errors import CodecError

logger = logging.getLogger(__name__)

NQUADS = "application/n-quads"

JsonLd = Union[dict[str, Any], list[Any]]


class JsonLdCodec:
    """Thin wrapper over pyld's JSON-LD processor."""

    def __init__(self, document_loader: Any = None) -> None:
        self._options: dict[str, Any] = {}
        if document_loader is not None:
            self._options["documentLoader"] = document_loader

    def _opts(self, **extra: Any) -> dict[str, Any]:
        return {**self._options, **extra}

    def normalize_to_nquads(self, graph: JsonLd | Graph) -> str:
        """Return a canonical N-Quads serialization of *graph*."""
        if isinstance(graph, Graph):
            try:
                fmt = "nquads" if isinstance(graph, Dataset) else "nt"
                return graph.serialize(format=fmt)
            except Exception as e:
                raise CodecError(f"Cannot serialize graph: {e}") from e
        try:
            return jsonld.normalize(
                graph, self._opts(algorithm="URDNA2015", format=NQUADS),
            )
        except jsonld.JsonLdError as e:
            raise CodecError(f"Cannot normalize JSON-LD: {e}") from e

    def triples_by_graph(self, graph: JsonLd | Graph) -> list[tuple[str | None, str]]:
        """Split *graph* into ``(graph name, N-Triples text)`` pairs.

        The default graph comes first with a name of None, named graphs
        follow in IRI order.  Empty graphs are left out.
        """
        nquads = self.normalize_to_nquads(graph)
        try:
            dataset = JsonLdProcessor.parse_nquads(nquads)
        except jsonld.JsonLdError as e:
            raise CodecError(f"Cannot read N-Quads: {e}") from e

        grouped: list[tuple[str | None, str]] = []
        for name in sorted(dataset, key=lambda n: (n != "@default", n)):
            triples = dataset[name]
            if not triples:
                continue
            if name.startswith("_:"):
                raise CodecError(f"Cannot insert into blank node graph {name}")
            text = "".join(JsonLdProcessor.to_nquad(t) for t in triples).strip()
            grouped.append((None if name == "@default" else name, text))
        return grouped

    def from_rdf(self, nquads: str) -> list[Any]:
        """Convert N-Quads text to an expanded JSON-LD document."""
        if not nquads or not nquads.strip():
            return []
        try:
            return jsonld.from_rdf(nquads, self._opts(format=NQUADS))
        except jsonld.JsonLdError as e:
            raise CodecError(f"Cannot read N-Quads: {e}") from e

    def compact(self, doc: JsonLd, context: Any) -> dict[str, Any]:
        try:
            return jsonld.compact(doc, context or {}, self._opts())
        except jsonld.JsonLdError as e:
            raise CodecError(f"JSON-LD compaction failed: {e}") from e

    def flatten(self, doc: JsonLd, context: Any = None) -> JsonLd:
        try:
            return jsonld.flatten(doc, context, self._opts())
        except jsonld.JsonLdError as e:
            raise CodecError(f"JSON-LD flattening failed: {e}") from e

    def expand(self, doc: JsonLd) -> list[Any]:
        try:
            return jsonld.expand(doc, self._opts())
        except jsonld.JsonLdError as e:
            raise CodecError(f"JSON-LD expansion failed: {e}") from e

    def to_graph(self, nquads: str) -> Dataset:
        """Parse N-Quads text into an rdflib Dataset."""
        dataset = Dataset()
        if nquads and nquads.strip():
            try:
                dataset.parse(data=nquads, format="nquads")
            except Exception as e:
                raise CodecError(f"Cannot parse N-Quads: {e}") from e
        return dataset
