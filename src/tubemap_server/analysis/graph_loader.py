"""Utilities for loading extracted vg regions into networkx."""

from __future__ import annotations

import json
from pathlib import Path

import networkx as nx

from tubemap_server.analysis.merging import FREQ_FIELD, OFFSET_FIELD, graph_paths, load_graph_document

EDGE_FIELDS = ["from_start", "to_end", "overlap"]


def to_networkx(document: dict) -> nx.DiGraph:
    """Build a directed graph from a vg JSON document (``node``, ``edge`` and ``path`` lists)."""

    graph = nx.DiGraph(name=document.get("name", "region"))

    for node in document.get("node", []):
        node_id = node.get("id")
        if node_id is None:
            continue
        sequence = node.get("sequence", "")
        graph.add_node(str(node_id), sequence=sequence, length=len(sequence))

    for edge in document.get("edge", []):
        source = edge.get("from")
        target = edge.get("to")
        if source is None or target is None:
            continue
        source, target = str(source), str(target)
        for endpoint in (source, target):
            if endpoint not in graph:
                graph.add_node(endpoint, sequence=None, length=0)
        attributes = {field: edge[field] for field in EDGE_FIELDS if field in edge}
        graph.add_edge(source, target, **attributes)

    paths = []
    for entry in graph_paths(document):
        mappings = entry.get("mapping", [])
        visited = [
            str(mapping.get("position", {}).get("node_id"))
            for mapping in mappings
            if mapping.get("position", {}).get("node_id") is not None
        ]
        paths.append(
            {
                "name": entry.get("name"),
                FREQ_FIELD: entry.get(FREQ_FIELD),
                OFFSET_FIELD: entry.get(OFFSET_FIELD),
                "nodes": visited,
            }
        )

    graph.graph["paths"] = paths
    graph.graph["node_count"] = graph.number_of_nodes()
    graph.graph["edge_count"] = graph.number_of_edges()
    graph.graph["path_count"] = len(paths)
    return graph


def load_region_graph(path: Path) -> nx.DiGraph:
    """Load a saved extraction result (``{"graph": ...}``) or a raw vg JSON graph."""

    payload = load_graph_document(Path(path))
    if isinstance(payload.get("graph"), dict):
        payload = payload["graph"]
    return to_networkx(payload)


def _sanitize_for_graphml(graph: nx.DiGraph) -> nx.DiGraph:
    """Return a copy of the graph with GraphML-friendly attributes."""

    def sanitize(mapping):
        for key in list(mapping.keys()):
            value = mapping[key]
            if value is None:
                # GraphML has no null
                del mapping[key]
                continue
            if isinstance(value, (list, tuple, set)):
                mapping[key] = json.dumps(list(value))
            elif isinstance(value, dict):
                mapping[key] = json.dumps(value)

    copy = graph.copy()
    sanitize(copy.graph)
    for _, data in copy.nodes(data=True):
        sanitize(data)
    for _, _, data in copy.edges(data=True):
        sanitize(data)
    return copy


def export_graphml(graph: nx.DiGraph, destination: Path) -> Path:
    destination = Path(destination)
    destination.parent.mkdir(parents=True, exist_ok=True)
    nx.write_graphml(_sanitize_for_graphml(graph), destination)
    return destination


__all__ = ["to_networkx", "load_region_graph", "export_graphml"]
