"""
tf_graphx/graph/model.py — Canonical in-memory resource graph.

Every extraction run builds one Graph from scratch; it is never mutated
afterwards and is the unit handed to the synchronizer and to the JSON export.

Schema:
    Node : one managed resource instance, keyed by its full address
           ([module path.]kind.label[index]).
    Edge : `source` DEPENDS_ON `target` (the source cannot be realized
           before the target).

Export document (stable, consumed downstream):
    {"nodes": [{"id", "kind", "owner", "label", "attributes"?}],
     "edges": [{"from", "to", "relation"}]}
"""

import json
import logging
from dataclasses import dataclass, field
from functools import cached_property
from typing import Any, Iterable, Iterator, Mapping, Union

import networkx as nx

logger = logging.getLogger(__name__)

NODE_LABEL = "Resource"
RELATION_DEPENDS_ON = "DEPENDS_ON"

# Attribute values are arbitrary JSON: a scalar, a sequence of values or a
# string-keyed mapping of values.
Scalar = Union[None, bool, int, float, str]
AttributeValue = Union[Scalar, list["AttributeValue"], dict[str, "AttributeValue"]]


def iter_values(value: AttributeValue) -> Iterator[AttributeValue]:
    """
    Depth-first walk over a JSON-like value, yielding every sub-value.

    Mappings and sequences are yielded before their children, so a caller can
    inspect a container (e.g. for a "references" key) and still see everything
    below it. There is no depth limit beyond the value's own nesting.
    """
    stack = [value]
    while stack:
        current = stack.pop()
        yield current
        if isinstance(current, Mapping):
            stack.extend(reversed(list(current.values())))
        elif isinstance(current, (list, tuple)):
            stack.extend(reversed(current))


@dataclass(frozen=True)
class Node:
    """One managed resource instance."""

    id: str
    kind: str
    label: str
    owner: str = ""
    attributes: dict[str, AttributeValue] | None = field(default=None, compare=False)

    def to_dict(self, include_attributes: bool = True) -> dict[str, Any]:
        doc: dict[str, Any] = {
            "id": self.id,
            "kind": self.kind,
            "owner": self.owner,
            "label": self.label,
        }
        if include_attributes and self.attributes:
            doc["attributes"] = self.attributes
        return doc


@dataclass(frozen=True)
class Edge:
    """Directed dependency: `source` depends on `target`."""

    source: str
    target: str
    relation: str = RELATION_DEPENDS_ON

    @property
    def key(self) -> tuple[str, str]:
        return (self.source, self.target)

    def to_dict(self) -> dict[str, str]:
        return {"from": self.source, "to": self.target, "relation": self.relation}


@dataclass(frozen=True)
class Graph:
    """
    Immutable collection of Nodes and Edges.

    Construct through Graph.build() so the invariants hold: unique node ids,
    no self loops, one edge per (source, target) pair, and both endpoints of
    every edge present in the node set. Nodes and edges are kept sorted so the
    export document is byte-stable across runs with the same input.
    """

    nodes: tuple[Node, ...] = ()
    edges: tuple[Edge, ...] = ()

    @classmethod
    def build(cls, nodes: Iterable[Node], edges: Iterable[Edge] = ()) -> "Graph":
        by_id: dict[str, Node] = {}
        for node in nodes:
            if node.id in by_id:
                logger.warning("Duplicate node id '%s' — keeping first occurrence.", node.id)
                continue
            by_id[node.id] = node

        by_key: dict[tuple[str, str], Edge] = {}
        for edge in edges:
            if edge.source == edge.target:
                logger.debug("Dropping self loop on '%s'.", edge.source)
                continue
            if edge.source not in by_id or edge.target not in by_id:
                logger.debug(
                    "Dropping edge %s -> %s: endpoint is not a node.",
                    edge.source,
                    edge.target,
                )
                continue
            by_key.setdefault(edge.key, edge)

        return cls(
            nodes=tuple(by_id[k] for k in sorted(by_id)),
            edges=tuple(by_key[k] for k in sorted(by_key)),
        )

    # ── Lookups ───────────────────────────────────────────────────────────────

    def node_ids(self) -> set[str]:
        return {n.id for n in self.nodes}

    def edge_keys(self) -> set[tuple[str, str]]:
        return {e.key for e in self.edges}

    @cached_property
    def _nodes_by_id(self) -> dict[str, Node]:
        return {n.id: n for n in self.nodes}

    def get_node(self, node_id: str) -> Node | None:
        return self._nodes_by_id.get(node_id)

    # ── Export document ───────────────────────────────────────────────────────

    def to_dict(self, include_attributes: bool = True) -> dict[str, list]:
        return {
            "nodes": [n.to_dict(include_attributes) for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
        }

    def to_json(self, indent: int | None = 2, include_attributes: bool = True) -> str:
        return json.dumps(self.to_dict(include_attributes), indent=indent, sort_keys=False)

    @classmethod
    def from_dict(cls, doc: Mapping[str, Any]) -> "Graph":
        """
        Rebuild a Graph from its export document.

        Entries missing a required key are skipped rather than aborting the load.
        """
        nodes = []
        for raw in doc.get("nodes") or []:
            try:
                nodes.append(
                    Node(
                        id=str(raw["id"]),
                        kind=str(raw.get("kind", "")),
                        label=str(raw.get("label", "")),
                        owner=str(raw.get("owner", "") or ""),
                        attributes=raw.get("attributes") or None,
                    )
                )
            except (KeyError, TypeError, AttributeError):
                logger.debug("Skipping malformed node entry: %r", raw)

        edges = []
        for raw in doc.get("edges") or []:
            try:
                edges.append(
                    Edge(
                        source=str(raw["from"]),
                        target=str(raw["to"]),
                        relation=str(raw.get("relation") or RELATION_DEPENDS_ON),
                    )
                )
            except (KeyError, TypeError, AttributeError):
                logger.debug("Skipping malformed edge entry: %r", raw)

        return cls.build(nodes, edges)

    @classmethod
    def from_json(cls, text: str) -> "Graph":
        return cls.from_dict(json.loads(text))

    # ── Analysis view ─────────────────────────────────────────────────────────

    def to_networkx(self) -> nx.DiGraph:
        """NetworkX view with kind/label/owner node attrs and edge_type on edges."""
        G = nx.DiGraph()
        for node in self.nodes:
            G.add_node(node.id, kind=node.kind, label=node.label, owner=node.owner)
        for edge in self.edges:
            G.add_edge(edge.source, edge.target, edge_type=edge.relation)
        return G
