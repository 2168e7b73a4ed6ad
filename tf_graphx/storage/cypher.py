"""
tf_graphx/storage/cypher.py — Cypher statements for graph synchronization.

Every statement takes its values through $parameters (UNWIND over a list of
rows) and is never built by string interpolation: this rules out Cypher
injection from resource addresses and lets the server cache one plan per
statement shape regardless of graph size.
"""

from tf_graphx.graph.model import NODE_LABEL, RELATION_DEPENDS_ON, Graph

FETCH_NODE_IDS = f"MATCH (n:{NODE_LABEL}) RETURN n.id AS id"

FETCH_EDGE_KEYS = (
    f"MATCH (a:{NODE_LABEL})-[:{RELATION_DEPENDS_ON}]->(b:{NODE_LABEL}) "
    "RETURN a.id AS source, b.id AS target"
)

DELETE_NODES = (
    "UNWIND $ids AS obsolete_id "
    f"MATCH (n:{NODE_LABEL} {{id: obsolete_id}}) "
    "DETACH DELETE n "
    "RETURN count(*) AS deleted"
)

DELETE_EDGES = (
    "UNWIND $edges AS edge "
    f"MATCH (:{NODE_LABEL} {{id: edge.source}})"
    f"-[r:{RELATION_DEPENDS_ON}]->"
    f"(:{NODE_LABEL} {{id: edge.target}}) "
    "DELETE r "
    "RETURN count(*) AS deleted"
)

UPSERT_NODES = (
    "UNWIND $nodes AS node_data "
    f"MERGE (n:{NODE_LABEL} {{id: node_data.id}}) "
    "SET n.kind = node_data.kind, n.label = node_data.label, n.owner = node_data.owner "
    "RETURN count(*) AS upserted"
)

UPSERT_EDGES = (
    "UNWIND $edges AS edge_data "
    f"MATCH (a:{NODE_LABEL} {{id: edge_data.source}}) "
    f"MATCH (b:{NODE_LABEL} {{id: edge_data.target}}) "
    f"MERGE (a)-[:{RELATION_DEPENDS_ON}]->(b) "
    "RETURN count(*) AS upserted"
)

# Unique constraint on Resource.id; also backs the MERGE / MATCH lookups.
CREATE_ID_CONSTRAINT = (
    f"CREATE CONSTRAINT resource_id_unique IF NOT EXISTS "
    f"FOR (n:{NODE_LABEL}) REQUIRE n.id IS UNIQUE"
)


def node_rows(graph: Graph) -> list[dict[str, str]]:
    """Parameter rows for UPSERT_NODES (the four persisted scalar properties)."""
    return [
        {"id": n.id, "kind": n.kind, "label": n.label, "owner": n.owner}
        for n in graph.nodes
    ]


def edge_rows(graph: Graph) -> list[dict[str, str]]:
    """Parameter rows for UPSERT_EDGES."""
    return [{"source": e.source, "target": e.target} for e in graph.edges]
