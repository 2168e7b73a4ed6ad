"""
tf_graphx.storage — Persistence layer for the resource graph.

Modules:
    base         — GraphStore / StoreTransaction protocols consumed by the
                   synchronizer (six batched, parameterized operations).
    cypher       — Cypher statements and their parameter builders.
    neo4j_store  — Neo4j implementation on the official neo4j driver.

Persisted schema (fixed; downstream queries depend on it):
    (:Resource {id, kind, label, owner})-[:DEPENDS_ON]->(:Resource)
"""
