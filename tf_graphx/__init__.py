"""
tf_graphx — Terraform dependency graph extraction and Neo4j synchronization.

Turns the JSON document of a Terraform plan into a canonical resource graph
(nodes = managed resources, edges = DEPENDS_ON) and reconciles that graph,
idempotently and in one transaction, against a Neo4j database.

Packages:
- tf_graphx.ingestion — plan document parsing and the terraform CLI boundary.
- tf_graphx.graph     — graph model, address resolver, extractor, synchronizer.
- tf_graphx.storage   — Neo4j persistence layer behind a small store protocol.
"""

__version__ = "0.1.0"
