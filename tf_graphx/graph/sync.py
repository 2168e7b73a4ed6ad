"""
tf_graphx/graph/sync.py — Idempotent reconciliation of a Graph with the store.

sync_graph() makes the persisted graph equal to the freshly extracted one in
a single store transaction:

    1. Read persisted Resource ids (and DEPENDS_ON pairs).
    2. Delete obsolete nodes (persisted but not in the target), cascading to
       their relationships, and obsolete relationships between surviving
       nodes.
    3. Upsert every target node: MERGE on id, then overwrite kind/label/owner.
    4. Upsert every target edge: MERGE the relationship between existing nodes.

Steps commit or roll back together. Running sync_graph twice with the same
graph leaves the store unchanged by the second run, and syncing G1 then G2
leaves exactly what syncing G2 alone would.
"""

import logging
from dataclasses import dataclass, field

from tf_graphx.errors import StoreError
from tf_graphx.graph.model import Graph
from tf_graphx.storage.base import GraphStore
from tf_graphx.storage.cypher import edge_rows, node_rows

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncPlan:
    """The diff between persisted state and a target graph."""

    obsolete_node_ids: tuple[str, ...] = ()
    obsolete_edge_keys: tuple[tuple[str, str], ...] = ()
    node_rows: list[dict[str, str]] = field(default_factory=list)
    edge_rows: list[dict[str, str]] = field(default_factory=list)


@dataclass
class SyncResult:
    """Counts reported by the store for one successful sync."""

    nodes_deleted: int = 0
    edges_deleted: int = 0
    nodes_upserted: int = 0
    edges_upserted: int = 0


def plan_sync(
    graph: Graph,
    persisted_ids: set[str],
    persisted_edges: set[tuple[str, str]],
) -> SyncPlan:
    """
    Compute the minimal diff that turns persisted state into `graph`.

    Relationships touching an obsolete node are not listed in
    obsolete_edge_keys: deleting the node removes them.
    """
    obsolete_ids = set(persisted_ids) - graph.node_ids()
    obsolete_edges = {
        (source, target)
        for source, target in set(persisted_edges) - graph.edge_keys()
        if source not in obsolete_ids and target not in obsolete_ids
    }
    return SyncPlan(
        obsolete_node_ids=tuple(sorted(obsolete_ids)),
        obsolete_edge_keys=tuple(sorted(obsolete_edges)),
        node_rows=node_rows(graph),
        edge_rows=edge_rows(graph),
    )


def sync_graph(graph: Graph, store: GraphStore) -> SyncResult:
    """
    Reconcile the store with `graph` inside one transaction.

    Args:
        graph: Target graph from tf_graphx.graph.builder.build_graph().
        store: Any GraphStore (Neo4jStore in production).

    Returns:
        SyncResult with deletion and upsert counts.

    Raises:
        StoreError: the transaction failed and was rolled back; the store is
                    unchanged. `retryable` tells whether a rerun may succeed.
                    Unexpected errors raised inside the transaction are
                    wrapped, never retryable.
    """
    logger.info(
        "Synchronizing graph: %d nodes, %d edges.", len(graph.nodes), len(graph.edges)
    )
    try:
        with store.transaction() as tx:
            diff = plan_sync(graph, tx.fetch_node_ids(), tx.fetch_edge_keys())
            logger.debug(
                "Sync diff: %d obsolete nodes, %d obsolete edges.",
                len(diff.obsolete_node_ids),
                len(diff.obsolete_edge_keys),
            )
            result = SyncResult(
                nodes_deleted=tx.delete_nodes(diff.obsolete_node_ids),
                edges_deleted=tx.delete_edges(diff.obsolete_edge_keys),
                nodes_upserted=tx.upsert_nodes(diff.node_rows),
                edges_upserted=tx.upsert_edges(diff.edge_rows),
            )
    except StoreError as exc:
        logger.error(
            "Graph sync rolled back (%s): %s",
            "retryable" if exc.retryable else "not retryable",
            exc,
        )
        raise
    except Exception as exc:
        logger.error("Graph sync rolled back (not retryable): %s", exc)
        raise StoreError(f"graph sync failed: {exc}") from exc

    logger.info(
        "Graph sync committed: %d nodes deleted, %d edges deleted, "
        "%d nodes upserted, %d edges upserted.",
        result.nodes_deleted,
        result.edges_deleted,
        result.nodes_upserted,
        result.edges_upserted,
    )
    return result
