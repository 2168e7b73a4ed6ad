"""
tf_graphx/storage/base.py — Store protocols used by the graph synchronizer.

The synchronizer only ever talks to these protocols, so tests can substitute
an in-memory store. Every operation inside a transaction is batched (one
round-trip per entity kind) and takes its values as bound parameters.
"""

from contextlib import AbstractContextManager
from typing import Iterable, Mapping, Protocol


class StoreTransaction(Protocol):
    """One open write transaction."""

    def fetch_node_ids(self) -> set[str]:
        """Ids of every persisted Resource node."""
        ...

    def fetch_edge_keys(self) -> set[tuple[str, str]]:
        """(from, to) id pairs of every persisted DEPENDS_ON relationship."""
        ...

    def delete_nodes(self, node_ids: Iterable[str]) -> int:
        """Delete nodes by id together with all of their relationships."""
        ...

    def delete_edges(self, edge_keys: Iterable[tuple[str, str]]) -> int:
        """Delete DEPENDS_ON relationships by (from, to) id pair."""
        ...

    def upsert_nodes(self, rows: list[Mapping[str, str]]) -> int:
        """Create-if-absent by id, then overwrite kind/label/owner."""
        ...

    def upsert_edges(self, rows: list[Mapping[str, str]]) -> int:
        """Create DEPENDS_ON between existing nodes if not already present."""
        ...


class GraphStore(Protocol):
    """Handle on a persistent graph store."""

    def transaction(self) -> AbstractContextManager[StoreTransaction]:
        """
        Open a write transaction.

        Commits when the block exits normally and rolls back when it raises;
        store failures surface as tf_graphx.errors.StoreError.
        """
        ...

    def verify_connectivity(self) -> None:
        """Raise StoreConnectionError if the store is unreachable."""
        ...

    def ensure_schema(self) -> None:
        """Create indexes/constraints backing id lookups (idempotent)."""
        ...

    def close(self) -> None:
        ...
