"""
tf_graphx/storage/neo4j_store.py — Neo4j implementation of GraphStore.

One driver per store; one write session and one explicit transaction per
transaction() block. The block commits on normal exit and rolls back on any
exception, so a failed sync leaves the database exactly as it was.

Driver exceptions never leak past this module: they are translated into
StoreError / StoreConnectionError, flagged retryable when the failure is
transient (server unavailable, session expired, transient error, transaction
timeout).
"""

import logging
from contextlib import contextmanager
from typing import Iterable, Iterator, Mapping, Optional

from neo4j import WRITE_ACCESS, Driver, GraphDatabase
from neo4j.exceptions import (
    AuthError,
    ConfigurationError,
    DriverError,
    Neo4jError,
    ServiceUnavailable,
    SessionExpired,
    TransientError,
)

from tf_graphx.config import DEFAULT_CONFIG, StoreConfig
from tf_graphx.errors import StoreConnectionError, StoreError
from tf_graphx.storage import cypher

logger = logging.getLogger(__name__)


@contextmanager
def _translate_errors(action: str) -> Iterator[None]:
    """Re-raise neo4j driver exceptions as tf_graphx store errors."""
    try:
        yield
    except (AuthError, ConfigurationError) as exc:
        raise StoreConnectionError(f"{action}: {exc}") from exc
    except ServiceUnavailable as exc:
        raise StoreConnectionError(
            f"{action}: store unavailable: {exc}", retryable=True
        ) from exc
    except (SessionExpired, TransientError) as exc:
        raise StoreError(f"{action}: transient failure: {exc}", retryable=True) from exc
    except Neo4jError as exc:
        timed_out = "TransactionTimedOut" in (exc.code or "")
        raise StoreError(f"{action}: {exc}", retryable=timed_out) from exc
    except DriverError as exc:
        raise StoreError(f"{action}: {exc}") from exc


class Neo4jTransaction:
    """StoreTransaction bound to one open neo4j transaction."""

    def __init__(self, tx) -> None:
        self._tx = tx

    def _count(self, query: str, key: str, **params) -> int:
        record = self._tx.run(query, parameters=params).single()
        return int(record[key]) if record is not None else 0

    def fetch_node_ids(self) -> set[str]:
        result = self._tx.run(cypher.FETCH_NODE_IDS)
        return {record["id"] for record in result if record["id"] is not None}

    def fetch_edge_keys(self) -> set[tuple[str, str]]:
        result = self._tx.run(cypher.FETCH_EDGE_KEYS)
        return {(record["source"], record["target"]) for record in result}

    def delete_nodes(self, node_ids: Iterable[str]) -> int:
        ids = sorted(set(node_ids))
        if not ids:
            return 0
        return self._count(cypher.DELETE_NODES, "deleted", ids=ids)

    def delete_edges(self, edge_keys: Iterable[tuple[str, str]]) -> int:
        edges = [{"source": s, "target": t} for s, t in sorted(set(edge_keys))]
        if not edges:
            return 0
        return self._count(cypher.DELETE_EDGES, "deleted", edges=edges)

    def upsert_nodes(self, rows: list[Mapping[str, str]]) -> int:
        if not rows:
            return 0
        return self._count(cypher.UPSERT_NODES, "upserted", nodes=list(rows))

    def upsert_edges(self, rows: list[Mapping[str, str]]) -> int:
        if not rows:
            return 0
        return self._count(cypher.UPSERT_EDGES, "upserted", edges=list(rows))


class Neo4jStore:
    """
    GraphStore backed by a Neo4j (or Bolt-compatible) database.

    Args:
        config: StoreConfig with URI, credentials, database and timeouts.
        driver: Pre-built driver (tests inject a mock); created from config
                when omitted.
    """

    def __init__(
        self,
        config: StoreConfig = DEFAULT_CONFIG.store,
        driver: Optional[Driver] = None,
    ) -> None:
        self.config = config
        if driver is None:
            with _translate_errors(f"connect to {config.uri}"):
                try:
                    driver = GraphDatabase.driver(
                        config.uri,
                        auth=config.auth,
                        connection_timeout=config.connection_timeout,
                    )
                except ValueError as exc:
                    # Unparseable host or port in the URI.
                    raise StoreConnectionError(f"invalid store URI {config.uri!r}: {exc}") from exc
        self.driver = driver

    def __enter__(self) -> "Neo4jStore":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self.driver.close()

    def verify_connectivity(self) -> None:
        with _translate_errors(f"verify connectivity to {self.config.uri}"):
            self.driver.verify_connectivity()
        logger.info("Connected to graph store at %s.", self.config.uri)

    def ensure_schema(self) -> None:
        """Create the Resource.id uniqueness constraint if it does not exist."""
        with _translate_errors("ensure schema"):
            with self.driver.session(database=self.config.database) as session:
                session.run(cypher.CREATE_ID_CONSTRAINT).consume()

    @contextmanager
    def transaction(self) -> Iterator[Neo4jTransaction]:
        with _translate_errors("graph sync transaction"):
            with self.driver.session(
                database=self.config.database,
                default_access_mode=WRITE_ACCESS,
            ) as session:
                tx = session.begin_transaction(timeout=self.config.transaction_timeout)
                try:
                    yield Neo4jTransaction(tx)
                except BaseException:
                    _rollback(tx)
                    raise
                else:
                    tx.commit()
                finally:
                    tx.close()


def _rollback(tx) -> None:
    try:
        tx.rollback()
    except (Neo4jError, DriverError) as exc:
        # The server discards an uncommitted transaction when the connection drops.
        logger.warning("Rollback failed (%s); transaction was not committed.", exc)
