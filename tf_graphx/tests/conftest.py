"""
tf_graphx/tests/conftest.py — Shared pytest fixtures for the tf_graphx test suite.

Fixtures:
    make_plan        — Factory for `terraform show -json` style documents.
    scenario_plan    — null_resource.cluster + null_resource.app, first plan.
    fake_store       — In-memory GraphStore with real commit/rollback.
    neo4j_config     — StoreConfig from NEO4J_* env vars (integration only).
"""

import copy
import os
from contextlib import contextmanager

import pytest

from tf_graphx.config import StoreConfig
from tf_graphx.errors import StoreError


# ── Pytest configuration hooks ────────────────────────────────────────────────

def pytest_configure(config):
    """Register custom markers and add --run-integration CLI option support."""
    config.addinivalue_line(
        "markers",
        "integration: marks tests that need a live Neo4j (deselected by default, "
        "pass --run-integration or -m integration to enable)",
    )


def pytest_addoption(parser):
    """Add --run-integration CLI flag to enable integration tests."""
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run integration tests against a live Neo4j (NEO4J_URI etc.).",
    )


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless --run-integration is passed or -m integration is used."""
    markexpr = config.getoption("-m", default="")
    if "integration" in markexpr:
        return

    if config.getoption("--run-integration"):
        return

    skip_integration = pytest.mark.skip(
        reason="Integration test -- pass --run-integration or -m integration to run"
    )
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


# ── Plan document builders ────────────────────────────────────────────────────

def _planned_resource(address, provider="registry.terraform.io/hashicorp/null", values=None):
    parts = address.split(".")
    # Strip the module prefix: resource segment is "[data.]type.name[idx]".
    while parts and parts[0] == "module":
        parts = parts[2:]
    mode = "managed"
    if parts and parts[0] == "data":
        mode = "data"
        parts = parts[1:]
    kind = parts[0]
    name = parts[1].split("[", 1)[0]
    return {
        "address": address,
        "mode": mode,
        "type": kind,
        "name": name,
        "provider_name": provider,
        "schema_version": 0,
        "values": values if values is not None else {"triggers": None},
    }


def _make_plan(
    resources=(),
    child_modules=(),
    config_resources=(),
    module_calls=None,
    state_resources=None,
    state_child_modules=(),
):
    """
    Build a minimal plan document.

    resources:        planned root resources, as addresses or full dicts.
    child_modules:    list of {"address": ..., "resources": [...]} (addresses ok).
    config_resources: configuration root resources (dicts).
    module_calls:     configuration module_calls mapping.
    state_resources:  prior_state root resources; None omits prior_state.
    """

    def expand(items):
        return [_planned_resource(r) if isinstance(r, str) else r for r in items]

    doc = {
        "format_version": "1.2",
        "terraform_version": "1.6.0",
        "planned_values": {
            "root_module": {
                "resources": expand(resources),
                "child_modules": [
                    {
                        "address": m["address"],
                        "resources": expand(m.get("resources", [])),
                        "child_modules": m.get("child_modules", []),
                    }
                    for m in child_modules
                ],
            }
        },
        "configuration": {
            "root_module": {
                "resources": list(config_resources),
                "module_calls": module_calls or {},
            }
        },
    }
    if state_resources is not None:
        doc["prior_state"] = {
            "format_version": "1.0",
            "values": {
                "root_module": {
                    "resources": list(state_resources),
                    "child_modules": list(state_child_modules),
                }
            },
        }
    return doc


def _config_resource(address, expressions=None, mode="managed", depends_on=None):
    kind, name = address.split(".")[-2:]
    out = {
        "address": address,
        "mode": mode,
        "type": kind,
        "name": name,
        "provider_config_key": "null",
        "expressions": expressions or {},
        "schema_version": 0,
    }
    if depends_on is not None:
        out["depends_on"] = depends_on
    return out


@pytest.fixture
def make_plan():
    return _make_plan


@pytest.fixture
def config_resource():
    return _config_resource


@pytest.fixture
def scenario_plan():
    """Two null resources; app's trigger references null_resource.cluster.id."""
    return _make_plan(
        resources=["null_resource.cluster", "null_resource.app"],
        config_resources=[
            _config_resource("null_resource.cluster"),
            _config_resource(
                "null_resource.app",
                {
                    "triggers": {
                        "references": ["null_resource.cluster.id", "null_resource.cluster"]
                    }
                },
            ),
        ],
    )


# ── In-memory store ───────────────────────────────────────────────────────────

class FakeTransaction:
    """StoreTransaction over private copies; the store swaps them in on commit."""

    def __init__(self, nodes, edges, fail_on, calls):
        self.nodes = nodes
        self.edges = edges
        self._fail_on = fail_on
        self._calls = calls

    def _record(self, op, payload=None):
        self._calls.append((op, payload))
        if op == self._fail_on:
            raise StoreError(f"injected failure in {op}", retryable=True)

    def fetch_node_ids(self):
        self._record("fetch_node_ids")
        return set(self.nodes)

    def fetch_edge_keys(self):
        self._record("fetch_edge_keys")
        return set(self.edges)

    def delete_nodes(self, node_ids):
        ids = list(node_ids)
        self._record("delete_nodes", ids)
        deleted = 0
        for node_id in ids:
            if self.nodes.pop(node_id, None) is not None:
                deleted += 1
        self.edges = {(a, b) for a, b in self.edges if a in self.nodes and b in self.nodes}
        return deleted

    def delete_edges(self, edge_keys):
        keys = list(edge_keys)
        self._record("delete_edges", keys)
        before = len(self.edges)
        self.edges -= set(keys)
        return before - len(self.edges)

    def upsert_nodes(self, rows):
        self._record("upsert_nodes", list(rows))
        for row in rows:
            props = self.nodes.setdefault(row["id"], {"id": row["id"]})
            props.update(kind=row["kind"], label=row["label"], owner=row["owner"])
        return len(rows)

    def upsert_edges(self, rows):
        self._record("upsert_edges", list(rows))
        count = 0
        for row in rows:
            # MATCH semantics: both endpoints must already exist.
            if row["source"] in self.nodes and row["target"] in self.nodes:
                self.edges.add((row["source"], row["target"]))
                count += 1
        return count


class FakeGraphStore:
    """GraphStore keeping Resource nodes and DEPENDS_ON pairs in memory."""

    def __init__(self, fail_on=None):
        self.nodes = {}
        self.edges = set()
        self.fail_on = fail_on
        self.calls = []
        self.commits = 0
        self.rollbacks = 0
        self.schema_ensured = False
        self.closed = False

    @contextmanager
    def transaction(self):
        tx = FakeTransaction(copy.deepcopy(self.nodes), set(self.edges), self.fail_on, self.calls)
        try:
            yield tx
        except BaseException:
            self.rollbacks += 1
            raise
        self.nodes, self.edges = tx.nodes, tx.edges
        self.commits += 1

    def verify_connectivity(self):
        return None

    def ensure_schema(self):
        self.schema_ensured = True

    def close(self):
        self.closed = True

    def state(self):
        """Comparable snapshot of everything persisted."""
        return (
            sorted((k, tuple(sorted(v.items()))) for k, v in self.nodes.items()),
            sorted(self.edges),
        )


@pytest.fixture
def fake_store():
    return FakeGraphStore()


@pytest.fixture
def failing_store():
    """Factory: FakeGraphStore that raises StoreError in the named operation."""
    return lambda op: FakeGraphStore(fail_on=op)


@pytest.fixture(scope="session")
def neo4j_config():
    """Live Neo4j settings from the environment (integration tests only)."""
    return StoreConfig(
        uri=os.environ.get("NEO4J_URI", "bolt://localhost:7687"),
        user=os.environ.get("NEO4J_USER", "neo4j"),
        password=os.environ.get("NEO4J_PASSWORD", ""),
        database=os.environ.get("NEO4J_DATABASE") or None,
    )
