"""
tf_graphx/config.py — Connection and run parameters.

Library code never reads the environment: a GraphxConfig is built once by the
caller (the CLI uses GraphxConfig.from_env) and passed down explicitly, so the
extractor and synchronizer stay testable with a fake store.
"""

import os
from dataclasses import dataclass, field, replace
from typing import Mapping, Optional

from tf_graphx.errors import GraphxError


@dataclass(frozen=True)
class StoreConfig:
    """
    Immutable Neo4j connection settings.

    Override by constructing a new StoreConfig (or dataclasses.replace).
    """

    uri: str = "bolt://localhost:7687"
    user: str = "neo4j"
    password: str = ""

    database: Optional[str] = None
    # None lets the server pick its default database.

    transaction_timeout: float = 30.0
    # Seconds. Passed to the server with every sync transaction; a timeout
    # aborts and rolls back the whole diff and surfaces as a retryable StoreError.

    connection_timeout: float = 15.0
    # Seconds allowed for establishing a Bolt connection.

    @property
    def auth(self) -> tuple[str, str] | None:
        """Basic auth tuple for the driver, or None for unauthenticated servers."""
        if not self.user and not self.password:
            return None
        return (self.user, self.password)


@dataclass(frozen=True)
class GraphxConfig:
    """Top-level configuration for one extraction / sync run."""

    store: StoreConfig = field(default_factory=StoreConfig)

    plan_filename: str = "tfplan.binary"
    # Plan file written by `terraform plan -out` when no plan is supplied.

    terraform_binary: str = "terraform"

    export_attributes: bool = False
    # Include the open-ended `attributes` mapping in the JSON export.

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "GraphxConfig":
        """
        Build a config from NEO4J_* / GRAPHX_* variables, falling back to defaults.

        Recognised variables:
            NEO4J_URI, NEO4J_USER, NEO4J_PASSWORD, NEO4J_DATABASE,
            GRAPHX_TX_TIMEOUT, GRAPHX_TERRAFORM_BINARY.
        """
        env = os.environ if environ is None else environ
        defaults = StoreConfig()
        store = StoreConfig(
            uri=env.get("NEO4J_URI", defaults.uri),
            user=env.get("NEO4J_USER", defaults.user),
            password=env.get("NEO4J_PASSWORD", defaults.password),
            database=env.get("NEO4J_DATABASE") or None,
            transaction_timeout=_env_float(
                env, "GRAPHX_TX_TIMEOUT", defaults.transaction_timeout
            ),
        )
        return cls(
            store=store,
            terraform_binary=env.get("GRAPHX_TERRAFORM_BINARY", cls.terraform_binary),
        )

    def with_store(self, **overrides) -> "GraphxConfig":
        """Return a copy with selected StoreConfig fields replaced (None values ignored)."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        if not changes:
            return self
        return replace(self, store=replace(self.store, **changes))


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise GraphxError(f"{name} must be a number of seconds, got {raw!r}") from None


# Singleton default — import this everywhere instead of constructing anew.
DEFAULT_CONFIG = GraphxConfig()
