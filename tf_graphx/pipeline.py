"""
tf_graphx/pipeline.py — Single-call extract (and optionally sync) orchestrator.

Usage:
    from tf_graphx.pipeline import run_pipeline
    result = run_pipeline("plan.json")
    print(result.graph.to_json())

    result = run_pipeline("plan.json", update=True)   # also sync to Neo4j
"""

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from tf_graphx.config import DEFAULT_CONFIG, GraphxConfig
from tf_graphx.graph.builder import ExtractionDiagnostics, build_graph
from tf_graphx.graph.model import Graph
from tf_graphx.graph.sync import SyncResult, sync_graph
from tf_graphx.ingestion.plan_parser import (
    TerraformPlan,
    load_plan,
    parse_plan,
    parse_plan_json,
)
from tf_graphx.ingestion.terraform_runner import show_plan_json
from tf_graphx.storage.base import GraphStore
from tf_graphx.storage.neo4j_store import Neo4jStore

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    """Everything one run produced."""

    plan: TerraformPlan
    graph: Graph
    diagnostics: ExtractionDiagnostics
    sync: Optional[SyncResult] = None


def load_plan_input(
    plan_path: Optional[str] = None,
    plan_document: Optional[Mapping[str, Any]] = None,
    config: GraphxConfig = DEFAULT_CONFIG,
    workdir: Optional[str] = None,
) -> TerraformPlan:
    """
    Resolve the plan input, in order of precedence:

        1. plan_document — an already-decoded plan JSON object.
        2. plan_path ending in ".json" — a saved `terraform show -json` output.
        3. plan_path otherwise — a binary plan file, rendered by terraform.
        4. nothing — terraform plans into config.plan_filename, then renders it.
    """
    if plan_document is not None:
        return parse_plan(plan_document)
    if plan_path and plan_path.lower().endswith(".json"):
        return load_plan(plan_path)
    text = show_plan_json(
        plan_file=plan_path,
        workdir=workdir,
        binary=config.terraform_binary,
        default_plan_filename=config.plan_filename,
    )
    return parse_plan_json(text)


def run_pipeline(
    plan_path: Optional[str] = None,
    plan_document: Optional[Mapping[str, Any]] = None,
    config: GraphxConfig = DEFAULT_CONFIG,
    update: bool = False,
    store: Optional[GraphStore] = None,
    workdir: Optional[str] = None,
) -> PipelineResult:
    """
    Extract the dependency graph and, with update=True, sync it to the store.

    Args:
        plan_path:     Plan JSON or binary plan file (see load_plan_input).
        plan_document: Decoded plan JSON; takes precedence over plan_path.
        config:        GraphxConfig; config.store is used to open a Neo4jStore
                       when update=True and no store is injected.
        update:        Synchronize the extracted graph with the store.
        store:         Injected GraphStore. Left open for the caller to close.
        workdir:       Terraform working directory for the CLI boundary.

    Returns:
        PipelineResult (sync is None unless update=True).

    Raises:
        PlanParseError, TerraformError: the input could not be obtained.
        StoreError: the sync failed and was rolled back.
    """
    plan = load_plan_input(plan_path, plan_document, config, workdir)
    extraction = build_graph(plan)
    result = PipelineResult(
        plan=plan,
        graph=extraction.graph,
        diagnostics=extraction.diagnostics,
    )
    if not update:
        return result

    owns_store = store is None
    if owns_store:
        store = Neo4jStore(config.store)
    try:
        store.verify_connectivity()
        store.ensure_schema()
        result.sync = sync_graph(extraction.graph, store)
    finally:
        if owns_store:
            store.close()
    return result
