"""
tf_graphx/graph/builder.py — Graph extraction from a parsed Terraform plan.

Nodes come from planned_values: one Node per *managed* resource instance,
collected recursively through child modules. Data sources never become nodes.

Edges come from an ordered list of strategies; the first one that yields at
least one edge wins:

    1. edges_from_prior_state    — depends_on lists recorded in prior state
                                   (already resolved addresses).
    2. edges_from_configuration  — references embedded in configuration
                                   expressions, resolved through
                                   tf_graphx.graph.resolver.

A first plan (no prior state) therefore falls through to the configuration
scan. Both strategies return (from, to) pairs, so duplicate discoveries of
the same dependency collapse before the Graph is materialized.

Anomalies never abort extraction: malformed fragments, symbolic references,
unresolvable references and edges to non-node targets are skipped and
counted in ExtractionDiagnostics.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Iterator, Mapping, Sequence

import networkx as nx

from tf_graphx.graph.model import Edge, Graph, Node, iter_values
from tf_graphx.graph.resolver import (
    base_address,
    module_base_address,
    qualify_reference,
    resolve_reference,
    same_module_instance,
    sort_addresses,
)
from tf_graphx.ingestion.plan_parser import (
    ConfigModule,
    PlanModule,
    StateModule,
    TerraformPlan,
    parse_plan,
)

logger = logging.getLogger(__name__)

EdgePairs = set[tuple[str, str]]


@dataclass
class ExtractionDiagnostics:
    """
    Non-fatal counts gathered during one extraction run.

    Attributes:
        skipped_fragments:     Malformed plan fragments skipped by the parser.
        filtered_references:   var.* / local.* references (never edges).
        unresolved_references: References that named no known address.
        dropped_edges:         Resolved targets that are not nodes
                               (data sources, destroyed resources).
        self_references:       References from a resource to itself.
        strategy:              Name of the edge strategy whose edges were used,
                               or None when every strategy came back empty.
        cycle:                 One dependency cycle, if the graph has any.
    """

    skipped_fragments: int = 0
    filtered_references: int = 0
    unresolved_references: int = 0
    dropped_edges: int = 0
    self_references: int = 0
    strategy: str | None = None
    cycle: list[tuple[str, str]] = field(default_factory=list)


@dataclass
class ExtractionResult:
    graph: Graph
    diagnostics: ExtractionDiagnostics


class AddressIndex:
    """
    Lookup structures over the node set of one extraction run.

    Configuration and depends_on lists name resources without instance keys
    ("aws_instance.web") while nodes are instances ("aws_instance.web[0]").
    The index therefore knows both the node ids and their base addresses,
    and expand() maps either form to the concrete node ids. Inside a module
    called with count/for_each, configuration names "module.app.aws_x.y[0]":
    the form with only the module keys stripped is indexed as well.
    """

    def __init__(self, node_ids: Iterable[str]) -> None:
        self.node_ids: frozenset[str] = frozenset(node_ids)
        instances: dict[str, list[str]] = defaultdict(list)
        for node_id in sorted(self.node_ids):
            for generic in {base_address(node_id), module_base_address(node_id)}:
                if generic != node_id:
                    instances[generic].append(node_id)
        self._instances = dict(instances)
        # Longest first, as resolve_reference() requires.
        self.known_addresses: tuple[str, ...] = sort_addresses(
            self.node_ids | set(self._instances)
        )

    def __contains__(self, address: str) -> bool:
        return address in self.node_ids

    def expand(self, address: str) -> list[str]:
        """Node ids named by `address` (itself, or all instances of a base address)."""
        if address in self.node_ids:
            return [address]
        return list(self._instances.get(address, ()))


# ── Node extraction ───────────────────────────────────────────────────────────

def extract_nodes(module: PlanModule) -> list[Node]:
    """Collect one Node per managed resource, recursing into child modules."""
    nodes: list[Node] = []
    for resource in module.resources:
        if not resource.is_managed:
            continue
        nodes.append(
            Node(
                id=resource.address,
                kind=resource.kind,
                label=resource.label,
                owner=resource.owner,
                attributes=resource.attributes or None,
            )
        )
    for child in module.child_modules:
        nodes.extend(extract_nodes(child))
    return nodes


# ── Edge strategy 1: prior state depends_on ──────────────────────────────────

def edges_from_prior_state(
    plan: TerraformPlan,
    index: AddressIndex,
    diagnostics: ExtractionDiagnostics,
) -> EdgePairs:
    """
    Edges from the depends_on lists of realized state.

    Both endpoints must be node ids; a depends_on entry without instance key
    links to every instance of that resource.
    """
    pairs: EdgePairs = set()
    _walk_state(plan.state_root, index, diagnostics, pairs)
    return pairs


def _walk_state(
    module: StateModule,
    index: AddressIndex,
    diagnostics: ExtractionDiagnostics,
    pairs: EdgePairs,
) -> None:
    for resource in module.resources:
        if resource.address not in index:
            continue
        for dep in resource.depends_on:
            targets = index.expand(dep)
            if not targets:
                diagnostics.dropped_edges += 1
                continue
            for target in targets:
                if target == resource.address:
                    diagnostics.self_references += 1
                    continue
                if not same_module_instance(resource.address, target):
                    continue
                pairs.add((resource.address, target))

    for child in module.child_modules:
        _walk_state(child, index, diagnostics, pairs)


# ── Edge strategy 2: configuration expression references ─────────────────────

def find_references(expressions: Any) -> Iterator[str]:
    """
    Yield every reference string found anywhere in an expression tree.

    An expression object carries a "references" list; blocks nest objects and
    lists of further expressions to a depth that depends on the resource
    type, so the whole tree is walked without assuming a schema.
    """
    for value in iter_values(expressions):
        if not isinstance(value, Mapping):
            continue
        refs = value.get("references")
        if isinstance(refs, list):
            for ref in refs:
                if isinstance(ref, str):
                    yield ref


def edges_from_configuration(
    plan: TerraformPlan,
    index: AddressIndex,
    diagnostics: ExtractionDiagnostics,
) -> EdgePairs:
    """Edges from references in the configuration tree (module calls included)."""
    pairs: EdgePairs = set()
    _walk_config(plan.config_root, "", index, diagnostics, pairs)
    return pairs


def _walk_config(
    module: ConfigModule,
    module_path: str,
    index: AddressIndex,
    diagnostics: ExtractionDiagnostics,
    pairs: EdgePairs,
) -> None:
    for resource in module.resources:
        address = f"{module_path}.{resource.address}" if module_path else resource.address
        sources = index.expand(address)
        if not sources:
            # Data sources and resources absent from the plan are never edge sources.
            continue

        references = list(find_references(resource.expressions))
        references.extend(resource.depends_on)

        for ref in references:
            _link(ref, module_path, sources, index, diagnostics, pairs)

    for name, call in module.module_calls.items():
        child_path = f"{module_path}.module.{name}" if module_path else f"module.{name}"
        _walk_config(call.module, child_path, index, diagnostics, pairs)


def _link(
    reference: str,
    module_path: str,
    sources: Sequence[str],
    index: AddressIndex,
    diagnostics: ExtractionDiagnostics,
    pairs: EdgePairs,
) -> None:
    qualified = qualify_reference(reference, module_path)
    if not qualified:
        diagnostics.filtered_references += 1
        return

    resolved = resolve_reference(qualified, index.known_addresses)
    if not resolved:
        diagnostics.unresolved_references += 1
        return

    targets = index.expand(resolved)
    if not targets:
        diagnostics.dropped_edges += 1
        return

    for source in sources:
        for target in targets:
            if base_address(source) == base_address(target):
                diagnostics.self_references += 1
                continue
            if not same_module_instance(source, target):
                continue
            pairs.add((source, target))


EdgeStrategy = Callable[[TerraformPlan, AddressIndex, ExtractionDiagnostics], EdgePairs]

DEFAULT_EDGE_STRATEGIES: tuple[EdgeStrategy, ...] = (
    edges_from_prior_state,
    edges_from_configuration,
)


# ── Entry points ──────────────────────────────────────────────────────────────

def build_graph(
    plan: TerraformPlan,
    strategies: Sequence[EdgeStrategy] = DEFAULT_EDGE_STRATEGIES,
) -> ExtractionResult:
    """
    Extract the resource dependency graph from a parsed plan.

    Args:
        plan:       TerraformPlan from tf_graphx.ingestion.plan_parser.
        strategies: Ordered edge sources; the first non-empty result is used.

    Returns:
        ExtractionResult with the immutable Graph and its diagnostics.
    """
    nodes = extract_nodes(plan.planned_root)
    index = AddressIndex(n.id for n in nodes)
    diagnostics = ExtractionDiagnostics(skipped_fragments=len(plan.skipped_fragments))

    pairs: EdgePairs = set()
    for strategy in strategies:
        name = getattr(strategy, "__name__", repr(strategy))
        pairs = strategy(plan, index, diagnostics)
        if pairs:
            diagnostics.strategy = name
            break
        logger.debug("Edge strategy %s produced no edges.", name)

    graph = Graph.build(nodes, (Edge(source, target) for source, target in pairs))
    diagnostics.cycle = _find_cycle(graph)

    logger.info(
        "Graph extraction complete: %d nodes, %d edges (strategy=%s).",
        len(graph.nodes),
        len(graph.edges),
        diagnostics.strategy,
    )
    logger.info(
        "Dropped during extraction: %d fragments, %d var/local refs, "
        "%d unresolved refs, %d non-node targets, %d self refs.",
        diagnostics.skipped_fragments,
        diagnostics.filtered_references,
        diagnostics.unresolved_references,
        diagnostics.dropped_edges,
        diagnostics.self_references,
    )
    return ExtractionResult(graph=graph, diagnostics=diagnostics)


def build_graph_from_document(document: Mapping[str, Any]) -> ExtractionResult:
    """Parse a decoded `terraform show -json` document and extract its graph."""
    return build_graph(parse_plan(document))


def _find_cycle(graph: Graph) -> list[tuple[str, str]]:
    try:
        cycle = nx.find_cycle(graph.to_networkx())
    except nx.NetworkXNoCycle:
        return []
    edges = [(u, v) for u, v in cycle]
    logger.warning(
        "Dependency cycle detected: %s",
        " -> ".join([u for u, _ in edges] + [edges[0][0]]),
    )
    return edges
