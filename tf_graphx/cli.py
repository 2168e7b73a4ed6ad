"""
tf_graphx/cli.py — Command-line interface for terraform-graphx.

Usage:
    python -m tf_graphx graph plan.json            # print the graph document
    python -m tf_graphx graph tfplan.binary -o graph.json
    python -m tf_graphx update plan.json           # extract + sync to Neo4j
    python -m tf_graphx check                      # verify Neo4j connectivity

Connection settings come from NEO4J_URI / NEO4J_USER / NEO4J_PASSWORD /
NEO4J_DATABASE (a .env file in the working directory is loaded first) and
can be overridden per call with --neo4j-uri / --neo4j-user / --neo4j-pass.
Precedence: flags > environment > defaults.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
import time
from pathlib import Path

from tf_graphx.config import GraphxConfig
from tf_graphx.errors import GraphxError, StoreError


# ── .env loader ───────────────────────────────────────────────────────────────

def _load_dotenv(env_file: str | None = None) -> dict[str, str]:
    """Export NEO4J_* / GRAPHX_* settings from a .env file before config is built.

    Terraform is usually run from a module directory nested inside the
    repository, so without --env-file the nearest .env walking up from the
    working directory is used. Variables already set in the shell win, which
    keeps the flags > environment > .env > defaults order.

    Returns:
        The variables this call exported.
    """
    path = Path(env_file) if env_file else _find_dotenv(Path.cwd())
    if path is None or not path.is_file():
        return {}

    loaded: dict[str, str] = {}
    for pair in map(_env_pair, path.read_text(encoding="utf-8").splitlines()):
        if pair is None:
            continue
        key, value = pair
        if key not in os.environ:
            os.environ[key] = value
            loaded[key] = value
    return loaded


def _find_dotenv(start: Path) -> Path | None:
    for directory in (start, *start.parents):
        if (directory / ".env").is_file():
            return directory / ".env"
    return None


def _env_pair(line: str) -> tuple[str, str] | None:
    """KEY=VALUE (optionally quoted) -> (KEY, VALUE); comments and junk -> None."""
    line = line.strip()
    if line.startswith("#") or "=" not in line:
        return None
    key, _, value = (part.strip() for part in line.partition("="))
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        value = value[1:-1]
    return (key, value) if key else None


# ── Logging setup ─────────────────────────────────────────────────────────────

def _setup_logging(level: str = "INFO") -> None:
    """Configure the root logger with timestamps on stderr."""
    numeric = getattr(logging, level.upper(), logging.INFO)
    fmt = "%(asctime)s  %(levelname)-8s  %(name)s — %(message)s"
    datefmt = "%H:%M:%S"
    logging.basicConfig(level=numeric, format=fmt, datefmt=datefmt, stream=sys.stderr)
    # The driver logs every routing/connection event at DEBUG/INFO.
    logging.getLogger("neo4j").setLevel(logging.WARNING)


logger = logging.getLogger("tf_graphx.cli")


def _config_from_args(args: argparse.Namespace) -> GraphxConfig:
    config = GraphxConfig.from_env()
    return config.with_store(
        uri=getattr(args, "neo4j_uri", None),
        user=getattr(args, "neo4j_user", None),
        password=getattr(args, "neo4j_pass", None),
    )


# ── Subcommand: graph ─────────────────────────────────────────────────────────

def cmd_graph(args: argparse.Namespace) -> int:
    """Extract the graph and print (or write) its JSON document."""
    from tf_graphx.pipeline import run_pipeline

    config = _config_from_args(args)
    result = run_pipeline(plan_path=args.plan, config=config, workdir=args.workdir)
    document = result.graph.to_json(
        include_attributes=args.attributes or config.export_attributes
    )

    if args.output:
        with open(args.output, "w", encoding="utf-8") as fh:
            fh.write(document + "\n")
        logger.info("Graph document written to %s", args.output)
    else:
        print(document)
    return 0


# ── Subcommand: update ────────────────────────────────────────────────────────

def cmd_update(args: argparse.Namespace) -> int:
    """Extract the graph and synchronize it with Neo4j."""
    from tf_graphx.pipeline import run_pipeline

    config = _config_from_args(args)
    logger.info("Updating graph store at %s", config.store.uri)

    t0 = time.monotonic()
    result = run_pipeline(
        plan_path=args.plan, config=config, update=True, workdir=args.workdir
    )
    elapsed = time.monotonic() - t0

    diag = result.diagnostics
    sync = result.sync
    print()
    print("=" * 60)
    print("  GRAPH UPDATE COMPLETE")
    print("=" * 60)
    print(f"  Elapsed          : {elapsed:.1f}s")
    print(f"  Nodes            : {len(result.graph.nodes)}")
    print(f"  Edges            : {len(result.graph.edges)}")
    print(f"  Edge source      : {diag.strategy or 'none'}")
    print(f"  Nodes deleted    : {sync.nodes_deleted}")
    print(f"  Edges deleted    : {sync.edges_deleted}")
    print(f"  Store            : {config.store.uri}")
    print("=" * 60)
    return 0


# ── Subcommand: check ─────────────────────────────────────────────────────────

def cmd_check(args: argparse.Namespace) -> int:
    """Verify that the configured Neo4j instance is reachable."""
    from tf_graphx.storage.neo4j_store import Neo4jStore

    config = _config_from_args(args)
    with Neo4jStore(config.store) as store:
        store.verify_connectivity()
    print(f"Neo4j is reachable at {config.store.uri}")
    return 0


# ── Argument parser ───────────────────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="terraform-graphx",
        description=(
            "terraform-graphx — Terraform dependency graph export and Neo4j sync.\n"
            "Reads NEO4J_* settings from .env automatically."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Print the dependency graph of a saved plan document
  terraform show -json tfplan.binary > plan.json
  python -m tf_graphx graph plan.json

  # Let terraform plan + render, then push the graph to Neo4j
  python -m tf_graphx update --neo4j-pass secret

  # Check the database connection
  python -m tf_graphx check
        """,
    )

    # Global flags
    parser.add_argument(
        "--env-file",
        default=None,
        metavar="PATH",
        help="Path to .env file (default: auto-detect .env from the working directory up)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: INFO)",
    )

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")
    subparsers.required = True

    def add_plan_flags(p: argparse.ArgumentParser) -> None:
        p.add_argument(
            "plan",
            nargs="?",
            default=None,
            metavar="PLAN",
            help="Plan JSON (*.json) or binary plan file (default: run terraform plan)",
        )
        p.add_argument(
            "--workdir",
            default=None,
            metavar="PATH",
            help="Terraform working directory (default: current directory)",
        )

    def add_store_flags(p: argparse.ArgumentParser) -> None:
        p.add_argument("--neo4j-uri", default=None, metavar="URI",
                       help="Bolt URI (default: NEO4J_URI or bolt://localhost:7687)")
        p.add_argument("--neo4j-user", default=None, metavar="USER",
                       help="Neo4j user (default: NEO4J_USER or neo4j)")
        p.add_argument("--neo4j-pass", default=None, metavar="PASSWORD",
                       help="Neo4j password (default: NEO4J_PASSWORD)")

    # graph
    p_graph = subparsers.add_parser(
        "graph",
        help="Extract the dependency graph and print its JSON document",
    )
    add_plan_flags(p_graph)
    p_graph.add_argument(
        "-o", "--output", default=None, metavar="PATH",
        help="Write the document to PATH instead of stdout",
    )
    p_graph.add_argument(
        "--attributes", action="store_true",
        help="Include planned resource attributes in the document",
    )
    p_graph.set_defaults(func=cmd_graph)

    # update
    p_update = subparsers.add_parser(
        "update",
        help="Extract the dependency graph and synchronize it with Neo4j",
    )
    add_plan_flags(p_update)
    add_store_flags(p_update)
    p_update.set_defaults(func=cmd_update)

    # check
    p_check = subparsers.add_parser(
        "check",
        help="Verify connectivity to the configured Neo4j instance",
    )
    add_store_flags(p_check)
    p_check.set_defaults(func=cmd_check)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _load_dotenv(args.env_file)
    _setup_logging(args.log_level)
    try:
        return args.func(args)
    except StoreError as exc:
        hint = " (transient — re-run to retry)" if exc.retryable else ""
        logger.error("Store error%s: %s", hint, exc)
        return 1
    except GraphxError as exc:
        logger.error("%s", exc)
        output = getattr(exc, "output", "")
        if output:
            print(output, file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
