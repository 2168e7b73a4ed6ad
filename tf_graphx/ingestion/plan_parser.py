"""
tf_graphx/ingestion/plan_parser.py — Terraform plan JSON → typed module trees.

Reads the document printed by `terraform show -json <planfile>` and keeps the
three sections graph extraction needs:

    planned_values.root_module  → PlanModule tree   (the node source)
    prior_state.values.root_module → StateModule tree (explicit depends_on)
    configuration.root_module   → ConfigModule tree (expression references)

All three trees nest through child modules / module calls to any depth.

Malformed fragments (a resource that is not an object, an address that is
not a string, a depends_on that is not a list, ...) are skipped and recorded
in TerraformPlan.skipped_fragments; extraction continues with the rest of the
document. Only a document that is not a JSON object at all raises
PlanParseError.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Mapping

from tf_graphx.errors import PlanParseError

logger = logging.getLogger(__name__)

MANAGED_MODE = "managed"
DATA_MODE = "data"


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclass
class PlanResource:
    """One resource instance from planned_values."""

    address: str
    mode: str
    kind: str
    label: str
    owner: str = ""
    attributes: dict[str, Any] = field(default_factory=dict)
    index: Any = None

    @property
    def is_managed(self) -> bool:
        return self.mode == MANAGED_MODE


@dataclass
class PlanModule:
    address: str = ""
    resources: list[PlanResource] = field(default_factory=list)
    child_modules: list["PlanModule"] = field(default_factory=list)


@dataclass
class StateResource:
    """One resource instance from prior_state, with its realized dependencies."""

    address: str
    depends_on: list[str] = field(default_factory=list)


@dataclass
class StateModule:
    address: str = ""
    resources: list[StateResource] = field(default_factory=list)
    child_modules: list["StateModule"] = field(default_factory=list)


@dataclass
class ConfigResource:
    """
    One resource block from the configuration.

    `address` is relative to the module that declares it; `expressions`
    holds the expression tree (plus count/for_each expressions when present),
    and `depends_on` the explicit depends_on entries of the block.
    """

    address: str
    mode: str = MANAGED_MODE
    expressions: dict[str, Any] = field(default_factory=dict)
    depends_on: list[str] = field(default_factory=list)


@dataclass
class ConfigModule:
    resources: list[ConfigResource] = field(default_factory=list)
    module_calls: dict[str, "ModuleCall"] = field(default_factory=dict)


@dataclass
class ModuleCall:
    """A `module "name" {}` block and the configuration of the called module."""

    name: str
    source: str = ""
    expressions: dict[str, Any] = field(default_factory=dict)
    module: ConfigModule = field(default_factory=ConfigModule)


@dataclass
class TerraformPlan:
    """
    Parsed plan document.

    Attributes:
        planned_root:      Root of the planned resource tree.
        state_root:        Root of the prior-state tree (empty on a first plan).
        config_root:       Root of the configuration tree.
        format_version:    Plan JSON format version, if present.
        terraform_version: Terraform version that produced the plan, if present.
        skipped_fragments: Human-readable descriptions of skipped fragments.
    """

    planned_root: PlanModule = field(default_factory=PlanModule)
    state_root: StateModule = field(default_factory=StateModule)
    config_root: ConfigModule = field(default_factory=ConfigModule)
    format_version: str = ""
    terraform_version: str = ""
    skipped_fragments: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------

def load_plan(path: str) -> TerraformPlan:
    """Read and parse a plan JSON file written by `terraform show -json`."""
    logger.info("Loading plan document from: %s", path)
    try:
        with open(os.fspath(path), "r", encoding="utf-8") as fh:
            text = fh.read()
    except OSError as exc:
        raise PlanParseError(f"cannot read plan file {path}: {exc}") from exc
    return parse_plan_json(text)


def parse_plan_json(text: str) -> TerraformPlan:
    """Parse the JSON text of a plan document."""
    try:
        document = json.loads(text)
    except json.JSONDecodeError as exc:
        raise PlanParseError(f"plan document is not valid JSON: {exc}") from exc
    return parse_plan(document)


def parse_plan(document: Mapping[str, Any]) -> TerraformPlan:
    """
    Build a TerraformPlan from an already-decoded plan document.

    Missing sections yield empty trees: a plan without prior_state (first
    apply) or without configuration is still a valid input.
    """
    if not isinstance(document, Mapping):
        raise PlanParseError(
            f"plan document must be a JSON object, got {type(document).__name__}"
        )

    skipped: list[str] = []

    planned = _section(document, "planned_values", "root_module", skipped)
    state = _section(document, "prior_state", "values", skipped)
    state = _child(state, "root_module", "prior_state.values", skipped)
    config = _section(document, "configuration", "root_module", skipped)

    plan = TerraformPlan(
        planned_root=_parse_plan_module(planned, "planned_values", skipped),
        state_root=_parse_state_module(state, "prior_state", skipped),
        config_root=_parse_config_module(config, "configuration", skipped),
        format_version=str(document.get("format_version", "") or ""),
        terraform_version=str(document.get("terraform_version", "") or ""),
        skipped_fragments=skipped,
    )

    if skipped:
        logger.info("Plan parsed with %d malformed fragment(s) skipped.", len(skipped))
    return plan


# ---------------------------------------------------------------------------
# Section helpers
# ---------------------------------------------------------------------------

def _child(parent: Mapping, key: str, where: str, skipped: list[str]) -> Mapping:
    value = parent.get(key)
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        _skip(skipped, f"{where}.{key}: expected object, got {type(value).__name__}")
        return {}
    return value


def _section(document: Mapping, key: str, sub: str, skipped: list[str]) -> Mapping:
    return _child(_child(document, key, "plan", skipped), sub, key, skipped)


def _skip(skipped: list[str], message: str) -> None:
    logger.debug("Skipping malformed fragment — %s", message)
    skipped.append(message)


def _list(raw: Mapping, key: str, where: str, skipped: list[str]) -> list:
    value = raw.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        _skip(skipped, f"{where}.{key}: expected list, got {type(value).__name__}")
        return []
    return value


def _string_list(value: Any, where: str, skipped: list[str]) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        _skip(skipped, f"{where}: expected list of strings")
        return []
    out = [v for v in value if isinstance(v, str)]
    if len(out) != len(value):
        _skip(skipped, f"{where}: {len(value) - len(out)} non-string entries dropped")
    return out


def _address(raw: Any, where: str, skipped: list[str]) -> str | None:
    if not isinstance(raw, Mapping):
        _skip(skipped, f"{where}: expected object, got {type(raw).__name__}")
        return None
    address = raw.get("address")
    if not isinstance(address, str) or not address:
        _skip(skipped, f"{where}: missing or non-string address")
        return None
    return address


# ---------------------------------------------------------------------------
# Tree parsers
# ---------------------------------------------------------------------------

def _parse_plan_module(raw: Mapping, where: str, skipped: list[str]) -> PlanModule:
    module = PlanModule(address=str(raw.get("address", "") or ""))

    for i, item in enumerate(_list(raw, "resources", where, skipped)):
        item_where = f"{where}.resources[{i}]"
        address = _address(item, item_where, skipped)
        if address is None:
            continue
        values = item.get("values")
        if values is not None and not isinstance(values, Mapping):
            _skip(skipped, f"{item_where}.values: expected object")
            values = None
        module.resources.append(
            PlanResource(
                address=address,
                mode=str(item.get("mode", MANAGED_MODE) or ""),
                kind=str(item.get("type", "") or ""),
                label=str(item.get("name", "") or ""),
                owner=str(item.get("provider_name", "") or ""),
                attributes=dict(values or {}),
                index=item.get("index"),
            )
        )

    for i, child in enumerate(_list(raw, "child_modules", where, skipped)):
        child_where = f"{where}.child_modules[{i}]"
        if not isinstance(child, Mapping):
            _skip(skipped, f"{child_where}: expected object")
            continue
        module.child_modules.append(_parse_plan_module(child, child_where, skipped))

    return module


def _parse_state_module(raw: Mapping, where: str, skipped: list[str]) -> StateModule:
    module = StateModule(address=str(raw.get("address", "") or ""))

    for i, item in enumerate(_list(raw, "resources", where, skipped)):
        item_where = f"{where}.resources[{i}]"
        address = _address(item, item_where, skipped)
        if address is None:
            continue
        module.resources.append(
            StateResource(
                address=address,
                depends_on=_string_list(
                    item.get("depends_on"), f"{item_where}.depends_on", skipped
                ),
            )
        )

    for i, child in enumerate(_list(raw, "child_modules", where, skipped)):
        child_where = f"{where}.child_modules[{i}]"
        if not isinstance(child, Mapping):
            _skip(skipped, f"{child_where}: expected object")
            continue
        module.child_modules.append(_parse_state_module(child, child_where, skipped))

    return module


def _parse_config_module(raw: Mapping, where: str, skipped: list[str]) -> ConfigModule:
    module = ConfigModule()

    for i, item in enumerate(_list(raw, "resources", where, skipped)):
        item_where = f"{where}.resources[{i}]"
        address = _address(item, item_where, skipped)
        if address is None:
            continue
        expressions = item.get("expressions") or {}
        if not isinstance(expressions, Mapping):
            _skip(skipped, f"{item_where}.expressions: expected object")
            expressions = {}
        expressions = dict(expressions)
        # count / for_each carry references too (e.g. length(var.x), aws_x.y.ids).
        for meta in ("count_expression", "for_each_expression"):
            if isinstance(item.get(meta), Mapping):
                expressions[meta] = item[meta]
        module.resources.append(
            ConfigResource(
                address=address,
                mode=str(item.get("mode", MANAGED_MODE) or ""),
                expressions=expressions,
                depends_on=_string_list(
                    item.get("depends_on"), f"{item_where}.depends_on", skipped
                ),
            )
        )

    calls = raw.get("module_calls") or {}
    if not isinstance(calls, Mapping):
        _skip(skipped, f"{where}.module_calls: expected object")
        calls = {}
    for name, call in calls.items():
        call_where = f"{where}.module_calls.{name}"
        if not isinstance(call, Mapping):
            _skip(skipped, f"{call_where}: expected object")
            continue
        expressions = call.get("expressions")
        module.module_calls[str(name)] = ModuleCall(
            name=str(name),
            source=str(call.get("source", "") or ""),
            expressions=dict(expressions) if isinstance(expressions, Mapping) else {},
            module=_parse_config_module(
                _child(call, "module", call_where, skipped),
                f"{call_where}.module",
                skipped,
            ),
        )

    return module
