"""
tf_graphx/tests/test_plan_parser.py — Tests for tf_graphx.ingestion.plan_parser.

Tests verify:
- planned_values, prior_state and configuration trees are parsed, nested
  modules included.
- Missing sections give empty trees.
- Malformed fragments are skipped and recorded, never raised.
- Only an unusable document raises PlanParseError.
"""

import json

import pytest

from tf_graphx.errors import PlanParseError
from tf_graphx.ingestion.plan_parser import (
    load_plan,
    parse_plan,
    parse_plan_json,
)


def test_parses_planned_resources(scenario_plan):
    plan = parse_plan(scenario_plan)
    resources = plan.planned_root.resources
    assert [r.address for r in resources] == ["null_resource.cluster", "null_resource.app"]
    cluster = resources[0]
    assert cluster.kind == "null_resource"
    assert cluster.label == "cluster"
    assert cluster.owner == "registry.terraform.io/hashicorp/null"
    assert cluster.is_managed
    assert plan.format_version == "1.2"
    assert plan.terraform_version == "1.6.0"
    assert plan.skipped_fragments == []


def test_first_plan_has_empty_prior_state(scenario_plan):
    plan = parse_plan(scenario_plan)
    assert plan.state_root.resources == []
    assert plan.state_root.child_modules == []


def test_parses_nested_child_modules(make_plan):
    doc = make_plan(
        resources=["aws_vpc.main"],
        child_modules=[
            {
                "address": "module.net",
                "resources": ["module.net.aws_subnet.a"],
                "child_modules": [
                    {
                        "address": "module.net.module.inner",
                        "resources": [
                            {
                                "address": "module.net.module.inner.aws_route.r",
                                "mode": "managed",
                                "type": "aws_route",
                                "name": "r",
                            }
                        ],
                    }
                ],
            }
        ],
    )
    plan = parse_plan(doc)
    net = plan.planned_root.child_modules[0]
    assert net.address == "module.net"
    assert net.resources[0].address == "module.net.aws_subnet.a"
    inner = net.child_modules[0]
    assert inner.resources[0].kind == "aws_route"
    assert inner.resources[0].owner == ""


def test_data_resources_are_not_managed(make_plan):
    plan = parse_plan(make_plan(resources=["data.aws_ami.ubuntu"]))
    resource = plan.planned_root.resources[0]
    assert resource.mode == "data"
    assert not resource.is_managed


def test_parses_prior_state_depends_on(make_plan):
    doc = make_plan(
        resources=["aws_vpc.main", "aws_subnet.a"],
        state_resources=[
            {"address": "aws_subnet.a", "depends_on": ["aws_vpc.main"]},
            {"address": "aws_vpc.main"},
        ],
    )
    plan = parse_plan(doc)
    assert plan.state_root.resources[0].depends_on == ["aws_vpc.main"]
    assert plan.state_root.resources[1].depends_on == []


def test_parses_configuration_and_module_calls(make_plan, config_resource):
    doc = make_plan(
        config_resources=[
            {
                **config_resource("aws_instance.web", {"ami": {"references": ["var.ami"]}}),
                "count_expression": {"references": ["var.instances"]},
                "depends_on": ["aws_vpc.main"],
            }
        ],
        module_calls={
            "net": {
                "source": "./net",
                "expressions": {"cidr": {"constant_value": "10.0.0.0/16"}},
                "module": {"resources": [config_resource("aws_subnet.a")]},
            }
        },
    )
    plan = parse_plan(doc)
    web = plan.config_root.resources[0]
    assert web.address == "aws_instance.web"
    assert web.depends_on == ["aws_vpc.main"]
    assert web.expressions["count_expression"] == {"references": ["var.instances"]}
    call = plan.config_root.module_calls["net"]
    assert call.source == "./net"
    assert call.module.resources[0].address == "aws_subnet.a"


def test_missing_sections_give_empty_trees():
    plan = parse_plan({})
    assert plan.planned_root.resources == []
    assert plan.config_root.resources == []
    assert plan.config_root.module_calls == {}
    assert plan.skipped_fragments == []


def test_malformed_fragments_are_skipped(make_plan):
    doc = make_plan(resources=["aws_vpc.main"], state_resources=[])
    root = doc["planned_values"]["root_module"]
    root["resources"].extend(["garbage", {"mode": "managed"}, {"address": 7}])
    root["resources"].append({"address": "aws_eip.x", "values": "not-a-map"})
    doc["prior_state"]["values"]["root_module"]["resources"] = [
        {"address": "aws_vpc.main", "depends_on": "aws_subnet.a"},
        {"address": "aws_eip.x", "depends_on": ["aws_vpc.main", 3]},
    ]
    doc["configuration"]["root_module"]["resources"] = [
        {"address": "aws_vpc.main", "expressions": ["wrong"]},
    ]
    doc["configuration"]["root_module"]["module_calls"] = {"broken": "nope"}

    plan = parse_plan(doc)

    assert [r.address for r in plan.planned_root.resources] == ["aws_vpc.main", "aws_eip.x"]
    assert plan.planned_root.resources[1].attributes == {}
    assert plan.state_root.resources[0].depends_on == []
    assert plan.state_root.resources[1].depends_on == ["aws_vpc.main"]
    assert plan.config_root.resources[0].expressions == {}
    assert plan.config_root.module_calls == {}
    assert len(plan.skipped_fragments) == 8


def test_non_object_section_is_skipped():
    plan = parse_plan({"planned_values": [], "configuration": {"root_module": "x"}})
    assert plan.planned_root.resources == []
    assert len(plan.skipped_fragments) == 2


def test_non_object_document_raises():
    with pytest.raises(PlanParseError):
        parse_plan(["not", "a", "plan"])


def test_invalid_json_raises():
    with pytest.raises(PlanParseError):
        parse_plan_json("{not json")


def test_load_plan_reads_file(tmp_path, scenario_plan):
    path = tmp_path / "plan.json"
    path.write_text(json.dumps(scenario_plan), encoding="utf-8")
    plan = load_plan(str(path))
    assert len(plan.planned_root.resources) == 2


def test_load_plan_missing_file_raises(tmp_path):
    with pytest.raises(PlanParseError):
        load_plan(str(tmp_path / "missing.json"))
