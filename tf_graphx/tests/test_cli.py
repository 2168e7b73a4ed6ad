"""
tf_graphx/tests/test_cli.py — Tests for the terraform-graphx command line.
"""

import json
import os
from unittest.mock import patch

import pytest

from tf_graphx import cli
from tf_graphx.errors import StoreError, TerraformError


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """No stray .env or NEO4J_* variables leak into CLI runs."""
    for key in ("NEO4J_URI", "NEO4J_USER", "NEO4J_PASSWORD", "NEO4J_DATABASE"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def plan_file(tmp_path, scenario_plan):
    path = tmp_path / "plan.json"
    path.write_text(json.dumps(scenario_plan), encoding="utf-8")
    return str(path)


def test_graph_prints_document(plan_file, capsys):
    assert cli.main(["graph", plan_file]) == 0
    doc = json.loads(capsys.readouterr().out)
    assert [n["id"] for n in doc["nodes"]] == ["null_resource.app", "null_resource.cluster"]
    assert doc["edges"] == [
        {"from": "null_resource.app", "to": "null_resource.cluster", "relation": "DEPENDS_ON"}
    ]
    assert "attributes" not in doc["nodes"][0]


def test_graph_writes_output_file(plan_file, tmp_path):
    out = tmp_path / "graph.json"
    assert cli.main(["graph", plan_file, "-o", str(out), "--attributes"]) == 0
    doc = json.loads(out.read_text(encoding="utf-8"))
    assert doc["nodes"][0]["attributes"] == {"triggers": None}


def test_update_prints_summary(plan_file, fake_store, capsys):
    with patch("tf_graphx.pipeline.Neo4jStore", return_value=fake_store):
        assert cli.main(["update", plan_file, "--neo4j-pass", "secret"]) == 0
    out = capsys.readouterr().out
    assert "GRAPH UPDATE COMPLETE" in out
    assert "edges_from_configuration" in out
    assert fake_store.closed


def test_store_flags_override_environment(monkeypatch):
    monkeypatch.setenv("NEO4J_URI", "bolt://env:7687")
    monkeypatch.setenv("NEO4J_USER", "env-user")
    args = cli.build_parser().parse_args(["check", "--neo4j-uri", "bolt://flag:7687"])
    config = cli._config_from_args(args)
    assert config.store.uri == "bolt://flag:7687"
    assert config.store.user == "env-user"


def test_store_error_exit_code(plan_file, failing_store, caplog):
    with patch("tf_graphx.pipeline.Neo4jStore", return_value=failing_store("upsert_edges")):
        assert cli.main(["update", plan_file]) == 1
    assert "re-run to retry" in caplog.text


def test_terraform_error_prints_output(capsys):
    error = TerraformError("terraform show failed", output="Error: no plan")
    with patch("tf_graphx.pipeline.show_plan_json", side_effect=error):
        assert cli.main(["graph", "tfplan.binary"]) == 1
    assert "Error: no plan" in capsys.readouterr().err


def test_bad_timeout_exit_code(plan_file, monkeypatch, caplog):
    monkeypatch.setenv("GRAPHX_TX_TIMEOUT", "soon")
    assert cli.main(["graph", plan_file]) == 1
    assert "GRAPHX_TX_TIMEOUT" in caplog.text


def test_invalid_json_exit_code(tmp_path):
    bad = tmp_path / "bad.json"
    bad.write_text("{not json", encoding="utf-8")
    assert cli.main(["graph", str(bad)]) == 1


def test_check_reports_reachable(capsys):
    with patch("tf_graphx.storage.neo4j_store.GraphDatabase.driver"):
        assert cli.main(["check", "--neo4j-uri", "bolt://db:7687"]) == 0
    assert "bolt://db:7687" in capsys.readouterr().out


def test_check_unreachable():
    down = StoreError("down", retryable=True)
    with patch("tf_graphx.storage.neo4j_store.GraphDatabase.driver"):
        with patch(
            "tf_graphx.storage.neo4j_store.Neo4jStore.verify_connectivity", side_effect=down
        ):
            assert cli.main(["check"]) == 1


def test_command_required():
    with pytest.raises(SystemExit):
        cli.main([])


def test_dotenv_does_not_override_environment(tmp_path, monkeypatch):
    # Registered so monkeypatch removes the value the loader sets.
    monkeypatch.setenv("NEO4J_URI", "placeholder")
    monkeypatch.delenv("NEO4J_URI")
    env_file = tmp_path / "custom.env"
    env_file.write_text(
        "# comment\nNEO4J_URI='bolt://dotenv:7687'\nNEO4J_USER=dotenv\nnot a pair\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("NEO4J_USER", "shell")
    loaded = cli._load_dotenv(str(env_file))
    assert loaded == {"NEO4J_URI": "bolt://dotenv:7687"}
    assert os.environ["NEO4J_USER"] == "shell"
    assert os.environ["NEO4J_URI"] == "bolt://dotenv:7687"


def test_dotenv_found_in_parent_directory(tmp_path, monkeypatch):
    monkeypatch.setenv("NEO4J_DATABASE", "placeholder")
    monkeypatch.delenv("NEO4J_DATABASE")
    (tmp_path / ".env").write_text("NEO4J_DATABASE=infra\n", encoding="utf-8")
    module_dir = tmp_path / "envs" / "prod"
    module_dir.mkdir(parents=True)
    monkeypatch.chdir(module_dir)

    assert cli._load_dotenv() == {"NEO4J_DATABASE": "infra"}
