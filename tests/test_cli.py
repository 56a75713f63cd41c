import json
from pathlib import Path

import pytest

from citygml_schema_api.cli import main

FIXTURE_DIR = Path(__file__).resolve().parent / "fixtures" / "schema"


def run(*argv):
    return main(["--xsd-dir", str(FIXTURE_DIR), *argv])


def test_modules_command(capsys):
    assert run("modules") == 0
    out = capsys.readouterr().out
    assert "CityGML 3.0.0 modules:" in out
    assert "building (" in out
    assert "○ skipped: missing" in out


def test_objects_command(capsys):
    assert run("objects", "--module", "building") == 0
    out = capsys.readouterr().out
    assert "Building [building] LOD 2-2" in out
    assert "AbstractBuilding [building] LOD 2-3 (abstract)" in out
    assert "AbstractCityObject" not in out


def test_relationships_command(capsys):
    assert run("relationships", "--type", "generalization", "--source", "Building") == 0
    out = capsys.readouterr().out
    assert "Building -> AbstractBuilding" in out
    assert out.strip().endswith("1 relationships")


def test_relationships_rejects_unknown_type():
    with pytest.raises(SystemExit):
        run("relationships", "--type", "friendship")


def test_context_command(capsys):
    assert run("context", "Building", "--limit", "3") == 0
    out = capsys.readouterr().out
    assert out.startswith("This context contains")
    assert "module" in out.splitlines()[1]
    assert len(out.strip().splitlines()) == 4


def test_context_command_json_with_encoding(tmp_path, capsys):
    encoding = tmp_path / "encoding.json"
    encoding.write_text(
        json.dumps({"encoding_rules": [{"name": "Building encoding", "applies_to": ["Building"]}]})
    )
    assert run("context", "Building", "--encoding", str(encoding), "--json") == 0
    data = json.loads(capsys.readouterr().out)
    assert data["metadata"]["sources"] == ["concept_model", "schema", "encoding"]
    assert "rule_building_encoding" in [item["id"] for item in data["items"]]


def test_context_command_rejects_malformed_encoding(tmp_path, capsys):
    encoding = tmp_path / "encoding.json"
    encoding.write_text(json.dumps({"encoding_rules": [{"description": "no name"}]}))
    assert run("context", "Building", "--encoding", str(encoding)) == 1
    assert "✗ Invalid encoding document" in capsys.readouterr().err

    assert run("context", "Building", "--encoding", str(tmp_path / "missing.json")) == 1


def test_search_command(capsys):
    assert run("search", "roof") == 0
    out = capsys.readouterr().out
    assert "enumeration  building:RoofTypeEnumBase" in out
    assert out.strip().endswith("1 results for 'roof'")

    assert run("search", "address", "--module", "building") == 0
    assert capsys.readouterr().out.strip() == "0 results for 'address'"


def test_export_command(tmp_path, capsys):
    output = tmp_path / "out" / "model.json"
    assert run("export", str(output)) == 0
    assert "✓ Exported knowledge model to:" in capsys.readouterr().out

    data = json.loads(output.read_text())
    assert data["summary"]["modules"] == 3
    assert "Building" in data["city_objects"]
    assert len(data["integrity_rules"]) == 2
    assert {"generalization_Building_AbstractBuilding"} <= {r["id"] for r in data["relationships"]}


def test_missing_schema_directory(tmp_path, capsys):
    assert main(["--xsd-dir", str(tmp_path / "nowhere"), "modules"]) == 1
    assert "✗ Root schema not found" in capsys.readouterr().err


def test_no_command_prints_help(capsys):
    assert main([]) == 1
    assert "citygml-schema" in capsys.readouterr().out
