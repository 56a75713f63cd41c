import json

from citygml_schema_api.app import app
from citygml_schema_api.cli import main


def test_openapi_contains_core_paths():
    spec = app.openapi()
    for path in ("/metadata", "/objects", "/relationships", "/context", "/search"):
        assert path in spec["paths"]
    assert spec["info"]["title"] == "CityGML Schema API"


def test_openapi_command_writes_document(tmp_path, capsys):
    out = tmp_path / "schemas" / "openapi.json"
    assert main(["openapi", str(out)]) == 0
    assert "✓ Exported OpenAPI document to:" in capsys.readouterr().out
    document = json.loads(out.read_text())
    assert document["openapi"]
    assert "/search" in document["paths"]
