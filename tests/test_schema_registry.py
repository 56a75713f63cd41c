import logging
from pathlib import Path

from citygml_schema_api.config import get_available_schemas
from citygml_schema_api.schema_registry import (
    SchemaComplexType,
    SchemaSimpleType,
    load_all_schemas,
    load_schema_document,
    module_name_from_namespace,
)

FIXTURE_DIR = Path(__file__).resolve().parent / "fixtures" / "schema"


def test_load_schema_document():
    document = load_schema_document(FIXTURE_DIR / "building.xsd")
    assert document.file_name == "building.xsd"
    assert document.target_namespace == "http://www.opengis.net/citygml/building/3.0"
    assert document.version == "3.0.0"
    assert [imp.schema_location for imp in document.imports] == ["core.xsd"]
    assert [e.name for e in document.elements] == ["Building"]
    assert document.elements[0].substitution_group == "core:AbstractCityObject"

    building = next(t for t in document.complex_types if t.name == "Building")
    assert building.base == "AbstractBuilding"
    assert building.derivation == "extension"
    assert [a.name for a in building.attributes] == ["function", "class"]
    assert [e.name for e in building.sequence][:3] == ["lod2Solid", "boundaryGeometry", "buildingInstallationMember"]

    roof = next(t for t in document.simple_types if t.name == "RoofTypeEnumBase")
    assert roof.base == "xs:string"
    assert roof.enumerations == ["flat", "gabled", "hipped"]
    assert roof.documentation == "Closed list of roof shapes."


def test_plain_sequence_types():
    document = load_schema_document(FIXTURE_DIR / "core.xsd")
    reference = next(t for t in document.complex_types if t.name == "ExternalReference")
    assert reference.base is None
    assert [e.name for e in reference.sequence] == ["targetResource", "informationSystem", "metadata"]
    assert reference.sequence[1].min_occurs == "0"


def test_registry_indexes_all_files(caplog):
    caplog.set_level(logging.WARNING, logger="citygml_schema_api.schema_registry")
    registry = load_all_schemas(FIXTURE_DIR)

    assert "Skipping schema for registry" in caplog.text
    assert len(registry.documents()) == 4
    assert set(registry.elements_by_name) == {"Building", "Address"}
    assert isinstance(registry.types_by_name["Building"][0], SchemaComplexType)
    assert isinstance(registry.types_by_name["BuildingUsageValue"][0], SchemaSimpleType)
    assert "Orphan" in registry.types_by_name
    assert "" in registry.schemas


def test_registry_from_explicit_paths():
    paths = [p for p in get_available_schemas(FIXTURE_DIR) if p.name == "core.xsd"]
    registry = load_all_schemas(paths)
    assert [doc.file_name for doc in registry.documents()] == ["core.xsd"]
    assert "Building" not in registry.types_by_name


def test_module_namespaces():
    registry = load_all_schemas(FIXTURE_DIR)
    assert registry.namespace_for_module("building") == "http://www.opengis.net/citygml/building/3.0"
    assert registry.namespace_for_module("core") == "http://www.opengis.net/citygml/3.0"
    assert registry.namespace_for_module("unknown") is None


def test_module_name_from_namespace():
    assert module_name_from_namespace("http://www.opengis.net/citygml/building/3.0") == "building"
    assert module_name_from_namespace("http://www.opengis.net/citygml/3.0") == "core"
    assert module_name_from_namespace("urn:test:other") is None
