import logging
from pathlib import Path

import pytest

from citygml_schema_api.concepts import ConceptExtractor, module_name_from_location
from citygml_schema_api.config import ExtractorConfig
from citygml_schema_api.errors import FatalConfigurationError

FIXTURE_DIR = Path(__file__).resolve().parent / "fixtures" / "schema"
XS = "http://www.w3.org/2001/XMLSchema"


def _write_schema(directory: Path, name: str, body: str = "", imports=()) -> Path:
    import_xml = "".join(
        f'<xs:import namespace="urn:test:{target}" schemaLocation="{target}.xsd"/>'
        for target in imports
    )
    path = directory / f"{name}.xsd"
    path.write_text(
        f'<xs:schema xmlns:xs="{XS}" targetNamespace="urn:test:{name}">{import_xml}{body}</xs:schema>'
    )
    return path


def _extract():
    return ConceptExtractor(FIXTURE_DIR).extract_all_modules()


def test_modules_follow_root_imports():
    model = _extract()
    assert [m.name for m in model.modules] == ["core", "building", "nonamespace"]
    building = model.get_module("building")
    assert building.namespace == "http://www.opengis.net/citygml/building/3.0"
    assert building.description == "Building module of the test model."
    assert building.dependencies == ["core"]
    assert model.get_module("core").dependencies == ["gml"]


def test_unusable_modules_are_skipped_with_warning(caplog):
    extractor = ConceptExtractor(FIXTURE_DIR)
    with caplog.at_level(logging.WARNING, logger="citygml_schema_api.concepts"):
        model = extractor.extract_all_modules()

    assert {name for name, _ in extractor.skipped} == {"broken", "missing"}
    assert model.get_module("broken") is None
    messages = [r.getMessage() for r in caplog.records if r.levelno == logging.WARNING]
    assert any("broken" in m for m in messages)
    assert any("missing" in m for m in messages)


def test_missing_root_schema_is_fatal(tmp_path):
    with pytest.raises(FatalConfigurationError, match="Root schema not found"):
        ConceptExtractor(tmp_path).extract_all_modules()


def test_unreadable_root_schema_is_fatal(tmp_path):
    (tmp_path / "CityGML.xsd").write_text("<xs:schema")
    with pytest.raises(FatalConfigurationError, match="unreadable"):
        ConceptExtractor(tmp_path).extract_all_modules()


def test_class_members_and_inheritance():
    model = _extract()
    building = model.find_class("Building")
    assert building.module == "building"
    assert building.description == "Concrete building class."
    assert building.is_abstract is False
    assert building.super_classes == ["AbstractBuilding"]
    assert [a.name for a in building.attributes] == [
        "lod2Solid",
        "boundaryGeometry",
        "buildingInstallationMember",
        "function",
        "class",
    ]
    assert [a.name for a in building.associations] == ["Address"]
    assert building.associations[0].cardinality == "0..*"

    assert model.find_class("AbstractBuilding").is_abstract is True
    assert model.find_class("Wall").super_classes == ["AbstractBuildingSubdivision"]


def test_required_attribute_cardinality():
    building = _extract().find_class("Building")
    function = building.get_attribute("function")
    assert function.type == "string"
    assert function.cardinality == "1..1"
    assert building.get_attribute("class").cardinality == "0..1"
    assert building.get_attribute("buildingInstallationMember").cardinality == "0..*"


def test_local_elements_are_not_entered():
    reference = _extract().find_class("ExternalReference")
    assert [a.name for a in reference.attributes] == ["targetResource", "informationSystem"]
    assert reference.get_attribute("innerValue") is None


def test_constraints_from_documentation():
    model = _extract()
    building = model.find_class("Building")
    assert [c.name for c in building.constraints] == ["Constraint"]
    assert "must" in building.constraints[0].description
    assert model.find_class("Wall").constraints == []


def test_codelists_and_enumerations():
    building = _extract().get_module("building")
    assert [e.name for e in building.enumerations] == ["RoofTypeEnumBase"]
    roof = building.enumerations[0]
    assert [v.name for v in roof.values] == ["flat", "gabled", "hipped"]
    assert roof.values[0].description == "Flat roof"
    assert roof.description == "Closed list of roof shapes."

    # BuildingClassValue has no enumeration facets.
    assert [c.name for c in building.codelists] == ["BuildingUsageValue"]
    assert [v.code for v in building.codelists[0].values] == ["residential", "commercial"]


def test_extraction_is_idempotent():
    first = _extract()
    second = _extract()
    assert first == second
    assert first.to_dict() == second.to_dict()


def test_transitive_imports_are_cycle_guarded(tmp_path):
    _write_schema(tmp_path, "CityGML", imports=["a"])
    _write_schema(tmp_path, "a", '<xs:complexType name="A"/>', imports=["b"])
    _write_schema(tmp_path, "b", '<xs:complexType name="B"/>', imports=["a", "CityGML"])

    shallow = ConceptExtractor(tmp_path).extract_all_modules()
    assert [m.name for m in shallow.modules] == ["a"]

    config = ExtractorConfig(xsd_dir=tmp_path, follow_transitive_imports=True)
    deep = ConceptExtractor(tmp_path, config=config).extract_all_modules()
    assert [m.name for m in deep.modules] == ["a", "b"]


def test_module_resolved_by_name_when_location_is_remote(tmp_path):
    (tmp_path / "CityGML.xsd").write_text(
        f'<xs:schema xmlns:xs="{XS}">'
        '<xs:import namespace="urn:test:a" schemaLocation="http://example.org/schemas/a.xsd"/>'
        "</xs:schema>"
    )
    _write_schema(tmp_path, "a", '<xs:complexType name="A"/>')
    extractor = ConceptExtractor(tmp_path)
    model = extractor.extract_all_modules()
    assert [m.name for m in model.modules] == ["a"]
    assert extractor.module_paths["a"] == tmp_path / "a.xsd"


def test_duplicate_class_names_keep_first_definition(tmp_path):
    _write_schema(tmp_path, "CityGML", imports=["first", "second"])
    _write_schema(
        tmp_path,
        "first",
        '<xs:complexType name="Shared"><xs:annotation>'
        "<xs:documentation>from first</xs:documentation></xs:annotation></xs:complexType>",
    )
    _write_schema(tmp_path, "second", '<xs:complexType name="Shared"/>')

    model = ConceptExtractor(tmp_path).extract_all_modules()
    assert model.find_class("Shared").module == "first"
    assert model.registry.duplicates == [("Shared", "second")]
    assert len(model.registry) == 1


def test_map_concepts_to_sections():
    extractor = ConceptExtractor(FIXTURE_DIR)
    with pytest.raises(FatalConfigurationError):
        extractor.map_concepts_to_sections({"Building": "sec-building"})

    extractor.extract_all_modules()
    sections = extractor.map_concepts_to_sections({"Building": "sec-building", "Roof": "sec-roof"})
    assert sections["Building"].id == "sec-building"
    assert sections["Building"].concept_type == "class"
    assert sections["BuildingUsageValue"].concept_type == "codelist"
    assert sections["RoofTypeEnumBase"].id == "sec-roof"
    assert sections["RoofTypeEnumBase"].concept_type == "enumeration"
    assert "Wall" not in sections


def test_module_name_from_location():
    assert module_name_from_location("../building/3.0/building.xsd") == "building"
    assert module_name_from_location("http://example.org/core.xsd") == "core"
    assert module_name_from_location("relief") == "relief"
