import logging
from pathlib import Path

import pytest

from citygml_schema_api.concepts import ConceptExtractor
from citygml_schema_api.config import get_available_schemas
from citygml_schema_api.errors import FatalConfigurationError
from citygml_schema_api.models import (
    Multiplicity,
    RelationshipType,
    SpatialRelationType,
)
from citygml_schema_api.relationships import (
    RelationshipExtractor,
    classify_element_kind,
    spatial_type_for,
)

FIXTURE_DIR = Path(__file__).resolve().parent / "fixtures" / "schema"

XSD_HEADER = (
    '<?xml version="1.0" encoding="UTF-8"?>\n'
    '<xs:schema xmlns:xs="http://www.w3.org/2001/XMLSchema" '
    'targetNamespace="urn:test:{name}">\n'
)


def _write_schema(directory: Path, name: str, body: str) -> Path:
    path = directory / f"{name}.xsd"
    path.write_text(XSD_HEADER.format(name=name) + body + "\n</xs:schema>\n")
    return path


@pytest.fixture(scope="module")
def extractor():
    model = ConceptExtractor(FIXTURE_DIR).extract_all_modules()
    extractor = RelationshipExtractor(model, FIXTURE_DIR)
    extractor.extract_relationships(get_available_schemas(FIXTURE_DIR))
    return extractor


def test_generalization_of_building(extractor):
    rel = extractor.relationships["generalization_Building_AbstractBuilding"]
    assert rel.type is RelationshipType.GENERALIZATION
    assert rel.source == "Building"
    assert rel.target == "AbstractBuilding"
    assert rel.source_multiplicity == Multiplicity(0, "*")
    assert rel.target_multiplicity == Multiplicity(1, 1)
    assert rel.xsd_path.endswith("building.xsd")


def test_generalizations_strip_prefixes(extractor):
    generalizations = extractor.get_relationships_by_type(RelationshipType.GENERALIZATION)
    assert len(generalizations) == 8
    ids = {rel.id for rel in generalizations}
    assert "generalization_Wall_AbstractBuildingSubdivision" in ids
    assert "generalization_AbstractCityObject_AbstractFeatureType" in ids


def test_structural_relationships(extractor):
    rels = extractor.relationships
    assert rels["composition_AbstractBuilding_buildingPart_BuildingPart"].type is RelationshipType.COMPOSITION
    assert rels["composition_Building_Address"].target_multiplicity == Multiplicity(0, "*")
    assert (
        rels["aggregation_Building_buildingInstallationMember_InstallationReference"].type
        is RelationshipType.AGGREGATION
    )

    address = rels["association_AddressProperty_Address"]
    assert address.type is RelationshipType.ASSOCIATION
    assert address.target_multiplicity == Multiplicity(1, 1)

    reference = rels["association_AbstractCityObject_externalReference_ExternalReference"]
    assert reference.source_role == "abstractcityobject"
    assert reference.target_role == "externalReference"


def test_builtin_types_and_top_level_elements_are_ignored(extractor):
    targets = {rel.target for rel in extractor.get_relationships()}
    assert "string" not in targets
    assert "dateTime" not in targets
    assert all(rel.source != "Building" or rel.target != "Building" for rel in extractor.get_relationships())


def test_attribute_relationships(extractor):
    rels = extractor.relationships
    codelist = rels["association_Building_class_BuildingClassValue"]
    assert codelist.target_multiplicity == Multiplicity(0, 1)
    assert rels["association_ExternalFile_mimeType"].target == "mimeType"


def test_xlink_targets(extractor):
    named = extractor.relationships["spatial_InstallationReference_BuildingInstallation"]
    assert named.spatial_type is SpatialRelationType.REFERENCES
    assert named.target_multiplicity == Multiplicity(0, "*")

    unknown = extractor.relationships["spatial_ExternalFile_Unknown"]
    assert unknown.target == "Unknown"


def test_geometry_elements_are_spatial(extractor):
    rel = extractor.relationships["spatial_Building_boundaryGeometry_MultiSurfacePropertyType"]
    assert rel.spatial_type is SpatialRelationType.CONTAINS
    assert rel.target_multiplicity == Multiplicity(0, 1)


def test_ids_are_unique_and_match_keys(extractor):
    for key, rel in extractor.relationships.items():
        assert key == rel.id
        assert rel.id.startswith(rel.type.value + "_")
    assert extractor.collisions == {}


def test_integrity_rules(extractor):
    rules = {rule.name: rule for rule in extractor.integrity_rules}
    assert set(rules) == {"buildingPartKey", "buildingPartRef"}
    key = rules["buildingPartKey"]
    assert key.kind == "key"
    assert key.selector == "./bldg:buildingPart"
    assert key.fields == ["@gml:id"]
    assert key.module == "building"
    assert key.element == "Building"
    assert rules["buildingPartRef"].refer == "buildingPartKey"


def test_unusable_files_are_skipped(extractor):
    skipped = {Path(path).name for path, _ in extractor.skipped}
    assert skipped == {"broken.xsd", "nonamespace.xsd"}
    assert "nonamespace" not in extractor.module_namespaces
    assert extractor.module_namespaces["building"] == "http://www.opengis.net/citygml/building/3.0"


def test_skip_is_logged(caplog):
    caplog.set_level(logging.WARNING, logger="citygml_schema_api.relationships")
    RelationshipExtractor().extract_relationships([FIXTURE_DIR / "broken.xsd"])
    assert "Skipping schema for relationship extraction" in caplog.text


def test_overwrites_are_counted(tmp_path):
    body = (
        '  <xs:complexType name="Roof">\n'
        '    <xs:complexContent><xs:extension base="Surface"/></xs:complexContent>\n'
        "  </xs:complexType>"
    )
    first = _write_schema(tmp_path, "first", body)
    second = _write_schema(tmp_path, "second", body)

    extractor = RelationshipExtractor()
    relationships = extractor.extract_relationships([first, second])

    assert list(relationships) == ["generalization_Roof_Surface"]
    assert extractor.collisions == {"generalization_Roof_Surface": 1}
    assert relationships["generalization_Roof_Surface"].xsd_path == str(second)


def test_repeated_runs_reset_state(tmp_path):
    path = _write_schema(
        tmp_path,
        "single",
        '  <xs:complexType name="Door">\n'
        '    <xs:complexContent><xs:extension base="Opening"/></xs:complexContent>\n'
        "  </xs:complexType>",
    )
    extractor = RelationshipExtractor()
    extractor.extract_relationships([path])
    extractor.extract_relationships([path])
    assert len(extractor.relationships) == 1
    assert extractor.collisions == {}


def test_query_helpers(extractor):
    from_building = extractor.get_relationships_by_source("Building")
    assert all(rel.source == "Building" for rel in from_building)
    assert "generalization_Building_AbstractBuilding" in {rel.id for rel in from_building}

    into_abstract_building = {rel.source for rel in extractor.get_relationships_by_target("AbstractBuilding")}
    assert into_abstract_building == {"Building", "BuildingPart"}

    assert extractor.count_by_type("spatial") == 3
    with pytest.raises(ValueError):
        extractor.get_relationships_by_type("friendship")


def test_multiplicity_buckets(extractor):
    buckets = extractor.analyze_relationship_multiplicity()
    assert set(buckets) == {"one_to_one", "one_to_many", "many_to_one", "many_to_many"}
    many_to_one = {rel.id for rel in buckets["many_to_one"]}
    generalizations = {rel.id for rel in extractor.get_relationships_by_type("generalization")}
    assert generalizations <= many_to_one
    assert "association_AddressProperty_Address" in {rel.id for rel in buckets["one_to_one"]}
    assert "composition_Building_Address" in {rel.id for rel in buckets["one_to_many"]}
    assert sum(len(v) for v in buckets.values()) == len(extractor.relationships)


def test_module_relationships(extractor):
    result = extractor.extract_module_relationships()
    assert result["dependencies"] == [{"source": "building", "target": "core"}]
    assert {e["relationship"] for e in result["cross_module_generalizations"]} == {
        "AbstractBuilding_extends_AbstractOccupiedSpace",
        "AbstractBuildingSubdivision_extends_AbstractSpace",
    }
    assert result["cross_module_associations"] == []


def test_module_graph(extractor):
    graph = extractor.create_module_relationship_graph("core")
    node_ids = [node["id"] for node in graph["nodes"]]
    assert node_ids[0] == "core"
    assert len(node_ids) == len(set(node_ids))
    assert {"AbstractCityObject", "Address", "AbstractBuilding"} <= set(node_ids)
    contains = [edge for edge in graph["edges"] if edge["type"] == "contains"]
    assert len(contains) == 6

    assert extractor.create_module_relationship_graph("tunnel") is None


def test_module_views_need_model():
    extractor = RelationshipExtractor()
    with pytest.raises(FatalConfigurationError):
        extractor.extract_module_relationships()
    with pytest.raises(FatalConfigurationError):
        extractor.create_module_relationship_graph("core")
    assert extractor.analyze_relationship_multiplicity()["one_to_one"] == []


def test_no_paths_and_no_base_directory():
    with pytest.raises(FatalConfigurationError):
        RelationshipExtractor().extract_relationships()


def test_base_directory_is_scanned_by_default():
    extractor = RelationshipExtractor(xsd_base_path=FIXTURE_DIR)
    assert "generalization_Building_AbstractBuilding" in extractor.extract_relationships()


def test_name_heuristics():
    assert classify_element_kind("cityObjectMember") is RelationshipType.AGGREGATION
    assert classify_element_kind("groupmembers") is RelationshipType.AGGREGATION
    assert classify_element_kind("consistsOfBuildingPart") is RelationshipType.COMPOSITION
    assert classify_element_kind("address") is RelationshipType.ASSOCIATION
    assert spatial_type_for("boundedBySurface") is SpatialRelationType.WITHIN
    assert spatial_type_for("lod2Geometry") is SpatialRelationType.CONTAINS
