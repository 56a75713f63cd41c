from pathlib import Path

import pytest

from citygml_schema_api.attributes import AttributeCategory, AttributeClassifier
from citygml_schema_api.concepts import ConceptExtractor
from citygml_schema_api.errors import FatalConfigurationError
from citygml_schema_api.models import Multiplicity

FIXTURE_DIR = Path(__file__).resolve().parent / "fixtures" / "schema"


@pytest.fixture(scope="module")
def classifier():
    model = ConceptExtractor(FIXTURE_DIR).extract_all_modules()
    return AttributeClassifier(model)


def test_required_string_attribute_is_basic(classifier):
    summary = classifier.classify_class_attributes(classifier.model.find_class("Building"))
    assert summary.category_of("function") is AttributeCategory.BASIC
    function = next(item for item in summary.basic if item.name == "function")
    assert function.attribute.cardinality == "1..1"


def test_each_attribute_lands_in_one_bucket(classifier):
    summary = classifier.classify_class_attributes(classifier.model.find_class("AbstractBuilding"))
    assert [a.name for a in summary.enumeration] == ["roofType"]
    assert [a.name for a in summary.codelist] == ["usage"]
    assert [a.name for a in summary.geometry] == ["lod2MultiSurface", "lod3Solid"]
    assert [a.name for a in summary.basic] == ["storeysAboveGround", "buildingPart"]
    assert summary.metadata == []

    total = sum(len(summary.bucket(category)) for category in AttributeCategory)
    assert total == len(classifier.model.find_class("AbstractBuilding").attributes)


def test_value_set_is_reported(classifier):
    usage = classifier.model.find_class("AbstractBuilding").get_attribute("usage")
    assert classifier.classify_attribute(usage) == (AttributeCategory.CODELIST, "BuildingUsageValue")
    roof = classifier.model.find_class("AbstractBuilding").get_attribute("roofType")
    assert classifier.classify_attribute(roof) == (AttributeCategory.ENUMERATION, "RoofTypeEnumBase")


def test_metadata_attributes(classifier):
    summary = classifier.classify_class_attributes(classifier.model.find_class("AbstractCityObject"))
    assert [a.name for a in summary.metadata] == ["creationDate"]
    found = classifier.extract_metadata_attributes()
    assert [a.name for a in found["AbstractCityObject"]] == ["creationDate"]


def test_constrained_attributes_are_flagged(classifier):
    summary = classifier.classify_class_attributes(classifier.model.find_class("Building"))
    assert [a.name for a in summary.constrained] == ["function"]
    payload = summary.to_dict()
    assert payload["constrained"][0]["constraints"][0]["name"] == "Constraint"


def test_cardinality_analysis(classifier):
    analysis = classifier.analyze_cardinality()
    required = {(e["class_name"], e["attribute_name"]) for e in analysis["required"]}
    optional = {(e["class_name"], e["attribute_name"]) for e in analysis["optional"]}
    multi = {(e["class_name"], e["attribute_name"]) for e in analysis["multi_valued"]}

    assert ("Building", "function") in required
    assert ("Building", "class") in optional
    assert ("AbstractBuilding", "usage") in multi
    assert ("AbstractBuilding", "usage") in optional
    assert not required & optional


def test_attribute_cardinality_round_trip(classifier):
    for _, cls in classifier.model.iter_classes():
        for attribute in cls.attributes:
            multiplicity = classifier.get_attribute_cardinality(cls.name, attribute.name)
            if classifier.model.find_class(cls.name) is not cls:
                continue
            assert str(multiplicity) == attribute.cardinality
            assert Multiplicity.parse(str(multiplicity)) == multiplicity

    assert classifier.get_attribute_cardinality("Building", "nope") is None
    assert classifier.get_attribute_cardinality("Nope", "function") is None


def test_value_set_lookups(classifier):
    assert [c.name for c in classifier.extract_all_codelists()] == ["BuildingUsageValue"]
    assert [e.name for e in classifier.extract_all_enumerations()] == ["RoofTypeEnumBase"]
    assert [v.code for v in classifier.get_codelist_values("BuildingUsageValue")] == [
        "residential",
        "commercial",
    ]
    assert [v.name for v in classifier.get_enumeration_values("RoofTypeEnumBase")] == [
        "flat",
        "gabled",
        "hipped",
    ]
    assert classifier.get_codelist_values("Missing") == []


def test_constraint_groups(classifier):
    groups = classifier.analyze_attribute_constraints()
    assert [c["class_name"] for c in groups["value"]] == ["Building"]
    assert groups["type"] == []
    assert groups["referential"] == []


def test_type_distribution(classifier):
    distribution = classifier.attribute_type_distribution()
    assert distribution["SolidPropertyType"] == 3
    assert distribution["string"] >= 1


def test_extract_all_attributes_keys(classifier):
    summaries = classifier.extract_all_attributes()
    assert "Building" in summaries
    assert summaries["Building"].class_name == "Building"


def test_requires_model():
    with pytest.raises(FatalConfigurationError):
        AttributeClassifier().extract_all_attributes()
