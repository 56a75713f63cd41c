from pathlib import Path

import pytest

from citygml_schema_api.concepts import ConceptExtractor
from citygml_schema_api.context import (
    ContextBuilder,
    ContextItemType,
    calculate_relevance,
)
from citygml_schema_api.models import EncodingModel
from citygml_schema_api.schema_registry import load_all_schemas

FIXTURE_DIR = Path(__file__).resolve().parent / "fixtures" / "schema"


@pytest.fixture(scope="module")
def model():
    return ConceptExtractor(FIXTURE_DIR).extract_all_modules()


@pytest.fixture(scope="module")
def registry():
    return load_all_schemas(FIXTURE_DIR)


@pytest.fixture(scope="module")
def building_context(model, registry):
    return (
        ContextBuilder("ctx_test")
        .set_concept_model(model)
        .set_schema_registry(registry)
        .set_query("Building")
        .analyze_query(threshold=0.5)
        .build()
    )


@pytest.mark.parametrize(
    "first,second,expected",
    [
        ("Building", "building", 1.0),
        ("Building", "AbstractBuilding", 0.8),
        ("AbstractBuilding", "Building", 0.8),
        ("building height", "building usage", 1 / 3),
        ("roof type", "wall surface", 0.0),
        ("a b", "c d", 0.0),
        ("", "Building", 0.0),
        ("Building", None, 0.0),
    ],
)
def test_calculate_relevance(first, second, expected):
    assert calculate_relevance(first, second) == pytest.approx(expected)


def test_relevance_is_symmetric():
    pairs = [("city object", "object of the city"), ("lod2Solid", "Solid"), ("x", "y")]
    for first, second in pairs:
        assert calculate_relevance(first, second) == calculate_relevance(second, first)
        assert 0.0 <= calculate_relevance(first, second) <= 1.0


def test_building_query_items(building_context):
    by_id = {item.id: item for item in building_context.items}

    assert by_id["module_building"].relevance == 1.0
    assert by_id["class_building"].relevance == 1.0
    for class_id in ("class_abstractbuilding", "class_buildingpart", "class_abstractbuildingsubdivision"):
        assert by_id[class_id].relevance == pytest.approx(0.8)
    assert "class_wall" not in by_id
    assert "module_core" not in by_id

    assert by_id["attribute_abstractbuilding_buildingpart"].type is ContextItemType.ATTRIBUTE
    assert by_id["element_building"].related_items == ["type_building"]
    assert by_id["type_building"].related_items == ["type_abstractbuilding"]
    assert by_id["type_buildingusagevalue"].relevance == pytest.approx(0.8)


def test_items_are_ranked_by_score(building_context):
    scores = [item.score for item in building_context.items]
    assert scores == sorted(scores, reverse=True)
    top = building_context.items[0]
    assert top.id == "module_building"
    assert top.score == pytest.approx(4.5)


def test_class_and_module_are_linked(building_context):
    module = building_context.get_item("module_building")
    building = building_context.get_item("class_building")
    abstract_building = building_context.get_item("class_abstractbuilding")

    assert building.related_items[0] == "module_building"
    assert "class_building" in module.related_items
    assert "class_abstractbuilding" in module.related_items
    assert "attribute_abstractbuilding_buildingpart" in abstract_building.related_items


def test_ids_are_unique(building_context):
    ids = [item.id for item in building_context.items]
    assert len(ids) == len(set(ids))
    assert building_context.total_items == len(ids)


def test_summary_and_metadata(building_context):
    assert building_context.summary.startswith(
        f"This context contains {building_context.total_items} items; main item types: module, class."
    )
    assert building_context.summary.endswith("Most relevant item: building module.")

    payload = building_context.to_dict()
    assert payload["id"] == "ctx_test"
    assert payload["query"] == "Building"
    assert payload["metadata"]["sources"] == ["concept_model", "schema"]
    assert payload["metadata"]["total_items"] == len(payload["items"])


def test_build_returns_snapshot(model):
    builder = ContextBuilder().set_concept_model(model).set_query("Building").analyze_query()
    first = builder.build()
    first.items.clear()
    second = builder.build()
    assert second.items
    assert second.id == first.id
    assert second.id.startswith("ctx_")


def test_threshold_filters_items(model):
    strict = ContextBuilder().set_concept_model(model).set_query("Building").analyze_query(1.0).build()
    assert {item.id for item in strict.items} == {"module_building", "class_building"}

    loose = ContextBuilder().set_concept_model(model).set_query("Building").analyze_query(0.0).build()
    assert len(loose.items) > len(strict.items)


def test_no_match_summary(model):
    context = ContextBuilder().set_concept_model(model).set_query("Aqueduct").analyze_query().build()
    assert context.items == []
    assert context.total_items == 0
    assert context.summary == "No context items matched the query."


def test_missing_query_adds_nothing(model):
    context = ContextBuilder().set_concept_model(model).analyze_query().build()
    assert context.items == []
    assert context.summary is None


def test_encoding_rules_and_examples(model):
    encoding = EncodingModel.from_dict(
        {
            "encoding_rules": [
                {
                    "id": "r1",
                    "name": "Building encoding",
                    "description": "How buildings are written in GML.",
                    "applies_to": ["Building", "BuildingPart", "Building"],
                },
                {"id": "r2", "name": "Texture coordinates"},
            ],
            "examples": [
                {"title": "Simple Building", "code": "<bldg:Building/>", "related_classes": ["Building"]},
            ],
        }
    )
    context = (
        ContextBuilder()
        .set_concept_model(model)
        .set_encoding_model(encoding)
        .set_query("Building")
        .analyze_query()
        .build()
    )

    rule = context.get_item("rule_building_encoding")
    assert rule.type is ContextItemType.ENCODING_RULE
    assert rule.related_items == ["class_building", "class_buildingpart"]
    assert rule.content["id"] == "r1"
    assert context.get_item("rule_texture_coordinates") is None

    example = context.get_item("example_simple_building")
    assert example.importance == 4
    assert example.related_items == ["class_building"]
    assert context.sources == ["concept_model", "encoding"]


def test_association_items(model):
    context = ContextBuilder().set_concept_model(model).set_query("Address").analyze_query().build()
    association = context.get_item("association_addressproperty_address")
    assert association.related_items == ["class_addressproperty", "class_address"]
    assert context.get_item("class_address").relevance == 1.0
