from pathlib import Path

import pytest

from citygml_schema_api import build_context, build_knowledge_base
from citygml_schema_api.config import ExtractorConfig
from citygml_schema_api.errors import FatalConfigurationError

FIXTURE_DIR = Path(__file__).resolve().parent / "fixtures" / "schema"


@pytest.fixture(scope="module")
def kb():
    return build_knowledge_base(FIXTURE_DIR)


def test_summary(kb):
    summary = kb.summary()
    assert summary["modules"] == 3
    assert summary["classes"] == 14
    assert summary["city_objects"] == 7
    assert summary["integrity_rules"] == 2
    assert summary["relationships"] == len(kb.relationships)
    assert summary["root_schema"] == "CityGML.xsd"


def test_runs_do_not_share_state(kb):
    other = build_knowledge_base(FIXTURE_DIR)
    assert other.relationship_extractor is not kb.relationship_extractor
    assert set(other.relationships) == set(kb.relationships)


def test_config_overrides_are_kept():
    config = ExtractorConfig(context_threshold=0.9, follow_transitive_imports=True)
    kb = build_knowledge_base(FIXTURE_DIR, config=config)
    assert kb.config.xsd_dir == FIXTURE_DIR
    assert kb.config.context_threshold == 0.9
    assert kb.config.follow_transitive_imports is True


def test_build_context_uses_configured_threshold():
    kb = build_knowledge_base(FIXTURE_DIR, config=ExtractorConfig(context_threshold=1.0))
    context = build_context(kb, "Building", context_id="ctx_pipeline")
    assert context.id == "ctx_pipeline"
    assert all(item.relevance == 1.0 for item in context.items)

    looser = build_context(kb, "Building", threshold=0.5)
    assert len(looser.items) > len(context.items)


def test_missing_root_schema_is_fatal(tmp_path):
    with pytest.raises(FatalConfigurationError):
        build_knowledge_base(tmp_path)


def test_root_schema_argument_applies_to_given_config():
    config = ExtractorConfig(xsd_dir=FIXTURE_DIR)
    with pytest.raises(FatalConfigurationError, match="nope.xsd"):
        build_knowledge_base(root_schema="nope.xsd", config=config)

    kb = build_knowledge_base(root_schema="building.xsd", config=config)
    assert kb.config.root_schema == "building.xsd"
    assert kb.config.xsd_dir == FIXTURE_DIR
    assert config.root_schema == "CityGML.xsd"


def test_default_root_schema_keeps_configured_one():
    config = ExtractorConfig(xsd_dir=FIXTURE_DIR, root_schema="nope.xsd")
    with pytest.raises(FatalConfigurationError):
        build_knowledge_base(config=config)
