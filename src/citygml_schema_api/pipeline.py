"""End-to-end extraction pipeline.

Runs every extractor over one schema directory and bundles the results in a
:class:`CityModelKnowledgeBase`, the unit cached by :mod:`.cache` and served
by the REST layer and the CLI.

Each call builds fresh extractor instances; extractors keep per-run state
and are never shared between pipeline runs.

Example:
        from citygml_schema_api.pipeline import build_context, build_knowledge_base

        kb = build_knowledge_base("xsds")
        context = build_context(kb, "Building", threshold=0.5)
        print(context.summary)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .attributes import AttributeClassifier
from .concepts import ConceptExtractor
from .config import DEFAULT_ROOT_SCHEMA, ExtractorConfig, get_available_schemas
from .context import Context, ContextBuilder
from .models import (
    CityObject,
    ConceptualModel,
    EncodingModel,
    ReferentialIntegrityRule,
    RelationshipInfo,
)
from .objects import ObjectClassifier
from .relationships import RelationshipExtractor
from .schema_registry import SchemaRegistry, load_all_schemas

logger = logging.getLogger(__name__)


@dataclass
class CityModelKnowledgeBase:
    """Everything extracted from one schema directory."""

    model: ConceptualModel
    city_objects: Dict[str, CityObject]
    object_classifier: ObjectClassifier
    attribute_classifier: AttributeClassifier
    relationship_extractor: RelationshipExtractor
    schema_registry: SchemaRegistry
    config: ExtractorConfig
    skipped: List[str] = field(default_factory=list)

    @property
    def relationships(self) -> Dict[str, RelationshipInfo]:
        return self.relationship_extractor.relationships

    @property
    def integrity_rules(self) -> List[ReferentialIntegrityRule]:
        return self.relationship_extractor.integrity_rules

    def summary(self) -> Dict[str, Any]:
        return {
            "version": self.model.version,
            "xsd_dir": str(self.config.xsd_dir),
            "root_schema": self.config.root_schema,
            "modules": len(self.model.modules),
            "classes": len(self.model.registry) if self.model.registry is not None else 0,
            "city_objects": len(self.city_objects),
            "relationships": len(self.relationships),
            "integrity_rules": len(self.integrity_rules),
            "skipped": list(self.skipped),
        }


def build_knowledge_base(
    xsd_dir: Union[str, Path, None] = None,
    root_schema: str = DEFAULT_ROOT_SCHEMA,
    config: Optional[ExtractorConfig] = None,
) -> CityModelKnowledgeBase:
    """Run the full extraction pipeline.

    Args:
        xsd_dir: Schema directory (defaults to ``config.xsd_dir``).
        root_schema: Root schema file name; overrides ``config.root_schema``
            unless it is the default.
        config: Optional pipeline configuration.

    Returns:
        The assembled knowledge base.

    Raises:
        FatalConfigurationError: If the root schema is missing or unreadable.
    """
    if config is None:
        config = ExtractorConfig(
            xsd_dir=Path(xsd_dir) if xsd_dir is not None else ExtractorConfig().xsd_dir,
            root_schema=root_schema,
        )
    elif xsd_dir is not None or root_schema != DEFAULT_ROOT_SCHEMA:
        config = replace(
            config,
            xsd_dir=Path(xsd_dir) if xsd_dir is not None else config.xsd_dir,
            root_schema=root_schema if root_schema != DEFAULT_ROOT_SCHEMA else config.root_schema,
        )

    logger.info(f"Building knowledge base from {config.root_schema_path}")
    extractor = ConceptExtractor(config.xsd_dir, config.root_schema, config)
    model = extractor.extract_all_modules()

    object_classifier = ObjectClassifier(model)
    city_objects = object_classifier.extract_all_city_objects()

    schema_files = get_available_schemas(config.xsd_dir)
    relationship_extractor = RelationshipExtractor(model, config.xsd_dir)
    relationship_extractor.extract_relationships(schema_files)

    registry = load_all_schemas(schema_files)

    skipped = [name for name, _ in extractor.skipped]
    skipped += [Path(path).name for path, _ in relationship_extractor.skipped]
    kb = CityModelKnowledgeBase(
        model=model,
        city_objects=city_objects,
        object_classifier=object_classifier,
        attribute_classifier=AttributeClassifier(model),
        relationship_extractor=relationship_extractor,
        schema_registry=registry,
        config=config,
        skipped=sorted(set(skipped)),
    )
    logger.info(
        f"Knowledge base ready: {len(model.modules)} modules, {len(city_objects)} city objects, "
        f"{len(kb.relationships)} relationships"
    )
    return kb


def build_context(
    kb: CityModelKnowledgeBase,
    query: str,
    threshold: Optional[float] = None,
    encoding: Optional[EncodingModel] = None,
    context_id: Optional[str] = None,
) -> Context:
    """Assemble a ranked context for ``query`` over a knowledge base.

    ``threshold`` defaults to the knowledge base's configured
    ``context_threshold``.
    """
    builder = (
        ContextBuilder(context_id)
        .set_concept_model(kb.model)
        .set_schema_registry(kb.schema_registry)
    )
    if encoding is not None:
        builder.set_encoding_model(encoding)
    threshold = kb.config.context_threshold if threshold is None else threshold
    return builder.set_query(query).analyze_query(threshold).build()
