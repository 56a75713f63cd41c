"""Infer inter-class relationships directly from the CityGML XSD trees.

Unlike the concept pass, which keeps only a simplified association list per
class, this extractor re-reads the schema files to keep multiplicities and
structural context. Four independent scans run over every module file:

* **Generalization**: each ``extension[@base]`` inside a named complexType
  gives ``generalization_<Type>_<Base>`` (source ``0..*``, target ``1..1``).
* **Association / aggregation / composition**: element references (inside a
  ``sequence`` they count as composition), typed elements (``...Member`` is
  aggregation, ``...Part`` is composition, otherwise association) and
  attribute references or non-built-in typed attributes.
* **Spatial**: ``xlink:href`` attribute references and elements whose name
  mentions ``geometry``.
* **Referential integrity**: ``xs:key``/``xs:keyref`` declarations, parsed
  into :class:`ReferentialIntegrityRule` records for auditing only.

Relationship ids are deterministic, so the result map de-duplicates by
construction. A second write under an existing id replaces the first; every
such overwrite is logged at debug level and counted in ``collisions``.

Example:
        from citygml_schema_api.config import get_available_schemas
        from citygml_schema_api.models import RelationshipType
        from citygml_schema_api.relationships import RelationshipExtractor

        extractor = RelationshipExtractor(model)
        extractor.extract_relationships(get_available_schemas("xsds"))
        for rel in extractor.get_relationships_by_type(RelationshipType.GENERALIZATION):
                print(rel.source, "->", rel.target)
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from .config import get_available_schemas
from .errors import FatalConfigurationError, PerFileExtractionError
from .models import (
    ConceptualModel,
    Multiplicity,
    ReferentialIntegrityRule,
    RelationshipInfo,
    RelationshipType,
    SpatialRelationType,
)
from .schema_node import SchemaNode, is_builtin_type, load_schema, local_name, prefix_of
from .vocabulary import (
    AGGREGATION_INFIX,
    AGGREGATION_SUFFIX,
    COMPOSITION_INFIX,
    COMPOSITION_SUFFIX,
    GEOMETRY_ELEMENT_MARKERS,
    SPATIAL_NAME_RULES,
)

logger = logging.getLogger(__name__)

PROPERTY_TYPE_SUFFIX = "PropertyType"
UNKNOWN_TARGET = "Unknown"

_ONE = Multiplicity(1, 1)
_OPTIONAL = Multiplicity(0, 1)
_MANY = Multiplicity(0, "*")


def classify_element_kind(element_name: str) -> RelationshipType:
    """Relationship kind implied by a typed element's name."""
    if element_name.endswith(AGGREGATION_SUFFIX) or AGGREGATION_INFIX in element_name:
        return RelationshipType.AGGREGATION
    if element_name.endswith(COMPOSITION_SUFFIX) or COMPOSITION_INFIX in element_name:
        return RelationshipType.COMPOSITION
    return RelationshipType.ASSOCIATION


def spatial_type_for(element_name: str) -> SpatialRelationType:
    for fragment, relation in SPATIAL_NAME_RULES:
        if fragment in element_name:
            return SpatialRelationType(relation)
    return SpatialRelationType.CONTAINS


def multiplicity_category(rel: RelationshipInfo) -> str:
    """``one_to_one``, ``one_to_many``, ``many_to_one`` or ``many_to_many``."""
    source_many = rel.source_multiplicity.is_many
    target_many = rel.target_multiplicity.is_many
    source_one = rel.source_multiplicity.max == 1
    target_one = rel.target_multiplicity.max == 1
    if source_one and target_one:
        return "one_to_one"
    if source_one and target_many:
        return "one_to_many"
    if source_many and target_one:
        return "many_to_one"
    return "many_to_many"


class RelationshipExtractor:
    """Extract :class:`RelationshipInfo` edges from module schema files.

    Args:
        model: Conceptual model, needed only for the module-level views
            (:meth:`extract_module_relationships`,
            :meth:`create_module_relationship_graph`).
        xsd_base_path: Directory scanned when :meth:`extract_relationships`
            is called without explicit paths.
    """

    def __init__(
        self,
        model: Optional[ConceptualModel] = None,
        xsd_base_path: Optional[Union[str, Path]] = None,
    ) -> None:
        self.model = model
        self.xsd_base_path = Path(xsd_base_path) if xsd_base_path is not None else None
        self.relationships: Dict[str, RelationshipInfo] = {}
        self.collisions: Dict[str, int] = {}
        self.integrity_rules: List[ReferentialIntegrityRule] = []
        self.module_namespaces: Dict[str, str] = {}
        self.skipped: List[Tuple[str, str]] = []
        self._documents: Dict[str, Tuple[Path, SchemaNode]] = {}

    def set_conceptual_model(self, model: ConceptualModel) -> None:
        self.model = model

    # ---------------- Extraction ---------------- #

    def extract_relationships(
        self, xsd_file_paths: Optional[Iterable[Union[str, Path]]] = None
    ) -> Dict[str, RelationshipInfo]:
        """Run every scan over the given files and return the relationship map.

        Raises:
            FatalConfigurationError: If no paths are given and no base
                directory was configured.
        """
        if xsd_file_paths is None:
            if self.xsd_base_path is None:
                raise FatalConfigurationError("No schema files given and no xsd_base_path set")
            xsd_file_paths = get_available_schemas(self.xsd_base_path)

        self.relationships = {}
        self.collisions = {}
        self.integrity_rules = []
        self.module_namespaces = {}
        self.skipped = []
        self._documents = {}

        for path in xsd_file_paths:
            try:
                self._load_module_file(Path(path))
            except PerFileExtractionError as exc:
                logger.warning(f"Skipping schema for relationship extraction: {exc}")
                self.skipped.append((str(path), exc.reason))

        for path, root in self._documents.values():
            self._extract_generalizations(root, path)
        logger.info(f"Extracted {self.count_by_type(RelationshipType.GENERALIZATION)} generalizations")

        for path, root in self._documents.values():
            self._extract_element_relationships(root, path)
            self._extract_attribute_relationships(root, path)
        structural = sum(
            self.count_by_type(kind)
            for kind in (
                RelationshipType.ASSOCIATION,
                RelationshipType.AGGREGATION,
                RelationshipType.COMPOSITION,
            )
        )
        logger.info(f"Extracted {structural} association/aggregation/composition relationships")

        for path, root in self._documents.values():
            self._extract_geometry_relationships(root, path)
        logger.info(f"Extracted {self.count_by_type(RelationshipType.SPATIAL)} spatial relationships")

        for module_name, (path, root) in self._documents.items():
            self._extract_integrity_rules(root, module_name)
        logger.info(f"Parsed {len(self.integrity_rules)} referential integrity rules")

        if self.collisions:
            logger.info(
                f"{sum(self.collisions.values())} relationship overwrites across "
                f"{len(self.collisions)} ids"
            )
        return self.relationships

    def _load_module_file(self, path: Path) -> None:
        root = load_schema(path)
        namespace = root.attr("targetNamespace")
        if not namespace:
            raise PerFileExtractionError(path, "schema has no targetNamespace")
        module_name = path.stem
        self.module_namespaces[module_name] = namespace
        self._documents[module_name] = (path, root)
        logger.debug(f"Module namespace: {module_name} -> {namespace}")

    def _add(self, rel: RelationshipInfo) -> None:
        if rel.id in self.relationships:
            self.collisions[rel.id] = self.collisions.get(rel.id, 0) + 1
            logger.debug(f"Relationship {rel.id} overwritten by evidence from {rel.xsd_path}")
        self.relationships[rel.id] = rel
        logger.debug(f"{rel.type.value}: {rel.source} -> {rel.target} ({rel.id})")

    @staticmethod
    def _source_type(node: SchemaNode) -> Optional[str]:
        owner = node.enclosing("complexType")
        return owner.attr("name") if owner is not None else None

    def _extract_generalizations(self, root: SchemaNode, path: Path) -> None:
        for complex_type in root.descendants("complexType"):
            type_name = complex_type.attr("name")
            if not type_name:
                continue
            for extension in complex_type.descendants("extension"):
                base = local_name(extension.attr("base"))
                if not base:
                    continue
                self._add(
                    RelationshipInfo(
                        id=f"generalization_{type_name}_{base}",
                        name=f"{type_name}_extends_{base}",
                        type=RelationshipType.GENERALIZATION,
                        source=type_name,
                        target=base,
                        source_multiplicity=_MANY,
                        target_multiplicity=_ONE,
                        description=f"{type_name} is a subtype of {base}",
                        xsd_path=str(path),
                    )
                )

    def _extract_element_relationships(self, root: SchemaNode, path: Path) -> None:
        for element in root.descendants("element"):
            ref = element.attr("ref")
            if ref:
                self._process_element_reference(element, ref, path)
                continue
            name, type_name = element.attr("name"), element.attr("type")
            if name and type_name:
                self._process_typed_element(element, name, type_name, path)

    def _process_element_reference(self, element: SchemaNode, ref: str, path: Path) -> None:
        source = self._source_type(element)
        if not source:
            return
        target = local_name(ref)
        in_sequence = element.parent is not None and element.parent.local_name == "sequence"
        kind = RelationshipType.COMPOSITION if in_sequence else RelationshipType.ASSOCIATION
        self._add(
            RelationshipInfo(
                id=f"{kind.value}_{source}_{target}",
                name=f"{source}_has_{target}",
                type=kind,
                source=source,
                target=target,
                source_multiplicity=_ONE,
                target_multiplicity=Multiplicity.from_occurs(
                    element.attr("minOccurs"), element.attr("maxOccurs")
                ),
                xsd_path=str(path),
            )
        )

    def _process_typed_element(
        self, element: SchemaNode, name: str, type_name: str, path: Path
    ) -> None:
        if is_builtin_type(type_name):
            return
        source = self._source_type(element)
        if not source:
            return
        target = local_name(type_name)
        kind = classify_element_kind(name)
        self._add(
            RelationshipInfo(
                id=f"{kind.value}_{source}_{name}_{target}",
                name=f"{source}_{name}_{target}",
                type=kind,
                source=source,
                target=target,
                source_role=source.lower(),
                target_role=name,
                source_multiplicity=_ONE,
                target_multiplicity=Multiplicity.from_occurs(
                    element.attr("minOccurs"), element.attr("maxOccurs")
                ),
                xsd_path=str(path),
            )
        )

    def _extract_attribute_relationships(self, root: SchemaNode, path: Path) -> None:
        for attribute in root.descendants("attribute"):
            ref = attribute.attr("ref")
            if ref:
                if prefix_of(ref) == "xlink" and local_name(ref) == "href":
                    self._process_xlink_reference(attribute, path)
                else:
                    self._process_attribute_reference(attribute, ref, path)
                continue
            name, type_name = attribute.attr("name"), attribute.attr("type")
            if name and type_name and not is_builtin_type(type_name):
                self._process_typed_attribute(attribute, name, type_name, path)

    @staticmethod
    def _attribute_multiplicity(attribute: SchemaNode) -> Multiplicity:
        return _ONE if attribute.attr("use") == "required" else _OPTIONAL

    def _process_attribute_reference(self, attribute: SchemaNode, ref: str, path: Path) -> None:
        source = self._source_type(attribute)
        if not source:
            return
        target = local_name(ref)
        self._add(
            RelationshipInfo(
                id=f"association_{source}_{target}",
                name=f"{source}_refers_to_{target}",
                type=RelationshipType.ASSOCIATION,
                source=source,
                target=target,
                source_multiplicity=_ONE,
                target_multiplicity=self._attribute_multiplicity(attribute),
                xsd_path=str(path),
            )
        )

    def _process_typed_attribute(
        self, attribute: SchemaNode, name: str, type_name: str, path: Path
    ) -> None:
        source = self._source_type(attribute)
        if not source:
            return
        target = local_name(type_name)
        self._add(
            RelationshipInfo(
                id=f"association_{source}_{name}_{target}",
                name=f"{source}_{name}_{target}",
                type=RelationshipType.ASSOCIATION,
                source=source,
                target=target,
                source_role=source.lower(),
                target_role=name,
                source_multiplicity=_ONE,
                target_multiplicity=self._attribute_multiplicity(attribute),
                xsd_path=str(path),
            )
        )

    def _process_xlink_reference(self, attribute: SchemaNode, path: Path) -> None:
        source = self._source_type(attribute)
        if not source:
            return
        target = UNKNOWN_TARGET
        siblings = attribute.parent.children("attributeGroup") if attribute.parent else []
        for group in siblings:
            group_name = local_name(group.attr("ref")) or ""
            if group_name.endswith(PROPERTY_TYPE_SUFFIX) and group_name != PROPERTY_TYPE_SUFFIX:
                target = group_name[: -len(PROPERTY_TYPE_SUFFIX)]
                break
        self._add(
            RelationshipInfo(
                id=f"spatial_{source}_{target}",
                name=f"{source}_spatially_related_to_{target}",
                type=RelationshipType.SPATIAL,
                source=source,
                target=target,
                source_multiplicity=_ONE,
                target_multiplicity=_MANY,
                spatial_type=SpatialRelationType.REFERENCES,
                xsd_path=str(path),
            )
        )

    def _extract_geometry_relationships(self, root: SchemaNode, path: Path) -> None:
        for element in root.descendants("element"):
            name, type_name = element.attr("name"), element.attr("type")
            if not name or not type_name:
                continue
            if not any(marker in name for marker in GEOMETRY_ELEMENT_MARKERS):
                continue
            source = self._source_type(element)
            if not source:
                continue
            target = local_name(type_name)
            self._add(
                RelationshipInfo(
                    id=f"spatial_{source}_{name}_{target}",
                    name=f"{source}_has_geometry_{target}",
                    type=RelationshipType.SPATIAL,
                    source=source,
                    target=target,
                    source_role=source.lower(),
                    target_role=name,
                    source_multiplicity=_ONE,
                    target_multiplicity=_OPTIONAL,
                    spatial_type=spatial_type_for(name),
                    xsd_path=str(path),
                )
            )

    def _extract_integrity_rules(self, root: SchemaNode, module_name: str) -> None:
        for kind in ("key", "keyref"):
            for node in root.descendants(kind):
                rule = self._parse_integrity_rule(node, kind, module_name)
                if rule is None:
                    continue
                self.integrity_rules.append(rule)
                target = f" -> {rule.refer}" if rule.refer else ""
                logger.debug(
                    f"{kind} rule {rule.name}{target} ({rule.selector}, {','.join(rule.fields)})"
                )

    @staticmethod
    def _parse_integrity_rule(
        node: SchemaNode, kind: str, module_name: str
    ) -> Optional[ReferentialIntegrityRule]:
        name = node.attr("name")
        refer = node.attr("refer")
        if not name or (kind == "keyref" and not refer):
            return None
        selector = node.child("selector")
        fields = [f.attr("xpath") for f in node.children("field") if f.attr("xpath")]
        if selector is None or not selector.attr("xpath") or not fields:
            return None
        owner = node.enclosing("element")
        return ReferentialIntegrityRule(
            name=name,
            kind=kind,
            selector=selector.attr("xpath"),
            fields=fields,
            module=module_name,
            refer=local_name(refer) if refer else None,
            element=owner.attr("name") if owner is not None else None,
        )

    # ---------------- Queries ---------------- #

    def get_relationships(self) -> List[RelationshipInfo]:
        return list(self.relationships.values())

    def get_relationships_by_type(
        self, kind: Union[RelationshipType, str]
    ) -> List[RelationshipInfo]:
        kind = RelationshipType(kind)
        return [rel for rel in self.relationships.values() if rel.type == kind]

    def get_relationships_by_source(self, source: str) -> List[RelationshipInfo]:
        return [rel for rel in self.relationships.values() if rel.source == source]

    def get_relationships_by_target(self, target: str) -> List[RelationshipInfo]:
        return [rel for rel in self.relationships.values() if rel.target == target]

    def count_by_type(self, kind: Union[RelationshipType, str]) -> int:
        return len(self.get_relationships_by_type(kind))

    # ---------------- Module-level views ---------------- #

    def _require_model(self) -> ConceptualModel:
        if self.model is None:
            raise FatalConfigurationError(
                "Conceptual model not set; call set_conceptual_model() first"
            )
        return self.model

    def _module_for_class(self, class_name: str) -> Optional[str]:
        model = self._require_model()
        if model.registry is None:
            model.build_registry()
        return model.registry.module_of(class_name)

    def extract_module_relationships(self) -> Dict[str, List[Dict[str, str]]]:
        """Cross-module dependencies, associations and generalizations."""
        self._require_model()
        dependencies: List[Dict[str, str]] = []
        associations: List[Dict[str, str]] = []
        generalizations: List[Dict[str, str]] = []
        for rel in self.relationships.values():
            source_module = self._module_for_class(rel.source)
            target_module = self._module_for_class(rel.target)
            if not source_module or not target_module or source_module == target_module:
                continue
            entry = {"source": source_module, "target": target_module, "relationship": rel.name}
            if rel.type == RelationshipType.ASSOCIATION:
                associations.append(entry)
            elif rel.type == RelationshipType.GENERALIZATION:
                generalizations.append(entry)
            dependency = {"source": source_module, "target": target_module}
            if dependency not in dependencies:
                dependencies.append(dependency)
        return {
            "dependencies": dependencies,
            "cross_module_associations": associations,
            "cross_module_generalizations": generalizations,
        }

    def analyze_relationship_multiplicity(self) -> Dict[str, List[RelationshipInfo]]:
        summary: Dict[str, List[RelationshipInfo]] = {
            "one_to_one": [],
            "one_to_many": [],
            "many_to_one": [],
            "many_to_many": [],
        }
        for rel in self.relationships.values():
            summary[multiplicity_category(rel)].append(rel)
        return summary

    def create_module_relationship_graph(self, module_name: str) -> Optional[Dict[str, Any]]:
        """Node/edge graph of a module's classes and their relationships.

        Returns ``None`` when the module is not part of the conceptual model.
        """
        module = self._require_model().get_module(module_name)
        if module is None:
            return None
        nodes: List[Dict[str, Any]] = [
            {"id": module_name, "label": module_name, "type": "module", "is_main_module": True}
        ]
        edges: List[Dict[str, Any]] = []
        node_ids = {module_name}
        for cls in module.classes:
            if cls.name not in node_ids:
                nodes.append({"id": cls.name, "label": cls.name, "type": "class", "module": module_name})
                node_ids.add(cls.name)
            edges.append({"source": module_name, "target": cls.name, "type": "contains"})

        for rel in self.relationships.values():
            source_module = self._module_for_class(rel.source)
            target_module = self._module_for_class(rel.target)
            if module_name not in (source_module, target_module):
                continue
            for endpoint, endpoint_module in ((rel.source, source_module), (rel.target, target_module)):
                if endpoint not in node_ids:
                    nodes.append(
                        {
                            "id": endpoint,
                            "label": endpoint,
                            "type": "class",
                            "module": endpoint_module or "external",
                        }
                    )
                    node_ids.add(endpoint)
            edges.append(
                {"source": rel.source, "target": rel.target, "type": rel.type.value, "label": rel.name}
            )
        return {"nodes": nodes, "edges": edges}
