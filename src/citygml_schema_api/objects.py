"""Classify conceptual-model classes into CityGML city objects.

A class is a city object when one of its declared super classes contains a
foundational marker (``AbstractCityObject``, ``AbstractSpace``...) or, as a
fallback for classes whose base lives in an unprocessed module, when its own
name contains a domain term (``Building``, ``Bridge``, ``Road``...).

For every city object the classifier derives:

* geometry properties: members whose type matches the geometry vocabulary
* LOD information: members named ``lod<N>...`` with the numeric level range
* thematic attributes: attributes that are neither geometric nor LOD tagged
* children: filled in a second pass over the finished object map

Example:
        from citygml_schema_api.concepts import ConceptExtractor
        from citygml_schema_api.objects import ObjectClassifier

        model = ConceptExtractor("xsds").extract_all_modules()
        classifier = ObjectClassifier(model)
        objects = classifier.extract_all_city_objects()
        print(objects["BuildingType"].lod_info.max_lod)
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from .errors import FatalConfigurationError
from .models import (
    Attribute,
    CityObject,
    ConceptClass,
    ConceptualModel,
    GeometryProperty,
    GeometryRepresentation,
    LodAttribute,
    LodInfo,
)
from .vocabulary import (
    CITY_OBJECT_BASE_MARKERS,
    CITY_OBJECT_NAME_PATTERNS,
    GEOMETRY_DIMENSIONS,
    GEOMETRY_TYPE_PATTERNS,
    LOD_PATTERN,
)

logger = logging.getLogger(__name__)


def is_geometry_type(type_name: Optional[str]) -> bool:
    return bool(type_name) and any(p in type_name for p in GEOMETRY_TYPE_PATTERNS)


def extract_lod_level(name: str) -> int:
    """Level encoded as ``lod<N>`` in a member name, or -1."""
    match = LOD_PATTERN.search(name)
    return int(match.group(1)) if match else -1


def infer_geometry_dimension(geometry_type: str) -> int:
    """Topological dimension implied by a geometry type name (-1 if unknown)."""
    for patterns, dimension in GEOMETRY_DIMENSIONS:
        if any(p in geometry_type for p in patterns):
            return dimension
    return -1


def build_object_hierarchy(
    objects: Dict[str, CityObject],
    classes: Optional[Iterable[ConceptClass]] = None,
) -> None:
    """Populate ``children`` from the declared super classes.

    Runs over the completed object map. ``classes`` is every class of the
    model (the objects themselves when omitted), so a plain class extending
    a city object is listed among its children too.
    """
    children: Dict[str, List[str]] = {name: [] for name in objects}
    candidates = classes if classes is not None else objects.values()
    for cls in candidates:
        for parent in cls.super_classes:
            if parent in children and cls.name not in children[parent]:
                children[parent].append(cls.name)
    for name, obj in objects.items():
        obj.children = children[name]


class ObjectClassifier:
    """Derive :class:`CityObject` views from a conceptual model.

    Args:
        model: Conceptual model; may also be supplied later through
            :meth:`set_conceptual_model`.
        module_filter: Restrict classification to these module names.
            ``None`` scans every module.
    """

    def __init__(
        self,
        model: Optional[ConceptualModel] = None,
        module_filter: Optional[Iterable[str]] = None,
    ) -> None:
        self.model = model
        self.module_filter = set(module_filter) if module_filter is not None else None

    def set_conceptual_model(self, model: ConceptualModel) -> None:
        self.model = model

    def _require_model(self) -> ConceptualModel:
        if self.model is None:
            raise FatalConfigurationError(
                "Conceptual model not set; call set_conceptual_model() first"
            )
        return self.model

    def _modules(self):
        model = self._require_model()
        for module in model.modules:
            if self.module_filter is None or module.name in self.module_filter:
                yield module

    # ---------------- Classification ---------------- #

    def extract_all_city_objects(self) -> Dict[str, CityObject]:
        """Return every city object keyed by class name."""
        objects: Dict[str, CityObject] = {}
        for module in self._modules():
            for cls in module.classes:
                if not self.is_city_object(cls):
                    continue
                if cls.name in objects:
                    logger.debug(f"City object {cls.name} already classified; keeping first")
                    continue
                objects[cls.name] = self.to_city_object(cls)
        model = self._require_model()
        registry = model.registry if model.registry is not None else model.build_registry()
        build_object_hierarchy(objects, registry)
        logger.info(f"Classified {len(objects)} city objects")
        return objects

    def to_city_object(self, cls: ConceptClass) -> CityObject:
        return CityObject(
            name=cls.name,
            module=cls.module,
            is_abstract=cls.is_abstract,
            super_classes=list(cls.super_classes),
            attributes=list(cls.attributes),
            associations=list(cls.associations),
            geometry_properties=self.extract_geometry_properties(cls),
            lod_info=self.extract_lod_info(cls),
            thematic_attributes=self.extract_thematic_attributes(cls),
        )

    @staticmethod
    def is_city_object(cls: ConceptClass) -> bool:
        for super_class in cls.super_classes:
            if any(marker in super_class for marker in CITY_OBJECT_BASE_MARKERS):
                return True
        return any(pattern in cls.name for pattern in CITY_OBJECT_NAME_PATTERNS)

    @staticmethod
    def extract_geometry_properties(cls: ConceptClass) -> List[GeometryProperty]:
        properties = []
        for attribute in cls.attributes:
            if is_geometry_type(attribute.type):
                level = extract_lod_level(attribute.name)
                properties.append(
                    GeometryProperty(
                        name=attribute.name,
                        type=attribute.type,
                        cardinality=attribute.cardinality,
                        lod=level if level > -1 else None,
                    )
                )
        for association in cls.associations:
            if is_geometry_type(association.target):
                level = extract_lod_level(association.name)
                properties.append(
                    GeometryProperty(
                        name=association.name,
                        type=association.target,
                        cardinality=association.cardinality,
                        role=association.role,
                        lod=level if level > -1 else None,
                    )
                )
        return properties

    @staticmethod
    def extract_lod_info(cls: ConceptClass) -> LodInfo:
        lod_attributes: List[LodAttribute] = []
        for attribute in cls.attributes:
            level = extract_lod_level(attribute.name)
            if level > -1:
                lod_attributes.append(LodAttribute(attribute.name, level, attribute.type))
        for association in cls.associations:
            level = extract_lod_level(association.name)
            if level > -1:
                lod_attributes.append(
                    LodAttribute(association.name, level, association.target, association.role)
                )
        if not lod_attributes:
            return LodInfo()
        levels = [attr.level for attr in lod_attributes]
        return LodInfo(min_lod=min(levels), max_lod=max(levels), lod_attributes=lod_attributes)

    @staticmethod
    def extract_thematic_attributes(cls: ConceptClass) -> List[Attribute]:
        return [
            attribute
            for attribute in cls.attributes
            if extract_lod_level(attribute.name) == -1 and not is_geometry_type(attribute.type)
        ]

    # ---------------- Derived views ---------------- #

    def classify_objects_by_module(self) -> Dict[str, List[str]]:
        """Module name -> names of its city-object classes."""
        return {
            module.name: [cls.name for cls in module.classes if self.is_city_object(cls)]
            for module in self._modules()
        }

    def _find_class(self, name: str) -> Optional[ConceptClass]:
        return self._require_model().find_class(name)

    def extract_geometry_representations(self, class_name: str) -> List[GeometryRepresentation]:
        """Geometry representations (type, LOD, multiplicity, dimension) of a class."""
        cls = self._find_class(class_name)
        if cls is None:
            logger.warning(f"Class not found for geometry representations: {class_name}")
            return []
        members: List[tuple] = [(a.name, a.type, a.cardinality) for a in cls.attributes]
        members += [(a.name, a.target, a.cardinality) for a in cls.associations]
        representations = []
        for name, type_name, cardinality in members:
            if not is_geometry_type(type_name):
                continue
            level = extract_lod_level(name)
            representations.append(
                GeometryRepresentation(
                    type=type_name,
                    lod_level=max(level, 0),
                    multiplicity=cardinality,
                    dimension=infer_geometry_dimension(type_name),
                )
            )
        return representations

    def get_object_hierarchy(self, class_name: str) -> Optional[Dict[str, Any]]:
        """Ancestor chain (via the class registry) and direct children of a class.

        Returns ``None`` when the class is unknown.
        """
        cls = self._find_class(class_name)
        if cls is None:
            return None
        ancestors: List[str] = []
        seen = {cls.name}
        current: Optional[ConceptClass] = cls
        while current is not None and current.super_classes:
            parent_name = current.super_classes[0]
            if parent_name in seen:
                break
            ancestors.append(parent_name)
            seen.add(parent_name)
            current = self._find_class(parent_name)
        children = [
            other.name
            for _, other in self._require_model().iter_classes()
            if class_name in other.super_classes
        ]
        return {
            "name": cls.name,
            "module": cls.module,
            "is_city_object": self.is_city_object(cls),
            "ancestors": ancestors,
            "children": sorted(set(children)),
        }

    def analyze_lod_capabilities(self, class_name: str) -> Optional[Dict[str, Any]]:
        """Per-level summary of the LOD-tagged members of a class."""
        cls = self._find_class(class_name)
        if cls is None:
            return None
        lod_info = self.extract_lod_info(cls)
        by_level: Dict[int, List[Dict[str, Any]]] = {}
        for attr in lod_info.lod_attributes:
            by_level.setdefault(attr.level, []).append(
                {
                    "name": attr.name,
                    "type": attr.type,
                    "dimension": infer_geometry_dimension(attr.type),
                }
            )
        return {
            "name": cls.name,
            "min_lod": lod_info.min_lod,
            "max_lod": lod_info.max_lod,
            "levels": {str(level): members for level, members in sorted(by_level.items())},
        }
