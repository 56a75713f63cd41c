"""Core data structures for the CityGML semantic model.

These dataclasses are produced by the extractors (concepts, objects,
attributes, relationships) and consumed by the context assembler, the REST
layer and the CLI. Like the rest of the package they carry no framework
dependencies so they can be cached, compared and serialized freely.

Overview:
        * ``ConceptualModel`` holds one ``Module`` per processed schema file.
          Each module owns ``ConceptClass`` records (named complexTypes) with
          their ``Attribute``, ``Association`` and ``Constraint`` lists, plus
          the module's ``Codelist`` and ``Enumeration`` value sets.
        * ``ClassRegistry`` is the global name -> class index built once per
          extraction run. Class names are looked up without a module
          qualifier, so the first definition of a name wins.
        * ``Multiplicity`` is the parsed form of a ``"min..max"`` cardinality
          string and also the multiplicity carried by ``RelationshipInfo``.
        * ``CityObject`` is the derived view over a class produced by the
          object classifier (geometry properties, LOD metadata, thematic
          attributes and the children back-reference list).

Typical construction (simplified)::

        from citygml_schema_api.models import Attribute, ConceptClass, Multiplicity

        function = Attribute(name="function", type="string", cardinality="1..1")
        building = ConceptClass(
                name="BuildingType",
                module="building",
                super_classes=["AbstractBuildingType"],
                attributes=[function],
        )
        Multiplicity.parse(function.cardinality).max   # -> 1
        payload = building.to_dict()
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

logger = logging.getLogger(__name__)

UNBOUNDED = "*"


@dataclass(frozen=True)
class Multiplicity:
    """Lower/upper bound pair; ``max`` is an int or the literal ``"*"``.

    Example:
        >>> Multiplicity.parse("0..*")
        Multiplicity(min=0, max='*')
        >>> str(Multiplicity(1, 1))
        '1..1'
    """

    min: int
    max: Union[int, str]

    @classmethod
    def parse(cls, cardinality: str) -> "Multiplicity":
        """Parse a ``"min..max"`` string (a bare ``"n"`` means ``n..n``).

        Raises:
            ValueError: If either bound is not an integer (or ``*`` for max).
        """
        text = cardinality.strip()
        if ".." in text:
            low, high = text.split("..", 1)
        else:
            low = high = text
        minimum = int(low)
        maximum: Union[int, str] = UNBOUNDED if high == UNBOUNDED else int(high)
        return cls(minimum, maximum)

    @classmethod
    def from_occurs(
        cls, min_occurs: Optional[str] = None, max_occurs: Optional[str] = None
    ) -> "Multiplicity":
        """Build from raw ``minOccurs``/``maxOccurs`` values (both default to 1)."""
        minimum = int(min_occurs) if min_occurs else 1
        if max_occurs == "unbounded":
            return cls(minimum, UNBOUNDED)
        return cls(minimum, int(max_occurs) if max_occurs else 1)

    @property
    def is_many(self) -> bool:
        return self.max == UNBOUNDED or int(self.max) > 1

    def __str__(self) -> str:
        return f"{self.min}..{self.max}"

    def to_dict(self) -> Dict[str, Any]:
        return {"min": self.min, "max": self.max}


def format_cardinality(min_occurs: Optional[str], max_occurs: Optional[str]) -> str:
    """Render ``minOccurs``/``maxOccurs`` as a cardinality string.

    Missing values default to ``"1"`` and ``unbounded`` becomes ``*``; the
    lower bound is kept verbatim.
    """
    low = min_occurs or "1"
    high = max_occurs or "1"
    if high == "unbounded":
        high = UNBOUNDED
    return f"{low}..{high}"


@dataclass
class Attribute:
    name: str
    type: str
    cardinality: str = "1..1"
    is_nillable: bool = False
    description: Optional[str] = None
    default_value: Optional[str] = None

    @property
    def multiplicity(self) -> Multiplicity:
        return Multiplicity.parse(self.cardinality)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Association:
    """Simplified same-pass association (``element[@ref]`` member).

    The relationship extractor produces the richer :class:`RelationshipInfo`
    from the raw schema trees; this record only mirrors what the concept
    pass sees on the class itself.
    """

    name: str
    target: str
    cardinality: str = "1..1"
    role: Optional[str] = None
    description: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Constraint:
    name: str
    description: str
    expression: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CodelistValue:
    code: str
    description: Optional[str] = None


@dataclass
class Codelist:
    """Open value set (named simpleType with enumeration facets)."""

    name: str
    description: str = ""
    values: List[CodelistValue] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class EnumerationValue:
    name: str
    description: Optional[str] = None


@dataclass
class Enumeration:
    """Closed value set, recognised by its name suffix (e.g. ``EnumBase``)."""

    name: str
    description: str = ""
    values: List[EnumerationValue] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ConceptClass:
    """One named complexType of a module.

    Attributes:
        name: complexType name (unique within its module).
        module: Owning module name.
        description: First documentation block of the type.
        is_abstract: ``abstract="true"`` on the type.
        super_classes: Local names of ``extension/@base`` references.
        attributes: Named and typed element/attribute members.
        associations: ``element[@ref]`` members.
        constraints: Documentation texts phrased as constraints.
    """

    name: str
    module: str
    description: str = ""
    is_abstract: bool = False
    super_classes: List[str] = field(default_factory=list)
    attributes: List[Attribute] = field(default_factory=list)
    associations: List[Association] = field(default_factory=list)
    constraints: List[Constraint] = field(default_factory=list)
    stereotype: Optional[str] = None

    def get_attribute(self, name: str) -> Optional[Attribute]:
        for attribute in self.attributes:
            if attribute.name == name:
                return attribute
        return None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Module:
    """Contribution of one schema file to the conceptual model."""

    name: str
    namespace: str = ""
    description: str = ""
    classes: List[ConceptClass] = field(default_factory=list)
    codelists: List[Codelist] = field(default_factory=list)
    enumerations: List[Enumeration] = field(default_factory=list)
    dependencies: List[str] = field(default_factory=list)

    def get_class(self, name: str) -> Optional[ConceptClass]:
        for cls in self.classes:
            if cls.name == name:
                return cls
        return None

    def to_dict(self, summary: bool = False) -> Dict[str, Any]:
        """Serialize the module.

        Args:
            summary: Replace nested records by their names (listing views).
        """
        if summary:
            return {
                "name": self.name,
                "namespace": self.namespace,
                "description": self.description,
                "classes": [c.name for c in self.classes],
                "codelists": [c.name for c in self.codelists],
                "enumerations": [e.name for e in self.enumerations],
                "dependencies": list(self.dependencies),
            }
        return asdict(self)


class ClassRegistry:
    """Global class-name index for one extraction run.

    CityGML references classes by bare name across modules, so names are
    assumed unique. When they are not, the first registered definition is
    kept and later ones are reported at debug level.
    """

    def __init__(self) -> None:
        self._classes: Dict[str, ConceptClass] = {}
        self.duplicates: List[Tuple[str, str]] = []

    @classmethod
    def from_modules(cls, modules: List[Module]) -> "ClassRegistry":
        registry = cls()
        for module in modules:
            for concept in module.classes:
                registry.register(concept)
        return registry

    def register(self, concept: ConceptClass) -> bool:
        existing = self._classes.get(concept.name)
        if existing is not None:
            self.duplicates.append((concept.name, concept.module))
            logger.debug(
                f"Class {concept.name} from {concept.module} already registered "
                f"by {existing.module}; keeping first definition"
            )
            return False
        self._classes[concept.name] = concept
        return True

    def get(self, name: str) -> Optional[ConceptClass]:
        return self._classes.get(name)

    def module_of(self, name: str) -> Optional[str]:
        concept = self._classes.get(name)
        return concept.module if concept else None

    def names(self) -> List[str]:
        return list(self._classes)

    def __contains__(self, name: object) -> bool:
        return name in self._classes

    def __len__(self) -> int:
        return len(self._classes)

    def __iter__(self) -> Iterator[ConceptClass]:
        return iter(self._classes.values())


@dataclass
class ConceptualModel:
    """All modules of one extraction run plus the global class registry."""

    version: str = "3.0.0"
    modules: List[Module] = field(default_factory=list)
    registry: Optional[ClassRegistry] = field(default=None, repr=False, compare=False)

    def build_registry(self) -> ClassRegistry:
        self.registry = ClassRegistry.from_modules(self.modules)
        return self.registry

    def get_module(self, name: str) -> Optional[Module]:
        for module in self.modules:
            if module.name == name:
                return module
        return None

    def iter_classes(self) -> Iterator[Tuple[Module, ConceptClass]]:
        for module in self.modules:
            for cls in module.classes:
                yield module, cls

    def find_class(self, name: str) -> Optional[ConceptClass]:
        """Resolve a bare class name through the registry."""
        if self.registry is None:
            self.build_registry()
        return self.registry.get(name)

    def find_codelist(self, name: str) -> Optional[Codelist]:
        for module in self.modules:
            for codelist in module.codelists:
                if codelist.name == name:
                    return codelist
        return None

    def find_enumeration(self, name: str) -> Optional[Enumeration]:
        for module in self.modules:
            for enumeration in module.enumerations:
                if enumeration.name == name:
                    return enumeration
        return None

    def search(self, query: str, module: Optional[str] = None) -> List[Dict[str, Any]]:
        """Classes, codelists and enumerations matching ``query``.

        Case-insensitive substring match on name or description, in module
        order. ``module`` restricts the search to one module.
        """
        needle = query.lower()
        results: List[Dict[str, Any]] = []
        for mod in self.modules:
            if module is not None and mod.name != module:
                continue
            groups = (
                ("class", mod.classes),
                ("codelist", mod.codelists),
                ("enumeration", mod.enumerations),
            )
            for kind, records in groups:
                for record in records:
                    if needle in record.name.lower() or needle in (record.description or "").lower():
                        results.append(
                            {
                                "type": kind,
                                "module": mod.name,
                                "name": record.name,
                                "description": record.description,
                            }
                        )
        return results

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "modules": [module.to_dict() for module in self.modules],
        }


@dataclass
class ConceptSection:
    """Link between a model concept and a documentation section."""

    id: str
    title: str
    content: str
    concept_name: str
    concept_type: str  # "class", "codelist" or "enumeration"
    module_name: str
    summary: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------------------
# Object view
# ---------------------------------------------------------------------------


@dataclass
class GeometryProperty:
    name: str
    type: str
    cardinality: str
    role: Optional[str] = None
    lod: Optional[int] = None


@dataclass
class LodAttribute:
    name: str
    level: int
    type: str
    role: Optional[str] = None


@dataclass
class LodInfo:
    min_lod: int = 0
    max_lod: int = 0
    lod_attributes: List[LodAttribute] = field(default_factory=list)

    @property
    def levels(self) -> List[int]:
        return sorted({attr.level for attr in self.lod_attributes})


@dataclass
class GeometryRepresentation:
    type: str
    lod_level: int
    multiplicity: str
    dimension: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CityObject:
    """Class judged to represent a real-world feature.

    ``children`` is filled by a second pass over the complete object map and
    mirrors ``super_classes``: C is listed under P iff P is one of C's
    declared super classes.
    """

    name: str
    module: str
    is_abstract: bool = False
    super_classes: List[str] = field(default_factory=list)
    attributes: List[Attribute] = field(default_factory=list)
    associations: List[Association] = field(default_factory=list)
    geometry_properties: List[GeometryProperty] = field(default_factory=list)
    lod_info: LodInfo = field(default_factory=LodInfo)
    thematic_attributes: List[Attribute] = field(default_factory=list)
    children: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------------------
# Relationships
# ---------------------------------------------------------------------------


class RelationshipType(str, Enum):
    ASSOCIATION = "association"
    AGGREGATION = "aggregation"
    COMPOSITION = "composition"
    GENERALIZATION = "generalization"
    SPATIAL = "spatial"
    TEMPORAL = "temporal"
    THEMATIC = "thematic"


class RelationshipDirection(str, Enum):
    UNIDIRECTIONAL = "unidirectional"
    BIDIRECTIONAL = "bidirectional"


class SpatialRelationType(str, Enum):
    CONTAINS = "contains"
    WITHIN = "within"
    TOUCHES = "touches"
    OVERLAPS = "overlaps"
    DISJOINT = "disjoint"
    EQUALS = "equals"
    CROSSES = "crosses"
    INTERSECTS = "intersects"
    REFERENCES = "references"


@dataclass
class RelationshipInfo:
    """One inferred edge between two schema types.

    ``id`` is a pure function of kind, endpoints and (where applicable) the
    member name, so it doubles as the de-duplication key of the
    relationship map.
    """

    id: str
    name: str
    type: RelationshipType
    source: str
    target: str
    source_multiplicity: Multiplicity
    target_multiplicity: Multiplicity
    direction: RelationshipDirection = RelationshipDirection.UNIDIRECTIONAL
    source_role: Optional[str] = None
    target_role: Optional[str] = None
    description: Optional[str] = None
    spatial_type: Optional[SpatialRelationType] = None
    xsd_path: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "source": self.source,
            "target": self.target,
            "source_role": self.source_role,
            "target_role": self.target_role,
            "source_multiplicity": self.source_multiplicity.to_dict(),
            "target_multiplicity": self.target_multiplicity.to_dict(),
            "direction": self.direction.value,
            "description": self.description,
            "spatial_type": self.spatial_type.value if self.spatial_type else None,
            "xsd_path": self.xsd_path,
        }


@dataclass
class ReferentialIntegrityRule:
    """Parsed ``xs:key`` / ``xs:keyref`` declaration (audit only)."""

    name: str
    kind: str  # "key" or "keyref"
    selector: str
    fields: List[str]
    module: str
    refer: Optional[str] = None
    element: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------------------
# Encoding collaborators (optional context sources)
# ---------------------------------------------------------------------------


@dataclass
class EncodingRule:
    id: str
    name: str
    description: str = ""
    applies_to: List[str] = field(default_factory=list)
    examples: List[str] = field(default_factory=list)


@dataclass
class Example:
    id: str
    title: str
    code: str = ""
    language: str = "XML"
    description: Optional[str] = None
    related_classes: List[str] = field(default_factory=list)
    related_rules: List[str] = field(default_factory=list)


@dataclass
class EncodingModel:
    """Encoding rules and examples fed to the context assembler."""

    version: str = "3.0.0"
    encoding_type: str = "GML"
    namespaces: Dict[str, str] = field(default_factory=dict)
    encoding_rules: List[EncodingRule] = field(default_factory=list)
    examples: List[Example] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EncodingModel":
        """Build from a JSON document (``encoding_rules``/``examples`` lists).

        Raises:
            ValueError: If a rule has no ``name`` or an example no ``title``.
        """
        try:
            rules = [
                EncodingRule(
                    id=str(item.get("id", item["name"])),
                    name=item["name"],
                    description=item.get("description", ""),
                    applies_to=list(item.get("applies_to", [])),
                    examples=list(item.get("examples", [])),
                )
                for item in data.get("encoding_rules", [])
            ]
            examples = [
                Example(
                    id=str(item.get("id", item["title"])),
                    title=item["title"],
                    code=item.get("code", ""),
                    language=item.get("language", "XML"),
                    description=item.get("description"),
                    related_classes=list(item.get("related_classes", [])),
                    related_rules=list(item.get("related_rules", [])),
                )
                for item in data.get("examples", [])
            ]
        except (KeyError, TypeError, AttributeError) as exc:
            raise ValueError(f"Malformed encoding document: missing or invalid {exc}") from exc
        return cls(
            version=data.get("version", "3.0.0"),
            encoding_type=data.get("encoding_type", "GML"),
            namespaces=dict(data.get("namespaces", {})),
            encoding_rules=rules,
            examples=examples,
        )
