"""Attribute classification and value-set lookups over the conceptual model.

Each attribute of a class falls into exactly one bucket, checked in this
order:

1. ``geometry``: the type name matches the geometry vocabulary
2. ``metadata``: the attribute name matches a metadata pattern
   (``creationDate``, ``validFrom``...)
3. ``codelist``: the type name contains the name of a known codelist
4. ``enumeration``: the type name contains the name of a known enumeration
5. ``basic``: everything else

Independently of its bucket an attribute is flagged ``constrained`` when
one of the class's constraint texts mentions its name. This is plain
substring matching, so false positives are expected.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .errors import FatalConfigurationError
from .models import (
    Attribute,
    CodelistValue,
    Codelist,
    ConceptClass,
    ConceptualModel,
    Constraint,
    Enumeration,
    EnumerationValue,
    Multiplicity,
)
from .objects import is_geometry_type
from .vocabulary import (
    METADATA_ATTRIBUTE_PATTERNS,
    REFERENTIAL_CONSTRAINT_KEYWORDS,
    TYPE_CONSTRAINT_KEYWORDS,
    VALUE_CONSTRAINT_KEYWORDS,
)

logger = logging.getLogger(__name__)


class AttributeCategory(str, Enum):
    GEOMETRY = "geometry"
    METADATA = "metadata"
    CODELIST = "codelist"
    ENUMERATION = "enumeration"
    BASIC = "basic"


def is_metadata_attribute(name: str) -> bool:
    return any(pattern in name for pattern in METADATA_ATTRIBUTE_PATTERNS)


@dataclass
class ClassifiedAttribute:
    """An attribute together with its bucket and any backing value set."""

    attribute: Attribute
    category: AttributeCategory
    value_set: Optional[str] = None
    constraints: List[Constraint] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.attribute.name

    def to_dict(self) -> Dict[str, Any]:
        data = self.attribute.to_dict()
        data["category"] = self.category.value
        if self.value_set is not None:
            data["value_set"] = self.value_set
        if self.constraints:
            data["constraints"] = [c.to_dict() for c in self.constraints]
        return data


@dataclass
class ClassAttributeSummary:
    class_name: str
    basic: List[ClassifiedAttribute] = field(default_factory=list)
    geometry: List[ClassifiedAttribute] = field(default_factory=list)
    metadata: List[ClassifiedAttribute] = field(default_factory=list)
    codelist: List[ClassifiedAttribute] = field(default_factory=list)
    enumeration: List[ClassifiedAttribute] = field(default_factory=list)
    constrained: List[ClassifiedAttribute] = field(default_factory=list)

    def bucket(self, category: AttributeCategory) -> List[ClassifiedAttribute]:
        return getattr(self, category.value)

    def category_of(self, attribute_name: str) -> Optional[AttributeCategory]:
        for category in AttributeCategory:
            if any(item.name == attribute_name for item in self.bucket(category)):
                return category
        return None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"class_name": self.class_name}
        for category in AttributeCategory:
            data[category.value] = [item.to_dict() for item in self.bucket(category)]
        data["constrained"] = [item.to_dict() for item in self.constrained]
        return data


class AttributeClassifier:
    """Classify attributes and answer cardinality / value-set queries.

    Every public operation needs a conceptual model; calling one without it
    raises :class:`FatalConfigurationError`.
    """

    def __init__(self, model: Optional[ConceptualModel] = None) -> None:
        self.model = model

    def set_conceptual_model(self, model: ConceptualModel) -> None:
        self.model = model

    def _require_model(self) -> ConceptualModel:
        if self.model is None:
            raise FatalConfigurationError(
                "Conceptual model not set; call set_conceptual_model() first"
            )
        return self.model

    def _codelists(self) -> List[Codelist]:
        return [c for module in self._require_model().modules for c in module.codelists]

    def _enumerations(self) -> List[Enumeration]:
        return [e for module in self._require_model().modules for e in module.enumerations]

    def classify_attribute(self, attribute: Attribute) -> Tuple[AttributeCategory, Optional[str]]:
        """Return the bucket of one attribute and the backing value set name."""
        if is_geometry_type(attribute.type):
            return AttributeCategory.GEOMETRY, None
        if is_metadata_attribute(attribute.name):
            return AttributeCategory.METADATA, None
        for codelist in self._codelists():
            if codelist.name in attribute.type:
                return AttributeCategory.CODELIST, codelist.name
        for enumeration in self._enumerations():
            if enumeration.name in attribute.type:
                return AttributeCategory.ENUMERATION, enumeration.name
        return AttributeCategory.BASIC, None

    def classify_class_attributes(self, cls: ConceptClass) -> ClassAttributeSummary:
        summary = ClassAttributeSummary(class_name=cls.name)
        for attribute in cls.attributes:
            category, value_set = self.classify_attribute(attribute)
            constraints = [c for c in cls.constraints if attribute.name in c.description]
            item = ClassifiedAttribute(attribute, category, value_set, constraints)
            summary.bucket(category).append(item)
            if constraints:
                summary.constrained.append(item)
        return summary

    def extract_all_attributes(self) -> Dict[str, ClassAttributeSummary]:
        """Class name -> attribute summary for every class of the model."""
        summaries: Dict[str, ClassAttributeSummary] = {}
        for _, cls in self._require_model().iter_classes():
            if cls.name not in summaries:
                summaries[cls.name] = self.classify_class_attributes(cls)
        return summaries

    def analyze_cardinality(self) -> Dict[str, List[Dict[str, str]]]:
        """Bucket every attribute as required/optional and, separately, multi-valued."""
        required: List[Dict[str, str]] = []
        optional: List[Dict[str, str]] = []
        multi_valued: List[Dict[str, str]] = []
        for _, cls in self._require_model().iter_classes():
            for attribute in cls.attributes:
                entry = {"class_name": cls.name, "attribute_name": attribute.name}
                cardinality = attribute.cardinality
                if cardinality[:1].isdigit() and cardinality[0] != "0":
                    required.append(entry)
                elif cardinality.startswith("0"):
                    optional.append(entry)
                upper = cardinality.split("..")[1] if ".." in cardinality else ""
                if upper == "*" or (upper.isdigit() and int(upper) > 1):
                    multi_valued.append({**entry, "max_occurs": upper})
        return {"required": required, "optional": optional, "multi_valued": multi_valued}

    def extract_metadata_attributes(self) -> Dict[str, List[Attribute]]:
        found: Dict[str, List[Attribute]] = {}
        for _, cls in self._require_model().iter_classes():
            metadata = [a for a in cls.attributes if is_metadata_attribute(a.name)]
            if metadata:
                found.setdefault(cls.name, metadata)
        return found

    def extract_all_codelists(self) -> List[Codelist]:
        return self._codelists()

    def extract_all_enumerations(self) -> List[Enumeration]:
        return self._enumerations()

    def get_codelist_values(self, codelist_name: str) -> List[CodelistValue]:
        codelist = self._require_model().find_codelist(codelist_name)
        return list(codelist.values) if codelist else []

    def get_enumeration_values(self, enumeration_name: str) -> List[EnumerationValue]:
        enumeration = self._require_model().find_enumeration(enumeration_name)
        return list(enumeration.values) if enumeration else []

    def get_attribute_cardinality(
        self, class_name: str, attribute_name: str
    ) -> Optional[Multiplicity]:
        cls = self._require_model().find_class(class_name)
        if cls is None:
            return None
        attribute = cls.get_attribute(attribute_name)
        return attribute.multiplicity if attribute else None

    def analyze_attribute_constraints(self) -> Dict[str, List[Dict[str, str]]]:
        """Group constraint texts into value, type and referential constraints.

        A constraint lands in the first group whose keywords its lowercased
        text contains; texts matching no group are left out.
        """
        groups: Dict[str, List[Dict[str, str]]] = {"value": [], "type": [], "referential": []}
        keyword_table = (
            ("value", VALUE_CONSTRAINT_KEYWORDS),
            ("type", TYPE_CONSTRAINT_KEYWORDS),
            ("referential", REFERENTIAL_CONSTRAINT_KEYWORDS),
        )
        for _, cls in self._require_model().iter_classes():
            for constraint in cls.constraints:
                text = constraint.description.lower()
                for group, keywords in keyword_table:
                    if any(keyword in text for keyword in keywords):
                        groups[group].append(
                            {
                                "class_name": cls.name,
                                "constraint_name": constraint.name,
                                "description": constraint.description,
                            }
                        )
                        break
        return groups

    def attribute_type_distribution(self) -> Dict[str, int]:
        """Attribute type name -> number of attributes declared with it."""
        counts = Counter(
            attribute.type
            for _, cls in self._require_model().iter_classes()
            for attribute in cls.attributes
        )
        return dict(counts.most_common())
