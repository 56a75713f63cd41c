"""Query-driven context assembly over the CityGML knowledge model.

The :class:`ContextBuilder` scores every module, class, attribute and
association of the conceptual model (plus, when supplied, encoding rules,
examples and schema-registry elements/types) against a free-text query and
keeps the entities whose score reaches a threshold. Each kept entity becomes
a :class:`ContextItem` with a fixed per-type importance prior and links to
related items (class <-> module, attribute -> class...). Items are finally
ranked by ``importance * 0.5 + relevance * 0.5``.

Relevance between two strings (:func:`calculate_relevance`):

* 1.0 when equal ignoring case
* 0.8 when one contains the other
* otherwise the Jaccard similarity of their word sets (split on non-word
  characters, single-character tokens dropped); 0 if either set is empty

Example:
        from citygml_schema_api.context import ContextBuilder

        context = (
                ContextBuilder()
                .set_concept_model(model)
                .set_query("Building")
                .analyze_query(threshold=0.5)
                .build()
        )
        for item in context.items[:5]:
                print(item.type.value, item.name, round(item.relevance, 2))
"""

from __future__ import annotations

import copy
import logging
import re
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from .models import (
    Association,
    Attribute,
    ConceptClass,
    ConceptualModel,
    EncodingModel,
    EncodingRule,
    Example,
    Module,
)
from .schema_node import local_name
from .schema_registry import SchemaComplexType, SchemaElement, SchemaRegistry, SchemaSimpleType

logger = logging.getLogger(__name__)

SUMMARY_TOP_ITEMS = 5
_TOKEN_SPLIT = re.compile(r"\W+")
_WHITESPACE = re.compile(r"\s+")


class ContextItemType(str, Enum):
    MODULE = "module"
    CLASS = "class"
    ATTRIBUTE = "attribute"
    ASSOCIATION = "association"
    EXAMPLE = "example"
    SCHEMA = "schema"
    ELEMENT = "element"
    TYPE = "type"
    ENCODING_RULE = "encoding_rule"


IMPORTANCE: Dict[ContextItemType, int] = {
    ContextItemType.MODULE: 8,
    ContextItemType.CLASS: 7,
    ContextItemType.ASSOCIATION: 6,
    ContextItemType.ENCODING_RULE: 6,
    ContextItemType.ATTRIBUTE: 5,
    ContextItemType.ELEMENT: 5,
    ContextItemType.TYPE: 5,
    ContextItemType.EXAMPLE: 4,
}


def _tokens(text: str) -> set:
    return {token for token in _TOKEN_SPLIT.split(text) if len(token) > 1}


def calculate_relevance(first: Optional[str], second: Optional[str]) -> float:
    """Similarity of two strings in ``[0, 1]``; see the module docstring."""
    if not first or not second:
        return 0.0
    a, b = first.lower(), second.lower()
    if a == b:
        return 1.0
    if a in b or b in a:
        return 0.8
    words_a, words_b = _tokens(a), _tokens(b)
    if not words_a or not words_b:
        return 0.0
    common = words_a & words_b
    return len(common) / len(words_a | words_b)


def _slug(text: str) -> str:
    return _WHITESPACE.sub("_", text.lower())


@dataclass
class ContextItem:
    """Ranked projection of one model entity.

    ``related_items`` holds ids of other items of the same context; the
    links form a graph with expected cycles (class <-> module).
    """

    type: ContextItemType
    id: str
    name: str
    importance: int
    relevance: float
    content: Dict[str, Any] = field(default_factory=dict)
    description: Optional[str] = None
    related_items: List[str] = field(default_factory=list)

    @property
    def score(self) -> float:
        return self.importance * 0.5 + self.relevance * 0.5

    def link(self, item_id: str) -> None:
        if item_id not in self.related_items:
            self.related_items.append(item_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "importance": self.importance,
            "relevance": self.relevance,
            "content": self.content,
            "related_items": list(self.related_items),
        }


@dataclass
class Context:
    id: str
    timestamp: float
    query: Optional[str] = None
    items: List[ContextItem] = field(default_factory=list)
    total_items: int = 0
    sources: List[str] = field(default_factory=list)
    summary: Optional[str] = None

    def get_item(self, item_id: str) -> Optional[ContextItem]:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "query": self.query,
            "timestamp": self.timestamp,
            "items": [item.to_dict() for item in self.items],
            "metadata": {
                "total_items": self.total_items,
                "sources": list(self.sources),
                "summary": self.summary,
            },
        }


class ContextBuilder:
    """Fluent builder collecting ranked :class:`ContextItem` records.

    Args:
        context_id: Identifier of the produced context (default derived from
            the current time).
    """

    def __init__(self, context_id: Optional[str] = None) -> None:
        now = time.time()
        self._context = Context(id=context_id or f"ctx_{int(now * 1000)}", timestamp=now)
        self._index: Dict[str, ContextItem] = {}
        self._concept_model: Optional[ConceptualModel] = None
        self._encoding_model: Optional[EncodingModel] = None
        self._schema_registry: Optional[SchemaRegistry] = None

    def _add_source(self, name: str) -> None:
        if name not in self._context.sources:
            self._context.sources.append(name)

    def set_concept_model(self, model: ConceptualModel) -> "ContextBuilder":
        self._concept_model = model
        self._add_source("concept_model")
        return self

    def set_encoding_model(self, encoding: EncodingModel) -> "ContextBuilder":
        self._encoding_model = encoding
        self._add_source("encoding")
        return self

    def set_schema_registry(self, registry: SchemaRegistry) -> "ContextBuilder":
        self._schema_registry = registry
        self._add_source("schema")
        return self

    def set_query(self, query: str) -> "ContextBuilder":
        self._context.query = query
        return self

    def analyze_query(self, threshold: float = 0.5) -> "ContextBuilder":
        """Score every source against the query and keep items at or above ``threshold``."""
        query = self._context.query
        if not query:
            return self
        if self._concept_model is not None:
            self._analyze_concept_model(query, threshold)
        if self._encoding_model is not None:
            self._analyze_encoding_model(query, threshold)
        if self._schema_registry is not None:
            self._analyze_schema_registry(query, threshold)
        self._optimize()
        logger.debug(f"Context {self._context.id}: {len(self._context.items)} items for '{query}'")
        return self

    def build(self) -> Context:
        """Return a snapshot; later builder calls do not affect it."""
        self._context.total_items = len(self._context.items)
        return copy.deepcopy(self._context)

    # ---------------- Sources ---------------- #

    @staticmethod
    def _score(query: str, name: Optional[str], description: Optional[str]) -> float:
        return max(calculate_relevance(name, query), calculate_relevance(description, query))

    def _analyze_concept_model(self, query: str, threshold: float) -> None:
        for module in self._concept_model.modules:
            relevance = self._score(query, module.name, module.description)
            if relevance >= threshold:
                self._add_module(module, relevance)
            for cls in module.classes:
                relevance = self._score(query, cls.name, cls.description)
                if relevance >= threshold:
                    self._add_class(cls, module, relevance)
                for attribute in cls.attributes:
                    relevance = self._score(query, attribute.name, attribute.description)
                    if relevance >= threshold:
                        self._add_attribute(attribute, cls, module, relevance)
                for association in cls.associations:
                    relevance = self._score(query, association.name, association.description)
                    if relevance >= threshold:
                        self._add_association(association, cls, module, relevance)

    def _analyze_encoding_model(self, query: str, threshold: float) -> None:
        for rule in self._encoding_model.encoding_rules:
            relevance = self._score(query, rule.name, rule.description)
            if relevance >= threshold:
                self._add_rule(rule, relevance)
        for example in self._encoding_model.examples:
            relevance = self._score(query, example.title, example.description)
            if relevance >= threshold:
                self._add_example(example, relevance)

    def _analyze_schema_registry(self, query: str, threshold: float) -> None:
        for name, elements in self._schema_registry.elements_by_name.items():
            if calculate_relevance(name, query) < threshold:
                continue
            for element in elements:
                relevance = self._score(query, name, element.documentation)
                if relevance >= threshold:
                    self._add_element(element, name, relevance)
        for name, types in self._schema_registry.types_by_name.items():
            if calculate_relevance(name, query) < threshold:
                continue
            for schema_type in types:
                relevance = self._score(query, name, schema_type.documentation)
                if relevance >= threshold:
                    self._add_type(schema_type, name, relevance)

    # ---------------- Item construction ---------------- #

    def _append(self, item: ContextItem) -> bool:
        if item.id in self._index:
            return False
        self._index[item.id] = item
        self._context.items.append(item)
        return True

    def _backlink(self, owner_id: str, item_id: str) -> None:
        owner = self._index.get(owner_id)
        if owner is not None:
            owner.link(item_id)

    def _add_module(self, module: Module, relevance: float) -> None:
        self._append(
            ContextItem(
                type=ContextItemType.MODULE,
                id=f"module_{module.name.lower()}",
                name=module.name,
                description=module.description,
                importance=IMPORTANCE[ContextItemType.MODULE],
                relevance=relevance,
                content=module.to_dict(summary=True),
            )
        )

    def _add_class(self, cls: ConceptClass, module: Module, relevance: float) -> None:
        class_id = f"class_{cls.name.lower()}"
        module_id = f"module_{module.name.lower()}"
        added = self._append(
            ContextItem(
                type=ContextItemType.CLASS,
                id=class_id,
                name=cls.name,
                description=cls.description,
                importance=IMPORTANCE[ContextItemType.CLASS],
                relevance=relevance,
                content={
                    "name": cls.name,
                    "module": module.name,
                    "description": cls.description,
                    "is_abstract": cls.is_abstract,
                    "super_classes": list(cls.super_classes),
                    "attributes": [a.name for a in cls.attributes],
                    "associations": [a.name for a in cls.associations],
                },
                related_items=[module_id],
            )
        )
        if added:
            self._backlink(module_id, class_id)

    def _add_attribute(
        self, attribute: Attribute, cls: ConceptClass, module: Module, relevance: float
    ) -> None:
        class_id = f"class_{cls.name.lower()}"
        attribute_id = f"attribute_{cls.name.lower()}_{attribute.name.lower()}"
        content = attribute.to_dict()
        content.update({"class": cls.name, "module": module.name})
        added = self._append(
            ContextItem(
                type=ContextItemType.ATTRIBUTE,
                id=attribute_id,
                name=attribute.name,
                description=attribute.description,
                importance=IMPORTANCE[ContextItemType.ATTRIBUTE],
                relevance=relevance,
                content=content,
                related_items=[class_id],
            )
        )
        if added:
            self._backlink(class_id, attribute_id)

    def _add_association(
        self, association: Association, cls: ConceptClass, module: Module, relevance: float
    ) -> None:
        class_id = f"class_{cls.name.lower()}"
        association_id = f"association_{cls.name.lower()}_{association.name.lower()}"
        content = association.to_dict()
        content.update({"source": cls.name, "module": module.name})
        added = self._append(
            ContextItem(
                type=ContextItemType.ASSOCIATION,
                id=association_id,
                name=association.name,
                description=association.description,
                importance=IMPORTANCE[ContextItemType.ASSOCIATION],
                relevance=relevance,
                content=content,
                related_items=[class_id, f"class_{association.target.lower()}"],
            )
        )
        if added:
            self._backlink(class_id, association_id)

    def _add_rule(self, rule: EncodingRule, relevance: float) -> None:
        self._append(
            ContextItem(
                type=ContextItemType.ENCODING_RULE,
                id=f"rule_{_slug(rule.name)}",
                name=rule.name or "Unnamed Rule",
                description=rule.description,
                importance=IMPORTANCE[ContextItemType.ENCODING_RULE],
                relevance=relevance,
                content={
                    "id": rule.id,
                    "name": rule.name,
                    "description": rule.description,
                    "applies_to": list(rule.applies_to),
                    "examples": list(rule.examples),
                },
                related_items=list(dict.fromkeys(f"class_{c.lower()}" for c in rule.applies_to)),
            )
        )

    def _add_example(self, example: Example, relevance: float) -> None:
        self._append(
            ContextItem(
                type=ContextItemType.EXAMPLE,
                id=f"example_{_slug(example.title)}",
                name=example.title or "Unnamed Example",
                description=example.description,
                importance=IMPORTANCE[ContextItemType.EXAMPLE],
                relevance=relevance,
                content={
                    "id": example.id,
                    "title": example.title,
                    "code": example.code,
                    "language": example.language,
                    "related_classes": list(example.related_classes),
                },
                related_items=list(
                    dict.fromkeys(f"class_{c.lower()}" for c in example.related_classes)
                ),
            )
        )

    def _add_element(self, element: SchemaElement, name: str, relevance: float) -> None:
        related = []
        if element.type:
            related.append(f"type_{local_name(element.type).lower()}")
        self._append(
            ContextItem(
                type=ContextItemType.ELEMENT,
                id=f"element_{name.lower()}",
                name=name,
                description=element.documentation,
                importance=IMPORTANCE[ContextItemType.ELEMENT],
                relevance=relevance,
                content={
                    "name": name,
                    "type": element.type,
                    "substitution_group": element.substitution_group,
                    "abstract": element.abstract,
                },
                related_items=related,
            )
        )

    def _add_type(
        self,
        schema_type: Union[SchemaComplexType, SchemaSimpleType],
        name: str,
        relevance: float,
    ) -> None:
        is_complex = isinstance(schema_type, SchemaComplexType)
        related = []
        if is_complex and schema_type.base:
            related.append(f"type_{local_name(schema_type.base).lower()}")
        self._append(
            ContextItem(
                type=ContextItemType.TYPE,
                id=f"type_{name.lower()}",
                name=name,
                description=schema_type.documentation,
                importance=IMPORTANCE[ContextItemType.TYPE],
                relevance=relevance,
                content={"name": name, "is_complex": is_complex, "base": schema_type.base},
                related_items=related,
            )
        )

    # ---------------- Ranking ---------------- #

    def _optimize(self) -> None:
        self._context.items.sort(key=lambda item: item.score, reverse=True)
        self._context.total_items = len(self._context.items)
        self._context.summary = self._summarize()

    def _summarize(self) -> str:
        items = self._context.items
        if not items:
            return "No context items matched the query."
        top = items[:SUMMARY_TOP_ITEMS]
        kinds = list(dict.fromkeys(item.type.value for item in top))
        lead = top[0]
        suffix = f" {lead.type.value}" if lead.type in (ContextItemType.CLASS, ContextItemType.MODULE) else ""
        return (
            f"This context contains {len(items)} items; main item types: {', '.join(kinds)}. "
            f"Most relevant item: {lead.name}{suffix}."
        )
