"""Index of the global declarations of every CityGML schema file.

The registry is a flat, name-keyed view over all ``*.xsd`` files in the
schema directory: top-level elements, complex types and simple types, each
with its documentation. It feeds the context assembler (schema elements and
types are context sources of their own) and the module/namespace lookups of
the REST layer.
"""

from __future__ import annotations

import logging
import re
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from .config import CORE_NAMESPACE, MODULE_NAMESPACES, get_available_schemas
from .errors import PerFileExtractionError
from .schema_node import SchemaNode, load_schema

logger = logging.getLogger(__name__)

_MODULE_NAMESPACE = re.compile(r"citygml/([a-zA-Z0-9]+)/3\.0")


@dataclass
class SchemaImport:
    namespace: str
    schema_location: str


@dataclass
class SchemaElement:
    name: str
    type: Optional[str] = None
    substitution_group: Optional[str] = None
    abstract: bool = False
    documentation: Optional[str] = None
    min_occurs: Optional[str] = None
    max_occurs: Optional[str] = None
    nillable: bool = False


@dataclass
class SchemaAttribute:
    name: Optional[str] = None
    ref: Optional[str] = None
    type: Optional[str] = None
    use: Optional[str] = None
    default: Optional[str] = None
    fixed: Optional[str] = None


@dataclass
class SchemaComplexType:
    name: str
    abstract: bool = False
    mixed: bool = False
    documentation: Optional[str] = None
    base: Optional[str] = None
    derivation: Optional[str] = None  # "extension" or "restriction"
    attributes: List[SchemaAttribute] = field(default_factory=list)
    sequence: List[SchemaElement] = field(default_factory=list)


@dataclass
class SchemaSimpleType:
    name: str
    documentation: Optional[str] = None
    base: Optional[str] = None
    enumerations: List[str] = field(default_factory=list)


@dataclass
class SchemaDocument:
    file_name: str
    target_namespace: str
    version: Optional[str] = None
    imports: List[SchemaImport] = field(default_factory=list)
    elements: List[SchemaElement] = field(default_factory=list)
    complex_types: List[SchemaComplexType] = field(default_factory=list)
    simple_types: List[SchemaSimpleType] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _element(node: SchemaNode) -> SchemaElement:
    return SchemaElement(
        name=node.attr("name") or "",
        type=node.attr("type"),
        substitution_group=node.attr("substitutionGroup"),
        abstract=node.attr("abstract") == "true",
        documentation=node.documentation() or None,
        min_occurs=node.attr("minOccurs"),
        max_occurs=node.attr("maxOccurs"),
        nillable=node.attr("nillable") == "true",
    )


def _attributes(node: SchemaNode) -> List[SchemaAttribute]:
    return [
        SchemaAttribute(
            name=a.attr("name"),
            ref=a.attr("ref"),
            type=a.attr("type"),
            use=a.attr("use"),
            default=a.attr("default"),
            fixed=a.attr("fixed"),
        )
        for a in node.children("attribute")
    ]


def _complex_type(node: SchemaNode) -> SchemaComplexType:
    complex_type = SchemaComplexType(
        name=node.attr("name") or "",
        abstract=node.attr("abstract") == "true",
        mixed=node.attr("mixed") == "true",
        documentation=node.documentation() or None,
        attributes=_attributes(node),
    )
    content = node.child("complexContent") or node.child("simpleContent")
    if content is not None:
        for derivation in ("extension", "restriction"):
            derived = content.child(derivation)
            if derived is None:
                continue
            complex_type.base = derived.attr("base")
            complex_type.derivation = derivation
            complex_type.attributes.extend(_attributes(derived))
            sequence = derived.child("sequence")
            if sequence is not None:
                complex_type.sequence = [_element(e) for e in sequence.children("element")]
    sequence = node.child("sequence")
    if sequence is not None:
        complex_type.sequence = [_element(e) for e in sequence.children("element")]
    return complex_type


def _simple_type(node: SchemaNode) -> SchemaSimpleType:
    restriction = node.child("restriction")
    return SchemaSimpleType(
        name=node.attr("name") or "",
        documentation=node.documentation() or None,
        base=restriction.attr("base") if restriction is not None else None,
        enumerations=[
            facet.attr("value")
            for facet in (restriction.children("enumeration") if restriction is not None else [])
            if facet.attr("value") is not None
        ],
    )


def load_schema_document(path: Union[str, Path]) -> SchemaDocument:
    """Parse the top-level declarations of one schema file.

    Raises:
        SchemaParseError: If the file cannot be parsed.
    """
    path = Path(path)
    root = load_schema(path)
    return SchemaDocument(
        file_name=path.name,
        target_namespace=root.attr("targetNamespace") or "",
        version=root.attr("version"),
        imports=[
            SchemaImport(imp.attr("namespace"), imp.attr("schemaLocation"))
            for imp in root.children("import")
            if imp.attr("namespace") and imp.attr("schemaLocation")
        ],
        elements=[_element(e) for e in root.children("element") if e.attr("name")],
        complex_types=[_complex_type(t) for t in root.children("complexType") if t.attr("name")],
        simple_types=[_simple_type(t) for t in root.children("simpleType") if t.attr("name")],
    )


def module_name_from_namespace(namespace: str) -> Optional[str]:
    """``http://www.opengis.net/citygml/building/3.0`` -> ``building``."""
    match = _MODULE_NAMESPACE.search(namespace)
    if match:
        return match.group(1)
    if namespace == CORE_NAMESPACE:
        return "core"
    return None


class SchemaRegistry:
    """Name-keyed index of the global declarations of many schema files."""

    def __init__(self) -> None:
        self.schemas: Dict[str, List[SchemaDocument]] = {}
        self.elements_by_name: Dict[str, List[SchemaElement]] = {}
        self.types_by_name: Dict[str, List[Union[SchemaComplexType, SchemaSimpleType]]] = {}
        self.module_to_namespace: Dict[str, str] = dict(MODULE_NAMESPACES)

    def add(self, document: SchemaDocument) -> None:
        self.schemas.setdefault(document.target_namespace, []).append(document)
        for element in document.elements:
            self.elements_by_name.setdefault(element.name, []).append(element)
        for schema_type in [*document.complex_types, *document.simple_types]:
            self.types_by_name.setdefault(schema_type.name, []).append(schema_type)
        module = module_name_from_namespace(document.target_namespace)
        if module:
            self.module_to_namespace[module] = document.target_namespace

    def namespace_for_module(self, module_name: str) -> Optional[str]:
        return self.module_to_namespace.get(module_name)

    def documents(self) -> List[SchemaDocument]:
        return [doc for docs in self.schemas.values() for doc in docs]


def load_all_schemas(paths: Union[str, Path, Iterable[Union[str, Path]]]) -> SchemaRegistry:
    """Build a registry from a schema directory or an explicit list of files.

    Files that cannot be parsed are logged and skipped.
    """
    if isinstance(paths, (str, Path)):
        paths = get_available_schemas(paths)
    registry = SchemaRegistry()
    for path in paths:
        try:
            registry.add(load_schema_document(path))
        except PerFileExtractionError as exc:
            logger.warning(f"Skipping schema for registry: {exc}")
    logger.info(
        f"Schema registry: {len(registry.documents())} documents, "
        f"{len(registry.elements_by_name)} element names, {len(registry.types_by_name)} type names"
    )
    return registry
