"""Extract the CityGML conceptual model from the module XSD files.

The extractor starts at the root schema (``CityGML.xsd``), follows its
``import`` declarations and turns every imported module file into a
:class:`~citygml_schema_api.models.Module`:

* every named ``complexType`` becomes a :class:`ConceptClass`
* named and typed ``element``/``attribute`` members become attributes, with
  cardinality taken from ``minOccurs``/``maxOccurs`` (elements) or ``use``
  (attributes)
* ``element[@ref]`` members become simplified associations
* ``extension/@base`` gives the declared super classes
* named ``simpleType``s with enumeration facets become codelists, or
  enumerations when the name carries an enumeration suffix

Failure policy: a missing or unreadable root schema raises
:class:`FatalConfigurationError`; a module file that cannot be located or
parsed is logged and skipped, so the returned model may be partial.

Typical usage:
        from citygml_schema_api.concepts import ConceptExtractor

        extractor = ConceptExtractor("xsds")
        model = extractor.extract_all_modules()
        for module in model.modules:
                print(module.name, len(module.classes))

        building = model.find_class("BuildingType")
"""

from __future__ import annotations

import logging
from collections import deque
from pathlib import Path
from typing import Deque, Dict, Iterator, List, Optional, Set, Tuple, Union

from .config import DEFAULT_ROOT_SCHEMA, ExtractorConfig, find_schema_for_module
from .errors import FatalConfigurationError, PerFileExtractionError, SchemaParseError
from .models import (
    Association,
    Attribute,
    Codelist,
    CodelistValue,
    ConceptClass,
    ConceptSection,
    ConceptualModel,
    Constraint,
    Enumeration,
    EnumerationValue,
    Module,
    format_cardinality,
)
from .schema_node import SchemaNode, load_schema, local_name
from .vocabulary import CONSTRAINT_KEYWORDS, ENUMERATION_SUFFIXES

logger = logging.getLogger(__name__)

# Containers walked when collecting the members of a complexType. Local
# elements are never entered, so anonymous nested types stay out.
_CONTENT_CONTAINERS = {
    "sequence",
    "choice",
    "all",
    "complexContent",
    "simpleContent",
    "extension",
    "restriction",
}


def module_name_from_location(schema_location: str) -> str:
    """``../building/3.0/building.xsd`` -> ``building``."""
    name = schema_location.replace("\\", "/").rstrip("/").split("/")[-1]
    return name[:-4] if name.lower().endswith(".xsd") else name


def iter_members(complex_type: SchemaNode) -> Iterator[SchemaNode]:
    """Yield the element/attribute members of a complexType's content model."""
    for node in complex_type.children():
        if node.local_name in ("element", "attribute"):
            yield node
        elif node.local_name in _CONTENT_CONTAINERS:
            yield from iter_members(node)


def is_enumeration_name(name: str) -> bool:
    return any(name.endswith(suffix) for suffix in ENUMERATION_SUFFIXES)


def is_constraint_text(text: str) -> bool:
    return any(keyword in text for keyword in CONSTRAINT_KEYWORDS)


class ConceptExtractor:
    """Build a :class:`ConceptualModel` from a directory of CityGML XSDs.

    Instances keep per-run state (processed files, collected modules) and
    must not be shared between concurrent extractions; construct a fresh
    extractor per logical request.

    Args:
        xsd_base_path: Directory holding the root schema and module files.
        root_schema: Root schema file name relative to ``xsd_base_path``.
        config: Optional :class:`ExtractorConfig`; only
            ``follow_transitive_imports`` is consulted here.
    """

    def __init__(
        self,
        xsd_base_path: Union[str, Path],
        root_schema: str = DEFAULT_ROOT_SCHEMA,
        config: Optional[ExtractorConfig] = None,
    ) -> None:
        self.xsd_base_path = Path(xsd_base_path)
        self.root_schema = root_schema
        self.config = config or ExtractorConfig(
            xsd_dir=self.xsd_base_path, root_schema=root_schema
        )
        self.model: Optional[ConceptualModel] = None
        self.module_paths: Dict[str, Path] = {}
        self.skipped: List[Tuple[str, str]] = []

    @property
    def root_schema_path(self) -> Path:
        return self.xsd_base_path / self.root_schema

    def extract_all_modules(self) -> ConceptualModel:
        """Process every module imported by the root schema.

        Returns:
            The conceptual model with its class registry attached.

        Raises:
            FatalConfigurationError: If the root schema is missing or cannot
                be parsed.
        """
        root_path = self.root_schema_path
        if not root_path.is_file():
            raise FatalConfigurationError(f"Root schema not found: {root_path}")
        try:
            root = load_schema(root_path)
        except SchemaParseError as exc:
            raise FatalConfigurationError(f"Root schema unreadable: {exc}") from exc

        logger.info(f"Extracting CityGML modules from {root_path}")
        model = ConceptualModel()
        self.module_paths = {}
        self.skipped = []
        visited: Set[Path] = {root_path.resolve()}
        queue: Deque[Tuple[str, Path]] = deque(
            (location, root_path.parent) for location in self._import_locations(root)
        )

        while queue:
            location, base_dir = queue.popleft()
            name = module_name_from_location(location)
            try:
                path = self.resolve_module_path(name, location, base_dir)
            except PerFileExtractionError as exc:
                self._skip(name, exc)
                continue
            resolved = path.resolve()
            if resolved in visited:
                logger.debug(f"Module file already processed, skipping import: {path}")
                continue
            visited.add(resolved)

            try:
                schema = load_schema(path)
            except PerFileExtractionError as exc:
                self._skip(name, exc)
                continue

            module = self.build_module(name, schema)
            model.modules.append(module)
            self.module_paths[name] = path
            logger.debug(
                f"Module {name}: {len(module.classes)} classes, "
                f"{len(module.codelists)} codelists, {len(module.enumerations)} enumerations"
            )

            if self.config.follow_transitive_imports:
                queue.extend(
                    (nested, path.parent) for nested in self._import_locations(schema)
                )

        registry = model.build_registry()
        if registry.duplicates:
            logger.debug(f"{len(registry.duplicates)} duplicate class names across modules")
        logger.info(
            f"Extracted {len(model.modules)} modules with {len(registry)} classes "
            f"({len(self.skipped)} skipped)"
        )
        self.model = model
        return model

    def resolve_module_path(self, module_name: str, schema_location: str, base_dir: Path) -> Path:
        """Locate a module file.

        The ``schemaLocation``-relative path is tried first, then a
        case-insensitive substring match of the module name against the
        ``*.xsd`` files of the base directory.

        Raises:
            PerFileExtractionError: If no candidate file exists.
        """
        if "://" not in schema_location:
            candidate = base_dir / schema_location
            if candidate.is_file():
                return candidate
        fallback = find_schema_for_module(module_name, self.xsd_base_path)
        if fallback is not None:
            logger.debug(f"Resolved module {module_name} by name match: {fallback}")
            return fallback
        raise PerFileExtractionError(
            base_dir / schema_location, f"no schema file found for module '{module_name}'"
        )

    def _skip(self, name: str, exc: PerFileExtractionError) -> None:
        logger.warning(f"Skipping module {name}: {exc}")
        self.skipped.append((name, str(exc)))

    @staticmethod
    def _import_locations(schema: SchemaNode) -> List[str]:
        return [
            imp.attr("schemaLocation")
            for imp in schema.children("import")
            if imp.attr("schemaLocation")
        ]

    # ---------------- Module construction ---------------- #

    def build_module(self, name: str, schema: SchemaNode) -> Module:
        """Turn one parsed module schema into a :class:`Module`."""
        codelists, enumerations = self.extract_value_sets(schema)
        return Module(
            name=name,
            namespace=schema.attr("targetNamespace") or "",
            description=schema.documentation(deep=True),
            classes=self.extract_classes(schema, name),
            codelists=codelists,
            enumerations=enumerations,
            dependencies=self.extract_dependencies(schema),
        )

    def extract_classes(self, schema: SchemaNode, module_name: str) -> List[ConceptClass]:
        classes = []
        for complex_type in schema.descendants("complexType"):
            type_name = complex_type.attr("name")
            if not type_name:
                continue
            classes.append(
                ConceptClass(
                    name=type_name,
                    module=module_name,
                    description=complex_type.documentation(),
                    is_abstract=complex_type.attr("abstract") == "true",
                    super_classes=self.extract_super_classes(complex_type),
                    attributes=self.extract_attributes(complex_type),
                    associations=self.extract_associations(complex_type),
                    constraints=self.extract_constraints(complex_type),
                )
            )
        return classes

    def extract_attributes(self, complex_type: SchemaNode) -> List[Attribute]:
        attributes = []
        for member in iter_members(complex_type):
            name = member.attr("name")
            type_name = member.attr("type")
            if not name or not type_name:
                continue
            if member.local_name == "element":
                cardinality = format_cardinality(member.attr("minOccurs"), member.attr("maxOccurs"))
                nillable = member.attr("nillable") == "true"
            else:
                cardinality = "1..1" if member.attr("use") == "required" else "0..1"
                nillable = False
            attributes.append(
                Attribute(
                    name=name,
                    type=local_name(type_name),
                    cardinality=cardinality,
                    is_nillable=nillable,
                    description=member.documentation() or None,
                    default_value=member.attr("default"),
                )
            )
        return attributes

    def extract_associations(self, complex_type: SchemaNode) -> List[Association]:
        associations = []
        for member in iter_members(complex_type):
            ref = member.attr("ref")
            if member.local_name != "element" or not ref:
                continue
            ref_name = local_name(ref)
            associations.append(
                Association(
                    name=ref_name,
                    target=ref_name,
                    cardinality=format_cardinality(member.attr("minOccurs"), member.attr("maxOccurs")),
                    role=ref_name,
                    description=member.documentation() or None,
                )
            )
        return associations

    def extract_constraints(self, complex_type: SchemaNode) -> List[Constraint]:
        texts = [t for t in complex_type.documentation_texts() if is_constraint_text(t)]
        return [
            Constraint(name=f"Constraint{index}" if index else "Constraint", description=text)
            for index, text in enumerate(texts)
        ]

    @staticmethod
    def extract_super_classes(complex_type: SchemaNode) -> List[str]:
        bases = []
        for content in complex_type.children():
            if content.local_name not in ("complexContent", "simpleContent"):
                continue
            for extension in content.children("extension"):
                base = extension.attr("base")
                if base:
                    bases.append(local_name(base))
        return bases

    def extract_value_sets(self, schema: SchemaNode) -> Tuple[List[Codelist], List[Enumeration]]:
        """Split enumerated simpleTypes into codelists and enumerations."""
        codelists: List[Codelist] = []
        enumerations: List[Enumeration] = []
        for simple_type in schema.descendants("simpleType"):
            name = simple_type.attr("name")
            facets = simple_type.descendants("enumeration")
            if not name or not facets:
                continue
            description = simple_type.documentation()
            if is_enumeration_name(name):
                enumerations.append(
                    Enumeration(
                        name=name,
                        description=description,
                        values=[
                            EnumerationValue(
                                name=facet.attr("value", ""),
                                description=facet.documentation() or None,
                            )
                            for facet in facets
                        ],
                    )
                )
            else:
                codelists.append(
                    Codelist(
                        name=name,
                        description=description,
                        values=[
                            CodelistValue(
                                code=facet.attr("value", ""),
                                description=facet.documentation() or None,
                            )
                            for facet in facets
                        ],
                    )
                )
        return codelists, enumerations

    def extract_dependencies(self, schema: SchemaNode) -> List[str]:
        return [module_name_from_location(loc) for loc in self._import_locations(schema)]

    # ---------------- Documentation mapping ---------------- #

    def map_concepts_to_sections(self, section_map: Dict[str, str]) -> Dict[str, ConceptSection]:
        """Attach documentation sections to classes, codelists and enumerations.

        A concept matches the first section title that is a substring of its
        name or contains it.

        Args:
            section_map: Section title -> section id.

        Raises:
            FatalConfigurationError: If no model has been extracted yet.
        """
        if self.model is None:
            raise FatalConfigurationError(
                "No conceptual model extracted; call extract_all_modules() first"
            )

        sections: Dict[str, ConceptSection] = {}

        def match(name: str) -> Optional[str]:
            for title in section_map:
                if title in name or name in title:
                    return title
            return None

        for module in self.model.modules:
            concepts = (
                [("class", c.name, c.description) for c in module.classes]
                + [("codelist", c.name, c.description) for c in module.codelists]
                + [("enumeration", e.name, e.description) for e in module.enumerations]
            )
            for concept_type, name, description in concepts:
                title = match(name)
                if title is None:
                    continue
                sections[name] = ConceptSection(
                    id=section_map[title],
                    title=title,
                    content=description or "",
                    concept_name=name,
                    concept_type=concept_type,
                    module_name=module.name,
                    summary=description or None,
                )
        return sections
