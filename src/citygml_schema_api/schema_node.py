"""Namespace-tolerant view over parsed XML Schema documents.

CityGML schema files are parsed with :mod:`xml.etree.ElementTree` and wrapped
in :class:`SchemaNode` objects. The wrapper hides the difference between
``xs:``, ``xsd:`` and unprefixed schema markup: every lookup matches on the
local element or attribute name only. Each node also knows its parent, which
ElementTree does not track, so extractors can climb to the owning
``complexType`` of a nested element.

Example:
    from pathlib import Path
    from citygml_schema_api.schema_node import load_schema

    root = load_schema(Path("xsds/building.xsd"))
    for complex_type in root.descendants("complexType"):
        print(complex_type.attr("name"), complex_type.documentation())
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Union

from .errors import SchemaParseError
from .vocabulary import BUILTIN_TYPE_PREFIXES


def _strip_ns(tag: str) -> str:
    if tag.startswith("{"):
        return tag.split("}", 1)[1]
    return tag


class SchemaNode:
    """One element of a parsed schema document.

    Attributes:
        element: Underlying ElementTree element.
        parent: Enclosing node (``None`` for the document root).
        local_name: Tag without namespace URI.
        namespace: Namespace URI of the tag ("" when unqualified).
    """

    __slots__ = ("element", "parent", "local_name", "namespace", "_children")

    def __init__(self, element: ET.Element, parent: Optional["SchemaNode"] = None):
        self.element = element
        self.parent = parent
        tag = element.tag if isinstance(element.tag, str) else ""
        self.local_name = _strip_ns(tag)
        self.namespace = tag[1:].split("}", 1)[0] if tag.startswith("{") else ""
        self._children: List[SchemaNode] = [
            SchemaNode(child, self)
            for child in element
            if isinstance(child.tag, str)  # skip comments / processing instructions
        ]

    def __repr__(self) -> str:
        name = self.attr("name") or self.attr("ref")
        return f"SchemaNode({self.local_name}{'=' + name if name else ''})"

    def attr(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Return an attribute value by local name.

        Qualified attribute keys (``{uri}name``) are matched on their local
        part when no unqualified attribute of that name exists.
        """
        value = self.element.get(name)
        if value is not None:
            return value
        for key, candidate in self.element.attrib.items():
            if _strip_ns(key) == name:
                return candidate
        return default

    @property
    def attributes(self) -> Dict[str, str]:
        return {_strip_ns(k): v for k, v in self.element.attrib.items()}

    def children(self, local_name: Optional[str] = None) -> List["SchemaNode"]:
        if local_name is None:
            return list(self._children)
        return [c for c in self._children if c.local_name == local_name]

    def child(self, local_name: str) -> Optional["SchemaNode"]:
        for candidate in self._children:
            if candidate.local_name == local_name:
                return candidate
        return None

    def iter(self) -> Iterator["SchemaNode"]:
        """Depth-first traversal including this node."""
        yield self
        for child in self._children:
            yield from child.iter()

    def descendants(self, local_name: Optional[str] = None) -> List["SchemaNode"]:
        """All nodes below this one (document order), optionally filtered."""
        found = []
        for node in self.iter():
            if node is self:
                continue
            if local_name is None or node.local_name == local_name:
                found.append(node)
        return found

    def ancestors(self) -> Iterator["SchemaNode"]:
        current = self.parent
        while current is not None:
            yield current
            current = current.parent

    def enclosing(self, local_name: str, named: bool = True) -> Optional["SchemaNode"]:
        """Nearest ancestor with the given local name.

        Args:
            local_name: Tag to look for (e.g. ``complexType``).
            named: Only accept ancestors carrying a ``name`` attribute.
        """
        for ancestor in self.ancestors():
            if ancestor.local_name != local_name:
                continue
            if named and not ancestor.attr("name"):
                continue
            return ancestor
        return None

    @property
    def text(self) -> str:
        return "".join(self.element.itertext()).strip()

    def documentation(self, deep: bool = False) -> str:
        """Text of the first ``annotation/documentation`` block.

        Args:
            deep: Search annotations anywhere below this node instead of only
                direct children.
        """
        annotations = self.descendants("annotation") if deep else self.children("annotation")
        for annotation in annotations:
            for doc in annotation.children("documentation"):
                return doc.text
        return ""

    def documentation_texts(self) -> List[str]:
        """All documentation texts anywhere below this node."""
        return [doc.text for doc in self.descendants("documentation")]


def local_name(qname: Optional[str]) -> Optional[str]:
    """Strip a namespace prefix: ``gml:SolidPropertyType`` -> ``SolidPropertyType``."""
    if qname is None:
        return None
    return qname.split(":")[-1]


def prefix_of(qname: Optional[str]) -> Optional[str]:
    if not qname or ":" not in qname:
        return None
    return qname.split(":", 1)[0]


def is_builtin_type(qname: Optional[str]) -> bool:
    """True for XML Schema built-in types (``xs:string``, ``xsd:int``...)."""
    return prefix_of(qname) in BUILTIN_TYPE_PREFIXES


def load_schema(path: Union[str, Path]) -> SchemaNode:
    """Parse a schema file and return its root node.

    Raises:
        SchemaParseError: If the file cannot be read, is not well-formed, or
            its root element is not ``schema``.
    """
    path = Path(path)
    try:
        tree = ET.parse(path)
    except (OSError, ET.ParseError) as exc:
        raise SchemaParseError(path, f"cannot parse schema: {exc}") from exc
    root = SchemaNode(tree.getroot())
    if root.local_name != "schema":
        raise SchemaParseError(path, f"root element is '{root.local_name}', not 'schema'")
    return root


def parse_schema_string(content: str, source: str = "<string>") -> SchemaNode:
    """Parse schema markup held in memory (used by tests and tooling)."""
    try:
        element = ET.fromstring(content)
    except ET.ParseError as exc:
        raise SchemaParseError(source, f"cannot parse schema: {exc}") from exc
    root = SchemaNode(element)
    if root.local_name != "schema":
        raise SchemaParseError(source, f"root element is '{root.local_name}', not 'schema'")
    return root
