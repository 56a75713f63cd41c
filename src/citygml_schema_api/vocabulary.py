"""Heuristic vocabularies used by the classifiers and extractors.

All pattern matching in the object, attribute and relationship passes is
driven by these tables so the rules stay declarative. Matching is plain
substring containment unless noted otherwise.
"""

from __future__ import annotations

import re

# Superclass names containing one of these mark a class as a city object.
CITY_OBJECT_BASE_MARKERS = (
    "AbstractCityObject",
    "AbstractFeature",
    "AbstractSpace",
    "AbstractOccupiedSpace",
)

# Fallback when the base type could not be resolved: the class name itself.
CITY_OBJECT_NAME_PATTERNS = (
    "Building",
    "Bridge",
    "Road",
    "Railway",
    "Square",
    "Track",
    "Plant",
    "SolitaryVegetationObject",
    "PlantCover",
    "WaterBody",
    "WaterSurface",
    "LandUse",
    "CityFurniture",
    "ReliefFeature",
    "Tunnel",
)

GEOMETRY_TYPE_PATTERNS = (
    "Geometry",
    "Point",
    "Curve",
    "Surface",
    "Solid",
    "GeometryProperty",
    "MultiPoint",
    "MultiCurve",
    "MultiSurface",
    "MultiSolid",
    "CompositeCurve",
    "CompositeSurface",
    "CompositeSolid",
)

# Ordered: first match wins.
GEOMETRY_DIMENSIONS = (
    (("Solid",), 3),
    (("Surface", "Polygon"), 2),
    (("Curve", "Line"), 1),
    (("Point",), 0),
)

LOD_PATTERN = re.compile(r"lod([0-9])", re.IGNORECASE)

METADATA_ATTRIBUTE_PATTERNS = (
    "creationDate",
    "terminationDate",
    "validFrom",
    "validTo",
    "updateDate",
    "source",
    "creator",
    "description",
    "identifier",
)

# simpleTypes whose name ends with one of these are closed enumerations.
ENUMERATION_SUFFIXES = ("EnumBase",)

CONSTRAINT_KEYWORDS = ("constraint", "restriction", "must", "should")

VALUE_CONSTRAINT_KEYWORDS = ("value", "must be", "should be")
TYPE_CONSTRAINT_KEYWORDS = ("type", "instance of")
REFERENTIAL_CONSTRAINT_KEYWORDS = ("reference", "refers to")

BUILTIN_TYPE_PREFIXES = ("xs", "xsd")

AGGREGATION_SUFFIX, AGGREGATION_INFIX = "Member", "members"
COMPOSITION_SUFFIX, COMPOSITION_INFIX = "Part", "parts"

GEOMETRY_ELEMENT_MARKERS = ("geometry", "Geometry")

# Element name fragment -> spatial relation; default is "contains".
SPATIAL_NAME_RULES = (
    ("boundedBy", "within"),
    ("touches", "touches"),
    ("overlaps", "overlaps"),
)
