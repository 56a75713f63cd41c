"""CityGML Schema API
====================

Toolkit and service layer turning the **CityGML 3.0** XML Schema files into
a navigable semantic model: modules and classes, city objects with their
geometry and level-of-detail metadata, classified attributes, inferred
relationships and query-driven context bundles.

Key capabilities
----------------
- Walk the root schema's imports and build a :class:`~citygml_schema_api.models.ConceptualModel`
  (classes, attributes, associations, constraints, codelists, enumerations).
- Classify city objects, geometry properties and LOD ranges.
- Bucket attributes (geometry / metadata / codelist / enumeration / basic).
- Infer generalization, association, aggregation, composition and spatial
  relationships with stable ids and multiplicities.
- Rank model entities against a free-text query for downstream consumers.
- Serve the result through FastAPI and a small argparse CLI.

Design principles
-----------------
1. **Heuristic, not validating** - Schemas are read as plain XML trees; name
    and type vocabularies decide classifications, and misses are not errors.
2. **Fail per file** - A broken module file is logged and skipped; only a
    missing or unreadable root schema aborts an extraction.
3. **Fresh state per run** - Extractors keep per-run state and are built
    anew by :func:`~citygml_schema_api.pipeline.build_knowledge_base`.

Minimal quick start
-------------------
>>> from citygml_schema_api.pipeline import build_knowledge_base
>>> kb = build_knowledge_base('/path/to/xsds')
>>> sorted(kb.city_objects)[:5]

FastAPI application instance (for ASGI servers like uvicorn):
>>> from citygml_schema_api.app import app  # noqa: F401

Public surface
--------------
Only a curated subset is exported at the package level to keep the import
surface stable; advanced modules can be imported explicitly.
"""

__version__ = "0.1.0"

from .concepts import ConceptExtractor
from .context import ContextBuilder, calculate_relevance
from .errors import FatalConfigurationError, PerFileExtractionError
from .models import CityObject, ConceptualModel, RelationshipInfo
from .pipeline import build_context, build_knowledge_base

__all__ = [
    "CityObject",
    "ConceptExtractor",
    "ConceptualModel",
    "ContextBuilder",
    "FatalConfigurationError",
    "PerFileExtractionError",
    "RelationshipInfo",
    "build_context",
    "build_knowledge_base",
    "calculate_relevance",
]
