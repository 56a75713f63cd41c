"""Runtime configuration for CityGML schema extraction.

Configuration follows the same pattern as the rest of the package: a plain
dataclass with sensible defaults that can be populated from environment
variables by entry points (CLI, REST server).

Environment variables:
    CITYGML_XSD_DIR              Directory holding the ``*.xsd`` module files
                                 (default: ``./xsds``).
    CITYGML_ROOT_SCHEMA          Root schema whose imports enumerate the
                                 module set (default: ``CityGML.xsd``).
    CITYGML_FOLLOW_IMPORTS       ``true`` to walk imports transitively.
    CITYGML_CONTEXT_THRESHOLD    Default relevance threshold (0-1).
    CITYGML_CACHE_TTL            Seconds a cached knowledge base stays valid.
    CITYGML_LOG_LEVEL            Python logging level name.

Example:
    from citygml_schema_api.config import ExtractorConfig

    config = ExtractorConfig.from_env()
    print(config.root_schema_path)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Union

logger = logging.getLogger(__name__)

DEFAULT_XSD_DIR = "xsds"
DEFAULT_ROOT_SCHEMA = "CityGML.xsd"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

CORE_NAMESPACE = "http://www.opengis.net/citygml/3.0"

MODULE_NAMESPACES: Dict[str, str] = {
    "core": CORE_NAMESPACE,
    "building": "http://www.opengis.net/citygml/building/3.0",
    "bridge": "http://www.opengis.net/citygml/bridge/3.0",
    "transportation": "http://www.opengis.net/citygml/transportation/3.0",
    "tunnel": "http://www.opengis.net/citygml/tunnel/3.0",
    "vegetation": "http://www.opengis.net/citygml/vegetation/3.0",
    "waterBody": "http://www.opengis.net/citygml/waterbody/3.0",
    "landUse": "http://www.opengis.net/citygml/landuse/3.0",
    "relief": "http://www.opengis.net/citygml/relief/3.0",
    "cityFurniture": "http://www.opengis.net/citygml/cityfurniture/3.0",
    "cityObjectGroup": "http://www.opengis.net/citygml/cityobjectgroup/3.0",
    "appearance": "http://www.opengis.net/citygml/appearance/3.0",
    "dynamizer": "http://www.opengis.net/citygml/dynamizer/3.0",
    "generics": "http://www.opengis.net/citygml/generics/3.0",
    "versioning": "http://www.opengis.net/citygml/versioning/3.0",
    "pointCloud": "http://www.opengis.net/citygml/pointcloud/3.0",
    "construction": "http://www.opengis.net/citygml/construction/3.0",
}


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class ExtractorConfig:
    """Configuration for one extraction pipeline.

    Args:
        xsd_dir: Base directory containing the module schema files.
        root_schema: File name (relative to ``xsd_dir``) of the root schema.
        follow_transitive_imports: When True the Concept Extractor also walks
            the imports of each processed module (cycle-guarded). The default
            only processes the root schema's imports.
        context_threshold: Default relevance threshold for context assembly.
        cache_ttl: Lifetime (seconds) of cached knowledge bases.
        log_level: Logging level name used by entry points.
    """

    xsd_dir: Path = Path(DEFAULT_XSD_DIR)
    root_schema: str = DEFAULT_ROOT_SCHEMA
    follow_transitive_imports: bool = False
    context_threshold: float = 0.5
    cache_ttl: float = 3600.0
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        self.xsd_dir = Path(self.xsd_dir)
        if not 0.0 <= self.context_threshold <= 1.0:
            raise ValueError(
                f"context_threshold must be within [0, 1], got {self.context_threshold}"
            )

    @property
    def root_schema_path(self) -> Path:
        return self.xsd_dir / self.root_schema

    @classmethod
    def from_env(cls) -> "ExtractorConfig":
        """Create configuration from environment variables."""
        return cls(
            xsd_dir=Path(os.getenv("CITYGML_XSD_DIR", DEFAULT_XSD_DIR)),
            root_schema=os.getenv("CITYGML_ROOT_SCHEMA", DEFAULT_ROOT_SCHEMA),
            follow_transitive_imports=_env_bool("CITYGML_FOLLOW_IMPORTS", False),
            context_threshold=float(os.getenv("CITYGML_CONTEXT_THRESHOLD", "0.5")),
            cache_ttl=float(os.getenv("CITYGML_CACHE_TTL", "3600")),
            log_level=os.getenv("CITYGML_LOG_LEVEL", "INFO"),
        )


def setup_logging(level: Union[str, int] = "INFO") -> None:
    """Configure root logging for entry points."""
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT)


def get_available_schemas(xsd_dir: Union[str, Path]) -> List[Path]:
    """Return every ``*.xsd`` file directly under ``xsd_dir`` (sorted)."""
    directory = Path(xsd_dir)
    if not directory.is_dir():
        logger.warning(f"XSD directory does not exist: {directory}")
        return []
    return sorted(p for p in directory.iterdir() if p.suffix.lower() == ".xsd")


def find_schema_for_module(
    module_name: str, xsd_dir: Union[str, Path]
) -> Optional[Path]:
    """Locate the schema file for a module name.

    Exact (case-insensitive) stem match is preferred; otherwise the first file
    whose name contains the module name is returned.
    """
    schemas = get_available_schemas(xsd_dir)
    wanted = module_name.lower()
    for schema in schemas:
        if schema.stem.lower() == wanted:
            return schema
    for schema in schemas:
        if wanted in schema.stem.lower():
            return schema
    return None
