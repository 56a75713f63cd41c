"""In-memory caching of extracted CityGML knowledge bases.

Running the whole pipeline means parsing every module schema, so the REST
layer keeps the resulting :class:`~citygml_schema_api.pipeline.CityModelKnowledgeBase`
around and rebuilds it only when needed.

Invalidation rules:
    1. TTL: an entry older than its time-to-live is dropped on access.
    2. Schema fingerprint: an entry records the modification time of every
       ``*.xsd`` file of its schema directory; editing, adding or removing
       a file makes it stale.

Keys are md5 digests of the argument tuple, so equal arguments always map
to the same entry.

Example::

    from citygml_schema_api.cache import get_cached_loader

    loader = get_cached_loader()
    kb = loader.load("xsds")
    print(loader.etag_for("xsds", "CityGML.xsd"))
"""

from __future__ import annotations

import hashlib
import logging
import time
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Union

from .config import DEFAULT_ROOT_SCHEMA, ExtractorConfig, get_available_schemas
from .pipeline import CityModelKnowledgeBase, build_knowledge_base

logger = logging.getLogger(__name__)


def schema_fingerprint(files: Iterable[Path]) -> Dict[str, float]:
    """Resolved path -> modification time for every existing file."""
    return {str(path.resolve()): path.stat().st_mtime for path in files if path.exists()}


def schema_digest(files: Iterable[Path]) -> str:
    """md5 over the names and contents of ``files`` (sorted by name)."""
    digest = hashlib.md5()
    for path in sorted(files, key=lambda p: p.name):
        if not path.exists():
            continue
        digest.update(path.name.encode())
        digest.update(path.read_bytes())
    return digest.hexdigest()


@dataclass
class CacheEntry:
    """Cached value plus the schema files it was derived from."""

    data: Any
    created: float = field(default_factory=time.time)
    ttl: float = 3600.0
    etag: str = ""
    fingerprint: Dict[str, float] = field(default_factory=dict)

    def is_expired(self) -> bool:
        return time.time() - self.created > self.ttl

    def is_stale(self, files: Iterable[Path]) -> bool:
        """True when a tracked file changed or the file set differs."""
        return schema_fingerprint(files) != self.fingerprint


class SchemaCache:
    """Dictionary cache with TTL expiry and schema staleness checks.

    Not thread-safe; knowledge bases are read-only once built, so sharing
    a returned value between requests is fine.
    """

    def __init__(self, default_ttl: float = 3600.0):
        self.default_ttl = default_ttl
        self._entries: Dict[str, CacheEntry] = {}
        self.hits = 0
        self.misses = 0

    @staticmethod
    def make_key(*parts: Any) -> str:
        return hashlib.md5(repr(parts).encode()).hexdigest()

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None when absent or expired."""
        entry = self._entries.get(key)
        if entry is not None and entry.is_expired():
            logger.debug(f"Cache entry {key} expired after {entry.ttl}s")
            del self._entries[key]
            entry = None
        if entry is None:
            self.misses += 1
            return None
        self.hits += 1
        return entry.data

    def set(
        self,
        key: str,
        data: Any,
        ttl: Optional[float] = None,
        files: Iterable[Path] = (),
    ) -> CacheEntry:
        """Store ``data`` and fingerprint the schema ``files`` it came from.

        Args:
            key: Cache key (see :meth:`make_key`).
            data: Value to cache.
            ttl: Lifetime in seconds; defaults to ``default_ttl``.
            files: Schema files whose modification makes the entry stale.
        """
        files = list(files)
        entry = CacheEntry(
            data=data,
            ttl=ttl if ttl is not None else self.default_ttl,
            etag=schema_digest(files) if files else "",
            fingerprint=schema_fingerprint(files),
        )
        self._entries[key] = entry
        return entry

    def is_stale(self, key: str, files: Iterable[Path]) -> bool:
        entry = self._entries.get(key)
        return entry is None or entry.is_stale(files)

    def etag(self, key: str) -> str:
        entry = self._entries.get(key)
        return entry.etag if entry else ""

    def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def stats(self) -> Dict[str, Any]:
        return {
            "entries": len(self._entries),
            "hits": self.hits,
            "misses": self.misses,
            "default_ttl": self.default_ttl,
        }


class CachedModelLoader:
    """Build knowledge bases through :func:`build_knowledge_base`, memoized.

    Entries are keyed by the resolved schema directory, the root schema and
    the import-traversal mode.
    """

    def __init__(
        self,
        cache: Optional[SchemaCache] = None,
        config: Optional[ExtractorConfig] = None,
    ):
        self.config = config or ExtractorConfig.from_env()
        self.cache = cache or SchemaCache(default_ttl=self.config.cache_ttl)

    def _key(self, xsd_dir: Path, root_schema: str) -> str:
        return self.cache.make_key(
            "kb", str(xsd_dir.resolve()), root_schema, self.config.follow_transitive_imports
        )

    def load(
        self,
        xsd_dir: Optional[Union[str, Path]] = None,
        root_schema: Optional[str] = None,
        force_refresh: bool = False,
    ) -> CityModelKnowledgeBase:
        """Return the knowledge base of a schema directory.

        Args:
            xsd_dir: Schema directory (defaults to the loader configuration).
            root_schema: Root schema file name (defaults to the loader configuration).
            force_refresh: Rebuild even when a fresh entry exists.

        Raises:
            FatalConfigurationError: If the root schema is missing or unreadable.
        """
        xsd_dir = Path(xsd_dir) if xsd_dir is not None else self.config.xsd_dir
        root_schema = root_schema or self.config.root_schema or DEFAULT_ROOT_SCHEMA
        key = self._key(xsd_dir, root_schema)
        files = get_available_schemas(xsd_dir)

        if not force_refresh and not self.cache.is_stale(key, files):
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug(f"Knowledge base cache hit for {xsd_dir / root_schema}")
                return cached

        kb = build_knowledge_base(xsd_dir, root_schema, self.config)
        self.cache.set(key, kb, files=files)
        return kb

    def etag_for(self, xsd_dir: Union[str, Path], root_schema: str) -> str:
        """Digest of the schema files behind a cached knowledge base ("" if none)."""
        return self.cache.etag(self._key(Path(xsd_dir), root_schema))

    def invalidate_all(self) -> None:
        self.cache.clear()


@lru_cache(maxsize=1)
def get_cached_loader() -> CachedModelLoader:
    """Process-wide loader configured from the environment."""
    return CachedModelLoader()
