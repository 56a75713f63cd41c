"""FastAPI application exposing the CityGML knowledge model.

This module provides read-only REST access to the extracted conceptual
model, the city-object view, attribute classifications, inferred
relationships and query-driven context assembly.

Quick start (run the server)::

    uvicorn citygml_schema_api.run_server:app --reload

Core endpoints (REST):

    GET  /health                          Basic health check
    GET  /metadata                        Extraction summary + ETag
    GET  /modules                         Module listing
    GET  /modules/{name}                  One module with its classes
    GET  /modules/{name}/graph            Relationship graph of a module
    GET  /classes/{name}                  One class of the conceptual model
    GET  /objects?module=building         City objects (optionally per module)
    GET  /objects/{name}/hierarchy        Ancestors + children of a class
    GET  /objects/{name}/lod              LOD capabilities of a class
    GET  /attributes/{class_name}         Classified attributes of a class
    GET  /codelists/{name}                Codelist values
    GET  /enumerations/{name}             Enumeration values
    GET  /relationships?type=spatial      Relationships (type/source/target filters)
    GET  /relationships/multiplicity      1:1 / 1:N / N:1 / N:M buckets
    POST /context                         Ranked context for a free-text query
    GET  /search?q=roof&module=building   Name/description search

Example: list the city objects of the building module::

    curl "http://localhost:8000/objects?module=building" | jq '.objects[].name'

Example: assemble a context::

    curl -X POST http://localhost:8000/context \
         -H "Content-Type: application/json" \
         -d '{"query": "Building", "threshold": 0.5}'

Configuration is read from ``CITYGML_*`` environment variables (see
:class:`~citygml_schema_api.config.ExtractorConfig`).

Error handling:
    * Unknown names produce 404 JSON payloads.
    * A missing or unreadable root schema is a configuration error and is
      reported as a 500 JSON payload.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from . import __version__
from .attributes import ClassAttributeSummary
from .cache import get_cached_loader, schema_digest
from .config import get_available_schemas
from .context import Context
from .errors import FatalConfigurationError
from .models import (
    Codelist,
    ConceptClass,
    Enumeration,
    EncodingModel,
    Module,
    RelationshipInfo,
    RelationshipType,
)
from .pipeline import CityModelKnowledgeBase, build_context

logger = logging.getLogger(__name__)

app = FastAPI(
    title="CityGML Schema API",
    version=__version__,
    description="API for exploring the CityGML 3.0 semantic model extracted from its XSD schemas",
    docs_url="/docs",
    redoc_url="/redoc",
)


@app.middleware("http")
async def time_requests(request: Request, call_next):
    """Add response timing headers and log slow-path details at debug."""
    start_time = time.time()
    response = await call_next(request)
    response_time = time.time() - start_time
    logger.debug(
        f"{request.method} {request.url.path} -> {response.status_code} in {response_time:.3f}s"
    )
    response.headers["X-Response-Time"] = f"{response_time:.3f}s"
    response.headers["X-API-Version"] = __version__
    return response


class EncodingRulePayload(BaseModel):
    id: Optional[str] = None
    name: str = Field(..., min_length=1)
    description: str = ""
    applies_to: List[str] = Field(default_factory=list)
    examples: List[str] = Field(default_factory=list)


class ExamplePayload(BaseModel):
    id: Optional[str] = None
    title: str = Field(..., min_length=1)
    code: str = ""
    language: str = "XML"
    description: Optional[str] = None
    related_classes: List[str] = Field(default_factory=list)
    related_rules: List[str] = Field(default_factory=list)


class EncodingPayload(BaseModel):
    """Encoding rules and examples sent along with a context request."""

    version: str = "3.0.0"
    encoding_type: str = "GML"
    namespaces: Dict[str, str] = Field(default_factory=dict)
    encoding_rules: List[EncodingRulePayload] = Field(default_factory=list)
    examples: List[ExamplePayload] = Field(default_factory=list)

    def to_model(self) -> EncodingModel:
        return EncodingModel.from_dict(self.model_dump(exclude_none=True))


class ContextRequest(BaseModel):
    """Request model for context assembly."""

    query: str = Field(..., min_length=1, description="Free-text query")
    threshold: Optional[float] = Field(
        None, ge=0.0, le=1.0, description="Minimum relevance of kept items"
    )
    encoding: Optional[EncodingPayload] = Field(
        None, description="Optional encoding rules/examples document"
    )


class ModelRepository:
    """Read access to one extracted knowledge base.

    A repository is built per request around the knowledge base returned by
    the cached loader; the knowledge base itself is never mutated.

    Args:
        kb: Extracted knowledge base.
        digest: Digest of the schema files behind ``kb``; computed from the
            schema directory when omitted.
    """

    def __init__(self, kb: CityModelKnowledgeBase, digest: Optional[str] = None) -> None:
        self.kb = kb
        if not digest:
            digest = schema_digest(get_available_schemas(kb.config.xsd_dir))
        self.etag = f'"{digest}"'

    @property
    def metadata(self) -> Dict[str, Any]:
        return self.kb.summary()

    def modules(self) -> List[Dict[str, Any]]:
        return [module.to_dict(summary=True) for module in self.kb.model.modules]

    def module(self, name: str) -> Optional[Module]:
        return self.kb.model.get_module(name)

    def module_graph(self, name: str) -> Optional[Dict[str, Any]]:
        return self.kb.relationship_extractor.create_module_relationship_graph(name)

    def find_class(self, name: str) -> Optional[ConceptClass]:
        return self.kb.model.find_class(name)

    def objects(self, module: Optional[str] = None) -> List[Dict[str, Any]]:
        results = []
        for obj in self.kb.city_objects.values():
            if module is not None and obj.module != module:
                continue
            results.append(
                {
                    "name": obj.name,
                    "module": obj.module,
                    "is_abstract": obj.is_abstract,
                    "super_classes": obj.super_classes,
                    "children": obj.children,
                    "geometry_properties": len(obj.geometry_properties),
                    "thematic_attributes": len(obj.thematic_attributes),
                    "lod_levels": obj.lod_info.levels,
                }
            )
        return results

    def hierarchy(self, name: str) -> Optional[Dict[str, Any]]:
        return self.kb.object_classifier.get_object_hierarchy(name)

    def lod(self, name: str) -> Optional[Dict[str, Any]]:
        return self.kb.object_classifier.analyze_lod_capabilities(name)

    def attribute_summary(self, class_name: str) -> Optional[ClassAttributeSummary]:
        cls = self.find_class(class_name)
        if cls is None:
            return None
        return self.kb.attribute_classifier.classify_class_attributes(cls)

    def codelist(self, name: str) -> Optional[Codelist]:
        return self.kb.model.find_codelist(name)

    def enumeration(self, name: str) -> Optional[Enumeration]:
        return self.kb.model.find_enumeration(name)

    def relationships(
        self,
        kind: Optional[RelationshipType] = None,
        source: Optional[str] = None,
        target: Optional[str] = None,
    ) -> List[RelationshipInfo]:
        extractor = self.kb.relationship_extractor
        results = (
            extractor.get_relationships_by_type(kind)
            if kind is not None
            else extractor.get_relationships()
        )
        if source is not None:
            results = [rel for rel in results if rel.source == source]
        if target is not None:
            results = [rel for rel in results if rel.target == target]
        return results

    def multiplicity(self) -> Dict[str, List[str]]:
        buckets = self.kb.relationship_extractor.analyze_relationship_multiplicity()
        return {category: [rel.id for rel in rels] for category, rels in buckets.items()}

    def context(
        self,
        query: str,
        threshold: Optional[float] = None,
        encoding: Optional[EncodingModel] = None,
    ) -> Context:
        return build_context(self.kb, query, threshold, encoding)

    def search(self, query: str, module: Optional[str] = None) -> List[Dict[str, Any]]:
        return self.kb.model.search(query, module)


def get_repository() -> ModelRepository:
    """Repository over the current knowledge base.

    The loader rebuilds the knowledge base when a schema file changes, so the
    repository and its ETag always follow the files on disk.
    """
    loader = get_cached_loader()
    kb = loader.load()
    return ModelRepository(kb, loader.etag_for(kb.config.xsd_dir, kb.config.root_schema))


@app.get("/health")
def health(repo: ModelRepository = Depends(get_repository)) -> Dict[str, Any]:
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": repo.kb.model.version,
        "modules": len(repo.kb.model.modules),
    }


@app.get("/metadata")
def metadata(
    response: Response,
    if_none_match: Optional[str] = Header(None),
    repo: ModelRepository = Depends(get_repository),
) -> Dict[str, Any]:
    """Extraction summary with conditional GET semantics via *ETag*.

    Example::

        curl -i http://localhost:8000/metadata -H 'If-None-Match: "<etag>"'
    """
    if if_none_match and if_none_match == repo.etag:
        response.status_code = 304
        return {}
    response.headers["ETag"] = repo.etag
    response.headers["Cache-Control"] = "public, max-age=3600"
    return repo.metadata


@app.get("/modules")
def modules(repo: ModelRepository = Depends(get_repository)) -> Dict[str, Any]:
    items = repo.modules()
    return {"modules": items, "count": len(items)}


@app.get("/modules/{name}")
def module_detail(name: str, repo: ModelRepository = Depends(get_repository)) -> Dict[str, Any]:
    module = repo.module(name)
    if module is None:
        raise HTTPException(status_code=404, detail=f"Module not found: {name}")
    return module.to_dict()


@app.get("/modules/{name}/graph")
def module_graph(name: str, repo: ModelRepository = Depends(get_repository)) -> Dict[str, Any]:
    """Nodes (classes) and edges (relationships) touching one module."""
    graph = repo.module_graph(name)
    if graph is None:
        raise HTTPException(status_code=404, detail=f"Module not found: {name}")
    return graph


@app.get("/classes/{name}")
def class_detail(name: str, repo: ModelRepository = Depends(get_repository)) -> Dict[str, Any]:
    cls = repo.find_class(name)
    if cls is None:
        raise HTTPException(status_code=404, detail=f"Class not found: {name}")
    return cls.to_dict()


@app.get("/objects")
def objects(
    module: Optional[str] = Query(None, description="Restrict to one module"),
    repo: ModelRepository = Depends(get_repository),
) -> Dict[str, Any]:
    items = repo.objects(module)
    return {"objects": items, "count": len(items)}


@app.get("/objects/{name}/hierarchy")
def object_hierarchy(name: str, repo: ModelRepository = Depends(get_repository)) -> Dict[str, Any]:
    hierarchy = repo.hierarchy(name)
    if hierarchy is None:
        raise HTTPException(status_code=404, detail=f"Class not found: {name}")
    return hierarchy


@app.get("/objects/{name}/lod")
def object_lod(name: str, repo: ModelRepository = Depends(get_repository)) -> Dict[str, Any]:
    lod = repo.lod(name)
    if lod is None:
        raise HTTPException(status_code=404, detail=f"Class not found: {name}")
    return lod


@app.get("/attributes/{class_name}")
def attributes(
    class_name: str, repo: ModelRepository = Depends(get_repository)
) -> Dict[str, Any]:
    """Attributes of a class grouped by category."""
    summary = repo.attribute_summary(class_name)
    if summary is None:
        raise HTTPException(status_code=404, detail=f"Class not found: {class_name}")
    return summary.to_dict()


@app.get("/codelists/{name}")
def codelist(name: str, repo: ModelRepository = Depends(get_repository)) -> Dict[str, Any]:
    found = repo.codelist(name)
    if found is None:
        raise HTTPException(status_code=404, detail=f"Codelist not found: {name}")
    return found.to_dict()


@app.get("/enumerations/{name}")
def enumeration(name: str, repo: ModelRepository = Depends(get_repository)) -> Dict[str, Any]:
    found = repo.enumeration(name)
    if found is None:
        raise HTTPException(status_code=404, detail=f"Enumeration not found: {name}")
    return found.to_dict()


@app.get("/relationships")
def relationships(
    type: Optional[RelationshipType] = Query(None, description="Relationship kind"),
    source: Optional[str] = Query(None, description="Source type name"),
    target: Optional[str] = Query(None, description="Target type name"),
    repo: ModelRepository = Depends(get_repository),
) -> Dict[str, Any]:
    """Inferred relationships, optionally filtered.

    Example::

        curl "http://localhost:8000/relationships?type=generalization&source=BuildingType"
    """
    results = repo.relationships(type, source, target)
    return {"relationships": [rel.to_dict() for rel in results], "count": len(results)}


@app.get("/relationships/multiplicity")
def relationship_multiplicity(repo: ModelRepository = Depends(get_repository)) -> Dict[str, Any]:
    buckets = repo.multiplicity()
    return {
        "buckets": buckets,
        "counts": {category: len(ids) for category, ids in buckets.items()},
    }


@app.post("/context")
def context(
    request: ContextRequest, repo: ModelRepository = Depends(get_repository)
) -> Dict[str, Any]:
    """Assemble a ranked context for a free-text query."""
    encoding = request.encoding.to_model() if request.encoding is not None else None
    return repo.context(request.query, request.threshold, encoding).to_dict()


@app.get("/search")
def search(
    q: str = Query(..., min_length=1, description="Case-insensitive search text"),
    module: Optional[str] = Query(None, description="Restrict to one module"),
    repo: ModelRepository = Depends(get_repository),
) -> Dict[str, Any]:
    """Classes, codelists and enumerations whose name or description contains ``q``.

    Example::

        curl "http://localhost:8000/search?q=roof&module=building"
    """
    results = repo.search(q, module)
    return {"query": q, "module": module, "results": results, "count": len(results)}


@app.exception_handler(404)
async def not_found_handler(request, exc):
    """Custom 404 handler with more helpful error messages."""
    return JSONResponse(
        status_code=404,
        content={
            "error": "Not Found",
            "detail": (
                str(exc.detail)
                if hasattr(exc, "detail")
                else "The requested resource was not found"
            ),
            "path": str(request.url.path),
        },
    )


@app.exception_handler(FatalConfigurationError)
async def configuration_error_handler(request, exc):
    """Report an unusable schema configuration as a 500 JSON payload."""
    logger.error(f"Configuration error while serving {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={"error": "Configuration Error", "detail": str(exc)},
    )
