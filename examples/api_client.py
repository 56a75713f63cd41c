#!/usr/bin/env python3
"""
Example client for the CityGML Schema API.

This script demonstrates how to interact with the CityGML Schema API
for module exploration, city-object hierarchies, relationship queries
and context assembly.
"""

from typing import Any, Dict, List, Optional

import httpx


class CityGMLSchemaClient:
    """Client for interacting with the CityGML Schema API."""

    def __init__(self, base_url: str = "http://localhost:8000"):
        """Initialize the client with the API base URL."""
        self.base_url = base_url
        self.client = httpx.Client(base_url=base_url, timeout=30.0)
        self.etag_cache: Dict[str, str] = {}

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - close the client."""
        self.client.close()

    def get_health(self) -> Dict:
        """Check API health status."""
        response = self.client.get("/health")
        response.raise_for_status()
        return response.json()

    def get_metadata(self, use_cache: bool = True) -> Optional[Dict]:
        """
        Get the extraction summary with ETag support.

        Args:
            use_cache: Whether to send the cached ETag

        Returns:
            Summary dict or None if not modified (304)
        """
        headers = {}
        if use_cache and "metadata" in self.etag_cache:
            headers["If-None-Match"] = self.etag_cache["metadata"]

        response = self.client.get("/metadata", headers=headers)

        if response.status_code == 304:
            return None

        response.raise_for_status()

        if "ETag" in response.headers:
            self.etag_cache["metadata"] = response.headers["ETag"]

        return response.json()

    def get_modules(self) -> List[Dict]:
        response = self.client.get("/modules")
        response.raise_for_status()
        return response.json()["modules"]

    def get_objects(self, module: Optional[str] = None) -> List[Dict]:
        """
        List city objects.

        Args:
            module: Optional module name filter

        Returns:
            City object summaries
        """
        params = {"module": module} if module else {}
        response = self.client.get("/objects", params=params)
        response.raise_for_status()
        return response.json()["objects"]

    def get_hierarchy(self, class_name: str) -> Dict:
        response = self.client.get(f"/objects/{class_name}/hierarchy")
        response.raise_for_status()
        return response.json()

    def get_relationships(
        self,
        kind: Optional[str] = None,
        source: Optional[str] = None,
        target: Optional[str] = None,
    ) -> List[Dict]:
        params = {
            key: value
            for key, value in (("type", kind), ("source", source), ("target", target))
            if value
        }
        response = self.client.get("/relationships", params=params)
        response.raise_for_status()
        return response.json()["relationships"]

    def search(self, text: str, module: Optional[str] = None) -> List[Dict]:
        params = {"q": text}
        if module:
            params["module"] = module
        response = self.client.get("/search", params=params)
        response.raise_for_status()
        return response.json()["results"]

    def build_context(self, query: str, threshold: Optional[float] = None) -> Dict[str, Any]:
        """
        Assemble a ranked context for a query.

        Args:
            query: Free-text query
            threshold: Minimum relevance (server default when omitted)

        Returns:
            Context with items and metadata
        """
        payload: Dict[str, Any] = {"query": query}
        if threshold is not None:
            payload["threshold"] = threshold
        response = self.client.post("/context", json=payload)
        response.raise_for_status()
        return response.json()


def main():
    """Demonstrate API usage."""
    with CityGMLSchemaClient() as client:
        print("1. Checking API health...")
        health = client.get_health()
        print(f"   Status: {health['status']} ({health['modules']} modules)")

        print("\n2. Modules...")
        for module in client.get_modules():
            print(f"   {module['name']}: {len(module['classes'])} classes")

        print("\n3. Building city objects...")
        for obj in client.get_objects(module="building")[:5]:
            print(f"   {obj['name']} LOD levels: {obj['lod_levels']}")

        print("\n4. Hierarchy of BuildingType...")
        try:
            hierarchy = client.get_hierarchy("BuildingType")
            print(f"   Ancestors: {' -> '.join(hierarchy['ancestors'])}")
            print(f"   Children: {', '.join(hierarchy['children']) or '-'}")
        except httpx.HTTPStatusError:
            print("   BuildingType not found")

        print("\n5. Spatial relationships of BuildingType...")
        for rel in client.get_relationships(kind="spatial", source="BuildingType")[:5]:
            print(f"   {rel['name']} ({rel['target_multiplicity']['min']}..{rel['target_multiplicity']['max']})")

        print("\n6. Context for 'Building'...")
        context = client.build_context("Building")
        print(f"   {context['metadata']['summary']}")
        for item in context["items"][:5]:
            print(f"   {item['type']:<12} {item['name']} ({item['relevance']:.2f})")

        print("\n7. Searching for 'roof'...")
        for hit in client.search("roof"):
            print(f"   {hit['type']} {hit['module']}:{hit['name']}")

        print("\n8. Testing caching with metadata...")
        client.get_metadata()
        if client.get_metadata(use_cache=True) is None:
            print("   Second request: Using cache (304 Not Modified)")
        else:
            print("   Second request: Data received (cache miss)")


if __name__ == "__main__":
    try:
        main()
    except httpx.ConnectError:
        print("\nError: Could not connect to API server.")
        print("Make sure the server is running: python -m citygml_schema_api.run_server")
