"""Qdrant vector index adapter over the REST API."""
from typing import Any, Dict, List, Optional

import httpx
import structlog

from hr_gateway import config
from hr_gateway.errors import index_error
from hr_gateway.rag.store import CollectionInfo, IndexPoint, SearchHit, VectorIndex

logger = structlog.get_logger()

# Index tuning applied when a collection is created
OPTIMIZERS_CONFIG = {"indexing_threshold": 20000}
HNSW_CONFIG = {"m": 16, "ef_construct": 100}


def _vector_size(params: Any) -> Optional[int]:
    """Read the vector size from a collection's ``config.params.vectors``."""
    if not isinstance(params, dict):
        return None
    if "size" in params:
        return int(params["size"])
    # Named-vector config: take the first size found
    for value in params.values():
        if isinstance(value, dict) and "size" in value:
            return int(value["size"])
    return None


class QdrantVectorIndex(VectorIndex):
    """Vector index backed by a single Qdrant collection."""

    def __init__(
        self,
        url: str = None,
        collection: str = None,
        api_key: str = None,
        timeout: float = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the Qdrant adapter.

        Args:
            url: Qdrant base URL (default from config)
            collection: Collection name (default from config)
            api_key: Optional API key sent as the ``api-key`` header
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used to stub Qdrant in tests)
        """
        self.url = (url or config.QDRANT_URL).rstrip("/")
        self.collection = collection or config.QDRANT_COLLECTION
        self.api_key = config.QDRANT_API_KEY if api_key is None else api_key
        self.timeout = timeout or config.QDRANT_TIMEOUT
        self.transport = transport

    def _client(self, timeout: float = None) -> httpx.AsyncClient:
        headers = {"api-key": self.api_key} if self.api_key else {}
        return httpx.AsyncClient(
            base_url=self.url,
            headers=headers,
            timeout=timeout or self.timeout,
            transport=self.transport,
        )

    @property
    def _collection_path(self) -> str:
        return f"/collections/{self.collection}"

    async def _get_collection(self) -> Optional[Dict[str, Any]]:
        async with self._client() as client:
            response = await client.get(self._collection_path)
            if response.status_code == 404:
                return None
            response.raise_for_status()
            return (response.json() or {}).get("result") or {}

    async def health_check(self) -> bool:
        try:
            async with self._client(timeout=5.0) as client:
                response = await client.get("/collections")
                response.raise_for_status()
            return True
        except httpx.HTTPError as e:
            logger.warning("qdrant_health_check_failed", error=str(e))
            return False

    async def collection_exists(self) -> bool:
        try:
            return await self._get_collection() is not None
        except httpx.HTTPError as e:
            raise index_error(f"Failed to read collection {self.collection}: {e}") from e

    async def ensure_collection(self, dimension: int) -> None:
        try:
            existing = await self._get_collection()
            if existing is None:
                logger.info(
                    "qdrant_collection_creating",
                    collection=self.collection,
                    dimension=dimension,
                )
                body = {
                    "vectors": {"size": dimension, "distance": "Cosine"},
                    "optimizers_config": OPTIMIZERS_CONFIG,
                    "hnsw_config": HNSW_CONFIG,
                }
                async with self._client() as client:
                    response = await client.put(self._collection_path, json=body)
                    response.raise_for_status()
                return
        except httpx.HTTPError as e:
            logger.error("qdrant_ensure_collection_failed", error=str(e))
            raise index_error(f"Failed to ensure collection {self.collection}: {e}") from e

        current = _vector_size(existing.get("config", {}).get("params", {}).get("vectors"))
        if current is not None and current != dimension:
            raise index_error(
                f"Collection {self.collection} has dimension {current}, expected {dimension}. "
                "Delete it before recreating."
            )
        logger.debug("qdrant_collection_exists", collection=self.collection)

    async def delete_collection(self) -> None:
        try:
            async with self._client() as client:
                response = await client.delete(self._collection_path)
                if response.status_code != 404:
                    response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("qdrant_delete_collection_failed", error=str(e))
            raise index_error(f"Failed to delete collection {self.collection}: {e}") from e

        logger.info("qdrant_collection_deleted", collection=self.collection)

    async def upsert_batch(self, points: List[IndexPoint]) -> None:
        if not points:
            return

        body = {
            "points": [
                {"id": p.id, "vector": p.vector, "payload": p.payload}
                for p in points
            ]
        }
        try:
            async with self._client() as client:
                response = await client.put(
                    f"{self._collection_path}/points",
                    params={"wait": "true"},
                    json=body,
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("qdrant_upsert_failed", error=str(e), batch_size=len(points))
            raise index_error(f"Failed to upsert batch: {e}") from e

    async def search(self, vector: List[float], k: int) -> List[SearchHit]:
        body = {
            "vector": vector,
            "limit": k,
            "with_payload": True,
            "with_vector": False,
        }
        try:
            async with self._client() as client:
                response = await client.post(f"{self._collection_path}/points/search", json=body)
                response.raise_for_status()
                data = response.json() or {}
        except httpx.HTTPError as e:
            logger.error("qdrant_search_failed", error=str(e))
            raise index_error(f"Vector search failed: {e}") from e

        hits = [
            SearchHit(
                id=int(item.get("id")),
                score=float(item.get("score", 0.0)),
                payload=item.get("payload") or {},
            )
            for item in (data.get("result") or [])
        ]
        hits.sort(key=lambda h: h.score, reverse=True)
        return hits[:k]

    async def get_collection_info(self) -> Optional[CollectionInfo]:
        try:
            result = await self._get_collection()
        except httpx.HTTPError as e:
            raise index_error(f"Failed to read collection {self.collection}: {e}") from e

        if result is None:
            return None

        return CollectionInfo(
            name=self.collection,
            points_count=int(result.get("points_count") or 0),
            dimension=_vector_size(result.get("config", {}).get("params", {}).get("vectors")),
            status=str(result.get("status", "unknown")),
        )
