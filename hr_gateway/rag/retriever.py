"""Retriever for semantic search over the indexed handbook.

Handles:
- Lazy, single-flight index initialization
- Query embedding generation
- Top-k cosine search
- Result ranking and formatting
"""
import asyncio
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import structlog

from hr_gateway import config
from hr_gateway.errors import GatewayError
from hr_gateway.rag.embedder import EmbeddingClient
from hr_gateway.rag.store import VectorIndex

logger = structlog.get_logger()


@dataclass(frozen=True)
class RetrievalResult:
    """A single retrieved chunk with its cosine similarity score."""

    text: str
    score: float


class Retriever:
    """Semantic retriever for the RAG pipeline."""

    def __init__(
        self,
        embedder: EmbeddingClient,
        index: VectorIndex,
        top_k: int = None,
    ):
        """Initialize the retriever.

        Args:
            embedder: Embedding client used for queries
            index: Vector index to search
            top_k: Number of results to retrieve (default from config)
        """
        self.embedder = embedder
        self.index = index
        self.top_k = top_k or config.RETRIEVAL_TOP_K

        self.is_ready = False
        self._init_lock = asyncio.Lock()

    async def initialize(self) -> bool:
        """Check the index and its collection once.

        Concurrent callers share a single initialization attempt. A missing
        collection or unreachable index leaves the retriever not ready so a
        later call tries again.

        Returns:
            True if the index is ready to serve queries
        """
        if self.is_ready:
            return True

        async with self._init_lock:
            if self.is_ready:
                return True

            if not await self.index.health_check():
                logger.warning("vector_index_unavailable", collection=self.index.collection)
                return False

            try:
                info = await self.index.get_collection_info()
            except GatewayError as e:
                logger.error("retriever_initialize_failed", error=e.message)
                return False

            if info is None:
                logger.warning(
                    "collection_not_found",
                    collection=self.index.collection,
                    hint="run scripts/ingest.py",
                )
                return False

            self.is_ready = True
            logger.info(
                "vector_collection_ready",
                collection=info.name,
                points=info.points_count,
                dimension=info.dimension,
            )
            return True

    async def retrieve(self, query: str, top_k: Optional[int] = None) -> List[RetrievalResult]:
        """Retrieve the most similar chunks for a query.

        Args:
            query: User query text
            top_k: Number of results to return (overrides default)

        Returns:
            List of RetrievalResult objects, best first

        Raises:
            GatewayError: REMOTE_* from embedding, INDEX_ERROR from search
        """
        if not query or not query.strip():
            logger.warning("empty_query_provided")
            return []

        if not self.is_ready:
            await self.initialize()

        top_k = top_k or self.top_k
        loop = asyncio.get_running_loop()
        started = loop.time()

        embedding = await self.embedder.embed(query)
        hits = await self.index.search(embedding.vector, top_k)

        results = [
            RetrievalResult(text=str(hit.payload.get("text", "")), score=hit.score)
            for hit in hits
        ]
        results.sort(key=lambda r: r.score, reverse=True)
        results = results[:top_k]

        logger.debug(
            "vector_search_completed",
            query_preview=query[:50],
            top_score=round(results[0].score, 4) if results else None,
            results_count=len(results),
            duration_ms=int((loop.time() - started) * 1000),
        )

        return results

    async def retrieve_relevant(self, query: str, k: Optional[int] = None) -> List[str]:
        """Return the texts of the top-k chunks, best first."""
        return [r.text for r in await self.retrieve(query, top_k=k)]

    async def get_stats(self) -> Dict[str, Any]:
        """Report readiness and collection details for health endpoints."""
        connected = await self.index.health_check()

        info = None
        if connected:
            try:
                info = await self.index.get_collection_info()
            except GatewayError as e:
                logger.warning("collection_info_unavailable", error=e.message)

        return {
            "ready": self.is_ready,
            "index": {
                "connected": connected,
                "collection": self.index.collection,
                "point_count": info.points_count if info else 0,
                "status": info.status if info else "unknown",
            },
        }
