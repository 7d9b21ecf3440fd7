"""Ingest pipeline for indexing the handbook.

Orchestrates:
- Index connectivity check
- Text chunking
- Embedding dimension probing
- Collection recreation
- Windowed embedding and batched upserts with progress reporting
"""
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional

import structlog

from hr_gateway import config
from hr_gateway.errors import ErrorKind, GatewayError, index_error, validation_error
from hr_gateway.rag.chunker import Chunk, TextChunker
from hr_gateway.rag.embedder import Embedding, EmbeddingClient
from hr_gateway.rag.store import IndexPoint, VectorIndex

logger = structlog.get_logger()

# progress_callback(current, total, stage)
ProgressCallback = Callable[[int, int, str], None]


class IngestState(Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    DIMENSION_PROBE = "dimension_probe"
    COLLECTION_SETUP = "collection_setup"
    EMBEDDING = "embedding"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass(frozen=True)
class IngestStats:
    """Summary of a completed ingestion run."""

    collection: str
    chunks: int
    points: int
    dimension: int
    elapsed_seconds: float

    @property
    def chunks_per_minute(self) -> float:
        if self.elapsed_seconds <= 0:
            return float(self.chunks)
        return self.chunks / (self.elapsed_seconds / 60.0)


def _to_point(chunk: Chunk, embedding: Embedding) -> IndexPoint:
    return IndexPoint(id=chunk.index, vector=embedding.vector, payload=chunk.to_payload())


class IngestPipeline:
    """Full-rebuild ingestion: chunk, embed, recreate collection, upsert.

    Only one run may target a collection at a time, since setup deletes the
    existing collection. A run that fails mid-way can leave a prefix of the
    points in the collection.
    """

    def __init__(
        self,
        embedder: EmbeddingClient,
        index: VectorIndex,
        chunker: Optional[TextChunker] = None,
        concurrency: int = None,
        upsert_batch_size: int = None,
        super_batch_size: int = None,
    ):
        """Initialize the ingest pipeline.

        Args:
            embedder: Embedding client with retry policy
            index: Target vector index (its collection is rebuilt)
            chunker: Text chunker (default built from config)
            concurrency: In-flight embedding calls per window
            upsert_batch_size: Points per upsert request
            super_batch_size: Chunks per progress step
        """
        self.embedder = embedder
        self.index = index
        self.chunker = chunker or TextChunker()
        self.concurrency = concurrency or config.EMBED_CONCURRENCY
        self.upsert_batch_size = upsert_batch_size or config.UPSERT_BATCH_SIZE
        self.super_batch_size = super_batch_size or config.SUPER_BATCH_SIZE

        self.state = IngestState.IDLE
        self.dimension: Optional[int] = None

    def _transition(self, state: IngestState) -> None:
        logger.info("ingest_state_changed", previous=self.state.value, state=state.value)
        self.state = state

    async def ingest_file(
        self, path: Path, progress_callback: Optional[ProgressCallback] = None
    ) -> IngestStats:
        """Read a document from disk and ingest it.

        Raises:
            FileNotFoundError: If the document does not exist
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Document not found: {path}")

        text = path.read_text(encoding="utf-8")
        logger.info("document_loaded", path=str(path), size_bytes=len(text.encode("utf-8")))
        return await self.ingest_text(text, progress_callback=progress_callback)

    async def ingest_text(
        self, text: str, progress_callback: Optional[ProgressCallback] = None
    ) -> IngestStats:
        """Rebuild the collection from a document's text.

        Args:
            text: Document text
            progress_callback: Optional callback(current, total, stage)

        Returns:
            IngestStats for the completed run

        Raises:
            GatewayError: On any unrecoverable failure (the run ends FAILED)
        """
        started = time.monotonic()
        try:
            self._transition(IngestState.CONNECTING)
            if not await self.index.health_check():
                raise index_error(f"Cannot connect to vector index for {self.index.collection}")

            chunks = self.chunker.chunk_text(text)
            if not chunks:
                raise validation_error("Document produced no chunks; nothing to index")

            self._transition(IngestState.DIMENSION_PROBE)
            probe = await self.embedder.embed(chunks[0].text)
            self.dimension = probe.dimension
            logger.info("embedding_dimension_detected", dimension=self.dimension)

            self._transition(IngestState.COLLECTION_SETUP)
            await self.index.delete_collection()
            await self.index.ensure_collection(self.dimension)

            self._transition(IngestState.EMBEDDING)
            await self._embed_and_upsert(chunks, probe, progress_callback)

            info = await self.index.get_collection_info()
            stats = IngestStats(
                collection=self.index.collection,
                chunks=len(chunks),
                points=info.points_count if info else len(chunks),
                dimension=self.dimension,
                elapsed_seconds=time.monotonic() - started,
            )
        except Exception as e:
            logger.error(
                "ingest_failed",
                state=self.state.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            self._transition(IngestState.FAILED)
            raise

        self._transition(IngestState.COMPLETE)
        logger.info(
            "ingest_completed",
            collection=stats.collection,
            points=stats.points,
            dimension=stats.dimension,
            elapsed_seconds=round(stats.elapsed_seconds, 2),
            chunks_per_minute=round(stats.chunks_per_minute, 1),
        )
        return stats

    async def _embed_and_upsert(
        self,
        chunks: List[Chunk],
        probe: Embedding,
        progress_callback: Optional[ProgressCallback],
    ) -> None:
        total = len(chunks)
        processed = 0
        # The dimension probe already embedded the first chunk
        ready = {chunks[0].index: probe}

        for start in range(0, total, self.super_batch_size):
            super_batch = chunks[start : start + self.super_batch_size]
            points: List[IndexPoint] = []

            for w in range(0, len(super_batch), self.concurrency):
                window = super_batch[w : w + self.concurrency]

                pending = [c for c in window if c.index not in ready]
                embeddings = await self.embedder.embed_many([c.text for c in pending])
                ready.update((c.index, e) for c, e in zip(pending, embeddings))

                for chunk in window:
                    embedding = ready.pop(chunk.index)
                    if embedding.dimension != self.dimension:
                        raise GatewayError(
                            ErrorKind.INDEX_ERROR,
                            f"Embedding dimension mismatch for chunk {chunk.index}: "
                            f"expected {self.dimension}, got {embedding.dimension}",
                        )
                    points.append(_to_point(chunk, embedding))

                if progress_callback:
                    progress_callback(start + w + len(window), total, "embedding")

            for b in range(0, len(points), self.upsert_batch_size):
                await self.index.upsert_batch(points[b : b + self.upsert_batch_size])

            processed += len(super_batch)
            logger.info("super_batch_upserted", processed=processed, total=total)
            if progress_callback:
                progress_callback(processed, total, "upserted")
