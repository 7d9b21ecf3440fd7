"""FAISS vector index for local runs without a Qdrant server.

Handles:
- Cosine search via inner product over L2-normalized vectors
- Overwrite-by-id upserts
- Index and payload persistence next to each other on disk
"""
import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import faiss
import numpy as np
import structlog

from hr_gateway import config
from hr_gateway.errors import index_error
from hr_gateway.rag.store import CollectionInfo, IndexPoint, SearchHit, VectorIndex

logger = structlog.get_logger()


def _normalize(vectors: np.ndarray) -> np.ndarray:
    norms = np.linalg.norm(vectors, axis=1, keepdims=True)
    norms[norms == 0] = 1.0
    return (vectors / norms).astype(np.float32)


class FaissVectorIndex(VectorIndex):
    """In-process vector index with one FAISS collection per instance."""

    def __init__(
        self,
        index_dir: Path = None,
        collection: str = None,
        persist: bool = True,
    ):
        """Initialize the FAISS index.

        Args:
            index_dir: Directory holding index and payload files (default from config)
            collection: Collection name, used as the file stem (default from config)
            persist: Write the index to disk after every change
        """
        self.index_dir = Path(index_dir or config.FAISS_INDEX_DIR)
        self.collection = collection or config.QDRANT_COLLECTION
        self.persist = persist

        self.index_path = self.index_dir / f"{self.collection}.index"
        self.metadata_path = self.index_dir / f"{self.collection}.json"

        self.index: Optional[faiss.Index] = None
        self.dimension: Optional[int] = None
        self.payloads: Dict[int, Dict[str, Any]] = {}

    def _load(self) -> None:
        """Load the collection from disk if it exists and is not loaded yet."""
        if self.index is not None or not self.persist:
            return
        if not (self.index_path.exists() and self.metadata_path.exists()):
            return

        try:
            with open(self.metadata_path, "r", encoding="utf-8") as f:
                metadata = json.load(f)
            self.index = faiss.read_index(str(self.index_path))
        except (OSError, ValueError, RuntimeError) as e:
            raise index_error(f"Failed to load FAISS collection {self.collection}: {e}") from e

        self.dimension = int(metadata["dimension"])
        self.payloads = {int(k): v for k, v in metadata.get("payloads", {}).items()}

        logger.info(
            "faiss_collection_loaded",
            collection=self.collection,
            dimension=self.dimension,
            vector_count=self.index.ntotal,
        )

    def _save(self) -> None:
        if not self.persist or self.index is None:
            return

        self.index_dir.mkdir(parents=True, exist_ok=True)
        metadata = {
            "collection": self.collection,
            "dimension": self.dimension,
            "distance": "Cosine",
            "payloads": {str(k): v for k, v in self.payloads.items()},
        }
        try:
            faiss.write_index(self.index, str(self.index_path))
            with open(self.metadata_path, "w", encoding="utf-8") as f:
                json.dump(metadata, f)
        except (OSError, RuntimeError) as e:
            raise index_error(f"Failed to save FAISS collection {self.collection}: {e}") from e

    def _require_index(self) -> faiss.Index:
        self._load()
        if self.index is None:
            raise index_error(f"Collection {self.collection} does not exist")
        return self.index

    async def health_check(self) -> bool:
        if not self.persist:
            return True
        try:
            self.index_dir.mkdir(parents=True, exist_ok=True)
            return True
        except OSError as e:
            logger.warning("faiss_health_check_failed", error=str(e))
            return False

    async def collection_exists(self) -> bool:
        self._load()
        return self.index is not None

    async def ensure_collection(self, dimension: int) -> None:
        self._load()
        if self.index is not None:
            if self.dimension != dimension:
                raise index_error(
                    f"Collection {self.collection} has dimension {self.dimension}, "
                    f"expected {dimension}. Delete it before recreating."
                )
            return

        self.index = faiss.IndexIDMap(faiss.IndexFlatIP(dimension))
        self.dimension = dimension
        self.payloads = {}
        self._save()

        logger.info("faiss_collection_created", collection=self.collection, dimension=dimension)

    async def delete_collection(self) -> None:
        self.index = None
        self.dimension = None
        self.payloads = {}

        for path in (self.index_path, self.metadata_path):
            if path.exists():
                path.unlink()

        logger.info("faiss_collection_deleted", collection=self.collection)

    async def upsert_batch(self, points: List[IndexPoint]) -> None:
        index = self._require_index()
        if not points:
            return

        vectors = np.array([p.vector for p in points], dtype=np.float32)
        if vectors.ndim != 2 or vectors.shape[1] != self.dimension:
            raise index_error(
                f"Embedding dimension mismatch: expected {self.dimension}, "
                f"got {vectors.shape[-1] if vectors.ndim == 2 else 'ragged'}"
            )

        ids = np.array([p.id for p in points], dtype=np.int64)
        index.remove_ids(ids)
        index.add_with_ids(_normalize(vectors), ids)

        for point in points:
            self.payloads[point.id] = dict(point.payload)

        self._save()

        logger.debug("faiss_points_upserted", count=len(points), total_vectors=index.ntotal)

    async def search(self, vector: List[float], k: int) -> List[SearchHit]:
        index = self._require_index()

        query = np.array([vector], dtype=np.float32)
        if query.shape[1] != self.dimension:
            raise index_error(
                f"Query dimension mismatch: expected {self.dimension}, got {query.shape[1]}"
            )

        k = min(k, index.ntotal)
        if k <= 0:
            return []

        scores, ids = index.search(_normalize(query), k)

        hits = [
            SearchHit(id=int(i), score=float(s), payload=self.payloads.get(int(i), {}))
            for s, i in zip(scores[0].tolist(), ids[0].tolist())
            if i != -1
        ]
        hits.sort(key=lambda h: h.score, reverse=True)
        return hits

    async def get_collection_info(self) -> Optional[CollectionInfo]:
        self._load()
        if self.index is None:
            return None

        return CollectionInfo(
            name=self.collection,
            points_count=int(self.index.ntotal),
            dimension=self.dimension,
        )
