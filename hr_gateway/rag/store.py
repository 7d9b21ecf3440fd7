"""Vector index contract shared by the Qdrant and FAISS adapters."""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import numpy as np


@dataclass(frozen=True)
class IndexPoint:
    """A point to upsert into the index.

    Fields:
        id: Stable integer id (the chunk index).
        vector: Embedding values.
        payload: Stored alongside the vector (text, index, length).
    """

    id: int
    vector: List[float]
    payload: Dict[str, Any]


@dataclass(frozen=True)
class SearchHit:
    """A search match; score is cosine similarity (higher is better)."""

    id: int
    score: float
    payload: Dict[str, Any]


@dataclass(frozen=True)
class CollectionInfo:
    """Summary of a collection used by health reporting and ingestion stats."""

    name: str
    points_count: int
    dimension: Optional[int]
    status: str = "green"


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two vectors; 0.0 if either is all zeros."""
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)

    if va.shape != vb.shape:
        raise ValueError(f"Vector shape mismatch: {va.shape} vs {vb.shape}")

    norm = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if norm == 0.0:
        return 0.0

    # Clamp float noise so cos(a, a) is exactly 1.0
    return float(np.clip(np.dot(va, vb) / norm, -1.0, 1.0))


class VectorIndex(ABC):
    """Port for a named collection of vectors with cosine search."""

    collection: str

    @abstractmethod
    async def health_check(self) -> bool:
        """Return True if the backend is reachable. Must not raise."""
        raise NotImplementedError

    @abstractmethod
    async def collection_exists(self) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def ensure_collection(self, dimension: int) -> None:
        """Create the collection (cosine) if absent.

        No-op when it exists with the same dimension.

        Raises:
            GatewayError: INDEX_ERROR if it exists with another dimension
        """
        raise NotImplementedError

    @abstractmethod
    async def delete_collection(self) -> None:
        """Drop the collection; an absent collection is not an error."""
        raise NotImplementedError

    @abstractmethod
    async def upsert_batch(self, points: List[IndexPoint]) -> None:
        """Insert or overwrite points by id, returning once they are durable."""
        raise NotImplementedError

    @abstractmethod
    async def search(self, vector: List[float], k: int) -> List[SearchHit]:
        """Return up to k nearest points in descending score order."""
        raise NotImplementedError

    @abstractmethod
    async def get_collection_info(self) -> Optional[CollectionInfo]:
        """Return collection info, or None if the collection does not exist."""
        raise NotImplementedError
