"""Service context: the shared objects a running gateway works with.

One context is built per application instance and attached to the Quart app,
so request handlers never reach for module-level state.
"""
import time
from dataclasses import dataclass, field

import structlog

from hr_gateway import config
from hr_gateway.llm_client import OllamaClient
from hr_gateway.rag.embedder import EmbeddingClient
from hr_gateway.rag.retriever import Retriever
from hr_gateway.rag.store import VectorIndex
from hr_gateway.rag.synthesizer import AnswerSynthesizer
from hr_gateway.rate_limit import SlidingWindowRateLimiter

logger = structlog.get_logger()


@dataclass
class GatewayContext:
    ollama: OllamaClient
    index: VectorIndex
    retriever: Retriever
    synthesizer: AnswerSynthesizer
    rate_limiter: SlidingWindowRateLimiter
    production: bool = False
    started_at: float = field(default_factory=time.monotonic)

    @property
    def uptime(self) -> float:
        return time.monotonic() - self.started_at


def build_index(backend: str = None, collection: str = None) -> VectorIndex:
    """Create the configured vector index adapter.

    Raises:
        ValueError: For an unknown backend name
    """
    backend = (backend or config.VECTOR_BACKEND).lower()

    if backend == "qdrant":
        from hr_gateway.rag.store_qdrant import QdrantVectorIndex

        return QdrantVectorIndex(collection=collection)

    if backend == "faiss":
        from hr_gateway.rag.store_faiss import FaissVectorIndex

        return FaissVectorIndex(collection=collection)

    raise ValueError(f"Unknown vector backend: {backend!r} (expected 'qdrant' or 'faiss')")


def build_context(
    ollama: OllamaClient = None,
    index: VectorIndex = None,
    embedder: EmbeddingClient = None,
    rate_limiter: SlidingWindowRateLimiter = None,
    production: bool = None,
) -> GatewayContext:
    """Wire the gateway services, using config defaults for anything not given."""
    ollama = ollama or OllamaClient()
    index = index or build_index()
    embedder = embedder or EmbeddingClient(client=ollama)

    context = GatewayContext(
        ollama=ollama,
        index=index,
        retriever=Retriever(embedder=embedder, index=index),
        synthesizer=AnswerSynthesizer(client=ollama),
        rate_limiter=rate_limiter or SlidingWindowRateLimiter(),
        production=config.is_production() if production is None else production,
    )

    logger.info(
        "gateway_context_built",
        backend=type(index).__name__,
        collection=index.collection,
        chat_model=config.CHAT_MODEL,
        embedding_model=config.EMBEDDING_MODEL,
    )
    return context
