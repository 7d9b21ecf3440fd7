"""Embedding client with bounded retry and linear backoff."""
import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional

import structlog

from hr_gateway import config
from hr_gateway.errors import GatewayError
from hr_gateway.llm_client import OllamaClient

logger = structlog.get_logger()

SleepFunc = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class Embedding:
    """Embedding vector with explicit dimension."""

    vector: List[float]
    dimension: int

    @classmethod
    def from_vector(cls, vector: List[float]) -> "Embedding":
        return cls(vector=vector, dimension=len(vector))


class EmbeddingClient:
    """Wraps the Ollama embedding endpoint with a retry policy.

    A call is attempted up to ``max_attempts`` times. After a failed attempt
    other than the last, the client sleeps ``attempt * backoff_seconds``
    (1s, then 2s with the defaults). The last attempt's error is re-raised
    as-is, so callers can still tell a timeout from an unreachable service
    by ``error.kind``.
    """

    def __init__(
        self,
        client: Optional[OllamaClient] = None,
        model: str = None,
        max_attempts: int = None,
        backoff_seconds: float = None,
        sleep: Optional[SleepFunc] = None,
    ):
        """Initialize the embedding client.

        Args:
            client: Ollama client (a default one is created if not provided)
            model: Embedding model name (default from config)
            max_attempts: Attempts per call, including the first
            backoff_seconds: Base delay multiplied by the attempt number
            sleep: Awaitable sleep function (injectable for tests)
        """
        self.client = client or OllamaClient()
        self.model = model or config.EMBEDDING_MODEL
        self.max_attempts = max_attempts or config.EMBED_MAX_ATTEMPTS
        self.backoff_seconds = (
            config.EMBED_BACKOFF_SECONDS if backoff_seconds is None else backoff_seconds
        )
        self._sleep = sleep or asyncio.sleep

    async def embed(self, text: str) -> Embedding:
        """Embed one text, retrying transient failures.

        Raises:
            GatewayError: REMOTE_TIMEOUT or REMOTE_UNAVAILABLE from the final attempt
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                vector = await self.client.embed(text, model=self.model)
                return Embedding.from_vector(vector)
            except GatewayError as e:
                if attempt == self.max_attempts:
                    logger.error(
                        "embedding_failed",
                        attempts=attempt,
                        kind=e.kind.name,
                        text_preview=text[:100],
                    )
                    raise

                delay = attempt * self.backoff_seconds
                logger.warning(
                    "embedding_retry",
                    attempt=attempt,
                    max_attempts=self.max_attempts,
                    kind=e.kind.name,
                    delay_seconds=delay,
                )
                await self._sleep(delay)

    async def embed_many(self, texts: List[str]) -> List[Embedding]:
        """Embed all texts concurrently and return them in input order.

        The caller bounds concurrency by the size of ``texts``. Every call
        runs to completion before this returns; if any failed, the first
        failure in input order is raised.
        """
        if not texts:
            return []

        results = await asyncio.gather(
            *(self.embed(t) for t in texts), return_exceptions=True
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        return list(results)
