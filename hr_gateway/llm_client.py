"""Ollama LLM client wrapper with error handling."""
from typing import List, Optional

import httpx
import structlog

from hr_gateway import config
from hr_gateway.errors import ErrorKind, GatewayError

logger = structlog.get_logger()


def _remote_error(error: httpx.HTTPError, action: str) -> GatewayError:
    """Translate an httpx failure into a tagged remote-service error."""
    if isinstance(error, httpx.TimeoutException):
        return GatewayError(ErrorKind.REMOTE_TIMEOUT, f"{action} timed out")
    if isinstance(error, httpx.ConnectError):
        return GatewayError(
            ErrorKind.REMOTE_UNAVAILABLE, "Cannot connect to Ollama. Is it running?"
        )
    return GatewayError(ErrorKind.REMOTE_UNAVAILABLE, f"Failed to {action.lower()}: {error}")


def _json_body(response: httpx.Response, action: str) -> dict:
    """Decode a JSON object body; anything else is an unavailable-service error."""
    try:
        data = response.json()
    except ValueError as e:
        logger.error("ollama_invalid_response", action=action, body_preview=response.text[:100])
        raise GatewayError(
            ErrorKind.REMOTE_UNAVAILABLE, f"{action} failed: Ollama returned a non-JSON response"
        ) from e

    if not isinstance(data, dict):
        logger.error("ollama_invalid_response", action=action, body_type=type(data).__name__)
        raise GatewayError(
            ErrorKind.REMOTE_UNAVAILABLE, f"{action} failed: unexpected response from Ollama"
        )
    return data


class OllamaClient:
    """Async client for interacting with Ollama API."""

    def __init__(
        self,
        base_url: str = None,
        timeout: float = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize Ollama client.

        Args:
            base_url: Ollama API base URL (defaults to config.OLLAMA_BASE_URL)
            timeout: Request timeout in seconds (defaults to config.OLLAMA_TIMEOUT)
            transport: Optional httpx transport (used to stub Ollama in tests)
        """
        self.base_url = (base_url or config.OLLAMA_BASE_URL).rstrip("/")
        self.timeout = timeout or config.OLLAMA_TIMEOUT
        self.transport = transport

    def _client(self, timeout: float = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout or self.timeout,
            transport=self.transport,
        )

    async def embed(self, text: str, model: str = None) -> List[float]:
        """Generate an embedding vector for a single text.

        Args:
            text: Text to embed
            model: Model to use (defaults to config.EMBEDDING_MODEL)

        Returns:
            The embedding vector

        Raises:
            GatewayError: REMOTE_TIMEOUT or REMOTE_UNAVAILABLE
        """
        model = model or config.EMBEDDING_MODEL

        logger.debug("ollama_embedding_request", model=model, text_length=len(text))

        try:
            async with self._client() as client:
                response = await client.post(
                    "/api/embed",
                    json={"model": model, "input": text},
                )
                response.raise_for_status()
                data = _json_body(response, "Embedding generation")
        except httpx.HTTPError as e:
            logger.error("ollama_embedding_error", error=str(e), error_type=type(e).__name__)
            raise _remote_error(e, "Embedding generation") from e

        embeddings = data.get("embeddings") or []
        if not embeddings or not embeddings[0]:
            raise GatewayError(
                ErrorKind.REMOTE_UNAVAILABLE, "Empty embedding returned from Ollama"
            )

        vector = [float(x) for x in embeddings[0]]
        logger.debug("ollama_embedding_response", model=model, dimension=len(vector))
        return vector

    async def generate(self, prompt: str, model: str = None) -> str:
        """Run a non-streaming completion and return the full response text.

        Args:
            prompt: Complete prompt text
            model: Model to use (defaults to config.CHAT_MODEL)

        Raises:
            GatewayError: REMOTE_TIMEOUT or REMOTE_UNAVAILABLE
        """
        model = model or config.CHAT_MODEL

        logger.info("ollama_generate_request", model=model, prompt_length=len(prompt))

        try:
            async with self._client() as client:
                response = await client.post(
                    "/api/generate",
                    json={"model": model, "prompt": prompt, "stream": False},
                )
                response.raise_for_status()
                data = _json_body(response, "Response generation")
        except httpx.HTTPError as e:
            logger.error("ollama_generate_error", error=str(e), error_type=type(e).__name__)
            raise _remote_error(e, "Response generation") from e

        answer = data.get("response", "")
        logger.info("ollama_generate_response", model=model, response_length=len(answer))
        return answer

    async def list_models(self) -> List[str]:
        """List all available Ollama models.

        Raises:
            GatewayError: If Ollama cannot be reached
        """
        try:
            async with self._client(timeout=5.0) as client:
                response = await client.get("/api/tags")
                response.raise_for_status()
                data = _json_body(response, "Model listing")
                return [m["name"] for m in data.get("models", [])]
        except httpx.HTTPError as e:
            logger.error("ollama_list_models_error", error=str(e))
            raise _remote_error(e, "Model listing") from e

    async def health_check(self) -> bool:
        """Return True when Ollama answers the tags endpoint."""
        try:
            await self.list_models()
            return True
        except GatewayError:
            return False
