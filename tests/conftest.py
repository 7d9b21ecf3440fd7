"""Shared fixtures: in-process stand-ins for the Ollama and Qdrant HTTP APIs.

Both stubs plug into the real clients through ``httpx.MockTransport`` so the
request/response handling of the adapters is exercised as written.
"""
import json
import re
from typing import Dict, List, Optional

import httpx
import numpy as np
import pytest

from hr_gateway.llm_client import OllamaClient
from hr_gateway.rag.store_faiss import FaissVectorIndex
from hr_gateway.rag.store_qdrant import QdrantVectorIndex
from tests.helpers import EMBED_DIM, embed_text


class OllamaStub:
    """Answers /api/embed, /api/generate and /api/tags like a local Ollama."""

    def __init__(self, dimension: int = EMBED_DIM, answer: str = "You get 2 remote days per week."):
        self.dimension = dimension
        self.answer = answer
        self.embed_inputs: List[str] = []
        self.embed_bodies: List[dict] = []
        self.prompts: List[str] = []
        self.generate_bodies: List[dict] = []
        self.embed_errors: List[Exception] = []   # raised in order, one per call
        self.generate_error: Optional[Exception] = None
        self.down = False
        self.models = ["llama3:latest", "nomic-embed-text:latest"]

    def handler(self, request: httpx.Request) -> httpx.Response:
        if self.down:
            raise httpx.ConnectError("Connection refused", request=request)

        if request.url.path == "/api/tags":
            return httpx.Response(200, json={"models": [{"name": m} for m in self.models]})

        body = json.loads(request.content or b"{}")

        if request.url.path == "/api/embed":
            self.embed_bodies.append(body)
            self.embed_inputs.append(body["input"])
            if self.embed_errors:
                error = self.embed_errors.pop(0)
                if isinstance(error, httpx.Response):
                    return error
                raise error
            return httpx.Response(200, json={"embeddings": [embed_text(body["input"], self.dimension)]})

        if request.url.path == "/api/generate":
            self.generate_bodies.append(body)
            self.prompts.append(body["prompt"])
            if self.generate_error is not None:
                raise self.generate_error
            return httpx.Response(200, json={"model": body["model"], "response": self.answer, "done": True})

        return httpx.Response(404, json={"error": "not found"})

    def client(self, timeout: float = 5.0) -> OllamaClient:
        return OllamaClient(
            base_url="http://ollama.test",
            timeout=timeout,
            transport=httpx.MockTransport(self.handler),
        )


class QdrantStub:
    """Minimal in-memory Qdrant REST API (collections, upsert, search)."""

    _COLLECTION = re.compile(r"^/collections/([^/]+)$")
    _POINTS = re.compile(r"^/collections/([^/]+)/points$")
    _SEARCH = re.compile(r"^/collections/([^/]+)/points/search$")

    def __init__(self):
        self.collections: Dict[str, dict] = {}
        self.requests: List[httpx.Request] = []
        self.create_bodies: List[dict] = []
        self.down = False

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.down:
            raise httpx.ConnectError("Connection refused", request=request)

        path = request.url.path
        method = request.method

        if path == "/collections" and method == "GET":
            names = [{"name": n} for n in self.collections]
            return httpx.Response(200, json={"result": {"collections": names}, "status": "ok"})

        match = self._SEARCH.match(path)
        if match and method == "POST":
            return self._search(match.group(1), json.loads(request.content))

        match = self._POINTS.match(path)
        if match and method == "PUT":
            return self._upsert(match.group(1), json.loads(request.content))

        match = self._COLLECTION.match(path)
        if match:
            name = match.group(1)
            if method == "GET":
                if name not in self.collections:
                    return self._not_found(name)
                c = self.collections[name]
                return httpx.Response(200, json={"result": {
                    "status": "green",
                    "points_count": len(c["points"]),
                    "config": {"params": {"vectors": {"size": c["size"], "distance": "Cosine"}}},
                }})
            if method == "PUT":
                body = json.loads(request.content)
                self.create_bodies.append(body)
                self.collections[name] = {"size": body["vectors"]["size"], "points": {}}
                return httpx.Response(200, json={"result": True, "status": "ok"})
            if method == "DELETE":
                if name not in self.collections:
                    return self._not_found(name)
                del self.collections[name]
                return httpx.Response(200, json={"result": True, "status": "ok"})

        return httpx.Response(404, json={"status": {"error": "Not found"}})

    @staticmethod
    def _not_found(name: str) -> httpx.Response:
        return httpx.Response(404, json={"status": {"error": f"Collection `{name}` doesn't exist!"}})

    def _upsert(self, name: str, body: dict) -> httpx.Response:
        if name not in self.collections:
            return self._not_found(name)
        points = self.collections[name]["points"]
        for p in body["points"]:
            points[p["id"]] = (p["vector"], p["payload"])
        return httpx.Response(200, json={"result": {"status": "completed"}, "status": "ok"})

    def _search(self, name: str, body: dict) -> httpx.Response:
        if name not in self.collections:
            return self._not_found(name)
        query = np.asarray(body["vector"], dtype=float)
        scored = []
        for pid, (vector, payload) in self.collections[name]["points"].items():
            v = np.asarray(vector, dtype=float)
            score = float(np.dot(query, v) / (np.linalg.norm(query) * np.linalg.norm(v)))
            scored.append({"id": pid, "version": 0, "score": score, "payload": payload})
        scored.sort(key=lambda s: s["score"], reverse=True)
        return httpx.Response(200, json={"result": scored[: body["limit"]], "status": "ok"})

    def index(self, collection: str = "hr_documents", api_key: str = "") -> QdrantVectorIndex:
        return QdrantVectorIndex(
            url="http://qdrant.test",
            collection=collection,
            api_key=api_key,
            timeout=5.0,
            transport=httpx.MockTransport(self.handler),
        )


class SleepRecorder:
    """Awaitable stand-in for asyncio.sleep that records requested delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def ollama_stub() -> OllamaStub:
    return OllamaStub()


@pytest.fixture
def qdrant_stub() -> QdrantStub:
    return QdrantStub()


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def faiss_index() -> FaissVectorIndex:
    """Memory-only FAISS collection."""
    return FaissVectorIndex(collection="test_handbook", persist=False)
