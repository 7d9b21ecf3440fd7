"""Tests for the ingest pipeline state machine and batching."""
import asyncio

import pytest

from hr_gateway.errors import ErrorKind, GatewayError
from hr_gateway.rag.chunker import TextChunker
from hr_gateway.rag.embedder import Embedding, EmbeddingClient
from hr_gateway.rag.ingest import IngestPipeline, IngestState
from hr_gateway.rag.store_faiss import FaissVectorIndex

from tests.helpers import EMBED_DIM, HANDBOOK_TEXT


def _document(paragraphs: int, sentences: int = 6) -> str:
    return "\n\n".join(
        " ".join(
            f"Section {p} rule {s} explains what employees should expect from the policy."
            for s in range(sentences)
        )
        for p in range(paragraphs)
    )


class CountingEmbedder(EmbeddingClient):
    """Tracks how many embedding calls are in flight at once."""

    def __init__(self, client, **kwargs):
        super().__init__(client=client, **kwargs)
        self.in_flight = 0
        self.max_in_flight = 0

    async def embed(self, text):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0.001)
            return await super().embed(text)
        finally:
            self.in_flight -= 1


class ShrinkingEmbedder(EmbeddingClient):
    """Returns a shorter vector for one specific text."""

    def __init__(self, client, odd_text):
        super().__init__(client=client)
        self.odd_text = odd_text

    async def embed(self, text):
        embedding = await super().embed(text)
        if text == self.odd_text:
            return Embedding.from_vector(embedding.vector[:4])
        return embedding


class RecordingIndex(FaissVectorIndex):
    def __init__(self):
        super().__init__(collection="test_handbook", persist=False)
        self.upsert_sizes = []
        self.deletes = 0

    async def delete_collection(self):
        self.deletes += 1
        await super().delete_collection()

    async def upsert_batch(self, points):
        self.upsert_sizes.append(len(points))
        await super().upsert_batch(points)


def _chunker() -> TextChunker:
    return TextChunker(chunk_size=120, chunk_overlap=20)


def _record_states(pipeline: IngestPipeline):
    seen = []
    transition = pipeline._transition

    def record(state):
        seen.append(state)
        transition(state)

    pipeline._transition = record
    return seen


@pytest.mark.asyncio
async def test_successful_run_walks_every_state(ollama_stub, faiss_index):
    pipeline = IngestPipeline(EmbeddingClient(client=ollama_stub.client()), faiss_index)
    seen = _record_states(pipeline)

    stats = await pipeline.ingest_text(HANDBOOK_TEXT)

    assert seen == [
        IngestState.CONNECTING,
        IngestState.DIMENSION_PROBE,
        IngestState.COLLECTION_SETUP,
        IngestState.EMBEDDING,
        IngestState.COMPLETE,
    ]
    assert pipeline.state is IngestState.COMPLETE
    assert stats.chunks == stats.points == 1
    assert stats.dimension == EMBED_DIM
    assert stats.collection == "test_handbook"


@pytest.mark.asyncio
async def test_each_chunk_is_embedded_once(ollama_stub, faiss_index):
    text = _document(paragraphs=3)
    chunks = _chunker().chunk_text(text)
    pipeline = IngestPipeline(
        EmbeddingClient(client=ollama_stub.client()), faiss_index, chunker=_chunker()
    )

    stats = await pipeline.ingest_text(text)

    assert stats.points == len(chunks)
    assert sorted(ollama_stub.embed_inputs) == sorted(c.text for c in chunks)


@pytest.mark.asyncio
async def test_reingest_replaces_previous_points(ollama_stub, faiss_index):
    embedder = EmbeddingClient(client=ollama_stub.client())
    big = _document(paragraphs=4)
    small = _document(paragraphs=1)

    await IngestPipeline(embedder, faiss_index, chunker=_chunker()).ingest_text(big)
    stats = await IngestPipeline(embedder, faiss_index, chunker=_chunker()).ingest_text(small)

    expected = len(_chunker().chunk_text(small))
    assert expected < len(_chunker().chunk_text(big))
    assert stats.points == expected
    assert (await faiss_index.get_collection_info()).points_count == expected


@pytest.mark.asyncio
async def test_empty_document_fails_validation(ollama_stub, faiss_index):
    pipeline = IngestPipeline(EmbeddingClient(client=ollama_stub.client()), faiss_index)

    with pytest.raises(GatewayError) as exc_info:
        await pipeline.ingest_text("   \n\n  ")

    assert exc_info.value.kind is ErrorKind.VALIDATION
    assert pipeline.state is IngestState.FAILED
    assert ollama_stub.embed_inputs == []


@pytest.mark.asyncio
async def test_unreachable_index_fails_before_embedding(ollama_stub, qdrant_stub):
    qdrant_stub.down = True
    pipeline = IngestPipeline(EmbeddingClient(client=ollama_stub.client()), qdrant_stub.index())

    with pytest.raises(GatewayError) as exc_info:
        await pipeline.ingest_text(HANDBOOK_TEXT)

    assert exc_info.value.kind is ErrorKind.INDEX_ERROR
    assert pipeline.state is IngestState.FAILED
    assert ollama_stub.embed_inputs == []


@pytest.mark.asyncio
async def test_embedding_outage_aborts_after_retries(ollama_stub, sleep_recorder):
    ollama_stub.down = True
    index = RecordingIndex()
    pipeline = IngestPipeline(EmbeddingClient(client=ollama_stub.client(), sleep=sleep_recorder), index)

    with pytest.raises(GatewayError) as exc_info:
        await pipeline.ingest_text(HANDBOOK_TEXT)

    assert exc_info.value.kind is ErrorKind.REMOTE_UNAVAILABLE
    assert pipeline.state is IngestState.FAILED
    assert sleep_recorder.delays == [1.0, 2.0]
    # Failure during the probe leaves the collection untouched
    assert index.deletes == 0


@pytest.mark.asyncio
async def test_dimension_mismatch_aborts_run(ollama_stub, faiss_index):
    text = _document(paragraphs=2)
    chunks = _chunker().chunk_text(text)
    embedder = ShrinkingEmbedder(ollama_stub.client(), odd_text=chunks[-1].text)
    pipeline = IngestPipeline(embedder, faiss_index, chunker=_chunker())

    with pytest.raises(GatewayError) as exc_info:
        await pipeline.ingest_text(text)

    assert exc_info.value.kind is ErrorKind.INDEX_ERROR
    assert "dimension mismatch" in exc_info.value.message
    assert pipeline.state is IngestState.FAILED


@pytest.mark.asyncio
async def test_progress_and_batching(ollama_stub):
    text = _document(paragraphs=2)
    total = len(_chunker().chunk_text(text))
    assert total == 12

    index = RecordingIndex()
    events = []
    pipeline = IngestPipeline(
        EmbeddingClient(client=ollama_stub.client()),
        index,
        chunker=_chunker(),
        concurrency=5,
        upsert_batch_size=4,
        super_batch_size=10,
    )

    await pipeline.ingest_text(text, progress_callback=lambda *event: events.append(event))

    assert events == [
        (5, 12, "embedding"),
        (10, 12, "embedding"),
        (10, 12, "upserted"),
        (12, 12, "embedding"),
        (12, 12, "upserted"),
    ]
    assert index.upsert_sizes == [4, 4, 2, 2]


@pytest.mark.asyncio
async def test_embedding_concurrency_is_bounded(ollama_stub, faiss_index):
    embedder = CountingEmbedder(ollama_stub.client())
    pipeline = IngestPipeline(embedder, faiss_index, chunker=_chunker(), concurrency=3)

    stats = await pipeline.ingest_text(_document(paragraphs=3))

    assert stats.points == stats.chunks
    assert 1 < embedder.max_in_flight <= 3


@pytest.mark.asyncio
async def test_ingest_into_qdrant(ollama_stub, qdrant_stub):
    index = qdrant_stub.index()
    pipeline = IngestPipeline(EmbeddingClient(client=ollama_stub.client()), index, chunker=_chunker())

    stats = await pipeline.ingest_text(_document(paragraphs=2))

    assert stats.points == 12
    assert qdrant_stub.create_bodies[0]["vectors"] == {"size": EMBED_DIM, "distance": "Cosine"}
    payload = next(iter(qdrant_stub.collections["hr_documents"]["points"].values()))[1]
    assert set(payload) == {"text", "index", "length"}


@pytest.mark.asyncio
async def test_ingest_file(ollama_stub, faiss_index, tmp_path):
    handbook = tmp_path / "handbook.txt"
    handbook.write_text(HANDBOOK_TEXT, encoding="utf-8")
    pipeline = IngestPipeline(EmbeddingClient(client=ollama_stub.client()), faiss_index)

    stats = await pipeline.ingest_file(handbook)

    assert stats.points == 1
    with pytest.raises(FileNotFoundError):
        await pipeline.ingest_file(tmp_path / "missing.txt")


class FailingWindowEmbedder(EmbeddingClient):
    """Fails one text at once; the rest answer slowly and note the pipeline state."""

    def __init__(self, client, failing_text):
        super().__init__(client=client, max_attempts=1)
        self.failing_text = failing_text
        self.pipeline = None
        self.finished_states = []

    async def embed(self, text):
        if text == self.failing_text:
            raise GatewayError(ErrorKind.REMOTE_UNAVAILABLE, "embedding failed")
        await asyncio.sleep(0.01)
        embedding = await super().embed(text)
        self.finished_states.append(self.pipeline.state)
        return embedding


@pytest.mark.asyncio
async def test_failed_window_settles_before_run_fails(ollama_stub, faiss_index):
    text = _document(paragraphs=1)
    chunks = _chunker().chunk_text(text)
    embedder = FailingWindowEmbedder(ollama_stub.client(), failing_text=chunks[2].text)
    pipeline = IngestPipeline(embedder, faiss_index, chunker=_chunker(), concurrency=5)
    embedder.pipeline = pipeline

    with pytest.raises(GatewayError):
        await pipeline.ingest_text(text)
    await asyncio.sleep(0.05)

    assert pipeline.state is IngestState.FAILED
    # The probe plus the three other chunks of the first window
    assert len(embedder.finished_states) == 4
    assert IngestState.FAILED not in embedder.finished_states
