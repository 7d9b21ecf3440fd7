"""Paragraph- and sentence-aware text chunking for the RAG pipeline.

Chunks are character-based to avoid tokenizer dependencies. Paragraphs are
accumulated greedily up to the target size, consecutive chunks share a short
sentence overlap, and oversized chunks are re-split at sentence boundaries.
"""
import re
from dataclasses import dataclass
from typing import Dict, List

import structlog

from hr_gateway import config

logger = structlog.get_logger()

_PARAGRAPH_BREAK = re.compile(r"\n\n+")
_EXCESS_BLANK_LINES = re.compile(r"\n{3,}")
_SENTENCE_END = re.compile(r"(?<=[.!?])\s+")

# Re-split threshold, relative to the target chunk size
_OVERSIZE_FACTOR = 1.5


@dataclass(frozen=True)
class Chunk:
    """A chunk of document text ready to be embedded."""

    text: str
    index: int
    length: int

    def to_payload(self) -> Dict[str, object]:
        return {"text": self.text, "index": self.index, "length": self.length}


def split_sentences(text: str) -> List[str]:
    """Split text after sentence-ending punctuation followed by whitespace."""
    return _SENTENCE_END.split(text)


class TextChunker:
    """Greedy paragraph chunker with sentence overlap."""

    def __init__(
        self,
        chunk_size: int = None,
        chunk_overlap: int = None,
        min_chunk_length: int = None,
    ):
        """Initialize the text chunker.

        Args:
            chunk_size: Target chunk size in characters (default from config)
            chunk_overlap: Overlap hint in characters (default from config)
            min_chunk_length: Chunks of this length or shorter are dropped
        """
        self.chunk_size = chunk_size or config.CHUNK_SIZE
        self.chunk_overlap = config.CHUNK_OVERLAP if chunk_overlap is None else chunk_overlap
        self.min_chunk_length = (
            config.MIN_CHUNK_LENGTH if min_chunk_length is None else min_chunk_length
        )

        if self.chunk_size <= 0:
            raise ValueError(f"Chunk size must be positive, got {self.chunk_size}")

        if self.chunk_overlap < 0 or self.chunk_overlap >= self.chunk_size:
            raise ValueError(
                f"Overlap ({self.chunk_overlap}) must be non-negative and less than "
                f"chunk size ({self.chunk_size})"
            )

    @property
    def max_chunk_length(self) -> int:
        """Longest chunk the chunker will emit."""
        return int(self.chunk_size * _OVERSIZE_FACTOR)

    def chunk_text(self, text: str) -> List[Chunk]:
        """Split text into overlapping chunks.

        Args:
            text: Raw document text

        Returns:
            List of Chunk objects indexed in emission order
        """
        if not text or not text.strip():
            return []

        pieces = []
        for piece in self._paragraph_pass(self._normalize(text)):
            if len(piece) > self.chunk_size * _OVERSIZE_FACTOR:
                pieces.extend(self._resplit(piece))
            else:
                pieces.append(piece)

        kept = [p for p in pieces if len(p) > self.min_chunk_length]
        chunks = [Chunk(text=p, index=i, length=len(p)) for i, p in enumerate(kept)]

        logger.info(
            "text_chunked",
            text_length=len(text),
            chunk_count=len(chunks),
            dropped=len(pieces) - len(kept),
        )

        return chunks

    @staticmethod
    def _normalize(text: str) -> str:
        text = text.replace("\r\n", "\n")
        return _EXCESS_BLANK_LINES.sub("\n\n", text)

    def _paragraph_pass(self, text: str) -> List[str]:
        chunks: List[str] = []
        current = ""

        for paragraph in _PARAGRAPH_BREAK.split(text):
            if current and len(current) + 2 + len(paragraph) > self.chunk_size:
                chunks.append(current.strip())
                current = self._seed_with_overlap(current, paragraph)
            else:
                current = f"{current}\n\n{paragraph}" if current else paragraph

        if current.strip():
            chunks.append(current.strip())

        return chunks

    def _seed_with_overlap(self, closed: str, paragraph: str) -> str:
        """Start the next buffer with the last two sentences of the closed chunk."""
        tail = " ".join(split_sentences(closed)[-2:])
        if len(tail) < self.chunk_overlap * 2:
            return f"{tail}\n\n{paragraph}"
        return paragraph

    def _resplit(self, chunk: str) -> List[str]:
        """Re-split an oversized chunk at sentence boundaries, without overlap."""
        sentences: List[str] = []
        for sentence in split_sentences(chunk):
            if len(sentence) > self.chunk_size * _OVERSIZE_FACTOR:
                sentences.extend(self._hard_split(sentence))
            else:
                sentences.append(sentence)

        out: List[str] = []
        current = ""
        for sentence in sentences:
            if current and len(current) + 1 + len(sentence) > self.chunk_size:
                out.append(current.strip())
                current = sentence
            else:
                current = f"{current} {sentence}" if current else sentence

        if current.strip():
            out.append(current.strip())

        return out

    def _hard_split(self, sentence: str) -> List[str]:
        """Split a run-on sentence at whitespace, cutting overlong words."""
        out: List[str] = []
        current = ""
        for word in sentence.split():
            while len(word) > self.chunk_size:
                if current:
                    out.append(current)
                    current = ""
                out.append(word[: self.chunk_size])
                word = word[self.chunk_size:]
            if current and len(current) + 1 + len(word) > self.chunk_size:
                out.append(current)
                current = word
            else:
                current = f"{current} {word}" if current else word

        if current:
            out.append(current)

        return out

    def get_chunk_stats(self, chunks: List[Chunk]) -> dict:
        """Get statistics about a set of chunks.

        Args:
            chunks: List of Chunk objects

        Returns:
            Dictionary with chunk statistics
        """
        if not chunks:
            return {
                "chunk_count": 0,
                "total_chars": 0,
                "avg_chunk_size": 0,
                "min_chunk_size": 0,
                "max_chunk_size": 0,
            }

        chunk_sizes = [c.length for c in chunks]

        return {
            "chunk_count": len(chunks),
            "total_chars": sum(chunk_sizes),
            "avg_chunk_size": sum(chunk_sizes) // len(chunks),
            "min_chunk_size": min(chunk_sizes),
            "max_chunk_size": max(chunk_sizes),
            "overlap": self.chunk_overlap,
        }


def chunk_text(text: str, chunk_size: int = None, chunk_overlap: int = None) -> List[Chunk]:
    """Chunk text with a one-off chunker (convenience function)."""
    return TextChunker(chunk_size=chunk_size, chunk_overlap=chunk_overlap).chunk_text(text)
