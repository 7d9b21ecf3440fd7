"""Test data and deterministic embeddings shared across the suite."""
import re
import zlib
from typing import List

EMBED_DIM = 16

HANDBOOK_TEXT = "Leave policy: employees get 20 days.\n\nRemote work: allowed 2 days/week."


def embed_text(text: str, dim: int = EMBED_DIM) -> List[float]:
    """Deterministic bag-of-words vector: one bucket per hashed word."""
    vector = [0.0] * dim
    for word in re.findall(r"[a-z0-9]+", text.lower()):
        vector[zlib.crc32(word.encode()) % dim] += 1.0
    if not any(vector):
        vector[0] = 1.0
    return vector
