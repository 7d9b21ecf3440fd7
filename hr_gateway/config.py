"""Application configuration with sensible defaults."""
import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Paths
BASE_DIR = Path(__file__).parent.parent
DATA_DIR = Path(os.getenv("DATA_DIR", str(BASE_DIR / "data")))
HANDBOOK_PATH = Path(os.getenv("HANDBOOK_PATH", str(BASE_DIR / "handbook.txt")))

# Server
APP_ENV = os.getenv("APP_ENV", "development")
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "3000"))

# Ollama configuration
OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL", "http://127.0.0.1:11434").rstrip("/")
CHAT_MODEL = os.getenv("CHAT_MODEL", "llama3")
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "nomic-embed-text")
OLLAMA_TIMEOUT = float(os.getenv("OLLAMA_TIMEOUT", "30"))   # seconds, query path
EMBED_TIMEOUT = float(os.getenv("EMBED_TIMEOUT", "60"))     # seconds, ingestion path

# Vector index
VECTOR_BACKEND = os.getenv("VECTOR_BACKEND", "qdrant")     # qdrant | faiss
QDRANT_URL = os.getenv("QDRANT_URL", "http://localhost:6333").rstrip("/")
QDRANT_API_KEY = os.getenv("QDRANT_API_KEY", "")
QDRANT_COLLECTION = os.getenv("QDRANT_COLLECTION", "hr_documents")
QDRANT_TIMEOUT = float(os.getenv("QDRANT_TIMEOUT", "30"))
FAISS_INDEX_DIR = Path(os.getenv("FAISS_INDEX_DIR", str(DATA_DIR / "faiss")))

# RAG parameters (character-based to avoid tokenizer inconsistencies)
CHUNK_SIZE = int(os.getenv("CHUNK_SIZE", "400"))
CHUNK_OVERLAP = int(os.getenv("CHUNK_OVERLAP", "50"))
MIN_CHUNK_LENGTH = 20
RETRIEVAL_TOP_K = int(os.getenv("RETRIEVAL_TOP_K", "3"))

# Ingestion batching
EMBED_CONCURRENCY = int(os.getenv("EMBED_CONCURRENCY", "5"))    # in-flight embedding calls
UPSERT_BATCH_SIZE = int(os.getenv("UPSERT_BATCH_SIZE", "50"))   # points per upsert request
SUPER_BATCH_SIZE = int(os.getenv("SUPER_BATCH_SIZE", "500"))    # chunks per progress step

# Embedding retry policy
EMBED_MAX_ATTEMPTS = 3
EMBED_BACKOFF_SECONDS = 1.0

# Request limits
RATE_LIMIT_WINDOW_MS = int(os.getenv("RATE_LIMIT_WINDOW_MS", "60000"))
RATE_LIMIT_MAX_REQUESTS = int(os.getenv("RATE_LIMIT_MAX_REQUESTS", "20"))
MAX_QUESTION_LENGTH = int(os.getenv("MAX_QUESTION_LENGTH", "1000"))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


def is_production() -> bool:
    """Return True when running with production error reporting."""
    return APP_ENV == "production"
