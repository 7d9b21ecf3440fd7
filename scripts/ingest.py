#!/usr/bin/env python
"""Rebuild the handbook collection for the RAG gateway.

Usage:
    python scripts/ingest.py                        # Ingest config.HANDBOOK_PATH
    python scripts/ingest.py --file policies.txt    # Ingest another document
    python scripts/ingest.py --backend faiss        # Build a local FAISS index
"""
import argparse
import asyncio
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from hr_gateway import config
from hr_gateway.context import build_index
from hr_gateway.errors import GatewayError
from hr_gateway.llm_client import OllamaClient
from hr_gateway.log import configure_logging
from hr_gateway.rag.chunker import TextChunker
from hr_gateway.rag.embedder import EmbeddingClient
from hr_gateway.rag.ingest import IngestPipeline, IngestStats
import structlog

logger = structlog.get_logger()


class ProgressReporter:
    """Simple progress reporter for CLI."""

    STAGE_LABELS = {
        "embedding": "Generating embeddings...",
        "upserted": "Uploaded to index      ",
    }

    def __init__(self, verbose: bool = False):
        self.verbose = verbose

    def start(self, message: str):
        """Start progress reporting."""
        print(f"\n{'━' * 50}")
        print(f"  {message}")
        print(f"{'━' * 50}\n")

    def update(self, current: int, total: int, stage: str):
        """Update progress."""
        percentage = (current / total) * 100 if total > 0 else 0
        bar_length = 40
        filled = round(bar_length * current / total) if total > 0 else 0
        bar = "█" * filled + "░" * (bar_length - filled)

        print(
            f"\r  [{bar}] {percentage:5.1f}% ({current}/{total}) - {self.STAGE_LABELS.get(stage, stage)}",
            end="",
            flush=True,
        )

        if self.verbose:
            print()

    def finish(self, stats: IngestStats):
        """Finish progress reporting."""
        print("\n")
        print(f"{'━' * 50}")
        print("  ✅ COMPLETE!\n")
        print(f"  📊 Vectors stored:  {stats.points}")
        print(f"  📐 Dimension:       {stats.dimension}")
        print(f"  ⏱️  Duration:        {stats.elapsed_seconds / 60:.2f} minutes")
        print(f"  🚀 Speed:           {stats.chunks_per_minute:.0f} chunks/min")
        print(f"{'━' * 50}\n")
        print("🎉 Ready! Start the server with: python -m hr_gateway.main\n")


def chunk_size_arg(value: str) -> int:
    """Argparse type for --chunk-size: an integer above the configured overlap."""
    try:
        size = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid chunk size: {value!r}")
    if size <= config.CHUNK_OVERLAP:
        raise argparse.ArgumentTypeError(
            f"chunk size must be greater than the overlap ({config.CHUNK_OVERLAP})"
        )
    return size


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Chunk, embed and index a document for the RAG gateway",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/ingest.py
  python scripts/ingest.py --file handbook.txt --chunk-size 600
  python scripts/ingest.py --backend faiss --verbose
        """,
    )

    parser.add_argument(
        "--file",
        type=Path,
        default=config.HANDBOOK_PATH,
        help=f"Document to ingest (default: {config.HANDBOOK_PATH})",
    )

    parser.add_argument(
        "--backend",
        choices=["qdrant", "faiss"],
        default=config.VECTOR_BACKEND,
        help=f"Vector index backend (default: {config.VECTOR_BACKEND})",
    )

    parser.add_argument(
        "--collection",
        default=config.QDRANT_COLLECTION,
        help=f"Collection to rebuild (default: {config.QDRANT_COLLECTION})",
    )

    parser.add_argument(
        "--chunk-size",
        type=chunk_size_arg,
        default=config.CHUNK_SIZE,
        help=f"Target chunk size in characters (default: {config.CHUNK_SIZE})",
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Show one progress line per step",
    )

    return parser


async def main():
    """Main entry point for the ingest script."""
    args = build_parser().parse_args()
    configure_logging("DEBUG" if args.verbose else "WARNING")

    progress = ProgressReporter(verbose=args.verbose)

    print("\n🚀 RAG Embedding Generator\n")
    print(f"   📁 Source:      {args.file}")
    print(f"   🤖 Model:       {config.EMBEDDING_MODEL}")
    print(f"   📦 Chunk size:  {args.chunk_size} chars")
    print(f"   🗄️  Backend:     {args.backend}")
    print(f"   📚 Collection:  {args.collection}")

    index = build_index(args.backend, collection=args.collection)
    embedder = EmbeddingClient(client=OllamaClient(timeout=config.EMBED_TIMEOUT))
    pipeline = IngestPipeline(
        embedder=embedder,
        index=index,
        chunker=TextChunker(chunk_size=args.chunk_size),
    )

    try:
        progress.start("Processing chunks")
        stats = await pipeline.ingest_file(
            args.file,
            progress_callback=progress.update,
        )
        progress.finish(stats)

    except KeyboardInterrupt:
        print("\n\n⚠️  Ingestion cancelled by user.\n")
        sys.exit(1)

    except FileNotFoundError as e:
        print(f"\n❌ Error: {e}\n")
        sys.exit(1)

    except GatewayError as e:
        print(f"\n❌ Ingest {pipeline.state.value} [{e.code}]: {e.message}\n")
        sys.exit(1)

    except Exception as e:
        print(f"\n❌ Error: {e}\n")
        logger.error("ingest_script_failed", error=str(e), error_type=type(e).__name__)
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
