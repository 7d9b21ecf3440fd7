#!/usr/bin/env python
"""Check that the gateway can run: interpreter, packages, config and services.

Usage:
    python scripts/validate_setup.py

Exits non-zero when any check fails; warnings do not change the exit code.
"""
import asyncio
import importlib
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

sys.path.insert(0, str(Path(__file__).parent.parent))

OK = "\033[92m✓\033[0m"
FAIL = "\033[91m✗\033[0m"
WARN = "\033[93m⚠\033[0m"
INFO = "\033[94mℹ\033[0m"

REQUIRED_PACKAGES = [
    ("quart", "Quart web framework"),
    ("hypercorn", "Hypercorn ASGI server"),
    ("httpx", "Async HTTP client"),
    ("pydantic", "Request validation"),
    ("structlog", "Structured logging"),
    ("dotenv", "python-dotenv"),
    ("numpy", "Vector math"),
    ("faiss", "FAISS local index"),
]


@dataclass
class SetupReport:
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def ok(self, message: str) -> None:
        print(f"{OK} {message}")

    def info(self, message: str) -> None:
        print(f"{INFO} {message}")

    def fail(self, message: str, reason: str) -> None:
        print(f"{FAIL} {message}")
        self.errors.append(reason)

    def warn(self, message: str, reason: str) -> None:
        print(f"{WARN} {message}")
        self.warnings.append(reason)


def heading(title: str) -> None:
    print(f"\n\033[94m{'=' * 60}\n{title:^60}\n{'=' * 60}\033[0m\n")


def check_python(report: SetupReport) -> None:
    version = ".".join(str(v) for v in sys.version_info[:3])
    if sys.version_info >= (3, 10):
        report.ok(f"Python {version}")
    else:
        report.fail(f"Python {version} (3.10 or newer required)", "Python version too old")

    if sys.prefix == getattr(sys, "base_prefix", sys.prefix):
        report.warn("Not running in a virtual environment", "Not in venv")
    else:
        report.ok("Running in a virtual environment")


def check_packages(report: SetupReport) -> None:
    for module_name, description in REQUIRED_PACKAGES:
        try:
            importlib.import_module(module_name)
        except ImportError as e:
            report.fail(f"{description:28} ({module_name}) - {e}", f"Missing package: {module_name}")
        else:
            report.ok(f"{description:28} ({module_name})")


def check_config(report: SetupReport) -> None:
    from hr_gateway import config

    report.ok(f"Environment: {config.APP_ENV}")
    for label, value in (
        ("Ollama URL", config.OLLAMA_BASE_URL),
        ("Chat model", config.CHAT_MODEL),
        ("Embedding model", config.EMBEDDING_MODEL),
        ("Vector backend", config.VECTOR_BACKEND),
        ("Collection", config.QDRANT_COLLECTION),
        ("Chunk size / overlap", f"{config.CHUNK_SIZE} / {config.CHUNK_OVERLAP}"),
    ):
        report.info(f"  {label}: {value}")

    if config.HANDBOOK_PATH.exists():
        report.ok(f"Handbook found: {config.HANDBOOK_PATH}")
    else:
        report.warn(f"Handbook missing: {config.HANDBOOK_PATH}", "Handbook missing")


async def check_ollama(report: SetupReport) -> None:
    from hr_gateway import config
    from hr_gateway.errors import GatewayError
    from hr_gateway.llm_client import OllamaClient

    client = OllamaClient()
    try:
        installed = set(await client.list_models())
    except GatewayError as e:
        report.fail(f"Ollama unreachable at {config.OLLAMA_BASE_URL}: {e.message}", "Ollama not running")
        report.info("  Start it with: ollama serve")
        return

    report.ok(f"Ollama answering at {config.OLLAMA_BASE_URL} ({len(installed)} models)")
    for role, model in (("chat", config.CHAT_MODEL), ("embedding", config.EMBEDDING_MODEL)):
        if model in installed or f"{model}:latest" in installed:
            report.ok(f"The {role} model {model} is installed")
        else:
            report.fail(f"The {role} model {model} is not installed", f"Missing {role} model")
            report.info(f"  Run: ollama pull {model}")
            return

    try:
        vector = await client.embed("setup check")
    except GatewayError as e:
        report.fail(f"Test embedding failed [{e.code}]: {e.message}", "Embedding failed")
    else:
        report.ok(f"Test embedding returned {len(vector)} dimensions")


async def check_index(report: SetupReport) -> None:
    from hr_gateway import config
    from hr_gateway.context import build_index
    from hr_gateway.errors import GatewayError

    index = build_index()
    if not await index.health_check():
        report.fail(f"The {config.VECTOR_BACKEND} index is unreachable", "Vector index unreachable")
        if config.VECTOR_BACKEND == "qdrant":
            report.info(f"  Check QDRANT_URL ({config.QDRANT_URL})")
        return

    report.ok(f"The {config.VECTOR_BACKEND} index is reachable")
    try:
        info = await index.get_collection_info()
    except GatewayError as e:
        report.fail(f"Collection lookup failed: {e.message}", "Collection lookup failed")
        return

    if info is None:
        report.warn(
            f"Collection '{index.collection}' not found. Run: python scripts/ingest.py",
            "Collection not ingested",
        )
    else:
        report.ok(f"Collection '{info.name}': {info.points_count} points, dimension {info.dimension}")


async def main() -> SetupReport:
    report = SetupReport()

    heading("HR Gateway - Setup Validation")
    heading("1. Python Environment")
    check_python(report)

    heading("2. Packages")
    check_packages(report)
    if report.errors:
        return report

    heading("3. Configuration")
    check_config(report)

    heading("4. Ollama")
    await check_ollama(report)

    heading("5. Vector Index")
    await check_index(report)

    heading("Summary")
    if report.errors:
        print(f"{FAIL} {len(report.errors)} error(s):")
        for n, error in enumerate(report.errors, 1):
            print(f"  {n}. {error}")
    else:
        report.ok("All checks passed")
        report.info("  Next: python scripts/ingest.py, then python -m hr_gateway.main")

    if report.warnings:
        print(f"\n{WARN} {len(report.warnings)} warning(s):")
        for n, warning in enumerate(report.warnings, 1):
            print(f"  {n}. {warning}")

    print()
    return report


if __name__ == "__main__":
    sys.exit(1 if asyncio.run(main()).errors else 0)
