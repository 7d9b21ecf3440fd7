"""Quart application exposing the HR question-answering gateway."""
import asyncio
import time
from datetime import datetime, timezone
from typing import Optional

import structlog
from hypercorn.asyncio import serve
from hypercorn.config import Config as HypercornConfig
from pydantic import BaseModel, ValidationError, field_validator
from quart import Quart, current_app, g, jsonify, request
from werkzeug.exceptions import HTTPException

from hr_gateway import config
from hr_gateway.context import GatewayContext, build_context
from hr_gateway.errors import ErrorKind, GatewayError, validation_error
from hr_gateway.log import configure_logging

logger = structlog.get_logger()


class AskRequest(BaseModel):
    """Body of ``POST /ask-hr``."""

    question: str

    @field_validator("question", mode="before")
    @classmethod
    def _clean_question(cls, value):
        if not isinstance(value, str):
            raise ValueError("Question must be a string")

        value = value.strip()
        if not value:
            raise ValueError("Question cannot be empty")
        if len(value) > config.MAX_QUESTION_LENGTH:
            raise ValueError(
                f"Question must be less than {config.MAX_QUESTION_LENGTH} characters"
            )
        return value


def parse_ask_request(data: Optional[dict]) -> AskRequest:
    """Validate a request body, raising a VALIDATION error with a readable message."""
    if not isinstance(data, dict) or data.get("question") is None:
        raise validation_error("Question is required")

    try:
        return AskRequest.model_validate(data)
    except ValidationError as e:
        message = e.errors()[0].get("msg", "Invalid request")
        raise validation_error(message.removeprefix("Value error, ")) from e


def _context() -> GatewayContext:
    return current_app.extensions["hr_gateway"]


def create_app(context: GatewayContext = None) -> Quart:
    """Build the Quart app around a service context.

    Args:
        context: Services to use (built from config if not provided)
    """
    configure_logging()

    app = Quart(__name__)
    app.extensions["hr_gateway"] = context or build_context()

    @app.before_serving
    async def _warm_up():
        await app.extensions["hr_gateway"].retriever.initialize()

    @app.before_request
    async def _start_timer():
        g.started_at = time.monotonic()

    @app.after_request
    async def _log_request(response):
        started = g.get("started_at")
        logger.debug(
            "http_request",
            method=request.method,
            path=request.path,
            status=response.status_code,
            duration_ms=int((time.monotonic() - started) * 1000) if started else None,
        )
        return response

    @app.route("/ask-hr", methods=["POST"])
    async def ask_hr():
        """Answer an HR question from the indexed handbook.

        Expects JSON body:
        {
            "question": "How many remote days are allowed?"
        }

        Returns JSON:
        {
            "success": true,
            "data": {
                "answer": "...",
                "metadata": {"contextFound": true, "chunksUsed": 3, "processingTime": 812}
            }
        }
        """
        ctx = _context()
        started = time.monotonic()

        ctx.rate_limiter.hit(request.remote_addr or "unknown")

        body = parse_ask_request(await request.get_json(silent=True))
        question = body.question

        logger.info(
            "question_received",
            question_preview=question[:100],
            client=request.remote_addr,
        )

        context_chunks = await ctx.retriever.retrieve_relevant(question)
        answer = await ctx.synthesizer.synthesize_answer(question, context_chunks)

        processing_time = int((time.monotonic() - started) * 1000)
        metadata = {
            "contextFound": bool(context_chunks),
            "processingTime": processing_time,
        }
        if context_chunks:
            metadata["chunksUsed"] = len(context_chunks)

        logger.info(
            "question_answered",
            processing_time_ms=processing_time,
            context_chunks=len(context_chunks),
        )

        return jsonify({"success": True, "data": {"answer": answer, "metadata": metadata}})

    @app.route("/health")
    async def health():
        """Report Ollama and vector index status with the collection size."""
        ctx = _context()

        ollama_up, stats = await asyncio.gather(
            ctx.ollama.health_check(), ctx.retriever.get_stats()
        )
        index_up = stats["index"]["connected"]
        if index_up and not stats["ready"]:
            stats["ready"] = await ctx.retriever.initialize()

        healthy = ollama_up and index_up and stats["ready"]

        return jsonify({
            "status": "healthy" if healthy else "degraded",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime": round(ctx.uptime, 3),
            "services": {
                "ollama": {"status": "up" if ollama_up else "down"},
                "qdrant": {
                    "status": "up" if index_up else "down",
                    "collection": stats["index"]["collection"],
                    "vectorCount": stats["index"]["point_count"],
                },
            },
        }), 200 if healthy else 503

    @app.route("/ready")
    async def ready():
        """Readiness probe - Ollama reachable and the collection loaded."""
        ctx = _context()

        ollama_up = await ctx.ollama.health_check()
        index_ready = await ctx.retriever.initialize()

        if ollama_up and index_ready:
            return jsonify({"ready": True}), 200
        return jsonify({"ready": False}), 503

    @app.errorhandler(GatewayError)
    async def handle_gateway_error(error: GatewayError):
        ctx = _context()
        logger.error(
            "request_failed",
            code=error.code,
            status_code=error.status_code,
            error=error.message,
            path=request.path,
            method=request.method,
        )

        response = jsonify(error.to_response(hide_internal=ctx.production))
        response.status_code = error.status_code
        if error.retry_after is not None:
            response.headers["Retry-After"] = str(error.retry_after)
        return response

    @app.errorhandler(404)
    async def not_found(error):
        return jsonify({
            "success": False,
            "error": {
                "code": ErrorKind.NOT_FOUND.code,
                "message": f"Route {request.method} {request.path} not found",
            },
        }), 404

    @app.errorhandler(Exception)
    async def internal_error(error: Exception):
        if isinstance(error, HTTPException):
            return error

        ctx = _context()
        logger.exception("internal_server_error", error=str(error), path=request.path)
        wrapped = GatewayError(ErrorKind.INTERNAL, str(error) or type(error).__name__)
        return jsonify(wrapped.to_response(hide_internal=ctx.production)), 500

    return app


async def _serve(app: Quart) -> None:
    hypercorn_config = HypercornConfig()
    hypercorn_config.bind = [f"{config.HOST}:{config.PORT}"]
    logger.info(
        "server_starting",
        host=config.HOST,
        port=config.PORT,
        env=config.APP_ENV,
        backend=config.VECTOR_BACKEND,
    )
    await serve(app, hypercorn_config)


def main() -> None:
    """Serve the gateway with hypercorn."""
    asyncio.run(_serve(create_app()))


if __name__ == "__main__":
    main()
