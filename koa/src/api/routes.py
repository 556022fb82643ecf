"""
Koa - API Routes
=================
  - POST /api/chat → answer the latest user message with a reply + mini practice
  - GET  /health   → liveness check

Route handlers are thin controllers: they validate the request, delegate
to the ``ReplyPipeline`` held on ``app.state`` and map its
``ReplyOutcome`` onto an HTTP status.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from koa.src.core.models import ChatRequest, ReplyStatus
from koa.src.core.rag_engine import NoUserMessageError, ReplyPipeline
from koa.src.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()

_STATUS_CODES: dict[ReplyStatus, int] = {
    ReplyStatus.OK: 200,
    ReplyStatus.MALFORMED_OUTPUT: 200,
    ReplyStatus.UPSTREAM_UNAVAILABLE: 500,
}


def get_pipeline(request: Request) -> ReplyPipeline:
    """Dependency: the pipeline built at startup (or injected by tests)."""
    return request.app.state.pipeline


@router.post("/api/chat")
async def chat(body: ChatRequest, pipeline: ReplyPipeline = Depends(get_pipeline)) -> JSONResponse:
    logger.info("Incoming chat: %d message(s)", len(body.messages))

    try:
        outcome = await pipeline.generate_reply(body.messages)
    except NoUserMessageError as exc:
        logger.warning("Rejected chat request: %s", exc)
        return JSONResponse({"error": str(exc)}, status_code=400)

    if outcome.is_fallback:
        logger.warning("Replying with fallback (%s): %s", outcome.status.value, outcome.reason)

    return JSONResponse(outcome.payload.to_wire(), status_code=_STATUS_CODES[outcome.status])


@router.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}
