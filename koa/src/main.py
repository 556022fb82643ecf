"""
Koa - Application Entry Point
==============================
FastAPI application factory.  Registers the routes from
``koa/src/api/routes.py``, configures CORS (dev only) and maps invalid
request bodies onto ``400 {"error": ...}``.

Startup
-------
``create_app(pipeline)`` uses an injected ``ReplyPipeline`` as-is.
Without one, the lifespan builds the embedder, the ``KoaKnowledgeStore``,
the Gemini chat model and the pipeline once from ``settings`` and keeps
the pipeline on ``app.state`` for every request.

Run:
    koa-serve
    uvicorn koa.src.main:app --reload
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from koa.config.prompt_templates import INVALID_REQUEST_ERROR
from koa.config.settings import Settings, settings
from koa.src.api.routes import router
from koa.src.core.rag_engine import ReplyPipeline
from koa.src.utils.logger import get_logger

logger = get_logger(__name__)


def build_pipeline(config: Settings) -> ReplyPipeline:
    """Wire the production collaborators from *config*."""
    from langchain_google_genai import GoogleGenerativeAIEmbeddings

    from koa.src.core.llm import ChatModelGenerator, build_chat_model
    from koa.src.database.vector_store import KoaKnowledgeStore

    embedder = GoogleGenerativeAIEmbeddings(model=config.EMBEDDING_MODEL, google_api_key=config.GOOGLE_API_KEY.get_secret_value())
    store = KoaKnowledgeStore(embedder=embedder, db_path=config.LANCEDB_PATH, table_name=config.LANCEDB_TABLE_NAME, namespace=config.KNOWLEDGE_NAMESPACE)
    generator = ChatModelGenerator(build_chat_model(config))
    pipeline = ReplyPipeline(store, generator, namespace=config.KNOWLEDGE_NAMESPACE, top_k=config.SEARCH_TOP_K)
    logger.info("Pipeline ready: %r over %r", pipeline, store)
    return pipeline


async def _invalid_body(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.warning("Invalid body on %s: %d error(s)", request.url.path, len(exc.errors()))
    return JSONResponse({"error": INVALID_REQUEST_ERROR}, status_code=400)


def create_app(pipeline: ReplyPipeline | None = None, config: Settings = settings) -> FastAPI:
    """Build the FastAPI app; *pipeline* overrides the settings-built one."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if getattr(app.state, "pipeline", None) is None:
            app.state.pipeline = build_pipeline(config)
        yield

    app = FastAPI(title="Koa", version="0.1.0", lifespan=lifespan)
    app.state.pipeline = pipeline

    if config.ENV == "dev":
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.add_exception_handler(RequestValidationError, _invalid_body)
    app.include_router(router)
    return app


app = create_app()


def run() -> None:
    """Console entry point: serve ``app`` with uvicorn."""
    import uvicorn

    uvicorn.run("koa.src.main:app", host=settings.SERVER_HOST, port=settings.SERVER_PORT)


if __name__ == "__main__":
    run()
