"""
FastAPI application factory.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .core.config import get_settings
from .core.database import init_db, close_db
from .core.errors import BadRequest, ServiceError
from .core.redis import close_redis
from .api.router import router

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title="FAQ RAG",
        description="Document upload and retrieval-augmented FAQ chat",
        version="1.0.0",
        docs_url="/docs" if settings.env == "development" else None,
        redoc_url="/redoc" if settings.env == "development" else None,
    )

    # ── CORS ─────────────────────────────────────────────────────
    origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins if origins != ["*"] else ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Errors ───────────────────────────────────────────────────
    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.error, exc)
        else:
            logger.info("%s %s rejected: %s", request.method, request.url.path, exc.error)
        return JSONResponse(status_code=exc.status_code, content=exc.to_body())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        if any(e.get("type") == "json_invalid" for e in errors):
            code = "INVALID_JSON"
        else:
            code = "INVALID_REQUEST"
        message = "; ".join(
            f"{'.'.join(str(p) for p in e.get('loc', ()))}: {e.get('msg', 'invalid')}"
            for e in errors
        )
        return await service_error_handler(request, BadRequest(message, error=code))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "internal_server_error", "details": str(exc)},
        )

    # ── Startup ──────────────────────────────────────────────────
    @app.on_event("startup")
    async def on_startup():
        logging.basicConfig(
            level=getattr(logging, settings.log_level.upper(), logging.INFO),
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        )
        logger.info("Starting faqrag (env=%s)", settings.env)

        await init_db()

        from .core.flags import get_flags
        flags = get_flags()
        logger.info(
            "Flags: s3=%s redis=%s llm=%s llm_answers=%s pdf_extraction=%s",
            flags.use_s3, flags.use_redis, flags.llm_provider,
            flags.use_llm_answers, flags.use_pdf_extraction,
        )
        logger.info(
            "Retrieval: embedding=%s chunk=%d/%d top_k=%d threshold=%.2f",
            settings.embedding_model, settings.chunk_size, settings.chunk_overlap,
            settings.search_top_k, settings.similarity_threshold,
        )

    # ── Shutdown ─────────────────────────────────────────────────
    @app.on_event("shutdown")
    async def on_shutdown():
        from .services.llm import close_client
        await close_client()
        await close_db()
        await close_redis()
        logger.info("faqrag shut down")

    # ── Routes ───────────────────────────────────────────────────
    app.include_router(router)

    return app
