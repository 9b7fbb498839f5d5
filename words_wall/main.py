"""
Main FastAPI application for the Words Wall backend.
Handles CORS, request logging middleware, lifespan events (service wiring),
and router registration.
"""
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from words_wall.config import settings
from words_wall.database import close_db, init_db
from words_wall.routers import admin, health, queue, words
from words_wall.services.import_manager import ImportManager
from words_wall.services.job_queue import JobKind, JobQueue
from words_wall.services.llm_client import OllamaWordClient
from words_wall.services.word_service import WordEnrichmentService
from words_wall.services.word_store import SqlWordStore

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Startup / shutdown helpers
# ---------------------------------------------------------------------------

async def _check_database() -> bool:
    """Initialise DB tables and verify the connection.  Returns True on success."""
    try:
        await init_db()
        logger.info("✓ Database connection OK")
        return True
    except Exception as exc:
        logger.error("✗ Database connection failed: %s", exc)
        raise


async def _check_ollama(llm: OllamaWordClient) -> bool:
    """
    Verify Ollama is reachable and that the generation model is pulled.
    Never raises: enrichment falls back to canned text while Ollama is down.
    """
    available = await llm.list_models()
    if available is None:
        logger.error(
            "✗ Ollama unreachable at %s — words will get fallback content", llm.base_url
        )
        return False

    logger.info("✓ Ollama reachable — available models: %s", available)
    model = llm.model
    # Partial match so "qwen3:latest" still counts for "qwen3:1.7b"
    if any(m == model or m.startswith(model.split(":")[0]) for m in available):
        logger.info("  ✓ LLM model '%s' is available", model)
    else:
        logger.warning("  ⚠ LLM model '%s' not found — run: ollama pull %s", model, model)
    return True


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown event handler.  Builds and wires all services."""
    logger.info("=" * 60)
    logger.info("  Starting Words Wall backend …")
    logger.info("=" * 60)

    # 1. Database (required; raises on failure)
    await _check_database()

    # 2. Ollama (optional; logs warnings but continues)
    llm = OllamaWordClient()
    if not await _check_ollama(llm):
        logger.warning(
            "Ollama is not running.  Start it with: ollama serve\n"
            "  New words will be stored with fallback text until Ollama is up."
        )

    # 3. Services
    store = SqlWordStore()
    job_queue = JobQueue()
    word_service = WordEnrichmentService(store=store, llm=llm, queue=job_queue)
    job_queue.register(
        JobKind.ENRICH_WORD,
        word_service.handle_job,
        on_exhausted=word_service.handle_exhausted,
    )
    job_queue.start()
    import_manager = ImportManager(word_service)

    app.state.word_store = store
    app.state.llm_client = llm
    app.state.job_queue = job_queue
    app.state.word_service = word_service
    app.state.import_manager = import_manager

    logger.info("=" * 60)
    logger.info("  Words Wall backend ready on http://%s:%d", settings.HOST, settings.PORT)
    logger.info("  Swagger UI : http://%s:%d/docs", settings.HOST, settings.PORT)
    logger.info("  Health     : http://%s:%d/api/health", settings.HOST, settings.PORT)
    logger.info("=" * 60)

    yield  # ← server is running

    logger.info("Shutting down Words Wall backend …")
    await job_queue.shutdown(timeout=settings.OLLAMA_TIMEOUT)
    await word_service.wait_for_background()
    await close_db()
    logger.info("✓ Shutdown complete.")


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Words Wall API",
    description=(
        "**Words Wall** — a shared vocabulary wall with AI-generated word "
        "explanations.\n\n"
        "The first request for a word returns its basic meaning immediately; "
        "detailed sections are generated in the background by a local "
        "Ollama model.\n\n"
        "Key endpoints:\n"
        "- `POST /api/words` — get or create a word\n"
        "- `GET  /api/words/{id}/status` — poll enrichment progress\n"
        "- `GET  /api/queue/status` — background queue snapshot\n"
        "- `POST /api/admin/upload-words` — bulk import from CSV / TXT\n"
    ),
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)


# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Request / response logging middleware
# ---------------------------------------------------------------------------

@app.middleware("http")
async def log_requests(request: Request, call_next):
    """
    Log every request with method, path, status code, and elapsed time.
    Attaches an ``X-Process-Time`` header (milliseconds) to every response.
    """
    t0 = time.monotonic()
    response = await call_next(request)
    elapsed_ms = round((time.monotonic() - t0) * 1000, 2)

    # Skip noisy status polling from the frontend
    path = request.url.path
    if path not in ("/api/health/", "/api/queue/status", "/") and not path.endswith("/status"):
        logger.info(
            "%s %s → %d  (%.2f ms)",
            request.method,
            path,
            response.status_code,
            elapsed_ms,
        )

    response.headers["X-Process-Time"] = f"{elapsed_ms}ms"
    return response


# ---------------------------------------------------------------------------
# Global exception handler
# ---------------------------------------------------------------------------

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Return a structured JSON error for any unhandled exception."""
    logger.error(
        "Unhandled exception on %s %s: %s",
        request.method,
        request.url.path,
        exc,
        exc_info=True,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "Internal server error",
            "error": str(exc),
            "path": str(request.url.path),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

app.include_router(health.router, prefix="/api/health", tags=["Health"])
app.include_router(words.router,  prefix="/api/words",  tags=["Words"])
app.include_router(queue.router,  prefix="/api/queue",  tags=["Queue"])
app.include_router(admin.router,  prefix="/api/admin",  tags=["Admin"])


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------

@app.get("/", tags=["Root"], include_in_schema=False)
async def root():
    """API root — returns basic service info."""
    return {
        "name": "Words Wall API",
        "version": "1.0.0",
        "description": "Shared vocabulary wall backend",
        "docs": "/docs",
        "health": "/api/health",
        "endpoints": {
            "words": "/api/words",
            "queue": "/api/queue/status",
            "import": "/api/admin/upload-words",
        },
    }


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "words_wall.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=True,
        log_level="info",
    )
