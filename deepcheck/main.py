"""
DeepCheck API — Application entry point.

Bootstraps FastAPI, wires up middleware, registers route groups, maps the
detection error taxonomy onto HTTP responses and tears down in-flight
workflows on shutdown.

Extension points:
  - Add new route groups with app.include_router() below
  - Add new error kinds to _STATUS_BY_ERROR
  - Change startup behaviour in the lifespan context manager
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from deepcheck.core.config import settings
from deepcheck.core.errors import (
    AnalysisEngineError,
    DetectionError,
    InvalidInputError,
    NetworkError,
    SubmissionRejectedError,
    UnsupportedMediaError,
)
from deepcheck.core.rate_limit import limiter
from deepcheck.routes.detection import router as detection_router
from deepcheck.routes.health import router as health_router
from deepcheck.services.sessions import session_registry

# ─── Logging ───────────────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


# ─── Lifespan ──────────────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Code before `yield` runs on startup; code after runs on shutdown."""
    logger.info(
        "Starting DeepCheck API (env: %s, engine: %s)", settings.environment, settings.analysis_engine
    )
    yield
    logger.info("Shutting down DeepCheck API — abandoning %d session(s)", len(session_registry))
    session_registry.clear()


# ─── App ───────────────────────────────────────────────────────────────────────
app = FastAPI(
    title="DeepCheck API",
    description=(
        "Deepfake detection workflow for uploaded files, media URLs and live recordings. "
        "All AI results are probabilistic — not guaranteed."
    ),
    version="0.1.0",
    lifespan=lifespan,
    # Disable docs in production to reduce attack surface
    docs_url="/docs" if settings.environment != "production" else None,
    redoc_url="/redoc" if settings.environment != "production" else None,
)


# ─── Rate limiting ─────────────────────────────────────────────────────────────
# Routes opt-in with @limiter.limit("N/minute") + request: Request parameter.
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


# ─── Error mapping ─────────────────────────────────────────────────────────────
# Most specific class first; the first isinstance match wins.
_STATUS_BY_ERROR: list[tuple[type[DetectionError], int]] = [
    (UnsupportedMediaError, 415),
    (InvalidInputError, 422),
    (SubmissionRejectedError, 409),
    (NetworkError, 502),
    (AnalysisEngineError, 502),
]


@app.exception_handler(DetectionError)
async def detection_error_handler(request: Request, exc: DetectionError) -> JSONResponse:
    status = next((code for cls, code in _STATUS_BY_ERROR if isinstance(exc, cls)), 500)
    logger.info("%s %s -> %d (%s)", request.method, request.url.path, status, exc.kind)
    return JSONResponse(status_code=status, content={"detail": str(exc), "kind": exc.kind})


# ─── Middleware ─────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ─── Routes ────────────────────────────────────────────────────────────────────
app.include_router(health_router, prefix="/health", tags=["health"])
app.include_router(detection_router)


@app.get("/", tags=["root"])
async def root():
    """API root — basic metadata."""
    return {
        "name": "DeepCheck API",
        "version": "0.1.0",
        "status": "running",
        "environment": settings.environment,
        "docs": "/docs",
    }
