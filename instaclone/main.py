"""
Instaclone API — entry point.

Startup sequence:
  1. Configure OTel tracing (→ Jaeger via OTLP)
  2. Create tables and stats views if not present
  3. Start the identity-provider client (JWKS)
  4. Initialise the object-store client & buckets
  5. Expose Prometheus /metrics endpoint

Every error leaves the API as {"error": <message>} with its status code.
"""
import logging

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from starlette.exceptions import HTTPException as StarletteHTTPException

from instaclone.config import settings
from instaclone.database import init_db
from instaclone.errors import ERROR_MESSAGES, get_error_message, log_error
from instaclone.telemetry import setup_tracing, instrument_app
from instaclone.clients.identity_client import identity_client
from instaclone.clients.storage_client import init_storage
from instaclone.routers import comments, follows, likes, posts, search, users

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(levelname)s] %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)

# Set up tracing before the app is created so all imports are instrumented
setup_tracing()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage startup and shutdown of all external connections."""
    logger.info("Starting Instaclone API (env=%s)", settings.environment)

    await init_db()
    await identity_client.start()
    init_storage()                  # sync — boto3 is not async

    logger.info("All services connected. API ready.")
    yield

    logger.info("Shutting down...")
    await identity_client.stop()


app = FastAPI(
    title="Instaclone API",
    description=(
        "Photo-sharing social feed: posts, likes, comments, follows, "
        "search and profiles."
    ),
    version="1.0.0",
    lifespan=lifespan,
)


# ── Error rendering ────────────────────────────────────────────────────────
@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    message = exc.detail if isinstance(exc.detail, str) else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": get_error_message(exc.status_code, message)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    fields = sorted({str(err["loc"][-1]) for err in exc.errors() if err.get("loc")})
    message = ERROR_MESSAGES[400]
    if fields:
        message = f"Invalid or missing field(s): {', '.join(fields)}."
    return JSONResponse(status_code=400, content={"error": message})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    log_error(exc, f"{request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"error": ERROR_MESSAGES[500]})


# ── Routers ────────────────────────────────────────────────────────────────
app.include_router(posts.router, prefix="/posts", tags=["Posts"])
app.include_router(comments.router, prefix="/comments", tags=["Comments"])
app.include_router(likes.router, prefix="/likes", tags=["Likes"])
app.include_router(follows.router, prefix="/follows", tags=["Follows"])
app.include_router(users.router, prefix="/users", tags=["Users"])
app.include_router(search.router, prefix="/search", tags=["Search"])

# ── Prometheus metrics endpoint ────────────────────────────────────────────
# Mounted at /metrics — scraped by Prometheus
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)

# ── OTel FastAPI instrumentation ──────────────────────────────────────────
instrument_app(app)


@app.get("/health", tags=["Health"])
async def health():
    return {"status": "ok", "service": settings.service_name}
