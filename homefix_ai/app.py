"""FastAPI application — routes, lifespan (generation port + engine)."""

import json
import logging
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI, File, Form, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from homefix_ai.chat import ChatResponder
from homefix_ai.config import settings
from homefix_ai.engine import DiagnosticEngine
from homefix_ai.errors import HomefixError, InvalidInput, TooManyFiles
from homefix_ai.generation import OpenAIGenerator
from homefix_ai.logging_config import setup_logging, set_correlation_id, log_event
from homefix_ai.media import ImageUpload, normalize_images, validate_uploads
from homefix_ai.models import (
    AnalyzeResponse,
    ChatRequest,
    ChatResponse,
    DiagnosticRequest,
    ErrorResponse,
    HealthResponse,
)
from homefix_ai.ratelimit import limiter, rate_limit_handler

VERSION = "1.0.0"

router = APIRouter()


def parse_metadata(raw) -> DiagnosticRequest:
    """Parse the multipart ``metadata`` field into a DiagnosticRequest."""
    if not raw:
        raise InvalidInput("Invalid metadata format")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError:
        raise InvalidInput("Invalid metadata format") from None
    if not isinstance(payload, dict):
        raise InvalidInput("Invalid metadata format")

    description = payload.get("description")
    if not isinstance(description, str) or not description.strip():
        raise InvalidInput("Description is required")

    try:
        return DiagnosticRequest.model_validate(payload)
    except ValidationError as e:
        first = e.errors()[0]
        where = ".".join(str(p) for p in first.get("loc", ()))
        raise InvalidInput(f"Invalid metadata: {where}: {first.get('msg')}") from None


def _error_response(status_code, message, headers=None):
    body = ErrorResponse(error=message)
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(by_alias=True),
        headers=headers,
    )


# --- Routes ---

@router.get("/")
async def root():
    return {"status": "ok", "message": "DIY Home Repair API"}


@router.get("/health", response_model=HealthResponse)
async def health():
    """Liveness plus the configured model; no upstream call is made."""
    return HealthResponse(
        status="healthy",
        version=VERSION,
        llm_provider=settings.OPENAI_BASE_URL,
        llm_model=settings.OPENAI_MODEL,
    )


@router.post("/analyze", response_model=AnalyzeResponse)
@limiter.limit(settings.ANALYZE_RATE_LIMIT)
async def analyze(
    request: Request,
    images: list[UploadFile] | None = File(default=None),
    metadata: str | None = Form(default=None),
):
    """Run one diagnostic round: questions or a full repair plan."""
    files = images or []
    log_event("analyze_request", {
        "image_count": len(files),
        "has_metadata": bool(metadata),
    })

    # Count before reading anything.
    if len(files) > settings.MAX_IMAGES:
        raise TooManyFiles(len(files), settings.MAX_IMAGES)

    uploads = [
        ImageUpload(
            data=await f.read(),
            mime_type=f.content_type or "",
            filename=f.filename or "",
        )
        for f in files
    ]
    validate_uploads(uploads)
    diagnostic_request = parse_metadata(metadata)

    normalized = await run_in_threadpool(normalize_images, uploads)
    engine: DiagnosticEngine = request.app.state.engine
    result = await run_in_threadpool(engine.diagnose, diagnostic_request, normalized)
    return AnalyzeResponse(data=result)


@router.post("/chat", response_model=ChatResponse)
async def chat(request: Request, body: ChatRequest):
    """Answer one follow-up question about a finished analysis."""
    responder: ChatResponder = request.app.state.chat_responder
    reply = await run_in_threadpool(
        responder.respond,
        body.original_description,
        body.analysis_context,
        body.conversation_history,
        body.new_message,
    )
    return ChatResponse(response=reply)


# --- Error envelope ---

async def homefix_error_handler(request: Request, exc: HomefixError):
    log_event("request_error", {
        "path": request.url.path,
        "error_type": type(exc).__name__,
        "detail": str(exc),
    })
    return _error_response(exc.status_code, exc.public_message)


async def validation_error_handler(request: Request, exc: RequestValidationError):
    return _error_response(400, "Invalid request body")


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    message = "Endpoint not found" if exc.status_code == 404 else str(exc.detail)
    return _error_response(exc.status_code, message)


async def unhandled_error_handler(request: Request, exc: Exception):
    log_event("request_error", {
        "path": request.url.path,
        "error_type": type(exc).__name__,
        "detail": str(exc),
    }, level=logging.ERROR, exc_info=(type(exc), exc, exc.__traceback__))
    return _error_response(500, "Internal server error")


async def correlation_id_middleware(request: Request, call_next):
    """Correlation ID plus start/complete request logging (no bodies)."""
    cid = request.headers.get("X-Correlation-ID", str(uuid.uuid4()))
    set_correlation_id(cid)
    start_time = time.time()
    log_event("request_start", {
        "method": request.method,
        "path": request.url.path,
        "user_agent": request.headers.get("user-agent", "unknown"),
    })
    response = await call_next(request)
    log_event("request_complete", {
        "method": request.method,
        "path": request.url.path,
        "status_code": response.status_code,
        "duration_ms": int((time.time() - start_time) * 1000),
    })
    response.headers["X-Correlation-ID"] = cid
    return response


def create_app(generator=None) -> FastAPI:
    """Build the app. ``generator`` overrides the OpenAI-backed port (tests)."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup: logging, generation port, engine and chat responder."""
        setup_logging()

        port = generator or OpenAIGenerator.from_settings()
        app.state.generator = port
        app.state.engine = DiagnosticEngine(generator=port)
        app.state.chat_responder = ChatResponder(generator=port)

        log_event("app_start", {
            "version": VERSION,
            "llm_model": settings.OPENAI_MODEL,
            "llm_base_url": settings.OPENAI_BASE_URL,
        })

        yield

        log_event("app_shutdown", {})

    app = FastAPI(
        title="homefix-ai",
        description="Home repair diagnosis with clarifying questions and follow-up chat",
        version=VERSION,
        lifespan=lifespan,
    )

    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ALLOW_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(correlation_id_middleware)

    app.add_exception_handler(HomefixError, homefix_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(router)
    return app


app = create_app()
