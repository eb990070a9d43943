"""
Shelfwise — FastAPI ASGI Entry Point
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from shelfwise.api.v1.router import api_router
from shelfwise.config import get_settings
from shelfwise.core.errors import EngineError
from shelfwise.core.logging import configure_logging
from shelfwise.schemas.common import error_response

settings = get_settings()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: logging on startup, dispose the engine on shutdown."""
    configure_logging()
    logger.info("Shelfwise starting (%s)", settings.ENVIRONMENT)
    yield
    from shelfwise.db.session import engine
    await engine.dispose()


app = FastAPI(
    title="Shelfwise",
    description="Warehouse storage hierarchy and inbound goods reconciliation",
    version="0.1.0",
    docs_url="/api/v1/docs",
    redoc_url="/api/v1/redoc",
    openapi_url="/api/v1/openapi.json",
    lifespan=lifespan,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(EngineError)
async def engine_error_handler(request: Request, exc: EngineError):
    if exc.status_code >= 500:
        logger.error("Unhandled engine error on %s %s: %s", request.method, request.url.path, exc)
    else:
        logger.warning("%s %s refused: %s", request.method, request.url.path, exc)
    body = error_response(exc.code, exc.message, details=exc.to_dict().get("details"))
    body["error"]["retryable"] = exc.retryable
    return JSONResponse(status_code=exc.status_code, content=body)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    field_errors = [
        {"field": ".".join(str(p) for p in err["loc"] if p != "body"), "message": err["msg"]}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=422,
        content=error_response("VALIDATION_ERROR", "Request validation failed", field_errors=field_errors),
    )


app.include_router(api_router, prefix="/api/v1")


@app.get("/health")
async def health():
    """Health check for load balancers and Docker."""
    return {"status": "ok", "service": "shelfwise"}
