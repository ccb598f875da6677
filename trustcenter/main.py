# =============================================================================
# Trust Center — FastAPI Application Entry Point
# =============================================================================
#
# Run locally:
#   uvicorn trustcenter.main:app --reload
#
# All feature routers are mounted under /api; /health sits at the root for
# load balancer probes.
#
# ERROR SHAPE: every error the API produces itself is `{"error": message}`
# plus optional extra fields:
#   - TrustCenterError subclasses → their status_code
#   - request validation          → 400, naming the failing fields
#   - anything unhandled          → 500 with the exception message (logged
#                                   with a stack trace)
# Auth and rate-limit HTTPExceptions keep FastAPI's `{"detail": ...}`.
# =============================================================================

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from trustcenter.api import (
    access,
    admin,
    auth,
    contact,
    content,
    document_requests,
    documents,
    export,
    organizations,
    salesforce,
    subprocessors,
    webhooks,
)
from trustcenter.api.demo import DemoModeMiddleware
from trustcenter.config import settings
from trustcenter.db.engine import async_engine, init_models
from trustcenter.errors import TrustCenterError
from trustcenter.logging_config import configure_logging
from trustcenter.models.responses import HealthResponse

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    if not settings.is_production:
        await init_models()
    logger.info(
        "%s %s started (environment=%s, demo_mode=%s, email_provider=%s)",
        settings.app_name,
        settings.app_version,
        settings.environment,
        settings.demo_mode,
        settings.email_provider,
    )
    yield
    await async_engine.dispose()


app = FastAPI(
    title=settings.app_name,
    description="Compliance document portal with approval workflow and magic-link access",
    version=settings.app_version,
    lifespan=lifespan,
)


def _cors_origins() -> list[str]:
    origins = [settings.frontend_url.rstrip("/")]
    origins += [o.strip().rstrip("/") for o in settings.cors_origin.split(",") if o.strip()]
    return list(dict.fromkeys(origins))


app.add_middleware(DemoModeMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
    expose_headers=["Content-Disposition", "Retry-After", "X-Demo-Mode"],
)


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------


@app.exception_handler(TrustCenterError)
async def trustcenter_error_handler(request: Request, exc: TrustCenterError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    fields = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        name = ".".join(loc) or "body"
        if name not in fields:
            fields.append(name)
    return JSONResponse(
        {"error": f"Invalid request: {', '.join(fields)}", "fields": fields},
        status_code=400,
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse({"error": str(exc) or exc.__class__.__name__}, status_code=500)


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

app.include_router(document_requests.router, prefix="/api")
app.include_router(access.router, prefix="/api")
app.include_router(documents.router, prefix="/api")
app.include_router(admin.router, prefix="/api")
app.include_router(organizations.router, prefix="/api")
app.include_router(webhooks.router, prefix="/api")
app.include_router(salesforce.router, prefix="/api")
app.include_router(auth.router, prefix="/api")
app.include_router(content.router, prefix="/api")
app.include_router(subprocessors.router, prefix="/api")
app.include_router(contact.router, prefix="/api")
app.include_router(export.router, prefix="/api")


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health() -> HealthResponse:
    return HealthResponse(version=settings.app_version, service=settings.app_name)
