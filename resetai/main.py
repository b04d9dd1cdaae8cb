"""
main.py
-------
FastAPI application entrypoint.

Registers all routers and configures CORS, logging, and the error mapping.

Run with:
    uvicorn resetai.main:app --reload --port 8000

Swagger UI: http://localhost:8000/docs
ReDoc:      http://localhost:8000/redoc
"""
from __future__ import annotations

import logging

import dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

dotenv.load_dotenv()

from resetai.config import get_settings

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
)
logger = logging.getLogger(__name__)

from resetai.routers.admin_router import router as admin_router
from resetai.routers.analytics_router import router as analytics_router
from resetai.routers.context_router import router as context_router
from resetai.routers.session_router import router as session_router
from resetai.services.errors import (
    InvalidInputError,
    InvalidTransitionError,
    NotFoundError,
    ResetAIError,
    StoreError,
)

app = FastAPI(
    title="RESET AI API",
    description=(
        "Capture browsing and working contexts, deduplicate them by URL, and "
        "help users recover lost focus with recovery prompts, distraction "
        "prediction, and a daily Neuro-Flow score."
    ),
    version="0.1.0",
)

# ── CORS ─────────────────────────────────────────────────────────────────────
# Tighten CORS_ORIGINS in production
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Errors ───────────────────────────────────────────────────────────────────
_STATUS_BY_ERROR = (
    (InvalidInputError, 400),
    (NotFoundError, 404),
    (InvalidTransitionError, 409),
    (StoreError, 503),
)


@app.exception_handler(ResetAIError)
async def resetai_error_handler(request: Request, exc: ResetAIError) -> JSONResponse:
    status_code = 500
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            status_code = code
            break
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# ── Routers ───────────────────────────────────────────────────────────────────
app.include_router(context_router)     # POST /contexts/capture, /update, GET /contexts/active, ...
app.include_router(session_router)     # POST /sessions/start, /{id}/end, GET /sessions/stats
app.include_router(analytics_router)   # GET /analytics/neuro-flow, POST /resume, /predict, /detect
app.include_router(admin_router)       # GET /admin/health


@app.get("/", tags=["root"])
def root():
    return {
        "service": "RESET AI API",
        "docs": "/docs",
        "health": "/admin/health",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.port)
