"""
FastAPI application for the CookPlan timeline planner.
Provides the REST API for meals, timeline generation and editing, and live cooking.
"""
import logging

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from CookPlan import config
from CookPlan.database import init_db
import CookPlan.routers  # noqa: F401  registers endpoints on api_router
from CookPlan.routers.base import api_router
from CookPlan.schemas.response import ErrorResponse

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="CookPlan API", version="1.0.0")

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)


# ============================================================================
# Startup
# ============================================================================

@app.on_event("startup")
def startup_event():
    """Initialize database on startup."""
    init_db()
    logger.info("[api] database initialized")


# ============================================================================
# Health Check
# ============================================================================

@app.get("/")
def read_root():
    return {
        "message": "CookPlan API",
        "version": "1.0.0",
        "status": "online",
        "docs": "/docs"
    }


@app.get("/health")
def health_check():
    """Detailed health check."""
    return {
        "status": "healthy",
        "database": "connected",
        "api": "running",
        "planner": "configured" if config.OPENAI_API_KEY else "not configured",
    }


# ============================================================================
# Error Handlers
# ============================================================================

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request, exc):
    if isinstance(exc.detail, dict):
        message = exc.detail.get("message", "")
        error = exc.detail.get("error", "error")
    else:
        message, error = str(exc.detail), "error"
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(message=message, error=error).model_dump(),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request, exc):
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = f"{field}: {first.get('msg', 'invalid value')}" if field else first.get("msg", "Invalid request")
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(message=message, error="validation_error").model_dump(),
    )


@app.exception_handler(Exception)
async def general_exception_handler(request, exc):
    """Handle general exceptions."""
    logger.error("[api] unhandled error on %s %s: %r", request.method, request.url, exc, exc_info=exc)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(message="Internal server error", error="internal_error").model_dump(),
    )


# ============================================================================
# Main
# ============================================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "api:app",
        host="0.0.0.0",
        port=8000,
        reload=True
    )
