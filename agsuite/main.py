"""
AG Suite FastAPI Application - Main entry point.

AG Suite runs the registration and attendance side of statutory (AG) and
extraordinary (AGE) general assemblies:

- Roster: canonical list of board members, regional coordinators and local committees
- Registrations: capacity-bounded modalities, review workflow, payment receipts
- Sessions: attendance marking and quorum
- Analytics: roster coverage and registration statistics

Endpoints are served under /api/v1/*.
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from agsuite.core.config import settings
from agsuite.core.errors import AGSuiteError
from agsuite.db.base import init_db
from agsuite.schemas.common import HealthResponse
from agsuite.api.v1 import api_router

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown."""
    # Startup: Initialize database
    await init_db()
    logger.info(f"{settings.APP_NAME} started ({settings.APP_ENV})")
    yield


app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description="""
AG Suite - registration and attendance for general assemblies.

## Modules

- **Assemblies**: lifecycle, roster import, analytics
- **Modalities**: registration categories with price and capacity
- **Registrations**: admission, review, resubmission, payment
- **Sessions**: attendance and quorum
- **Config**: registration switches
    """,
    lifespan=lifespan,
    docs_url="/api/docs" if settings.DEBUG else None,
    redoc_url="/api/redoc" if settings.DEBUG else None,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# HEALTH CHECK
# ============================================================================

@app.get("/api/health", response_model=HealthResponse, tags=["health"])
async def health_check():
    """Health check endpoint."""
    return HealthResponse(code=200, message="API is healthy.")


# ============================================================================
# V1 API ENDPOINTS
# ============================================================================

app.include_router(api_router, prefix=settings.API_V1_PREFIX)


# ============================================================================
# ERROR HANDLERS
# ============================================================================

@app.exception_handler(AGSuiteError)
async def domain_exception_handler(request: Request, exc: AGSuiteError):
    """Render domain errors as {"detail", "code", "context"}."""
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler."""
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    if settings.DEBUG:
        return JSONResponse(
            status_code=500,
            content={"detail": str(exc)}
        )
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "agsuite.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG
    )
