import logging
import os

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from northwind.api import api
from northwind.database import engine, init_db
from northwind.routes import odata
from northwind.services.errors import (
    AuthorizationError,
    EntityConflictError,
    EntityNotFoundError,
    MethodNotAllowedError,
    NorthwindApiError,
    ODataQueryError,
    OperationError,
)
from northwind.services.seed import is_seeded, seed_database

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

SEED_ON_STARTUP = os.getenv("SEED_ON_STARTUP", "true").lower() in ("true", "1", "yes")

app = FastAPI(title="Northwind OData API")

_cors_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
_extra = os.getenv("CORS_ORIGINS", "")
if _extra:
    _cors_origins.extend(o.strip() for o in _extra.split(",") if o.strip())

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(odata.router, prefix="/odata", tags=["odata"])


# ============================================================================
# Error responses (OData JSON error format)
# ============================================================================

_STATUS_BY_ERROR = [
    (AuthorizationError, 403),
    (EntityNotFoundError, 404),
    (MethodNotAllowedError, 405),
    (ODataQueryError, 400),
    (OperationError, 400),
    (EntityConflictError, 409),
]


def _error_response(status: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(status_code=status, content={"error": {"code": code, "message": message}})


@app.exception_handler(NorthwindApiError)
def api_error_handler(request: Request, exc: NorthwindApiError):
    status = next((code for error_type, code in _STATUS_BY_ERROR if isinstance(exc, error_type)), 500)
    if status == 500:
        logger.error("Unhandled API error on %s %s: %s", request.method, request.url.path, exc)
    return _error_response(status, type(exc).__name__, str(exc))


@app.exception_handler(IntegrityError)
def integrity_error_handler(request: Request, exc: IntegrityError):
    logger.warning("Constraint violation on %s %s: %s", request.method, request.url.path, exc.orig)
    return _error_response(409, "Conflict", f"Constraint violation: {exc.orig}")


# ============================================================================
# Startup
# ============================================================================


@app.on_event("startup")
def on_startup():
    init_db()

    if SEED_ON_STARTUP:
        with Session(engine) as session:
            if not is_seeded(session):
                seed_database(session)

    # A malformed model is fatal: the exception aborts startup
    api.build_model()
    logger.info("Northwind OData API ready: %s", ", ".join(sorted(api.model.entity_sets)))


@app.get("/api/health")
def health_check():
    """Diagnostic endpoint to verify the service is up"""
    return {"app_name": "Northwind OData API", "status": "healthy", "model_built": api.model is not None}


@app.get("/")
def root():
    return {"message": "Northwind OData API", "service_root": "/odata/"}
