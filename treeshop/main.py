# treeshop/main.py
import time

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from treeshop import __version__
from treeshop.config import settings
from treeshop.db import init_db
from treeshop.errors import (
    ConcurrencyConflictError,
    InvalidInputError,
    InvalidTransitionError,
    NotFoundError,
    TreeShopError,
)
from treeshop.logging_config import logger, setup_logging
from treeshop.observability.metrics import router as metrics_router
from treeshop.routers import calculators, diagnostics, leads, proposals, work_orders

# ----------------------------------------------------
# App init
# ----------------------------------------------------
app = FastAPI(title="TreeShop", version=__version__)

setup_logging()
logger.info("startup", service="treeshop-api", env=settings.app_env)


# ----------------------------------------------------
# Health
# ----------------------------------------------------
@app.get("/health", include_in_schema=True)
def health() -> dict:
    return {"status": "ok"}


# ----------------------------------------------------
# Logging middleware
# ----------------------------------------------------
@app.middleware("http")
async def logging_middleware(request: Request, call_next):
    start = time.time()

    request_id = request.headers.get("X-Request-ID", "unknown")
    client_ip = request.client.host if request.client else "unknown"

    bound_logger = logger.bind(
        request_id=request_id,
        ip=client_ip,
        endpoint=str(request.url.path),
        method=request.method,
    )

    bound_logger.info("request_started")
    response = await call_next(request)
    latency_ms = round((time.time() - start) * 1000, 2)

    bound_logger.bind(status_code=response.status_code, latency_ms=latency_ms).info(
        "request_finished"
    )
    return response


# ----------------------------------------------------
# Error mapping
# ----------------------------------------------------
_STATUS_BY_ERROR = (
    (InvalidInputError, 422),
    (InvalidTransitionError, 409),
    (NotFoundError, 404),
    (ConcurrencyConflictError, 409),
)


@app.exception_handler(TreeShopError)
def treeshop_error_handler(request: Request, exc: TreeShopError):
    status_code = next((code for kind, code in _STATUS_BY_ERROR if isinstance(exc, kind)), 400)
    logger.warning(
        "request_rejected",
        endpoint=str(request.url.path),
        code=exc.code,
        message=exc.message,
        status_code=status_code,
    )
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder({"code": exc.code, "message": exc.message, "meta": exc.meta}),
    )


# ----------------------------------------------------
# Routers
# ----------------------------------------------------
app.include_router(calculators.router)
app.include_router(leads.router)
app.include_router(proposals.router)
app.include_router(work_orders.router)
app.include_router(diagnostics.router)
if settings.metrics_enabled:
    app.include_router(metrics_router)  # /metrics


# ----------------------------------------------------
# Startup
# ----------------------------------------------------
@app.on_event("startup")
def on_startup():
    init_db()
