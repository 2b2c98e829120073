"""
Main FastAPI application - BizLedger financial core.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from bizledger import __version__
from bizledger.api.routers import accounts, billing, payroll, transactions
from bizledger.core.config import get_settings
from bizledger.core.logging_config import LogContext, configure_logging, get_logger
from bizledger.domain.exceptions import (
    BizLedgerError,
    ConflictError,
    NotFoundError,
    PartialBatchError,
    PersistenceError,
    ValidationError,
)
from bizledger.infrastructure.database import init_db

logger = get_logger("api")

ERROR_STATUS: list[tuple[type[BizLedgerError], int]] = [
    (PartialBatchError, 207),
    (ValidationError, 422),
    (NotFoundError, 404),
    (ConflictError, 409),
    (PersistenceError, 503),
]


def status_for(exc: BizLedgerError) -> int:
    for error_type, status_code in ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code
    return 500


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Application lifespan - startup and shutdown events."""
    settings = get_settings()
    configure_logging(level=settings.log_level, json_output=settings.log_json)
    init_db()
    yield


app = FastAPI(
    title="BizLedger API",
    description="""
## Financial core of a multi-tenant business application

### Components:
- **Accounts**: chart of accounts with derived balances and balance adjustments
- **Transactions**: double-entry ledger, post/void lifecycle, idempotent creation
- **Invoices & Bills**: item-derived totals, status lifecycle, overdue reclassification
- **Payroll**: runs and items, flat-rate taxes, batch import, CSV/JSON/PDF export

### Conventions:
- Every request carries `X-Organization-Id` and `X-User-Id`
- Monetary amounts are decimals with two places
- Every mutation is recorded in the audit log
    """,
    version=__version__,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def bind_log_context(request: Request, call_next):
    request_id = request.headers.get("X-Request-Id") or str(uuid4())
    with LogContext.bind(
        organization_id=request.headers.get("X-Organization-Id"),
        user_id=request.headers.get("X-User-Id"),
        request_id=request_id,
    ):
        response = await call_next(request)
    response.headers["X-Request-Id"] = request_id
    return response


app.include_router(accounts.router)
app.include_router(transactions.router)
app.include_router(billing.router)
app.include_router(payroll.router)


@app.get("/")
def root():
    return {
        "name": "BizLedger API",
        "version": __version__,
        "docs": "/docs"
    }


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


@app.exception_handler(BizLedgerError)
async def bizledger_error_handler(request: Request, exc: BizLedgerError):
    """Map typed errors to their HTTP status with a structured body."""
    status_code = status_for(exc)
    content = exc.to_dict()
    if isinstance(exc, PartialBatchError):
        content["success"] = False
    if status_code >= 500:
        logger.error("request_failed", exc_info=exc, extra={"path": request.url.path})
    else:
        logger.warning("request_rejected", extra={"path": request.url.path, "code": exc.code})
    return JSONResponse(status_code=status_code, content=jsonable_encoder(content))


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
