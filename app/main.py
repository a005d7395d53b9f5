"""
PaymentFlow Backend — FastAPI application entry‑point.
"""
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings
from app.database import Base, engine
from app.errors import PaymentFlowError

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s  %(name)-30s  %(levelname)-5s  %(message)s",
)
logger = logging.getLogger(__name__)


def import_models():
    """Import every model module so Base.metadata knows all tables."""
    import app.numbering  # noqa: F401
    import app.worker.models  # noqa: F401
    import app.employer.models  # noqa: F401
    import app.board.models  # noqa: F401
    import app.reconciliation.models  # noqa: F401


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: ensure data dir + tables exist
    os.makedirs(settings.DATA_DIR, exist_ok=True)
    import_models()
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables ready (%s)", settings.DATABASE_URL)
    yield
    logger.info("Shutting down")


app = FastAPI(
    title="PaymentFlow",
    description="Worker payment → worker receipt → employer validation → board settlement",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PaymentFlowError)
async def payment_flow_error_handler(request: Request, exc: PaymentFlowError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    error = exc.to_dict()
    # Outside debug mode server-side failures keep only their machine-readable fields
    if not settings.DEBUG and exc.status_code >= 500:
        error.pop("message", None)
    return JSONResponse(status_code=exc.status_code, content={"error": error})


@app.get("/")
async def root():
    return {"service": "PaymentFlow", "version": "0.1.0", "status": "running",
            "environment": settings.ENVIRONMENT}


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


# ── Register API routers ─────────────────────────────────────────────────
from app.worker.routers.uploaded_data import router as uploaded_data_router  # noqa: E402
from app.worker.routers.payments import router as payments_router  # noqa: E402
from app.worker.routers.receipts import router as worker_receipts_router  # noqa: E402
from app.employer.routers.receipts import router as employer_receipts_router  # noqa: E402
from app.board.routers.receipts import router as board_receipts_router  # noqa: E402
from app.reconciliation.routers.reconciliation import router as reconciliation_router  # noqa: E402

app.include_router(uploaded_data_router, prefix="/api", tags=["Worker Uploaded Data"])
app.include_router(payments_router, prefix="/api", tags=["Worker Payments"])
app.include_router(worker_receipts_router, prefix="/api", tags=["Worker Receipts"])
app.include_router(employer_receipts_router, prefix="/api", tags=["Employer Receipts"])
app.include_router(board_receipts_router, prefix="/api", tags=["Board Receipts"])
app.include_router(reconciliation_router, prefix="/api", tags=["Reconciliation"])
