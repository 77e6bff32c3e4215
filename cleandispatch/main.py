import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine

from . import models  # noqa: F401 - register tables with Base
from .config import ALLOWED_ORIGINS, DATABASE_URL
from .database import Base, create_db_engine, make_session_factory
from .domain.orders.router import admin_router as admin_orders_router
from .domain.orders.router import router as orders_router
from .domain.payments.router import admin_router as admin_payments_router
from .domain.payments.router import router as payments_router
from .domain.payments.router import webhooks_router as midtrans_webhooks_router
from .errors import DomainError
from .services.candidate_provider import ProfileCandidateProvider
from .services.midtrans_gateway import MidtransGateway
from .services.notification_service import build_notifier
from .services.service_area import BoundingBoxServiceArea

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    state = app.state

    owns_engine = getattr(state, "engine", None) is None
    if owns_engine:
        state.engine = create_db_engine(DATABASE_URL)
    state.session_factory = make_session_factory(state.engine)

    try:
        Base.metadata.create_all(bind=state.engine, checkfirst=True)
        logger.info("Database tables created successfully")
    except Exception as e:
        # Ignore "already exists" errors from race conditions between workers
        error_msg = str(e)
        if "already exists" in error_msg or "duplicate key" in error_msg:
            logger.info("Database tables already exist (created by another worker)")
        else:
            logger.error(f"Failed to create database tables: {e}")

    if getattr(state, "gateway", None) is None:
        state.gateway = MidtransGateway()
    if getattr(state, "notifier", None) is None:
        state.notifier = build_notifier()
    if getattr(state, "service_area", None) is None:
        state.service_area = BoundingBoxServiceArea()
    if getattr(state, "candidate_provider_factory", None) is None:
        state.candidate_provider_factory = ProfileCandidateProvider

    yield

    logger.info("Application shutting down...")
    if owns_engine:
        state.engine.dispose()


async def domain_error_handler(request: Request, exc: DomainError):
    if exc.status_code >= 500:
        logger.error(f"❌ {request.method} {request.url.path} - {exc.message}")
    else:
        logger.warning(f"⚠️ {request.method} {request.url.path} rejected: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Validation error for {request.url.path}: {exc.errors()}")
    return JSONResponse(status_code=422, content={"detail": jsonable_errors(exc)})


def jsonable_errors(exc: RequestValidationError) -> list:
    # ctx may carry the raw ValueError raised by a field validator
    return [{k: v for k, v in error.items() if k != "ctx"} for error in exc.errors()]


def create_app(
    engine: Optional[Engine] = None,
    gateway=None,
    notifier=None,
    service_area=None,
    candidate_provider_factory=None,
) -> FastAPI:
    """
    Build the API. Collaborators left as None are constructed from config in
    the lifespan; tests pass their own.
    """
    app = FastAPI(title="CleanDispatch API", version="1.0.0", lifespan=lifespan)
    app.state.engine = engine
    app.state.gateway = gateway
    app.state.notifier = notifier
    app.state.service_area = service_area
    app.state.candidate_provider_factory = candidate_provider_factory

    app.add_exception_handler(DomainError, domain_error_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)

    logger.info(f"CORS allowed origins: {ALLOWED_ORIGINS}")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
        allow_headers=["*"],
    )

    app.include_router(orders_router)
    app.include_router(admin_orders_router)
    app.include_router(payments_router)
    app.include_router(admin_payments_router)
    app.include_router(midtrans_webhooks_router)

    @app.get("/health")
    def health():
        return {"status": "healthy"}

    return app


app = create_app()
