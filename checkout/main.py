from contextlib import asynccontextmanager

from fastapi import FastAPI

from checkout.backend import BackendClient
from checkout.config import settings
from checkout.database import Base, engine
from checkout.gateway import get_runtime
from checkout.logging_config import get_logger, setup_logging
from checkout.routes import router
from checkout.session import SessionRegistry
from checkout.models import CheckoutAttempt  # noqa: F401
from checkout.verifier import OutcomeVerifier

setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    backend = BackendClient()
    app.state.backend = backend
    app.state.runtime = get_runtime()
    app.state.verifier = OutcomeVerifier(backend)
    app.state.registry = SessionRegistry(backend, runtime=app.state.runtime, ttl_seconds=settings.session_ttl_seconds)
    logger.info("checkout_service_started", backend_url=settings.backend_url)
    yield
    app.state.registry.close_all()
    await backend.aclose()
    logger.info("checkout_service_stopped")


app = FastAPI(title="Checkout Orchestration Service", lifespan=lifespan)

app.include_router(router)

Base.metadata.create_all(bind=engine)
