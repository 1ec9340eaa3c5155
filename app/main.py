from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1.payments.locks import ReferenceLocks
from app.api.v1.payments.router import router as payments_router
from app.core.config import Settings, settings as default_settings
from app.core.errors import register_exception_handlers
from app.core.logging import configure_logging
from app.core.receipts import LoggingReceiptIssuer
from app.db.init_db import ensure_tables
from app.db.session import engine
from app.gateways.registry import build_gateway_registry


def create_app(settings: Settings = default_settings) -> FastAPI:
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if settings.auto_create_tables:
            await ensure_tables(engine)
        yield
        await app.state.gateways.aclose()

    app = FastAPI(title="University Fee Payments", lifespan=lifespan)

    # CORS: the student portal calls this API from the browser
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Process-wide collaborators; one lock table per process
    app.state.gateways = build_gateway_registry(settings)
    app.state.reference_locks = ReferenceLocks()
    app.state.receipt_issuer = LoggingReceiptIssuer()

    register_exception_handlers(app)

    # Routers
    app.include_router(payments_router)

    return app


app = create_app()
