import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from backend.apps.documents.api import router as documents_router
from backend.apps.transmission.api import router as transmission_router
from backend.core.health import router as health_router
from backend.core.logging import init_logging, set_company_id, set_trace_id
from backend.integrations.brevo_client import close_mailer
from backend.integrations.pdp_client import close_pdp_client


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    close_pdp_client()
    close_mailer()


def create_app() -> FastAPI:
    init_logging()

    app = FastAPI(title="FactuPilot Backend", lifespan=lifespan)

    @app.middleware("http")
    async def bind_trace_id(request: Request, call_next):
        set_trace_id(request.headers.get("X-Trace-ID") or str(uuid.uuid4()))
        set_company_id(None)
        return await call_next(request)

    # Routers; transmission first so /invoices/{id}/pdp is not taken for an action
    app.include_router(health_router)
    app.include_router(transmission_router)
    app.include_router(documents_router)

    return app


# ASGI app instance
app = create_app()
