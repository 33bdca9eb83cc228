from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tourbook.config import SECRET_FIELDS, get_settings
from tourbook.dependencies.services import (
    get_email_client_cached,
    get_invoicing_client_cached,
    get_payment_client_cached,
    get_whatsapp_client_cached,
)
from tourbook.health import router as health_router
from tourbook.routes.catalog import router as catalog_router
from tourbook.routes.invoices import router as invoices_router
from tourbook.routes.orders import router as orders_router
from tourbook.routes.payments import router as payments_router
from tourbook.routes.schedules import router as schedules_router
from tourbook.routes.teams import router as teams_router
from tourbook.routes.users import router as users_router
from tourbook.store_view import router as store_view_router


def configure_logging() -> None:
    """Ensure application logs use the INFO level by default."""
    root_logger = logging.getLogger()
    if not root_logger.handlers:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        )
    else:
        root_logger.setLevel(logging.INFO)


# Configure logging as soon as the module is loaded
configure_logging()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    settings_snapshot = settings.model_dump(exclude=SECRET_FIELDS)
    logger.info("Application settings on startup: %s", settings_snapshot)

    payments = get_payment_client_cached()
    whatsapp = get_whatsapp_client_cached()
    invoicing = get_invoicing_client_cached()
    for name, mocked in (
        ("Payment gateway", payments.use_mock_data),
        ("WhatsApp", whatsapp.use_mock_data),
        ("Email", get_email_client_cached().use_mock_data),
        ("Invoicing", invoicing.use_mock_data),
    ):
        if mocked:
            logger.warning("%s not configured; running in mock mode", name)
    logger.info("Application startup complete.")

    try:
        yield
    finally:
        logger.info("Closing outbound HTTP clients.")
        await payments.close()
        await whatsapp.close()
        await invoicing.close()
        logger.info("Application shutdown complete.")


settings = get_settings()
app = FastAPI(
    title=settings.app_name,
    lifespan=lifespan,
    redirect_slashes=False,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[str(origin).rstrip("/") for origin in settings.cors_origins],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(schedules_router, prefix="/api/schedules", tags=["schedules"])
app.include_router(orders_router, prefix="/api/orders", tags=["orders"])
app.include_router(payments_router, prefix="/api/payments", tags=["payments"])
app.include_router(teams_router, prefix="/api/teams", tags=["teams"])
app.include_router(catalog_router, prefix="/api/services", tags=["services"])
app.include_router(invoices_router, prefix="/api/invoices", tags=["invoices"])
app.include_router(users_router, prefix="/api/users", tags=["users"])
app.include_router(health_router)
app.include_router(store_view_router)
