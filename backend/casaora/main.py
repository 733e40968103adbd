# backend/casaora/main.py
import logging

from fastapi import APIRouter, FastAPI

from .core.config import settings
from .core.constants import API_DESCRIPTION, API_TITLE, API_VERSION
from .errors import register_error_handlers
from .routes.v1 import bookings as bookings_v1
from .routes.v1 import prometheus as prometheus_v1
from .routes.v1 import webhooks_stripe as webhooks_stripe_v1

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)


app = FastAPI(
    title=API_TITLE,
    description=API_DESCRIPTION,
    version=API_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
)
register_error_handlers(app)

# Create API v1 router
api_v1 = APIRouter(prefix="/api/v1")
api_v1.include_router(bookings_v1.router, prefix="/bookings")
api_v1.include_router(webhooks_stripe_v1.router, prefix="/webhooks")

app.include_router(api_v1)
app.include_router(prometheus_v1.router)


@app.get("/health")
def health_check() -> dict[str, str]:
    return {"status": "healthy", "service": settings.app_name, "environment": settings.environment}
