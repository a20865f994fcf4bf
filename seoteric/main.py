import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

# Load env from seoteric/.env
package_dir = os.path.dirname(os.path.abspath(__file__))
if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv(dotenv_path=os.path.join(package_dir, ".env"))

# Import after dotenv is loaded
from seoteric.core.config import settings, validate_config  # noqa: E402
from seoteric.core.logging import configure_logging  # noqa: E402
from seoteric.core.middleware.request_id import RequestIdMiddleware  # noqa: E402
from seoteric.core.errors import (  # noqa: E402
    AppError,
    app_error_handler,
    http_error_handler,
    unhandled_exception_handler,
)
from seoteric.api import billing, health, sites  # noqa: E402
from seoteric.features.billing.resolver import billing_enabled  # noqa: E402

configure_logging(settings.ENV)
validate_config(strict=getattr(settings, "CONFIG_STRICT", False))


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("seoteric")
    logger.info(
        "Starting Seoteric backend...",
        extra={"billing_enabled": billing_enabled()},
    )
    try:
        yield
    finally:
        logging.getLogger("seoteric").info("Stopping Seoteric backend...")


app = FastAPI(title="Seoteric - Billing & Usage", lifespan=lifespan)

app.add_middleware(RequestIdMiddleware)

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(HTTPException, http_error_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.root_router, tags=["health"])
app.include_router(billing.router, prefix="/api", tags=["billing"])
app.include_router(sites.router, prefix="/api", tags=["sites"])
