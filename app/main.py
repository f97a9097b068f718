from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging

from .core.db import create_all_tables
from .core.config import settings
from .core.exceptions import EngineError
from .core.logging_config import configure_logging
from .routers import custody, earnings, payment_requests, payment_requests_admin

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    logger.info("Starting %s %s", settings.APP_NAME, settings.APP_VERSION)
    create_all_tables()
    yield
    logger.info("Shutting down %s", settings.APP_NAME)

app = FastAPI(
    lifespan=lifespan,
    title=settings.APP_NAME,
    description="Washer commissions, custody deductions and payment requests",
    version=settings.APP_VERSION
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=settings.CORS_CREDENTIALS,
    allow_methods=settings.CORS_METHODS,
    allow_headers=settings.CORS_HEADERS,
)


@app.exception_handler(EngineError)
async def engine_error_handler(request: Request, exc: EngineError):
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Routers
app.include_router(custody.router)
app.include_router(earnings.router)
app.include_router(payment_requests.router)
app.include_router(payment_requests_admin.router)
