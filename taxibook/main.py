import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import models  # noqa: F401
from .config import ALLOWED_ORIGINS
from .database import Base, engine
from .domain.bookings.router import admin_router as admin_bookings_router
from .domain.bookings.router import router as bookings_router
from .domain.email.router import log_router as email_logs_router
from .domain.email.router import router as emails_router
from .domain.email.router import template_router as email_templates_router
from .domain.fleet.router import extra_admin_router, vehicle_admin_router
from .domain.fleet.router import router as vehicle_types_router
from .routes.auth import router as auth_router
from .routes.dashboard import router as dashboard_router
from .routes.form_fields import admin_router as admin_form_fields_router
from .routes.form_fields import router as form_fields_router
from .routes.settings import admin_router as admin_settings_router
from .routes.settings import router as settings_router
from .routes.stripe_webhooks import router as stripe_webhooks_router
from .routes.tips import router as tips_router
from .routes.verification import router as verification_router
from .services import booking_events  # noqa: F401  registers the session listeners

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("stripe").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logger.info("Database tables created successfully")
    except Exception as e:
        # Several workers may race to create the same tables
        error_msg = str(e)
        if "already exists" in error_msg or "duplicate key" in error_msg:
            logger.info("Database tables already exist (created by another worker)")
        else:
            logger.error(f"Failed to create database tables: {e}")
            raise

    yield
    logger.info("Application shutting down...")


app = FastAPI(title="TaxiBook API", version="1.0.0", lifespan=lifespan)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    logger.warning(f"Validation error for {request.url.path}: {errors}")

    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"{field}: {first.get('msg')}" if field else first.get("msg", "Invalid request")
    return JSONResponse(
        status_code=422,
        content={"detail": jsonable_errors(errors), "message": message},
    )


def jsonable_errors(errors) -> list:
    """Pydantic error contexts may hold exception objects; keep them serializable"""
    cleaned = []
    for error in errors:
        error = dict(error)
        if "ctx" in error:
            error["ctx"] = {key: str(value) for key, value in error["ctx"].items()}
        error.pop("url", None)
        cleaned.append(error)
    return cleaned


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.time()
    try:
        response = await call_next(request)
    except Exception as e:
        logger.error(f"{request.method} {request.url.path} - Error: {str(e)}")
        raise
    elapsed_ms = (time.time() - start) * 1000
    if response.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} - {response.status_code} ({elapsed_ms:.0f}ms)")
    return response


logger.info(f"CORS allowed origins: {ALLOWED_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
)

# Public API (verification must precede the /api/bookings/{booking_number} routes)
app.include_router(verification_router)
app.include_router(bookings_router)
app.include_router(vehicle_types_router)
app.include_router(tips_router)
app.include_router(settings_router)
app.include_router(form_fields_router)
app.include_router(stripe_webhooks_router)

# Admin API
app.include_router(auth_router)
app.include_router(admin_bookings_router)
app.include_router(vehicle_admin_router)
app.include_router(extra_admin_router)
app.include_router(email_templates_router)
app.include_router(email_logs_router)
app.include_router(emails_router)
app.include_router(admin_settings_router)
app.include_router(dashboard_router)
app.include_router(admin_form_fields_router)


@app.get("/")
def root():
    return {"message": "TaxiBook API is running"}


@app.get("/health")
def health():
    return {"status": "healthy"}
