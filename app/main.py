"""Kamerun Payments Gateway - Main Application."""

import logging.config
import time
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app import models  # noqa: F401  (registers tables on Base.metadata)
from app.api.routes import payments
from app.core.config import settings
from app.core.database import Base, engine
from app.core.errors import PaymentError
from app.core.logging import setup_logging
from app.core.logging_config import LOGGING_CONFIG
from app.services.provider.smobilpay import PROVIDER_NAME

# Configure logging before anything else
logging.config.dictConfig(LOGGING_CONFIG)
logger = setup_logging(settings.log_level)

# Create all tables on startup
logger.info("Creating database tables...")
Base.metadata.create_all(bind=engine)
logger.info("Database tables ready")

_STARTED_AT = time.monotonic()

# -- OpenAPI tag metadata for Swagger grouping --
tags_metadata = [
    {
        "name": "Health",
        "description": "Service health and liveness checks.",
    },
    {
        "name": "Payments",
        "description": (
            "Initialize Mobile Money payments through Maviance SmobilPay, "
            "receive provider webhooks, and verify payment status."
        ),
    },
]


app = FastAPI(
    title="Kamerun Payments Gateway",
    description=(
        "## Mobile Money payments for Kamerun News Premium\n\n"
        "Forwards payment requests to Maviance SmobilPay, stores transactions, "
        "and reconciles their status from provider webhooks and user polls. "
        "A successful payment activates premium access for one year.\n\n"
        "### Supported methods\n"
        "| Method | Operator |\n"
        "|--------|----------|\n"
        "| `mtn` | MTN Mobile Money |\n"
        "| `orange` | Orange Money |\n"
        "| `express-union` | Express Union |\n\n"
        "### Quick Start\n"
        "```bash\n"
        "curl -X POST /api/payments/initialize -H 'Authorization: Bearer <jwt>' "
        '-H "Content-Type: application/json" '
        '-d \'{"amount":1000,"phone":"690000000","payment_method":"mtn"}\'\n\n'
        "curl /api/payments/verify/<reference> -H 'Authorization: Bearer <jwt>'\n"
        "```\n"
    ),
    version="4.0.0",
    openapi_tags=tags_metadata,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)

app.include_router(payments.router, prefix="/api/payments", tags=["Payments"])


# ── Error handlers ───────────────────────────────────────────────────


@app.exception_handler(PaymentError)
async def payment_error_handler(request: Request, exc: PaymentError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)
    body = {"success": False, "message": exc.message}
    details = getattr(exc, "body", None)
    if details is not None and not settings.is_production:
        body["details"] = details
    return JSONResponse(status_code=exc.status_code, content=body)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = [
        f"{'.'.join(str(p) for p in err['loc'][1:]) or 'body'}: {err['msg']}"
        for err in exc.errors()
    ]
    logger.info("Rejected %s %s: %s", request.method, request.url.path, errors)
    return JSONResponse(
        status_code=400,
        content={"success": False, "message": errors[0] if errors else "Invalid request", "errors": errors},
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    if exc.status_code == 404:
        return JSONResponse(
            status_code=404,
            content={
                "success": False,
                "message": "Route not found",
                "path": request.url.path,
                "method": request.method,
            },
        )
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.detail},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    body = {"success": False, "message": "Internal server error"}
    if not settings.is_production:
        body["error"] = str(exc)
    return JSONResponse(status_code=500, content=body)


# ── Introspection ────────────────────────────────────────────────────


@app.get("/", tags=["Health"])
def index():
    """Service banner listing the available endpoints."""
    return {
        "success": True,
        "message": f"{PROVIDER_NAME} payment server running",
        "version": app.version,
        "mode": settings.mode,
        "endpoints": {
            "initialize": "POST /api/payments/initialize",
            "verify": "GET /api/payments/verify/:reference",
            "webhook": "POST /api/payments/webhook/maviance",
            "config": "GET /api/payments/config",
            "health": "GET /health",
            "test_payment": "GET /test-payment",
        },
    }


@app.get("/test-payment", tags=["Health"])
def payment_usage():
    """How to try a payment by hand."""
    return {
        "message": "To test a payment:",
        "steps": [
            "1. Sign in through the mobile app to get a user",
            "2. Send its JWT in the Authorization header",
            "3. POST /api/payments/initialize with the payment data",
        ],
        "example_body": {
            "amount": settings.default_amount,
            "phone": "690000000",
            "payment_method": "mtn",
            "description": "Test payment",
        },
    }


@app.get("/health", tags=["Health"])
def health_check():
    """Health check endpoint.

    Always 200 while the process is up. Useful for load balancers and
    monitoring systems.
    """
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": round(time.monotonic() - _STARTED_AT, 3),
        "mode": settings.app_env,
        "provider": PROVIDER_NAME,
    }


logger.info(
    "Kamerun Payments API ready - env=%s webhook=%s",
    settings.app_env,
    settings.webhook_url,
)
logger.info(
    "Secrets configured: maviance_public_key=%s maviance_secret_key=%s "
    "webhook_secret=%s auth_api_key=%s",
    "yes" if settings.maviance_public_key else "no",
    "yes" if settings.maviance_secret_key else "no",
    "yes" if settings.webhook_secret else "no",
    "yes" if settings.auth_api_key else "no",
)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host="0.0.0.0", port=settings.app_port)
