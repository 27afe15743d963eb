"""
Manyanza Transit API
WhatsApp booking bot, transit pricing and booking lookup
"""
import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from app.api.v1 import bookings, pricing, webhooks
from app.core.config import settings
from app.core.errors import (
    BookingNotFoundError,
    BookingStateError,
    CorridorNotFoundError,
    InvalidInputError,
    StorageError,
)
from app.core.security import safe_log_error

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.APP_NAME)

app.include_router(webhooks.router, prefix="/api/v1/webhooks", tags=["webhooks"])
app.include_router(pricing.router, prefix="/api/v1/pricing", tags=["pricing"])
app.include_router(bookings.router, prefix="/api/v1/bookings", tags=["bookings"])


# ==================== Error Mapping ====================

@app.exception_handler(InvalidInputError)
async def invalid_input_handler(request: Request, exc: InvalidInputError):
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})


@app.exception_handler(CorridorNotFoundError)
async def corridor_not_found_handler(request: Request, exc: CorridorNotFoundError):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(BookingNotFoundError)
async def booking_not_found_handler(request: Request, exc: BookingNotFoundError):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(BookingStateError)
async def booking_state_handler(request: Request, exc: BookingStateError):
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    # 503 so Twilio retries the webhook
    safe_log_error(f"Storage failure on {request.url.path}", exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Storage temporarily unavailable"},
    )


@app.get("/health")
def health():
    return {"status": "ok", "environment": settings.ENVIRONMENT}
