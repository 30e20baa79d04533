import stripe
import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = structlog.get_logger(__name__)


class StorefrontError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(StorefrontError):
    """Order, payment, address or product is absent or not owned by the caller."""

    status_code = 404


class InvalidStateError(StorefrontError):
    """A business rule rejected the operation."""

    status_code = 400


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(StorefrontError)
    async def handle_storefront_error(request: Request, exc: StorefrontError):
        logger.info(
            "request_rejected",
            path=request.url.path,
            status_code=exc.status_code,
            reason=exc.message,
        )
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    @app.exception_handler(stripe.StripeError)
    async def handle_gateway_error(request: Request, exc: stripe.StripeError):
        logger.error(
            "payment_gateway_error",
            path=request.url.path,
            error=str(exc),
            http_status=getattr(exc, "http_status", None),
        )
        return JSONResponse(status_code=502, content={"detail": "Payment gateway error"})
