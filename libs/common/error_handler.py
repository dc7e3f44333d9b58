"""Map the shared error vocabulary onto JSON HTTP responses."""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from libs.common.errors import CommerceError, GatewayError, SignatureError
from libs.common.logging import get_logger

logger = get_logger(__name__)


async def commerce_error_handler(request: Request, exc: CommerceError) -> JSONResponse:
    if isinstance(exc, (GatewayError, SignatureError)):
        # Generic to the client, full detail in the logs.
        logger.error(
            "%s on %s: %s",
            type(exc).__name__,
            request.url.path,
            exc.message,
            extra={"extra_fields": {"code": exc.code, **exc.context}},
        )
    elif exc.status_code >= 500:
        logger.warning(
            "%s on %s: %s",
            type(exc).__name__,
            request.url.path,
            exc.message,
            extra={"extra_fields": {"code": exc.code}},
        )

    body = {"detail": exc.detail, "code": exc.code}
    # Clients need the order handle to retry payment after a gateway failure.
    if isinstance(exc, GatewayError):
        for key in ("order_id", "order_number"):
            if exc.context.get(key):
                body[key] = str(exc.context[key])

    return JSONResponse(status_code=exc.status_code, content=body)


def add_exception_handlers(app: FastAPI) -> None:
    """Register handlers for consistent error responses."""
    app.add_exception_handler(CommerceError, commerce_error_handler)
