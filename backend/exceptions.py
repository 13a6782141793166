import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class StorefrontError(Exception):
    """Base for domain errors raised by the storefront services."""

    code = "storefront_error"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message, code=None):
        self.message = message
        if code:
            self.code = code
        super().__init__(message)


class ValidationError(StorefrontError):
    """Missing or malformed input. Nothing has been written."""

    code = "validation_error"
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(StorefrontError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class PersistenceError(StorefrontError):
    """A primary write to the document store failed."""

    code = "persistence_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class CollaboratorError(StorefrontError):
    """Object store or email provider failure."""

    code = "collaborator_error"
    status_code = status.HTTP_502_BAD_GATEWAY


async def storefront_error_handler(request: Request, exc: StorefrontError):
    if exc.status_code >= 500:
        logger.error("%s on %s: %s", exc.code, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.message, "code": exc.code},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StorefrontError, storefront_error_handler)
