import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from app.core.errors import InventoryError, StorageError, ValidationError


logger = logging.getLogger(__name__)


def _first_error_field(exc: RequestValidationError):
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        if loc:
            return ".".join(loc), error.get("msg", "Invalid value")
    return None, "Invalid request"


def setup_exception_handlers(app: FastAPI) -> None:

    @app.exception_handler(InventoryError)
    async def inventory_error_handler(request: Request, exc: InventoryError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(content=exc.to_dict(), status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        field, msg = _first_error_field(exc)
        error = ValidationError(f"{field}: {msg}" if field else msg, field=field)
        return JSONResponse(content=error.to_dict(), status_code=error.status_code)

    # Store failures outside transaction(): reads, pre-checks, reports
    @app.exception_handler(SQLAlchemyError)
    async def storage_exception_handler(request: Request, exc: SQLAlchemyError):
        logger.error("%s %s storage failure: %s", request.method, request.url.path, exc)
        error = StorageError("Storage operation failed, try again")
        return JSONResponse(content=error.to_dict(), status_code=error.status_code)

    # Catch all unhandled exceptions
    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return JSONResponse(
            content={"error": "InternalError", "message": "Internal server error"},
            status_code=500,
        )
