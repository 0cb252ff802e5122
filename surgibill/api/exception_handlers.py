from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from surgibill.api.response import err
from surgibill.services.pricing_errors import (
    AmbiguousMaterialMatch,
    CatalogUnavailable,
    LineValidationError,
    PricingError,
)

logger = logging.getLogger(__name__)


def error_response(e: Exception) -> JSONResponse:
    """Domain / DB errors -> error envelope."""
    if isinstance(e, AmbiguousMaterialMatch):
        return err(str(e), status_code=409, code="AMBIGUOUS_MATERIAL",
                   details={"material_number": e.material_number,
                            "hospital_id": e.hospital_id,
                            "material_ids": e.material_ids})
    if isinstance(e, LineValidationError):
        return err(str(e), status_code=422, code="INVALID_LINE",
                   details={"serial_number": e.serial_number})
    if isinstance(e, CatalogUnavailable):
        return err("Material catalog unavailable", status_code=503,
                   code="CATALOG_UNAVAILABLE")
    if isinstance(e, LookupError):
        return err(str(e.args[0]) if e.args else "Not found", status_code=404,
                   code="NOT_FOUND")
    if isinstance(e, IntegrityError):
        return err("Database constraint error (duplicate/invalid reference).",
                   status_code=400, code="INTEGRITY_ERROR")
    if isinstance(e, PricingError):
        return err(str(e), status_code=400)
    return err(str(getattr(e, "detail", e)),
               status_code=getattr(e, "status_code", 500))


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        # exc.detail can be str/dict/list
        msg = exc.detail if isinstance(exc.detail, str) else "Request failed"
        return err(msg=msg, status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        details = [{"loc": list(e.get("loc", ())), "msg": e.get("msg")}
                   for e in exc.errors()]
        return err(msg="Validation error", status_code=422, details=details)

    @app.exception_handler(PricingError)
    async def pricing_exception_handler(request: Request, exc: PricingError) -> JSONResponse:
        return error_response(exc)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return err(msg="Internal server error", status_code=500)
