from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from cart_engine.services.exceptions import (
    ConflictError,
    DomainValidationError,
    InvalidQuantityError,
    ResourceNotFoundError,
    ServiceError,
    TransactionFailureError,
)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ResourceNotFoundError)
    async def handle_not_found(_: Request, exc: ResourceNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": exc.detail})

    @app.exception_handler(DomainValidationError)
    async def handle_validation(_: Request, exc: DomainValidationError) -> JSONResponse:
        return JSONResponse(status_code=422, content={"detail": exc.detail})

    @app.exception_handler(InvalidQuantityError)
    async def handle_invalid_quantity(_: Request, exc: InvalidQuantityError) -> JSONResponse:
        return JSONResponse(status_code=422, content={"detail": exc.detail})

    @app.exception_handler(ConflictError)
    async def handle_conflict(_: Request, exc: ConflictError) -> JSONResponse:
        return JSONResponse(status_code=409, content={"detail": exc.detail})

    @app.exception_handler(TransactionFailureError)
    async def handle_transaction_failure(_: Request, exc: TransactionFailureError) -> JSONResponse:
        return JSONResponse(
            status_code=503,
            content={"detail": exc.detail},
            headers={"Retry-After": "1"},
        )

    @app.exception_handler(ServiceError)
    async def handle_service_error(_: Request, exc: ServiceError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": exc.detail})
