"""
Exception handlers mapping ledger errors to HTTP responses.
"""
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import logging
from app.core.exceptions import (
    InternalInconsistency, InvalidSplit, LedgerError, NotFound, RateUnavailable, ShareMismatch, SnapshotConflict
)

logger = logging.getLogger("app.errors")


def _error(status_code: int, code: str, detail) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": code, "detail": detail})


def not_found_handler(request: Request, exc: NotFound):
    return _error(status.HTTP_404_NOT_FOUND, "not_found", str(exc))


def invalid_split_handler(request: Request, exc: InvalidSplit):
    code = "share_mismatch" if isinstance(exc, ShareMismatch) else "invalid_split"
    return _error(status.HTTP_422_UNPROCESSABLE_ENTITY, code, str(exc))


def rate_unavailable_handler(request: Request, exc: RateUnavailable):
    return _error(status.HTTP_503_SERVICE_UNAVAILABLE, "rate_unavailable", str(exc))


def snapshot_conflict_handler(request: Request, exc: SnapshotConflict):
    return _error(status.HTTP_409_CONFLICT, "snapshot_conflict", str(exc))


def inconsistency_handler(request: Request, exc: InternalInconsistency):
    logger.error(f"Ledger inconsistency on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "internal_inconsistency", str(exc))


def ledger_error_handler(request: Request, exc: LedgerError):
    logger.error(f"Unhandled ledger error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "ledger_error", str(exc))


def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"error": "validation_error", "detail": jsonable_errors(exc)},
    )


def jsonable_errors(exc: RequestValidationError):
    # ctx may hold the raised exception object, which JSON can't carry
    errors = []
    for error in exc.errors():
        error = dict(error)
        if "ctx" in error:
            error["ctx"] = {k: str(v) for k, v in error["ctx"].items()}
        errors.append(error)
    return errors


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(NotFound, not_found_handler)
    app.add_exception_handler(InvalidSplit, invalid_split_handler)
    app.add_exception_handler(RateUnavailable, rate_unavailable_handler)
    app.add_exception_handler(SnapshotConflict, snapshot_conflict_handler)
    app.add_exception_handler(InternalInconsistency, inconsistency_handler)
    app.add_exception_handler(LedgerError, ledger_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
