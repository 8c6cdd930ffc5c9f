"""Exception handlers — map typed auth errors to JSON responses.

Learn: Every AuthError renders as {"detail": ..., "kind": ...} with the
error's own status code. Conflicts also name the colliding field.
Internal failures never leak their message unless debug is on.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import structlog

from myauth.config import settings
from myauth.errors import AuthError, Conflict, InternalFailure, TokenInvalid

logger = structlog.get_logger()


def _error_response(exc: AuthError) -> JSONResponse:
    content = {"detail": exc.message, "kind": exc.kind}
    if isinstance(exc, InternalFailure) and not settings.debug:
        content["detail"] = InternalFailure.default_message
    if isinstance(exc, Conflict):
        content["field"] = exc.field
    headers = None
    if exc.status_code == 401 and isinstance(exc, TokenInvalid):
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AuthError)
    async def handle_auth_error(request: Request, exc: AuthError):
        log = logger.error if exc.status_code >= 500 else logger.info
        log(
            "auth.error",
            path=request.url.path,
            method=request.method,
            status_code=exc.status_code,
            kind=exc.kind,
        )
        return _error_response(exc)
