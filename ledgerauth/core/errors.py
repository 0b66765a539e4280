"""OAuth error taxonomy and its HTTP rendering."""

import logging

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from starlette.responses import JSONResponse

logger = logging.getLogger(__name__)

HTTP_BAD_REQUEST = 400
HTTP_UNAUTHORIZED = 401
HTTP_FORBIDDEN = 403
HTTP_SERVER_ERROR = 500


class OAuthError(Exception):
    """Base class for protocol errors surfaced to OAuth callers."""

    error = "invalid_request"
    status_code = HTTP_BAD_REQUEST

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidClientError(OAuthError):
    error = "invalid_client"


class InvalidRequestError(OAuthError):
    error = "invalid_request"


class InvalidGrantError(OAuthError):
    error = "invalid_grant"


class InvalidScopeError(OAuthError):
    error = "invalid_scope"


class UnsupportedGrantTypeError(OAuthError):
    error = "unsupported_grant_type"


class UnsupportedResponseTypeError(OAuthError):
    error = "unsupported_response_type"


class LoginRequiredError(OAuthError):
    error = "login_required"
    status_code = HTTP_UNAUTHORIZED


class InvalidTokenError(OAuthError):
    error = "invalid_token"
    status_code = HTTP_UNAUTHORIZED


class ForbiddenError(OAuthError):
    error = "forbidden"
    status_code = HTTP_FORBIDDEN


class ServerError(OAuthError):
    error = "server_error"
    status_code = HTTP_SERVER_ERROR


def error_body(message: str) -> dict[str, str]:
    """Build the public error shape: {message}."""
    return {"message": message}


async def oauth_error_handler(_request: Request, exc: Exception) -> JSONResponse:
    """Render an OAuthError as {message} with its status code."""
    assert isinstance(exc, OAuthError)
    return JSONResponse(error_body(exc.message), status_code=exc.status_code)


def _describe_validation(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query")]
        field = ".".join(loc)
        msg = err.get("msg", "invalid value")
        parts.append(f"{field}: {msg}" if field else msg)
    return "; ".join(parts) or "Invalid request"


async def validation_error_handler(
    _request: Request, exc: Exception
) -> JSONResponse:
    """Map request-shape validation failures to 400 {message}."""
    assert isinstance(exc, RequestValidationError)
    return JSONResponse(
        error_body(_describe_validation(exc)), status_code=HTTP_BAD_REQUEST
    )


async def database_error_handler(
    _request: Request, exc: Exception
) -> JSONResponse:
    """Render an unexpected database failure as a 500 {message}."""
    logger.error("Database error", exc_info=exc)
    return JSONResponse(
        error_body("Internal server error"), status_code=HTTP_SERVER_ERROR
    )
