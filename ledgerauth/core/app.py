"""FastAPI application factory for the ledgerauth authorization server."""

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError
from starlette.responses import JSONResponse

from ledgerauth.core.errors import (
    OAuthError,
    database_error_handler,
    error_body,
    oauth_error_handler,
    validation_error_handler,
)
from ledgerauth.core.logging import configure_logging
from ledgerauth.core.settings import OAuthSettings, RateLimitSettings
from ledgerauth.oauth.routes_applications import router as applications_router
from ledgerauth.oauth.routes_authorize import router as authorize_router
from ledgerauth.oauth.routes_revoke import router as revoke_router
from ledgerauth.oauth.routes_token import router as token_router
from ledgerauth.security.rate_limiter import (
    FixedWindowRateLimiter,
    build_rate_limiter,
    client_key,
)

logger = logging.getLogger(__name__)

HTTP_TOO_MANY_REQUESTS = 429
RATE_LIMITED_PREFIX = "/oauth"


def create_app() -> FastAPI:
    """Build and configure the FastAPI application."""
    settings = OAuthSettings()
    rate_settings = RateLimitSettings()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        limiter: FixedWindowRateLimiter = app.state.rate_limiter
        await limiter.close()

    app = FastAPI(
        title="ledgerauth OAuth 2.0 Authorization Server",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.rate_limiter = build_rate_limiter(rate_settings)

    origins = settings.get_cors_origin_list()
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "DELETE"],
            allow_headers=["Authorization", "Content-Type"],
        )

    @app.middleware("http")
    async def rate_limit(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        if not request.url.path.startswith(RATE_LIMITED_PREFIX):
            return await call_next(request)
        limiter: FixedWindowRateLimiter = request.app.state.rate_limiter
        key = client_key(request, rate_settings.trust_proxy_headers)
        decision = await limiter.check(key)
        if not decision.allowed:
            return JSONResponse(
                error_body("Rate limit exceeded"),
                status_code=HTTP_TOO_MANY_REQUESTS,
                headers=decision.headers(),
            )
        response = await call_next(request)
        response.headers.update(decision.headers())
        return response

    app.add_exception_handler(OAuthError, oauth_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(SQLAlchemyError, database_error_handler)

    app.include_router(authorize_router)
    app.include_router(token_router)
    app.include_router(revoke_router)
    app.include_router(applications_router)

    logger.info("ledgerauth app created")
    return app
