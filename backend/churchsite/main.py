from __future__ import annotations

import logging
import time
import uuid
from typing import Callable, Optional

import uvicorn
from fastapi import FastAPI, Request
from pydantic import ValidationError
from starlette.responses import JSONResponse, Response

from .donation_guard import DonationGuard
from .logging_utils import LOGGER_NAME, configure_logging, mask_email
from .rate_limit import FixedWindowRateLimiter
from .request_utils import get_client_ip, rate_limit_key
from .schemas import (
    INVALID_ACTION_MESSAGE,
    ErrorBody,
    RateLimitAllowed,
    RateLimitDenied,
    RateLimitRequest,
)
from .settings import Settings, settings as default_settings

# Open CORS: the endpoint is called straight from the browser.
CORS_HEADERS: dict[str, str] = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
}

logger = logging.getLogger(LOGGER_NAME)


def create_app(settings: Optional[Settings] = None, *, clock: Optional[Callable[[], float]] = None) -> FastAPI:
    settings = settings or default_settings
    configure_logging(settings.log_level)

    limiter_kwargs = {"clock": clock} if clock is not None else {}

    app = FastAPI(title="churchsite-guard", version="0.1.0")
    app.state.settings = settings
    app.state.auth_limiter = FixedWindowRateLimiter(
        max_attempts=settings.auth_rate_limit_max_attempts,
        window_seconds=settings.auth_rate_limit_window_seconds,
        lockout_seconds=settings.auth_rate_limit_lockout_seconds,
        max_entries=settings.rate_limit_max_entries,
        **limiter_kwargs,
    )
    app.state.donation_guard = DonationGuard.from_settings(settings, **limiter_kwargs)

    @app.middleware("http")
    async def cors_logging_and_guards(request: Request, call_next):
        request_id = uuid.uuid4().hex
        ip = get_client_ip(request)
        start = time.perf_counter()

        if request.method == "OPTIONS":
            response: Response = Response(status_code=200, headers=CORS_HEADERS)
        else:
            guard: DonationGuard = request.app.state.donation_guard
            rejected = await guard.check(request)
            response = rejected if rejected is not None else await call_next(request)

        duration_ms = int((time.perf_counter() - start) * 1000)
        for name, value in CORS_HEADERS.items():
            response.headers[name] = value
        response.headers["x-request-id"] = request_id

        log = logger.warning if response.status_code == 429 else logger.info
        log(
            "request_id=%s ip=%s method=%s path=%s status=%s duration_ms=%s",
            request_id,
            ip,
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
        )
        return response

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/api/auth/rate-limit")
    async def auth_rate_limit(request: Request) -> JSONResponse:
        try:
            payload = await request.json()
        except ValueError:
            logger.exception("rate_limit_body_unparseable")
            return JSONResponse(status_code=500, content=ErrorBody(error="Internal server error").model_dump())

        try:
            body = RateLimitRequest.model_validate(payload)
        except ValidationError:
            return JSONResponse(status_code=400, content=ErrorBody(error=INVALID_ACTION_MESSAGE).model_dump())

        ip = get_client_ip(request)
        limiter: FixedWindowRateLimiter = request.app.state.auth_limiter
        decision = limiter.check_and_record(rate_limit_key(ip, body.action.value))

        if not decision.allowed:
            logger.warning(
                "auth_rate_limited ip=%s action=%s email=%s retry_after=%s",
                ip,
                body.action.value,
                mask_email(body.email),
                decision.retry_after,
            )
            denied = RateLimitDenied(
                message=f"Too many attempts. Try again in {decision.retry_after} seconds.",
                retry_after=decision.retry_after,
            )
            return JSONResponse(
                status_code=429,
                content=denied.model_dump(by_alias=True),
                headers={"Retry-After": str(decision.retry_after)},
            )

        allowed = RateLimitAllowed(remaining_attempts=decision.remaining)
        return JSONResponse(status_code=200, content=allowed.model_dump(by_alias=True))

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "churchsite.main:app",
        host="0.0.0.0",
        port=default_settings.port,
        log_level=default_settings.log_level.lower(),
    )
