"""Caller side of ``POST /api/auth/rate-limit``.

The site's login, signup and password-reset handlers run outside this
service. They call ``check_rate_limit`` before they reach the auth provider,
and they turn a denied result into a 429 for the browser. Transport failures,
missing configuration and non-JSON error responses from a proxy all go
through the fail-open policy.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from .logging_utils import mask_email
from .schemas import AuthAction
from .settings import settings

logger = logging.getLogger("churchsite.rate_limit_client")


class RateLimitServiceUnavailable(RuntimeError):
    pass


class RateLimitServiceTimeout(RateLimitServiceUnavailable):
    pass


@dataclass(frozen=True)
class RateLimitCheck:
    allowed: bool
    message: Optional[str] = None
    retry_after: Optional[int] = None
    remaining_attempts: Optional[int] = None


# Availability over strictness: when the limiter cannot be reached the
# auth attempt proceeds. Set RATE_LIMIT_FAIL_OPEN=false to raise instead.
FAIL_OPEN = RateLimitCheck(allowed=True)


def _timeout() -> httpx.Timeout:
    return httpx.Timeout(settings.rate_limit_timeout_seconds)


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    return None


async def check_rate_limit(
    email: Optional[str],
    action: AuthAction | str,
    *,
    url: Optional[str] = None,
    api_key: Optional[str] = None,
    fail_open: Optional[bool] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> RateLimitCheck:
    url = url if url is not None else settings.rate_limit_url
    api_key = api_key if api_key is not None else settings.rate_limit_api_key
    fail_open = settings.rate_limit_fail_open if fail_open is None else fail_open
    action_value = action.value if isinstance(action, AuthAction) else action

    try:
        if not url:
            raise RateLimitServiceUnavailable("RATE_LIMIT_URL is not configured")

        headers = {"content-type": "application/json"}
        if api_key:
            headers["authorization"] = f"Bearer {api_key}"

        try:
            async with httpx.AsyncClient(timeout=_timeout(), transport=transport) as client:
                resp = await client.post(
                    url,
                    json={"email": email, "action": action_value},
                    headers=headers,
                )
        except httpx.TimeoutException as e:
            raise RateLimitServiceTimeout(str(e)) from e
        except httpx.RequestError as e:
            raise RateLimitServiceUnavailable(str(e)) from e

        if not resp.is_success:
            # A limiter decision is always a JSON object; anything else came
            # from a gateway or proxy in front of it.
            try:
                data = resp.json()
            except ValueError as e:
                raise RateLimitServiceUnavailable(f"Non-JSON error response: {resp.status_code}") from e
            if not isinstance(data, dict):
                raise RateLimitServiceUnavailable(f"Unexpected error response: {resp.status_code}")
            return RateLimitCheck(
                allowed=False,
                message=data.get("message") or "Rate limit exceeded",
                retry_after=_as_int(data.get("retryAfter")),
            )
    except RateLimitServiceUnavailable as e:
        if not fail_open:
            raise
        logger.warning(
            "rate_limit_check_failed_open action=%s email=%s error=%s",
            action_value,
            mask_email(email),
            e,
        )
        return FAIL_OPEN

    try:
        data = resp.json()
    except ValueError:
        data = {}
    if not isinstance(data, dict):
        data = {}

    return RateLimitCheck(allowed=True, remaining_attempts=_as_int(data.get("remainingAttempts")))
