"""Throttling and amount checks in front of the donation and payment webhook routes.

Donation traffic and webhook traffic are counted separately per client IP.
A ``POST /api/donations`` body must carry an ``amount`` in cents inside the
configured bounds before it reaches the donation handler.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from fastapi import Request
from starlette.responses import JSONResponse

from .rate_limit import FixedWindowRateLimiter, RateLimitDecision
from .request_utils import get_client_ip, rate_limit_key
from .settings import Settings

DONATIONS_PREFIX = "/api/donations"
WEBHOOK_PREFIX = "/api/webhooks/stripe"

logger = logging.getLogger("churchsite.donations")


class DonationAmountError(ValueError):
    pass


def validate_donation_amount(payload: Any, *, min_cents: int, max_cents: int) -> int:
    if not isinstance(payload, dict):
        raise DonationAmountError("Invalid request format")
    amount = payload.get("amount")
    # bool is an int subclass; reject it explicitly.
    if isinstance(amount, bool) or not isinstance(amount, (int, float)):
        raise DonationAmountError("Invalid request format")
    if amount < min_cents:
        raise DonationAmountError(f"Donation amount must be at least ${min_cents / 100:,.2f}")
    if amount > max_cents:
        raise DonationAmountError("Donation amount exceeds the maximum limit")
    return int(amount)


@dataclass
class DonationGuard:
    donation_limiter: FixedWindowRateLimiter
    webhook_limiter: FixedWindowRateLimiter
    min_cents: int
    max_cents: int

    @classmethod
    def from_settings(cls, settings: Settings, **limiter_kwargs: Any) -> "DonationGuard":
        return cls(
            donation_limiter=FixedWindowRateLimiter(
                max_attempts=settings.donation_rate_limit_per_minute,
                window_seconds=60,
                max_entries=settings.rate_limit_max_entries,
                **limiter_kwargs,
            ),
            webhook_limiter=FixedWindowRateLimiter(
                max_attempts=settings.webhook_rate_limit_per_minute,
                window_seconds=60,
                max_entries=settings.rate_limit_max_entries,
                **limiter_kwargs,
            ),
            min_cents=settings.donation_min_cents,
            max_cents=settings.donation_max_cents,
        )

    @staticmethod
    def applies_to(path: str) -> bool:
        return path.startswith(DONATIONS_PREFIX) or path.startswith(WEBHOOK_PREFIX)

    async def check(self, request: Request) -> Optional[JSONResponse]:
        """Return a rejection response, or None to let the request through."""
        path = request.url.path
        if not self.applies_to(path):
            return None

        ip = get_client_ip(request)
        is_webhook = path.startswith(WEBHOOK_PREFIX)
        scope = "webhook" if is_webhook else "donation"
        limiter = self.webhook_limiter if is_webhook else self.donation_limiter

        decision = limiter.check_and_record(rate_limit_key(ip, scope))
        if not decision.allowed:
            logger.warning("rate_limited scope=%s ip=%s path=%s", scope, ip, path)
            return _too_many_requests(decision)

        if path == DONATIONS_PREFIX and request.method == "POST":
            try:
                payload = await request.json()
                validate_donation_amount(payload, min_cents=self.min_cents, max_cents=self.max_cents)
            except DonationAmountError as e:
                logger.info("donation_rejected ip=%s reason=%s", ip, e)
                return JSONResponse(status_code=400, content={"error": str(e)})
            except ValueError:
                # Malformed JSON or undecodable bytes.
                logger.info("donation_rejected ip=%s reason=unparseable_body", ip)
                return JSONResponse(status_code=400, content={"error": "Invalid request format"})

        return None


def _too_many_requests(decision: RateLimitDecision) -> JSONResponse:
    return JSONResponse(
        status_code=429,
        content={"error": "Too many requests"},
        headers={
            "Retry-After": str(decision.retry_after),
            "x-ratelimit-limit": str(decision.limit),
            "x-ratelimit-remaining": str(decision.remaining),
        },
    )
