from __future__ import annotations

from fastapi import Request

UNKNOWN_IP = "unknown-ip"


def get_client_ip(request: Request) -> str:
    # The site sits behind a proxy that sets X-Forwarded-For.
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        # first IP is the original client
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    # Clients without the header share one counter.
    return UNKNOWN_IP


def rate_limit_key(ip: str, scope: str) -> str:
    return f"{ip}:{scope}"
