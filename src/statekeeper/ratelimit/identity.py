"""Caller identity extraction for rate limiting."""

import time
import uuid

from fastapi import Request

from statekeeper.config import Settings, get_settings

LOOPBACK_IDENTIFIER = "127.0.0.1"
PLATFORM_FORWARDED_HEADER = "x-vercel-forwarded-for"


def _first_forwarded(value: str | None) -> str | None:
    if not value:
        return None
    first = value.split(",")[0].strip()
    return first or None


def get_identifier(request: Request, settings: Settings | None = None) -> str:
    """
    Extract a rate-limit identity (client IP) from a request.

    Order: ``X-Forwarded-For`` (first entry), ``X-Real-IP``, loopback in
    development, the platform forwarded header in production, the ASGI
    client host, and finally a random per-request identifier so an
    unidentifiable caller gets a private bucket.
    """
    settings = settings or get_settings()

    forwarded = _first_forwarded(request.headers.get("x-forwarded-for"))
    if forwarded:
        return forwarded

    real_ip = request.headers.get("x-real-ip")
    if real_ip and real_ip.strip():
        return real_ip.strip()

    if settings.is_development:
        return LOOPBACK_IDENTIFIER

    if settings.is_production:
        platform = _first_forwarded(request.headers.get(PLATFORM_FORWARDED_HEADER))
        if platform:
            return platform

    if request.client is not None and request.client.host:
        return request.client.host

    return f"unknown-{time.time_ns()}-{uuid.uuid4().hex}"
