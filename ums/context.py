"""
Explicit per-request context.

Handlers never reach into ambient request state. Everything the services
need to know about the caller's HTTP request (client ip, user agent, the two
cookies and the CSRF header) is captured once into a RequestContext by the
get_request_context dependency and passed down explicitly.

ActiveSession is the result of a successful session validation and is the
other half of what authenticated handlers receive.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime

from fastapi import Request

from ums.config import settings


@dataclass(frozen=True)
class RequestContext:
    ip: str = "unknown"
    user_agent: str | None = None
    session_cookie: str | None = None
    csrf_cookie: str | None = None
    csrf_header: str | None = None
    base_url: str = ""


@dataclass
class ActiveSession:
    """A validated session joined with its user and live role set."""
    id: uuid.UUID
    user_id: uuid.UUID
    csrf_token: str
    email: str
    status: str
    expires_at: datetime
    roles: list[str] = field(default_factory=list)


def client_ip(request: Request) -> str:
    """
    Best guess of the client address.

    Prefers the first hop of X-Forwarded-For, then X-Real-IP, then the socket
    peer.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def build_request_context(request: Request) -> RequestContext:
    return RequestContext(
        ip=client_ip(request),
        user_agent=request.headers.get("user-agent"),
        session_cookie=request.cookies.get(settings.COOKIE_SESSION) or None,
        csrf_cookie=request.cookies.get(settings.COOKIE_CSRF) or None,
        csrf_header=request.headers.get(settings.CSRF_HEADER) or None,
        base_url=settings.PUBLIC_BASE_URL.rstrip("/"),
    )
