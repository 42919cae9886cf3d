"""Request plumbing around the Flask app.

:class:`TrustedProxyMiddleware` sits in front of the WSGI app and
restores the client address and scheme when the peer is a known proxy.
:func:`register_request_hooks` adds request ids, response headers and
the access log line.
"""

from __future__ import annotations

import ipaddress
import logging
import time
from typing import TYPE_CHECKING
from uuid import uuid4

from flask import Flask, g, request

if TYPE_CHECKING:
    from collections.abc import Iterable

    from flask import Response

log = logging.getLogger(__name__)
access_log = logging.getLogger("certkeeper.access")

_Network = ipaddress.IPv4Network | ipaddress.IPv6Network

_STATIC_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'",
}


def _environ_key(header: str) -> str:
    return "HTTP_" + header.upper().replace("-", "_")


def _parse_networks(entries: Iterable[str]) -> tuple[_Network, ...]:
    networks = []
    for entry in entries:
        try:
            networks.append(ipaddress.ip_network(entry, strict=False))
        except ValueError:
            log.warning("Ignoring unparseable trusted proxy: %s", entry)
    return tuple(networks)


class TrustedProxyMiddleware:
    """Trust ``X-Forwarded-*`` headers only from listed proxy networks.

    The client address is the right-most ``X-Forwarded-For`` hop that is
    not itself a trusted proxy.  With no usable networks every peer is
    untrusted and the environ is left alone.
    """

    def __init__(
        self,
        app,
        *,
        trusted_proxies: Iterable[str] = (),
        for_header: str = "X-Forwarded-For",
        proto_header: str = "X-Forwarded-Proto",
    ) -> None:
        self.app = app
        self.networks = _parse_networks(trusted_proxies)
        self._for_key = _environ_key(for_header)
        self._proto_key = _environ_key(proto_header)

    def is_trusted(self, addr: str) -> bool:
        try:
            ip = ipaddress.ip_address(addr.strip())
        except ValueError:
            return False
        return any(ip in net for net in self.networks)

    def client_address(self, chain: str) -> str:
        hops = [hop.strip() for hop in chain.split(",") if hop.strip()]
        for hop in reversed(hops):
            if not self.is_trusted(hop):
                return hop
        return hops[0] if hops else ""

    def __call__(self, environ, start_response):
        if self.is_trusted(environ.get("REMOTE_ADDR", "")):
            client = self.client_address(environ.get(self._for_key, ""))
            if client:
                environ["REMOTE_ADDR"] = client
            scheme = environ.get(self._proto_key, "").strip().lower()
            if scheme in ("http", "https"):
                environ["wsgi.url_scheme"] = scheme
        return self.app(environ, start_response)


def register_request_hooks(app: Flask) -> None:
    """Attach request-id, response-header and access-log hooks to *app*."""
    settings = app.config.get("CERTKEEPER_SETTINGS")
    hsts = None
    api_prefix = None
    if settings is not None:
        api_prefix = settings.auth.base_path.rstrip("/") + "/"
        max_age = settings.security.hsts_max_age_seconds
        if settings.server.external_url.startswith("https://") and max_age > 0:
            hsts = f"max-age={max_age}; includeSubDomains"

    @app.before_request
    def _start() -> None:
        g.request_id = request.headers.get("X-Request-ID") or uuid4().hex
        g.start_time = time.monotonic()

    @app.after_request
    def _finish(response: Response) -> Response:
        response.headers.update(_STATIC_HEADERS)
        if hsts:
            response.headers["Strict-Transport-Security"] = hsts
        # Tokens and certificate bodies must not land in shared caches
        if api_prefix and request.path.startswith(api_prefix):
            response.headers["Cache-Control"] = "no-store"
        if getattr(g, "request_id", None):
            response.headers["X-Request-ID"] = g.request_id
        _log_access(response)
        return response


def _log_access(response: Response) -> None:
    status = response.status_code
    if status >= 500:
        level = logging.ERROR
    elif status >= 400:
        level = logging.WARNING
    else:
        level = logging.INFO

    start = getattr(g, "start_time", None)
    duration_ms = (time.monotonic() - start) * 1000 if start is not None else 0.0
    access_log.log(
        level,
        "%s %s %s %.1fms",
        request.method,
        request.path,
        status,
        duration_ms,
        extra={
            "status": status,
            "duration_ms": round(duration_ms, 1),
            "content_length": response.content_length,
        },
    )
