# =============================================================================
# Network Request Logging for Nine Picture Grid
# =============================================================================
"""
Outbound HTTP observation.

Every request made through a client built by ``build_http_client`` passes
through ``LoggingTransport``, which records one debug log entry and one
``NetworkRequestRecord`` per call. The transport never changes the request or
the response, and failures are re-raised unchanged after they are logged.
"""

import logging
import time
from typing import Any, Dict, Optional

import httpx

from core.debug_logger import LogStore, NetworkLog
from models.constants import BACKEND_HOST_FRAGMENT
from models.data_models import LogType, NetworkRequestRecord, utc_now

logger = logging.getLogger(__name__)

MAX_BODY_PREVIEW = 2000


def is_backend_url(url: str, fragment: str = BACKEND_HOST_FRAGMENT) -> bool:
    """True when the URL points at the backend service."""
    return fragment in str(url)


def _body_preview(content: Optional[bytes], content_type: str = "") -> Optional[str]:
    if not content:
        return None
    if content_type.startswith(("image/", "application/octet-stream")):
        return f"<{len(content)} bytes>"
    try:
        text = content.decode("utf-8")
    except UnicodeDecodeError:
        return f"<{len(content)} bytes>"
    if len(text) > MAX_BODY_PREVIEW:
        return text[:MAX_BODY_PREVIEW] + "..."
    return text


def _request_body(request: httpx.Request) -> Optional[str]:
    try:
        content = request.content
    except httpx.RequestNotRead:
        return "<streaming body>"
    return _body_preview(content, request.headers.get("content-type", ""))


def _elapsed_ms(start: float) -> int:
    return round((time.perf_counter() - start) * 1000)


class LoggingTransport(httpx.AsyncBaseTransport):
    """Async transport decorator that reports every call to the debug log."""

    def __init__(self, transport: httpx.AsyncBaseTransport, store: LogStore,
                 network_log: Optional[NetworkLog] = None,
                 backend_fragment: str = BACKEND_HOST_FRAGMENT):
        self.transport = transport
        self.store = store
        self.network_log = network_log
        self.backend_fragment = backend_fragment

    @classmethod
    def wrap(cls, transport: httpx.AsyncBaseTransport, store: LogStore,
             network_log: Optional[NetworkLog] = None, **kwargs: Any) -> "LoggingTransport":
        """Wrap ``transport`` once; an already wrapped transport is returned as is."""
        if isinstance(transport, cls):
            return transport
        return cls(transport, store, network_log, **kwargs)

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        method = request.method
        start = time.perf_counter()
        try:
            response = await self.transport.handle_async_request(request)
        except Exception as exc:
            self._record_failure(request, url, method, _elapsed_ms(start), exc)
            raise
        try:
            await response.aread()
        except Exception as exc:
            await response.aclose()
            self._record_failure(request, url, method, _elapsed_ms(start), exc)
            raise

        self._record_success(request, response, url, method, _elapsed_ms(start))
        return response

    async def aclose(self) -> None:
        await self.transport.aclose()

    def _record_success(self, request: httpx.Request, response: httpx.Response,
                        url: str, method: str, duration: int) -> None:
        backend = is_backend_url(url, self.backend_fragment)
        self.store.add_log("Network request completed", LogType.INFO, {
            "url": url,
            "method": method,
            "duration": duration,
            "status": response.status_code,
            "timestamp": utc_now().isoformat(),
            "isBackend": backend,
        })
        if self.network_log is not None:
            self.network_log.append(NetworkRequestRecord(
                url=url,
                method=method,
                status=response.status_code,
                duration_ms=duration,
                request_headers=_safe_headers(request.headers),
                response_headers=dict(response.headers),
                request_body=_request_body(request),
                response_body=_body_preview(response.content, response.headers.get("content-type", "")),
                is_backend=backend,
            ))

    def _record_failure(self, request: httpx.Request, url: str, method: str,
                        duration: int, exc: Exception) -> None:
        self.store.add_log("Network request failed", LogType.ERROR, {
            "url": url,
            "method": method,
            "duration": duration,
            "error": str(exc) or exc.__class__.__name__,
            "timestamp": utc_now().isoformat(),
        })
        if self.network_log is not None:
            self.network_log.append(NetworkRequestRecord(
                url=url,
                method=method,
                duration_ms=duration,
                request_headers=_safe_headers(request.headers),
                request_body=_request_body(request),
                is_backend=is_backend_url(url, self.backend_fragment),
                error=str(exc) or exc.__class__.__name__,
            ))


def _safe_headers(headers: httpx.Headers) -> Dict[str, str]:
    """Copy headers for display with credentials masked."""
    masked = {}
    for key, value in headers.items():
        if key.lower() in ("authorization", "apikey"):
            masked[key] = value[:12] + "..." if len(value) > 12 else "***"
        else:
            masked[key] = value
    return masked


def build_http_client(store: LogStore, network_log: Optional[NetworkLog] = None,
                      transport: Optional[httpx.AsyncBaseTransport] = None,
                      **client_kwargs: Any) -> httpx.AsyncClient:
    """Create the application's HTTP client with request logging composed in."""
    inner = transport or httpx.AsyncHTTPTransport()
    client_kwargs.setdefault("timeout", 30)
    logger.debug("Building HTTP client with network logging")
    return httpx.AsyncClient(transport=LoggingTransport.wrap(inner, store, network_log), **client_kwargs)
