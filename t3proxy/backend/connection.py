"""HTTP connection to the t3.chat backend."""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Mapping, Optional

import httpx

from ..core.exceptions import BackendRequestError

logger = logging.getLogger("t3proxy")

DEFAULT_BASE_URL = "https://t3.chat"
DEFAULT_CHAT_PATH = "/api/chat"
DEFAULT_TIMEOUT = 60.0
DEFAULT_STREAM_TIMEOUT = 300.0
DEFAULT_TIMEZONE = "America/New_York"

BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/138.0.0.0 Safari/537.36"
    ),
    "accept-language": "en-US,en;q=0.9",
    "cache-control": "no-cache",
    "pragma": "no-cache",
    "priority": "u=1, i",
    "sec-ch-ua": '"Not)A;Brand";v="8", "Chromium";v="138", "Google Chrome";v="138"',
    "sec-ch-ua-mobile": "?0",
    "sec-ch-ua-platform": '"Windows"',
    "sec-fetch-dest": "empty",
    "sec-fetch-mode": "cors",
    "sec-fetch-site": "same-origin",
}

SENSITIVE_HEADERS = {"cookie", "authorization"}


@dataclass(frozen=True)
class Credentials:
    """Backend session credentials: browser cookies plus the convex session id."""

    cookies: str
    convex_session_id: str

    def __repr__(self) -> str:
        return (
            f"Credentials(cookies={mask_secret(self.cookies)!r}, "
            f"convex_session_id={mask_secret(self.convex_session_id)!r})"
        )


@dataclass(frozen=True)
class BackendSettings:
    base_url: str = DEFAULT_BASE_URL
    chat_path: str = DEFAULT_CHAT_PATH
    timeout: float = DEFAULT_TIMEOUT
    stream_timeout: float = DEFAULT_STREAM_TIMEOUT
    timezone: str = DEFAULT_TIMEZONE

    @property
    def origin(self) -> str:
        return self.base_url.rstrip("/")

    @property
    def chat_url(self) -> str:
        path = self.chat_path or ""
        if not path.startswith("/"):
            path = f"/{path}"
        return f"{self.origin}{path}"


def mask_secret(value: Optional[str], visible: int = 4) -> str:
    if not value:
        return ""
    if len(value) <= visible:
        return "***"
    return f"{value[:visible]}***"


def safe_headers_for_log(headers: Mapping[str, str]) -> dict[str, str]:
    return {
        key: mask_secret(value) if key.lower() in SENSITIVE_HEADERS else value
        for key, value in headers.items()
    }


def format_httpx_error(exc: Exception, settings: BackendSettings, url: Optional[str] = None) -> str:
    """Produce a detailed, user-facing description of an httpx error."""
    parts = [exc.__class__.__name__]
    message = str(exc).strip()
    if message:
        parts.append(message)

    request = None
    try:
        request = getattr(exc, "request", None)
    except RuntimeError:
        # httpx raises when .request is accessed on an error that has none
        request = None
    if request is not None:
        parts.append(f"request={request.method} {request.url}")
    elif url:
        parts.append(f"url={url}")

    if isinstance(exc, httpx.TimeoutException):
        parts.append(f"timeout={settings.timeout}s")

    return "; ".join(parts)


class BackendConnection:
    """Client handle bound to one set of credentials.

    Owns an ``httpx.AsyncClient``; call ``aclose`` when the connection is
    evicted. ``transport`` lets tests serve the backend in-process.
    """

    def __init__(
        self,
        credentials: Credentials,
        settings: Optional[BackendSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.credentials = credentials
        self.settings = settings or BackendSettings()
        headers = dict(BROWSER_HEADERS)
        headers["origin"] = self.settings.origin
        self._client = httpx.AsyncClient(
            headers=headers,
            timeout=httpx.Timeout(self.settings.timeout),
            transport=transport,
            follow_redirects=True,
        )
        self.closed = False

    def _request_headers(self, thread_id: str) -> dict[str, str]:
        return {
            "Cookie": self.credentials.cookies,
            "Content-Type": "application/json",
            "Referer": f"{self.settings.origin}/chat/{thread_id}",
        }

    async def probe(self) -> bool:
        """Check that the backend accepts our cookies."""
        url = f"{self.settings.origin}/"
        try:
            response = await self._client.get(url, headers={"Cookie": self.credentials.cookies})
        except httpx.HTTPError as exc:
            logger.warning("Backend probe failed: %s", format_httpx_error(exc, self.settings, url))
            return False
        ok = 200 <= response.status_code < 300
        if not ok:
            logger.warning("Backend probe returned status %s", response.status_code)
        return ok

    async def post_chat(self, payload: Mapping[str, Any], thread_id: str) -> httpx.Response:
        """Send a chat request and return the fully read response."""
        url = self.settings.chat_url
        headers = self._request_headers(thread_id)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("POST %s headers=%s", url, safe_headers_for_log(headers))
        try:
            response = await self._client.post(url, json=payload, headers=headers)
        except httpx.HTTPError as exc:
            raise BackendRequestError(
                None, f"Backend request failed: {format_httpx_error(exc, self.settings, url)}"
            ) from exc
        if not 200 <= response.status_code < 300:
            logger.warning("Backend returned status %s for %s", response.status_code, url)
            raise BackendRequestError(response.status_code)
        return response

    @asynccontextmanager
    async def stream_chat(
        self, payload: Mapping[str, Any], thread_id: str
    ) -> AsyncIterator[httpx.Response]:
        """Open a streaming chat request; the response is closed on exit."""
        url = self.settings.chat_url
        headers = self._request_headers(thread_id)
        timeout = httpx.Timeout(
            connect=self.settings.timeout,
            read=self.settings.stream_timeout,
            write=self.settings.timeout,
            pool=self.settings.timeout,
        )
        request = self._client.build_request("POST", url, json=payload, headers=headers, timeout=timeout)
        logger.debug("Opening backend stream to %s", url)
        try:
            response = await self._client.send(request, stream=True)
        except httpx.HTTPError as exc:
            raise BackendRequestError(
                None, f"Backend stream failed: {format_httpx_error(exc, self.settings, url)}"
            ) from exc
        try:
            if not 200 <= response.status_code < 300:
                await response.aread()
                logger.warning("Backend stream returned status %s for %s", response.status_code, url)
                raise BackendRequestError(response.status_code)
            yield response
        finally:
            await response.aclose()

    async def aclose(self) -> None:
        if self.closed:
            return
        self.closed = True
        await self._client.aclose()
