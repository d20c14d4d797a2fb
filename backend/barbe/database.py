"""
Supabase REST client with retry/backoff on transient network failures
"""
import asyncio
import errno
import json
import logging
import socket
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from .config import Settings

logger = logging.getLogger(__name__)

# Message fragments of transient failures, for errors raised without an OS-level cause
TRANSIENT_MARKERS = (
    "econnreset",
    "connection reset",
    "etimedout",
    "timed out",
    "enotfound",
    "name or service not known",
    "nodename nor servname",
    "getaddrinfo failed",
    "eai_again",
    "temporary failure in name resolution",
)

TRANSIENT_GAI_ERRNOS = {
    getattr(socket, "EAI_NONAME", -2),
    getattr(socket, "EAI_AGAIN", -3),
}


class CredentialTier(str, Enum):
    """Which Supabase key signs a request"""
    RESTRICTED = "restricted"  # anon key
    ADMIN = "admin"  # service role key, never leaves the server


class RemoteResponse:
    """Result of a store call: non-2xx answers are returned, not raised"""

    def __init__(self, ok: bool, status: int, body: Any):
        self.ok = ok
        self.status = status
        self.body = body

    def rows(self) -> list:
        """Body as a list of rows (PostgREST returns arrays)"""
        if isinstance(self.body, list):
            return self.body
        if isinstance(self.body, dict):
            return [self.body]
        return []

    def to_dict(self) -> Dict[str, Any]:
        return {"ok": self.ok, "status": self.status, "body": self.body}

    def __repr__(self):
        return f"<RemoteResponse {self.status} ok={self.ok}>"


class RemoteStoreError(Exception):
    """The store answered with a non-2xx status"""

    def __init__(self, response: RemoteResponse, operation: str = ""):
        self.response = response
        self.operation = operation
        super().__init__(f"{operation or 'store request'} failed with status {response.status}")


def is_transient_error(error: BaseException) -> bool:
    """
    Classify a network error as transient

    Transient: connection reset, timeout, DNS name not found, DNS retry-later.
    Everything else (refused connections, TLS failures, protocol errors) is not.
    """
    if isinstance(error, httpx.TimeoutException):
        return True

    seen = set()
    current: Optional[BaseException] = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, (ConnectionResetError, TimeoutError, asyncio.TimeoutError)):
            return True
        if isinstance(current, socket.gaierror) and current.errno in TRANSIENT_GAI_ERRNOS:
            return True
        if isinstance(current, OSError) and current.errno in (errno.ECONNRESET, errno.ETIMEDOUT):
            return True
        message = str(current).lower()
        if any(marker in message for marker in TRANSIENT_MARKERS):
            return True
        current = current.__cause__ or current.__context__

    return False


def parse_body(text: str) -> Any:
    """JSON when possible, raw text otherwise"""
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return text


class SupabaseClient:
    """Thin PostgREST client shared by routes and sweeps"""

    def __init__(
        self,
        settings: Settings,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.base_url = settings.rest_url
        self.keys = {
            CredentialTier.RESTRICTED: settings.SUPABASE_KEY,
            CredentialTier.ADMIN: settings.admin_key,
        }
        self.max_attempts = max(1, settings.REMOTE_MAX_ATTEMPTS)
        self.backoff_base = settings.REMOTE_BACKOFF_BASE_MS / 1000
        self.timeout = settings.REMOTE_TIMEOUT_SECONDS
        self._client = http_client
        self._owns_client = http_client is None
        self._sleep = sleep

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self):
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def build_url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        if not path.startswith("/"):
            path = "/" + path
        return f"{self.base_url}{path}"

    def build_headers(self, tier: CredentialTier, extra: Optional[dict] = None) -> dict:
        key = self.keys[tier]
        headers = {
            "apikey": key,
            "Authorization": f"Bearer {key}",
            "Content-Type": "application/json",
            "Prefer": "return=representation",
        }
        if extra:
            headers.update(extra)
        return headers

    async def request(
        self,
        path: str,
        method: str = "GET",
        body: Any = None,
        tier: CredentialTier = CredentialTier.RESTRICTED,
        headers: Optional[dict] = None,
    ) -> RemoteResponse:
        """
        Call the store, retrying transient network failures

        Args:
            path: absolute URL or resource path relative to /rest/v1
            method: HTTP method
            body: JSON-serialisable payload
            tier: restricted (anon) or admin (service role) key
            headers: extra headers

        Returns:
            RemoteResponse: ok/status/body, also for non-2xx answers

        Raises:
            httpx.TransportError: non-transient error, or the last transient
                error once attempts are exhausted
        """
        url = self.build_url(path)
        request_headers = self.build_headers(tier, headers)

        for attempt in range(1, self.max_attempts + 1):
            try:
                response = await self.client.request(
                    method.upper(),
                    url,
                    json=body,
                    headers=request_headers,
                )
            except httpx.TransportError as e:
                if not is_transient_error(e) or attempt == self.max_attempts:
                    logger.error(f"{method} {url} failed on attempt {attempt}/{self.max_attempts}: {e}")
                    raise
                delay = self.backoff_base * (2 ** (attempt - 1))
                logger.warning(
                    f"Transient error on {method} {url} (attempt {attempt}/{self.max_attempts}), "
                    f"retrying in {delay * 1000:.0f}ms: {e}"
                )
                await self._sleep(delay)
                continue

            result = RemoteResponse(
                ok=response.is_success,
                status=response.status_code,
                body=parse_body(response.text),
            )
            if not result.ok:
                logger.warning(f"{method} {url} answered {result.status}: {result.body}")
            return result

        # unreachable: the loop either returns or raises
        raise RuntimeError("retry loop exited without a result")

    # ==================== Shortcuts ====================

    async def select(self, resource: str, query: str = "select=*", tier: CredentialTier = CredentialTier.RESTRICTED) -> RemoteResponse:
        return await self.request(f"/{resource}?{query}", "GET", tier=tier)

    async def insert(self, resource: str, rows: Any, tier: CredentialTier = CredentialTier.RESTRICTED) -> RemoteResponse:
        return await self.request(f"/{resource}", "POST", body=rows, tier=tier)

    async def update(self, resource: str, query: str, values: dict, tier: CredentialTier = CredentialTier.ADMIN) -> RemoteResponse:
        return await self.request(f"/{resource}?{query}", "PATCH", body=values, tier=tier)

    async def delete(self, resource: str, query: str, tier: CredentialTier = CredentialTier.ADMIN) -> RemoteResponse:
        return await self.request(f"/{resource}?{query}", "DELETE", tier=tier)
