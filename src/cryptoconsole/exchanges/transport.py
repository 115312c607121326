"""Signed HTTP transport shared by exchange clients."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Awaitable, Callable

import aiohttp
from yarl import URL

from ..errors import AuthError, ConsoleError, ProtocolError, RemoteError, TransportError
from ..logging import sanitize

logger = logging.getLogger(__name__)

USER_AGENT = "cryptoconsole/1.0"


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    initial_backoff: float = 1.0
    request_timeout: float = 30.0


class SignVariant(Enum):
    """Request canonicalizations tried, in order, after a signature rejection."""

    PRIMARY = "primary"
    HOST_WITH_PORT = "host+port"
    RAW_QUERY = "raw"
    ALT_BASE_URL = "altBaseUrl"


SIGN_FALLBACK_ORDER: tuple[SignVariant, ...] = (
    SignVariant.PRIMARY,
    SignVariant.HOST_WITH_PORT,
    SignVariant.RAW_QUERY,
    SignVariant.ALT_BASE_URL,
)


@dataclass
class PreparedRequest:
    """A fully signed request; ``url`` is sent as-is without requoting."""

    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    body: str | None = None


def _error_fields(payload: Any) -> tuple[Any, str | None]:
    if not isinstance(payload, dict):
        return None, None
    code = None
    for key in ("code", "err-code", "label", "error"):
        if payload.get(key) not in (None, ""):
            code = payload[key]
            break
    message = None
    for key in ("msg", "message", "err-msg", "err_msg"):
        if payload.get(key):
            message = str(payload[key])
            break
    return code, message


class SignedTransport:
    """Executes signed requests with retry, backoff and signing fallback.

    Retries HTTP 429, 5xx, timeouts and connection errors up to
    ``policy.max_attempts`` times, doubling the delay from
    ``policy.initial_backoff``. Every other failure surfaces immediately.
    """

    def __init__(
        self,
        exchange: str,
        *,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        session: aiohttp.ClientSession | None = None,
    ):
        self.exchange = exchange
        self.policy = policy or RetryPolicy()
        self._sleep = sleep
        self.session = session

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self.session is None:
            connector = aiohttp.TCPConnector()
            self.session = aiohttp.ClientSession(connector=connector, headers={"User-Agent": USER_AGENT})
        return self.session

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        body: str | None = None,
    ) -> Any:
        return await self.execute(PreparedRequest(method, url, dict(headers or {}), body))

    async def execute(self, request: PreparedRequest) -> Any:
        """Send ``request``, retrying transient failures.

        Returns:
            Parsed JSON payload (None for an empty body)

        Raises:
            TransportError: Transient failure persisted for every attempt
            AuthError: HTTP 401/403
            RemoteError: Other HTTP 4xx
            ProtocolError: Body was not JSON
        """
        delay = self.policy.initial_backoff
        attempts = max(1, self.policy.max_attempts)
        for attempt in range(1, attempts + 1):
            try:
                return await self._send(request)
            except TransportError as exc:
                if attempt >= attempts:
                    logger.error(
                        "%s %s %s failed after %d attempts: %s",
                        self.exchange, request.method, sanitize(request.url), attempts, exc,
                    )
                    raise
                logger.warning(
                    "%s %s %s failed (attempt %d/%d): %s; retrying in %.2fs",
                    self.exchange, request.method, sanitize(request.url), attempt, attempts, exc, delay,
                )
                await self._sleep(delay)
                delay *= 2
        raise TransportError(f"{self.exchange} request was not attempted")

    async def execute_with_fallback(
        self,
        build: Callable[[SignVariant], PreparedRequest | None],
        is_signature_error: Callable[[Any], bool],
    ) -> Any:
        """Run a signed call, re-signing with the next variant on signature rejection.

        ``build`` returns None for a variant that does not apply (for example
        no alternate base URL is configured); that variant is skipped.
        """
        last_error: ConsoleError | None = None
        for variant in SIGN_FALLBACK_ORDER:
            request = build(variant)
            if request is None:
                continue
            try:
                payload = await self.execute(request)
            except AuthError as exc:
                last_error = exc
            else:
                if not is_signature_error(payload):
                    if variant is not SignVariant.PRIMARY:
                        logger.info("%s request accepted with attempt=%s", self.exchange, variant.value)
                    return payload
                code, message = _error_fields(payload)
                last_error = AuthError(f"{self.exchange} rejected request signature: {code} {message or ''}".strip())
            logger.warning(
                "%s signature rejected attempt=%s url=%s",
                self.exchange, variant.value, sanitize(request.url),
            )
        raise last_error or AuthError(f"{self.exchange} request could not be signed")

    async def _send(self, request: PreparedRequest) -> Any:
        session = await self._ensure_session()
        timeout = aiohttp.ClientTimeout(total=self.policy.request_timeout)
        logger.debug(
            "%s request %s %s body=%s",
            self.exchange, request.method, sanitize(request.url), sanitize(request.body),
        )
        try:
            async with session.request(
                request.method,
                URL(request.url, encoded=True),
                headers=request.headers,
                data=request.body,
                timeout=timeout,
            ) as resp:
                status = resp.status
                text = await resp.text()
        except asyncio.TimeoutError as exc:
            raise TransportError(f"{self.exchange} request timed out") from exc
        except aiohttp.ClientError as exc:
            raise TransportError(f"{self.exchange} connection error: {exc}") from exc

        if status == 429 or status >= 500:
            raise TransportError(f"{self.exchange} HTTP {status}", status=status)

        try:
            payload = json.loads(text, parse_float=Decimal) if text and text.strip() else None
        except ValueError as exc:
            if status >= 400:
                raise RemoteError(self.exchange, sanitize(text[:200]), status=status) from exc
            raise ProtocolError(f"{self.exchange} returned a non-JSON response") from exc

        if status in (401, 403):
            code, message = _error_fields(payload)
            raise AuthError(
                f"{self.exchange} authentication failed (HTTP {status}): {code} {message or ''}".strip(),
                status=status,
            )
        if status >= 400:
            code, message = _error_fields(payload)
            logger.debug("%s error response: %s", self.exchange, sanitize(text[:500]))
            raise RemoteError(self.exchange, message or f"HTTP {status}", code=code, status=status)
        return payload

    async def close(self) -> None:
        if self.session:
            await self.session.close()
            self.session = None
