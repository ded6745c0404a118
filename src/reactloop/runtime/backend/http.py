"""HTTP transport for the reasoning backend.

Posts the encoded request as JSON and returns the decoded body. Failures are raised as
``ModelInvocationError`` tagged with an ``ErrorCode`` and a ``retryable`` flag so the
Resilience Layer can tell throttling apart from a bad API key.

Example:
    >>> async with HttpBackend("https://llm.internal/v1/messages", api_key="sk-...") as backend:
    ...     outcome = await run_session("hi", "You are terse.", registry, policy, backend=backend)
"""

from __future__ import annotations

from types import MappingProxyType
from typing import TYPE_CHECKING, Mapping

import httpx
import orjson
from pydantic import SecretStr

from reactloop.foundation.errors import ErrorCode, JsonDict, ModelInvocationError, StructuralError
from reactloop.runtime.observability import get_logger

if TYPE_CHECKING:
    from reactloop.foundation.config import ReactLoopSettings

log = get_logger("reactloop.backend.http")

# status -> (code, retryable)
_STATUS_CODES: Mapping[int, tuple[ErrorCode, bool]] = MappingProxyType({
    401: (ErrorCode.AUTH_FAILED, False),
    403: (ErrorCode.AUTH_FAILED, False),
    404: (ErrorCode.NOT_FOUND, False),
    408: (ErrorCode.TIMEOUT, True),
    429: (ErrorCode.RATE_LIMITED, True),
})


def classify_status(status: int) -> tuple[ErrorCode, bool]:
    """Map a non-2xx HTTP status to (code, retryable)."""
    if status in _STATUS_CODES:
        return _STATUS_CODES[status]
    if status >= 500:
        return ErrorCode.SERVICE_ERROR, True
    return ErrorCode.INVALID_REQUEST, False


class HttpBackend:
    """``Backend`` over HTTP using a shared ``httpx.AsyncClient``.

    Args:
        url: Endpoint accepting the JSON request
        api_key: Sent as ``Authorization: Bearer <key>`` when given
        timeout: Per-request timeout in seconds
        headers: Extra headers for every request
        client: Existing client to reuse (not closed by ``aclose``)
        model: Forwarded as ``"model"`` in the request body when given
    """

    def __init__(
        self,
        url: str,
        *,
        api_key: SecretStr | str | None = None,
        timeout: float = 60.0,
        headers: Mapping[str, str] | None = None,
        client: httpx.AsyncClient | None = None,
        model: str | None = None,
    ) -> None:
        self.url = url
        self.model = model
        self.timeout = timeout
        self._api_key = SecretStr(api_key) if isinstance(api_key, str) else api_key
        self._headers = {"Content-Type": "application/json", "Accept": "application/json", **(headers or {})}
        self._client = client
        self._owns_client = client is None

    @classmethod
    def from_settings(cls, settings: ReactLoopSettings, *, client: httpx.AsyncClient | None = None) -> HttpBackend:
        cfg = settings.backend
        if cfg.url is None:
            raise ValueError("REACTLOOP_BACKEND_URL is not set")
        return cls(cfg.url, api_key=cfg.api_key, timeout=cfg.request_timeout, headers=cfg.headers, client=client, model=cfg.model)

    def __repr__(self) -> str:
        return f"HttpBackend(url={self.url!r}, model={self.model!r})"

    # ─────────────────────────────────────────────────────────────────
    # Client lifecycle
    # ─────────────────────────────────────────────────────────────────

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def aclose(self) -> None:
        """Close the client if this backend created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> HttpBackend:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # ─────────────────────────────────────────────────────────────────
    # Send
    # ─────────────────────────────────────────────────────────────────

    def _request_headers(self) -> dict[str, str]:
        headers = dict(self._headers)
        if self._api_key is not None:
            headers["Authorization"] = f"Bearer {self._api_key.get_secret_value()}"
        return headers

    async def send(self, request: JsonDict) -> JsonDict:
        body = {**request, "model": self.model} if self.model else request
        try:
            response = await self._get_client().post(
                self.url, content=orjson.dumps(body), headers=self._request_headers(), timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            raise ModelInvocationError(
                f"Backend request timed out after {self.timeout}s", retryable=True, code=ErrorCode.TIMEOUT,
            ) from e
        except httpx.TransportError as e:
            raise ModelInvocationError(
                f"Network error: {e}", retryable=True, code=ErrorCode.NETWORK_ERROR,
            ) from e

        if response.is_error:
            code, retryable = classify_status(response.status_code)
            log.debug("backend returned error status", status=response.status_code, code=code.value, retryable=retryable)
            raise ModelInvocationError(
                f"Backend returned HTTP {response.status_code}: {response.text[:200]}", retryable=retryable, code=code,
            )

        try:
            payload = orjson.loads(response.content)
        except orjson.JSONDecodeError as e:
            raise StructuralError(f"Backend response is not valid JSON: {e}", code=ErrorCode.PARSE_ERROR) from e
        if not isinstance(payload, dict):
            raise StructuralError(
                f"Backend response must be a JSON object, got {type(payload).__name__}", code=ErrorCode.PARSE_ERROR,
            )
        return payload
