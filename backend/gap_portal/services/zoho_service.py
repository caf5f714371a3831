"""Zoho Creator client: OAuth token cache, record creation and file upload.

All outbound calls share one bounded ``aiohttp`` timeout and are not retried;
a failed CRM call surfaces as :class:`ZohoAPIError` carrying the HTTP status
and the raw response payload so the API layer can report it verbatim.

The access token comes from a refresh-token grant and is cached in a
:class:`ZohoTokenCache`.  Concurrent callers that find the token expired
share a single refresh.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

import aiohttp

from gap_portal.services.field_mapper import map_concept_fields, map_proposal_fields
from gap_portal.settings import ZohoSettings

logger = logging.getLogger(__name__)

ZOHO_CODE_SUCCESS = 3000
ZOHO_CODE_INVALID_VALUES = 3001
ZOHO_CODE_VALIDATION_FAILED = 3002

DEFAULT_TOKEN_LIFETIME_SECONDS = 3600
TOKEN_SAFETY_MARGIN_SECONDS = 60


class ZohoAPIError(Exception):
    """A Zoho Creator call failed (auth, network, timeout or rejected data)."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        payload: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload


class ZohoConfigurationError(ZohoAPIError):
    """Required Zoho settings are missing."""


@dataclass
class ZohoRecord:
    """A record created in Zoho Creator."""

    record_id: str
    message: str = "Record created successfully in Zoho Creator"
    raw: Dict[str, Any] = field(default_factory=dict)


# ============================================================================
# Response parsing
# ============================================================================


def _join_error_detail(error: Any) -> str:
    if isinstance(error, dict):
        return ", ".join(str(v) for v in error.values())
    if isinstance(error, (list, tuple)):
        return ", ".join(str(v) for v in error)
    return str(error)


def parse_create_response(payload: Any, status_code: Optional[int] = None) -> ZohoRecord:
    """Interpret the body of a Zoho ``form`` POST.

    Raises:
        ZohoAPIError: for validation codes 3001/3002, an HTTP error status,
            or a body without a ``data.ID`` record id.
    """
    if not isinstance(payload, dict):
        raise ZohoAPIError(
            "Unexpected response from Zoho Creator", status_code, payload
        )

    code = payload.get("code")
    if code == ZOHO_CODE_VALIDATION_FAILED:
        detail = _join_error_detail(payload.get("error", {}))
        raise ZohoAPIError(
            f"Zoho Creator validation failed: {detail}", status_code, payload
        )
    if code == ZOHO_CODE_INVALID_VALUES:
        detail = _join_error_detail(payload.get("error", ""))
        raise ZohoAPIError(
            f"Zoho Creator rejected invalid field values: {detail}",
            status_code,
            payload,
        )
    if status_code is not None and status_code >= 400:
        raise ZohoAPIError(
            payload.get("message") or f"Zoho Creator returned HTTP {status_code}",
            status_code,
            payload,
        )

    data = payload.get("data")
    if not isinstance(data, dict) or data.get("ID") in (None, ""):
        raise ZohoAPIError("Invalid response from Zoho Creator", status_code, payload)
    return ZohoRecord(record_id=str(data["ID"]), raw=payload)


# ============================================================================
# Token cache
# ============================================================================

TokenFetcher = Callable[[], Awaitable[Tuple[str, Optional[int]]]]


class ZohoTokenCache:
    """Caches one access token until shortly before it expires.

    Args:
        fetcher: Coroutine returning ``(access_token, expires_in_seconds)``.
        safety_margin: Seconds subtracted from the advertised lifetime.
        clock: Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        fetcher: TokenFetcher,
        safety_margin: float = TOKEN_SAFETY_MARGIN_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._fetcher = fetcher
        self._safety_margin = safety_margin
        self._clock = clock
        self._token: Optional[str] = None
        self._expires_at = 0.0
        self._lock = asyncio.Lock()

    @property
    def valid(self) -> bool:
        return self._token is not None and self._clock() < self._expires_at

    def invalidate(self) -> None:
        self._token = None
        self._expires_at = 0.0

    async def get(self) -> str:
        """Return the cached token, refreshing it once if expired."""
        if self.valid:
            return self._token
        async with self._lock:
            # Another caller may have refreshed while we waited.
            if self.valid:
                return self._token
            return await self._refresh_locked()

    async def refresh(self) -> str:
        """Force a new token regardless of the cached one."""
        async with self._lock:
            return await self._refresh_locked()

    async def _refresh_locked(self) -> str:
        fetched_at = self._clock()
        token, expires_in = await self._fetcher()
        lifetime = expires_in or DEFAULT_TOKEN_LIFETIME_SECONDS
        self._token = token
        self._expires_at = fetched_at + max(lifetime - self._safety_margin, 0)
        logger.info("Zoho access token refreshed, valid for %ss", lifetime)
        return token


# ============================================================================
# Client
# ============================================================================


class ZohoCreatorClient:
    """Thin async client for the Zoho Creator v2 API."""

    def __init__(
        self,
        settings: Optional[ZohoSettings] = None,
        token_cache: Optional[ZohoTokenCache] = None,
    ) -> None:
        self.settings = settings or ZohoSettings.from_env()
        self.token_cache = token_cache or ZohoTokenCache(self._fetch_access_token)

    # -- transport ---------------------------------------------------------

    def _timeout(self) -> aiohttp.ClientTimeout:
        return aiohttp.ClientTimeout(total=self.settings.timeout_seconds)

    async def _post(
        self,
        url: str,
        *,
        json: Any = None,
        data: Any = None,
        params: Optional[Dict[str, str]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Tuple[int, Any]:
        """POST and return ``(status, parsed body)``.

        Network failures and timeouts are raised as :class:`ZohoAPIError`.
        """
        try:
            async with aiohttp.ClientSession(timeout=self._timeout()) as session:
                async with session.post(
                    url, json=json, data=data, params=params, headers=headers
                ) as response:
                    try:
                        body = await response.json(content_type=None)
                    except ValueError:
                        body = {"message": await response.text()}
                    return response.status, body
        except asyncio.TimeoutError as exc:
            raise ZohoAPIError(
                f"Zoho Creator request timed out after "
                f"{self.settings.timeout_seconds:.0f}s"
            ) from exc
        except aiohttp.ClientError as exc:
            raise ZohoAPIError(f"Zoho Creator connection error: {exc}") from exc

    def _require(self, *names: str) -> None:
        missing = [n for n in names if not getattr(self.settings, n)]
        if missing:
            raise ZohoConfigurationError(
                f"Zoho Creator is not configured: missing {', '.join(missing)}"
            )

    def _app_url(self) -> str:
        base = self.settings.api_base_url.rstrip("/")
        return f"{base}/{self.settings.org_id}/{self.settings.app_id}"

    async def _auth_headers(self) -> Dict[str, str]:
        token = await self.token_cache.get()
        return {"Authorization": f"Zoho-oauthtoken {token}"}

    # -- auth --------------------------------------------------------------

    async def _fetch_access_token(self) -> Tuple[str, Optional[int]]:
        self._require(
            "token_url", "client_id", "client_secret", "redirect_uri", "refresh_token"
        )
        params = {
            "grant_type": "refresh_token",
            "client_id": self.settings.client_id,
            "client_secret": self.settings.client_secret,
            "redirect_uri": self.settings.redirect_uri,
            "refresh_token": self.settings.refresh_token,
        }
        status, body = await self._post(self.settings.token_url, params=params)
        token = body.get("access_token") if isinstance(body, dict) else None
        if status >= 400 or not token:
            error = body.get("error") if isinstance(body, dict) else body
            logger.error("Zoho token request failed: HTTP %s (%s)", status, error)
            raise ZohoAPIError(
                f"Failed to get access token: {error or 'no access_token in response'}",
                status,
                body,
            )
        expires_in = body.get("expires_in")
        try:
            expires_in = int(expires_in) if expires_in is not None else None
        except (TypeError, ValueError):
            expires_in = None
        return token, expires_in

    async def get_access_token(self) -> str:
        return await self.token_cache.get()

    # -- records -----------------------------------------------------------

    async def create_record(self, form_name: str, data: Dict[str, Any]) -> ZohoRecord:
        """Create one record in ``form_name`` from already mapped fields."""
        self._require("org_id", "app_id")
        if not form_name:
            raise ZohoConfigurationError("Zoho Creator form name is not configured")

        url = f"{self._app_url()}/form/{form_name}"
        headers = await self._auth_headers()
        logger.info("Creating Zoho record in %s with %d fields", form_name, len(data))
        status, body = await self._post(url, json={"data": data}, headers=headers)
        if status == 401:
            self.token_cache.invalidate()

        try:
            record = parse_create_response(body, status)
        except ZohoAPIError as exc:
            logger.error("Zoho record creation failed in %s: %s", form_name, exc)
            raise
        logger.info("Zoho record created in %s: %s", form_name, record.record_id)
        return record

    async def create_proposal_record(self, proposal: Dict[str, Any]) -> ZohoRecord:
        mapped = map_proposal_fields(proposal)
        return await self.create_record(self.settings.proposal_form_name, mapped)

    async def create_concept_record(
        self, concept: Dict[str, Any], mapped: Optional[Dict[str, Any]] = None
    ) -> ZohoRecord:
        if mapped is None:
            mapped = map_concept_fields(concept)
        record = await self.create_record(self.settings.concept_form_name, mapped)
        record.message = "Concept paper created successfully in Zoho Creator"
        return record

    async def upload_file(
        self,
        record_id: str,
        field_name: str,
        content: bytes,
        filename: str,
        content_type: str = "application/pdf",
    ) -> Dict[str, Any]:
        """Attach a file to a file-upload field of an existing record."""
        self._require("org_id", "app_id", "concept_report_name")
        url = (
            f"{self._app_url()}/report/{self.settings.concept_report_name}"
            f"/{record_id}/{field_name}/upload"
        )
        form = aiohttp.FormData()
        form.add_field("file", content, filename=filename, content_type=content_type)
        headers = await self._auth_headers()

        logger.info(
            "Uploading %s (%d bytes) to record %s field %s",
            filename,
            len(content),
            record_id,
            field_name,
        )
        status, body = await self._post(url, data=form, headers=headers)
        code = body.get("code") if isinstance(body, dict) else None
        if status >= 400 or (code is not None and code != ZOHO_CODE_SUCCESS):
            message = body.get("message") if isinstance(body, dict) else None
            raise ZohoAPIError(
                f"File upload failed: {message or f'HTTP {status}'}", status, body
            )
        return body if isinstance(body, dict) else {"result": body}

    async def test_connection(self) -> bool:
        """True when an access token can be obtained."""
        token = await self.token_cache.refresh()
        return bool(token)
