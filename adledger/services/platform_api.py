"""Ad platform API clients.

Handles:
- Account discovery for the configured credential
- Daily performance rows per hierarchy level (campaign, ad set, ad)
- Cursor pagination with an optional page cap
- Test mode with deterministic mock data
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Protocol

import httpx

from adledger.core.config import settings
from adledger.core.structured_logging import redact_secrets
from adledger.db.enums import AdObjectType, Platform
from adledger.services.date_ranges import DateRange
from adledger.types import JsonObject

logger = logging.getLogger(__name__)

MAX_ERROR_BODY = 500


class PlatformAPIError(Exception):
    """Base exception for remote platform errors."""

    pass


class RemoteFetchError(PlatformAPIError):
    """Non-success response (or transport failure) from the platform."""

    def __init__(self, status_code: int | None, body: str):
        self.status_code = status_code
        self.body = body
        label = status_code if status_code is not None else "transport error"
        super().__init__(f"Platform API {label}: {body}")


class RemoteTimeoutError(PlatformAPIError):
    """Client-side timeout talking to the platform."""

    pass


class PlatformConfigError(PlatformAPIError):
    """No client can be built for the platform with the current settings."""

    pass


class PaginationLimitError(PlatformAPIError):
    """A listing kept returning cursors past the configured page cap."""

    pass


@dataclass(frozen=True)
class RemoteAccount:
    external_id: str
    name: str | None
    currency: str
    timezone: str
    status: int | None = None


@dataclass(frozen=True)
class PerformanceRow:
    """One day of performance for one object at one hierarchy level."""

    level: AdObjectType
    day: date
    object_id: str
    object_name: str | None
    parent_id: str | None
    spend: str
    impressions: int
    clicks: int
    extras: JsonObject = field(default_factory=dict)
    raw: JsonObject = field(default_factory=dict)


class AdPlatformClient(Protocol):
    """Read-only view of an ad platform used by the sync orchestrator."""

    platform: Platform

    async def list_accounts(self) -> list[RemoteAccount]:
        ...

    async def list_performance_rows(
        self,
        account_external_id: str,
        level: AdObjectType,
        window: DateRange,
    ) -> list[PerformanceRow]:
        ...

    async def aclose(self) -> None:
        ...


# =============================================================================
# Meta Marketing API
# =============================================================================

# level -> (api level, id field, name field, parent id field)
META_LEVELS: dict[AdObjectType, tuple[str, str, str, str | None]] = {
    AdObjectType.CAMPAIGN: ("campaign", "campaign_id", "campaign_name", None),
    AdObjectType.AD_SET: ("adset", "adset_id", "adset_name", "campaign_id"),
    AdObjectType.AD: ("ad", "ad_id", "ad_name", "adset_id"),
}

META_BASE_FIELDS = ["spend", "impressions", "clicks", "reach", "frequency", "cpm", "cpc", "ctr", "actions"]
META_EXTRA_FIELDS = ("reach", "frequency", "cpm", "cpc", "ctr", "actions")
META_ACCOUNT_FIELDS = "id,name,currency,timezone_name,account_status"


def _to_int(value: Any) -> int:
    if value in (None, ""):
        return 0
    return int(float(value))


class MetaAdsClient:
    """Meta Graph API client over a shared httpx.AsyncClient."""

    platform = Platform.META

    def __init__(
        self,
        access_token: str,
        *,
        api_version: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        page_size: int | None = None,
        max_pages: int | None = None,
        test_mode: bool | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.access_token = access_token
        self.api_version = api_version or settings.META_API_VERSION
        self.base_url = (base_url or settings.META_GRAPH_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.META_REQUEST_TIMEOUT_SECONDS
        self.page_size = page_size or settings.META_PAGE_SIZE
        self.max_pages = settings.PLATFORM_MAX_PAGES if max_pages is None else max_pages
        self.test_mode = settings.META_TEST_MODE if test_mode is None else test_mode
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout, connect=min(self.timeout, 10.0)),
            transport=transport,
        )

    def _graph_url(self, path: str) -> str:
        return f"{self.base_url}/{self.api_version}/{path.lstrip('/')}"

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _get_paginated(self, path: str, params: dict[str, Any]) -> list[JsonObject]:
        """
        Fetch every page of a Graph listing by following ``paging.next``.

        The next-page URL already carries all query params, so params are
        only sent with the first request.
        """
        url: str | None = self._graph_url(path)
        query: dict[str, Any] | None = {
            **params,
            "access_token": self.access_token,
            "limit": self.page_size,
        }
        items: list[JsonObject] = []
        pages_fetched = 0

        while url:
            try:
                resp = await self._client.get(url, params=query)
            except httpx.TimeoutException as exc:
                raise RemoteTimeoutError(
                    f"Meta API timeout after {self.timeout}s on {path}"
                ) from exc
            except httpx.TransportError as exc:
                raise RemoteFetchError(
                    None, redact_secrets(str(exc), (self.access_token,))[:MAX_ERROR_BODY]
                ) from exc

            if resp.status_code != 200:
                body = redact_secrets(resp.text, (self.access_token,))[:MAX_ERROR_BODY]
                raise RemoteFetchError(resp.status_code, body)

            data = resp.json()
            items.extend(data.get("data", []))
            pages_fetched += 1

            url = (data.get("paging") or {}).get("next")
            query = None
            if url and self.max_pages and pages_fetched >= self.max_pages:
                raise PaginationLimitError(
                    f"Meta API listing {path} exceeded {self.max_pages} pages"
                )

        return items

    async def list_accounts(self) -> list[RemoteAccount]:
        """List ad accounts reachable by the token (``act_`` prefix stripped)."""
        if self.test_mode:
            return _mock_accounts()

        raw_accounts = await self._get_paginated(
            "me/adaccounts", {"fields": META_ACCOUNT_FIELDS}
        )
        accounts = []
        for raw in raw_accounts:
            account_id = str(raw.get("id") or "")
            if not account_id:
                continue
            accounts.append(
                RemoteAccount(
                    external_id=account_id.removeprefix("act_"),
                    name=raw.get("name"),
                    currency=raw.get("currency") or "USD",
                    timezone=raw.get("timezone_name") or "UTC",
                    status=raw.get("account_status"),
                )
            )
        return accounts

    async def list_performance_rows(
        self,
        account_external_id: str,
        level: AdObjectType,
        window: DateRange,
    ) -> list[PerformanceRow]:
        """
        Fetch daily insights for one account at one hierarchy level.

        ``window`` must already be expressed in the account's timezone.
        """
        if self.test_mode:
            return _mock_rows(level, window)

        api_level, id_field, name_field, parent_field = META_LEVELS[level]
        fields = [id_field, name_field]
        if parent_field:
            fields.append(parent_field)
        params = {
            "level": api_level,
            "fields": ",".join(fields + META_BASE_FIELDS),
            "time_range": json.dumps(
                {"since": window.start.isoformat(), "until": window.end.isoformat()}
            ),
            "time_increment": 1,
        }
        raw_rows = await self._get_paginated(f"act_{account_external_id}/insights", params)

        rows = []
        for raw in raw_rows:
            row = parse_meta_row(level, raw)
            if row:
                rows.append(row)
            else:
                logger.warning(
                    "Skipping %s insight row without id or date for account %s",
                    api_level,
                    account_external_id,
                )
        return rows


def parse_meta_row(level: AdObjectType, raw: JsonObject) -> PerformanceRow | None:
    """Normalize one Meta insights row; None when the id or date is missing."""
    _, id_field, name_field, parent_field = META_LEVELS[level]
    object_id = raw.get(id_field)
    date_str = raw.get("date_start")
    if not object_id or not date_str:
        return None
    try:
        day = date.fromisoformat(str(date_str))
    except ValueError:
        return None

    return PerformanceRow(
        level=level,
        day=day,
        object_id=str(object_id),
        object_name=raw.get(name_field),
        parent_id=str(raw[parent_field]) if parent_field and raw.get(parent_field) else None,
        spend=str(raw.get("spend") or "0"),
        impressions=_to_int(raw.get("impressions")),
        clicks=_to_int(raw.get("clicks")),
        extras={key: raw[key] for key in META_EXTRA_FIELDS if key in raw},
        raw=raw,
    )


def build_platform_client(platform: Platform | str) -> AdPlatformClient:
    """Create the API client for a platform using credentials from settings."""
    platform = Platform(platform)
    if platform == Platform.META:
        if not settings.META_ADS_TOKEN and not settings.META_TEST_MODE:
            raise PlatformConfigError("META_ADS_TOKEN is not configured")
        return MetaAdsClient(access_token=settings.META_ADS_TOKEN)
    raise PlatformConfigError(f"Unsupported platform: {platform.value}")


# =============================================================================
# Test mode
# =============================================================================

_MOCK_TREE = [
    # (campaign, ad set, ad, daily spend)
    ("camp_001", "adset_001", "ad_001", "120.50"),
    ("camp_001", "adset_001", "ad_002", "80.25"),
    ("camp_002", "adset_002", "ad_003", "45.00"),
]


def _mock_accounts() -> list[RemoteAccount]:
    """Return mock accounts for test mode."""
    return [
        RemoteAccount(
            external_id="1000000001",
            name="Test Ad Account",
            currency="USD",
            timezone="America/Los_Angeles",
            status=1,
        )
    ]


def _mock_rows(level: AdObjectType, window: DateRange) -> list[PerformanceRow]:
    """Return mock insights rows for test mode, consistent across levels."""
    totals: dict[tuple[str, str | None], tuple[float, int, int]] = {}
    for campaign_id, adset_id, ad_id, spend in _MOCK_TREE:
        key = {
            AdObjectType.CAMPAIGN: (campaign_id, None),
            AdObjectType.AD_SET: (adset_id, campaign_id),
            AdObjectType.AD: (ad_id, adset_id),
        }[level]
        amount, impressions, clicks = totals.get(key, (0.0, 0, 0))
        totals[key] = (amount + float(spend), impressions + 4000, clicks + 90)

    rows = []
    for day in window.iter_days():
        for (object_id, parent_id), (amount, impressions, clicks) in totals.items():
            rows.append(
                PerformanceRow(
                    level=level,
                    day=day,
                    object_id=object_id,
                    object_name=f"Mock {level.value.replace('_', ' ').title()} {object_id[-3:]}",
                    parent_id=parent_id,
                    spend=f"{amount:.2f}",
                    impressions=impressions,
                    clicks=clicks,
                    extras={"actions": [{"action_type": "lead", "value": "3"}]},
                )
            )
    return rows
