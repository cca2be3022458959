import json
from datetime import date

import httpx
import pytest

from adledger.db.enums import AdObjectType, Platform
from adledger.services import platform_api
from adledger.services.date_ranges import DateRange
from adledger.services.platform_api import (
    MetaAdsClient,
    PaginationLimitError,
    PlatformAPIError,
    PlatformConfigError,
    RemoteFetchError,
    RemoteTimeoutError,
    parse_meta_row,
)

BASE = "https://graph.test"
TOKEN = "secret-token"


def _client(handler, **kwargs) -> MetaAdsClient:
    return MetaAdsClient(
        access_token=TOKEN,
        base_url=BASE,
        api_version="v21.0",
        test_mode=False,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_list_accounts_follows_cursor_and_strips_prefix():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.url.params.get("after") == "cursor-2":
            return httpx.Response(
                200,
                json={"data": [{"id": "act_222", "name": "Second", "currency": "EUR", "timezone_name": "Europe/Berlin"}]},
            )
        return httpx.Response(
            200,
            json={
                "data": [{"id": "act_111", "name": "First", "currency": "USD", "timezone_name": "America/New_York", "account_status": 1}],
                "paging": {"next": f"{BASE}/v21.0/me/adaccounts?after=cursor-2&access_token={TOKEN}"},
            },
        )

    client = _client(handler)
    try:
        accounts = await client.list_accounts()
    finally:
        await client.aclose()

    assert [a.external_id for a in accounts] == ["111", "222"]
    assert accounts[0].timezone == "America/New_York"
    assert accounts[1].currency == "EUR"
    assert len(requests) == 2
    first = requests[0]
    assert first.url.path == "/v21.0/me/adaccounts"
    assert first.url.params["access_token"] == TOKEN
    assert first.url.params["limit"] == "100"
    assert "timezone_name" in first.url.params["fields"]


@pytest.mark.asyncio
async def test_list_performance_rows_requests_level_and_window():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["params"] = dict(request.url.params)
        return httpx.Response(
            200,
            json={
                "data": [
                    {
                        "adset_id": "s1",
                        "adset_name": "Set One",
                        "campaign_id": "c1",
                        "spend": "12.34",
                        "impressions": "1000",
                        "clicks": "25",
                        "reach": "800",
                        "actions": [{"action_type": "lead", "value": "2"}],
                        "date_start": "2024-01-15",
                        "date_stop": "2024-01-15",
                    }
                ]
            },
        )

    client = _client(handler)
    try:
        rows = await client.list_performance_rows(
            "111", AdObjectType.AD_SET, DateRange(date(2024, 1, 14), date(2024, 1, 15))
        )
    finally:
        await client.aclose()

    assert seen["path"] == "/v21.0/act_111/insights"
    assert seen["params"]["level"] == "adset"
    assert seen["params"]["time_increment"] == "1"
    assert json.loads(seen["params"]["time_range"]) == {"since": "2024-01-14", "until": "2024-01-15"}
    assert seen["params"]["fields"].startswith("adset_id,adset_name,campaign_id,spend")

    [row] = rows
    assert row.object_id == "s1"
    assert row.parent_id == "c1"
    assert row.day == date(2024, 1, 15)
    assert row.spend == "12.34"
    assert row.impressions == 1000
    assert row.clicks == 25
    assert row.extras == {"reach": "800", "actions": [{"action_type": "lead", "value": "2"}]}


@pytest.mark.asyncio
async def test_error_response_raises_remote_fetch_error_without_token():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, text=f"bad request for access_token={TOKEN}")

    client = _client(handler)
    try:
        with pytest.raises(RemoteFetchError) as exc_info:
            await client.list_accounts()
    finally:
        await client.aclose()

    assert exc_info.value.status_code == 400
    assert TOKEN not in str(exc_info.value)


@pytest.mark.asyncio
async def test_long_error_body_never_leaks_part_of_token():
    # The bare token straddles the truncation point
    body = "x" * (platform_api.MAX_ERROR_BODY - 5) + TOKEN

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text=body)

    client = _client(handler)
    try:
        with pytest.raises(RemoteFetchError) as exc_info:
            await client.list_accounts()
    finally:
        await client.aclose()

    assert len(exc_info.value.body) == platform_api.MAX_ERROR_BODY
    assert TOKEN[:5] not in exc_info.value.body


@pytest.mark.asyncio
async def test_timeout_raises_remote_timeout_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    client = _client(handler)
    try:
        with pytest.raises(RemoteTimeoutError):
            await client.list_accounts()
    finally:
        await client.aclose()


@pytest.mark.asyncio
async def test_connection_failure_raises_remote_fetch_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = _client(handler)
    try:
        with pytest.raises(RemoteFetchError) as exc_info:
            await client.list_accounts()
    finally:
        await client.aclose()
    assert exc_info.value.status_code is None


@pytest.mark.asyncio
async def test_endless_cursor_hits_page_cap():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={"data": [], "paging": {"next": f"{BASE}/v21.0/me/adaccounts?after=again"}},
        )

    client = _client(handler, max_pages=3)
    try:
        with pytest.raises(PaginationLimitError):
            await client.list_accounts()
    finally:
        await client.aclose()


def test_parse_meta_row_skips_rows_without_id_or_date():
    assert parse_meta_row(AdObjectType.AD, {"date_start": "2024-01-01"}) is None
    assert parse_meta_row(AdObjectType.AD, {"ad_id": "a1"}) is None
    assert parse_meta_row(AdObjectType.AD, {"ad_id": "a1", "date_start": "not-a-date"}) is None


def test_parse_meta_row_campaign_has_no_parent():
    row = parse_meta_row(
        AdObjectType.CAMPAIGN,
        {"campaign_id": "c1", "campaign_name": "C", "date_start": "2024-01-01"},
    )
    assert row.parent_id is None
    assert row.spend == "0"
    assert row.impressions == 0


@pytest.mark.asyncio
async def test_test_mode_returns_consistent_mock_tree():
    client = MetaAdsClient(access_token="", test_mode=True)
    try:
        [account] = await client.list_accounts()
        window = DateRange(date(2024, 1, 1), date(2024, 1, 2))
        campaigns = await client.list_performance_rows(account.external_id, AdObjectType.CAMPAIGN, window)
        ads = await client.list_performance_rows(account.external_id, AdObjectType.AD, window)
    finally:
        await client.aclose()

    def total(rows):
        return round(sum(float(r.spend) for r in rows), 2)

    assert total(campaigns) == total(ads)
    assert {r.day for r in ads} == {date(2024, 1, 1), date(2024, 1, 2)}
    assert all(r.parent_id for r in ads)


def test_build_platform_client(monkeypatch):
    monkeypatch.setattr(platform_api.settings, "META_ADS_TOKEN", "")
    monkeypatch.setattr(platform_api.settings, "META_TEST_MODE", False)
    with pytest.raises(PlatformConfigError):
        platform_api.build_platform_client(Platform.META)

    with pytest.raises(PlatformConfigError):
        platform_api.build_platform_client(Platform.TIKTOK)

    monkeypatch.setattr(platform_api.settings, "META_ADS_TOKEN", "abc")
    client = platform_api.build_platform_client("META")
    assert isinstance(client, MetaAdsClient)
    assert client.access_token == "abc"
