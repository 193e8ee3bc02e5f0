import json

import httpx
import pytest
import respx

from quotawatch.errors import QuotaFetchError
from quotawatch.models import Account
from quotawatch.provider.cloudcode import (
    LOAD_PROJECT_URL,
    QUOTA_URL,
    CloudCodeQuotaSource,
    parse_reset_time,
    tier_display,
)

ACCOUNT = Account(id="acc-1", name="Alice", token="ya29.test")


def _mock_project(project_id: "str" = "proj-1", **extra: "object") -> "respx.Route":
    return respx.post(LOAD_PROJECT_URL).mock(
        return_value=httpx.Response(
            200,
            json={"cloudaicompanionProject": project_id, **extra},
        )
    )


class TestTierDisplay:
    def test_paid_tier_wins(self) -> "None":
        data = {"paidTier": {"id": "g1-pro-tier"}, "currentTier": {"id": "free-tier"}}
        assert tier_display(data) == "Pro"

    def test_falls_back_to_current_tier(self) -> "None":
        data = {"paidTier": {}, "currentTier": {"id": "gemini_code_assist_premium"}}
        assert tier_display(data) == "Ultra"

    def test_known_ids_are_case_insensitive(self) -> "None":
        assert tier_display({"paidTier": {"id": "G1-PRO-TIER"}}) == "Pro"

    def test_unknown_id_is_passed_through(self) -> "None":
        assert tier_display({"currentTier": {"id": "free-tier"}}) == "free-tier"

    def test_missing_tier(self) -> "None":
        assert tier_display({}) == ""
        assert tier_display({"paidTier": None}) == ""


class TestParseResetTime:
    def test_parses_utc_suffix(self) -> "None":
        assert parse_reset_time("1970-01-01T01:00:00Z") == 3600

    def test_parses_offset(self) -> "None":
        assert parse_reset_time("1970-01-01T02:00:00+01:00") == 3600

    def test_missing_or_invalid(self) -> "None":
        assert parse_reset_time(None) is None
        assert parse_reset_time("") is None
        assert parse_reset_time("tomorrow") is None


class TestCloudCodeQuotaSourceFetch:
    @pytest.mark.asyncio
    @respx.mock
    async def test_fetches_and_parses_tracked_models(self) -> "None":
        _mock_project()
        route = respx.post(QUOTA_URL).mock(
            return_value=httpx.Response(
                200,
                json={
                    "models": {
                        "gemini-3-pro-high": {
                            "quotaInfo": {
                                "remainingFraction": 0.75,
                                "resetTime": "1970-01-01T01:00:00Z",
                            }
                        },
                        "gemini-3-flash": {"quotaInfo": {"remainingFraction": 1.0}},
                        "claude-sonnet-4-5": {},
                        "some-other-model": {
                            "quotaInfo": {"remainingFraction": 0.1}
                        },
                    }
                },
            )
        )

        source = CloudCodeQuotaSource()
        reading = await source.fetch(ACCOUNT)
        resources = reading.resources

        assert set(resources) == {"Gemini Pro", "Gemini Flash", "Claude"}
        assert resources["Gemini Pro"].percentage == 75.0
        assert resources["Gemini Pro"].reset_at == 3600
        assert resources["Gemini Flash"].percentage == 100.0
        assert resources["Gemini Flash"].reset_at is None
        assert resources["Claude"].percentage == 0.0

        request = route.calls.last.request
        assert request.headers["Authorization"] == "Bearer ya29.test"
        assert json.loads(request.content) == {"project": "proj-1"}
        await source.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_error_status_raises(self) -> "None":
        _mock_project()
        respx.post(QUOTA_URL).mock(return_value=httpx.Response(401))

        source = CloudCodeQuotaSource()
        with pytest.raises(QuotaFetchError):
            await source.fetch(ACCOUNT)

    @pytest.mark.asyncio
    @respx.mock
    async def test_network_error_raises(self) -> "None":
        _mock_project()
        respx.post(QUOTA_URL).mock(side_effect=httpx.ConnectError("refused"))

        source = CloudCodeQuotaSource()
        with pytest.raises(QuotaFetchError):
            await source.fetch(ACCOUNT)

    @pytest.mark.asyncio
    async def test_account_without_token_raises(self) -> "None":
        source = CloudCodeQuotaSource()
        with pytest.raises(QuotaFetchError):
            await source.fetch(Account(id="acc-2", name="Bob"))


class TestCloudCodeQuotaSourceProjectCache:
    @pytest.mark.asyncio
    @respx.mock
    async def test_caches_project(self) -> "None":
        # the project endpoint should only be called once
        project_route = _mock_project()
        respx.post(QUOTA_URL).mock(
            return_value=httpx.Response(200, json={"models": {}})
        )

        source = CloudCodeQuotaSource()
        await source.fetch(ACCOUNT)
        await source.fetch(ACCOUNT)

        assert project_route.call_count == 1

    @pytest.mark.asyncio
    @respx.mock
    async def test_failed_project_lookup_is_not_cached(self) -> "None":
        project_route = respx.post(LOAD_PROJECT_URL).mock(
            return_value=httpx.Response(500)
        )
        quota_route = respx.post(QUOTA_URL).mock(
            return_value=httpx.Response(200, json={"models": {}})
        )

        source = CloudCodeQuotaSource()
        await source.fetch(ACCOUNT)
        await source.fetch(ACCOUNT)

        assert project_route.call_count == 2
        assert json.loads(quota_route.calls.last.request.content) == {}

    @pytest.mark.asyncio
    @respx.mock
    async def test_reports_cached_tier(self) -> "None":
        project_route = _mock_project(
            paidTier={"id": "gemini_code_assist_business"},
            currentTier={"id": "free-tier"},
        )
        respx.post(QUOTA_URL).mock(
            return_value=httpx.Response(200, json={"models": {}})
        )

        source = CloudCodeQuotaSource()
        first = await source.fetch(ACCOUNT)
        second = await source.fetch(ACCOUNT)

        assert first.account_type == "Business"
        assert second.account_type == "Business"
        assert project_route.call_count == 1

    @pytest.mark.asyncio
    @respx.mock
    async def test_failed_project_lookup_has_no_tier(self) -> "None":
        respx.post(LOAD_PROJECT_URL).mock(return_value=httpx.Response(503))
        respx.post(QUOTA_URL).mock(
            return_value=httpx.Response(200, json={"models": {}})
        )

        source = CloudCodeQuotaSource()
        reading = await source.fetch(ACCOUNT)

        assert reading.account_type == ""
        assert reading.resources == {}
