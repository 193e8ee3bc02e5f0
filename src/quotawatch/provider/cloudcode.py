import asyncio
from datetime import datetime
from typing import Any

import httpx
import structlog

from quotawatch.errors import QuotaFetchError
from quotawatch.models import Account, QuotaReading, ResourceQuota

logger = structlog.get_logger()

CLOUD_CODE_BASE_URL = "https://cloudcode-pa.googleapis.com/v1internal"
LOAD_PROJECT_URL = f"{CLOUD_CODE_BASE_URL}:loadCodeAssist"
QUOTA_URL = f"{CLOUD_CODE_BASE_URL}:fetchAvailableModels"
USER_AGENT = "quotawatch/0.1"

# upstream model id -> resource name used in entity keys
TRACKED_MODELS: "dict[str, str]" = {
    "gemini-3-pro-high": "Gemini Pro",
    "gemini-3-flash": "Gemini Flash",
    "claude-sonnet-4-5": "Claude",
}

# lowercased upstream tier id -> account_type display name
TIER_NAMES: "dict[str, str]" = {
    "gemini_code_assist_premium": "Ultra",
    "cloudaicompanion_gemini_code_assist_premium": "Ultra",
    "g1-pro-tier": "Pro",
    "gemini_code_assist_business": "Business",
    "gemini_code_assist_enterprise": "Enterprise",
}


def parse_reset_time(value: "str | None") -> "int | None":
    """
    converts an RFC 3339 reset time into a unix timestamp.
    Unparseable values are treated as unknown.
    """
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.debug("reset_time_unparseable", value=value)
        return None
    return int(dt.timestamp())


def tier_display(data: "dict[str, Any]") -> "str":
    """
    maps the loadCodeAssist tier id to a display name. The paid
    tier wins over the current one. Unknown ids are passed through
    and a missing id yields "".
    """
    tier_id = None
    for field in ("paidTier", "currentTier"):
        tier = data.get(field)
        if isinstance(tier, dict) and tier.get("id"):
            tier_id = str(tier["id"])
            break

    if tier_id is None:
        return ""
    return TIER_NAMES.get(tier_id.lower(), tier_id)


class CloudCodeQuotaSource:
    """
    CloudCodeQuotaSource implements the QuotaSource protocol against
    the Cloud Code assist API. It resolves the account's project and
    subscription tier once, caches them, and then reads the
    per-model remaining fraction and reset time.
    """

    def __init__(
        self,
        timeout: "float" = 10.0,
        tracked_models: "dict[str, str] | None" = None,
    ) -> "None":
        self._client: "httpx.AsyncClient" = httpx.AsyncClient(
            timeout=timeout,
            headers={"User-Agent": USER_AGENT},
        )
        self._tracked = dict(tracked_models or TRACKED_MODELS)
        # caches: account id -> (project id, tier display name)
        self._projects: "dict[str, tuple[str, str]]" = {}
        self._project_lock: "asyncio.Lock" = asyncio.Lock()

    @property
    def name(self) -> "str":
        return "cloudcode"

    async def close(self) -> "None":
        """
        closes the underlying HTTP client.
        """
        await self._client.aclose()

    async def fetch(self, account: "Account") -> "QuotaReading":
        """
        fetches the current quota of every tracked model for account.
        """
        if not account.token:
            raise QuotaFetchError(f"account {account.id} has no token")

        headers = {"Authorization": f"Bearer {account.token}"}
        project_id, tier = await self._resolve_project(account, headers)
        payload = {"project": project_id} if project_id else {}

        try:
            resp = await self._client.post(QUOTA_URL, json=payload, headers=headers)
        except httpx.HTTPError as exc:
            raise QuotaFetchError(f"quota request failed: {exc}") from exc

        if resp.is_error:
            raise QuotaFetchError(f"quota request returned {resp.status_code}")

        try:
            data = resp.json()
        except ValueError as exc:
            raise QuotaFetchError("quota response is not JSON") from exc

        resources: "dict[str, ResourceQuota]" = {}
        for model_id, info in (data.get("models") or {}).items():
            resource = self._tracked.get(model_id)
            # skip models we don't chart
            if resource is None:
                continue

            quota_info = info.get("quotaInfo") or {}
            fraction = quota_info.get("remainingFraction")
            resources[resource] = ResourceQuota(
                percentage=float(fraction) * 100.0 if fraction is not None else 0.0,
                reset_at=parse_reset_time(quota_info.get("resetTime")),
            )

        logger.debug(
            "cloudcode_quota_fetched",
            account=account.id,
            resource_count=len(resources),
            tier=tier,
        )
        return QuotaReading(resources=resources, account_type=tier)

    async def _resolve_project(
        self,
        account: "Account",
        headers: "dict[str, str]",
    ) -> "tuple[str, str]":
        """
        resolves the account's project id and subscription tier, with
        caching. A failed lookup is not cached and falls back to no
        project and an unknown tier.
        """
        if account.id in self._projects:
            return self._projects[account.id]

        async with self._project_lock:
            if account.id in self._projects:
                return self._projects[account.id]

            try:
                resp = await self._client.post(
                    LOAD_PROJECT_URL,
                    json={"metadata": {"ideType": "ANTIGRAVITY"}},
                    headers=headers,
                )
                if resp.status_code != 200:
                    return "", ""
                data = resp.json()
            except (httpx.HTTPError, ValueError):
                logger.warning("cloudcode_project_resolve_failed", account=account.id)
                return "", ""

            if not isinstance(data, dict):
                return "", ""
            project_id = str(data.get("cloudaicompanionProject") or "")
            tier = tier_display(data)
            if project_id:
                self._projects[account.id] = (project_id, tier)
            return project_id, tier
