from pathlib import Path

import pytest

from quotawatch.models import Account
from quotawatch.provider.identity import MarkerFileReconciler, NoopReconciler


def _accounts() -> "list[Account]":
    return [
        Account(id="a", name="Alice", email="alice@example.com", is_active=True),
        Account(id="b", name="Bob", email="bob@example.com"),
    ]


class TestMarkerFileReconciler:
    @pytest.mark.asyncio
    async def test_marks_account_by_email(self, tmp_path: "Path") -> "None":
        marker = tmp_path / "active"
        marker.write_text("bob@example.com\n", encoding="utf-8")
        accounts = _accounts()

        changed = await MarkerFileReconciler(marker).reconcile(accounts)

        assert changed is True
        assert [a.is_active for a in accounts] == [False, True]

    @pytest.mark.asyncio
    async def test_marks_account_by_id(self, tmp_path: "Path") -> "None":
        marker = tmp_path / "active"
        marker.write_text("b", encoding="utf-8")
        accounts = _accounts()

        await MarkerFileReconciler(marker).reconcile(accounts)

        assert [a.is_active for a in accounts] == [False, True]

    @pytest.mark.asyncio
    async def test_already_synced(self, tmp_path: "Path") -> "None":
        marker = tmp_path / "active"
        marker.write_text("alice@example.com", encoding="utf-8")

        assert await MarkerFileReconciler(marker).reconcile(_accounts()) is False

    @pytest.mark.asyncio
    async def test_missing_marker_keeps_state(self, tmp_path: "Path") -> "None":
        accounts = _accounts()

        changed = await MarkerFileReconciler(tmp_path / "missing").reconcile(accounts)

        assert changed is False
        assert [a.is_active for a in accounts] == [True, False]

    @pytest.mark.asyncio
    async def test_unknown_account_keeps_state(self, tmp_path: "Path") -> "None":
        marker = tmp_path / "active"
        marker.write_text("carol@example.com", encoding="utf-8")
        accounts = _accounts()

        assert await MarkerFileReconciler(marker).reconcile(accounts) is False
        assert [a.is_active for a in accounts] == [True, False]


class TestNoopReconciler:
    @pytest.mark.asyncio
    async def test_never_changes(self) -> "None":
        accounts = _accounts()
        assert await NoopReconciler().reconcile(accounts) is False
        assert [a.is_active for a in accounts] == [True, False]
