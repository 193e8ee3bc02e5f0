import pytest

from quotawatch.models import (
    Account,
    AccountQuota,
    EntityKey,
    QuotaSnapshot,
    ResourceQuota,
)


class TestEntityKey:
    def test_format(self) -> "None":
        assert EntityKey("acc-1", "Gemini Pro").format() == "acc-1:Gemini Pro"

    def test_parse(self) -> "None":
        assert EntityKey.parse("acc-1:Gemini Pro") == EntityKey("acc-1", "Gemini Pro")

    def test_parse_keeps_colons_in_resource(self) -> "None":
        key = EntityKey.parse("acc-1:model:v2")
        assert key.account_id == "acc-1"
        assert key.resource == "model:v2"

    def test_parse_rejects_missing_separator(self) -> "None":
        with pytest.raises(ValueError):
            EntityKey.parse("no-separator")

    def test_parse_rejects_empty_account(self) -> "None":
        with pytest.raises(ValueError):
            EntityKey.parse(":model")

    def test_format_rejects_colon_in_account(self) -> "None":
        with pytest.raises(ValueError):
            EntityKey("a:b", "model").format()


class TestQuotaSnapshot:
    def test_from_dict_defaults_optional_maps(self) -> "None":
        point = QuotaSnapshot.from_dict({"timestamp": 100, "usage": {"a:m": 50}})
        assert point.timestamp == 100
        assert point.usage == {"a:m": 50.0}
        assert point.reset_at == {}
        assert point.account_names == {}

    def test_to_dict_shape(self) -> "None":
        point = QuotaSnapshot(
            timestamp=100,
            usage={"a:m": 50.0},
            reset_at={"a:m": 200},
            account_names={"a": "Alice"},
        )
        assert point.to_dict() == {
            "timestamp": 100,
            "usage": {"a:m": 50.0},
            "reset_at": {"a:m": 200},
            "account_names": {"a": "Alice"},
        }


class TestAccount:
    def test_from_dict_ignores_unknown_fields(self) -> "None":
        account = Account.from_dict(
            {"id": "a", "name": "Alice", "status": "active", "quota": None}
        )
        assert account.id == "a"
        assert account.name == "Alice"
        assert account.is_active is False
        assert account.quota is None

    def test_quota_survives_dict_conversion(self) -> "None":
        account = Account(
            id="a",
            name="Alice",
            quota=AccountQuota(
                resources={"Gemini Pro": ResourceQuota(80.0, 5000)},
                last_updated=100,
            ),
        )
        restored = Account.from_dict(account.to_dict())
        assert restored == account

    def test_reset_instants_skips_unknown(self) -> "None":
        account = Account(
            id="a",
            name="Alice",
            quota=AccountQuota(
                resources={
                    "Gemini Pro": ResourceQuota(80.0, 5000),
                    "Claude": ResourceQuota(90.0, None),
                },
                last_updated=100,
            ),
        )
        assert account.reset_instants() == [5000]

    def test_reset_instants_without_quota(self) -> "None":
        assert Account(id="a", name="Alice").reset_instants() == []
