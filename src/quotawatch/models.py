from dataclasses import dataclass, field
from typing import Any, NamedTuple


class EntityKey(NamedTuple):
    """
    EntityKey identifies one tracked (account, resource) pair.

    The persisted form is "<account_id>:<resource>". Parsing splits
    on the first colon only, so resource names may contain colons
    while account ids may not.
    """

    account_id: "str"
    resource: "str"

    def format(self) -> "str":
        if ":" in self.account_id:
            raise ValueError(f"account id may not contain ':': {self.account_id!r}")
        return f"{self.account_id}:{self.resource}"

    @classmethod
    def parse(cls, text: "str") -> "EntityKey":
        account_id, sep, resource = text.partition(":")
        if not sep or not account_id:
            raise ValueError(f"malformed entity key: {text!r}")
        return cls(account_id, resource)


@dataclass(frozen=True, slots=True)
class ResourceQuota:
    """
    ResourceQuota is the last known state of one named
    sub-resource of an account.
    """

    # remaining percentage, nominally 0.0-100.0
    percentage: "float"
    # unix timestamp of the next scheduled reset, if reported
    reset_at: "int | None" = None

    def to_dict(self) -> "dict[str, Any]":
        return {"percentage": self.percentage, "reset_at": self.reset_at}

    @classmethod
    def from_dict(cls, data: "dict[str, Any]") -> "ResourceQuota":
        reset_at = data.get("reset_at")
        return cls(
            percentage=float(data.get("percentage", 0.0)),
            reset_at=int(reset_at) if reset_at is not None else None,
        )


@dataclass(frozen=True, slots=True)
class QuotaReading:
    """
    QuotaReading is what a quota source returns for one account.
    """

    resources: "dict[str, ResourceQuota]"
    # subscription tier display name, empty when the source could not tell
    account_type: "str" = ""


@dataclass(frozen=True, slots=True)
class AccountQuota:
    resources: "dict[str, ResourceQuota]"
    # unix timestamp of the fetch that produced this state
    last_updated: "int"

    def to_dict(self) -> "dict[str, Any]":
        return {
            "resources": {
                name: quota.to_dict() for name, quota in self.resources.items()
            },
            "last_updated": self.last_updated,
        }

    @classmethod
    def from_dict(cls, data: "dict[str, Any]") -> "AccountQuota":
        return cls(
            resources={
                name: ResourceQuota.from_dict(raw)
                for name, raw in (data.get("resources") or {}).items()
            },
            last_updated=int(data.get("last_updated", 0)),
        )


@dataclass(slots=True)
class Account:
    """
    Account is one record of the account directory. The sampler
    only ever replaces `quota`; identity fields are owned by
    whoever created the record.
    """

    id: "str"
    name: "str"
    email: "str" = ""
    # credential handed to the quota source as-is
    token: "str" = ""
    account_type: "str" = ""
    is_active: "bool" = False
    quota: "AccountQuota | None" = None

    def to_dict(self) -> "dict[str, Any]":
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "token": self.token,
            "account_type": self.account_type,
            "is_active": self.is_active,
            "quota": self.quota.to_dict() if self.quota is not None else None,
        }

    @classmethod
    def from_dict(cls, data: "dict[str, Any]") -> "Account":
        quota = data.get("quota")
        return cls(
            id=str(data["id"]),
            name=str(data.get("name", "")),
            email=str(data.get("email", "")),
            token=str(data.get("token", "")),
            account_type=str(data.get("account_type", "")),
            is_active=bool(data.get("is_active", False)),
            quota=AccountQuota.from_dict(quota) if quota else None,
        )

    def reset_instants(self) -> "list[int]":
        """
        returns the predicted reset timestamps of every resource
        that reported one.
        """
        if self.quota is None:
            return []
        return [
            q.reset_at for q in self.quota.resources.values() if q.reset_at is not None
        ]


@dataclass(frozen=True, slots=True)
class QuotaSnapshot:
    """
    QuotaSnapshot is one point-in-time observation of every
    tracked entity. Keys of `usage` and `reset_at` are formatted
    EntityKey strings.
    """

    timestamp: "int"
    usage: "dict[str, float]" = field(default_factory=dict)
    reset_at: "dict[str, int]" = field(default_factory=dict)
    # account id -> display name, kept so deleted accounts stay readable
    account_names: "dict[str, str]" = field(default_factory=dict)

    def to_dict(self) -> "dict[str, Any]":
        return {
            "timestamp": self.timestamp,
            "usage": dict(self.usage),
            "reset_at": dict(self.reset_at),
            "account_names": dict(self.account_names),
        }

    @classmethod
    def from_dict(cls, data: "dict[str, Any]") -> "QuotaSnapshot":
        return cls(
            timestamp=int(data["timestamp"]),
            usage={k: float(v) for k, v in (data.get("usage") or {}).items()},
            reset_at={k: int(v) for k, v in (data.get("reset_at") or {}).items()},
            account_names=dict(data.get("account_names") or {}),
        )


@dataclass(frozen=True, slots=True)
class BucketItem:
    group_id: "str"
    account_name: "str"
    model_name: "str"
    # percentage points consumed inside the bucket
    usage: "float"
    color: "str"

    def to_dict(self) -> "dict[str, Any]":
        return {
            "group_id": self.group_id,
            "account_name": self.account_name,
            "model_name": self.model_name,
            "usage": self.usage,
            "color": self.color,
        }


@dataclass(slots=True)
class UsageBucket:
    """
    UsageBucket covers the half-open interval [start_time, end_time).
    """

    start_time: "int"
    end_time: "int"
    items: "list[BucketItem]" = field(default_factory=list)

    @property
    def total(self) -> "float":
        return sum(item.usage for item in self.items)

    def to_dict(self) -> "dict[str, Any]":
        return {
            "start_time": self.start_time,
            "end_time": self.end_time,
            "items": [item.to_dict() for item in self.items],
        }


@dataclass(slots=True)
class UsageChartData:
    buckets: "list[UsageBucket]"
    max_usage: "float"
    display_minutes: "int"
    # bucket width in minutes
    interval: "int"

    def to_dict(self) -> "dict[str, Any]":
        return {
            "buckets": [b.to_dict() for b in self.buckets],
            "max_usage": self.max_usage,
            "display_minutes": self.display_minutes,
            "interval": self.interval,
        }
