import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Mapping, Sequence

import structlog

from quotawatch.models import (
    BucketItem,
    EntityKey,
    QuotaSnapshot,
    UsageBucket,
    UsageChartData,
)

if TYPE_CHECKING:
    from quotawatch.accounts import AccountDirectory
    from quotawatch.history import SnapshotStore

logger = structlog.get_logger()

UNKNOWN_ACCOUNT = "Unknown"

COLOR_PRO = "#6366f1"
COLOR_FLASH = "#10b981"
COLOR_OTHER = "#a855f7"


@dataclass(frozen=True, slots=True)
class ChartThresholds:
    """
    ChartThresholds groups the empirically tuned constants used
    when turning snapshots into buckets.
    """

    # flag "used but not yet reflected" intervals at all
    implicit_use_enabled: "bool" = True
    # a remaining percentage at or above this counts as full
    implicit_full_level: "float" = 99.9
    # a full quota whose reset is closer than this is already in use
    implicit_window_seconds: "int" = 299 * 60
    # lag correction applies when the flagged bucket is below low
    # and the following bucket is above high
    smoothing_low: "float" = 0.5
    smoothing_high: "float" = 1.0
    # amounts at or below this are not materialized
    noise_floor: "float" = 0.001


DEFAULT_THRESHOLDS = ChartThresholds()


def resource_color(resource: "str") -> "str":
    lower = resource.lower()
    if "pro" in lower:
        return COLOR_PRO
    if "flash" in lower:
        return COLOR_FLASH
    return COLOR_OTHER


def interval_consumption(
    val1: "float",
    val2: "float",
    r1: "int | None",
    r2: "int | None",
) -> "float":
    """
    returns the percentage points consumed between two readings.

    A change of the absolute reset timestamp means a reset happened
    in between, so everything missing from 100 at the second reading
    was consumed after it. Otherwise the drop is the consumption;
    an increase without a reset is jitter and counts as zero.
    """
    if r1 is not None and r2 is not None and r1 != r2:
        return max(0.0, 100.0 - val2)
    return max(0.0, val1 - val2)


def is_implicit_use(
    val1: "float",
    r1: "int | None",
    t1: "int",
    thresholds: "ChartThresholds" = DEFAULT_THRESHOLDS,
) -> "bool":
    """
    reports whether a reading looks full but already started its
    reset countdown, i.e. consumption began and has not shown up
    in the percentage yet.
    """
    if not thresholds.implicit_use_enabled or r1 is None:
        return False
    if val1 < thresholds.implicit_full_level:
        return False
    return 0 < r1 - t1 < thresholds.implicit_window_seconds


def make_buckets(
    now: "int",
    display_minutes: "int",
    bucket_minutes: "int",
) -> "list[UsageBucket]":
    """
    builds display_minutes // bucket_minutes contiguous buckets ending
    at the first bucket boundary after now, oldest first. The bucket
    holding now is always included.
    """
    bucket_seconds = bucket_minutes * 60
    aligned_end = (now // bucket_seconds + 1) * bucket_seconds
    start_time = aligned_end - display_minutes * 60
    bucket_count = display_minutes // bucket_minutes

    return [
        UsageBucket(
            start_time=start_time + i * bucket_seconds,
            end_time=start_time + (i + 1) * bucket_seconds,
        )
        for i in range(bucket_count)
    ]


def distribute(
    consumed: "float",
    t1: "int",
    t2: "int",
    buckets: "Sequence[UsageBucket]",
    values: "list[float]",
) -> "None":
    """
    spreads consumed over values in proportion to how much of
    [t1, t2) each bucket overlaps.
    """
    total_duration = t2 - t1
    for idx, bucket in enumerate(buckets):
        overlap = min(t2, bucket.end_time) - max(t1, bucket.start_time)
        if overlap > 0:
            values[idx] += consumed * overlap / total_duration


def bucket_index(t: "int", buckets: "Sequence[UsageBucket]") -> "int | None":
    for idx, bucket in enumerate(buckets):
        if bucket.start_time <= t < bucket.end_time:
            return idx
    return None


def smooth_lagged_usage(
    values: "Sequence[float]",
    flags: "Sequence[bool]",
    thresholds: "ChartThresholds" = DEFAULT_THRESHOLDS,
) -> "list[float]":
    """
    moves half of a bucket's consumption back into the previous
    bucket when that one was flagged as in use but shows almost
    nothing. Only adjacent buckets are involved; the moved amount
    never travels further back.
    """
    result = list(values)
    for idx in range(len(result) - 1):
        if (
            flags[idx]
            and result[idx] < thresholds.smoothing_low
            and result[idx + 1] > thresholds.smoothing_high
        ):
            moved = result[idx + 1] / 2
            result[idx] += moved
            result[idx + 1] -= moved
    return result


def _resolve_account_names(
    history: "Sequence[QuotaSnapshot]",
    account_names: "Mapping[str, str] | None",
) -> "dict[str, str]":
    # live names win, then the oldest recorded name
    names = dict(account_names or {})
    for point in history:
        for account_id, name in point.account_names.items():
            names.setdefault(account_id, name)
    return names


def compute_usage_chart(
    history: "Sequence[QuotaSnapshot]",
    display_minutes: "int",
    bucket_minutes: "int",
    now: "int",
    account_names: "Mapping[str, str] | None" = None,
    thresholds: "ChartThresholds" = DEFAULT_THRESHOLDS,
) -> "UsageChartData":
    """
    turns an ascending snapshot history into a fixed-resolution
    consumption chart. Pure: the same inputs always produce the
    same chart and history is never modified.

    Non-positive minutes are clamped to 1. A bucket width that does
    not divide the window truncates the bucket count.
    """
    if display_minutes < 1 or bucket_minutes < 1:
        logger.warning(
            "chart_params_clamped",
            display_minutes=display_minutes,
            bucket_minutes=bucket_minutes,
        )
        display_minutes = max(1, display_minutes)
        bucket_minutes = max(1, bucket_minutes)

    buckets = make_buckets(now, display_minutes, bucket_minutes)
    bucket_count = len(buckets)

    distribution: "dict[str, list[float]]" = {}
    implicit: "dict[str, list[bool]]" = {}

    for p1, p2 in zip(history, history[1:]):
        t1 = p1.timestamp
        t2 = p2.timestamp
        if t2 <= t1:
            continue

        start_idx = bucket_index(t1, buckets)

        for key, val1 in p1.usage.items():
            val2 = p2.usage.get(key)
            if val2 is None:
                continue

            r1 = p1.reset_at.get(key)
            r2 = p2.reset_at.get(key)
            consumed = interval_consumption(val1, val2, r1, r2)

            values = distribution.setdefault(key, [0.0] * bucket_count)
            flags = implicit.setdefault(key, [False] * bucket_count)

            if start_idx is not None and is_implicit_use(val1, r1, t1, thresholds):
                flags[start_idx] = True

            distribute(consumed, t1, t2, buckets, values)

    account_names_by_id = _resolve_account_names(history, account_names)

    for key in sorted(distribution):
        try:
            entity = EntityKey.parse(key)
        except ValueError:
            logger.debug("chart_key_skipped", key=key)
            continue

        values = smooth_lagged_usage(distribution[key], implicit[key], thresholds)
        account_name = account_names_by_id.get(entity.account_id, UNKNOWN_ACCOUNT)
        color = resource_color(entity.resource)

        for idx, amount in enumerate(values):
            if amount > thresholds.noise_floor:
                buckets[idx].items.append(
                    BucketItem(
                        group_id=key,
                        account_name=account_name,
                        model_name=entity.resource,
                        usage=amount,
                        color=color,
                    )
                )

    max_usage = max((b.total for b in buckets), default=0.0)

    return UsageChartData(
        buckets=buckets,
        max_usage=max(max_usage, 1.0),
        display_minutes=display_minutes,
        interval=bucket_minutes,
    )


def usage_chart(
    store: "SnapshotStore",
    directory: "AccountDirectory",
    display_minutes: "int",
    bucket_minutes: "int",
    now: "int | None" = None,
) -> "UsageChartData":
    """
    chart query entry point: reads the persisted history and the
    live account names, then computes the chart. Never raises for
    an empty or unreadable history.
    """
    if now is None:
        now = int(time.time())

    history = store.load(now)
    names = {account.id: account.name for account in directory.list()}
    return compute_usage_chart(
        history,
        display_minutes,
        bucket_minutes,
        now,
        account_names=names,
    )
