from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram


class SamplerMetrics:
    """
    exposes the sampler's own health and the last known quota
    state as Prometheus metrics.
    """

    def __init__(self, registry: "CollectorRegistry" = REGISTRY) -> "None":
        self._fetch_duration: "Histogram" = Histogram(
            "quotawatch_fetch_duration_seconds",
            "Duration of quota fetches per account",
            ["account"],
            registry=registry,
        )
        self._fetch_errors: "Counter" = Counter(
            "quotawatch_fetch_errors_total",
            "Total number of failed quota fetches by account",
            ["account"],
            registry=registry,
        )
        self._remaining: "Gauge" = Gauge(
            "quotawatch_remaining_percent",
            "Last fetched remaining quota percentage",
            ["account", "resource"],
            registry=registry,
        )
        self._snapshots: "Counter" = Counter(
            "quotawatch_snapshots_recorded_total",
            "Total number of history snapshots recorded",
            registry=registry,
        )
        self._last_snapshot: "Gauge" = Gauge(
            "quotawatch_last_snapshot_timestamp_seconds",
            "Unix timestamp of the last recorded snapshot",
            registry=registry,
        )
        self._persist_errors: "Counter" = Counter(
            "quotawatch_persist_errors_total",
            "Total number of failed writes by store",
            ["store"],
            registry=registry,
        )

    def observe_fetch_duration(self, account: "str", duration_seconds: "float") -> "None":
        self._fetch_duration.labels(account=account).observe(duration_seconds)

    def inc_fetch_error(self, account: "str") -> "None":
        self._fetch_errors.labels(account=account).inc()

    def set_remaining(self, account: "str", resource: "str", percentage: "float") -> "None":
        self._remaining.labels(account=account, resource=resource).set(percentage)

    def record_snapshot(self, timestamp: "float") -> "None":
        self._snapshots.inc()
        self._last_snapshot.set(timestamp)

    def inc_persist_error(self, store: "str") -> "None":
        self._persist_errors.labels(store=store).inc()
