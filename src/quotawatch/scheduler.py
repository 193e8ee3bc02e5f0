import asyncio
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Iterable

import structlog

from quotawatch.accounts import AccountDirectory
from quotawatch.errors import PersistenceError, QuotaFetchError
from quotawatch.history import SnapshotStore, build_snapshot
from quotawatch.metrics import SamplerMetrics
from quotawatch.models import Account, AccountQuota, QuotaReading
from quotawatch.provider.base import IdentityReconciler, QuotaSource

logger = structlog.get_logger()


@dataclass(frozen=True, slots=True)
class ScheduleTimings:
    """
    ScheduleTimings holds the sampler's tunables. The reset windows
    are empirically chosen to land one reading just before and one
    just after a reset.
    """

    # base cadence, aligned to local wall-clock minutes
    tick_minutes: "int" = 5
    # every entity is refreshed at least this often
    full_refresh_minutes: "int" = 30
    # wake this long before a predicted reset
    pre_reset_offset: "int" = 30
    # fetch any entity whose reset is this close to now
    near_reset_window: "int" = 45
    # record a snapshot when a reset is this many seconds ahead
    record_window_min: "int" = 20
    record_window_max: "int" = 35
    min_sleep: "float" = 1.0
    fetch_timeout: "float" = 5.0


DEFAULT_TIMINGS = ScheduleTimings()


@dataclass(frozen=True, slots=True)
class WakePlan:
    wake_at: "float"
    # the untouched wall-clock tick the plan started from
    tick_at: "float"
    # wake_at was pulled ahead of tick_at by a predicted reset
    reset_triggered: "bool"


@dataclass
class SamplerState:
    plan: "WakePlan | None" = None
    cycles: "int" = 0
    last_snapshot_at: "int | None" = None


def local_minute(ts: "float") -> "int":
    return datetime.fromtimestamp(ts).minute


def next_tick(now: "float", tick_minutes: "int") -> "float":
    """
    returns the first local wall-clock instant after now whose
    minute is a multiple of tick_minutes, at second zero.
    """
    dt = datetime.fromtimestamp(now).replace(second=0, microsecond=0)
    dt += timedelta(minutes=tick_minutes - dt.minute % tick_minutes)
    return dt.timestamp()


def next_wake(
    now: "float",
    reset_instants: "Iterable[int]",
    timings: "ScheduleTimings" = DEFAULT_TIMINGS,
) -> "WakePlan":
    """
    plans the next wake-up: the next regular tick, unless a
    predicted reset (or the moment shortly before it) comes first.
    """
    tick = next_tick(now, timings.tick_minutes)
    wake_at = tick

    for reset_at in reset_instants:
        for candidate in (reset_at - timings.pre_reset_offset, reset_at):
            if now < candidate < wake_at:
                wake_at = candidate

    return WakePlan(wake_at=wake_at, tick_at=tick, reset_triggered=wake_at < tick)


def should_act(
    now: "float",
    reset_triggered: "bool",
    timings: "ScheduleTimings" = DEFAULT_TIMINGS,
) -> "bool":
    """
    guards against early wake-ups: only tick minutes and planned
    reset wake-ups lead to a cycle.
    """
    return reset_triggered or local_minute(now) % timings.tick_minutes == 0


def is_full_refresh(now: "float", timings: "ScheduleTimings" = DEFAULT_TIMINGS) -> "bool":
    return local_minute(now) % timings.full_refresh_minutes == 0


def should_fetch(
    account: "Account",
    now: "float",
    full_refresh: "bool",
    timings: "ScheduleTimings" = DEFAULT_TIMINGS,
) -> "bool":
    if account.is_active or full_refresh or account.quota is None:
        return True
    return any(
        abs(reset_at - now) <= timings.near_reset_window
        for reset_at in account.reset_instants()
    )


def should_record(
    accounts: "Iterable[Account]",
    now: "float",
    full_refresh: "bool",
    timings: "ScheduleTimings" = DEFAULT_TIMINGS,
) -> "bool":
    """
    a snapshot is recorded on full-refresh ticks and whenever some
    entity is about to reset, so the last reading before the reset
    makes it into history.
    """
    if full_refresh:
        return True
    return any(
        timings.record_window_min <= reset_at - now <= timings.record_window_max
        for account in accounts
        for reset_at in account.reset_instants()
    )


class Sampler:
    """
    Sampler drives periodic quota sampling for every account in the
    directory and records snapshots into the history store.

    On start it refreshes everything once and records a snapshot,
    then loops: plan the next wake-up, sleep, and on a tick or a
    planned reset wake-up fetch the accounts that need it. Fetch
    and persistence failures are logged and never end the loop.
    """

    def __init__(
        self,
        source: "QuotaSource",
        directory: "AccountDirectory",
        store: "SnapshotStore",
        metrics: "SamplerMetrics",
        reconciler: "IdentityReconciler | None" = None,
        buffer_path: "Path | None" = None,
        timings: "ScheduleTimings" = DEFAULT_TIMINGS,
        clock: "Callable[[], float]" = time.time,
    ) -> "None":
        self._source = source
        self._directory = directory
        self._store = store
        self._metrics = metrics
        self._reconciler = reconciler
        self._buffer_path = buffer_path
        self._timings = timings
        self._clock = clock
        self.state: "SamplerState" = SamplerState()
        self._stop_event: "asyncio.Event" = asyncio.Event()

    def stop(self) -> "None":
        """
        signals the sampler loop to stop, interrupting its sleep.
        """
        self._stop_event.set()

    async def close(self) -> "None":
        await self._source.close()

    async def run(self) -> "None":
        """
        runs the sampling loop until stop() is called.
        """
        try:
            await self.refresh_all()
        except Exception:
            logger.exception("sampler_refresh_error")

        while not self._stop_event.is_set():
            now = self._clock()
            accounts = await asyncio.to_thread(self._directory.list)
            plan = next_wake(
                now,
                [r for account in accounts for r in account.reset_instants()],
                self._timings,
            )
            self.state.plan = plan
            delay = max(self._timings.min_sleep, plan.wake_at - now)

            logger.debug(
                "sampler_sleep",
                seconds=round(delay, 1),
                reset_triggered=plan.reset_triggered,
            )

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
            except TimeoutError:
                pass

            if self._stop_event.is_set():
                break

            now = self._clock()
            if not should_act(now, plan.reset_triggered, self._timings):
                logger.debug("sampler_early_wake", now=now)
                continue

            try:
                await self.run_cycle(int(now), plan.reset_triggered)
            except Exception:
                logger.exception("sampler_cycle_error")

    async def refresh_all(self) -> "None":
        """
        fetches every account regardless of schedule and records a
        snapshot.
        """
        now = int(self._clock())
        await self._merge_buffer(now)

        accounts = await asyncio.to_thread(self._directory.list)
        if not accounts:
            logger.warning("no_accounts_configured", path=str(self._directory.path))
            return

        await self._fetch_accounts(accounts, now)
        await self._save_accounts(accounts)
        await self._record_snapshot(accounts, now)

    async def run_cycle(self, now: "int", reset_triggered: "bool" = False) -> "None":
        """
        performs one acting cycle at now.
        """
        self.state.cycles += 1
        await self._merge_buffer(now)

        accounts = await asyncio.to_thread(self._directory.list)
        if not accounts:
            logger.warning("no_accounts_configured", path=str(self._directory.path))
            return

        changed = False
        if self._reconciler is not None:
            changed = await self._reconciler.reconcile(accounts)

        full_refresh = is_full_refresh(now, self._timings)
        selected = [
            account
            for account in accounts
            if should_fetch(account, now, full_refresh, self._timings)
        ]

        logger.info(
            "sampler_cycle_start",
            full_refresh=full_refresh,
            reset_triggered=reset_triggered,
            selected=len(selected),
            skipped=len(accounts) - len(selected),
        )

        fetched = await self._fetch_accounts(selected, now)
        if changed or fetched:
            await self._save_accounts(accounts)

        if should_record(accounts, now, full_refresh, self._timings):
            await self._record_snapshot(accounts, now)

    async def _fetch_accounts(self, accounts: "list[Account]", now: "int") -> "int":
        """
        fetches the given accounts concurrently and applies every
        successful result. Returns how many succeeded.
        """
        results = await asyncio.gather(
            *(self._fetch_account(account) for account in accounts)
        )

        fetched = 0
        for account, reading in zip(accounts, results):
            if reading is None:
                continue
            account.quota = AccountQuota(resources=reading.resources, last_updated=now)
            # an unknown tier keeps the stored one
            if reading.account_type:
                account.account_type = reading.account_type
            for name, quota in reading.resources.items():
                self._metrics.set_remaining(account.id, name, quota.percentage)
            fetched += 1
        return fetched

    async def _fetch_account(self, account: "Account") -> "QuotaReading | None":
        start = time.monotonic()
        try:
            return await asyncio.wait_for(
                self._source.fetch(account),
                timeout=self._timings.fetch_timeout,
            )
        except TimeoutError:
            logger.warning(
                "quota_fetch_timeout",
                account=account.id,
                timeout=self._timings.fetch_timeout,
            )
        except QuotaFetchError as exc:
            logger.warning("quota_fetch_failed", account=account.id, error=str(exc))
        except Exception:
            logger.exception("quota_fetch_error", account=account.id)
        finally:
            self._metrics.observe_fetch_duration(account.id, time.monotonic() - start)

        self._metrics.inc_fetch_error(account.id)
        return None

    async def _save_accounts(self, accounts: "list[Account]") -> "None":
        try:
            await asyncio.to_thread(self._directory.save, accounts)
        except PersistenceError as exc:
            logger.error("accounts_save_failed", error=str(exc))
            self._metrics.inc_persist_error("accounts")

    async def _record_snapshot(self, accounts: "list[Account]", now: "int") -> "None":
        point = build_snapshot(accounts, now)
        try:
            await asyncio.to_thread(self._store.append_and_prune, point, now)
        except PersistenceError as exc:
            logger.error("snapshot_save_failed", error=str(exc))
            self._metrics.inc_persist_error("history")
            return

        self.state.last_snapshot_at = now
        self._metrics.record_snapshot(now)
        logger.info("snapshot_recorded", timestamp=now, entities=len(point.usage))

    async def _merge_buffer(self, now: "int") -> "None":
        if self._buffer_path is None:
            return
        try:
            await asyncio.to_thread(self._store.merge_external, self._buffer_path, now)
        except PersistenceError as exc:
            logger.error("history_merge_failed", error=str(exc))
            self._metrics.inc_persist_error("history")
