import threading
import time
from pathlib import Path
from typing import Callable, Iterable

import structlog

from quotawatch.models import Account, EntityKey, QuotaSnapshot
from quotawatch.storage import read_json_array, write_json_atomic

logger = structlog.get_logger()

# keep one week of snapshots
DEFAULT_RETENTION_SECONDS = 7 * 24 * 3600


def build_snapshot(accounts: "Iterable[Account]", now: "int") -> "QuotaSnapshot":
    """
    captures the current quota of every account as one snapshot.
    Accounts without quota data still contribute their name. An
    account whose id cannot form an entity key is left out.
    """
    usage: "dict[str, float]" = {}
    reset_at: "dict[str, int]" = {}
    account_names: "dict[str, str]" = {}

    for account in accounts:
        try:
            EntityKey(account.id, "").format()
        except ValueError as exc:
            logger.warning("snapshot_account_skipped", account=account.id, error=str(exc))
            continue

        account_names[account.id] = account.name
        if account.quota is None:
            continue
        for name, quota in account.quota.resources.items():
            key = EntityKey(account.id, name).format()
            usage[key] = quota.percentage
            if quota.reset_at is not None:
                reset_at[key] = quota.reset_at

    return QuotaSnapshot(
        timestamp=now,
        usage=usage,
        reset_at=reset_at,
        account_names=account_names,
    )


class SnapshotStore:
    """
    SnapshotStore is the append-only, file-backed history of
    QuotaSnapshots, ordered by timestamp with at most one entry
    per timestamp.

    Reads never fail: a missing or corrupt file is an empty history.
    Writes replace the whole file atomically and raise
    PersistenceError on failure. Only one process may write the
    file; a second sampler hands its snapshots over through a
    buffer file consumed by merge_external().
    """

    def __init__(
        self,
        path: "Path",
        retention_seconds: "int" = DEFAULT_RETENTION_SECONDS,
        clock: "Callable[[], float]" = time.time,
    ) -> "None":
        self._path = Path(path)
        self._retention = retention_seconds
        self._clock = clock
        self._lock: "threading.Lock" = threading.Lock()

    @property
    def path(self) -> "Path":
        return self._path

    def _cutoff(self, now: "int | None") -> "int":
        if now is None:
            now = int(self._clock())
        return now - self._retention

    def load(self, now: "int | None" = None) -> "list[QuotaSnapshot]":
        """
        returns the retained snapshots in ascending timestamp order.
        """
        try:
            raw = read_json_array(self._path)
            points = [QuotaSnapshot.from_dict(item) for item in raw]
        except (OSError, ValueError, KeyError, TypeError) as exc:
            logger.warning(
                "history_load_failed",
                path=str(self._path),
                error=str(exc),
            )
            return []

        cutoff = self._cutoff(now)
        points = [p for p in points if p.timestamp > cutoff]
        points.sort(key=lambda p: p.timestamp)
        return points

    def _save(self, points: "list[QuotaSnapshot]") -> "None":
        write_json_atomic(self._path, [p.to_dict() for p in points])

    def append_and_prune(
        self,
        point: "QuotaSnapshot",
        now: "int | None" = None,
    ) -> "list[QuotaSnapshot]":
        """
        appends point, drops everything outside the retention window
        and persists the result. An existing entry with the same
        timestamp is replaced. Returns the persisted history.
        """
        with self._lock:
            history = self.load(now)
            before_count = len(history)
            history = [p for p in history if p.timestamp != point.timestamp]
            history.append(point)

            cutoff = self._cutoff(now)
            history = [p for p in history if p.timestamp > cutoff]
            history.sort(key=lambda p: p.timestamp)

            self._save(history)

        logger.debug(
            "history_appended",
            before=before_count,
            after=len(history),
            cutoff=cutoff,
        )
        return history

    def merge_external(
        self,
        buffer_path: "Path",
        now: "int | None" = None,
    ) -> "int":
        """
        merges snapshots from a buffer file written by another
        sampler, skipping timestamps already present. The buffer is
        deleted once processed, including when it is empty or
        unreadable. Returns the number of snapshots added.

        If persisting the merged history fails the PersistenceError
        propagates and the buffer is kept for the next attempt.
        """
        buffer_path = Path(buffer_path)
        if not buffer_path.exists():
            return 0

        try:
            raw = read_json_array(buffer_path)
            incoming = [QuotaSnapshot.from_dict(item) for item in raw]
        except (OSError, ValueError, KeyError, TypeError) as exc:
            logger.warning(
                "history_buffer_unreadable",
                path=str(buffer_path),
                error=str(exc),
            )
            _discard(buffer_path)
            return 0

        added_count = 0
        if incoming:
            with self._lock:
                history = self.load(now)
                cutoff = self._cutoff(now)
                seen = {p.timestamp for p in history}

                for point in incoming:
                    if point.timestamp in seen or point.timestamp <= cutoff:
                        continue
                    history.append(point)
                    seen.add(point.timestamp)
                    added_count += 1

                if added_count:
                    history.sort(key=lambda p: p.timestamp)
                    self._save(history)
                    logger.info("history_buffer_merged", added=added_count)

        _discard(buffer_path)
        return added_count


def _discard(path: "Path") -> "None":
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.warning("history_buffer_remove_failed", path=str(path), error=str(exc))
