import threading
from pathlib import Path

import structlog

from quotawatch.models import Account
from quotawatch.storage import read_json_array, write_json_atomic

logger = structlog.get_logger()


class AccountDirectory:
    """
    AccountDirectory is the file-backed list of tracked accounts.

    The whole collection is read and written at once; there are no
    record-level updates. Writes within the process are serialized
    with a lock; a load-mutate-save sequence is only safe with a
    single writer, which is the sampler.
    """

    def __init__(self, path: "Path") -> "None":
        self._path = Path(path)
        self._lock: "threading.Lock" = threading.Lock()

    @property
    def path(self) -> "Path":
        return self._path

    def list(self) -> "list[Account]":
        """
        returns accounts in file order. A missing or unreadable
        file yields an empty list.
        """
        try:
            raw = read_json_array(self._path)
            return [Account.from_dict(item) for item in raw]
        except (OSError, ValueError, KeyError, TypeError) as exc:
            logger.warning("accounts_load_failed", path=str(self._path), error=str(exc))
            return []

    def save(self, accounts: "list[Account]") -> "None":
        """
        persists the full account list. Raises PersistenceError.
        """
        with self._lock:
            write_json_atomic(self._path, [a.to_dict() for a in accounts])
