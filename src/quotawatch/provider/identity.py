from pathlib import Path

import structlog

from quotawatch.models import Account

logger = structlog.get_logger()


class MarkerFileReconciler:
    """
    MarkerFileReconciler marks the account named in a marker file
    as active. The file holds a single line with either the
    account's email or its id, written by whatever tool switches
    the active session.
    """

    def __init__(self, marker_path: "Path") -> "None":
        self._marker_path = Path(marker_path)

    def _read_marker(self) -> "str":
        try:
            return self._marker_path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return ""
        except OSError as exc:
            logger.warning(
                "active_marker_unreadable",
                path=str(self._marker_path),
                error=str(exc),
            )
            return ""

    async def reconcile(self, accounts: "list[Account]") -> "bool":
        marker = self._read_marker()
        if not marker:
            return False

        if not any(marker in (a.email, a.id) for a in accounts):
            logger.debug("active_marker_unmatched", marker=marker)
            return False

        changed = False
        for account in accounts:
            is_match = marker in (account.email, account.id)
            if account.is_active != is_match:
                account.is_active = is_match
                changed = True

        if changed:
            active = next(a for a in accounts if a.is_active)
            logger.info("active_account_changed", account=active.name)
        return changed


class NoopReconciler:
    """
    keeps whatever account is already marked active.
    """

    async def reconcile(self, accounts: "list[Account]") -> "bool":
        return False
