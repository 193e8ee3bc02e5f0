from typing import Protocol

from quotawatch.models import Account, QuotaReading


class QuotaSource(Protocol):
    """
    QuotaSource is the protocol every quota backend satisfies.

    Given an account it returns the current state of each of the
    account's resources, keyed by resource name, together with the
    subscription tier when the backend reports one, or raises. The
    sampler bounds each call with its own timeout.
    """

    @property
    def name(self) -> "str": ...

    async def fetch(self, account: "Account") -> "QuotaReading": ...

    async def close(self) -> "None": ...


class IdentityReconciler(Protocol):
    """
    IdentityReconciler decides which account is currently active.

    It may flip `is_active` on the given accounts and returns
    whether anything changed. It never touches quota fields.
    """

    async def reconcile(self, accounts: "list[Account]") -> "bool": ...
