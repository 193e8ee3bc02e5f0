class QuotawatchError(Exception):
    """
    base error for everything raised by quotawatch.
    """


class QuotaFetchError(QuotawatchError):
    """
    raised by a quota source when an account's quota state
    could not be obtained. Always treated as a per-account,
    per-cycle failure by the sampler.
    """


class PersistenceError(QuotawatchError):
    """
    raised when a file-backed store (accounts, history) could
    not be written. The in-memory state is still valid, only
    durability is at risk.
    """
