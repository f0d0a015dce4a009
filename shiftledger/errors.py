"""Error taxonomy for the ledger engine.

Business conditions (missing carry-forward, variance over tolerance) are
modelled as data on the rows, never raised. Only malformed input and I/O
failures are exceptions.
"""


class LedgerError(Exception):
    """Base class for engine errors."""


class InvalidDateFormat(LedgerError, ValueError):
    def __init__(self, value):
        super().__init__(f"not a calendar date (YYYY-MM-DD): {value!r}")
        self.value = value


class InvalidPeriod(LedgerError, ValueError):
    def __init__(self, start, end):
        super().__init__(f"period start {start} is after period end {end}")
        self.start = start
        self.end = end


class UsageSourceUnavailable(LedgerError):
    """The POS usage source failed; distinct from a legitimate zero usage."""


class LedgerStoreError(LedgerError):
    """A ledger or snapshot store read/write failed and was rolled back."""


class AmbiguousShiftMatch(LedgerError):
    """Shift-date resolution needed a fallback. Logged as a warning, never raised."""

    def __init__(self, shift_date, reason: str):
        super().__init__(f"shift {shift_date}: {reason}")
        self.shift_date = shift_date
        self.reason = reason
