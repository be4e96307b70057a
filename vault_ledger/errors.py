"""Exceptions raised by the vault and ledger entry points.

Every rejected operation surfaces as a subclass of :class:`LedgerError` and leaves
no partial state behind (see :mod:`vault_ledger.guard`). Malformed arguments
(negative amounts, out-of-range ratios) raise plain ``ValueError`` instead.
"""


class LedgerError(RuntimeError):
    """Base class for rejected vault/ledger operations."""


class CapacityError(LedgerError):
    """Amount exceeds the computed maximum for deposit/mint/withdraw/redeem."""


class ZeroAmountError(LedgerError):
    """Conversion rounded to zero shares or zero assets."""


class InsolvencyError(LedgerError):
    """Operation is not allowed while the skimming ledger is insolvent."""


class LossToleranceError(LedgerError):
    """Realized loss exceeds the caller's maximum acceptable loss."""


class HealthCheckError(LedgerError):
    """Reported delta is outside the configured profit/loss limits."""


class TransferError(LedgerError):
    """Token transfer or approval failed or could not be verified."""


class ReentrancyError(LedgerError):
    """Mutating entry point was re-entered while already executing."""


class UnauthorizedError(LedgerError):
    """Caller does not hold the role the operation requires."""


class InvalidOperationError(LedgerError):
    """Operation is meaningless or forbidden in the current state."""
