"""
Error taxonomy of the ledger core.

Every error except LedgerIntegrityError is recoverable by the caller
(retry, correct input, upgrade tier). Each carries a stable `code` and the
HTTP status the API layer answers with.
"""

from decimal import Decimal
from typing import Any, Optional


class LedgerError(Exception):
    """Base class for all ledger/bot lifecycle errors"""

    code = "ledger_error"
    http_status = 400
    recoverable = True

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        payload = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = {
                key: str(value) if isinstance(value, Decimal) else value
                for key, value in self.details.items()
            }
        return payload


class InvalidAmount(LedgerError):
    """Amount is non-positive, has the wrong sign, or is outside template bounds"""

    code = "invalid_amount"
    http_status = 400


class KycLimitExceeded(LedgerError):
    """The user's current KYC tier does not allow this amount"""

    code = "kyc_limit_exceeded"
    http_status = 403


class InsufficientBalance(LedgerError):
    """A debit would drive the wallet balance below zero"""

    code = "insufficient_balance"
    http_status = 400


class NotFound(LedgerError):
    """Unknown (or foreign) user, wallet, template or bot instance"""

    code = "not_found"
    http_status = 404


class UnsupportedAsset(NotFound):
    """Currency/network pair is not in the token catalog"""

    code = "unsupported_asset"


class AlreadyStopped(LedgerError):
    """Stop requested on a stopped instance. Handled as a no-op by the manager."""

    code = "already_stopped"
    http_status = 200

    def __init__(self, message: str, instance: Optional[Any] = None, **details: Any):
        super().__init__(message, **details)
        self.instance = instance


class AllocationConflict(LedgerError):
    """Lost the race to insert a deposit address. Resolved by reading the winner."""

    code = "allocation_conflict"
    http_status = 409


class DepositConflict(LedgerError):
    """External reference already settled for another wallet, amount or transaction type"""

    code = "deposit_conflict"
    http_status = 409


class Busy(LedgerError):
    """Lock could not be acquired within the bounded wait"""

    code = "busy"
    http_status = 503


class TradingDisabled(LedgerError):
    """Bot launches are switched off platform-wide or for the template"""

    code = "trading_disabled"
    http_status = 403


class KycSubmissionError(LedgerError):
    """KYC document cannot be submitted or reviewed in the current state"""

    code = "kyc_submission_error"
    http_status = 400


class LedgerIntegrityError(LedgerError):
    """
    Cached balance disagrees with the transaction log.

    Fatal: the wallet is frozen pending manual reconciliation and writes
    must not be retried.
    """

    code = "ledger_integrity_error"
    http_status = 423
    recoverable = False
