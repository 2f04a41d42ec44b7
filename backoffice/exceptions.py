"""
Error types raised by the stock ledger.

Callers catch by type and read ``code`` for a machine-readable value:

    StockLedgerError
    |
    +-- ValidationError   bad caller input, nothing was written
    +-- TransactionError  the atomic write did not complete
"""

from typing import Any, Dict, List, Optional


class StockLedgerError(Exception):
    code: str = "STOCK_LEDGER_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "detail": self.message}


class ValidationError(StockLedgerError):
    """Caller-supplied movement data failed required-field or type checks."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, errors: Optional[List[Dict[str, str]]] = None):
        super().__init__(message)
        self.errors = errors or []

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload["errors"] = self.errors
        return payload


class TransactionError(StockLedgerError):
    """
    The movement and balance writes could not be committed.

    When ``ambiguous`` is False the transaction was rolled back and nothing
    was applied, so the request may be resubmitted. When True the failure
    happened during COMMIT and the outcome is unknown: re-read the movement
    log (or resubmit with the same ``request_id``) instead of retrying blindly.
    """

    code = "TRANSACTION_ERROR"

    def __init__(self, message: str, ambiguous: bool = False):
        super().__init__(message)
        self.ambiguous = ambiguous

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload["ambiguous"] = self.ambiguous
        return payload
