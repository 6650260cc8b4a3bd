"""
Sync exceptions: failure taxonomy shared by the POS client, the order
orchestrator and the scheduled loops.

Duplicates and not-found variants are outcomes, not exceptions.
"""
from typing import Optional


class SyncError(Exception):
    """Base class for every synchronization failure."""

    retryable: bool = True

    def __init__(self, message: str, trx_no: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.trx_no = trx_no


class PosAuthError(SyncError):
    """POS login was rejected. Retried on the next scheduled pass only."""

    retryable = False


class PosLockError(SyncError):
    """POS refused the process lock (usually held by another session)."""


class PosTransportError(SyncError):
    """Network failure, timeout or non-2xx answer from the POS API."""


class PosLogicalError(SyncError):
    """POS accepted the call but reported a business error."""

    def __init__(self, message: str, trx_no: Optional[str] = None, err_code: Optional[int] = None):
        super().__init__(message, trx_no=trx_no)
        self.err_code = err_code


class StorefrontError(SyncError):
    """Storefront Admin API call failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
