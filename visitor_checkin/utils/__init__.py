# =======================================================================================
# visitor_checkin/utils/__init__.py - Utils Package
# =======================================================================================
from .exceptions import *
from .validators import *
from .locks import KeyedLock
from .log import configure_logging

__all__ = [
    "VisitorCheckinError", "DirectoryError", "LedgerError", "InvalidIdentifierError",
    "AuthenticationError", "PermissionDeniedError", "LockTimeoutError", "BarcodeValidator", "KeyedLock",
    "configure_logging",
]
