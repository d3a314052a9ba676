# =======================================================================================
# visitor_checkin/utils/exceptions.py - Custom Exceptions
# =======================================================================================
class VisitorCheckinError(Exception):
    """Base exception for the visitor check-in system."""
    pass

class DirectoryError(VisitorCheckinError):
    """Raised when the visitor directory cannot be read."""
    pass

class LedgerError(VisitorCheckinError):
    """Raised when the scan ledger cannot be read or appended to."""
    pass

class InvalidIdentifierError(VisitorCheckinError):
    """Raised when a scanned code is not a well-formed barcode."""
    pass

class AuthenticationError(VisitorCheckinError):
    """Raised when a caller has no valid session."""
    pass

class PermissionDeniedError(VisitorCheckinError):
    """Raised when an authenticated caller lacks the required role."""
    pass

class LockTimeoutError(LedgerError):
    """Raised when a visitor's scan lock is not acquired in time."""
    pass
