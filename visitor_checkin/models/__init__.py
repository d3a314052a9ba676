# =======================================================================================
# visitor_checkin/models/__init__.py - Models Package
# =======================================================================================
from .schemas import *
from .enums import *

__all__ = [
    "Visitor", "ScanMetadata", "ScanEvent", "StaffUser", "ScanRequest", "BatchScanRequest",
    "VisitorInfo", "ScanResult", "BatchItem", "BatchSummary", "BatchResult",
    "SerialMessage", "SerialResponse",
    "LoginRequest", "RegisterRequest", "StaffInfo", "AuthResponse", "HealthResponse",
    "AdmissionStatus", "Classification", "Verdict", "ResultType", "BatchItemStatus",
    "StaffRole", "StatusColour",
]
