# =======================================================================================
# visitor_checkin/models/enums.py - Enums and Constants
# =======================================================================================
from enum import Enum
from typing import Literal

# Type aliases for better type hints
StaffRole = Literal["admin", "moderator", "skd"]
StatusColour = Literal["success", "warning", "info", "error"]

class AdmissionStatus(str, Enum):
    """Visitor admission status, changed only by administrators."""
    ACTIVE = "active"
    BLOCKED = "blocked"

class Classification(str, Enum):
    """Relationship of a scan to the visitor's same-day history."""
    FIRST = "first"
    REPEAT = "repeat"
    DUPLICATE = "duplicate"
    BLOCKED_ATTEMPT = "blocked_attempt"
    BATCH = "batch"
    NONE = "none"

    @property
    def recorded(self) -> bool:
        return self is not Classification.NONE

class Verdict(str, Enum):
    """Admission decision shown to the scanning staff member."""
    ALLOW = "allow"
    ALLOW_WITH_WARNING = "allow-with-warning"
    DENY = "deny"

class ResultType(str, Enum):
    """Outcome variant of a single scan."""
    FIRST_SCAN = "first_scan"
    REPEAT_SCAN = "repeat_scan"
    DUPLICATE_SCAN = "duplicate_scan"
    BATCH_SCAN = "batch_scan"
    BLOCKED = "blocked"
    NOT_FOUND = "not_found"
    INVALID_INPUT = "invalid_input"
    SYSTEM_ERROR = "system_error"

class BatchItemStatus(str, Enum):
    RECORDED = "recorded"
    BLOCKED = "blocked"
    ERROR = "error"
