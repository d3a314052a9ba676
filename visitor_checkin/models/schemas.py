# =======================================================================================
# visitor_checkin/models/schemas.py - Pydantic Models
# =======================================================================================
from datetime import date, datetime
from typing import Optional, List
from pydantic import BaseModel, ConfigDict, Field
from .enums import (
    AdmissionStatus, BatchItemStatus, Classification, ResultType, StaffRole, StatusColour, Verdict,
)

# ========== Directory / Ledger records ==========

class Visitor(BaseModel):
    """Visitor as resolved by the directory."""
    model_config = ConfigDict(frozen=True)

    id: int
    barcode: str
    last_name: str
    first_name: str
    middle_name: Optional[str] = None
    comment: Optional[str] = None
    status: AdmissionStatus = AdmissionStatus.ACTIVE

    @property
    def display_name(self) -> str:
        return f"{self.last_name} {self.first_name} {self.middle_name or ''}".strip()

    @property
    def is_blocked(self) -> bool:
        return self.status is AdmissionStatus.BLOCKED

class ScanMetadata(BaseModel):
    """Audit details of the station that performed a scan."""
    model_config = ConfigDict(frozen=True)

    source_address: Optional[str] = None
    client_agent: Optional[str] = None

class ScanEvent(BaseModel):
    """One immutable row of the scan ledger."""
    model_config = ConfigDict(frozen=True)

    id: Optional[int] = None
    visitor_id: int
    classification: Classification
    scanned_at: datetime
    scan_date: date
    scanned_by: Optional[int] = None
    metadata: ScanMetadata = Field(default_factory=ScanMetadata)

class StaffUser(BaseModel):
    """Authenticated staff member performing scans."""
    id: int
    username: str
    role: StaffRole
    full_name: Optional[str] = None
    is_active: bool = True

# ========== Scan ==========

class ScanRequest(BaseModel):
    """Manual barcode entry."""
    barcode: str = Field(..., description="Visitor barcode or QR payload")

class BatchScanRequest(BaseModel):
    barcodes: List[str] = Field(..., description="Barcodes to record in one call")

class VisitorInfo(BaseModel):
    name: str
    comment: Optional[str] = None

class ScanResult(BaseModel):
    """Decision returned for every scan, including failures."""
    status: StatusColour
    type: ResultType
    verdict: Verdict
    classification: Classification
    icon: str
    title: str
    message: str
    barcode: str
    visitor: Optional[VisitorInfo] = None
    scan_time: Optional[datetime] = None
    first_scan_time: Optional[datetime] = None
    last_scan_time: Optional[datetime] = None
    scan_count: Optional[int] = None
    timestamp: datetime
    error: Optional[str] = None

    @property
    def admitted(self) -> bool:
        return self.verdict is not Verdict.DENY

class BatchItem(BaseModel):
    barcode: str
    status: BatchItemStatus
    type: Optional[ResultType] = None
    classification: Classification = Classification.NONE
    visitor: Optional[VisitorInfo] = None
    scan_time: Optional[datetime] = None
    message: str

class BatchSummary(BaseModel):
    total: int = 0
    successful: int = 0
    blocked: int = 0
    errors: int = 0

class BatchResult(BaseModel):
    status: StatusColour
    type: Optional[ResultType] = None
    message: str
    results: List[BatchItem] = Field(default_factory=list)
    summary: BatchSummary = Field(default_factory=BatchSummary)
    timestamp: datetime

# ========== Serial barcode reader ==========

class SerialMessage(BaseModel):
    """Request line from a scanner hub; plain readers send only the barcode."""
    t: str = "req"
    id: Optional[int] = None
    code: Optional[str] = None
    station: Optional[str] = None

class SerialResponse(BaseModel):
    t: str = "resp"
    id: Optional[int] = None
    barcode: str
    verdict: Verdict
    type: ResultType
    title: str
    ts: int

# ========== Staff Auth ==========

class LoginRequest(BaseModel):
    username: str
    password: str

class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=3, max_length=50)
    password: str = Field(..., min_length=6)
    role: StaffRole = "skd"
    full_name: Optional[str] = None

class StaffInfo(BaseModel):
    id: int
    username: str
    role: StaffRole
    full_name: Optional[str] = None

class AuthResponse(BaseModel):
    token: Optional[str] = None
    expires_at: Optional[datetime] = None
    message: Optional[str] = None
    user: Optional[StaffInfo] = None

# ========== Health ==========

class HealthResponse(BaseModel):
    status: str                 # "ok" | "error"
    dataAvailable: bool
    message: Optional[str] = None
