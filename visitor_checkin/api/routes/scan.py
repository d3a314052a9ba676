# =======================================================================================
# visitor_checkin/api/routes/scan.py - Scan Endpoints
# =======================================================================================
from fastapi import APIRouter, Depends
from ...models.schemas import BatchResult, BatchScanRequest, ScanMetadata, ScanRequest, ScanResult, StaffUser
from ...services.scan_engine import ScanEngine
from ..dependencies import get_scan_engine, get_scan_metadata, require_scan_auth

router = APIRouter()

# Denials are decisions, not HTTP errors: every scan answers 200 with a verdict.

@router.post("/scan/batch", response_model=BatchResult)
def handle_batch_scan(
    request: BatchScanRequest,
    user: StaffUser = Depends(require_scan_auth),
    metadata: ScanMetadata = Depends(get_scan_metadata),
    engine: ScanEngine = Depends(get_scan_engine),
):
    """Record several barcodes at once, bypassing the duplicate window."""
    return engine.process_batch(request.barcodes, actor=user, metadata=metadata)


@router.post("/scan", response_model=ScanResult)
def handle_manual_scan(
    request: ScanRequest,
    user: StaffUser = Depends(require_scan_auth),
    metadata: ScanMetadata = Depends(get_scan_metadata),
    engine: ScanEngine = Depends(get_scan_engine),
):
    """Process a barcode typed in by staff."""
    return engine.process_scan(request.barcode, actor=user, metadata=metadata)


@router.get("/scan/{barcode}", response_model=ScanResult)
def handle_scan(
    barcode: str,
    user: StaffUser = Depends(require_scan_auth),
    metadata: ScanMetadata = Depends(get_scan_metadata),
    engine: ScanEngine = Depends(get_scan_engine),
):
    """Process a barcode read by a station camera or scanner."""
    return engine.process_scan(barcode, actor=user, metadata=metadata)
