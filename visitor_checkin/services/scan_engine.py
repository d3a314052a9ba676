# =======================================================================================
# visitor_checkin/services/scan_engine.py - Core Business Logic
# =======================================================================================
import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence
from ..config import config
from ..models.enums import BatchItemStatus, Classification, ResultType, Verdict
from ..models.schemas import (
    BatchItem, BatchResult, BatchSummary, ScanEvent, ScanMetadata, ScanResult, StaffUser,
    Visitor, VisitorInfo,
)
from ..utils.exceptions import InvalidIdentifierError
from ..utils.validators import BarcodeValidator
from .directory import VisitorDirectory
from .ledger import ScanLedger

logger = logging.getLogger(__name__)

DENIED_TITLE = "ACCESS DENIED"
SUPERVISOR_TITLE = "Contact a supervisor"


class ScanEngine:
    """
    Decides admission for scanned visitor codes and records every decision
    that can be attributed to a visitor.

    The engine holds no mutable state of its own: each call does one
    directory read and one ledger read-then-append, so any number of
    stations may share an instance.
    """

    def __init__(self, directory: VisitorDirectory, ledger: ScanLedger,
                 duplicate_window: Optional[timedelta] = None,
                 max_batch_size: Optional[int] = None,
                 expose_errors: Optional[bool] = None):
        self.directory = directory
        self.ledger = ledger
        self.duplicate_window = duplicate_window if duplicate_window is not None else config.duplicate_window
        self.max_batch_size = max_batch_size if max_batch_size is not None else config.MAX_BATCH_SIZE
        self.expose_errors = config.API_DEBUG if expose_errors is None else expose_errors

    # ----------------------------------------------------------------------
    # Classification rules
    # ----------------------------------------------------------------------
    def classify(self, history: Sequence[ScanEvent], now: datetime) -> Classification:
        """
        Classify a scan at `now` against today's earlier scans (oldest first).

        Only the most recent prior scan counts; a gap of exactly the window
        is already a repeat.
        """
        if not history:
            return Classification.FIRST

        elapsed = now - history[-1].scanned_at
        if elapsed < self.duplicate_window:
            return Classification.DUPLICATE
        return Classification.REPEAT

    @staticmethod
    def verdict_for(classification: Classification) -> Verdict:
        if classification is Classification.FIRST:
            return Verdict.ALLOW
        if classification in (Classification.REPEAT, Classification.DUPLICATE):
            return Verdict.ALLOW_WITH_WARNING
        return Verdict.DENY

    # ----------------------------------------------------------------------
    # Single scan
    # ----------------------------------------------------------------------
    def process_scan(self, identifier: str, actor: Optional[StaffUser] = None,
                     metadata: Optional[ScanMetadata] = None) -> ScanResult:
        """Resolve, classify and record one scan. Never raises."""
        try:
            barcode = BarcodeValidator.normalize(identifier)
        except InvalidIdentifierError as e:
            logger.info("Rejected malformed barcode %r: %s", identifier, e)
            return self._invalid_input(str(identifier), str(e))

        actor_id = actor.id if actor else None
        try:
            return self._decide(barcode, actor_id, metadata or ScanMetadata())
        except Exception as e:
            # Every scan must end with a verdict, including infrastructure faults
            logger.exception("Scan of %s failed", barcode)
            return self._system_error(barcode, e)

    def _decide(self, barcode: str, actor_id: Optional[int], metadata: ScanMetadata) -> ScanResult:
        visitor = self.directory.resolve(barcode)
        if visitor is None:
            logger.info("Barcode %s not found (actor=%s)", barcode, actor_id)
            return self._not_found(barcode)

        if visitor.is_blocked:
            event = self.ledger.append(visitor.id, Classification.BLOCKED_ATTEMPT, actor_id, metadata)
            logger.warning("Blocked visitor %s scanned at %s (actor=%s)", visitor.id, barcode, actor_id)
            return self._blocked(barcode, visitor, event)

        with self.ledger.visitor_day(visitor.id) as day:
            # Blocked attempts are audit rows, not admissions
            history: List[ScanEvent] = [
                e for e in day.history if e.classification is not Classification.BLOCKED_ATTEMPT
            ]
            classification = self.classify(history, day.now)
            event = day.append(classification, actor_id, metadata)

        logger.info("Scan %s -> %s (visitor=%s, actor=%s)",
                    barcode, classification.value, visitor.id, actor_id)
        return self._admitted(barcode, visitor, classification, event, history)

    # ----------------------------------------------------------------------
    # Batch
    # ----------------------------------------------------------------------
    def process_batch(self, identifiers: Sequence[str], actor: Optional[StaffUser] = None,
                      metadata: Optional[ScanMetadata] = None) -> BatchResult:
        """
        Record a list of codes without window analysis. The size check runs
        before any lookup; after that each code succeeds or fails on its own.
        """
        if isinstance(identifiers, str) or not identifiers:
            return self._batch_rejected("Batch must contain at least one barcode")
        if len(identifiers) > self.max_batch_size:
            return self._batch_rejected(
                f"Batch of {len(identifiers)} exceeds the limit of {self.max_batch_size} barcodes"
            )

        actor_id = actor.id if actor else None
        metadata = metadata or ScanMetadata()
        items = [self._batch_item(raw, actor_id, metadata) for raw in identifiers]

        summary = BatchSummary(
            total=len(items),
            successful=sum(1 for i in items if i.status is BatchItemStatus.RECORDED),
            blocked=sum(1 for i in items if i.status is BatchItemStatus.BLOCKED),
            errors=sum(1 for i in items if i.status is BatchItemStatus.ERROR),
        )
        logger.info("Batch of %s processed: %s", summary.total, summary.model_dump())
        return BatchResult(
            status="success" if summary.successful == summary.total else "warning",
            message=f"Processed {summary.total} barcodes: {summary.successful} recorded, "
                    f"{summary.blocked} blocked, {summary.errors} errors",
            results=items,
            summary=summary,
            timestamp=self.ledger.clock(),
        )

    def _batch_item(self, raw: str, actor_id: Optional[int], metadata: ScanMetadata) -> BatchItem:
        try:
            barcode = BarcodeValidator.normalize(raw)
        except InvalidIdentifierError as e:
            return BatchItem(barcode=str(raw), status=BatchItemStatus.ERROR,
                             type=ResultType.INVALID_INPUT, message=str(e))

        try:
            visitor = self.directory.resolve(barcode)
            if visitor is None:
                return BatchItem(barcode=barcode, status=BatchItemStatus.ERROR,
                                 type=ResultType.NOT_FOUND, message="Barcode not found")

            info = VisitorInfo(name=visitor.display_name, comment=visitor.comment)
            if visitor.is_blocked:
                event = self.ledger.append(visitor.id, Classification.BLOCKED_ATTEMPT, actor_id, metadata)
                return BatchItem(barcode=barcode, status=BatchItemStatus.BLOCKED,
                                 type=ResultType.BLOCKED, classification=event.classification,
                                 visitor=info, scan_time=event.scanned_at,
                                 message="Visitor is blocked")

            event = self.ledger.append(visitor.id, Classification.BATCH, actor_id, metadata)
            return BatchItem(barcode=barcode, status=BatchItemStatus.RECORDED,
                             type=ResultType.BATCH_SCAN, classification=event.classification,
                             visitor=info, scan_time=event.scanned_at, message="Recorded")
        except Exception as e:
            logger.exception("Batch item %s failed", barcode)
            return BatchItem(barcode=barcode, status=BatchItemStatus.ERROR,
                             type=ResultType.SYSTEM_ERROR, message=self._error_text(e))

    # ----------------------------------------------------------------------
    # Result builders
    # ----------------------------------------------------------------------
    def _error_text(self, error: Exception) -> str:
        if self.expose_errors:
            return str(error)
        return "Technical error while scanning"

    def _admitted(self, barcode: str, visitor: Visitor, classification: Classification,
                  event: ScanEvent, history: List[ScanEvent]) -> ScanResult:
        info = VisitorInfo(name=visitor.display_name, comment=visitor.comment)
        verdict = self.verdict_for(classification)
        now = event.scanned_at

        if classification is Classification.FIRST:
            return ScanResult(
                status="success", type=ResultType.FIRST_SCAN, verdict=verdict,
                classification=classification, icon="✅", title=visitor.display_name,
                message="Welcome! First scan today", barcode=barcode, visitor=info,
                scan_time=event.scanned_at, scan_count=1, timestamp=now,
            )

        common = dict(
            verdict=verdict, classification=classification, title=visitor.display_name,
            barcode=barcode, visitor=info, scan_time=event.scanned_at,
            first_scan_time=history[0].scanned_at, last_scan_time=history[-1].scanned_at,
            scan_count=len(history) + 1, timestamp=now,
        )
        if classification is Classification.REPEAT:
            return ScanResult(status="warning", type=ResultType.REPEAT_SCAN, icon="⚠️",
                              message="Repeat scan", **common)

        minutes = int(self.duplicate_window.total_seconds() // 60)
        return ScanResult(status="info", type=ResultType.DUPLICATE_SCAN, icon="ℹ️",
                          message=f"Duplicate scan (less than {minutes} minutes ago)", **common)

    def _blocked(self, barcode: str, visitor: Visitor, event: ScanEvent) -> ScanResult:
        return ScanResult(
            status="error", type=ResultType.BLOCKED, verdict=Verdict.DENY,
            classification=Classification.BLOCKED_ATTEMPT, icon="❌", title=DENIED_TITLE,
            message="Visitor is blocked", barcode=barcode,
            visitor=VisitorInfo(name=visitor.display_name, comment=visitor.comment),
            scan_time=event.scanned_at, timestamp=event.scanned_at,
        )

    def _not_found(self, barcode: str) -> ScanResult:
        return ScanResult(
            status="error", type=ResultType.NOT_FOUND, verdict=Verdict.DENY,
            classification=Classification.NONE, icon="❌", title=DENIED_TITLE,
            message="Barcode not found in the database", barcode=barcode,
            timestamp=self.ledger.clock(),
        )

    def _invalid_input(self, barcode: str, reason: str) -> ScanResult:
        return ScanResult(
            status="error", type=ResultType.INVALID_INPUT, verdict=Verdict.DENY,
            classification=Classification.NONE, icon="❌", title=DENIED_TITLE,
            message=f"Invalid barcode: {reason}", barcode=barcode,
            timestamp=self.ledger.clock(),
        )

    def _system_error(self, barcode: str, error: Exception) -> ScanResult:
        return ScanResult(
            status="error", type=ResultType.SYSTEM_ERROR, verdict=Verdict.DENY,
            classification=Classification.NONE, icon="ℹ️", title=SUPERVISOR_TITLE,
            message="A technical error occurred while scanning. Do not admit; call a supervisor.",
            barcode=barcode, timestamp=datetime.now(timezone.utc),
            error=str(error) if self.expose_errors else None,
        )

    def _batch_rejected(self, reason: str) -> BatchResult:
        logger.info("Rejected batch: %s", reason)
        return BatchResult(status="error", type=ResultType.INVALID_INPUT, message=reason,
                           timestamp=self.ledger.clock())
