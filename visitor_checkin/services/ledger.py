# =======================================================================================
# visitor_checkin/services/ledger.py - Append-only Scan Ledger
# =======================================================================================
import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import date, datetime, timezone, tzinfo
from typing import Callable, Iterator, List, Optional
from sqlalchemy import insert, select, text
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError
from ..config import config
from ..database import DatabaseManager, scans
from ..models.enums import Classification
from ..models.schemas import ScanEvent, ScanMetadata
from ..utils.exceptions import LedgerError
from ..utils.locks import KeyedLock

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class LedgerWindow:
    """
    A visitor's scan history for today, held open for exactly one append.

    `now` is the ledger's write time for the scan about to be recorded and
    `history` holds today's earlier scans in ascending order.
    """

    def __init__(self, visitor_id: int, now: datetime, scan_date: date,
                 history: List[ScanEvent], writer: Callable[..., ScanEvent]):
        self.visitor_id = visitor_id
        self.now = now
        self.scan_date = scan_date
        self.history = history
        self._writer = writer
        self.appended: Optional[ScanEvent] = None

    def append(self, classification: Classification, scanned_by: Optional[int] = None,
               metadata: Optional[ScanMetadata] = None) -> ScanEvent:
        if self.appended is not None:
            raise LedgerError("Only one scan may be appended per ledger window")
        if not classification.recorded:
            raise LedgerError(f"Classification {classification.value!r} is not recorded")
        self.appended = self._writer(
            self.visitor_id, classification, self.now, self.scan_date,
            scanned_by, metadata or ScanMetadata(),
        )
        return self.appended


class ScanLedger(ABC):
    """Append-only store of scan events, grouped by visitor and operating-day."""

    def __init__(self, tz: Optional[tzinfo] = None, clock: Optional[Clock] = None,
                 lock_timeout: Optional[float] = None):
        self.tz = tz or config.timezone
        self.clock: Clock = clock or utc_now
        # Seconds a scan waits behind another scan of the same visitor
        self.lock_timeout = config.SCAN_LOCK_TIMEOUT if lock_timeout is None else lock_timeout
        self._visitor_locks = KeyedLock()

    def scan_date_for(self, moment: datetime) -> date:
        """Calendar date of `moment` in the operating timezone."""
        return moment.astimezone(self.tz).date()

    def today(self) -> date:
        return self.scan_date_for(self.clock())

    @abstractmethod
    def query_today(self, visitor_id: int) -> List[ScanEvent]:
        """Today's scans for the visitor, oldest first."""

    @abstractmethod
    def append(self, visitor_id: int, classification: Classification,
               scanned_by: Optional[int] = None,
               metadata: Optional[ScanMetadata] = None) -> ScanEvent:
        """Record one scan without consulting history."""

    @abstractmethod
    def visitor_day(self, visitor_id: int) -> Iterator[LedgerWindow]:
        """
        Context manager serializing read-history-then-append for one visitor.
        Nothing is recorded if the block raises.
        """


class InMemoryScanLedger(ScanLedger):
    """Process-local ledger used by tests and single-station demos."""

    def __init__(self, tz: Optional[tzinfo] = None, clock: Optional[Clock] = None,
                 lock_timeout: Optional[float] = None):
        super().__init__(tz, clock, lock_timeout)
        self._rows: List[ScanEvent] = []
        self._rows_lock = threading.Lock()

    @property
    def events(self) -> List[ScanEvent]:
        with self._rows_lock:
            return list(self._rows)

    def _day_rows(self, visitor_id: int, scan_date: date) -> List[ScanEvent]:
        with self._rows_lock:
            rows = [e for e in self._rows if e.visitor_id == visitor_id and e.scan_date == scan_date]
        # sorted() is stable, so equal timestamps keep insertion order
        return sorted(rows, key=lambda e: e.scanned_at)

    def _write(self, visitor_id: int, classification: Classification, now: datetime,
               scan_date: date, scanned_by: Optional[int], metadata: ScanMetadata) -> ScanEvent:
        with self._rows_lock:
            event = ScanEvent(
                id=len(self._rows) + 1,
                visitor_id=visitor_id,
                classification=classification,
                scanned_at=now,
                scan_date=scan_date,
                scanned_by=scanned_by,
                metadata=metadata,
            )
            self._rows.append(event)
        return event

    def query_today(self, visitor_id: int) -> List[ScanEvent]:
        return self._day_rows(visitor_id, self.today())

    def append(self, visitor_id, classification, scanned_by=None, metadata=None):
        now = self.clock()
        return self._write(visitor_id, classification, now, self.scan_date_for(now),
                           scanned_by, metadata or ScanMetadata())

    @contextmanager
    def visitor_day(self, visitor_id: int) -> Iterator[LedgerWindow]:
        with self._visitor_locks.hold(visitor_id, timeout=self.lock_timeout):
            now = self.clock()
            scan_date = self.scan_date_for(now)
            staged: List[ScanEvent] = []

            def stage(*args) -> ScanEvent:
                event = ScanEvent(
                    visitor_id=args[0], classification=args[1], scanned_at=args[2],
                    scan_date=args[3], scanned_by=args[4], metadata=args[5],
                )
                staged.append(event)
                return event

            window = LedgerWindow(visitor_id, now, scan_date,
                                  self._day_rows(visitor_id, scan_date), stage)
            yield window
            # Commit only once the caller's block finished cleanly
            for event in staged:
                committed = self._write(event.visitor_id, event.classification, event.scanned_at,
                                        event.scan_date, event.scanned_by, event.metadata)
                window.appended = committed


class SqlScanLedger(ScanLedger):
    """Ledger backed by the `scans` table."""

    def __init__(self, db: DatabaseManager, tz: Optional[tzinfo] = None,
                 clock: Optional[Clock] = None, lock_timeout: Optional[float] = None):
        super().__init__(tz, clock, lock_timeout)
        self.db = db

    # ----------------------------------------------------------------------
    # Row helpers
    # ----------------------------------------------------------------------
    @staticmethod
    def _to_db_time(moment: datetime) -> datetime:
        return moment.astimezone(timezone.utc).replace(tzinfo=None)

    @staticmethod
    def _row_to_event(row) -> ScanEvent:
        scanned_at = row["scanned_at"]
        if scanned_at.tzinfo is None:
            scanned_at = scanned_at.replace(tzinfo=timezone.utc)
        return ScanEvent(
            id=row["id"],
            visitor_id=row["visitor_id"],
            classification=Classification(row["scan_type"]),
            scanned_at=scanned_at,
            scan_date=row["scan_date"],
            scanned_by=row["scanned_by"],
            metadata=ScanMetadata(source_address=row["ip_address"], client_agent=row["user_agent"]),
        )

    def _fetch_day(self, conn: Connection, visitor_id: int, scan_date: date) -> List[ScanEvent]:
        rows = conn.execute(
            select(scans)
            .where(scans.c.visitor_id == visitor_id, scans.c.scan_date == scan_date)
            .order_by(scans.c.scanned_at.asc(), scans.c.id.asc())
        ).mappings().all()
        return [self._row_to_event(row) for row in rows]

    def _insert(self, conn: Connection, visitor_id: int, classification: Classification,
                now: datetime, scan_date: date, scanned_by: Optional[int],
                metadata: ScanMetadata) -> ScanEvent:
        result = conn.execute(
            insert(scans).values(
                visitor_id=visitor_id,
                scan_type=classification.value,
                scanned_at=self._to_db_time(now),
                scan_date=scan_date,
                scanned_by=scanned_by,
                ip_address=metadata.source_address,
                user_agent=metadata.client_agent,
            )
        )
        return ScanEvent(
            id=result.inserted_primary_key[0],
            visitor_id=visitor_id,
            classification=classification,
            scanned_at=now,
            scan_date=scan_date,
            scanned_by=scanned_by,
            metadata=metadata,
        )

    # ----------------------------------------------------------------------
    # Ledger contract
    # ----------------------------------------------------------------------
    def query_today(self, visitor_id: int) -> List[ScanEvent]:
        try:
            with self.db.get_connection() as conn:
                return self._fetch_day(conn, visitor_id, self.today())
        except SQLAlchemyError as e:
            raise LedgerError(f"Could not read scans: {e}") from e

    def append(self, visitor_id, classification, scanned_by=None, metadata=None):
        if not classification.recorded:
            raise LedgerError(f"Classification {classification.value!r} is not recorded")
        try:
            with self.db.get_connection() as conn:
                now = self.clock()
                return self._insert(conn, visitor_id, classification, now,
                                    self.scan_date_for(now), scanned_by, metadata or ScanMetadata())
        except SQLAlchemyError as e:
            raise LedgerError(f"Could not record scan: {e}") from e

    @contextmanager
    def visitor_day(self, visitor_id: int) -> Iterator[LedgerWindow]:
        # The keyed lock serializes stations served by this process; the row
        # lock serializes across processes on databases that have one.
        with self._visitor_locks.hold(visitor_id, timeout=self.lock_timeout):
            try:
                with self.db.get_connection() as conn:
                    if self.db.supports_row_locks:
                        conn.execute(
                            text("SELECT id FROM visitors WHERE id = :vid FOR UPDATE"),
                            {"vid": visitor_id},
                        )
                    now = self.clock()
                    scan_date = self.scan_date_for(now)
                    history = self._fetch_day(conn, visitor_id, scan_date)

                    def write(*args) -> ScanEvent:
                        return self._insert(conn, *args)

                    yield LedgerWindow(visitor_id, now, scan_date, history, write)
            except SQLAlchemyError as e:
                raise LedgerError(f"Scan transaction failed: {e}") from e
