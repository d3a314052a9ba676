# =======================================================================================
# visitor_checkin/services/directory.py - Visitor lookup by barcode
# =======================================================================================
import threading
from abc import ABC, abstractmethod
from typing import Dict, Optional
from pydantic import ValidationError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from ..database import DatabaseManager
from ..models.enums import AdmissionStatus
from ..models.schemas import Visitor
from ..utils.exceptions import DirectoryError


class VisitorDirectory(ABC):
    """Read-only view of registered visitors."""

    @abstractmethod
    def resolve(self, identifier: str) -> Optional[Visitor]:
        """Return the visitor owning `identifier`, or None if nobody does."""


class SqlVisitorDirectory(VisitorDirectory):
    """Reads the `visitors` table; every call hits the database."""

    def __init__(self, db: DatabaseManager):
        self.db = db

    def resolve(self, identifier: str) -> Optional[Visitor]:
        try:
            with self.db.get_connection() as conn:
                row = conn.execute(
                    text("""
                        SELECT id, barcode, last_name, first_name, middle_name, comment, status
                        FROM visitors
                        WHERE barcode = :barcode
                    """),
                    {"barcode": identifier}
                ).mappings().first()
        except SQLAlchemyError as e:
            raise DirectoryError(f"Visitor lookup failed: {e}") from e

        if not row:
            return None

        try:
            return Visitor(**row)
        except ValidationError as e:
            # An unknown status must not silently admit anyone
            raise DirectoryError(f"Visitor {row['id']} has an invalid record: {e}") from e


class InMemoryVisitorDirectory(VisitorDirectory):
    """Dictionary-backed directory for tests and offline stations."""

    def __init__(self):
        self._visitors: Dict[str, Visitor] = {}
        self._lock = threading.Lock()
        self.lookups = 0

    def add(self, visitor: Visitor) -> Visitor:
        with self._lock:
            self._visitors[visitor.barcode] = visitor
        return visitor

    def set_status(self, barcode: str, status: AdmissionStatus) -> Visitor:
        """Administrative block/unblock."""
        with self._lock:
            updated = self._visitors[barcode].model_copy(update={"status": status})
            self._visitors[barcode] = updated
        return updated

    def resolve(self, identifier: str) -> Optional[Visitor]:
        with self._lock:
            self.lookups += 1
            return self._visitors.get(identifier)
