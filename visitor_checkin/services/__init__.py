# =======================================================================================
# visitor_checkin/services/__init__.py - Services Package
# =======================================================================================
from .auth_service import AuthService
from .directory import InMemoryVisitorDirectory, SqlVisitorDirectory, VisitorDirectory
from .ledger import InMemoryScanLedger, LedgerWindow, ScanLedger, SqlScanLedger
from .scan_engine import ScanEngine
from .serial_service import SerialService

__all__ = [
    "AuthService", "VisitorDirectory", "SqlVisitorDirectory", "InMemoryVisitorDirectory",
    "ScanLedger", "SqlScanLedger", "InMemoryScanLedger", "LedgerWindow", "ScanEngine",
    "SerialService",
]
