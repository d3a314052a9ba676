# =======================================================================================
# visitor_checkin/workers/__init__.py - Workers Package
# =======================================================================================
from .serial_worker import SerialWorker, start_serial_worker, stop_serial_worker

__all__ = ["SerialWorker", "start_serial_worker", "stop_serial_worker"]
