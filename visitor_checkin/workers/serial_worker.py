# =======================================================================================
# visitor_checkin/workers/serial_worker.py - Background Serial Worker
# =======================================================================================
import logging
import threading
from typing import Optional
from ..config import config
from ..database import get_db_manager
from ..services.auth_service import AuthService
from ..services.serial_service import SerialService

try:
    import serial
except ImportError:
    serial = None

logger = logging.getLogger(__name__)


class SerialWorker:
    """Background worker reading a gate's serial barcode reader."""

    def __init__(self, service_factory=None):
        self._service_factory = service_factory
        self.serial_service: Optional[SerialService] = None
        self.running = False
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    # ------------------------------------------------------------------
    # Start / Stop
    # ------------------------------------------------------------------
    def start(self):
        """Start the serial worker in a background thread."""
        if not self._should_start():
            return

        self.running = True
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="serial-reader", daemon=True)
        self._thread.start()
        logger.info("Serial worker started on %s", config.SERIAL_PORT)

    def stop(self, timeout: Optional[float] = None):
        """Stop the serial worker and wait for its thread to exit."""
        self.running = False
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(config.SERIAL_TIMEOUT + 2 if timeout is None else timeout)
            if self._thread.is_alive():
                logger.warning("Serial worker did not stop in time")
            self._thread = None

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------
    def _should_start(self) -> bool:
        """Check if serial worker should start."""
        if serial is None:
            logger.info("pyserial not installed; skipping serial reader.")
            return False

        if not config.SERIAL_PORT:
            logger.info("SERIAL_PORT not configured; skipping serial reader.")
            return False

        if config.SERIAL_STAFF_ID is None:
            logger.warning("SERIAL_STAFF_ID not configured; skipping serial reader.")
            return False

        return True

    def _build_service(self) -> Optional[SerialService]:
        if self._service_factory is not None:
            return self._service_factory()

        # Imported here to avoid a cycle with the API dependency module
        from ..api.dependencies import get_scan_engine

        with get_db_manager().get_connection() as conn:
            station_user = AuthService().get_user(conn, config.SERIAL_STAFF_ID)
        if station_user is None or not station_user.is_active:
            logger.error("Station user %s missing or inactive; serial reader disabled.",
                         config.SERIAL_STAFF_ID)
            return None

        return SerialService(
            get_scan_engine(),
            station_user,
            port_name=config.SERIAL_PORT,
            debounce_seconds=config.SERIAL_DEBOUNCE_SECONDS,
        )

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------
    def _run(self):
        # The station user lookup hits the database, so it stays off the event loop
        try:
            self.serial_service = self._build_service()
        except Exception:
            logger.exception("Could not set up serial reader")
            self.serial_service = None
        if self.serial_service is None:
            self.running = False
            return
        self._run_loop()

    def _run_loop(self):
        """Main serial communication loop."""
        while self.running:
            try:
                self._handle_serial_connection()
            except Exception:
                logger.exception("Serial connection error; retrying in 3s")
                self._stop_event.wait(3)

    # ------------------------------------------------------------------
    # Serial handler
    # ------------------------------------------------------------------
    def _handle_serial_connection(self):
        """Open the port and answer every scanned line."""
        logger.info("Opening %s @ %s", config.SERIAL_PORT, config.SERIAL_BAUD)

        with serial.Serial(
            config.SERIAL_PORT, config.SERIAL_BAUD, timeout=config.SERIAL_TIMEOUT
        ) as ser:
            while self.running:
                line = ser.readline().decode(errors="ignore")
                if not line.strip():
                    continue
                self.handle_line(ser, line)

    def handle_line(self, port, line: str) -> None:
        response = self.serial_service.process_line(line)
        if response is None:
            return
        port.write((response.model_dump_json() + "\n").encode())
        logger.debug("Sent: %s", response)

# ----------------------------------------------------------------------
# Global instance + entrypoint
# ----------------------------------------------------------------------
serial_worker = SerialWorker()


def start_serial_worker():
    """Called from FastAPI startup."""
    serial_worker.start()


def stop_serial_worker():
    serial_worker.stop()
