# =======================================================================================
# visitor_checkin/services/serial_service.py - Serial barcode reader requests
# =======================================================================================
import logging
import time
from collections import OrderedDict
from typing import Callable, Optional, Tuple
from pydantic import ValidationError
from ..models.enums import ResultType
from ..models.schemas import ScanMetadata, ScanResult, SerialMessage, SerialResponse, StaffUser
from .scan_engine import ScanEngine

logger = logging.getLogger(__name__)


class SerialService:
    """Turns lines from a gate's barcode reader into scan decisions."""

    def __init__(self, engine: ScanEngine, station_user: StaffUser,
                 port_name: str = "serial", debounce_seconds: float = 2.0,
                 monotonic: Callable[[], float] = time.monotonic):
        self.engine = engine
        self.station_user = station_user
        self.port_name = port_name
        self._monotonic = monotonic

        # ----------------------------------------------------------------------
        # Debounce cache
        # ----------------------------------------------------------------------
        # Readers often fire several times for one presentation of a code.
        # key = (barcode, station), value = (monotonic time, result)
        self._scan_cache: "OrderedDict[Tuple[str, str], Tuple[float, ScanResult]]" = OrderedDict()
        self._scan_cache_ttl = debounce_seconds
        self._scan_cache_max = 512

    # ----------------------------------------------------------------------
    # Cache helpers
    # ----------------------------------------------------------------------
    def _get_cached_decision(self, key: Tuple[str, str]) -> Optional[ScanResult]:
        """Return cached decision if still valid."""
        item = self._scan_cache.get(key)
        if not item:
            return None

        ts, decision = item
        if self._monotonic() - ts > self._scan_cache_ttl:
            self._scan_cache.pop(key, None)
            return None

        self._scan_cache.move_to_end(key)
        return decision

    def _store_decision(self, key: Tuple[str, str], decision: ScanResult) -> None:
        """Store decision with timestamp and trim cache size."""
        self._scan_cache[key] = (self._monotonic(), decision)
        while len(self._scan_cache) > self._scan_cache_max:
            self._scan_cache.popitem(last=False)

    # ----------------------------------------------------------------------
    # Line parsing
    # ----------------------------------------------------------------------
    @staticmethod
    def parse_line(line: str) -> Optional[SerialMessage]:
        """Plain readers send the bare code; hubs send a JSON request."""
        line = line.strip()
        if not line:
            return None
        if line.startswith("{"):
            try:
                return SerialMessage.model_validate_json(line)
            except ValidationError as e:
                logger.warning("Unparseable serial line %r: %s", line, e)
                return None
        return SerialMessage(code=line)

    # ----------------------------------------------------------------------
    # Core request handler
    # ----------------------------------------------------------------------
    def process_line(self, line: str) -> Optional[SerialResponse]:
        message = self.parse_line(line)
        if message is None or message.t != "req" or message.code is None:
            return None
        return self.process_request(message)

    def process_request(self, message: SerialMessage) -> SerialResponse:
        station = message.station or self.port_name
        cache_key = (message.code.strip(), station)

        result = self._get_cached_decision(cache_key)
        if result is not None:
            logger.debug("Reusing decision for %s at %s", message.code, station)
        else:
            result = self.engine.process_scan(
                message.code,
                actor=self.station_user,
                metadata=ScanMetadata(source_address=station, client_agent="serial-reader"),
            )
            # Faults are retried on the next read instead of replayed
            if result.type is not ResultType.SYSTEM_ERROR:
                self._store_decision(cache_key, result)

        return self.create_response_message(message, result)

    # ----------------------------------------------------------------------
    # Response builder
    # ----------------------------------------------------------------------
    @staticmethod
    def create_response_message(message: SerialMessage, result: ScanResult) -> SerialResponse:
        return SerialResponse(
            id=message.id,
            barcode=result.barcode,
            verdict=result.verdict,
            type=result.type,
            title=result.title,
            ts=int(result.timestamp.timestamp()),
        )
