"""Serial barcode reader bridge."""

import json
import threading
import time

import pytest

from visitor_checkin.models.enums import Classification, ResultType, Verdict
from visitor_checkin.services.serial_service import SerialService
from visitor_checkin.utils.exceptions import DirectoryError
from visitor_checkin.workers import serial_worker as serial_worker_module
from visitor_checkin.workers.serial_worker import SerialWorker


class FakeMonotonic:
    def __init__(self):
        self.value = 100.0

    def __call__(self):
        return self.value


class FakePort:
    def __init__(self):
        self.written = []

    def write(self, data):
        self.written.append(data)


class FakeSerialPort(FakePort):
    def __init__(self, lines):
        super().__init__()
        self.lines = list(lines)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def readline(self):
        if self.lines:
            return self.lines.pop(0).encode()
        time.sleep(0.01)
        return b""


class FakeSerialModule:
    def __init__(self, lines):
        self.port = FakeSerialPort(lines)

    def Serial(self, *args, **kwargs):
        return self.port


@pytest.fixture
def monotonic():
    return FakeMonotonic()


@pytest.fixture
def service(engine, staff, monotonic):
    return SerialService(engine, staff, port_name="/dev/ttyUSB0",
                         debounce_seconds=2.0, monotonic=monotonic)


class TestLineParsing:
    def test_plain_barcode(self):
        message = SerialService.parse_line("VIS2025\r\n")

        assert message.code == "VIS2025"
        assert message.t == "req"

    def test_hub_request(self):
        message = SerialService.parse_line('{"t": "req", "id": 4, "code": "A", "station": "north"}')

        assert (message.id, message.code, message.station) == (4, "A", "north")

    def test_garbage_json(self):
        assert SerialService.parse_line('{"id": "not-a-number"') is None

    def test_blank_line(self):
        assert SerialService.parse_line("   ") is None


class TestSerialService:
    def test_scan_is_attributed_to_station(self, service, ledger, staff):
        response = service.process_line("VIS2025")

        assert response.verdict is Verdict.ALLOW
        assert response.type is ResultType.FIRST_SCAN
        event = ledger.events[0]
        assert event.scanned_by == staff.id
        assert event.metadata.source_address == "/dev/ttyUSB0"
        assert event.metadata.client_agent == "serial-reader"

    def test_reread_within_debounce_is_not_recorded(self, service, ledger):
        first = service.process_line("VIS2025")
        second = service.process_line("VIS2025")

        assert first == second
        assert len(ledger.events) == 1

    def test_after_debounce_scan_is_recorded(self, service, ledger, monotonic, clock):
        service.process_line("VIS2025")
        monotonic.value += 5
        clock.advance(seconds=5)

        response = service.process_line("VIS2025")

        assert response.type is ResultType.DUPLICATE_SCAN
        assert [e.classification for e in ledger.events] == [
            Classification.FIRST, Classification.DUPLICATE,
        ]

    def test_stations_are_debounced_separately(self, service, ledger):
        service.process_line('{"t": "req", "code": "VIS2025", "station": "north"}')
        service.process_line('{"t": "req", "code": "VIS2025", "station": "south"}')

        assert len(ledger.events) == 2

    def test_non_request_lines_are_ignored(self, service, ledger):
        assert service.process_line('{"t": "ping"}') is None
        assert ledger.events == []

    def test_denial_response(self, service):
        response = service.process_line('{"t": "req", "id": 9, "code": "VIS9999"}')

        assert response.id == 9
        assert response.verdict is Verdict.DENY
        assert response.title == "ACCESS DENIED"

    def test_system_error_is_retried_on_next_read(self, service, directory, ledger, monkeypatch):
        def down(barcode):
            raise DirectoryError("database unavailable")

        original = directory.resolve
        monkeypatch.setattr(directory, "resolve", down)
        failed = service.process_line("VIS2025")
        monkeypatch.setattr(directory, "resolve", original)

        retried = service.process_line("VIS2025")

        assert failed.type is ResultType.SYSTEM_ERROR
        assert retried.type is ResultType.FIRST_SCAN
        assert len(ledger.events) == 1


class TestSerialWorker:
    def test_handle_line_writes_json_verdict(self, service):
        worker = SerialWorker(service_factory=lambda: service)
        worker.serial_service = service
        port = FakePort()

        worker.handle_line(port, "VIS2025\n")

        assert len(port.written) == 1
        payload = json.loads(port.written[0].decode())
        assert payload["t"] == "resp"
        assert payload["verdict"] == "allow"
        assert payload["barcode"] == "VIS2025"

    def test_ignored_line_writes_nothing(self, service):
        worker = SerialWorker()
        worker.serial_service = service
        port = FakePort()

        worker.handle_line(port, '{"t": "ping"}')

        assert port.written == []

    def test_not_started_without_port(self, monkeypatch):
        monkeypatch.setattr("visitor_checkin.workers.serial_worker.config.SERIAL_PORT", "")
        worker = SerialWorker(service_factory=lambda: pytest.fail("should not build"))

        worker.start()

        assert worker.running is False

    def test_service_built_on_worker_thread_and_stop_joins(self, service, monkeypatch):
        fake = FakeSerialModule(["VIS2025\n"])
        monkeypatch.setattr(serial_worker_module, "serial", fake)
        monkeypatch.setattr(serial_worker_module.config, "SERIAL_PORT", "/dev/ttyUSB0")
        monkeypatch.setattr(serial_worker_module.config, "SERIAL_STAFF_ID", 7)
        built_on = []

        def factory():
            built_on.append(threading.current_thread().name)
            return service

        worker = SerialWorker(service_factory=factory)
        worker.start()
        thread = worker._thread
        deadline = time.monotonic() + 5
        while not fake.port.written and time.monotonic() < deadline:
            time.sleep(0.01)
        worker.stop(timeout=5)

        assert built_on == ["serial-reader"]
        assert json.loads(fake.port.written[0].decode())["verdict"] == "allow"
        assert not thread.is_alive()
        assert worker.running is False
