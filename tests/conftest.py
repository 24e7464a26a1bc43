from __future__ import annotations

import socketserver
import threading
from typing import Callable, Iterator

import pytest

from nut_prom_exporter.errors import TransportError
from nut_prom_exporter.registry import TargetRegistry


class FakeConnection:
    def __init__(
        self,
        rows: list[object] | None = None,
        *,
        fail_connect: bool = False,
        fail_query: bool = False,
    ) -> None:
        self.rows = list(rows or [])
        self.fail_connect = fail_connect
        self.fail_query = fail_query
        self.connected = False
        self.disconnects = 0
        self.queries: list[list[str]] = []
        self._pending: list[object] = []

    def connect(self) -> None:
        if self.fail_connect:
            raise TransportError("connection refused")
        self.connected = True

    def list_start(self, query) -> None:
        self.queries.append(list(query))
        if self.fail_query:
            raise TransportError("upsd answered ERR UNKNOWN-UPS", code="UNKNOWN-UPS")
        self._pending = list(self.rows)

    def list_next(self, query) -> list[str] | None:
        if not self._pending:
            return None
        row = self._pending.pop(0)
        if isinstance(row, Exception):
            raise row
        return list(row)

    def disconnect(self) -> None:
        self.disconnects += 1
        self.connected = False


@pytest.fixture
def make_connection() -> Callable[..., FakeConnection]:
    return FakeConnection


@pytest.fixture
def build_registry() -> Callable[..., TargetRegistry]:
    def _build(connections: dict[str, FakeConnection], *specs: str) -> TargetRegistry:
        registry = TargetRegistry(connection_factory=lambda host, port: connections[host])
        for spec in specs:
            registry.add(spec)
        return registry

    return _build


class _FakeUpsdHandler(socketserver.StreamRequestHandler):
    def _write(self, *lines: str) -> None:
        self.wfile.write("".join(f"{line}\n" for line in lines).encode("utf-8"))

    def handle(self) -> None:
        for raw in self.rfile:
            line = raw.decode("utf-8").strip()
            self.server.commands.append(line)
            if line == "LOGOUT":
                return
            parts = line.split()
            if len(parts) == 3 and parts[:2] == ["LIST", "VAR"]:
                name = parts[2]
                variables = self.server.devices.get(name)
                if variables is None:
                    self._write("ERR UNKNOWN-UPS")
                    continue
                rows = [f'VAR {name} {key} "{value}"' for key, value in variables.items()]
                if self.server.drop_after is not None:
                    self._write(f"BEGIN LIST VAR {name}", *rows[: self.server.drop_after])
                    return
                self._write(f"BEGIN LIST VAR {name}", *rows, f"END LIST VAR {name}")
                continue
            self._write("ERR UNKNOWN-COMMAND")


class FakeUpsd(socketserver.ThreadingTCPServer):
    daemon_threads = True
    allow_reuse_address = True

    def __init__(self, devices: dict[str, dict[str, str]]) -> None:
        super().__init__(("127.0.0.1", 0), _FakeUpsdHandler)
        self.devices = devices
        self.commands: list[str] = []
        self.drop_after: int | None = None

    @property
    def port(self) -> int:
        return self.server_address[1]


@pytest.fixture
def fake_upsd() -> Iterator[FakeUpsd]:
    server = FakeUpsd(
        {
            "ups1": {
                "battery.charge": "87",
                "battery.voltage": "13.4",
                "device.mfr": "Eaton",
                "ups.status": "OL CHRG",
            }
        }
    )
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield server
    finally:
        server.shutdown()
        server.server_close()
