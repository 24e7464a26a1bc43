from __future__ import annotations

import logging
import shlex
import socket
from typing import TYPE_CHECKING, Iterator, Protocol, Sequence

from nut_prom_exporter.errors import TransportError

if TYPE_CHECKING:
    from nut_prom_exporter.registry import Target


LOGGER = logging.getLogger("nut_prom_exporter.upsd")
DEFAULT_PORT = 3493
MIN_ANSWER_FIELDS = 4


class Connection(Protocol):
    def connect(self) -> None: ...

    def list_start(self, query: Sequence[str]) -> None: ...

    def list_next(self, query: Sequence[str]) -> list[str] | None: ...

    def disconnect(self) -> None: ...


def split_answer_line(line: str) -> list[str]:
    lexer = shlex.shlex(line, posix=True)
    lexer.whitespace_split = True
    lexer.commenters = ""
    lexer.quotes = '"'
    lexer.escapedquotes = '"'
    try:
        return list(lexer)
    except ValueError as error:
        raise TransportError(f"unparseable upsd line {line!r}: {error}", code="PROTOCOL") from error


class NutConnection:
    def __init__(self, host: str, port: int = DEFAULT_PORT, timeout_seconds: float = 10.0) -> None:
        self.host = host
        self.port = port
        self.timeout_seconds = timeout_seconds
        self._sock: socket.socket | None = None
        self._reader = None

    @property
    def connected(self) -> bool:
        return self._sock is not None

    def connect(self) -> None:
        try:
            self._sock = socket.create_connection((self.host, self.port), timeout=self.timeout_seconds)
        except OSError as error:
            raise TransportError(f"connect to {self.host}:{self.port} failed: {error}") from error
        self._reader = self._sock.makefile("r", encoding="utf-8", errors="replace", newline="\n")
        LOGGER.debug("connected to upsd at %s:%d", self.host, self.port)

    def _send(self, line: str) -> None:
        if self._sock is None:
            raise TransportError(f"not connected to {self.host}:{self.port}")
        LOGGER.debug("upsd %s:%d >> %s", self.host, self.port, line)
        try:
            self._sock.sendall(f"{line}\n".encode("utf-8"))
        except OSError as error:
            self.disconnect()
            raise TransportError(f"write to {self.host}:{self.port} failed: {error}") from error

    def _read_line(self) -> str:
        if self._reader is None:
            raise TransportError(f"not connected to {self.host}:{self.port}")
        try:
            line = self._reader.readline()
        except OSError as error:
            self.disconnect()
            raise TransportError(f"read from {self.host}:{self.port} failed: {error}") from error
        if not line:
            self.disconnect()
            raise TransportError(f"connection to {self.host}:{self.port} closed by server")
        line = line.rstrip("\r\n")
        LOGGER.debug("upsd %s:%d << %s", self.host, self.port, line)
        return line

    def _raise_for_err(self, tokens: list[str]) -> None:
        if tokens and tokens[0] == "ERR":
            code = tokens[1] if len(tokens) > 1 else "UNKNOWN"
            raise TransportError(f"upsd at {self.host}:{self.port} answered ERR {code}", code=code)

    def list_start(self, query: Sequence[str]) -> None:
        self._send(" ".join(["LIST", *query]))
        line = self._read_line()
        try:
            tokens = split_answer_line(line)
        except TransportError:
            self.disconnect()
            raise
        # ERR answers the whole LIST in one line; the session stays in sync
        self._raise_for_err(tokens)
        expected = ["BEGIN", "LIST", *query]
        if tokens != expected:
            self.disconnect()
            raise TransportError(
                f"unexpected reply to LIST {' '.join(query)}: {' '.join(tokens) or '<empty>'}",
                code="PROTOCOL",
            )

    def list_next(self, query: Sequence[str]) -> list[str] | None:
        line = self._read_line()
        try:
            tokens = split_answer_line(line)
        except TransportError as error:
            LOGGER.debug("skipping row from %s:%d: %s", self.host, self.port, error)
            return []
        if tokens and tokens[0] == "ERR":
            self.disconnect()
            self._raise_for_err(tokens)
        if tokens[:2] == ["END", "LIST"]:
            return None
        return tokens

    def disconnect(self) -> None:
        sock = self._sock
        if sock is None:
            return
        try:
            sock.sendall(b"LOGOUT\n")
        except OSError as error:
            LOGGER.debug("LOGOUT to %s:%d failed: %s", self.host, self.port, error)
        try:
            if self._reader is not None:
                self._reader.close()
            sock.close()
        except OSError as error:
            LOGGER.debug("closing %s:%d failed: %s", self.host, self.port, error)
        self._sock = None
        self._reader = None


class ProtocolClient:
    def query(self, target: Target) -> Iterator[tuple[str, str]]:
        query = ["VAR", target.name]
        connection = target.connection
        connection.list_start(query)
        return self._rows(connection, query)

    @staticmethod
    def _rows(connection: Connection, query: list[str]) -> Iterator[tuple[str, str]]:
        while True:
            answer = connection.list_next(query)
            if answer is None:
                return
            if len(answer) < MIN_ANSWER_FIELDS:
                continue
            yield answer[2], answer[3]
