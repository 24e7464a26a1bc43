from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import partial
from typing import Callable, Iterator

from nut_prom_exporter.client import DEFAULT_PORT, Connection, NutConnection
from nut_prom_exporter.errors import ConfigError, TransportError


LOGGER = logging.getLogger("nut_prom_exporter.registry")

ConnectionFactory = Callable[[str, int], Connection]


@dataclass(frozen=True)
class Target:
    name: str
    host: str
    port: int
    connection: Connection

    @property
    def identity(self) -> tuple[str, str, int]:
        return (self.name, self.host, self.port)

    def __str__(self) -> str:
        return f"{self.name}@{self.host}:{self.port}"


def _parse_port(raw: str, spec: str) -> int:
    if not (raw.isascii() and raw.isdigit()):
        raise ConfigError(f"invalid port {raw!r} in UPS spec {spec!r}")
    port = int(raw)
    if not 1 <= port <= 65535:
        raise ConfigError(f"port {port} out of range in UPS spec {spec!r}")
    return port


def split_target_spec(spec: str) -> tuple[str, str, int]:
    """Split ``name[@host[:port]]`` into its parts.

    The host defaults to ``localhost`` and the port to 3493. IPv6 hosts are
    written in brackets, for example ``ups@[::1]:3493``.
    """
    name, at, location = spec.strip().partition("@")
    if not name:
        raise ConfigError(f"missing UPS name in spec {spec!r}")
    if not at:
        return name, "localhost", DEFAULT_PORT
    if not location:
        raise ConfigError(f"missing host after '@' in UPS spec {spec!r}")

    if location.startswith("["):
        host, bracket, rest = location[1:].partition("]")
        if not bracket:
            raise ConfigError(f"unterminated '[' in UPS spec {spec!r}")
        if rest and not rest.startswith(":"):
            raise ConfigError(f"unexpected {rest!r} after host in UPS spec {spec!r}")
        raw_port = rest[1:] if rest else None
    else:
        host, colon, raw_port = location.partition(":")
        if not colon:
            raw_port = None

    if not host:
        raise ConfigError(f"missing host in UPS spec {spec!r}")
    port = DEFAULT_PORT if raw_port is None else _parse_port(raw_port, spec)
    return name, host, port


class TargetRegistry:
    def __init__(
        self,
        *,
        timeout_seconds: float = 10.0,
        connection_factory: ConnectionFactory | None = None,
    ) -> None:
        if connection_factory is None:
            connection_factory = partial(NutConnection, timeout_seconds=timeout_seconds)
        self._connection_factory = connection_factory
        self._targets: list[Target] = []

    def add(self, spec: str) -> Target:
        LOGGER.debug("adding UPS target %s", spec)
        name, host, port = split_target_spec(spec)
        connection = self._connection_factory(host, port)
        try:
            connection.connect()
        except (TransportError, OSError) as error:
            connection.disconnect()
            raise ConfigError(f"connecting to {host}:{port} for UPS {name!r} failed: {error}") from error

        target = Target(name=name, host=host, port=port, connection=connection)
        self._targets.append(target)
        LOGGER.info("registered UPS target %s", target)
        return target

    def iterate(self) -> tuple[Target, ...]:
        return tuple(self._targets)

    def __iter__(self) -> Iterator[Target]:
        return iter(self.iterate())

    def __len__(self) -> int:
        return len(self._targets)

    def shutdown(self) -> None:
        targets, self._targets = self._targets, []
        for target in targets:
            try:
                target.connection.disconnect()
            except Exception as error:
                LOGGER.warning("disconnecting %s failed: %s", target, error)
        if targets:
            LOGGER.info("closed %d UPS connection(s)", len(targets))
