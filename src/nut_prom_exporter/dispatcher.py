from __future__ import annotations

import logging
import socket
import time
from dataclasses import dataclass
from typing import Callable

from nut_prom_exporter.catalog import MetricFamily
from nut_prom_exporter.registry import Target


LOGGER = logging.getLogger("nut_prom_exporter.dispatcher")
PLUGIN_NAME = "nut"
# 64-byte label buffers on the sink side, one byte reserved for the terminator.
LABEL_MAX_LENGTH = 63


@dataclass(frozen=True)
class Sample:
    timestamp: float
    host: str
    plugin_instance: str
    type: str
    type_instance: str
    value: float
    plugin: str = PLUGIN_NAME


MetricSink = Callable[[str, Sample], None]


def _bounded(label: str) -> str:
    return label[:LABEL_MAX_LENGTH]


class Dispatcher:
    def __init__(
        self,
        sink: MetricSink,
        *,
        hostname: str | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._sink = sink
        self._clock = clock
        self.hostname = hostname or socket.gethostname()

    def host_label(self, target: Target) -> str:
        if target.host.lower() == "localhost":
            return self.hostname
        return target.host

    def submit(self, target: Target, family: MetricFamily, type_instance: str, value: float) -> None:
        sample = Sample(
            timestamp=self._clock(),
            host=_bounded(self.host_label(target)),
            plugin_instance=_bounded(target.name),
            type=family.name,
            type_instance=_bounded(type_instance),
            value=value,
        )
        try:
            self._sink(family.name, sample)
        except Exception as error:
            LOGGER.warning(
                "metric sink rejected %s/%s for %s: %s",
                family.name,
                type_instance,
                target,
                error,
            )
