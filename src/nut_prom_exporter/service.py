from __future__ import annotations

import enum
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from nut_prom_exporter.catalog import MetricFamily
from nut_prom_exporter.client import ProtocolClient
from nut_prom_exporter.dispatcher import Dispatcher
from nut_prom_exporter.errors import TransportError
from nut_prom_exporter.keymap import parse_value, resolve
from nut_prom_exporter.registry import Target, TargetRegistry


LOGGER = logging.getLogger("nut_prom_exporter.poller")

KeyResolver = Callable[[str], Optional[tuple[MetricFamily, str]]]


class PollStatus(enum.Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class TargetPollResult:
    target: str
    success: bool
    samples: int = 0
    observed_at: float | None = None
    poll_duration_seconds: float | None = None
    error: str | None = None


@dataclass(frozen=True)
class PollResult:
    status: PollStatus
    targets: list[TargetPollResult] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.status is PollStatus.SUCCESS

    @property
    def skipped(self) -> bool:
        return self.status is PollStatus.SKIPPED

    @property
    def failed_targets(self) -> int:
        return sum(1 for result in self.targets if not result.success)


class PollScheduler:
    """Runs one pass over every registered UPS per call to :meth:`poll`.

    Overlapping calls do not queue: while a pass is in flight any other
    caller gets a ``SKIPPED`` result straight away and no query is issued.
    """

    def __init__(
        self,
        registry: TargetRegistry,
        dispatcher: Dispatcher,
        *,
        client: ProtocolClient | None = None,
        resolver: KeyResolver = resolve,
    ) -> None:
        self._registry = registry
        self._dispatcher = dispatcher
        self._client = client or ProtocolClient()
        self._resolve = resolver
        self._busy = threading.Lock()

    @property
    def busy(self) -> bool:
        return self._busy.locked()

    def poll(self) -> PollResult:
        if not self._busy.acquire(blocking=False):
            LOGGER.info("previous poll still running; skipping this cycle")
            return PollResult(status=PollStatus.SKIPPED)
        try:
            results = [self._poll_target(target) for target in self._registry.iterate()]
        finally:
            self._busy.release()

        status = PollStatus.SUCCESS if any(result.success for result in results) else PollStatus.FAILURE
        return PollResult(status=status, targets=results)

    def _poll_target(self, target: Target) -> TargetPollResult:
        started_at = time.time()
        monotonic_start = time.monotonic()
        samples = 0
        try:
            for key, raw_value in self._client.query(target):
                resolved = self._resolve(key)
                if resolved is None:
                    continue
                family, type_instance = resolved
                self._dispatcher.submit(target, family, type_instance, parse_value(raw_value))
                samples += 1
        except TransportError as error:
            duration = time.monotonic() - monotonic_start
            LOGGER.warning("querying %s failed after %d sample(s): %s", target, samples, error)
            return TargetPollResult(
                target=target.name,
                success=False,
                samples=samples,
                poll_duration_seconds=duration,
                error=str(error),
            )

        duration = time.monotonic() - monotonic_start
        LOGGER.debug("polled %s: %d sample(s) in %.3fs", target, samples, duration)
        return TargetPollResult(
            target=target.name,
            success=True,
            samples=samples,
            observed_at=started_at,
            poll_duration_seconds=duration,
        )
