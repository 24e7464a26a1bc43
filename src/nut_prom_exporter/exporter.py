from __future__ import annotations

import logging
from typing import Iterable

from prometheus_client import CollectorRegistry, Counter, Gauge

from nut_prom_exporter.catalog import MetricFamily
from nut_prom_exporter.dispatcher import Sample
from nut_prom_exporter.service import PollResult


LOGGER = logging.getLogger("nut_prom_exporter.exporter")
SAMPLE_LABELS = ["host", "ups", "type_instance"]


class NutMetricsPublisher:
    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        if registry is None:
            registry = CollectorRegistry()
        self.registry = registry
        self._families: dict[str, tuple[MetricFamily, Gauge]] = {}

        self.poll_success = Gauge(
            "nut_poll_success",
            "Latest poll status for the UPS (1=success, 0=failure)",
            ["ups"],
            registry=self.registry,
        )
        self.poll_duration_seconds = Gauge(
            "nut_poll_duration_seconds",
            "Duration of the last upsd query for the UPS in seconds",
            ["ups"],
            registry=self.registry,
        )
        self.poll_timestamp_seconds = Gauge(
            "nut_poll_timestamp_seconds",
            "Unix timestamp of the last successful upsd query",
            ["ups"],
            registry=self.registry,
        )
        self.poll_samples = Gauge(
            "nut_poll_samples",
            "Number of samples dispatched by the last poll of the UPS",
            ["ups"],
            registry=self.registry,
        )
        self.polls_skipped = Counter(
            "nut_poll_skipped",
            "Polls skipped because the previous poll was still running",
            registry=self.registry,
        )

    def register_families(self, families: Iterable[MetricFamily]) -> None:
        for family in families:
            if family.name in self._families:
                continue
            gauge = Gauge(
                f"nut_{family.name}",
                f"UPS {family.name} reported by upsd, valid range {family.describe_range()}",
                SAMPLE_LABELS,
                registry=self.registry,
            )
            self._families[family.name] = (family, gauge)

    def emit(self, family_name: str, sample: Sample) -> None:
        family, gauge = self._families[family_name]
        if not family.contains(sample.value):
            LOGGER.debug(
                "%s %s/%s=%s outside %s",
                sample.plugin_instance,
                family_name,
                sample.type_instance,
                sample.value,
                family.describe_range(),
            )
        gauge.labels(
            host=sample.host,
            ups=sample.plugin_instance,
            type_instance=sample.type_instance,
        ).set(sample.value)

    def apply_poll_result(self, result: PollResult) -> None:
        if result.skipped:
            self.polls_skipped.inc()
            return
        for target_result in result.targets:
            ups = target_result.target
            self.poll_success.labels(ups=ups).set(1.0 if target_result.success else 0.0)
            self.poll_samples.labels(ups=ups).set(float(target_result.samples))
            if target_result.poll_duration_seconds is not None:
                self.poll_duration_seconds.labels(ups=ups).set(target_result.poll_duration_seconds)
            if target_result.success and target_result.observed_at is not None:
                self.poll_timestamp_seconds.labels(ups=ups).set(target_result.observed_at)
