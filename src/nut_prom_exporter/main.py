from __future__ import annotations

import argparse
import logging
import os
import re
import time
from dataclasses import dataclass, field

from prometheus_client import start_http_server

from nut_prom_exporter.catalog import METRIC_FAMILIES
from nut_prom_exporter.dispatcher import Dispatcher
from nut_prom_exporter.errors import ConfigError
from nut_prom_exporter.exporter import NutMetricsPublisher
from nut_prom_exporter.registry import TargetRegistry
from nut_prom_exporter.service import PollResult, PollScheduler


LOGGER = logging.getLogger("nut_prom_exporter")
_SPEC_SEPARATOR = re.compile(r"[\s,]+")


@dataclass(frozen=True)
class AppConfig:
    ups: list[str] = field(default_factory=list)
    timeout_seconds: float = 10.0
    poll_interval_seconds: float = 10.0
    hostname: str | None = None
    listen_address: str = "0.0.0.0"
    listen_port: int = 9199
    run_once: bool = False
    log_level: str = "INFO"


def _float_env(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    return float(value)


def _int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    return int(value)


def _list_env(name: str) -> list[str]:
    value = os.getenv(name, "")
    return [item for item in _SPEC_SEPARATOR.split(value) if item]


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Prometheus exporter for Network UPS Tools (upsd) devices")
    parser.add_argument(
        "--ups",
        action="append",
        default=None,
        metavar="NAME[@HOST[:PORT]]",
        help="UPS to poll; repeat for several devices (env NUT_UPS, comma or space separated)",
    )
    parser.add_argument(
        "--timeout-seconds",
        type=float,
        default=_float_env("NUT_TIMEOUT_SECONDS", 10.0),
        help="socket timeout for connecting to and reading from upsd",
    )
    parser.add_argument(
        "--poll-interval-seconds",
        type=float,
        default=_float_env("NUT_POLL_INTERVAL_SECONDS", 10.0),
        help="interval between poll cycles",
    )
    parser.add_argument(
        "--hostname",
        default=os.getenv("NUT_HOSTNAME"),
        help="host label used for UPS targets on localhost (defaults to the system hostname)",
    )
    parser.add_argument(
        "--listen-address",
        default=os.getenv("NUT_LISTEN_ADDRESS", "0.0.0.0"),
        help="http bind address for /metrics endpoint",
    )
    parser.add_argument(
        "--listen-port",
        type=int,
        default=_int_env("NUT_LISTEN_PORT", 9199),
        help="http bind port for /metrics endpoint",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="run a single poll and exit",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("NUT_LOG_LEVEL", "INFO"),
        help="python logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    return parser


def load_config(argv: list[str] | None = None) -> AppConfig:
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    ups = args.ups if args.ups else _list_env("NUT_UPS")
    if not ups:
        parser.error("at least one --ups target is required (or set NUT_UPS)")
    return AppConfig(
        ups=list(ups),
        timeout_seconds=args.timeout_seconds,
        poll_interval_seconds=args.poll_interval_seconds,
        hostname=args.hostname,
        listen_address=args.listen_address,
        listen_port=args.listen_port,
        run_once=bool(args.once),
        log_level=args.log_level,
    )


def build_registry(config: AppConfig) -> TargetRegistry:
    registry = TargetRegistry(timeout_seconds=config.timeout_seconds)
    for spec in config.ups:
        try:
            registry.add(spec)
        except ConfigError as error:
            LOGGER.error("dropping UPS %s: %s", spec, error)
    return registry


def _run_poll_cycle(*, scheduler: PollScheduler, metrics: NutMetricsPublisher) -> PollResult:
    result = scheduler.poll()
    metrics.apply_poll_result(result)
    if result.skipped:
        return result
    samples = sum(target.samples for target in result.targets)
    if result.success:
        LOGGER.info(
            "poll successful: %d sample(s) from %d of %d UPS",
            samples,
            len(result.targets) - result.failed_targets,
            len(result.targets),
        )
    else:
        LOGGER.warning("poll failed for all %d UPS", len(result.targets))
    return result


def main(argv: list[str] | None = None) -> None:
    config = load_config(argv)
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    metrics = NutMetricsPublisher()
    metrics.register_families(METRIC_FAMILIES)

    registry = build_registry(config)
    try:
        if len(registry) == 0:
            LOGGER.error("no UPS target could be configured, exiting")
            raise SystemExit(1)

        dispatcher = Dispatcher(metrics.emit, hostname=config.hostname)
        scheduler = PollScheduler(registry, dispatcher)
        start_http_server(
            port=config.listen_port,
            addr=config.listen_address,
            registry=metrics.registry,
        )
        LOGGER.info("metrics server listening on http://%s:%d/metrics", config.listen_address, config.listen_port)

        if config.run_once:
            _run_poll_cycle(scheduler=scheduler, metrics=metrics)
            return

        LOGGER.info("running initial poll on startup")
        _run_poll_cycle(scheduler=scheduler, metrics=metrics)
        next_poll_at = time.monotonic() + config.poll_interval_seconds

        while True:
            sleep_for = max(0.0, next_poll_at - time.monotonic())
            time.sleep(sleep_for)
            _run_poll_cycle(scheduler=scheduler, metrics=metrics)
            next_poll_at += config.poll_interval_seconds
    except KeyboardInterrupt:
        LOGGER.info("shutdown requested, exiting")
    finally:
        registry.shutdown()


if __name__ == "__main__":
    main()
