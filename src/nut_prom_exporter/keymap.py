from __future__ import annotations

import re
from types import MappingProxyType
from typing import Mapping

from nut_prom_exporter.catalog import MetricFamily, get_family


_LEADING_FLOAT = re.compile(
    r"""
    [-+]?
    (?:
        (?P<hex>0x(?:[0-9a-f]+\.?[0-9a-f]*|\.[0-9a-f]+)(?:p[-+]?\d+)?)
        | (?:\d+\.?\d*|\.\d+)(?:e[-+]?\d+)?
        | inf(?:inity)?
        | nan
    )
    """,
    re.VERBOSE | re.IGNORECASE,
)


def _table(entries: dict[str, tuple[str, str]]) -> Mapping[str, tuple[MetricFamily, str]]:
    return MappingProxyType({key: (get_family(family), instance) for key, (family, instance) in entries.items()})


# namespace -> exact key -> (family, type instance)
KEY_MAP: Mapping[str, Mapping[str, tuple[MetricFamily, str]]] = MappingProxyType(
    {
        "ambient": _table(
            {
                "ambient.humidity": ("humidity", "ambient"),
                "ambient.temperature": ("temperature", "ambient"),
            }
        ),
        "battery": _table(
            {
                "battery.charge": ("percent", "charge"),
                "battery.current": ("current", "battery"),
                "battery.runtime": ("timeleft", "battery"),
                "battery.temperature": ("temperature", "battery"),
                "battery.voltage": ("voltage", "battery"),
            }
        ),
        "input": _table(
            {
                "input.frequency": ("frequency", "input"),
                "input.voltage": ("voltage", "input"),
            }
        ),
        "output": _table(
            {
                "output.current": ("current", "output"),
                "output.frequency": ("frequency", "output"),
                "output.voltage": ("voltage", "output"),
            }
        ),
        "ups": _table(
            {
                "ups.load": ("percent", "load"),
                "ups.power": ("power", "ups"),
                "ups.temperature": ("temperature", "ups"),
            }
        ),
    }
)


def resolve(key: str) -> tuple[MetricFamily, str] | None:
    namespace, dot, _ = key.partition(".")
    if not dot:
        return None
    allowed = KEY_MAP.get(namespace)
    if allowed is None:
        return None
    return allowed.get(key)


def parse_value(raw: str) -> float:
    """Convert a upsd value the way C atof() does.

    The longest numeric prefix wins and anything unparseable becomes 0.0,
    so "230.1 V" is 230.1, "0x10" is 16.0 and "OL" is 0.0.
    """
    matched = _LEADING_FLOAT.match(raw.lstrip())
    if matched is None:
        return 0.0
    try:
        if matched.group("hex"):
            return float.fromhex(matched.group(0))
        return float(matched.group(0))
    except ValueError:
        return 0.0
