from __future__ import annotations


class NutExporterError(Exception):
    pass


class ConfigError(NutExporterError):
    """A UPS target could not be parsed or connected."""


class TransportError(NutExporterError):
    """The upsd session failed or answered with an error."""

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code
