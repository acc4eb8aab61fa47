"""Exceptions raised by the exporter."""

from __future__ import annotations


class ExporterError(Exception):
    """Base class for everything the exporter raises on purpose."""


class FetchError(ExporterError):
    """One metric family could not be fetched from the cache manager.

    The collector catches these per family; they never reach the scrape.
    """

    def __init__(self, family: str, reason: str):
        self.family = family
        self.reason = reason
        super().__init__(f"{family}: {reason}")


class ConfigurationError(ExporterError):
    """Bad labels, bad catalog or bad client wiring. Fatal at startup."""
