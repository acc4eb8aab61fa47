"""Prometheus exporter for the Squid cache manager."""

__version__ = "0.3.0"
