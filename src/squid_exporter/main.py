"""
squid-exporter entry point.

Usage:
    squid-exporter serve --mock                             Serve mock Squid metrics
    squid-exporter serve --client mypkg.squid:make_client   Serve a live Squid
    squid-exporter check --url http://localhost:9301/metrics
    squid-exporter check --mock                             One local collection
"""

from __future__ import annotations

import logging
from typing import Optional, Tuple

import click
import httpx
from prometheus_client import CollectorRegistry

from squid_exporter import __version__
from squid_exporter.check import render, scrape, summarize
from squid_exporter.collector.base import UpstreamClient
from squid_exporter.collector.mock_client import MockUpstreamClient
from squid_exporter.collector.squid_collector import new_collector
from squid_exporter.config import (
    DEFAULT_LISTEN,
    DEFAULT_METRICS_PATH,
    DEFAULT_SQUID_HOSTNAME,
    DEFAULT_SQUID_PORT,
    DEFAULT_TIMEOUT_SECONDS,
    CollectorConfig,
    load_client_factory,
    parse_label_args,
    parse_listen,
)
from squid_exporter.errors import ConfigurationError
from squid_exporter.server import build_server, run_server


log = logging.getLogger("squid_exporter")


_SQUID_OPTIONS = [
    click.option("--squid-hostname", envvar="SQUID_HOSTNAME", default=DEFAULT_SQUID_HOSTNAME,
                 show_default=True, help="Squid hostname"),
    click.option("--squid-port", envvar="SQUID_PORT", default=DEFAULT_SQUID_PORT, type=int,
                 show_default=True, help="Squid port to read metrics from"),
    click.option("--squid-login", envvar="SQUID_LOGIN", default=None, help="Login for the cache manager"),
    click.option("--squid-password", envvar="SQUID_PASSWORD", default=None,
                 help="Password for the cache manager"),
    click.option("--proxy-header", envvar="SQUID_PROXY_HEADER", default=None,
                 help="Proxy header to send with cache manager requests"),
    click.option("--label", "labels", multiple=True, metavar="KEY=VALUE",
                 help="Constant label added to every squid metric (repeatable)"),
    click.option("--extract-service-times/--no-extract-service-times", envvar="SQUID_EXTRACTSERVICETIMES",
                 default=True, show_default=True, help="Export service time percentiles"),
    click.option("--timeout", default=DEFAULT_TIMEOUT_SECONDS, show_default=True,
                 help="Per-fetch timeout handed to the upstream client, in seconds"),
    click.option("--mock", is_flag=True, default=False, help="Use a simulated Squid cache manager"),
    click.option("--client", "client_path", envvar="SQUID_EXPORTER_CLIENT", default=None, metavar="MODULE:ATTR",
                 help="Factory returning an upstream client, called with the collector config"),
]


def squid_options(f):
    for option in reversed(_SQUID_OPTIONS):
        f = option(f)
    return f


def _build_config(squid_hostname: str, squid_port: int, squid_login: Optional[str],
                  squid_password: Optional[str], proxy_header: Optional[str],
                  labels: Tuple[str, ...], extract_service_times: bool, timeout: float) -> CollectorConfig:
    return CollectorConfig(
        hostname=squid_hostname,
        port=squid_port,
        login=squid_login,
        password=squid_password,
        proxy_header=proxy_header,
        labels=parse_label_args(labels),
        extract_service_times=extract_service_times,
        timeout=timeout,
    )


def _make_client(config: CollectorConfig, mock: bool, client_path: Optional[str]) -> UpstreamClient:
    if mock:
        return MockUpstreamClient()

    client = load_client_factory(client_path)(config)
    if not isinstance(client, UpstreamClient):
        raise ConfigurationError(f"{client_path!r} did not return an UpstreamClient")
    return client


@click.group()
@click.version_option(version=__version__, prog_name="squid-exporter")
@click.option("--verbose", is_flag=True, default=False, help="Enable debug logging")
def cli(verbose: bool):
    """Prometheus exporter for the Squid cache manager."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%H:%M:%S",
    )


@cli.command()
@click.option("--listen", envvar="SQUID_EXPORTER_LISTEN", default=DEFAULT_LISTEN, show_default=True,
              help="Address and port to serve metrics on")
@click.option("--metrics-path", envvar="SQUID_EXPORTER_METRICS_PATH", default=DEFAULT_METRICS_PATH,
              show_default=True, help="Path the metrics are served under")
@squid_options
def serve(listen: str, metrics_path: str, mock: bool, client_path: Optional[str], **squid):
    """Serve Squid metrics for Prometheus to scrape."""
    if not mock and not client_path:
        click.echo("Please specify a data source: --mock or --client <module:attr>")
        raise SystemExit(1)

    try:
        host, port = parse_listen(listen)
        config = _build_config(**squid)
        client = _make_client(config, mock, client_path)
    except ConfigurationError as e:
        raise click.UsageError(str(e))

    try:
        try:
            collector = new_collector(config, client)
        except ConfigurationError as e:
            raise click.UsageError(str(e))

        registry = CollectorRegistry()
        registry.register(collector)
        try:
            server = build_server(registry, host, port, metrics_path)
        except OSError as e:
            raise click.ClickException(f"Cannot listen on {listen}: {e}")

        log.info("Collecting from %s (%s)", client.name(), config.manager_url)
        run_server(server, metrics_path)
    finally:
        client.close()


@cli.command()
@click.option("--url", default=None, help="Exporter metrics URL (e.g. http://localhost:9301/metrics)")
@squid_options
def check(url: Optional[str], mock: bool, client_path: Optional[str], **squid):
    """Take a single reading and report whether Squid is up."""
    if url:
        try:
            result = scrape(url, timeout=squid["timeout"])
        except (httpx.HTTPError, ValueError) as e:
            # ValueError: the page was not Prometheus exposition text
            click.echo(f"Could not scrape {url}: {e}", err=True)
            raise SystemExit(1)
        source = url
    elif mock or client_path:
        try:
            config = _build_config(**squid)
            client = _make_client(config, mock, client_path)
        except ConfigurationError as e:
            raise click.UsageError(str(e))

        try:
            try:
                collector = new_collector(config, client)
            except ConfigurationError as e:
                raise click.UsageError(str(e))
            result = summarize(collector.collect())
        finally:
            client.close()
        source = client.name()
    else:
        click.echo("Please specify a data source: --url, --mock or --client <module:attr>")
        raise SystemExit(1)

    render(result, source)
    if not result.healthy:
        raise SystemExit(1)


if __name__ == "__main__":
    cli()
