"""
One-shot health check: scrape an exporter (or run one local collection)
and print what it reports. Exit status follows squid_up.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

import httpx
from prometheus_client.core import Metric
from prometheus_client.parser import text_string_to_metric_families
from rich.console import Console
from rich.table import Table

from squid_exporter.collector.squid_collector import UP_NAME
from squid_exporter.metrics import NAMESPACE

log = logging.getLogger(__name__)


@dataclass
class CheckSample:
    name: str
    labels: Dict[str, str]
    value: float


@dataclass
class CheckResult:
    samples: List[CheckSample] = field(default_factory=list)
    up: Optional[float] = None

    @property
    def healthy(self) -> bool:
        return self.up == 1.0


def summarize(families: Iterable[Metric]) -> CheckResult:
    """Flatten metric families into squid samples and pick out squid_up."""
    result = CheckResult()
    for family in families:
        for sample in family.samples:
            if not sample.name.startswith(NAMESPACE + "_"):
                continue
            if sample.name == UP_NAME:
                # Several hosts: the worst one wins
                result.up = sample.value if result.up is None else min(result.up, sample.value)
                continue
            result.samples.append(CheckSample(sample.name, dict(sample.labels), sample.value))
    return result


def scrape(url: str, timeout: float = 10.0) -> CheckResult:
    """Fetch and parse a running exporter's metrics page."""
    response = httpx.get(url, timeout=timeout)
    response.raise_for_status()
    return summarize(text_string_to_metric_families(response.text))


def render(result: CheckResult, source: str, console: Optional[Console] = None):
    console = console or Console()

    if result.up is None:
        console.print(f"\n[bold red]{UP_NAME} missing[/bold red]  [dim]{source}[/dim]")
    elif result.healthy:
        console.print(f"\n[bold green]UP[/bold green]  [dim]{source}[/dim]")
    else:
        console.print(f"\n[bold red]DOWN[/bold red]  [dim]{source}[/dim]")

    if not result.samples:
        console.print("[dim]No squid samples reported.[/dim]\n")
        return

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Metric")
    table.add_column("Labels", style="dim")
    table.add_column("Value", justify="right")

    for s in sorted(result.samples, key=lambda s: s.name):
        labels = ", ".join(f"{k}={v}" for k, v in s.labels.items())
        table.add_row(s.name, labels, f"{s.value:,.6g}")

    console.print(table)
    console.print()
