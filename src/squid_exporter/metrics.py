"""
Core types shared by the registry, the collector and the upstream clients.

A Record is what an upstream client hands back for one line of the cache
manager output. A MetricDescriptor is what we publish it as.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Optional, Tuple

from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily, Metric

NAMESPACE = "squid"

LabelPairs = Tuple[Tuple[str, str], ...]


class Family(enum.Enum):
    COUNTERS = "counters"
    SERVICE_TIMES = "service_times"
    INFOS = "info"


class MetricKind(enum.Enum):
    COUNTER = "counter"
    GAUGE = "gauge"


@dataclass(frozen=True)
class Record:
    """A single data point fetched from the cache manager."""

    key: str
    value: float
    var_labels: LabelPairs = ()


@dataclass(frozen=True)
class MetricDescriptor:
    name: str
    help: str
    kind: MetricKind
    const_labels: LabelPairs = field(default=())

    @property
    def label_names(self) -> list:
        return [k for k, _ in self.const_labels]

    def family(self, value: Optional[float] = None) -> Metric:
        """Build a prometheus_client family, with one sample if value is given."""
        cls = CounterMetricFamily if self.kind is MetricKind.COUNTER else GaugeMetricFamily
        metric = cls(self.name, self.help, labels=self.label_names)
        if value is not None:
            metric.add_metric([v for _, v in self.const_labels], value)
        return metric


def fq_name(*parts: str) -> str:
    """Join non-empty name parts with underscores."""
    return "_".join(p for p in parts if p)
