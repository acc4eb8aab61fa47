"""
Prometheus collector for a Squid cache manager.

Every scrape fetches the three families from the upstream client in order
(counters, service times, infos), maps each record through the descriptor
registry and yields one metric family per matched record. A family that
fails to fetch is logged and skipped; only the counters fetch decides
squid_up.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, Iterator, List, Optional

from prometheus_client.core import GaugeMetricFamily, Metric
from prometheus_client.registry import Collector

from squid_exporter.catalog import (
    INFO_SERVICE_HELP,
    INFO_SERVICE_NAME,
    DescriptorRegistry,
    DynamicInfo,
    Known,
    is_valid_label_name,
)
from squid_exporter.collector.base import UpstreamClient
from squid_exporter.config import CollectorConfig
from squid_exporter.metrics import NAMESPACE, Family, Record, fq_name

log = logging.getLogger(__name__)

UP_NAME = fq_name(NAMESPACE, "up")
UP_HELP = "Was the last query of squid successful?"


class SquidCollector(Collector):

    def __init__(self, client: UpstreamClient, registry: DescriptorRegistry, hostname: str):
        self._client = client
        self._registry = registry
        self._hostname = hostname
        self._lock = threading.Lock()
        self._up: Dict[str, float] = {}

    @property
    def registry(self) -> DescriptorRegistry:
        return self._registry

    def availability(self, host: Optional[str] = None) -> Optional[float]:
        """Last recorded squid_up value for a host, None before the first scrape."""
        with self._lock:
            return self._up.get(host or self._hostname)

    def describe(self) -> Iterator[Metric]:
        yield GaugeMetricFamily(UP_NAME, UP_HELP, labels=["host"])
        for desc in self._registry.descriptors():
            yield desc.family()
        # Labels depend on the record, so only the name is registered
        yield GaugeMetricFamily(INFO_SERVICE_NAME, INFO_SERVICE_HELP)

    def collect(self) -> Iterator[Metric]:
        records = self._fetch(Family.COUNTERS, self._client.get_counters)
        up = 0.0 if records is None else 1.0
        with self._lock:
            self._up[self._hostname] = up
        for record in records or ():
            yield from self._emit(Family.COUNTERS, record)

        # service_times is None when extraction is disabled
        if self._registry.service_times is not None:
            for record in self._fetch(Family.SERVICE_TIMES, self._client.get_service_times) or ():
                yield from self._emit(Family.SERVICE_TIMES, record)

        for record in self._fetch(Family.INFOS, self._client.get_infos) or ():
            yield from self._emit(Family.INFOS, record)

        up_metric = GaugeMetricFamily(UP_NAME, UP_HELP, labels=["host"])
        up_metric.add_metric([self._hostname], up)
        yield up_metric

    def _fetch(self, family: Family, fetch: Callable[[], List[Record]]) -> Optional[List[Record]]:
        try:
            return fetch()
        except Exception as e:
            log.warning("Could not fetch %s metrics from squid instance: %s", _FAMILY_LABELS[family], e)
            return None

    def _emit(self, family: Family, record: Record) -> Iterator[Metric]:
        found = self._registry.lookup(family, record.key, record.var_labels)

        if isinstance(found, Known):
            yield found.descriptor.family(record.value)
        elif isinstance(found, DynamicInfo):
            bad = [k for k, _ in found.labels if not is_valid_label_name(k)]
            if bad:
                log.warning("Dropping %s record with invalid label names: %s", record.key, ", ".join(bad))
                return
            yield found.descriptor.family(record.value)
        else:
            log.debug("No descriptor for %s key %r, dropping", family.value, record.key)


def new_collector(config: CollectorConfig, client: UpstreamClient) -> SquidCollector:
    """Build the descriptor registry from config and wrap the client.

    Raises ConfigurationError for bad constant labels.
    """
    registry = DescriptorRegistry.build(config.labels, config.extract_service_times)
    return SquidCollector(client, registry, config.hostname)


_FAMILY_LABELS = {
    Family.COUNTERS: "counter",
    Family.SERVICE_TIMES: "service times",
    Family.INFOS: "info",
}
