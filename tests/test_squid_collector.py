"""
Tests for the Squid collector.

Uses a stub upstream client so each test controls exactly which records
come back and which families fail.
"""

import logging
import threading
from types import MappingProxyType
from typing import List

import pytest
from prometheus_client import CollectorRegistry, Gauge, generate_latest

from squid_exporter.catalog import DescriptorRegistry
from squid_exporter.collector.base import UpstreamClient
from squid_exporter.collector.squid_collector import SquidCollector, new_collector
from squid_exporter.config import CollectorConfig
from squid_exporter.errors import FetchError
from squid_exporter.metrics import MetricDescriptor, MetricKind, Record


class StubClient(UpstreamClient):

    def __init__(self, counters=(), service_times=(), infos=(), failing=()):
        self.counters = list(counters)
        self.service_times = list(service_times)
        self.infos = list(infos)
        self.failing = set(failing)
        self.calls: List[str] = []

    def _fetch(self, family, records):
        self.calls.append(family)
        if family in self.failing:
            raise FetchError(family, "connection refused")
        return list(records)

    def get_counters(self):
        return self._fetch("counters", self.counters)

    def get_service_times(self):
        return self._fetch("service_times", self.service_times)

    def get_infos(self):
        return self._fetch("info", self.infos)

    def name(self):
        return "stub"


def _collector(client, labels=None, service_times=True) -> SquidCollector:
    registry = DescriptorRegistry.build(labels or {}, extract_service_times=service_times)
    return SquidCollector(client, registry, "localhost")


def _samples(collector):
    """All samples from one collect() as (name, labels, value)."""
    return [
        (s.name, dict(s.labels), s.value)
        for family in collector.collect()
        for s in family.samples
    ]


def _up(samples):
    return [value for name, labels, value in samples if name == "squid_up"]


def test_known_counter_emitted_with_value():
    client = StubClient(counters=[Record("client_http.requests", 1024)])
    samples = _samples(_collector(client))

    assert ("squid_client_http_requests_total", {}, 1024) in samples
    assert ("squid_up", {"host": "localhost"}, 1.0) in samples


def test_end_to_end_counter_and_up_only():
    client = StubClient(counters=[Record("client_http.requests", 1024)])
    samples = _samples(_collector(client))

    assert samples == [
        ("squid_client_http_requests_total", {}, 1024),
        ("squid_up", {"host": "localhost"}, 1.0),
    ]


def test_counter_families_are_counters():
    client = StubClient(counters=[Record("swap.ins", 5)])
    families = list(_collector(client).collect())
    assert families[0].type == "counter"


def test_one_sample_per_known_record():
    client = StubClient(counters=[
        Record("client_http.requests", 10),
        Record("client_http.hits", 4),
        Record("swap.outs", 2),
    ])
    names = [name for name, _, _ in _samples(_collector(client))]

    assert names.count("squid_client_http_requests_total") == 1
    assert names.count("squid_client_http_hits_total") == 1
    assert names.count("squid_swap_outs_total") == 1


def test_unknown_keys_dropped_in_every_family():
    client = StubClient(
        counters=[Record("client_http.brand_new", 1)],
        service_times=[Record("Carrier_Pigeons_50", 2)],
        infos=[Record("Something_new", 3)],
    )
    samples = _samples(_collector(client))
    assert [name for name, _, _ in samples] == ["squid_up"]


def test_const_labels_on_samples():
    client = StubClient(counters=[Record("client_http.requests", 7)])
    samples = _samples(_collector(client, labels={"env": "prod"}))

    assert ("squid_client_http_requests_total", {"env": "prod"}, 7) in samples
    # up only carries host
    assert ("squid_up", {"host": "localhost"}, 1.0) in samples


def test_counter_failure_sets_up_zero():
    client = StubClient(
        counters=[Record("client_http.requests", 1)],
        infos=[Record("UP_Time", 30)],
        failing={"counters"},
    )
    collector = _collector(client)
    samples = _samples(collector)

    assert _up(samples) == [0.0]
    assert collector.availability() == 0.0
    names = [name for name, _, _ in samples]
    assert "squid_client_http_requests_total" not in names
    # Other families still served
    assert "squid_up_time_seconds" in names


def test_non_fetch_errors_also_isolated():
    class BrokenClient(StubClient):
        def get_counters(self):
            raise ConnectionResetError("peer went away")

    samples = _samples(_collector(BrokenClient()))
    assert _up(samples) == [0.0]


def test_service_time_failure_keeps_up():
    client = StubClient(counters=[Record("swap.ins", 1)], failing={"service_times"})
    samples = _samples(_collector(client))
    assert _up(samples) == [1.0]


def test_info_failure_keeps_up():
    client = StubClient(counters=[Record("swap.ins", 1)], failing={"info"})
    samples = _samples(_collector(client))
    assert _up(samples) == [1.0]


def test_fetch_failures_logged(caplog):
    client = StubClient(failing={"counters", "service_times", "info"})
    with caplog.at_level(logging.WARNING):
        _samples(_collector(client))

    messages = caplog.text
    assert "Could not fetch counter metrics" in messages
    assert "Could not fetch service times metrics" in messages
    assert "Could not fetch info metrics" in messages


def test_service_times_are_gauges():
    client = StubClient(service_times=[Record("HTTP_Requests_All_50", 0.042)])
    families = [f for f in _collector(client).collect() if f.name == "squid_http_requests_all_50"]

    assert len(families) == 1
    assert families[0].type == "gauge"
    assert families[0].samples[0].value == 0.042


def test_service_times_not_fetched_when_disabled():
    client = StubClient(service_times=[Record("HTTP_Requests_All_50", 0.042)])
    collector = _collector(client, service_times=False)
    samples = _samples(collector)

    assert "service_times" not in client.calls
    assert "squid_http_requests_all_50" not in [name for name, _, _ in samples]


def test_fetch_order():
    client = StubClient()
    list(_collector(client).collect())
    assert client.calls == ["counters", "service_times", "info"]


def test_up_emitted_last():
    client = StubClient(
        counters=[Record("swap.ins", 1)],
        infos=[Record("UP_Time", 1)],
    )
    families = list(_collector(client).collect())
    assert families[-1].name == "squid_up"


def test_squid_info_synthesized():
    client = StubClient(infos=[Record("squid_info", 1, (("version", "5.7"),))])
    samples = _samples(_collector(client))

    info = [s for s in samples if s[0] == "squid_info_service"]
    assert info == [("squid_info_service", {"version": "5.7"}, 1)]


def test_squid_info_ignores_const_labels():
    client = StubClient(infos=[Record("squid_info", 1, (("version", "5.7"),))])
    samples = _samples(_collector(client, labels={"env": "prod"}))

    info = [labels for name, labels, _ in samples if name == "squid_info_service"]
    assert info == [{"version": "5.7"}]


def test_squid_info_with_bad_label_name_dropped():
    client = StubClient(infos=[Record("squid_info", 1, (("service name", "squid"),))])
    samples = _samples(_collector(client))
    assert "squid_info_service" not in [name for name, _, _ in samples]


def test_known_info_is_gauge():
    client = StubClient(infos=[Record("Number_of_clients_accessing_cache", 212)])
    samples = _samples(_collector(client))
    assert ("squid_number_of_clients_accessing_cache", {}, 212) in samples


def test_collect_is_idempotent():
    client = StubClient(
        counters=[Record("client_http.requests", 1024)],
        infos=[Record("UP_Time", 60)],
    )
    collector = _collector(client)

    first = _samples(collector)
    second = _samples(collector)

    assert first == second
    assert _up(second) == [1.0]


def test_up_recovers_after_outage():
    client = StubClient(failing={"counters"})
    collector = _collector(client)

    assert _up(_samples(collector)) == [0.0]
    client.failing.clear()
    assert _up(_samples(collector)) == [1.0]
    assert collector.availability("localhost") == 1.0


def test_availability_none_before_first_scrape():
    assert _collector(StubClient()).availability() is None


def test_describe_lists_every_descriptor_once():
    collector = _collector(StubClient())
    described = list(collector.describe())
    registry = collector.registry

    # up, every catalog entry, then the synthesized info gauge
    expected = 1 + len(registry.counters) + len(registry.service_times) + len(registry.infos) + 1
    assert len(described) == expected
    assert described[0].name == "squid_up"
    assert described[-1].name == "squid_info_service"
    assert all(not family.samples for family in described)


def test_describe_skips_service_times_when_disabled():
    collector = _collector(StubClient(), service_times=False)
    names = {family.name for family in collector.describe()}

    assert "squid_http_requests_all_50" not in names
    assert "squid_client_http_requests" in names


def test_register_does_not_fetch():
    client = StubClient()
    CollectorRegistry().register(_collector(client))
    assert client.calls == []


def test_exposition_through_registry():
    client = StubClient(counters=[Record("client_http.requests", 1024)])
    registry = CollectorRegistry()
    registry.register(_collector(client, labels={"env": "prod"}))

    text = generate_latest(registry).decode()
    assert 'squid_client_http_requests_total{env="prod"} 1024.0' in text
    assert 'squid_up{host="localhost"} 1.0' in text


def test_concurrent_collects():
    client = StubClient(counters=[Record("client_http.requests", 1)])
    collector = _collector(client)
    errors = []

    def scrape():
        try:
            for _ in range(20):
                list(collector.collect())
        except Exception as e:  # pragma: no cover
            errors.append(e)

    threads = [threading.Thread(target=scrape) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert collector.availability() == 1.0


def test_new_collector_uses_config():
    config = CollectorConfig(hostname="proxy1", labels={"env": "prod"}, extract_service_times=False)
    collector = new_collector(config, StubClient(counters=[Record("swap.ins", 3)]))

    assert collector.registry.service_times is None
    samples = _samples(collector)
    assert ("squid_swap_ins_total", {"env": "prod"}, 3) in samples
    assert ("squid_up", {"host": "proxy1"}, 1.0) in samples


def test_squid_info_synthesized_even_when_cataloged():
    base = DescriptorRegistry.build({})
    infos = dict(base.infos)
    infos["squid_info"] = MetricDescriptor("squid_info_static", "static", MetricKind.GAUGE)
    registry = DescriptorRegistry(base.counters, None, MappingProxyType(infos))

    client = StubClient(infos=[Record("squid_info", 1, (("version", "5.7"),))])
    samples = _samples(SquidCollector(client, registry, "localhost"))
    names = [name for name, _, _ in samples]

    assert [s for s in samples if s[0] == "squid_info_service"] == [
        ("squid_info_service", {"version": "5.7"}, 1)
    ]
    assert "squid_info_static" not in names


def test_info_service_name_registered_on_describe():
    registry = CollectorRegistry()
    registry.register(_collector(StubClient()))

    with pytest.raises(ValueError, match="Duplicated timeseries"):
        Gauge("squid_info_service", "clashes with the synthesized info gauge", registry=registry)
