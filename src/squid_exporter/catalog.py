"""
Descriptor registry: the fixed catalogs of metrics we know how to export.

Built once at startup from the configured constant labels and never touched
again, so every scrape thread can read it without locking. Keys are what the
upstream client reports; names are what Prometheus sees.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, Iterator, List, Mapping, Optional, Tuple, Union

from squid_exporter.errors import ConfigurationError
from squid_exporter.metrics import (
    NAMESPACE,
    Family,
    LabelPairs,
    MetricDescriptor,
    MetricKind,
    fq_name,
)

DescriptorMap = Mapping[str, MetricDescriptor]

INFO_SENTINEL_KEY = "squid_info"
INFO_SERVICE_NAME = fq_name(NAMESPACE, "info", "service")
INFO_SERVICE_HELP = "Metrics as string from info on cache_object"

# The availability gauge owns this label
RESERVED_LABELS = frozenset({"host"})

_LABEL_NAME_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")
_UNSAFE_NAME_CHARS = re.compile(r"[^a-zA-Z0-9_]")

COUNTER_SUFFIX = "total"

# (section, counter, help)
SQUID_COUNTERS: List[Tuple[str, str, str]] = [
    ("client_http", "requests", "The total number of client requests"),
    ("client_http", "hits", "The total number of client cache hits"),
    ("client_http", "errors", "The total number of client http errors"),
    ("client_http", "kbytes_in", "The total number of client kbytes received"),
    ("client_http", "kbytes_out", "The total number of client kbytes transferred"),
    ("client_http", "hit_kbytes_out", "The total number of client kbytes cache hit"),

    ("server.http", "requests", "The total number of server http requests"),
    ("server.http", "errors", "The total number of server http errors"),
    ("server.http", "kbytes_in", "The total number of server http kbytes received"),
    ("server.http", "kbytes_out", "The total number of server http kbytes transferred"),

    ("server.all", "requests", "The total number of server all requests"),
    ("server.all", "errors", "The total number of server all errors"),
    ("server.all", "kbytes_in", "The total number of server kbytes received"),
    ("server.all", "kbytes_out", "The total number of server kbytes transferred"),

    ("server.ftp", "requests", "The total number of server ftp requests"),
    ("server.ftp", "errors", "The total number of server ftp errors"),
    ("server.ftp", "kbytes_in", "The total number of server ftp kbytes received"),
    ("server.ftp", "kbytes_out", "The total number of server ftp kbytes transferred"),

    ("server.other", "requests", "The total number of server other requests"),
    ("server.other", "errors", "The total number of server other errors"),
    ("server.other", "kbytes_in", "The total number of server other kbytes received"),
    ("server.other", "kbytes_out", "The total number of server other kbytes transferred"),

    ("swap", "ins", "The number of objects read from disk"),
    ("swap", "outs", "The number of objects saved to disk"),
    ("swap", "files_cleaned", "The number of orphaned cache files removed by the periodic cleanup procedure"),
]

SERVICE_TIME_SECTIONS: List[Tuple[str, str]] = [
    ("HTTP_Requests_All", "HTTP requests"),
    ("Cache_Misses", "cache misses"),
    ("Cache_Hits", "cache hits"),
    ("Near_Hits", "near hits"),
    ("Not-Modified_Replies", "not-modified replies"),
    ("DNS_Lookups", "DNS lookups"),
    ("ICP_Queries", "ICP queries"),
]

SERVICE_TIME_PERCENTILES: List[int] = list(range(5, 101, 5))

# (key, unit suffix, help). Keys are cache manager field names with spaces
# replaced by underscores.
SQUID_INFOS: List[Tuple[str, str, str]] = [
    ("Number_of_clients_accessing_cache", "", "Number of clients accessing cache"),
    ("Number_of_HTTP_requests_received", "", "Number of HTTP requests received"),
    ("Number_of_ICP_messages_received", "", "Number of ICP messages received"),
    ("Number_of_ICP_messages_sent", "", "Number of ICP messages sent"),
    ("Number_of_queued_ICP_replies", "", "Number of queued ICP replies"),
    ("Number_of_HTCP_messages_received", "", "Number of HTCP messages received"),
    ("Number_of_HTCP_messages_sent", "", "Number of HTCP messages sent"),
    ("Request_failure_ratio", "", "Request failure ratio"),
    ("Average_HTTP_requests_per_minute_since_start", "", "Average HTTP requests per minute since start"),
    ("Average_ICP_messages_per_minute_since_start", "", "Average ICP messages per minute since start"),
    ("Select_loop_called", "", "Number of times the select loop was called"),
    ("Hits_as_%_of_all_requests_5min", "percent", "Hits as percent of all requests over 5 minutes"),
    ("Hits_as_%_of_bytes_sent_5min", "percent", "Hits as percent of bytes sent over 5 minutes"),
    ("Memory_hits_as_%_of_hit_requests_5min", "percent", "Memory hits as percent of hit requests over 5 minutes"),
    ("Disk_hits_as_%_of_hit_requests_5min", "percent", "Disk hits as percent of hit requests over 5 minutes"),
    ("Storage_Swap_size", "kilobytes", "Storage swap size"),
    ("Storage_Swap_capacity", "percent", "Storage swap capacity used"),
    ("Storage_Mem_size", "kilobytes", "Storage memory size"),
    ("Storage_Mem_capacity", "percent", "Storage memory capacity used"),
    ("Mean_Object_Size", "kilobytes", "Mean object size"),
    ("UP_Time", "seconds", "Time the service has been up"),
    ("CPU_Time", "seconds", "CPU time used"),
    ("CPU_Usage", "percent", "CPU usage"),
    ("CPU_Usage_5_minute_avg", "percent", "CPU usage averaged over 5 minutes"),
    ("CPU_Usage_60_minute_avg", "percent", "CPU usage averaged over 60 minutes"),
    ("Maximum_Resident_Size", "kilobytes", "Maximum resident size"),
    ("Page_faults_with_physical_i_o", "", "Page faults with physical i/o"),
    ("Total_accounted", "kilobytes", "Total memory accounted"),
    ("memPoolAlloc_calls", "", "Number of memPoolAlloc calls"),
    ("memPoolFree_calls", "", "Number of memPoolFree calls"),
    ("Maximum_number_of_file_descriptors", "", "Maximum number of file descriptors"),
    ("Largest_file_desc_currently_in_use", "", "Largest file descriptor currently in use"),
    ("Number_of_file_desc_currently_in_use", "", "Number of file descriptors currently in use"),
    ("Files_queued_for_open", "", "Files queued for open"),
    ("Available_number_of_file_descriptors", "", "Available number of file descriptors"),
    ("Reserved_number_of_file_descriptors", "", "Reserved number of file descriptors"),
    ("Store_Disk_files_open", "", "Store disk files open"),
    ("StoreEntries", "", "Number of store entries"),
    ("StoreEntries_with_MemObjects", "", "Number of store entries with MemObjects"),
    ("Hot_Object_Cache_Items", "", "Number of hot object cache items"),
    ("on-disk_objects", "", "Number of on-disk objects"),
]


def _metric_part(raw: str) -> str:
    part = raw.replace("%", "pct")
    part = _UNSAFE_NAME_CHARS.sub("_", part).lower()
    return re.sub(r"_+", "_", part).strip("_")


def validate_labels(labels: Mapping[str, str]) -> LabelPairs:
    """Check constant label names and freeze them into ordered pairs."""
    pairs = []
    for name, value in labels.items():
        if not _LABEL_NAME_RE.match(name) or name.startswith("__"):
            raise ConfigurationError(f"invalid label name: {name!r}")
        if name in RESERVED_LABELS:
            raise ConfigurationError(f"label name {name!r} is reserved")
        pairs.append((name, str(value)))
    return tuple(pairs)


def is_valid_label_name(name: str) -> bool:
    return bool(_LABEL_NAME_RE.match(name)) and not name.startswith("__")


def _freeze(entries: Iterable[Tuple[str, MetricDescriptor]]) -> DescriptorMap:
    built = {}
    for key, desc in entries:
        if key in built:
            raise ConfigurationError(f"duplicate catalog key: {key}")
        built[key] = desc
    return MappingProxyType(built)


def build_counter_descriptors(labels: LabelPairs) -> DescriptorMap:
    return _freeze(
        (
            f"{section}.{counter}",
            MetricDescriptor(
                name=fq_name(NAMESPACE, section.replace(".", "_"), f"{counter}_{COUNTER_SUFFIX}"),
                help=help_text,
                kind=MetricKind.COUNTER,
                const_labels=labels,
            ),
        )
        for section, counter, help_text in SQUID_COUNTERS
    )


def build_service_time_descriptors(labels: LabelPairs) -> DescriptorMap:
    return _freeze(
        (
            f"{section}_{percentile}",
            MetricDescriptor(
                name=fq_name(NAMESPACE, _metric_part(section), str(percentile)),
                help=f"Service time {percentile}th percentile of {what} over 5 minutes, in seconds",
                kind=MetricKind.GAUGE,
                const_labels=labels,
            ),
        )
        for section, what in SERVICE_TIME_SECTIONS
        for percentile in SERVICE_TIME_PERCENTILES
    )


def build_info_descriptors(labels: LabelPairs) -> DescriptorMap:
    return _freeze(
        (
            key,
            MetricDescriptor(
                name=fq_name(NAMESPACE, _metric_part(key), unit),
                help=help_text,
                kind=MetricKind.GAUGE,
                const_labels=labels,
            ),
        )
        for key, unit, help_text in SQUID_INFOS
    )


@dataclass(frozen=True)
class Known:
    descriptor: MetricDescriptor


@dataclass(frozen=True)
class Unknown:
    pass


@dataclass(frozen=True)
class DynamicInfo:
    labels: LabelPairs

    @property
    def descriptor(self) -> MetricDescriptor:
        return MetricDescriptor(
            name=INFO_SERVICE_NAME,
            help=INFO_SERVICE_HELP,
            kind=MetricKind.GAUGE,
            const_labels=self.labels,
        )


Lookup = Union[Known, Unknown, DynamicInfo]

_UNKNOWN = Unknown()


@dataclass(frozen=True)
class DescriptorRegistry:
    """The three catalogs, built once. service_times is None when disabled."""

    counters: DescriptorMap
    service_times: Optional[DescriptorMap]
    infos: DescriptorMap

    @classmethod
    def build(cls, labels: Mapping[str, str], extract_service_times: bool = True) -> "DescriptorRegistry":
        pairs = validate_labels(labels)
        registry = cls(
            counters=build_counter_descriptors(pairs),
            service_times=build_service_time_descriptors(pairs) if extract_service_times else None,
            infos=build_info_descriptors(pairs),
        )
        registry._check_unique_names()
        return registry

    def _check_unique_names(self):
        seen = {INFO_SERVICE_NAME}
        for desc in self.descriptors():
            if desc.name in seen:
                raise ConfigurationError(f"duplicate metric name: {desc.name}")
            seen.add(desc.name)

    def descriptors(self) -> Iterator[MetricDescriptor]:
        """Counters, then service times if enabled, then infos."""
        yield from self.counters.values()
        if self.service_times is not None:
            yield from self.service_times.values()
        yield from self.infos.values()

    def lookup(self, family: Family, key: str, var_labels: LabelPairs = ()) -> Lookup:
        # squid_info always goes through synthesis, catalog or not
        if family is Family.INFOS and key == INFO_SENTINEL_KEY:
            return DynamicInfo(tuple(var_labels))

        if family is Family.COUNTERS:
            table = self.counters
        elif family is Family.SERVICE_TIMES:
            table = self.service_times
        else:
            table = self.infos

        if table is None:
            return _UNKNOWN
        desc = table.get(key)
        return Known(desc) if desc is not None else _UNKNOWN
