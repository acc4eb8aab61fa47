"""
Mock Squid cache manager.

Produces fake but plausible records so we can develop and test without a
running Squid. Numbers are loosely based on a small forward proxy with a
few hundred clients and a hit ratio around 30%.
"""

import math
import random
from datetime import datetime, timezone
from typing import List

from squid_exporter.catalog import (
    INFO_SENTINEL_KEY,
    SERVICE_TIME_PERCENTILES,
    SERVICE_TIME_SECTIONS,
)
from squid_exporter.metrics import Record


class MockSquidManager:

    def __init__(self, seed: int = 42, version: str = "6.10"):
        self._rng = random.Random(seed)
        self._tick = 0
        self._started = datetime.now(timezone.utc)
        self.version = version
        self._totals = {
            "client_http.requests": 0.0,
            "client_http.hits": 0.0,
            "client_http.errors": 0.0,
            "client_http.kbytes_in": 0.0,
            "client_http.kbytes_out": 0.0,
            "client_http.hit_kbytes_out": 0.0,
            "server.all.requests": 0.0,
            "server.all.errors": 0.0,
            "server.all.kbytes_in": 0.0,
            "server.all.kbytes_out": 0.0,
            "server.http.requests": 0.0,
            "server.http.errors": 0.0,
            "server.http.kbytes_in": 0.0,
            "server.http.kbytes_out": 0.0,
            "server.ftp.requests": 0.0,
            "server.ftp.errors": 0.0,
            "server.ftp.kbytes_in": 0.0,
            "server.ftp.kbytes_out": 0.0,
            "server.other.requests": 0.0,
            "server.other.errors": 0.0,
            "server.other.kbytes_in": 0.0,
            "server.other.kbytes_out": 0.0,
            "swap.ins": 0.0,
            "swap.outs": 0.0,
            "swap.files_cleaned": 0.0,
        }

    def counters(self) -> List[Record]:
        """One counters reading, advancing the simulation clock."""
        self._tick += 1
        t = self._tick

        # Sinusoidal base load with occasional bursts
        requests = max(1, int(120 + 80 * math.sin(t * 0.05) + self._rng.gauss(0, 10)))
        if self._rng.random() > 0.9:
            requests += int(self._rng.random() * 200)

        hits = int(requests * self._rng.uniform(0.25, 0.35))
        misses = requests - hits
        errors = int(requests * self._rng.uniform(0.0, 0.02))
        kb_out = requests * self._rng.uniform(20, 40)
        hit_kb_out = kb_out * hits / requests

        totals = self._totals
        totals["client_http.requests"] += requests
        totals["client_http.hits"] += hits
        totals["client_http.errors"] += errors
        totals["client_http.kbytes_in"] += requests * 0.8
        totals["client_http.kbytes_out"] += kb_out
        totals["client_http.hit_kbytes_out"] += hit_kb_out
        # Most upstream traffic is HTTP, a trickle is FTP and other protocols
        ftp = misses // 50
        other = misses // 100
        http = misses - ftp - other
        miss_kb = kb_out - hit_kb_out

        totals["server.all.requests"] += misses
        totals["server.all.errors"] += errors
        totals["server.all.kbytes_in"] += miss_kb
        totals["server.all.kbytes_out"] += misses * 0.8
        totals["server.http.requests"] += http
        totals["server.http.errors"] += errors
        totals["server.http.kbytes_in"] += miss_kb * http / misses
        totals["server.http.kbytes_out"] += http * 0.8
        totals["server.ftp.requests"] += ftp
        totals["server.ftp.kbytes_in"] += miss_kb * ftp / misses
        totals["server.ftp.kbytes_out"] += ftp * 0.8
        totals["server.other.requests"] += other
        totals["server.other.kbytes_in"] += miss_kb * other / misses
        totals["server.other.kbytes_out"] += other * 0.8
        totals["swap.ins"] += hits // 2
        totals["swap.outs"] += misses // 3
        totals["swap.files_cleaned"] += self._rng.randint(0, 2)

        records = [Record(key, round(value, 3)) for key, value in totals.items()]
        # Newer Squid releases report counters we don't know about yet
        records.append(Record("client_http.requests_per_second", float(requests)))
        return records

    def service_times(self) -> List[Record]:
        records = []
        for section, _ in SERVICE_TIME_SECTIONS:
            median = self._rng.uniform(0.005, 0.08)
            for percentile in SERVICE_TIME_PERCENTILES:
                # Right-skewed: tail grows faster than the median
                value = median * (percentile / 50.0) ** 1.5
                records.append(Record(f"{section}_{percentile}", round(value, 5)))
        return records

    def infos(self) -> List[Record]:
        uptime = (datetime.now(timezone.utc) - self._started).total_seconds()
        requests = self._totals["client_http.requests"]
        hits = self._totals["client_http.hits"]

        return [
            Record(
                INFO_SENTINEL_KEY,
                1.0,
                (
                    ("version", self.version),
                    ("service_name", "squid"),
                    ("start_time", self._started.strftime("%a, %d %b %Y %H:%M:%S GMT")),
                ),
            ),
            Record("Number_of_clients_accessing_cache", float(200 + self._rng.randint(0, 50))),
            Record("Number_of_HTTP_requests_received", requests),
            Record("Request_failure_ratio", round(self._rng.uniform(0.0, 0.05), 2)),
            Record("Hits_as_%_of_all_requests_5min", round(100.0 * hits / max(1.0, requests), 1)),
            Record("Storage_Swap_size", 1048576.0),
            Record("Storage_Swap_capacity", round(self._rng.uniform(40, 60), 1)),
            Record("Storage_Mem_size", 262144.0),
            Record("Storage_Mem_capacity", round(self._rng.uniform(80, 100), 1)),
            Record("UP_Time", round(uptime, 3)),
            Record("CPU_Usage", round(self._rng.uniform(1, 15), 2)),
            Record("Maximum_number_of_file_descriptors", 65536.0),
            Record("Number_of_file_desc_currently_in_use", float(100 + self._rng.randint(0, 400))),
            Record("StoreEntries", float(50000 + self._tick * 10)),
        ]
