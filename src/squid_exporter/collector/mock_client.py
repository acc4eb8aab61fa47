"""
Upstream client that reads from the mock cache manager.
Used for local development on machines without a Squid.
"""

from typing import Iterable, List

from squid_exporter.collector.base import UpstreamClient
from squid_exporter.errors import FetchError
from squid_exporter.metrics import Family, Record
from squid_exporter.mock.generator import MockSquidManager


class MockUpstreamClient(UpstreamClient):
    """Wraps the mock generator as a standard client.

    Families listed in `failing` raise FetchError instead of returning data.
    """

    def __init__(self, seed: int = 42, failing: Iterable[Family] = ()):
        self._manager = MockSquidManager(seed=seed)
        self._failing = frozenset(failing)

    def _check(self, family: Family):
        if family in self._failing:
            raise FetchError(family.value, "simulated outage")

    def get_counters(self) -> List[Record]:
        self._check(Family.COUNTERS)
        return self._manager.counters()

    def get_service_times(self) -> List[Record]:
        self._check(Family.SERVICE_TIMES)
        return self._manager.service_times()

    def get_infos(self) -> List[Record]:
        self._check(Family.INFOS)
        return self._manager.infos()

    def name(self) -> str:
        return f"Mock Squid {self._manager.version}"
