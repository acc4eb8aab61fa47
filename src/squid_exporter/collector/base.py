"""
Upstream client interface.

An upstream client is anything that can hand back Records for the three
cache manager families. This keeps the collector decoupled from how the
data is actually fetched and parsed (live cache manager, mock, etc).
"""

from abc import ABC, abstractmethod
from typing import List

from squid_exporter.metrics import Record


class UpstreamClient(ABC):
    """Interface for all cache manager sources.

    Each fetch either returns records or raises. Bounding the fetch in time
    is the client's job.
    """

    @abstractmethod
    def get_counters(self) -> List[Record]:
        ...

    @abstractmethod
    def get_service_times(self) -> List[Record]:
        ...

    @abstractmethod
    def get_infos(self) -> List[Record]:
        ...

    @abstractmethod
    def name(self) -> str:
        """Human-readable name for this source."""
        ...

    def close(self):
        pass
