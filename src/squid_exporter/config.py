"""Collector configuration and the helpers the CLI uses to build it."""

from __future__ import annotations

import importlib
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, Optional, Tuple

from squid_exporter.errors import ConfigurationError

DEFAULT_SQUID_HOSTNAME = "localhost"
DEFAULT_SQUID_PORT = 3128
DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_LISTEN = ":9301"
DEFAULT_METRICS_PATH = "/metrics"


@dataclass
class CollectorConfig:
    hostname: str = DEFAULT_SQUID_HOSTNAME
    port: int = DEFAULT_SQUID_PORT
    login: Optional[str] = None
    password: Optional[str] = None
    proxy_header: Optional[str] = None
    labels: Dict[str, str] = field(default_factory=dict)
    extract_service_times: bool = True
    timeout: float = DEFAULT_TIMEOUT_SECONDS

    def __post_init__(self):
        if bool(self.login) != bool(self.password):
            raise ConfigurationError("login and password must be given together")
        if not 0 < self.port < 65536:
            raise ConfigurationError(f"invalid squid port: {self.port}")

    @property
    def manager_url(self) -> str:
        return f"http://{self.hostname}:{self.port}/squid-internal-mgr/"

    @property
    def auth(self) -> Optional[Tuple[str, str]]:
        if self.login:
            return (self.login, self.password)
        return None


def parse_label_args(values: Iterable[str]) -> Dict[str, str]:
    """Turn repeated key=value flags into an ordered dict."""
    labels: Dict[str, str] = {}
    for raw in values:
        key, sep, value = raw.partition("=")
        key = key.strip()
        if not sep or not key:
            raise ConfigurationError(f"label must look like key=value, got {raw!r}")
        if key in labels:
            raise ConfigurationError(f"label {key!r} given more than once")
        labels[key] = value.strip()
    return labels


def parse_listen(listen: str) -> Tuple[str, int]:
    """Split host:port. An empty host means all interfaces."""
    host, sep, port = listen.rpartition(":")
    if not sep:
        raise ConfigurationError(f"listen address must be host:port, got {listen!r}")
    try:
        port_num = int(port)
    except ValueError:
        raise ConfigurationError(f"invalid listen port: {port!r}") from None
    return host.strip("[]") or "0.0.0.0", port_num


def load_client_factory(path: str) -> Callable:
    """Import a client factory from a 'module:attr' path."""
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ConfigurationError(f"client must look like module:attr, got {path!r}")

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(f"cannot import client module {module_name!r}: {e}") from e

    factory = getattr(module, attr, None)
    if factory is None or not callable(factory):
        raise ConfigurationError(f"{path!r} is not a callable client factory")
    return factory
