"""Backend services and the strategies that pick one for a connection."""

from __future__ import annotations

import threading
import urllib.error
import urllib.request
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass

HEALTH_CHECK_TIMEOUT = 3.0


class HealthCheckError(Exception):
    """Raised when a service fails its health check."""


@dataclass
class Service:
    """An application server listening on host:port."""

    host: str
    port: int
    alive: bool = True
    health_check_path: str = "/health"
    connection_count: int = 0
    weight: int = 0

    def health_check(self) -> None:
        """Probe the health endpoint, updating ``alive``; raise on failure."""
        url = f"http://{self.host}:{self.port}{self.health_check_path}"
        try:
            with urllib.request.urlopen(url, timeout=HEALTH_CHECK_TIMEOUT) as resp:
                status = resp.status
        except urllib.error.HTTPError as exc:
            status = exc.code
            exc.close()
        except (urllib.error.URLError, OSError, ValueError) as exc:
            self.alive = False
            raise HealthCheckError(str(exc)) from exc

        if status != 200:
            self.alive = False
            raise HealthCheckError(f"non-200 health check {status}")
        self.alive = True

    def address(self) -> str:
        """Return the address in host:port form."""
        return f"{self.host}:{self.port}"


class BackendSelector(ABC):
    """Picks one of the available services according to some algorithm."""

    @abstractmethod
    def select_service(self) -> Service | None:
        """Return the next service to use, or None if none is available."""


class RoundRobinSelector(BackendSelector):
    """Cycles through the services, skipping those that are down."""

    def __init__(self, services: Iterable[Service]) -> None:
        self.services = list(services)
        self._index = 0
        self._lock = threading.Lock()

    def select_service(self) -> Service | None:
        with self._lock:
            count = len(self.services)
            for _ in range(count):
                service = self.services[self._index % count]
                self._index += 1
                if service.alive:
                    return service
            return None


class WeightedRoundRobinSelector(BackendSelector):
    """Hands each live service ``weight`` consecutive picks before moving on."""

    def __init__(self, services: Iterable[Service]) -> None:
        self.services = list(services)
        self._index = 0
        self._counter = 0
        self._lock = threading.Lock()

    def select_service(self) -> Service | None:
        with self._lock:
            count = len(self.services)
            for _ in range(count * 2):
                service = self.services[self._index % count]
                if service.alive and self._counter < service.weight:
                    self._counter += 1
                    return service
                self._index += 1
                self._counter = 0
            return None