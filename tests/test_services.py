import socket
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest

from splitbit.services import (
    BackendSelector,
    HealthCheckError,
    RoundRobinSelector,
    Service,
    WeightedRoundRobinSelector,
)


class _Handler(BaseHTTPRequestHandler):
    def do_GET(self):
        code = 200 if self.path == "/health" else 500
        self.send_response(code)
        self.send_header("Content-Length", "0")
        self.end_headers()

    def log_message(self, *args):
        pass


@pytest.fixture
def health_server():
    server = ThreadingHTTPServer(("127.0.0.1", 0), _Handler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server.server_address[1]
    server.shutdown()
    server.server_close()


def _free_port():
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def test_new_service_defaults():
    svc = Service("localhost", 8000)
    assert svc.alive is True
    assert svc.health_check_path == "/health"
    assert svc.weight == 0
    assert svc.connection_count == 0


def test_address():
    assert Service("localhost", 8000).address() == "localhost:8000"


def test_health_check_success_marks_alive(health_server):
    svc = Service("127.0.0.1", health_server, alive=False)
    svc.health_check()
    assert svc.alive is True


def test_health_check_non_200(health_server):
    svc = Service("127.0.0.1", health_server, health_check_path="/broken")
    with pytest.raises(HealthCheckError, match="non-200 health check 500"):
        svc.health_check()
    assert svc.alive is False


def test_health_check_unreachable():
    svc = Service("127.0.0.1", _free_port())
    with pytest.raises(HealthCheckError):
        svc.health_check()
    assert svc.alive is False


def test_selector_is_abstract():
    with pytest.raises(TypeError):
        BackendSelector()


def test_round_robin_cycles_in_order():
    a, b, c = Service("a", 1), Service("b", 2), Service("c", 3)
    selector = RoundRobinSelector([a, b, c])
    picks = [selector.select_service() for _ in range(6)]
    assert picks == [a, b, c, a, b, c]


def test_round_robin_skips_dead():
    a, b, c = Service("a", 1), Service("b", 2, alive=False), Service("c", 3)
    selector = RoundRobinSelector([a, b, c])
    picks = [selector.select_service() for _ in range(4)]
    assert picks == [a, c, a, c]


def test_round_robin_all_dead_returns_none():
    selector = RoundRobinSelector([Service("a", 1, alive=False), Service("b", 2, alive=False)])
    assert selector.select_service() is None


def test_round_robin_empty_returns_none():
    assert RoundRobinSelector([]).select_service() is None


def test_round_robin_notices_recovered_service():
    a, b = Service("a", 1), Service("b", 2, alive=False)
    selector = RoundRobinSelector([a, b])
    assert selector.select_service() is a
    b.alive = True
    assert selector.select_service() is b


def test_round_robin_is_even_under_threads():
    services = [Service(name, i) for i, name in enumerate("abcd")]
    selector = RoundRobinSelector(services)
    results = []
    lock = threading.Lock()

    def worker():
        picks = [selector.select_service() for _ in range(100)]
        with lock:
            results.extend(picks)

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert {s.host: results.count(s) for s in services} == {h: 100 for h in "abcd"}


def test_weighted_follows_weights():
    a, b = Service("a", 1, weight=2), Service("b", 2, weight=1)
    selector = WeightedRoundRobinSelector([a, b])
    picks = [selector.select_service() for _ in range(6)]
    assert picks == [a, a, b, a, a, b]


def test_weighted_skips_dead():
    a, b = Service("a", 1, weight=2, alive=False), Service("b", 2, weight=1)
    selector = WeightedRoundRobinSelector([a, b])
    picks = [selector.select_service() for _ in range(3)]
    assert picks == [b, b, b]


def test_weighted_zero_weight_never_selected():
    selector = WeightedRoundRobinSelector([Service("a", 1), Service("b", 2)])
    assert selector.select_service() is None


def test_weighted_empty_returns_none():
    assert WeightedRoundRobinSelector([]).select_service() is None