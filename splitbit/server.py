"""The load balancer: accepts TCP connections and relays them to backends."""

from __future__ import annotations

import argparse
import errno
import logging
import selectors
import socket
import threading
from typing import Any

from splitbit.services import (
    BackendSelector,
    HealthCheckError,
    RoundRobinSelector,
    Service,
)
from splitbit.tcp import Listener, listen_tcp

logger = logging.getLogger(__name__)

_BUFFER_SIZE = 32 * 1024

_TRANSIENT_ACCEPT_ERRORS = frozenset(
    {
        errno.EAGAIN,
        errno.EWOULDBLOCK,
        errno.EINTR,
        errno.ECONNABORTED,
        errno.ECONNRESET,
        errno.EMFILE,
        errno.ENFILE,
        errno.ETIMEDOUT,
    }
)


def _endpoint(conn: Any, peer: bool) -> str:
    try:
        address = conn.getpeername() if peer else conn.getsockname()
    except OSError:
        return "?"
    if isinstance(address, tuple):
        return f"{address[0]}:{address[1]}"
    return str(address) or "?"


def _copy(dst: Any, src: Any) -> None:
    """Copy bytes from src to dst until EOF or an error on either side."""
    try:
        while chunk := src.recv(_BUFFER_SIZE):
            dst.sendall(chunk)
    except OSError:
        pass


def _relay(client: Any, remote: socket.socket) -> None:
    upstream = threading.Thread(target=_copy, args=(remote, client), daemon=True)
    upstream.start()
    _copy(client, remote)
    upstream.join()


class LoadBalancer:
    """Relays each accepted connection to a backend chosen by the selector."""

    def __init__(
        self,
        selector: BackendSelector,
        listener: Listener | None = None,
        poll_interval: float = 0.5,
    ) -> None:
        self.selector = selector
        self.listener = listener
        self.poll_interval = poll_interval
        self._stop = threading.Event()

    def handle_connection(self, conn: Any) -> None:
        """Relay one client connection to a healthy backend, then close it."""
        with conn:
            logger.info(
                "Accepting TCP connection from %s with destination of %s",
                _endpoint(conn, peer=True),
                _endpoint(conn, peer=False),
            )
            backend = self.selector.select_service()
            if backend is None:
                logger.warning("No backend selected")
                return

            try:
                backend.health_check()
            except HealthCheckError as exc:
                logger.warning("failed to ping service: %s", exc)
                return

            try:
                remote = socket.create_connection((backend.host, backend.port))
            except OSError as exc:
                logger.warning("failed to connect to backend: %s", exc)
                return

            with remote:
                _relay(conn, remote)

    def serve_forever(self) -> None:
        """Accept connections until stop() is called, one thread per connection."""
        if self.listener is None:
            raise RuntimeError("no listener to serve from")
        with selectors.DefaultSelector() as sel:
            sel.register(self.listener.sock, selectors.EVENT_READ)
            while not self._stop.is_set():
                if not sel.select(self.poll_interval):
                    continue
                try:
                    conn = self.listener.accept()
                except OSError as exc:
                    if exc.errno in _TRANSIENT_ACCEPT_ERRORS:
                        logger.warning("temporary error: %s", exc)
                        continue
                    raise
                logger.info(
                    "Remote: %s → Local: %s",
                    _endpoint(conn, peer=True),
                    _endpoint(conn, peer=False),
                )
                threading.Thread(
                    target=self.handle_connection, args=(conn,), daemon=True
                ).start()

    def stop(self) -> None:
        """Ask serve_forever to return."""
        self._stop.set()


def _parse_backend(text: str) -> Service:
    host, sep, port = text.rpartition(":")
    if not sep or not host:
        raise argparse.ArgumentTypeError(f"expected HOST:PORT, got {text!r}")
    try:
        return Service(host, int(port))
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid port in {text!r}") from None


def main(argv: list[str] | None = None) -> int:
    """Run the balancer until interrupted."""
    parser = argparse.ArgumentParser(prog="splitbit", description="TCP load balancer.")
    parser.add_argument("--listen-host", default="0.0.0.0", help="address to listen on")
    parser.add_argument("--listen-port", type=int, default=8080, help="port to listen on")
    parser.add_argument(
        "--backend",
        action="append",
        type=_parse_backend,
        metavar="HOST:PORT",
        help="backend service; may be repeated (default localhost:8000)",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(message)s")

    services = args.backend or [Service("localhost", 8000)]
    selector = RoundRobinSelector(services)

    try:
        listener = listen_tcp(args.listen_host, args.listen_port)
    except OSError as exc:
        logger.error("failed to listen: %s", exc)
        return 1

    balancer = LoadBalancer(selector, listener)
    with listener:
        try:
            balancer.serve_forever()
        except KeyboardInterrupt:
            logger.info("interrupt signal received, stopping")
        except OSError as exc:
            logger.error("failed to accept tcp conn: %s", exc)
            return 1
    return 0