"""TCP listening and transparent dialing of a connection's original destination."""

from __future__ import annotations

import errno
import ipaddress
import os
import socket
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Union

# Linux values, used where the socket module does not expose the names.
_SOL_IP = getattr(socket, "SOL_IP", socket.IPPROTO_IP)
_IP_TRANSPARENT = getattr(socket, "IP_TRANSPARENT", 19)

_MAX_ZONE_ID = 0xFFFFFFFF

Address = Union[tuple, str, None]


def _parse_ip(host: str) -> ipaddress.IPv4Address | ipaddress.IPv6Address:
    """Parse an IP literal; IPv4-mapped IPv6 addresses count as IPv4."""
    ip = ipaddress.ip_address(host.partition("%")[0])
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        return ip.ipv4_mapped
    return ip


def _host_of(addr: Address) -> str | None:
    if addr is None:
        return None
    if isinstance(addr, tuple):
        return str(addr[0])
    return addr


def _is_ipv4(addr: Address) -> bool:
    host = _host_of(addr)
    if host is None:
        return True
    try:
        return _parse_ip(host).version == 4
    except ValueError:
        return False


def to_socket_address(host: str, port: int, zone: str = "") -> tuple:
    """Turn an IP and port into a socket address tuple for bind or connect.

    IPv6 addresses need a numeric zone; anything else raises ValueError.
    """
    ip = _parse_ip(host)
    if ip.version == 4:
        return (str(ip), port)
    if not (zone.isascii() and zone.isdigit()) or int(zone) > _MAX_ZONE_ID:
        raise ValueError(f"invalid zone {zone!r}")
    return (str(ip), port, 0, int(zone))


def address_family(network: str, local_addr: Address, remote_addr: Address) -> int:
    """Work out the address family from the network name and the addresses."""
    suffix = network[-1:]
    if suffix == "4":
        return socket.AF_INET
    if suffix == "6":
        return socket.AF_INET6
    if _is_ipv4(local_addr) and _is_ipv4(remote_addr):
        return socket.AF_INET
    return socket.AF_INET6


def _wrap_error(what: str, exc: OSError) -> OSError:
    message = f"dial: {what}: {exc.strerror or exc}"
    if exc.errno is None:
        return OSError(message)
    return OSError(exc.errno, message)


@contextmanager
def _dial_step(sock: socket.socket | None, what: str) -> Iterator[None]:
    try:
        yield
    except OSError as exc:
        if sock is not None:
            sock.close()
        raise _wrap_error(what, exc) from exc


class SplitbitConnection:
    """An accepted TCP connection; socket methods are reached through it."""

    def __init__(self, sock: socket.socket) -> None:
        self.sock = sock

    def __getattr__(self, name: str) -> Any:
        if name == "sock":
            raise AttributeError(name)
        return getattr(self.sock, name)

    def __enter__(self) -> SplitbitConnection:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.sock.close()

    def dial_original_destination(self, dont_assume_remote: bool = False) -> socket.socket:
        """Open a transparent connection to where this connection was headed.

        Unless ``dont_assume_remote`` is set, the new socket is bound to the
        peer's IP so the destination sees the original client as the source.
        """
        local = self.sock.getsockname()
        remote = self.sock.getpeername()

        local_host, _, local_zone = str(local[0]).partition("%")
        try:
            destination = to_socket_address(local_host, local[1], local_zone)
        except ValueError as exc:
            raise OSError(f"dial: failed to parse local socket address: {exc}") from exc

        remote_host = str(remote[0]).partition("%")[0]
        try:
            bind_address = to_socket_address(remote_host, 0, "")
        except ValueError as exc:
            raise OSError(f"dial: failed to parse remote socket address: {exc}") from exc

        family = address_family("tcp", local, remote)
        with _dial_step(None, "failed to create socket"):
            sock = socket.socket(family, socket.SOCK_STREAM)

        with _dial_step(sock, "socket option SO_REUSEADDR"):
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        if hasattr(socket, "SO_REUSEPORT"):
            with _dial_step(sock, "socket option SO_REUSEPORT"):
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
        with _dial_step(sock, "socket option IP_TRANSPARENT"):
            sock.setsockopt(_SOL_IP, _IP_TRANSPARENT, 1)
        with _dial_step(sock, "socket option SO_NONBLOCK"):
            sock.setblocking(False)

        if not dont_assume_remote:
            with _dial_step(sock, "socket bind"):
                sock.bind(bind_address)

        with _dial_step(sock, "socket connect"):
            code = sock.connect_ex(destination)
            if code not in (0, errno.EINPROGRESS):
                raise OSError(code, os.strerror(code))

        # Blocking calls on a socket still connecting wait for the handshake.
        sock.setblocking(True)
        return sock


class Listener:
    """A listening TCP socket that hands out SplitbitConnection objects."""

    def __init__(self, sock: socket.socket) -> None:
        self.sock = sock

    def __enter__(self) -> Listener:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def addr(self) -> tuple:
        """Return the address the listener is bound to."""
        return self.sock.getsockname()

    def accept(self) -> SplitbitConnection:
        """Wait for and return the next incoming connection."""
        conn, _ = self.sock.accept()
        return SplitbitConnection(conn)

    def close(self) -> None:
        """Stop listening."""
        self.sock.close()


def listen_tcp(host: str, port: int) -> Listener:
    """Start listening for TCP connections on host:port."""
    try:
        family = socket.AF_INET6 if _parse_ip(host).version == 6 else socket.AF_INET
    except ValueError:
        family = socket.AF_INET
    return Listener(socket.create_server((host, port), family=family))