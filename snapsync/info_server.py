"""A small server that greets each client with this host's name and address."""

from __future__ import annotations

import argparse
import ipaddress
import socket
import socketserver
import sys

_LOOPBACK = "127.0.0.1"
_MESSAGE_LIMIT = 255


def primary_ipv4() -> str:
    """First non-loopback IPv4 address of this host, or 127.0.0.1."""
    candidates: list[str] = []
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as probe:
            probe.connect(("10.255.255.255", 1))
            candidates.append(probe.getsockname()[0])
    except OSError:
        pass
    try:
        infos = socket.getaddrinfo(socket.gethostname(), None, socket.AF_INET)
        candidates.extend(info[4][0] for info in infos)
    except OSError:
        pass
    for candidate in candidates:
        try:
            address = ipaddress.IPv4Address(candidate)
        except ValueError:
            continue
        if not address.is_loopback and not address.is_unspecified:
            return candidate
    return _LOOPBACK


def welcome_message(hostname: str, ip: str) -> str:
    """The greeting sent to each client."""
    message = (
        "Welcome to Snap-Sync Server v2.0\n"
        "-----------------------------\n"
        "Connected to server:\n"
        f"Hostname: {hostname}\n"
        f"IP Address: {ip}\n"
        "-----------------------------\n"
    )
    return message[:_MESSAGE_LIMIT]


def handle(sock: socket.socket) -> None:
    """Send the greeting on ``sock`` and close it."""
    with sock:
        try:
            sock.sendall(welcome_message(socket.gethostname(), primary_ipv4()).encode())
        except OSError as exc:
            print(f"ERROR sending data to client: {exc}", file=sys.stderr)


def serve_forever(port: int) -> None:
    """Listen on ``port`` and greet every client, one thread each."""

    class _Handler(socketserver.BaseRequestHandler):
        def handle(self) -> None:
            handle(self.request)

    class _Server(socketserver.ThreadingTCPServer):
        allow_reuse_address = True
        daemon_threads = True

    with _Server(("", port), _Handler) as tcp:
        print(f"Server IP Address: {primary_ipv4()}", flush=True)
        tcp.serve_forever()


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Run the greeting server.")
    parser.add_argument("port", type=int)
    args = parser.parse_args(argv)
    try:
        serve_forever(args.port)
    except OSError as exc:
        print(f"ERROR on binding: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    sys.exit(main())