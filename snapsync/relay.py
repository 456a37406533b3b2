"""Forwarding of requests from the main server to the storage servers.

Each call opens one connection to a storage server, sends a single command
and collects the reply. Failures are raised as :class:`RelayError`.
"""

from __future__ import annotations

import socket
from collections.abc import Iterable

from .protocol import BUFSIZE, READY, ProtocolError, recv_exact, send_sized

_HEADER_SIZE = 4


class RelayError(Exception):
    """Raised when a storage server cannot be reached or answers wrongly."""


def _encode(command: str | bytes) -> bytes:
    return command.encode() if isinstance(command, str) else bytes(command)


def _connect(host: str, port: int) -> socket.socket:
    try:
        return socket.create_connection((host, port))
    except OSError as exc:
        raise RelayError(f"ERROR connecting to remote server: {exc}") from exc


def forward_file(host: str, port: int, dest: str, filename: str, data: bytes) -> bytes:
    """Store ``data`` as ``filename`` under ``dest`` on a storage server.

    Returns the acknowledgement the storage server sent back.
    """
    with _connect(host, port) as sock:
        try:
            sock.sendall(f"storef {dest} {filename}".encode())
            reply = sock.recv(BUFSIZE - 1)
            if not reply:
                raise RelayError("No READY response from forwarding server")
            if not reply.startswith(READY):
                raise RelayError("Forwarding server not ready")
            send_sized(sock, data)
            return sock.recv(BUFSIZE - 1)
        except OSError as exc:
            raise RelayError(f"Error forwarding file: {exc}") from exc


def relay_sized(host: str, port: int, command: str | bytes) -> bytes:
    """Send ``command`` and return the size-prefixed payload that comes back."""
    with _connect(host, port) as sock:
        try:
            sock.sendall(_encode(command))
            try:
                header = recv_exact(sock, _HEADER_SIZE)
            except ProtocolError:
                raise RelayError("Error receiving filesize from remote server") from None
            size = int.from_bytes(header, "big")
            try:
                return recv_exact(sock, size)
            except ProtocolError:
                raise RelayError("Remote server closed before sending the whole file") from None
        except OSError as exc:
            raise RelayError(f"Error relaying command: {exc}") from exc


def relay_text(host: str, port: int, command: str | bytes) -> bytes:
    """Send ``command`` and return the single text reply that comes back."""
    with _connect(host, port) as sock:
        try:
            sock.sendall(_encode(command))
            return sock.recv(BUFSIZE - 1)
        except OSError as exc:
            raise RelayError(f"Error relaying command: {exc}") from exc


def collect_listing(host: str, ports: Iterable[int], command: str | bytes) -> str:
    """Concatenate the listings of every reachable server, in port order.

    Servers that cannot be reached are skipped.
    """
    payload = _encode(command)
    parts: list[str] = []
    for port in ports:
        try:
            with socket.create_connection((host, port)) as sock:
                sock.sendall(payload)
                chunks = bytearray()
                while chunk := sock.recv(BUFSIZE - 1):
                    chunks.extend(chunk)
        except OSError:
            continue
        parts.append(chunks.decode("utf-8", errors="replace"))
    return "".join(parts)