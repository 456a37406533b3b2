"""Wire protocol shared by the file servers and the client.

Commands are single whitespace-separated text lines. File payloads travel
as a 4-byte big-endian length header followed by the raw bytes.
"""

from __future__ import annotations

import socket
import struct
from dataclasses import dataclass

BUFSIZE = 1024
ROOT_MARKER = "~S1"
READY = b"READY"

_HEADER = struct.Struct("!I")
_MAX_SIZE = 0xFFFFFFFF

LOCAL_EXTENSION = ".c"
EXTENSION_PORTS = {
    ".pdf": 9002,
    ".txt": 9003,
    ".zip": 9004,
}

COMMANDS = frozenset({"uploadf", "downlf", "removef", "downltar", "dispfnames", "storef"})


class ProtocolError(Exception):
    """Raised when a peer breaks the protocol or a request is malformed."""


@dataclass(frozen=True)
class Command:
    """A parsed command line: lower-cased name, its arguments and the original text."""

    name: str
    args: tuple[str, ...]
    raw: str

    def require(self, count: int) -> tuple[str, ...]:
        """Return the first ``count`` arguments, or raise if there are fewer."""
        if len(self.args) < count:
            raise ProtocolError("Invalid command syntax")
        return self.args[:count]


def parse_command(text: str | bytes) -> Command:
    """Split a command line into its name and arguments."""
    if isinstance(text, bytes):
        text = text.decode("utf-8", errors="replace")
    text = text.split("\0", 1)[0]
    words = text.split()
    if not words:
        raise ProtocolError("Empty command")
    return Command(name=words[0].lower(), args=tuple(words[1:]), raw=text)


def recv_exact(sock: socket.socket, size: int) -> bytes:
    """Read exactly ``size`` bytes, raising if the connection ends first."""
    if size < 0:
        raise ValueError("size must not be negative")
    chunks = bytearray()
    while len(chunks) < size:
        chunk = sock.recv(min(size - len(chunks), 65536))
        if not chunk:
            raise ProtocolError(
                f"Connection closed after {len(chunks)} of {size} bytes"
            )
        chunks.extend(chunk)
    return bytes(chunks)


def send_sized(sock: socket.socket, data: bytes) -> None:
    """Send a length header followed by ``data``."""
    if len(data) > _MAX_SIZE:
        raise ProtocolError("Payload too large for a 4-byte size header")
    sock.sendall(_HEADER.pack(len(data)) + bytes(data))


def recv_sized(sock: socket.socket) -> bytes:
    """Receive a length header and then that many bytes."""
    (size,) = _HEADER.unpack(recv_exact(sock, _HEADER.size))
    return recv_exact(sock, size)


def strip_root(path: str) -> str:
    """Drop everything up to and including the ``~S1`` marker, if present."""
    _, marker, rest = path.partition(ROOT_MARKER)
    return rest if marker else path


def listing_subpath(pathname: str) -> str:
    """Sub-directory to list for a ``dispfnames`` path; the root maps to ''."""
    _, marker, rest = pathname.partition(ROOT_MARKER)
    if not marker:
        return pathname
    return "" if rest in ("", "/") else rest


def file_extension(name: str) -> str:
    """Lower-cased text from the last dot on, e.g. ``.pdf``."""
    index = name.rfind(".")
    if index < 0:
        raise ProtocolError("Invalid file extension")
    return name[index:].lower()


def port_for_extension(ext: str) -> int | None:
    """Port of the server holding ``ext`` files; None for files kept locally."""
    ext = ext.lower()
    if ext == LOCAL_EXTENSION:
        return None
    try:
        return EXTENSION_PORTS[ext]
    except KeyError:
        raise ProtocolError("Unsupported file type") from None