"""Main file server: keeps .c files itself and routes other types onward.

Clients talk only to this server. Requests for .pdf, .txt and .zip files
are passed to the matching storage server; .c files live under ``root``.
"""

from __future__ import annotations

import argparse
import io
import os
import socket
import socketserver
import sys
import tarfile
from collections.abc import Mapping
from pathlib import Path

from .protocol import (
    BUFSIZE,
    EXTENSION_PORTS,
    LOCAL_EXTENSION,
    READY,
    Command,
    ProtocolError,
    file_extension,
    listing_subpath,
    parse_command,
    send_sized,
    strip_root,
)
from .relay import RelayError, collect_listing, forward_file, relay_sized, relay_text

_LISTING_LIMIT = 4095


def _recv_upto(sock: socket.socket, size: int) -> bytes:
    """Read up to ``size`` bytes, stopping early if the peer closes."""
    data = bytearray()
    while len(data) < size:
        chunk = sock.recv(min(size - len(data), 65536))
        if not chunk:
            break
        data.extend(chunk)
    return bytes(data)


class MainServer:
    """The server clients connect to; ``remote_ports`` maps extensions to ports."""

    def __init__(self, root="./S1", remote_host="127.0.0.1", remote_ports=None):
        self.root = os.fspath(root)
        self.remote_host = remote_host
        ports: Mapping[str, int] = EXTENSION_PORTS if remote_ports is None else remote_ports
        self.remote_ports = {ext.lower(): port for ext, port in ports.items()}
        self._handlers = {
            "uploadf": self._handle_upload,
            "downlf": self._handle_download,
            "removef": self._handle_remove,
            "downltar": self._handle_tar,
            "dispfnames": self._handle_listing,
        }

    def _route(self, ext: str, message: str = "Unsupported file type") -> int | None:
        ext = ext.lower()
        if ext == LOCAL_EXTENSION:
            return None
        try:
            return self.remote_ports[ext]
        except KeyError:
            raise ProtocolError(message) from None

    def _local(self, path: str) -> str:
        return f"{self.root}{strip_root(path)}"

    def upload(self, filename: str, dest: str, data: bytes) -> str:
        """Store ``data`` locally or on its storage server; return the reply text."""
        port = self._route(file_extension(filename))
        if port is None:
            directory = self._local(dest)
            os.makedirs(directory, exist_ok=True)
            Path(f"{directory}/{filename}").write_bytes(data)
            return "File uploaded successfully\n"
        forward_file(self.remote_host, port, dest, filename, data)
        return "File forwarded successfully\n"

    def download(self, path: str) -> bytes:
        """Return the contents of the file at ``path``, wherever it is kept."""
        port = self._route(file_extension(path))
        if port is None:
            return Path(self._local(path)).read_bytes()
        return relay_sized(self.remote_host, port, f"downlf {path}")

    def remove(self, path: str) -> str:
        """Delete the file at ``path``; return the reply text."""
        port = self._route(file_extension(path))
        if port is None:
            os.remove(self._local(path))
            return "File removed successfully\n"
        reply = relay_text(self.remote_host, port, f"removef {path}")
        if not reply:
            raise RelayError("No response from remote server")
        return reply.decode("utf-8", errors="replace")

    def make_tar(self, filetype: str) -> bytes:
        """Return a tar archive of every file of ``filetype``."""
        port = self._route(filetype, "Unsupported file type for tar")
        if port is not None:
            return relay_sized(self.remote_host, port, f"downltar {filetype}")
        if not os.path.exists(self.root):
            raise FileNotFoundError(self.root)
        buffer = io.BytesIO()
        with tarfile.open(fileobj=buffer, mode="w") as archive:
            archive.add(self.root, arcname=self.root.lstrip("/") or ".")
        return buffer.getvalue()

    def _local_files(self, directory: str) -> list[str]:
        try:
            entries = os.scandir(directory)
        except OSError:
            return []
        with entries:
            return sorted(
                os.path.join(directory, entry.name)
                for entry in entries
                if entry.is_file(follow_symlinks=False)
            )

    def list_files(self, pathname: str, raw_command=None) -> str:
        """Local file paths followed by each storage server's listing."""
        directory = f"{self.root}{listing_subpath(pathname)}"
        local = "".join(f"{path}\n" for path in self._local_files(directory))
        ports = list(dict.fromkeys(self.remote_ports.values()))
        command = raw_command if raw_command is not None else f"dispfnames {pathname}"
        remote = collect_listing(self.remote_host, ports, command)
        combined = (local + remote)[:_LISTING_LIMIT]
        return combined or "No files found\n"

    def _handle_upload(self, sock: socket.socket, command: Command) -> None:
        filename, dest = command.require(2)
        file_extension(filename)
        sock.sendall(READY)
        header = _recv_upto(sock, 4)
        if len(header) != 4:
            sock.sendall(b"Error receiving filesize\n")
            return
        data = _recv_upto(sock, int.from_bytes(header, "big"))
        try:
            reply = self.upload(filename, dest, data)
        except RelayError:
            sock.sendall(b"Error forwarding file\n")
        except OSError:
            sock.sendall(b"Error writing file\n")
        else:
            sock.sendall(reply.encode())

    def _handle_download(self, sock: socket.socket, command: Command) -> None:
        (path,) = command.require(1)
        try:
            data = self.download(path)
        except RelayError:
            sock.sendall(b"Error receiving filesize from remote server\n")
        except OSError:
            sock.sendall(b"ERROR")
        else:
            send_sized(sock, data)

    def _handle_remove(self, sock: socket.socket, command: Command) -> None:
        (path,) = command.require(1)
        try:
            reply = self.remove(path)
        except (RelayError, OSError):
            sock.sendall(b"Error removing file\n")
        else:
            sock.sendall(reply.encode())

    def _handle_tar(self, sock: socket.socket, command: Command) -> None:
        (filetype,) = command.require(1)
        try:
            archive = self.make_tar(filetype)
        except RelayError:
            sock.sendall(b"Error receiving tar filesize from remote server\n")
        except OSError:
            sock.sendall(b"ERROR creating tar\n")
        else:
            send_sized(sock, archive)

    def _handle_listing(self, sock: socket.socket, command: Command) -> None:
        (pathname,) = command.require(1)
        sock.sendall(self.list_files(pathname, command.raw).encode())

    def _dispatch(self, sock: socket.socket, request: bytes) -> None:
        try:
            command = parse_command(request)
        except ProtocolError:
            sock.sendall(b"Invalid command\n")
            return
        handler = self._handlers.get(command.name)
        if handler is None:
            sock.sendall(b"Invalid command\n")
            return
        try:
            handler(sock, command)
        except ProtocolError as exc:
            sock.sendall(f"{exc}\n".encode())

    def handle(self, sock: socket.socket) -> None:
        """Serve commands on ``sock`` until the client disconnects."""
        with sock:
            try:
                while request := sock.recv(BUFSIZE - 1):
                    self._dispatch(sock, request)
            except OSError:
                pass

    def serve_forever(self, port: int, host: str = "") -> None:
        """Accept clients on ``port``, one thread each."""
        server = self

        class _Handler(socketserver.BaseRequestHandler):
            def handle(self) -> None:
                server.handle(self.request)

        class _Server(socketserver.ThreadingTCPServer):
            allow_reuse_address = True
            daemon_threads = True

        with _Server((host, port), _Handler) as tcp:
            tcp.serve_forever()


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Run the main file server.")
    parser.add_argument("port", type=int)
    parser.add_argument("--root", default="./S1", help="directory holding .c files")
    parser.add_argument("--host", default="", help="address to listen on")
    parser.add_argument("--remote-host", default="127.0.0.1", help="storage servers' host")
    args = parser.parse_args(argv)
    server = MainServer(args.root, args.remote_host)
    try:
        server.serve_forever(args.port, args.host)
    except OSError as exc:
        print(f"ERROR on binding: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    sys.exit(main())