"""Storage servers that keep one kind of file each (.pdf, .txt or .zip).

The main server forwards every request for such a file to the matching
storage server. Each connection carries exactly one command.
"""

from __future__ import annotations

import argparse
import io
import os
import socket
import socketserver
import sys
import tarfile
from pathlib import Path

from .protocol import (
    BUFSIZE,
    READY,
    ProtocolError,
    parse_command,
    listing_subpath,
    send_sized,
    strip_root,
)

_LISTING_LIMIT = 4095

_KINDS = {
    "pdf": (".pdf", "pdffiles.tar", 9002, "./S2"),
    "txt": (".txt", "txtfiles.tar", 9003, "./S3"),
    "zip": (".zip", "zipfiles.tar", 9004, "./S4"),
}
_ALIASES = {"s2": "pdf", "s3": "txt", "s4": "zip"}


def _recv_upto(sock: socket.socket, size: int) -> bytes:
    """Read up to ``size`` bytes, stopping early if the peer closes."""
    data = bytearray()
    while len(data) < size:
        chunk = sock.recv(min(size - len(data), 65536))
        if not chunk:
            break
        data.extend(chunk)
    return bytes(data)


class StorageServer:
    """A file store rooted at one directory, serving one file extension."""

    def __init__(self, root, extension, tar_name, port):
        self.root = os.fspath(root)
        self.extension = extension.lower()
        self.tar_name = tar_name
        self.port = port

    def _local(self, path: str) -> str:
        return f"{self.root}{strip_root(path)}"

    def store(self, dest: str, filename: str, data: bytes) -> str:
        """Write ``data`` as ``filename`` under ``dest``; return the file path."""
        directory = self._local(dest)
        os.makedirs(directory, exist_ok=True)
        filepath = f"{directory}/{filename}"
        Path(filepath).write_bytes(data)
        return filepath

    def read(self, path: str) -> bytes:
        """Return the contents of the stored file at ``path``."""
        return Path(self._local(path)).read_bytes()

    def remove(self, path: str) -> None:
        """Delete the stored file at ``path``."""
        os.remove(self._local(path))

    def make_tar(self, filetype: str) -> bytes:
        """Return a tar archive of the whole store, for this server's file type."""
        if filetype.lower() != self.extension:
            raise ProtocolError("Invalid filetype for tar")
        if not os.path.exists(self.root):
            raise FileNotFoundError(self.root)
        buffer = io.BytesIO()
        with tarfile.open(fileobj=buffer, mode="w") as archive:
            archive.add(self.root, arcname=self.root.lstrip("/") or ".")
        return buffer.getvalue()

    def list_files(self, pathname: str) -> list[str]:
        """Sorted paths of the regular files directly inside ``pathname``."""
        directory = f"{self.root}{listing_subpath(pathname)}"
        try:
            entries = os.scandir(directory)
        except OSError:
            return []
        with entries:
            files = [
                os.path.join(directory, entry.name)
                for entry in entries
                if entry.is_file(follow_symlinks=False)
            ]
        return sorted(files)

    def _listing_reply(self, pathname: str) -> bytes:
        try:
            output = "".join(f"{path}\n" for path in self.list_files(pathname))
        except OSError:
            output = "Error listing files\n"
        output = output[:_LISTING_LIMIT]
        return (output or "No files found\n").encode()

    def _handle_store(self, sock: socket.socket, dest: str, filename: str) -> None:
        sock.sendall(READY)
        header = _recv_upto(sock, 4)
        if len(header) != 4:
            return
        size = int.from_bytes(header, "big")
        data = _recv_upto(sock, size)
        try:
            self.store(dest, filename, data)
        except OSError:
            sock.sendall(b"Error writing file\n")
        else:
            sock.sendall(b"File stored successfully\n")

    def _dispatch(self, sock: socket.socket, request: bytes) -> None:
        try:
            command = parse_command(request)
        except ProtocolError:
            sock.sendall(b"Invalid command\n")
            return
        try:
            if command.name == "storef":
                dest, filename = command.require(2)
                self._handle_store(sock, dest, filename)
            elif command.name == "downlf":
                (path,) = command.require(1)
                try:
                    data = self.read(path)
                except OSError:
                    sock.sendall(b"ERROR")
                else:
                    send_sized(sock, data)
            elif command.name == "removef":
                (path,) = command.require(1)
                try:
                    self.remove(path)
                except OSError:
                    sock.sendall(b"Error removing file\n")
                else:
                    sock.sendall(b"File removed successfully\n")
            elif command.name == "downltar":
                (filetype,) = command.require(1)
                if filetype.lower() != self.extension:
                    sock.sendall(b"Invalid filetype for tar\n")
                    return
                try:
                    archive = self.make_tar(filetype)
                except OSError:
                    sock.sendall(b"ERROR creating tar\n")
                else:
                    send_sized(sock, archive)
            elif command.name == "dispfnames":
                (pathname,) = command.require(1)
                sock.sendall(self._listing_reply(pathname))
            else:
                sock.sendall(b"Invalid command\n")
        except ProtocolError as exc:
            if str(exc) == "Invalid command syntax":
                sock.sendall(b"Invalid command syntax\n")
            else:
                raise

    def handle(self, sock: socket.socket) -> None:
        """Serve the single command sent on ``sock``, then close it."""
        with sock:
            try:
                request = sock.recv(BUFSIZE - 1)
                if request:
                    self._dispatch(sock, request)
            except OSError:
                pass

    def serve_forever(self, host: str = "") -> None:
        """Accept connections on this server's port, one thread each."""
        server = self

        class _Handler(socketserver.BaseRequestHandler):
            def handle(self) -> None:
                server.handle(self.request)

        class _Server(socketserver.ThreadingTCPServer):
            allow_reuse_address = True
            daemon_threads = True

        with _Server((host, self.port), _Handler) as tcp:
            tcp.serve_forever()


def make_server(kind: str, root=None) -> StorageServer:
    """Build the storage server for ``kind``: pdf, txt or zip (or S2, S3, S4)."""
    key = kind.lower().lstrip(".")
    key = _ALIASES.get(key, key)
    if key not in _KINDS:
        raise ValueError(f"Unknown storage server kind: {kind}")
    extension, tar_name, port, default_root = _KINDS[key]
    return StorageServer(root if root is not None else default_root, extension, tar_name, port)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Run a storage server.")
    parser.add_argument("kind", help="pdf, txt or zip (or S2, S3, S4)")
    parser.add_argument("--root", default=None, help="directory holding the files")
    parser.add_argument("--host", default="", help="address to listen on")
    args = parser.parse_args(argv)
    try:
        server = make_server(args.kind, args.root)
    except ValueError as exc:
        parser.error(str(exc))
    try:
        server.serve_forever(args.host)
    except OSError as exc:
        print(f"ERROR on binding: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    sys.exit(main())