"""Interactive client for the main file server."""

from __future__ import annotations

import argparse
import os
import socket
import sys
from pathlib import Path

from .protocol import (
    BUFSIZE,
    READY,
    ProtocolError,
    parse_command,
    recv_exact,
    send_sized,
)

CLIENT_COMMANDS = frozenset({"uploadf", "downlf", "removef", "downltar", "dispfnames"})

_TAR_NAMES = {
    ".c": "cfiles.tar",
    ".pdf": "pdffiles.tar",
    ".txt": "txtfiles.tar",
    ".zip": "zipfiles.tar",
}


def sanitize_command(command: str) -> bool:
    """True if the first space-separated word is a command the client accepts."""
    words = [word for word in command.split(" ") if word]
    return bool(words) and words[0].lower() in CLIENT_COMMANDS


def tar_name_for(filetype: str) -> str:
    """Local file name a tar archive of ``filetype`` files is saved under."""
    try:
        return _TAR_NAMES[filetype.lower()]
    except KeyError:
        raise ProtocolError("Invalid filetype for tar") from None


class Client:
    """A connection to the main server; downloads are saved in ``workdir``."""

    def __init__(self, host, port, workdir="."):
        self.workdir = Path(workdir)
        self._sock = socket.create_connection((host, int(port)))

    def __enter__(self) -> Client:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def execute(self, line: str) -> str:
        """Run one command line and return the text to show the user."""
        line = line.split("\n", 1)[0]
        if not sanitize_command(line):
            raise ProtocolError("Invalid command")
        command = parse_command(line)
        if command.name == "uploadf":
            try:
                filename, _ = command.require(2)
            except ProtocolError:
                raise ProtocolError("Invalid uploadf syntax") from None
            ack = self.upload(line, filename)
            return f"Server: {ack}" if ack else ""
        if command.name == "downlf":
            (filepath,) = command.require(1)
            saved = self.download(line, filepath)
            return f"Downloaded file saved as {saved.name}"
        if command.name == "downltar":
            (filetype,) = command.require(1)
            saved = self.download_tar(line, filetype)
            return f"Downloaded tar file saved as {saved.name}"
        reply = self.simple(line)
        return f"Server: {reply}" if reply else ""

    def upload(self, line: str, filename: str) -> str:
        """Send ``line`` and then the contents of ``filename``; return the ack."""
        path = self.workdir / filename
        if not path.is_file():
            raise FileNotFoundError("File does not exist.")
        data = path.read_bytes()
        self._sock.sendall(line.encode())
        reply = self._sock.recv(BUFSIZE - 1)
        if not reply.startswith(READY):
            raise ProtocolError("Server not ready for file data")
        send_sized(self._sock, data)
        return self._sock.recv(BUFSIZE - 1).decode("utf-8", errors="replace")

    def _receive_payload(self, what: str) -> bytes:
        try:
            header = recv_exact(self._sock, 4)
        except ProtocolError:
            raise ProtocolError(f"Error receiving {what}size") from None
        size = int.from_bytes(header, "big", signed=True)
        if size <= 0:
            raise ProtocolError(f"Server returned error or empty {what}")
        try:
            return recv_exact(self._sock, size)
        except ProtocolError:
            raise ProtocolError(f"Error receiving {what} data") from None

    def download(self, line: str, filepath: str) -> Path:
        """Send ``line`` and save the returned file under its base name."""
        self._sock.sendall(line.encode())
        data = self._receive_payload("file")
        target = self.workdir / filepath.rsplit("/", 1)[-1]
        target.write_bytes(data)
        return target

    def download_tar(self, line: str, filetype: str) -> Path:
        """Send ``line`` and save the returned tar archive of ``filetype`` files."""
        target = self.workdir / tar_name_for(filetype)
        self._sock.sendall(line.encode())
        data = self._receive_payload("tar file")
        target.write_bytes(data)
        return target

    def simple(self, line: str) -> str:
        """Send ``line`` and return the server's single text reply."""
        self._sock.sendall(line.encode())
        return self._sock.recv(BUFSIZE - 1).decode("utf-8", errors="replace")

    def close(self) -> None:
        self._sock.close()


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Connect to the main file server.")
    parser.add_argument("hostname")
    parser.add_argument("port", type=int)
    args = parser.parse_args(argv)
    try:
        client = Client(args.hostname, args.port, os.getcwd())
    except OSError as exc:
        print(f"ERROR connecting: {exc}", file=sys.stderr)
        return 1
    with client:
        print("\n------ Connected to S1 ------")
        while True:
            try:
                line = input("Delta ~ $ ")
            except EOFError:
                break
            try:
                output = client.execute(line)
            except ConnectionError as exc:
                print(f"ERROR: {exc}", file=sys.stderr)
                return 1
            except (ProtocolError, OSError) as exc:
                print(exc, file=sys.stderr)
                continue
            if output:
                print(output)
    return 0


if __name__ == "__main__":
    sys.exit(main())