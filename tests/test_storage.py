import io
import socket
import tarfile
import threading

import pytest

from snapsync.protocol import ProtocolError, recv_exact, recv_sized, send_sized
from snapsync.storage import StorageServer, make_server


@pytest.fixture
def server(tmp_path):
    return StorageServer(str(tmp_path / "S3"), ".txt", "txtfiles.tar", 9003)


def _recv_all(sock):
    data = bytearray()
    while True:
        chunk = sock.recv(4096)
        if not chunk:
            return bytes(data)
        data.extend(chunk)


def _run(server, payload):
    ours, theirs = socket.socketpair()
    with ours:
        ours.sendall(payload)
        server.handle(theirs)
        return _recv_all(ours)


def test_store_and_read_round_trip(server):
    server.store("~S1/docs", "a.txt", b"hello")
    assert server.read("~S1/docs/a.txt") == b"hello"


def test_store_path_without_marker(server):
    path = server.store("/notes", "b.txt", b"xyz")
    assert path == f"{server.root}/notes/b.txt"
    assert server.read("/notes/b.txt") == b"xyz"


def test_read_missing_raises(server):
    with pytest.raises(FileNotFoundError):
        server.read("~S1/none.txt")


def test_remove(server):
    server.store("~S1", "c.txt", b"1")
    server.remove("~S1/c.txt")
    with pytest.raises(FileNotFoundError):
        server.read("~S1/c.txt")


def test_make_tar_wrong_type(server):
    with pytest.raises(ProtocolError):
        server.make_tar(".pdf")


def test_make_tar_contains_files(server):
    server.store("~S1/d", "e.txt", b"data")
    archive = server.make_tar(".TXT")
    with tarfile.open(fileobj=io.BytesIO(archive)) as tar:
        names = tar.getnames()
        member = next(n for n in names if n.endswith("d/e.txt"))
        assert tar.extractfile(member).read() == b"data"


def test_list_files_sorted_and_shallow(server):
    server.store("~S1", "z.txt", b"")
    server.store("~S1", "a.txt", b"")
    server.store("~S1/sub", "m.txt", b"")
    listing = server.list_files("~S1/")
    assert listing == sorted(listing)
    assert [p.rsplit("/", 1)[1] for p in listing] == ["a.txt", "z.txt"]


def test_list_files_missing_dir(server):
    assert server.list_files("~S1/nowhere") == []


def test_handle_store(server):
    ours, theirs = socket.socketpair()
    worker = threading.Thread(target=server.handle, args=(theirs,))
    worker.start()
    with ours:
        ours.sendall(b"storef ~S1/up f.txt")
        assert recv_exact(ours, 5) == b"READY"
        send_sized(ours, b"payload")
        reply = _recv_all(ours)
    worker.join()
    assert reply == b"File stored successfully\n"
    assert server.read("~S1/up/f.txt") == b"payload"


def test_handle_download(server):
    server.store("~S1", "g.txt", b"content")
    ours, theirs = socket.socketpair()
    with ours:
        ours.sendall(b"downlf ~S1/g.txt")
        server.handle(theirs)
        assert recv_sized(ours) == b"content"


def test_handle_download_missing(server):
    assert _run(server, b"downlf ~S1/missing.txt") == b"ERROR"


def test_handle_remove_messages(server):
    server.store("~S1", "h.txt", b"x")
    assert _run(server, b"removef ~S1/h.txt") == b"File removed successfully\n"
    assert _run(server, b"removef ~S1/h.txt") == b"Error removing file\n"


def test_handle_tar_wrong_type(server):
    assert _run(server, b"downltar .zip") == b"Invalid filetype for tar\n"


def test_handle_listing_empty(server):
    assert _run(server, b"dispfnames ~S1") == b"No files found\n"


def test_handle_listing(server):
    server.store("~S1", "k.txt", b"")
    reply = _run(server, b"dispfnames ~S1").decode()
    assert reply.endswith("k.txt\n")


def test_handle_invalid_and_syntax(server):
    assert _run(server, b"bogus x") == b"Invalid command\n"
    assert _run(server, b"storef onlyone") == b"Invalid command syntax\n"


def test_make_server_kinds(tmp_path):
    txt = make_server("txt", tmp_path)
    assert (txt.extension, txt.tar_name, txt.port) == (".txt", "txtfiles.tar", 9003)
    pdf = make_server("S2")
    assert (pdf.extension, pdf.port, pdf.root) == (".pdf", 9002, "./S2")
    assert make_server(".zip").tar_name == "zipfiles.tar"


def test_make_server_unknown():
    with pytest.raises(ValueError):
        make_server("doc")