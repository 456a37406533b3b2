import socket
import threading

import pytest

from snapsync.protocol import (
    Command,
    ProtocolError,
    file_extension,
    listing_subpath,
    parse_command,
    port_for_extension,
    recv_exact,
    recv_sized,
    send_sized,
    strip_root,
)


@pytest.fixture
def pair():
    a, b = socket.socketpair()
    yield a, b
    a.close()
    b.close()


def test_parse_command_lowercases_name_and_splits_args():
    cmd = parse_command("UploadF sample.pdf ~S1/docs")
    assert cmd.name == "uploadf"
    assert cmd.args == ("sample.pdf", "~S1/docs")
    assert cmd.raw == "UploadF sample.pdf ~S1/docs"


def test_parse_command_accepts_bytes_and_extra_whitespace():
    cmd = parse_command(b"  downlf   ~S1/a.txt \n")
    assert cmd == Command(name="downlf", args=("~S1/a.txt",), raw="  downlf   ~S1/a.txt \n")


def test_parse_command_empty_raises():
    with pytest.raises(ProtocolError):
        parse_command("   ")


def test_command_require():
    cmd = parse_command("storef ~S1/x")
    assert cmd.require(1) == ("~S1/x",)
    with pytest.raises(ProtocolError, match="Invalid command syntax"):
        cmd.require(2)


def test_send_sized_wire_format(pair):
    a, b = pair
    send_sized(a, b"hello")
    assert recv_exact(b, 9) == b"\x00\x00\x00\x05hello"


def test_sized_round_trip(pair):
    a, b = pair
    payload = bytes(range(256)) * 20
    t = threading.Thread(target=send_sized, args=(a, payload))
    t.start()
    assert recv_sized(b) == payload
    t.join()


def test_sized_empty_round_trip(pair):
    a, b = pair
    send_sized(a, b"")
    assert recv_sized(b) == b""


def test_recv_exact_raises_on_early_close(pair):
    a, b = pair
    a.sendall(b"abc")
    a.close()
    with pytest.raises(ProtocolError):
        recv_exact(b, 10)


def test_recv_exact_zero_and_negative(pair):
    _, b = pair
    assert recv_exact(b, 0) == b""
    with pytest.raises(ValueError):
        recv_exact(b, -1)


def test_strip_root():
    assert strip_root("~S1/folder/a.pdf") == "/folder/a.pdf"
    assert strip_root("/plain/path.txt") == "/plain/path.txt"
    assert strip_root("~S1") == ""


def test_listing_subpath():
    assert listing_subpath("~S1") == ""
    assert listing_subpath("~S1/") == ""
    assert listing_subpath("~S1/docs") == "/docs"
    assert listing_subpath("/other") == "/other"


def test_file_extension():
    assert file_extension("report.PDF") == ".pdf"
    assert file_extension("archive.tar.zip") == ".zip"
    with pytest.raises(ProtocolError, match="Invalid file extension"):
        file_extension("README")


def test_port_for_extension():
    assert port_for_extension(".pdf") == 9002
    assert port_for_extension(".TXT") == 9003
    assert port_for_extension(".zip") == 9004
    assert port_for_extension(".c") is None
    with pytest.raises(ProtocolError, match="Unsupported file type"):
        port_for_extension(".exe")