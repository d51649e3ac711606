import socket

import pytest

from blekit.hcisocket import HCISocket, HCISocketError, io_read, io_write, open_socket


@pytest.fixture
def pair():
    a, b = socket.socketpair()
    yield a, b
    for s in (a, b):
        try:
            s.close()
        except OSError:
            pass


@pytest.mark.parametrize("build", [io_read, io_write])
def test_ioctl_number_fields(build):
    value = build(72, 210, 4)
    assert value & 0xFF == 210
    assert (value >> 8) & 0xFF == 72
    assert (value >> 16) & 0x1FFF == 4


def test_ioctl_directions_differ():
    r = io_read(0, 0, 0)
    w = io_write(0, 0, 0)
    assert r & 0xFFFFFFF == 0
    assert w & 0xFFFFFFF == 0
    assert r != w


def test_read_and_write(pair):
    a, b = pair
    s = HCISocket(a)
    b.sendall(b"\x04\x0e\x01")
    assert s.read(16) == b"\x04\x0e\x01"
    assert s.write(b"\x01\x03\x0c\x00") == 4
    assert b.recv(16) == b"\x01\x03\x0c\x00"


def test_close_sends_wakeup_and_reads_eof(pair):
    a, b = pair
    s = HCISocket(a)
    s.close()
    assert b.recv(16) == bytes([0x01, 0x09, 0x10, 0x00])
    assert s.read(16) == b""


def test_write_after_close_fails(pair):
    a, _ = pair
    with HCISocket(a) as s:
        pass
    with pytest.raises(HCISocketError):
        s.write(b"\x01")


def test_open_socket_off_linux(monkeypatch):
    monkeypatch.setattr("sys.platform", "win32")
    with pytest.raises(HCISocketError, match="only available on linux"):
        open_socket(-1)