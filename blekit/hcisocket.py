"""HCI user-channel sockets on Linux."""

from __future__ import annotations

import platform
import select
import socket
import struct
import sys
import threading
from typing import Any, List, Optional

try:
    import fcntl
except ImportError:  # not available outside POSIX
    fcntl = None  # type: ignore[assignment]

_IS_MIPS = platform.machine().lower().startswith("mips")

_DIRECTION_WRITE = 4 if _IS_MIPS else 1
_DIRECTION_READ = 2
_DIRECTION_SHIFT = 29 if _IS_MIPS else 30
_SIZE_SHIFT = 16
_TYPE_SHIFT = 8

_IOCTL_SIZE = 4
_HCI_MAX_DEVICES = 16
_TYP_HCI = 72  # 'H'
_HCI_CHANNEL_USER = 1
_DEVLIST_FORMAT = "<H2x" + "H2xI" * _HCI_MAX_DEVICES

_NOOP_COMMAND = bytes([0x01, 0x09, 0x10, 0x00])


class HCISocketError(OSError):
    """An HCI socket could not be opened, read or written."""


def io_read(typ: int, nr: int, size: int) -> int:
    """Build a read ioctl request number."""
    return (_DIRECTION_READ << _DIRECTION_SHIFT) | (typ << _TYPE_SHIFT) | nr | (size << _SIZE_SHIFT)


def io_write(typ: int, nr: int, size: int) -> int:
    """Build a write ioctl request number."""
    return (_DIRECTION_WRITE << _DIRECTION_SHIFT) | (typ << _TYPE_SHIFT) | nr | (size << _SIZE_SHIFT)


HCI_UP_DEVICE = io_write(_TYP_HCI, 201, _IOCTL_SIZE)
HCI_DOWN_DEVICE = io_write(_TYP_HCI, 202, _IOCTL_SIZE)
HCI_RESET_DEVICE = io_write(_TYP_HCI, 203, _IOCTL_SIZE)
HCI_GET_DEVICE_LIST = io_read(_TYP_HCI, 210, _IOCTL_SIZE)
HCI_GET_DEVICE_INFO = io_read(_TYP_HCI, 211, _IOCTL_SIZE)


class HCISocket:
    """An HCI user channel usable as a byte stream of packets."""

    def __init__(self, sock: Any) -> None:
        self._sock = sock
        self._closed = threading.Event()
        self._read_lock = threading.Lock()
        self._write_lock = threading.Lock()

    def read(self, size: int = 4096) -> bytes:
        """Read one packet; return b"" once the socket has been closed."""
        with self._read_lock:
            try:
                data = self._sock.recv(size)
            except OSError as exc:
                if self._closed.is_set():
                    return b""
                raise HCISocketError("can't read hci socket") from exc
        # A reply to the wake-up command sent by close() must not leak out.
        if self._closed.is_set():
            return b""
        return data

    def write(self, data: bytes) -> int:
        """Write one packet and return the number of bytes written."""
        with self._write_lock:
            try:
                return self._sock.send(data)
            except OSError as exc:
                raise HCISocketError("can't write hci socket") from exc

    def close(self) -> None:
        """Close the socket, waking up a blocked reader."""
        if self._closed.is_set():
            return
        self._closed.set()
        try:
            self.write(_NOOP_COMMAND)
        except HCISocketError:
            pass
        with self._read_lock:
            try:
                self._sock.close()
            except OSError as exc:
                raise HCISocketError("can't close hci socket") from exc

    def __enter__(self) -> "HCISocket":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def _ioctl(sock: socket.socket, request: int, arg: Any, message: str) -> Any:
    try:
        return fcntl.ioctl(sock.fileno(), request, arg)
    except OSError as exc:
        raise HCISocketError(f"{message}: {exc}") from exc


def _open(sock: socket.socket, device_id: int) -> HCISocket:
    # Reset the device in case a previous session didn't clean up.
    _ioctl(sock, HCI_DOWN_DEVICE, device_id, "can't down device")
    _ioctl(sock, HCI_UP_DEVICE, device_id, "can't up device")
    # The user channel requires exclusive access: the device must be down.
    _ioctl(sock, HCI_DOWN_DEVICE, device_id, "can't down device")
    try:
        sock.bind((device_id, _HCI_CHANNEL_USER))
    except (OSError, TypeError) as exc:
        raise HCISocketError(f"can't bind socket to hci user channel: {exc}") from exc
    readable, _, _ = select.select([sock], [], [], 0.02)
    if readable:
        sock.recv(100)
    return HCISocket(sock)


def _device_ids(sock: socket.socket) -> List[int]:
    buf = bytearray(struct.calcsize(_DEVLIST_FORMAT))
    struct.pack_into("<H", buf, 0, _HCI_MAX_DEVICES)
    try:
        fcntl.ioctl(sock.fileno(), HCI_GET_DEVICE_LIST, buf, True)
    except OSError as exc:
        raise HCISocketError(f"can't get device list: {exc}") from exc
    fields = struct.unpack(_DEVLIST_FORMAT, bytes(buf))
    count = min(fields[0], _HCI_MAX_DEVICES)
    return [fields[1 + 2 * i] for i in range(count)]


def open_socket(device_id: int = -1) -> HCISocket:
    """Open the HCI user channel of device_id, or of the first usable device if -1."""
    if (
        not sys.platform.startswith("linux")
        or fcntl is None
        or not hasattr(socket, "AF_BLUETOOTH")
    ):
        raise HCISocketError("only available on linux")
    try:
        sock = socket.socket(socket.AF_BLUETOOTH, socket.SOCK_RAW, socket.BTPROTO_HCI)
    except OSError as exc:
        raise HCISocketError(f"can't create socket: {exc}") from exc

    if device_id != -1:
        try:
            return _open(sock, device_id)
        except HCISocketError:
            sock.close()
            raise

    try:
        ids = _device_ids(sock)
    except HCISocketError:
        sock.close()
        raise
    errors: List[str] = []
    for index, dev in enumerate(ids):
        try:
            return _open(sock, dev)
        except HCISocketError as exc:
            errors.append(f"(hci{index}: {exc})")
    sock.close()
    raise HCISocketError(f"no devices available: {''.join(errors)}")