"""An Attribute Protocol client issuing requests to a connected server."""

from __future__ import annotations

import logging
import queue
import struct
import threading
from typing import Any, Callable, Iterable, Optional, Tuple, Union

from blekit.att import (
    ATTError,
    ErrorCode,
    InvalidArgumentError,
    InvalidResponseError,
    Opcode,
    SequentialTimeoutError,
    error_response,
    response_opcode,
)

_log = logging.getLogger(__name__)

DEFAULT_MTU = 23
MAX_MTU = 512

_WORK_QUEUE_SIZE = 16

_Work = Tuple[Callable[[bytes], Any], bytes]


class AttClient:
    """Sends ATT requests over a connection and matches them with responses.

    The connection must provide settable ``rx_mtu`` and ``tx_mtu`` attributes,
    ``write(data)`` and, for ``loop``, ``read()`` returning one ATT PDU
    (b"" once closed). ``handler`` receives notifications and indications,
    either as an object with ``handle_notification(data)`` or as a callable.
    """

    request_timeout = 30.0

    def __init__(self, conn: Any, handler: Any = None) -> None:
        self._conn = conn
        if handler is not None and hasattr(handler, "handle_notification"):
            self._notify: Optional[Callable[[bytes], Any]] = handler.handle_notification
        else:
            self._notify = handler
        # Serialises transactions: one outstanding request at a time.
        self._tx_lock = threading.Lock()
        self._incoming: "queue.Queue[Union[bytes, BaseException]]" = queue.Queue()

    # Requests.

    def exchange_mtu(self, client_rx_mtu: int) -> int:
        """Tell the server our receive MTU and return the server's."""
        if client_rx_mtu < DEFAULT_MTU or client_rx_mtu > MAX_MTU:
            raise InvalidArgumentError()
        with self._tx_lock:
            self._conn.rx_mtu = client_rx_mtu
            req = struct.pack("<BH", Opcode.EXCHANGE_MTU_REQUEST, client_rx_mtu)
            rsp = self._send_request(req)
            self._check(rsp, Opcode.EXCHANGE_MTU_RESPONSE, len(rsp) == 3)
            (tx_mtu,) = struct.unpack_from("<H", rsp, 1)
            if self._conn.tx_mtu != tx_mtu:
                self._conn.tx_mtu = tx_mtu
            return tx_mtu

    def find_information(self, start: int, end: int) -> Tuple[int, bytes]:
        """Return the format and the handle/type list of attributes in [start, end]."""
        if start == 0 or start > end:
            raise InvalidArgumentError()
        with self._tx_lock:
            req = struct.pack("<BHH", Opcode.FIND_INFORMATION_REQUEST, start, end)
            rsp = self._send_request(req)
        valid = len(rsp) >= 6
        if valid and rsp[1] == 0x01:
            valid = (len(rsp) - 2) % 4 == 0
        elif valid and rsp[1] == 0x02:
            valid = (len(rsp) - 2) % 18 == 0
        self._check(rsp, Opcode.FIND_INFORMATION_RESPONSE, valid)
        return rsp[1], bytes(rsp[2:])

    def read_by_type(self, start: int, end: int, uuid: bytes) -> Tuple[int, bytes]:
        """Return the entry length and the handle/value list of attributes of a type."""
        return self._typed_read(Opcode.READ_BY_TYPE_REQUEST, Opcode.READ_BY_TYPE_RESPONSE,
                                start, end, uuid)

    def read(self, handle: int) -> bytes:
        """Read the value of an attribute."""
        with self._tx_lock:
            rsp = self._send_request(struct.pack("<BH", Opcode.READ_REQUEST, handle))
        self._check(rsp, Opcode.READ_RESPONSE, len(rsp) >= 1)
        return bytes(rsp[1:])

    def read_blob(self, handle: int, offset: int) -> bytes:
        """Read part of an attribute's value starting at offset."""
        with self._tx_lock:
            req = struct.pack("<BHH", Opcode.READ_BLOB_REQUEST, handle, offset)
            rsp = self._send_request(req)
        self._check(rsp, Opcode.READ_BLOB_RESPONSE, len(rsp) >= 1)
        return bytes(rsp[1:])

    def read_multiple(self, handles: Iterable[int]) -> bytes:
        """Read the values of two or more attributes in one request."""
        handles = list(handles)
        if len(handles) < 2 or len(handles) * 2 > self._conn.tx_mtu - 1:
            raise InvalidArgumentError()
        with self._tx_lock:
            req = bytes([Opcode.READ_MULTIPLE_REQUEST]) + b"".join(
                struct.pack("<H", h) for h in handles
            )
            rsp = self._send_request(req)
        self._check(rsp, Opcode.READ_MULTIPLE_RESPONSE, len(rsp) >= 1)
        return bytes(rsp[1:])

    def read_by_group_type(self, start: int, end: int, uuid: bytes) -> Tuple[int, bytes]:
        """Return the entry length and the handle/end/value list of grouping attributes."""
        return self._typed_read(Opcode.READ_BY_GROUP_TYPE_REQUEST,
                                Opcode.READ_BY_GROUP_TYPE_RESPONSE, start, end, uuid)

    def write(self, handle: int, value: bytes) -> None:
        """Write an attribute's value and wait for the acknowledgement."""
        value = bytes(value)
        if len(value) > self._conn.tx_mtu - 3:
            raise InvalidArgumentError()
        with self._tx_lock:
            rsp = self._send_request(struct.pack("<BH", Opcode.WRITE_REQUEST, handle) + value)
        self._check(rsp, Opcode.WRITE_RESPONSE, True)

    def write_command(self, handle: int, value: bytes) -> None:
        """Write an attribute's value without a response."""
        value = bytes(value)
        if len(value) > self._conn.tx_mtu - 3:
            raise InvalidArgumentError()
        with self._tx_lock:
            self._conn.write(struct.pack("<BH", Opcode.WRITE_COMMAND, handle) + value)

    def signed_write(self, handle: int, value: bytes, signature: bytes) -> None:
        """Write an attribute's value with a 12-byte authentication signature."""
        value, signature = bytes(value), bytes(signature)
        if len(value) > self._conn.tx_mtu - 15 or len(signature) != 12:
            raise InvalidArgumentError()
        with self._tx_lock:
            pdu = struct.pack("<BH", Opcode.SIGNED_WRITE_COMMAND, handle) + value + signature
            self._conn.write(pdu)

    def prepare_write(self, handle: int, offset: int, value: bytes) -> Tuple[int, int, bytes]:
        """Queue part of a value on the server; return the echoed handle, offset and data."""
        value = bytes(value)
        if len(value) > self._conn.tx_mtu - 5:
            raise InvalidArgumentError()
        with self._tx_lock:
            req = struct.pack("<BHH", Opcode.PREPARE_WRITE_REQUEST, handle, offset) + value
            rsp = self._send_request(req)
        self._check(rsp, Opcode.PREPARE_WRITE_RESPONSE, len(rsp) >= 5)
        rsp_handle, rsp_offset = struct.unpack_from("<HH", rsp, 1)
        return rsp_handle, rsp_offset, bytes(rsp[5:])

    def execute_write(self, flags: int) -> None:
        """Write (flags 1) or cancel (flags 0) all prepared values."""
        with self._tx_lock:
            rsp = self._send_request(bytes([Opcode.EXECUTE_WRITE_REQUEST, flags & 0xFF]))
        self._check(rsp, Opcode.EXECUTE_WRITE_RESPONSE, True)

    # Transport.

    def _typed_read(self, req_op: int, rsp_op: int, start: int, end: int,
                    uuid: bytes) -> Tuple[int, bytes]:
        uuid = bytes(uuid)
        if start > end or len(uuid) not in (2, 16):
            raise InvalidArgumentError()
        with self._tx_lock:
            rsp = self._send_request(struct.pack("<BHH", req_op, start, end) + uuid)
        valid = len(rsp) >= 4 and rsp[1] != 0 and len(rsp[2:]) % rsp[1] == 0
        self._check(rsp, rsp_op, valid)
        return rsp[1], bytes(rsp[2:])

    @staticmethod
    def _check(rsp: bytes, expected: int, valid: bool) -> None:
        if rsp[0] == Opcode.ERROR_RESPONSE:
            if len(rsp) == 5:
                raise ATTError(rsp[4])
            raise InvalidResponseError()
        if rsp[0] != expected or not valid:
            raise InvalidResponseError()

    def _send_request(self, req: bytes) -> bytes:
        _log.debug("client req %s", req.hex(" ").upper())
        self._conn.write(req)
        expected = response_opcode(req[0])
        while True:
            try:
                item = self._incoming.get(timeout=self.request_timeout)
            except queue.Empty:
                raise SequentialTimeoutError() from None
            if isinstance(item, BaseException):
                raise item
            if item[0] == Opcode.ERROR_RESPONSE or item[0] == expected:
                return item
            # Some peers send requests of their own while ours is pending;
            # refuse them and keep waiting for our response.
            self._conn.write(error_response(item[0], 0x0000, ErrorCode.REQUEST_NOT_SUPPORTED))

    # Incoming PDUs.

    def dispatch(self, data: bytes) -> None:
        """Route one incoming PDU, handling requests and notifications at once."""
        self._route(bytes(data), lambda fn, b: fn(b))

    def _route(self, data: bytes, schedule: Callable[[Callable[[bytes], Any], bytes], None]) -> None:
        if not data:
            return
        _log.debug("client rsp %s", data.hex(" ").upper())
        opcode = data[0]
        if opcode == Opcode.EXCHANGE_MTU_REQUEST:
            schedule(self._handle_request, data)
            return
        if opcode not in (Opcode.HANDLE_VALUE_NOTIFICATION, Opcode.HANDLE_VALUE_INDICATION):
            self._incoming.put(data)
            return
        if self._notify is not None:
            schedule(self._notify, data)
        else:
            _log.warning("notification received without a handler")
        # An indication is always acknowledged, even an invalid one.
        if opcode == Opcode.HANDLE_VALUE_INDICATION:
            try:
                self._conn.write(bytes([Opcode.HANDLE_VALUE_CONFIRMATION]))
            except OSError as exc:
                _log.error("can't confirm indication: %s", exc)

    def loop(self) -> None:
        """Read PDUs from the connection until it fails or closes."""
        work: "queue.Queue[Optional[_Work]]" = queue.Queue(maxsize=_WORK_QUEUE_SIZE + 1)

        def worker() -> None:
            while True:
                item = work.get()
                if item is None:
                    return
                fn, data = item
                try:
                    fn(data)
                except Exception:
                    _log.exception("handler failed")

        def schedule(fn: Callable[[bytes], Any], data: bytes) -> None:
            if work.qsize() >= _WORK_QUEUE_SIZE:
                _log.error("can't enqueue incoming PDU")
                return
            work.put((fn, data))

        thread = threading.Thread(target=worker, daemon=True)
        thread.start()
        try:
            while True:
                try:
                    data = self._conn.read()
                except Exception as exc:  # the bearer failed: pass it to the pending request
                    self._incoming.put(exc)
                    return
                if not data:
                    self._incoming.put(EOFError("connection closed"))
                    return
                self._route(bytes(data), schedule)
        finally:
            work.put(None)
            thread.join()

    def _handle_request(self, data: bytes) -> None:
        if data[0] == Opcode.EXCHANGE_MTU_REQUEST:
            rsp = self._handle_exchange_mtu_request(data)
            try:
                self._conn.write(rsp)
            except OSError as exc:
                _log.error("error sending MTU response: %s", exc)
            return
        self._conn.write(error_response(data[0], 0x0000, ErrorCode.REQUEST_NOT_SUPPORTED))
        _log.warning("received unhandled request [0x%s]", data.hex().upper())

    def _handle_exchange_mtu_request(self, r: bytes) -> bytes:
        with self._tx_lock:
            if len(r) != 3 or struct.unpack_from("<H", r, 1)[0] < DEFAULT_MTU:
                return error_response(r[0], 0x0000, ErrorCode.INVALID_PDU)
            (tx_mtu,) = struct.unpack_from("<H", r, 1)
            rx_mtu = self._conn.rx_mtu
            _log.debug("server requested an MTU change to TX:%d RX:%d", tx_mtu, rx_mtu)
            self._conn.tx_mtu = tx_mtu
            return struct.pack("<BH", Opcode.EXCHANGE_MTU_RESPONSE, rx_mtu)