"""Attribute Protocol opcodes, error codes and the request/response objects handlers see."""

from __future__ import annotations

import enum
import struct
import threading
from dataclasses import dataclass
from typing import Any, Callable, Optional


class Opcode(enum.IntEnum):
    """ATT PDU opcodes."""

    ERROR_RESPONSE = 0x01
    EXCHANGE_MTU_REQUEST = 0x02
    EXCHANGE_MTU_RESPONSE = 0x03
    FIND_INFORMATION_REQUEST = 0x04
    FIND_INFORMATION_RESPONSE = 0x05
    FIND_BY_TYPE_VALUE_REQUEST = 0x06
    FIND_BY_TYPE_VALUE_RESPONSE = 0x07
    READ_BY_TYPE_REQUEST = 0x08
    READ_BY_TYPE_RESPONSE = 0x09
    READ_REQUEST = 0x0A
    READ_RESPONSE = 0x0B
    READ_BLOB_REQUEST = 0x0C
    READ_BLOB_RESPONSE = 0x0D
    READ_MULTIPLE_REQUEST = 0x0E
    READ_MULTIPLE_RESPONSE = 0x0F
    READ_BY_GROUP_TYPE_REQUEST = 0x10
    READ_BY_GROUP_TYPE_RESPONSE = 0x11
    WRITE_REQUEST = 0x12
    WRITE_RESPONSE = 0x13
    PREPARE_WRITE_REQUEST = 0x16
    PREPARE_WRITE_RESPONSE = 0x17
    EXECUTE_WRITE_REQUEST = 0x18
    EXECUTE_WRITE_RESPONSE = 0x19
    HANDLE_VALUE_NOTIFICATION = 0x1B
    HANDLE_VALUE_INDICATION = 0x1D
    HANDLE_VALUE_CONFIRMATION = 0x1E
    WRITE_COMMAND = 0x52
    SIGNED_WRITE_COMMAND = 0xD2


class ErrorCode(enum.IntEnum):
    """ATT error codes."""

    SUCCESS = 0x00
    INVALID_HANDLE = 0x01
    READ_NOT_PERMITTED = 0x02
    WRITE_NOT_PERMITTED = 0x03
    INVALID_PDU = 0x04
    INSUFFICIENT_AUTHENTICATION = 0x05
    REQUEST_NOT_SUPPORTED = 0x06
    INVALID_OFFSET = 0x07
    INSUFFICIENT_AUTHORIZATION = 0x08
    PREPARE_QUEUE_FULL = 0x09
    ATTRIBUTE_NOT_FOUND = 0x0A
    ATTRIBUTE_NOT_LONG = 0x0B
    INSUFFICIENT_ENCRYPTION_KEY_SIZE = 0x0C
    INVALID_ATTRIBUTE_VALUE_LENGTH = 0x0D
    UNLIKELY = 0x0E
    INSUFFICIENT_ENCRYPTION = 0x0F
    UNSUPPORTED_GROUP_TYPE = 0x10
    INSUFFICIENT_RESOURCES = 0x11


class ATTError(Exception):
    """An ATT error code reported by the peer or by a handler."""

    def __init__(self, code: int) -> None:
        try:
            self.code: int = ErrorCode(code)
        except ValueError:
            self.code = int(code)
        label = self.code.name if isinstance(self.code, ErrorCode) else "unknown"
        super().__init__(f"ATT error 0x{int(self.code):02X} ({label})")


class InvalidArgumentError(ValueError):
    """One or more of the arguments are invalid."""

    def __init__(self, message: str = "invalid argument") -> None:
        super().__init__(message)


class InvalidResponseError(Exception):
    """One or more of the response fields are invalid."""

    def __init__(self, message: str = "invalid response") -> None:
        super().__init__(message)


class SequentialTimeoutError(TimeoutError):
    """A request was not acknowledged within 30 seconds."""

    def __init__(self, message: str = "req timeout") -> None:
        super().__init__(message)


_RESPONSE_OF_REQUEST = {
    Opcode.EXCHANGE_MTU_REQUEST: Opcode.EXCHANGE_MTU_RESPONSE,
    Opcode.FIND_INFORMATION_REQUEST: Opcode.FIND_INFORMATION_RESPONSE,
    Opcode.FIND_BY_TYPE_VALUE_REQUEST: Opcode.FIND_BY_TYPE_VALUE_RESPONSE,
    Opcode.READ_BY_TYPE_REQUEST: Opcode.READ_BY_TYPE_RESPONSE,
    Opcode.READ_REQUEST: Opcode.READ_RESPONSE,
    Opcode.READ_BLOB_REQUEST: Opcode.READ_BLOB_RESPONSE,
    Opcode.READ_MULTIPLE_REQUEST: Opcode.READ_MULTIPLE_RESPONSE,
    Opcode.READ_BY_GROUP_TYPE_REQUEST: Opcode.READ_BY_GROUP_TYPE_RESPONSE,
    Opcode.WRITE_REQUEST: Opcode.WRITE_RESPONSE,
    Opcode.PREPARE_WRITE_REQUEST: Opcode.PREPARE_WRITE_RESPONSE,
    Opcode.EXECUTE_WRITE_REQUEST: Opcode.EXECUTE_WRITE_RESPONSE,
    Opcode.HANDLE_VALUE_INDICATION: Opcode.HANDLE_VALUE_CONFIRMATION,
}


def response_opcode(request_opcode: int) -> Optional[Opcode]:
    """Return the opcode that answers request_opcode, or None if it has none."""
    return _RESPONSE_OF_REQUEST.get(request_opcode)


def error_response(opcode: int, handle: int, code: int) -> bytes:
    """Build an Error Response PDU."""
    return struct.pack("<BBHB", Opcode.ERROR_RESPONSE, opcode, handle, code)


@dataclass
class Request:
    """A request passed to read and write handlers."""

    conn: Any
    data: bytes = b""
    offset: int = 0


class ResponseWriter:
    """Collects a handler's response value, capped at a capacity, and its status."""

    def __init__(self, capacity: Optional[int] = None) -> None:
        self.capacity = capacity
        self.status: int = ErrorCode.SUCCESS
        self._buf = bytearray()

    def write(self, data: bytes) -> int:
        """Append data, dropping whatever exceeds the capacity; return bytes kept."""
        chunk = bytes(data)
        if self.capacity is not None:
            chunk = chunk[: max(self.capacity - len(self._buf), 0)]
        self._buf.extend(chunk)
        return len(chunk)

    def value(self) -> bytes:
        """Return what has been written so far."""
        return bytes(self._buf)


class Notifier:
    """Sends notifications or indications until the peer unsubscribes."""

    def __init__(self, send: Callable[[bytes], Any]) -> None:
        self._send = send
        self._done = threading.Event()

    def write(self, data: bytes) -> Any:
        """Send data to the peer; raise BrokenPipeError once closed."""
        if self._done.is_set():
            raise BrokenPipeError("notifier closed")
        return self._send(bytes(data))

    def close(self) -> None:
        """Stop the notifier."""
        self._done.set()

    def closed(self) -> bool:
        """Report whether the notifier has been closed."""
        return self._done.is_set()

    def wait_closed(self, timeout: Optional[float] = None) -> bool:
        """Block until the notifier is closed or timeout passes."""
        return self._done.wait(timeout)