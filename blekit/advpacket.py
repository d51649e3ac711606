"""Advertising packets and scan responses: building and parsing EIR data."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Callable, Iterator, List, Optional, Tuple

from blekit.uuid import UUID, reverse, uuid16

MAX_EIR_PACKET_LENGTH = 31
"""Maximum length of an advertising packet or a scan response."""

FLAG_LIMITED_DISCOVERABLE = 0x01
FLAG_GENERAL_DISCOVERABLE = 0x02
FLAG_LE_ONLY = 0x04
FLAG_BOTH_CONTROLLER = 0x08
FLAG_BOTH_HOST = 0x10

_FLAGS = 0x01
_SOME_UUID16 = 0x02
_ALL_UUID16 = 0x03
_SOME_UUID32 = 0x04
_ALL_UUID32 = 0x05
_SOME_UUID128 = 0x06
_ALL_UUID128 = 0x07
_SHORT_NAME = 0x08
_COMPLETE_NAME = 0x09
_TX_POWER = 0x0A
_SERVICE_SOL16 = 0x14
_SERVICE_SOL128 = 0x15
_SERVICE_DATA16 = 0x16
_SERVICE_SOL32 = 0x1F
_SERVICE_DATA32 = 0x20
_SERVICE_DATA128 = 0x21
_MANUFACTURER_DATA = 0xFF

_APPLE_COMPANY_ID = 0x004C


class AdvertisingError(Exception):
    """Base class for advertising packet errors."""


class InvalidArgumentError(AdvertisingError, ValueError):
    """An argument given to a field is invalid."""

    def __init__(self, message: str = "invalid argument") -> None:
        super().__init__(message)


class NotFitError(AdvertisingError):
    """The field does not fit into the packet."""

    def __init__(self, message: str = "data not fit") -> None:
        super().__init__(message)


@dataclass(frozen=True)
class ServiceData:
    """Data associated with a service UUID."""

    uuid: UUID
    data: bytes


class Packet:
    """An advertising packet or scan response."""

    def __init__(self, data: bytes = b"") -> None:
        self._data = bytearray(data)

    def __bytes__(self) -> bytes:
        return bytes(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"Packet({bytes(self._data).hex()})"

    def append(self, field: "Field") -> None:
        """Append a field; raise NotFitError and leave the packet as is if it does not fit."""
        field(self)

    def _add(self, typ: int, payload: bytes) -> None:
        if len(self._data) + 2 + len(payload) > MAX_EIR_PACKET_LENGTH:
            raise NotFitError()
        self._data.append(len(payload) + 1)
        self._data.append(typ)
        self._data.extend(payload)

    def _add_raw(self, payload: bytes) -> None:
        if len(self._data) + len(payload) > MAX_EIR_PACKET_LENGTH:
            raise NotFitError()
        self._data.extend(payload)

    def _fields(self) -> Iterator[Tuple[int, bytes]]:
        b = bytes(self._data)
        pos = 0
        while len(b) - pos >= 2:
            length, typ = b[pos], b[pos + 1]
            if length < 1 or len(b) - pos < 1 + length:
                return
            yield typ, b[pos + 2 : pos + 1 + length]
            pos += 1 + length

    def field(self, typ: int) -> Optional[bytes]:
        """Return the data of the first field of type typ, or None."""
        return next((d for t, d in self._fields() if t == typ), None)

    def flags(self) -> Optional[int]:
        """Return the advertising flags, or None if absent."""
        b = self.field(_FLAGS)
        if not b:
            return None
        return b[0]

    def local_name(self) -> str:
        """Return the short name if present, else the complete name, else ""."""
        b = self.field(_SHORT_NAME)
        if b is None:
            b = self.field(_COMPLETE_NAME) or b""
        return b.decode("utf-8", errors="replace")

    def tx_power(self) -> Optional[int]:
        """Return the Tx power level, or None if absent."""
        b = self.field(_TX_POWER)
        if not b:
            return None
        return struct.unpack("b", b[:1])[0]

    def uuids(self) -> List[UUID]:
        """Return the service UUIDs, complete and incomplete lists alike."""
        result: List[UUID] = []
        for typ, width in (
            (_SOME_UUID16, 2),
            (_ALL_UUID16, 2),
            (_SOME_UUID32, 4),
            (_ALL_UUID32, 4),
            (_SOME_UUID128, 16),
            (_ALL_UUID128, 16),
        ):
            for t, d in self._fields():
                if t == typ:
                    result.extend(_uuid_list(d, width))
        return result

    def service_sol(self) -> List[UUID]:
        """Return the solicited service UUIDs."""
        result: List[UUID] = []
        for typ, width in ((_SERVICE_SOL16, 2), (_SERVICE_SOL32, 4), (_SERVICE_SOL128, 16)):
            d = self.field(typ)
            if d is not None:
                result.extend(_uuid_list(d, width))
        return result

    def service_data(self) -> List[ServiceData]:
        """Return the service data entries."""
        result: List[ServiceData] = []
        for typ, width in (
            (_SERVICE_DATA16, 2),
            (_SERVICE_DATA32, 4),
            (_SERVICE_DATA128, 16),
        ):
            d = self.field(typ)
            if d is not None and len(d) >= width:
                result.append(ServiceData(UUID(d[:width]), bytes(d[width:])))
        return result

    def manufacturer_data(self) -> Optional[bytes]:
        """Return the manufacturer specific data, or None."""
        return self.field(_MANUFACTURER_DATA)


Field = Callable[[Packet], None]


def _uuid_list(data: bytes, width: int) -> List[UUID]:
    return [UUID(data[i : i + width]) for i in range(0, len(data) - width + 1, width)]


def new_packet(*args: Field) -> Packet:
    """Build a packet from fields."""
    packet = Packet()
    for field in args:
        field(packet)
    return packet


def new_raw_packet(*args: Optional[bytes]) -> Packet:
    """Build a packet by concatenating raw byte strings."""
    return Packet(b"".join(bytes(b) for b in args if b))


def raw(data: bytes) -> Field:
    """Field that appends raw bytes."""
    payload = bytes(data)
    return lambda p: p._add_raw(payload)


def ibeacon_data(data: bytes) -> Field:
    """Field of iBeacon manufacturer data."""
    return manufacturer_data(_APPLE_COMPANY_ID, data)


def ibeacon(u: bytes, major: int, minor: int, power: int) -> Field:
    """Field of an iBeacon advertisement with the given parameters."""

    def _apply(p: Packet) -> None:
        if len(u) != 16:
            raise InvalidArgumentError()
        try:
            tail = struct.pack(">HHb", major, minor, power)
        except struct.error as exc:
            raise InvalidArgumentError(str(exc)) from exc
        md = bytes([0x02, 0x15]) + reverse(u) + tail
        manufacturer_data(_APPLE_COMPANY_ID, md)(p)

    return _apply


def flags(value: int) -> Field:
    """Flags field."""
    return lambda p: p._add(_FLAGS, bytes([value]))


def short_name(text: str) -> Field:
    """Shortened local name field."""
    payload = text.encode("utf-8")
    return lambda p: p._add(_SHORT_NAME, payload)


def complete_name(text: str) -> Field:
    """Complete local name field."""
    payload = text.encode("utf-8")
    return lambda p: p._add(_COMPLETE_NAME, payload)


def manufacturer_data(company_id: int, data: bytes) -> Field:
    """Manufacturer specific data field."""
    payload = (company_id & 0xFFFF).to_bytes(2, "little") + bytes(data)
    return lambda p: p._add(_MANUFACTURER_DATA, payload)


def _uuid_field(u: bytes, by_len: dict) -> Field:
    payload = bytes(u)
    typ = by_len.get(len(payload), by_len[16])
    return lambda p: p._add(typ, payload)


def all_uuid(u: bytes) -> Field:
    """One entry of the complete service UUID list."""
    return _uuid_field(u, {2: _ALL_UUID16, 4: _ALL_UUID32, 16: _ALL_UUID128})


def some_uuid(u: bytes) -> Field:
    """One entry of the incomplete service UUID list."""
    return _uuid_field(u, {2: _SOME_UUID16, 4: _SOME_UUID32, 16: _SOME_UUID128})


def service_data16(uuid_value: int, data: bytes) -> Field:
    """Service data for a 16-bit service UUID, preceded by the UUID itself."""
    u = uuid16(uuid_value)

    def _apply(p: Packet) -> None:
        p._add(_ALL_UUID16, bytes(u))
        p._add(_SERVICE_DATA16, bytes(u) + bytes(data))

    return _apply