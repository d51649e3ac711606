"""Advertisements received while scanning."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from blekit.advpacket import Packet, ServiceData, new_raw_packet
from blekit.hcievents import LEAdvertisingReport
from blekit.uuid import UUID

EVT_ADV_IND = 0x00
EVT_ADV_DIRECT_IND = 0x01
EVT_ADV_SCAN_IND = 0x02
EVT_ADV_NONCONN_IND = 0x03
EVT_SCAN_RSP = 0x04


@dataclass(frozen=True)
class Address:
    """A device address in display byte order; random addresses are flagged."""

    octets: bytes
    random: bool = False

    def __str__(self) -> str:
        return ":".join(f"{b:02x}" for b in self.octets)


class Advertisement:
    """One report of an LE advertising event, with its scan response if any."""

    def __init__(self, report: bytes, index: int) -> None:
        self._report = LEAdvertisingReport(report)
        self._index = index
        self._scan_response: Optional[Advertisement] = None

    def set_scan_response(self, response: "Advertisement") -> None:
        """Associate a scan response with this advertisement."""
        self._scan_response = response

    def _packets(self) -> Packet:
        return new_raw_packet(self.data(), self.scan_response())

    def local_name(self) -> str:
        name = self._packets().local_name()
        if name:
            return name
        if self._scan_response is not None:
            return self._scan_response.local_name()
        return ""

    def manufacturer_data(self) -> Optional[bytes]:
        return self._packets().manufacturer_data()

    def service_data(self) -> List[ServiceData]:
        return self._packets().service_data()

    def services(self) -> List[UUID]:
        return self._packets().uuids()

    def overflow_service(self) -> List[UUID]:
        return self._packets().uuids()

    def tx_power_level(self) -> int:
        power = self._packets().tx_power()
        return 0 if power is None else power

    def solicited_service(self) -> List[UUID]:
        return self._packets().service_sol()

    def connectable(self) -> bool:
        return self.event_type() in (EVT_ADV_DIRECT_IND, EVT_ADV_IND)

    def rssi(self) -> int:
        return self._report.rssi(self._index)

    def addr(self) -> Address:
        raw = self._report.address(self._index)
        return Address(raw[::-1], random=self.address_type() == 1)

    def event_type(self) -> int:
        return self._report.event_type(self._index)

    def address_type(self) -> int:
        return self._report.address_type(self._index)

    def data(self) -> bytes:
        return self._report.data(self._index)

    def scan_response(self) -> Optional[bytes]:
        if self._scan_response is None:
            return None
        return self._scan_response.data()