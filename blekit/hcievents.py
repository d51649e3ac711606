"""Accessors for HCI event payloads."""

from __future__ import annotations


class CommandComplete(bytes):
    """Command Complete event payload."""

    def num_hci_command_packets(self) -> int:
        return self[0]

    def command_opcode(self) -> int:
        return int.from_bytes(self[1:3], "little")

    def return_parameters(self) -> bytes:
        return bytes(self[3:])


class NumberOfCompletedPackets(bytes):
    """Number Of Completed Packets event payload.

    Handles and counts are interleaved per entry, as controllers deliver them.
    """

    def number_of_handles(self) -> int:
        return self[0]

    def connection_handle(self, index: int) -> int:
        start = 1 + index * 4
        return int.from_bytes(self[start : start + 2], "little")

    def completed_packets(self, index: int) -> int:
        start = 1 + index * 4 + 2
        return int.from_bytes(self[start : start + 2], "little")


class LEAdvertisingReport(bytes):
    """LE Advertising Report subevent payload."""

    def subevent_code(self) -> int:
        return self[0]

    def num_reports(self) -> int:
        return self[1]

    def event_type(self, index: int) -> int:
        return self[2 + index]

    def address_type(self, index: int) -> int:
        return self[2 + self.num_reports() + index]

    def address(self, index: int) -> bytes:
        start = 2 + self.num_reports() * 2 + 6 * index
        return bytes(self[start : start + 6])

    def length_data(self, index: int) -> int:
        return self[2 + self.num_reports() * 8 + index]

    def _data_start(self) -> int:
        return 2 + self.num_reports() * 9

    def data(self, index: int) -> bytes:
        offset = self._data_start() + sum(self.length_data(j) for j in range(index))
        return bytes(self[offset : offset + self.length_data(index)])

    def rssi(self, index: int) -> int:
        total = sum(self.length_data(j) for j in range(self.num_reports()))
        raw = self[self._data_start() + total + index]
        return raw - 256 if raw >= 128 else raw