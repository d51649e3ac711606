from blekit.hcievents import (
    CommandComplete,
    LEAdvertisingReport,
    NumberOfCompletedPackets,
)

ADDR0 = bytes([0x01, 0x02, 0x03, 0x04, 0x05, 0x06])
ADDR1 = bytes([0x0A, 0x0B, 0x0C, 0x0D, 0x0E, 0x0F])
DATA0 = b"\x02\x01\x06"
DATA1 = b"\x03\x09ab"


def _report():
    return LEAdvertisingReport(
        bytes([0x02, 2, 0x00, 0x04, 0x00, 0x01])
        + ADDR0
        + ADDR1
        + bytes([len(DATA0), len(DATA1)])
        + DATA0
        + DATA1
        + bytes([(-60) & 0xFF, (-75) & 0xFF])
    )


def test_command_complete():
    e = CommandComplete(bytes([1, 0x03, 0x0C, 0x00]))
    assert e.num_hci_command_packets() == 1
    assert e.command_opcode() == 0x0C03
    assert e.return_parameters() == b"\x00"


def test_number_of_completed_packets_interleaved():
    e = NumberOfCompletedPackets(bytes([0x02, 0x40, 0x00, 0x01, 0x00, 0x41, 0x00, 0x01, 0x00]))
    assert e.number_of_handles() == 2
    assert [e.connection_handle(i) for i in range(2)] == [0x40, 0x41]
    assert [e.completed_packets(i) for i in range(2)] == [1, 1]


def test_report_header():
    r = _report()
    assert r.subevent_code() == 0x02
    assert r.num_reports() == 2


def test_report_fields():
    r = _report()
    assert [r.event_type(i) for i in range(2)] == [0x00, 0x04]
    assert [r.address_type(i) for i in range(2)] == [0x00, 0x01]
    assert r.address(0) == ADDR0
    assert r.address(1) == ADDR1


def test_report_data_and_rssi():
    r = _report()
    assert r.length_data(1) == len(DATA1)
    assert r.data(0) == DATA0
    assert r.data(1) == DATA1
    assert r.rssi(0) == -60
    assert r.rssi(1) == -75