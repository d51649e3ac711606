from blekit.advertisement import (
    EVT_ADV_IND,
    EVT_ADV_NONCONN_IND,
    EVT_SCAN_RSP,
    Address,
    Advertisement,
)
from blekit.advpacket import complete_name, flags, manufacturer_data, new_packet, all_uuid
from blekit.uuid import uuid16

ADDRESS = bytes([0x01, 0x02, 0x03, 0x04, 0x05, 0x06])


def _report(event_type, data, addr_type=0, rssi=-70):
    return (
        bytes([0x02, 1, event_type, addr_type])
        + ADDRESS
        + bytes([len(data)])
        + data
        + bytes([rssi & 0xFF])
    )


def test_basic_fields():
    data = bytes(new_packet(flags(0x06), all_uuid(uuid16(0x180D)), complete_name("hr")))
    ad = Advertisement(_report(EVT_ADV_IND, data), 0)
    assert ad.data() == data
    assert ad.local_name() == "hr"
    assert ad.services() == [uuid16(0x180D)]
    assert ad.overflow_service() == [uuid16(0x180D)]
    assert ad.rssi() == -70
    assert ad.event_type() == EVT_ADV_IND


def test_connectable_depends_on_event_type():
    assert Advertisement(_report(EVT_ADV_IND, b""), 0).connectable() is True
    assert Advertisement(_report(EVT_ADV_NONCONN_IND, b""), 0).connectable() is False


def test_address_reversed_and_typed():
    ad = Advertisement(_report(EVT_ADV_IND, b""), 0)
    assert str(ad.addr()) == "06:05:04:03:02:01"
    assert ad.addr().random is False
    random_ad = Advertisement(_report(EVT_ADV_IND, b"", addr_type=1), 0)
    assert random_ad.address_type() == 1
    assert random_ad.addr() == Address(ADDRESS[::-1], random=True)


def test_scan_response_merges():
    ad = Advertisement(_report(EVT_ADV_IND, bytes(new_packet(flags(0x06)))), 0)
    assert ad.local_name() == ""
    assert ad.scan_response() is None
    sr_data = bytes(new_packet(complete_name("dev"), manufacturer_data(0x1234, b"\x01")))
    sr = Advertisement(_report(EVT_SCAN_RSP, sr_data), 0)
    ad.set_scan_response(sr)
    assert ad.scan_response() == sr_data
    assert ad.local_name() == "dev"
    assert ad.manufacturer_data()[2:] == b"\x01"


def test_missing_values_default():
    ad = Advertisement(_report(EVT_ADV_IND, b""), 0)
    assert ad.tx_power_level() == 0
    assert ad.manufacturer_data() is None
    assert ad.service_data() == []
    assert ad.solicited_service() == []