import struct

import pytest

from blekit.att import (
    ATTError,
    ErrorCode,
    InvalidArgumentError,
    InvalidResponseError,
    SequentialTimeoutError,
    error_response,
)
from blekit.attclient import AttClient


class FakeConn:
    def __init__(self, responder=None, reads=()):
        self.tx_mtu = 23
        self.rx_mtu = 23
        self.written = []
        self.responder = responder
        self.client = None
        self._reads = list(reads)

    def write(self, data):
        data = bytes(data)
        self.written.append(data)
        if self.responder is not None:
            for rsp in self.responder(data) or ():
                self.client.dispatch(rsp)
        return len(data)

    def read(self):
        if not self._reads:
            raise ConnectionResetError("gone")
        return self._reads.pop(0)


def make(mapping=None, handler=None, reads=()):
    mapping = mapping or {}
    conn = FakeConn(lambda req: mapping.get(req[0], []), reads)
    client = AttClient(conn, handler)
    conn.client = client
    return client, conn


def test_read_returns_value_and_sends_request():
    client, conn = make({0x0A: [b"\x0b" + b"hello"]})
    assert client.read(3) == b"hello"
    assert conn.written[0] == bytes([0x0A, 0x03, 0x00])


def test_error_response_raises_att_error():
    client, _ = make({0x0A: [error_response(0x0A, 3, ErrorCode.ATTRIBUTE_NOT_FOUND)]})
    with pytest.raises(ATTError) as info:
        client.read(3)
    assert info.value.code == ErrorCode.ATTRIBUTE_NOT_FOUND


def test_malformed_error_response_is_invalid():
    client, _ = make({0x0A: [b"\x01\x0a\x03\x00"]})
    with pytest.raises(InvalidResponseError):
        client.read(3)


@pytest.mark.parametrize("mtu", [22, 513])
def test_exchange_mtu_rejects_out_of_range(mtu):
    client, conn = make()
    with pytest.raises(InvalidArgumentError):
        client.exchange_mtu(mtu)
    assert conn.written == []


def test_exchange_mtu_updates_connection():
    client, conn = make({0x02: [b"\x03" + (100).to_bytes(2, "little")]})
    assert client.exchange_mtu(200) == 100
    assert conn.tx_mtu == 100
    assert conn.rx_mtu == 200
    assert conn.written[0] == struct.pack("<BH", 0x02, 200)


def test_find_information_validates_range():
    client, _ = make()
    with pytest.raises(InvalidArgumentError):
        client.find_information(0, 10)
    with pytest.raises(InvalidArgumentError):
        client.find_information(5, 4)


def test_find_information_format_one():
    body = struct.pack("<H", 4) + b"\x02\x29"
    client, conn = make({0x04: [b"\x05\x01" + body]})
    assert client.find_information(4, 0xFFFF) == (1, body)
    assert conn.written[0] == struct.pack("<BHH", 0x04, 4, 0xFFFF)


def test_find_information_bad_length_is_invalid():
    client, _ = make({0x04: [b"\x05\x01" + b"\x04\x00\x02\x29\x05"]})
    with pytest.raises(InvalidResponseError):
        client.find_information(4, 0xFFFF)


def test_read_by_type_rejects_bad_uuid():
    client, _ = make()
    with pytest.raises(InvalidArgumentError):
        client.read_by_type(1, 0xFFFF, b"\x01\x02\x03")


def test_read_by_type_round_trip():
    entry = b"\x02\x00\x02\x03\x00\x00\x2a"
    client, conn = make({0x08: [bytes([0x09, len(entry)]) + entry]})
    length, data = client.read_by_type(1, 0xFFFF, b"\x03\x28")
    assert (length, data) == (len(entry), entry)
    assert conn.written[0] == struct.pack("<BHH", 0x08, 1, 0xFFFF) + b"\x03\x28"


def test_read_by_group_type_uneven_list_is_invalid():
    client, _ = make({0x10: [b"\x11\x06" + b"\x01\x00\x05\x00\x00"]})
    with pytest.raises(InvalidResponseError):
        client.read_by_group_type(1, 0xFFFF, b"\x00\x28")


def test_read_multiple():
    client, conn = make({0x0E: [b"\x0f" + b"ab"]})
    with pytest.raises(InvalidArgumentError):
        client.read_multiple([1])
    assert client.read_multiple([1, 2]) == b"ab"
    assert conn.written[0] == struct.pack("<BHH", 0x0E, 1, 2)


def test_write_and_limits():
    client, conn = make({0x12: [b"\x13"]})
    with pytest.raises(InvalidArgumentError):
        client.write(1, bytes(21))
    client.write(5, b"xy")
    assert conn.written == [struct.pack("<BH", 0x12, 5) + b"xy"]


def test_write_command_and_signed_write():
    client, conn = make()
    client.write_command(7, b"v")
    signature = bytes(range(12))
    client.signed_write(7, b"v", signature)
    assert conn.written[0] == struct.pack("<BH", 0x52, 7) + b"v"
    assert conn.written[1] == struct.pack("<BH", 0xD2, 7) + b"v" + signature
    with pytest.raises(InvalidArgumentError):
        client.signed_write(7, bytes(9), signature)


def test_prepare_and_execute_write():
    def echo(req):
        if req[0] == 0x16:
            return [bytes([0x17]) + req[1:]]
        if req[0] == 0x18:
            return [b"\x19"]
        return []

    conn = FakeConn(echo)
    client = AttClient(conn)
    conn.client = client
    assert client.prepare_write(9, 4, b"abc") == (9, 4, b"abc")
    client.execute_write(1)
    assert conn.written[-1] == bytes([0x18, 0x01])


def test_unsolicited_request_is_refused_while_waiting():
    client, conn = make({0x0A: [b"\x0a\x01\x00", b"\x0b" + b"ok"]})
    assert client.read(1) == b"ok"
    assert conn.written[1] == error_response(0x0A, 0, ErrorCode.REQUEST_NOT_SUPPORTED)


def test_notification_and_indication():
    received = []
    client, conn = make(handler=received.append)
    notification = struct.pack("<BH", 0x1B, 3) + b"n"
    indication = struct.pack("<BH", 0x1D, 3) + b"i"
    client.dispatch(notification)
    client.dispatch(indication)
    assert received == [notification, indication]
    assert conn.written == [b"\x1e"]


def test_handler_object_receives_notifications():
    class Sink:
        def __init__(self):
            self.items = []

        def handle_notification(self, data):
            self.items.append(data)

    sink = Sink()
    client, _ = make(handler=sink)
    pdu = struct.pack("<BH", 0x1B, 9) + b"z"
    client.dispatch(pdu)
    assert sink.items == [pdu]


def test_peer_exchange_mtu_request():
    client, conn = make()
    conn.rx_mtu = 300
    client.dispatch(struct.pack("<BH", 0x02, 64))
    assert conn.written == [struct.pack("<BH", 0x03, 300)]
    assert conn.tx_mtu == 64


def test_peer_exchange_mtu_request_too_small():
    client, conn = make()
    client.dispatch(struct.pack("<BH", 0x02, 22))
    assert conn.written == [error_response(0x02, 0, ErrorCode.INVALID_PDU)]
    assert conn.tx_mtu == 23


def test_request_timeout():
    client, _ = make()
    client.request_timeout = 0.05
    with pytest.raises(SequentialTimeoutError):
        client.read(1)


def test_loop_delivers_and_passes_error():
    received = []
    notification = struct.pack("<BH", 0x1B, 2) + b"q"
    client, conn = make(handler=received.append, reads=[notification])
    client.loop()
    assert received == [notification]
    with pytest.raises(ConnectionResetError):
        client.read(2)


def test_loop_closed_connection_raises_eof():
    client, _ = make(reads=[b""])
    client.loop()
    with pytest.raises(EOFError):
        client.read(2)