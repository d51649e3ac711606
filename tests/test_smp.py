import pytest

from blekit.smp import CID_SMP, SMPCode, encode_smp, smp_response


def test_encode_layout():
    assert encode_smp(b"\x05\x05") == bytes([0x06, 0x00, 0x06, 0x00, 0x05, 0x05])


def test_encode_header_fields():
    payload = b"\x01\x02\x03"
    pdu = encode_smp(payload)
    assert int.from_bytes(pdu[2:4], "little") == CID_SMP
    assert int.from_bytes(pdu[0:2], "little") == 4 + len(payload)
    assert pdu[4:] == payload


def test_pairing_request_is_refused():
    reply = smp_response(bytes([SMPCode.PAIRING_REQUEST, 0x03, 0x00]))
    assert reply == encode_smp(bytes([SMPCode.PAIRING_FAILED, 0x05]))


@pytest.mark.parametrize("code", list(SMPCode))
def test_every_known_code_gets_pairing_failed(code):
    reply = smp_response(bytes([code]))
    assert reply[4] == SMPCode.PAIRING_FAILED


@pytest.mark.parametrize("code", [0x00, 0x0F, 0xFF])
def test_reserved_codes_ignored(code):
    assert smp_response(bytes([code])) is None


def test_empty_pdu_rejected():
    with pytest.raises(ValueError):
        smp_response(b"")