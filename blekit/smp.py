"""Security Manager Protocol: every pairing attempt is refused."""

from __future__ import annotations

import enum
import logging
import struct
from typing import Optional

_log = logging.getLogger(__name__)

CID_SMP = 0x06
_PAIRING_NOT_SUPPORTED = 0x05


class SMPCode(enum.IntEnum):
    """SMP command codes."""

    PAIRING_REQUEST = 0x01
    PAIRING_RESPONSE = 0x02
    PAIRING_CONFIRM = 0x03
    PAIRING_RANDOM = 0x04
    PAIRING_FAILED = 0x05
    ENCRYPTION_INFORMATION = 0x06
    MASTER_IDENTIFICATION = 0x07
    IDENTITY_INFORMATION = 0x08
    IDENTITY_ADDRESS_INFORMATION = 0x09
    SIGNING_INFORMATION = 0x0A
    SECURITY_REQUEST = 0x0B
    PAIRING_PUBLIC_KEY = 0x0C
    PAIRING_DHKEY_CHECK = 0x0D
    PAIRING_KEYPRESS = 0x0E


def encode_smp(payload: bytes) -> bytes:
    """Wrap payload in an L2CAP header on the SMP channel."""
    data = bytes(payload)
    pdu = struct.pack("<HH", 4 + len(data), CID_SMP) + data
    _log.debug("smp send [%s]", pdu.hex().upper())
    return pdu


def smp_response(pdu: bytes) -> Optional[bytes]:
    """Return the reply to an incoming SMP PDU, or None if it is to be ignored.

    Known commands are answered with Pairing Failed (pairing not supported);
    reserved codes are ignored.
    """
    if not pdu:
        raise ValueError("empty SMP PDU")
    _log.debug("smp recv [%s]", bytes(pdu).hex().upper())
    try:
        SMPCode(pdu[0])
    except ValueError:
        return None
    return encode_smp(bytes([SMPCode.PAIRING_FAILED, _PAIRING_NOT_SUPPORTED]))