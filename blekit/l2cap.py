"""L2CAP over HCI ACL links: fragmentation, recombination and channel dispatch."""

from __future__ import annotations

import logging
import queue
import struct
import threading
from typing import Any, Callable, Optional

from blekit.advertisement import Address
from blekit.buffer import Pool, PoolClient
from blekit.smp import smp_response

_log = logging.getLogger(__name__)

# HCI packet types.
PKT_TYPE_COMMAND = 0x01
PKT_TYPE_ACL_DATA = 0x02
PKT_TYPE_SCO_DATA = 0x03
PKT_TYPE_EVENT = 0x04
PKT_TYPE_VENDOR = 0xFF

# Packet boundary flags of HCI ACL data packets.
PBF_HOST_TO_CONTROLLER_START = 0x00
PBF_CONTINUING = 0x01
PBF_CONTROLLER_TO_HOST_START = 0x02
PBF_COMPLETE_L2CAP_PDU = 0x03

# L2CAP channel identifiers on an LE-U link.
CID_LE_ATT = 0x0004
CID_LE_SIGNAL = 0x0005
CID_SMP = 0x0006

ROLE_MASTER = 0x00
ROLE_SLAVE = 0x01

DEFAULT_MTU = 23
MAX_MTU = 512

DISCONNECT_REASON_REMOTE_USER = 0x13


class AclPacket(bytes):
    """An HCI ACL data packet, without its leading packet-type byte."""

    def handle(self) -> int:
        return self[0] | ((self[1] & 0x0F) << 8)

    def pbf(self) -> int:
        return (self[1] >> 4) & 0x3

    def bcf(self) -> int:
        return (self[1] >> 6) & 0x3

    def dlen(self) -> int:
        return self[2] | (self[3] << 8)

    def data(self) -> bytes:
        return bytes(self[4:])


class Pdu(bytes):
    """An L2CAP basic frame: length, channel id and payload."""

    def dlen(self) -> int:
        return int.from_bytes(self[0:2], "little")

    def cid(self) -> int:
        return int.from_bytes(self[2:4], "little")

    def payload(self) -> bytes:
        return bytes(self[4:])


class LEFrame(Pdu):
    """An L2CAP LE-frame, carrying an SDU length after the basic header."""

    def slen(self) -> int:
        return int.from_bytes(self[4:6], "little")

    def payload(self) -> bytes:
        return bytes(self[6:])


class Connection:
    """One LE connection: segments outgoing SDUs and reassembles incoming PDUs.

    ``transport`` receives complete HCI packets through ``write(data)``.
    ``disconnect(connection_handle, reason)`` is called to ask the controller
    to drop the link. Incoming ACL packets are handed over with ``feed`` and
    reassembled on a background thread; ATT PDUs are then read with ``read``.
    """

    def __init__(
        self,
        transport: Any,
        connection_handle: int,
        peer_address: bytes,
        pool: Pool,
        disconnect: Callable[[int, int], Any],
    ) -> None:
        self._transport = transport
        self.connection_handle = connection_handle
        self.peer_address = bytes(peer_address)
        self._disconnect = disconnect

        self._rx_mtu = DEFAULT_MTU
        self.rx_mps = DEFAULT_MTU
        self.tx_mtu = DEFAULT_MTU
        self.le_frame = False

        self.tx_buffer = PoolClient(pool)
        self._packets: "queue.Queue[Optional[bytes]]" = queue.Queue()
        self._pdus: "queue.Queue[Optional[Pdu]]" = queue.Queue()
        self._done = threading.Event()

        self._reader = threading.Thread(target=self._recombine_loop, daemon=True)
        self._reader.start()

    @property
    def rx_mtu(self) -> int:
        """The MTU the upper layer is able to accept."""
        return self._rx_mtu

    @rx_mtu.setter
    def rx_mtu(self, mtu: int) -> None:
        self._rx_mtu = mtu
        self.rx_mps = mtu

    # Receiving.

    def feed(self, packet: bytes) -> None:
        """Hand over an incoming ACL packet (without the packet-type byte)."""
        self._packets.put(bytes(packet))

    def _recombine_loop(self) -> None:
        try:
            while True:
                try:
                    self.recombine()
                except EOFError:
                    return
                except ValueError as exc:
                    _log.error("recombine failed: %s", exc)
                    return
        finally:
            self._pdus.put(None)

    def recombine(self) -> None:
        """Reassemble the next L2CAP PDU from ACL fragments and dispatch it.

        Raises EOFError once the connection has been closed and ValueError
        when the fragments do not form a valid PDU.
        """
        pkt = self._packets.get()
        if pkt is None:
            raise EOFError("connection closed")
        first = AclPacket(pkt).data()
        if len(first) < 4:
            raise ValueError("short L2CAP header")
        header = Pdu(first)
        if header.cid() == CID_LE_ATT and header.dlen() > self.rx_mps:
            raise ValueError(
                f"fragment size ({header.dlen()}) larger than rxMPS ({self.rx_mps})"
            )
        buf = bytearray(first)
        while len(buf) < 4 + header.dlen():
            pkt = self._packets.get()
            if pkt is None or not AclPacket(pkt).pbf() & PBF_CONTINUING:
                raise ValueError("incomplete L2CAP PDU")
            buf += AclPacket(pkt).data()
        self._dispatch(Pdu(bytes(buf)))

    def _dispatch(self, pdu: Pdu) -> None:
        cid = pdu.cid()
        if cid == CID_LE_ATT:
            self._pdus.put(pdu)
        elif cid == CID_LE_SIGNAL:
            _log.debug("signaling PDU dropped [%s]", pdu.hex().upper())
        elif cid == CID_SMP:
            payload = pdu.payload()
            reply = smp_response(payload) if payload else None
            if reply is not None:
                try:
                    self.write_pdu(reply)
                except OSError as exc:
                    _log.error("can't send SMP response: %s", exc)
        else:
            _log.info("unrecognized CID %04X, [%s]", cid, pdu.hex().upper())

    def read(self) -> bytes:
        """Return the next reassembled ATT SDU, or b"" once the connection is closed."""
        pdu = self._pdus.get()
        if pdu is None:
            self._pdus.put(None)
            return b""
        if self.le_frame:
            frame = LEFrame(pdu)
            slen, data = frame.slen(), bytearray(frame.payload())
        else:
            slen, data = pdu.dlen(), bytearray(pdu.payload())
        while len(data) < slen:
            nxt = self._pdus.get()
            if nxt is None:
                self._pdus.put(None)
                return b""
            data += nxt.payload()
        return bytes(data[:slen])

    # Sending.

    def write(self, sdu: bytes) -> int:
        """Send an ATT SDU; return the number of bytes handed to the controller."""
        sdu = bytes(sdu)
        if len(sdu) > self.tx_mtu:
            raise ValueError("payload exceeds mtu")
        if self.le_frame:
            header = struct.pack("<HHH", len(sdu) + 2, CID_LE_ATT, len(sdu))
        else:
            header = struct.pack("<HH", len(sdu), CID_LE_ATT)
        return self.write_pdu(header + sdu)

    def write_pdu(self, pdu: bytes) -> int:
        """Fragment an L2CAP PDU into ACL packets sized to the controller's buffers."""
        pdu = bytes(pdu)
        max_fragment = self.tx_buffer.pool.size - 1 - 4
        if max_fragment <= 0:
            raise ValueError("buffer size too small for an ACL packet")
        sent = 0
        flags = PBF_HOST_TO_CONTROLLER_START
        # All fragments of one PDU go out before any other PDU on this link.
        with self.tx_buffer.locked():
            if self._done.is_set():
                raise BrokenPipeError("connection closed")
            while pdu:
                buf = self.tx_buffer.get()
                flen = min(len(pdu), max_fragment)
                handle_field = (self.connection_handle & 0x0FFF) | (flags << 12)
                buf += struct.pack("<BHH", PKT_TYPE_ACL_DATA, handle_field, flen)
                buf += pdu[:flen]
                if self._done.is_set():
                    raise BrokenPipeError("connection closed")
                self._transport.write(bytes(buf))
                sent += flen
                flags = PBF_CONTINUING
                pdu = pdu[flen:]
        return sent

    # Lifetime.

    def close(self) -> None:
        """Ask the controller to disconnect, unless already disconnected."""
        if self._done.is_set():
            return
        self._disconnect(self.connection_handle, DISCONNECT_REASON_REMOTE_USER)

    def mark_disconnected(self) -> None:
        """Record that the link is gone: stop input and recycle sent buffers."""
        self._packets.put(None)
        self._done.set()
        with self.tx_buffer.locked():
            self.tx_buffer.put_all()

    def disconnected(self) -> threading.Event:
        """Return an event that is set once the connection disconnects."""
        return self._done

    def remote_addr(self) -> Address:
        """Return the peer's device address."""
        return Address(self.peer_address[::-1])