# blekit

Building blocks for Bluetooth Low Energy in pure Python: UUIDs, advertising
packets, HCI event decoding, ATT opcodes and an ATT client, L2CAP framing
over ACL links, a flow-controlled transmit buffer pool, an SMP responder and
a Linux HCI user-channel socket. There are no third-party dependencies.

## Installing

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## UUIDs (`blekit.uuid`)

```python
from blekit.uuid import parse, uuid16, name, contains

battery = uuid16(0x180F)
print(battery, name(battery))        # 180f Battery Service
custom = parse("34DA3AD1-7110-41A1-B1EF-4430F509CDE7")
print(len(custom))                   # 16
print(contains(None, battery))       # True: no filter matches everything
```

`UUID` is a `bytes` subclass holding the little-endian wire form; `str()`
gives the usual big-endian hex. `parse` raises `ValueError` for text that is
not hex or not 2 or 16 bytes long, and `uuid16` for values outside 16 bits.
`name` returns `""` for UUIDs it does not know.

## Advertising packets (`blekit.advpacket`)

```python
from blekit import advpacket

pkt = advpacket.new_packet(
    advpacket.flags(advpacket.FLAG_GENERAL_DISCOVERABLE | advpacket.FLAG_LE_ONLY),
    advpacket.complete_name("demo"),
)
print(pkt.local_name())              # demo
print(pkt.flags())                   # 6
print(bytes(pkt).hex())
```

Field builders: `flags`, `short_name`, `complete_name`, `manufacturer_data`,
`all_uuid`, `some_uuid`, `service_data16`, `ibeacon`, `ibeacon_data` and
`raw`. A field that would take the packet past 31 bytes raises `NotFitError`
and is not added; `ibeacon` raises `InvalidArgumentError` unless given a
16-byte UUID. Parsing works on any packet, including one built with
`new_raw_packet`: `field`, `flags`, `local_name`, `tx_power`, `uuids`,
`service_sol`, `service_data` (a list of `ServiceData`) and
`manufacturer_data`.

## HCI events and advertisements

`blekit.hcievents` reads `CommandComplete`, `NumberOfCompletedPackets` and
`LEAdvertisingReport` payloads. `blekit.advertisement.Advertisement` gives a
view of one report, merged with its scan response once `set_scan_response`
has been called:

```python
from blekit.advertisement import Advertisement

report = (
    bytes([0x02, 0x01, 0x00, 0x00])        # subevent, 1 report, ADV_IND, public
    + bytes([0x01, 0x02, 0x03, 0x04, 0x05, 0x06])  # made-up address
    + bytes([0x06]) + b"\x05\x09demo"      # data length and data
    + bytes([0xC4])                        # RSSI
)
ad = Advertisement(report, 0)
print(ad.local_name(), ad.rssi(), ad.connectable())  # demo -60 True
print(ad.addr())                                     # 06:05:04:03:02:01
```

## ATT (`blekit.att`, `blekit.attclient`)

`blekit.att` holds the `Opcode` and `ErrorCode` enums, the exceptions
`ATTError`, `InvalidArgumentError`, `InvalidResponseError` and
`SequentialTimeoutError`, `error_response` and `response_opcode`, and the
`Request`, `ResponseWriter` and `Notifier` objects.

`blekit.attclient.AttClient` issues requests over any connection object that
has settable `rx_mtu` and `tx_mtu`, `write(data)` and `read()`:
`exchange_mtu`, `find_information`, `read_by_type`, `read`, `read_blob`,
`read_multiple`, `read_by_group_type`, `write`, `write_command`,
`signed_write`, `prepare_write` and `execute_write`. Run `loop()` on its own
thread to receive responses, or push incoming PDUs with `dispatch(data)`.
Error responses from the server are raised as `ATTError`; a request with no
answer within 30 seconds raises `SequentialTimeoutError`. Notifications and
indications go to the handler given to the constructor, and indications are
confirmed automatically. An incoming Exchange MTU request is answered with the
connection's `rx_mtu`.

## L2CAP, buffers and SMP

- `blekit.l2cap.Connection` fragments outgoing SDUs into ACL packets sized
  to a `blekit.buffer.Pool` and hands them to a transport's `write`;
  incoming ACL packets given to `feed` are recombined on a background thread
  and ATT SDUs come out of `read`. Its `rx_mtu`/`tx_mtu`/`write`/`read` make
  it usable directly as the connection of an `AttClient`. `AclPacket`, `Pdu`
  and `LEFrame` decode the headers.
- `blekit.buffer.Pool` and `PoolClient` model the controller's
  flow-controlled buffers: `get` blocks until a buffer is free, `put` returns
  the oldest one and `put_all` returns all of them.
- `blekit.smp.smp_response` answers every known SMP command with Pairing
  Failed (pairing not supported) and ignores reserved codes.

## Linux HCI socket (`blekit.hcisocket`)

```python
from blekit.hcisocket import open_socket

with open_socket() as sock:          # first usable device; or open_socket(0)
    sock.write(bytes([0x01, 0x03, 0x0C, 0x00]))  # HCI Reset
    print(sock.read().hex())
```

`open_socket` brings the device down, binds the user channel (needing the
right privileges) and raises `HCISocketError` on failure or on any platform
other than Linux.

## What this package does not do

There is no GATT layer: no service, characteristic or descriptor objects, no
attribute database, no ATT server answering requests, and no GATT client for
discovering profiles or managing subscriptions. There is also no HCI command
layer that initialises a controller, scans, advertises or dials; those steps
are left to code built on `HCISocket`, `Connection` and `AttClient`. L2CAP
signaling PDUs are dropped rather than answered, and pairing is always
refused.