"""Bluetooth Low Energy building blocks: UUIDs, advertising packets, HCI events, an ATT client, L2CAP framing and a Linux HCI socket."""

__version__ = "0.1.0"