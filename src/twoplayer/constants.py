from __future__ import annotations

# Game packet header: format version, type, subtype, move/result number.
HEADER_FORMAT = "!BBBH"
VERSION = 1

# Largest datagram the link layer will carry (RFM69 packet radio limit).
MAX_DATAGRAM = 60

PLAYER_1 = 1
PLAYER_2 = 2

OFFER_TRIES = 2
OFFER_TIMEOUT_MS = 1000
POLL_INTERVAL_MS = 1

# Link frame used by UdpTransport: version, kind, src, dst, link seq.
LINK_HEADER_FORMAT = "!BBBBH"
LINK_VERSION = 1
SHA1_LEN = 20

LINK_DATA = 0
LINK_ACK = 1

DEFAULT_ACK_TIMEOUT_MS = 200
DEFAULT_UDP_PORTS = {PLAYER_1: 47001, PLAYER_2: 47002}
