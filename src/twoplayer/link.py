from __future__ import annotations

import enum
import hashlib
import struct
from dataclasses import dataclass

from .constants import LINK_ACK, LINK_DATA, LINK_HEADER_FORMAT, LINK_VERSION, SHA1_LEN

LINK_HEADER = struct.Struct(LINK_HEADER_FORMAT)


class ChecksumError(ValueError):
    pass


class FrameKind(enum.IntEnum):
    DATA = LINK_DATA
    ACK = LINK_ACK


def _digest(header: bytes, payload: bytes) -> bytes:
    return hashlib.sha1(header + payload).digest()


@dataclass(frozen=True, slots=True)
class LinkFrame:
    """Addressed envelope for one game packet on the UDP link.

    Layout: ``LINK_HEADER`` (version, kind, src, dst, seq), the payload, then
    a SHA-1 trailer over both. An ACK carries no payload and echoes the seq
    of the DATA frame it answers.
    """

    kind: FrameKind
    src: int
    dst: int
    seq: int
    payload: bytes = b""

    @property
    def is_ack(self) -> bool:
        return self.kind == FrameKind.ACK

    def to_bytes(self) -> bytes:
        header = LINK_HEADER.pack(LINK_VERSION, int(self.kind), self.src, self.dst, self.seq)
        return header + self.payload + _digest(header, self.payload)

    @classmethod
    def from_bytes(cls, raw: bytes) -> LinkFrame:
        body_end = len(raw) - SHA1_LEN
        if body_end < LINK_HEADER.size:
            raise ValueError(f"{len(raw)}-byte datagram cannot hold a link frame")

        header, payload = raw[: LINK_HEADER.size], raw[LINK_HEADER.size : body_end]
        if _digest(header, payload) != raw[body_end:]:
            raise ChecksumError("link frame digest does not match its contents")

        version, kind, src, dst, seq = LINK_HEADER.unpack(header)
        if version != LINK_VERSION:
            raise ValueError(f"link frame v{version}; this end speaks v{LINK_VERSION}")
        return cls(FrameKind(kind), src, dst, seq, payload)

    @classmethod
    def data(cls, src: int, dst: int, seq: int, payload: bytes) -> LinkFrame:
        return cls(FrameKind.DATA, src, dst, seq, payload)

    def make_ack(self) -> LinkFrame:
        return LinkFrame(FrameKind.ACK, self.dst, self.src, self.seq)

    def acknowledges(self, seq: int) -> bool:
        return self.is_ack and self.seq == seq
