from __future__ import annotations

import enum
import logging
import struct
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable

from .constants import HEADER_FORMAT, MAX_DATAGRAM, POLL_INTERVAL_MS, VERSION

if TYPE_CHECKING:
    from .net import Transport

HEADER = struct.Struct(HEADER_FORMAT)


class ProtocolError(Exception):
    """A peer or a game handler broke the turn protocol."""


class UnhandledSubtypeError(ProtocolError):
    """A game handler has no rule for the subtype it was given."""


class PacketType(enum.IntEnum):
    NONE = 0
    OFFER = 1
    ACCEPT = 2
    MOVE = 3
    RESULT = 4
    FOUND = 5
    COIN_FLIP = 6

    @property
    def label(self) -> str:
        return _TYPE_LABELS[self]


class PacketSubType(enum.IntEnum):
    NONE = 0
    NORMAL_MOVE = 1
    PASS_MOVE = 2
    QUIT_MOVE = 3
    NORMAL_RESULT = 4
    HIT = 5
    MISS = 6
    WIN = 7
    LOSE = 8
    TIE = 9
    FLIP_TRUE = 10
    FLIP_FALSE = 11

    @property
    def label(self) -> str:
        return _SUBTYPE_LABELS[self]


_TYPE_LABELS = {
    PacketType.NONE: "No packet type",
    PacketType.OFFER: "Offering Game Packet",
    PacketType.ACCEPT: "Accepting Game Packet",
    PacketType.MOVE: "Move Packet",
    PacketType.RESULT: "Results Packet",
    PacketType.FOUND: "Found Game Packet",
    PacketType.COIN_FLIP: "Coin Flip Packet",
}

_SUBTYPE_LABELS = {
    PacketSubType.NONE: "No subtype",
    PacketSubType.NORMAL_MOVE: "Normal Move",
    PacketSubType.PASS_MOVE: "Pass Move",
    PacketSubType.QUIT_MOVE: "Quit Move",
    PacketSubType.NORMAL_RESULT: "Normal Results",
    PacketSubType.HIT: "Hit Results",
    PacketSubType.MISS: "Miss Results",
    PacketSubType.WIN: "Win Results",
    PacketSubType.LOSE: "Lose Results",
    PacketSubType.TIE: "Tie Results",
    PacketSubType.FLIP_TRUE: "Flip True",
    PacketSubType.FLIP_FALSE: "Flip False",
}

MOVE_SUBTYPES = frozenset(
    {PacketSubType.NORMAL_MOVE, PacketSubType.PASS_MOVE, PacketSubType.QUIT_MOVE}
)
RESULT_SUBTYPES = frozenset(
    {
        PacketSubType.NORMAL_RESULT,
        PacketSubType.HIT,
        PacketSubType.MISS,
        PacketSubType.WIN,
        PacketSubType.LOSE,
        PacketSubType.TIE,
    }
)


def default_idle() -> None:
    time.sleep(POLL_INTERVAL_MS / 1000.0)


def parse_header(raw: bytes) -> tuple[PacketType, PacketSubType, int]:
    if len(raw) < HEADER.size:
        raise ValueError("datagram too small to hold a packet header")
    version, kind, subtype, number = HEADER.unpack_from(raw)
    if version != VERSION:
        raise ValueError(f"version mismatch: expected {VERSION}, got {version}")
    return PacketType(kind), PacketSubType(subtype), number


@dataclass(slots=True)
class Packet:
    """A typed datagram exchanged between the two peers.

    The wire form is ``HEADER`` followed by the packing of ``FIELDS``, an
    ordered tuple of ``(attribute, struct format)`` pairs declared by each
    concrete subclass. A bare ``Packet`` has no payload and is used for the
    control packets (offer, accept, found, coin flip).

    Packets do not carry addresses; the transport they are bound to knows the
    peer. ``idle`` is called while ``require_type`` has nothing to read so the
    host gets a chance to run.
    """

    type: PacketType = PacketType.NONE
    subtype: PacketSubType = PacketSubType.NONE
    transport: Transport | None = field(default=None, repr=False, compare=False)
    idle: Callable[[], None] = field(default=default_idle, repr=False, compare=False)

    FIELDS = ()
    SUBTYPES = frozenset()

    def __init_subclass__(cls, **kwargs) -> None:
        cls._compile_payload()

    @classmethod
    def _compile_payload(cls) -> None:
        cls._payload = struct.Struct("!" + "".join(fmt for _, fmt in cls.FIELDS))
        cls._arity = tuple(
            len(struct.unpack("!" + fmt, bytes(struct.calcsize("!" + fmt))))
            for _, fmt in cls.FIELDS
        )
        if cls.size() > MAX_DATAGRAM:
            raise ValueError(
                f"{cls.__name__} encodes to {cls.size()} bytes; limit is {MAX_DATAGRAM}"
            )

    @classmethod
    def size(cls) -> int:
        return HEADER.size + cls._payload.size

    def bind(self, transport: Transport, idle: Callable[[], None] | None = None) -> Packet:
        self.transport = transport
        if idle is not None:
            self.idle = idle
        return self

    def describe(self) -> str:
        text = f"{self.type.label} size={self.size()}"
        if self.subtype != PacketSubType.NONE:
            text += f" subtype='{self.subtype.label}'"
        return text

    def _header_number(self) -> int:
        return 0

    def _set_number(self, number: int) -> None:
        pass

    def to_bytes(self) -> bytes:
        values: list[int] = []
        for (name, _), arity in zip(self.FIELDS, self._arity):
            value = getattr(self, name)
            if arity == 1:
                values.append(value)
            else:
                values.extend(value)
        header = HEADER.pack(VERSION, int(self.type), int(self.subtype), self._header_number())
        return header + self._payload.pack(*values)

    def _load(self, raw: bytes, kind: PacketType, subtype: PacketSubType, number: int) -> None:
        if len(raw) != self.size():
            raise ValueError(f"{kind.label} is {len(raw)} bytes, expected {self.size()}")
        if self.SUBTYPES and subtype not in self.SUBTYPES:
            raise ValueError(f"subtype '{subtype.label}' is not valid for a {kind.label}")

        values = self._payload.unpack_from(raw, HEADER.size)
        pos = 0
        for (name, _), arity in zip(self.FIELDS, self._arity):
            chunk = values[pos : pos + arity]
            setattr(self, name, chunk[0] if arity == 1 else list(chunk))
            pos += arity
        self.type = kind
        self.subtype = subtype
        self._set_number(number)

    def _take(self, raw: bytes, expected: PacketType) -> bool:
        try:
            kind, subtype, number = parse_header(raw)
            if kind != expected:
                logging.debug("got %s while waiting for %s; discarded", kind.label, expected.label)
                return False
            self._load(raw, kind, subtype, number)
        except ValueError as exc:
            logging.debug("dropped malformed packet: %s", exc)
            return False
        logging.debug("got %s", self.describe())
        return True

    def _link(self) -> Transport:
        if self.transport is None:
            raise RuntimeError(f"{type(self).__name__} is not bound to a transport")
        return self.transport

    def send(self) -> bool:
        """Transmit once. True if the peer acknowledged it."""
        if self._link().send(self.to_bytes()):
            logging.debug("sent %s (ack received)", self.describe())
            return True
        logging.debug("sent %s (no ack)", self.describe())
        return False

    def send_typed(self, kind: PacketType) -> bool:
        self.type = kind
        return self.send()

    def require_type_with_timeout(self, expected: PacketType, timeout_ms: int) -> bool:
        """Make one receive attempt.

        Returns False on timeout and also when the datagram that arrived is of
        another type; that datagram is dropped, not kept for a later call.
        """
        raw = self._link().receive_with_timeout(timeout_ms)
        if raw is None:
            return False
        return self._take(raw, expected)

    def require_type(self, expected: PacketType) -> None:
        """Wait, without a deadline, until a packet of ``expected`` type arrives.

        Everything else that arrives in the meantime is discarded.
        """
        transport = self._link()
        while True:
            if not transport.has_pending():
                self.idle()
                continue
            if self._take(transport.receive_blocking(), expected):
                return


Packet._compile_payload()


@dataclass(slots=True)
class NumberedPacket(Packet):
    number: int = 0

    def _header_number(self) -> int:
        return self.number

    def _set_number(self, number: int) -> None:
        self.number = number

    def describe(self) -> str:
        return f"{Packet.describe(self)} #{self.number}"


@dataclass(slots=True)
class Move(NumberedPacket):
    """Base for a game's move. Subclasses add ``FIELDS`` for their payload."""

    type: PacketType = PacketType.MOVE
    subtype: PacketSubType = PacketSubType.NORMAL_MOVE

    SUBTYPES = MOVE_SUBTYPES

    def require(self) -> None:
        self.require_type(PacketType.MOVE)


@dataclass(slots=True)
class Result(NumberedPacket):
    """Base for a game's answer to a move; ``number`` echoes the move's."""

    type: PacketType = PacketType.RESULT
    subtype: PacketSubType = PacketSubType.NORMAL_RESULT

    SUBTYPES = RESULT_SUBTYPES

    def require(self) -> None:
        self.require_type(PacketType.RESULT)
