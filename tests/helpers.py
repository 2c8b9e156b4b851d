from __future__ import annotations

from collections import deque

from twoplayer.constants import MAX_DATAGRAM
from twoplayer.games.demo import DemoMove, DemoResult
from twoplayer.packet import Packet, PacketSubType, PacketType
from twoplayer.session import BaseHooks


class Blocked(Exception):
    """Raised by the test idle hook: the code under test would wait forever."""


def stall() -> None:
    raise Blocked()


class ScriptedTransport:
    """Transport fed from a script.

    ``incoming`` holds datagrams in arrival order; a ``None`` entry is a
    receive that times out. ``acks`` gives the ack flag for successive sends
    and defaults to True once used up.
    """

    max_datagram = MAX_DATAGRAM

    def __init__(self, incoming=(), acks=(), configure_ok=True):
        self.incoming = deque(incoming)
        self.acks = deque(acks)
        self.sent: list[bytes] = []
        self.configure_ok = configure_ok
        self.configured = None

    def configure(self, self_addr, peer_addr):
        self.configured = (self_addr, peer_addr)
        return self.configure_ok

    def send(self, payload):
        self.sent.append(bytes(payload))
        return self.acks.popleft() if self.acks else True

    def receive_with_timeout(self, timeout_ms):
        if not self.incoming:
            return None
        return self.incoming.popleft()

    def _skip_timeouts(self):
        while self.incoming and self.incoming[0] is None:
            self.incoming.popleft()

    def receive_blocking(self):
        self._skip_timeouts()
        if not self.incoming:
            raise Blocked()
        return self.incoming.popleft()

    def has_pending(self):
        self._skip_timeouts()
        return bool(self.incoming)

    def sent_types(self):
        return [PacketType(raw[1]) for raw in self.sent]


class RecordingGame(BaseHooks):
    """Handlers and hooks that record every call and leave the state alone on fatal errors."""

    move_type = DemoMove
    result_type = DemoResult

    def __init__(self, flip=True, ends=False):
        super().__init__()
        self.flip = flip
        self.ends = ends
        self.calls: list = []
        self.fatal: list[str] = []

    def coin_flip(self):
        self.calls.append("coin_flip")
        return self.flip

    def decide_move(self, move):
        self.calls.append(("decide_move", move.number))
        return move

    def generate_results(self, move):
        self.calls.append(("generate_results", move.number))
        result = DemoResult(data=7)
        result.subtype = PacketSubType.WIN if self.ends else PacketSubType.NORMAL_RESULT
        return result, self.ends

    def process_results(self, result):
        self.calls.append(("process_results", result.number))
        return self.ends

    def on_game_over(self):
        self.calls.append("on_game_over")

    def on_fatal_error(self, session, reason):
        self.fatal.append(reason)

    def on_flip_result(self, offerer_first):
        self.calls.append(("on_flip_result", offerer_first))

    def on_game_found(self):
        self.calls.append("on_game_found")


def control(kind, subtype=PacketSubType.NONE) -> bytes:
    return Packet(type=kind, subtype=subtype).to_bytes()


def move_bytes(number, subtype=PacketSubType.NORMAL_MOVE, data=(1, 2, 3, 4)) -> bytes:
    return DemoMove(number=number, subtype=subtype, data=list(data)).to_bytes()


def result_bytes(number, subtype=PacketSubType.NORMAL_RESULT, data=0) -> bytes:
    return DemoResult(number=number, subtype=subtype, data=data).to_bytes()
