from __future__ import annotations

import struct
from dataclasses import dataclass

import pytest

from helpers import Blocked, ScriptedTransport, control, move_bytes, result_bytes, stall
from twoplayer.constants import VERSION
from twoplayer.games.demo import DemoMove, DemoResult
from twoplayer.packet import HEADER, Move, Packet, PacketSubType, PacketType


def test_control_packet_has_no_payload():
    raw = Packet(type=PacketType.OFFER).to_bytes()
    assert len(raw) == Packet.size() == HEADER.size
    assert HEADER.unpack(raw) == (VERSION, PacketType.OFFER, PacketSubType.NONE, 0)


def test_move_layout_is_fixed():
    raw = DemoMove(number=3, data=[1, -2, 3, 300]).to_bytes()
    assert len(raw) == DemoMove.size() == HEADER.size + 8
    assert struct.unpack("!4h", raw[HEADER.size :]) == (1, -2, 3, 300)
    assert DemoResult.size() == HEADER.size + 2


def test_send_reports_ack_and_never_retries():
    t = ScriptedTransport(acks=[False])
    p = Packet().bind(t)
    assert p.send_typed(PacketType.ACCEPT) is False
    assert p.type == PacketType.ACCEPT
    assert len(t.sent) == 1
    assert p.send() is True
    assert t.sent_types() == [PacketType.ACCEPT, PacketType.ACCEPT]


def test_unbound_packet_cannot_send():
    with pytest.raises(RuntimeError):
        Packet(type=PacketType.OFFER).send()


def test_timed_require_fills_matching_packet():
    t = ScriptedTransport([move_bytes(4, PacketSubType.PASS_MOVE, data=(9, 8, 7, 6))])
    m = DemoMove().bind(t)
    assert m.require_type_with_timeout(PacketType.MOVE, 100) is True
    assert m.number == 4
    assert m.subtype == PacketSubType.PASS_MOVE
    assert m.data == [9, 8, 7, 6]


def test_timed_require_false_on_timeout():
    t = ScriptedTransport([None])
    assert Packet().bind(t).require_type_with_timeout(PacketType.ACCEPT, 10) is False


def test_timed_require_discards_wrong_type():
    t = ScriptedTransport([control(PacketType.OFFER), control(PacketType.ACCEPT)])
    p = Packet(type=PacketType.FOUND).bind(t)
    assert p.require_type_with_timeout(PacketType.ACCEPT, 10) is False
    # the mismatched packet is gone and did not overwrite ours
    assert p.type == PacketType.FOUND
    assert len(t.incoming) == 1
    assert p.require_type_with_timeout(PacketType.ACCEPT, 10) is True


def test_require_type_skips_until_match():
    t = ScriptedTransport(
        [
            control(PacketType.OFFER),
            move_bytes(1),
            b"\x00",
            result_bytes(2, PacketSubType.HIT, data=5),
            control(PacketType.FOUND),
        ]
    )
    r = DemoResult().bind(t, stall)
    r.require()
    assert (r.number, r.subtype, r.data) == (2, PacketSubType.HIT, 5)
    assert len(t.incoming) == 1


def test_require_type_waits_when_nothing_arrives():
    t = ScriptedTransport([control(PacketType.OFFER)])
    with pytest.raises(Blocked):
        Packet().bind(t, stall).require_type(PacketType.ACCEPT)
    assert not t.incoming


@pytest.mark.parametrize(
    "raw",
    [
        b"\x01\x03",
        bytes([VERSION + 1]) + move_bytes(1)[1:],
        move_bytes(1)[:-1],
        move_bytes(1) + b"\x00",
        bytes([VERSION, PacketType.MOVE, PacketSubType.WIN, 0, 1]) + bytes(8),
        bytes([VERSION, 99, 0, 0, 1]) + bytes(8),
    ],
)
def test_malformed_datagrams_are_dropped(raw):
    t = ScriptedTransport([raw])
    m = DemoMove(number=42).bind(t)
    assert m.require_type_with_timeout(PacketType.MOVE, 10) is False
    assert m.number == 42


def test_oversized_packet_class_is_rejected():
    with pytest.raises(ValueError):

        @dataclass(slots=True)
        class HugeMove(Move):
            blob: bytes = b""

            FIELDS = (("blob", "100s"),)


def test_describe_uses_labels():
    assert DemoMove(number=2).describe() == "Move Packet size=13 subtype='Normal Move' #2"
    assert PacketSubType.TIE.label == "Tie Results"
    assert PacketType.COIN_FLIP.label == "Coin Flip Packet"
