from __future__ import annotations

import random
import threading

import pytest

from twoplayer.link import LinkFrame
from twoplayer.net import Impairment, MemoryTransport, UdpTransport
from twoplayer.selfplay import _free_port


@pytest.fixture
def udp_pair():
    ports = (_free_port(), _free_port())
    a = UdpTransport.loopback(*ports, ack_timeout_ms=500)
    b = UdpTransport.loopback(*ports, ack_timeout_ms=500)
    assert a.configure(1, 2)
    assert b.configure(2, 1)
    yield a, b
    a.close()
    b.close()


def test_udp_send_is_acknowledged(udp_pair):
    a, b = udp_pair
    got = []
    reader = threading.Thread(target=lambda: got.append(b.receive_with_timeout(2000)))
    reader.start()
    assert a.send(b"hello") is True
    reader.join(5)
    assert got == [b"hello"]


def test_udp_receive_times_out(udp_pair):
    _, b = udp_pair
    assert b.receive_with_timeout(20) is None
    assert b.has_pending() is False


def test_udp_unanswered_send_is_not_acknowledged():
    ports = (_free_port(), _free_port())
    a = UdpTransport.loopback(*ports, ack_timeout_ms=50, retries=1)
    assert a.configure(1, 2)
    try:
        assert a.send(b"anyone?") is False
    finally:
        a.close()


def test_udp_repeated_frame_is_delivered_once(udp_pair):
    a, b = udp_pair
    frame = LinkFrame.data(1, 2, 77, b"once")
    a._sendto(frame)
    a._sendto(frame)
    assert b.receive_with_timeout(500) == b"once"
    assert b.receive_with_timeout(50) is None


def test_udp_ignores_frames_for_someone_else(udp_pair):
    a, b = udp_pair
    a._sendto(LinkFrame.data(1, 3, 5, b"stray"))
    assert b.receive_with_timeout(50) is None


def test_udp_unknown_player_fails_configure():
    t = UdpTransport({1: ("127.0.0.1", 0)})
    assert t.configure(1, 2) is False


def test_udp_rejects_oversized_payload(udp_pair):
    a, _ = udp_pair
    with pytest.raises(ValueError):
        a.send(bytes(a.max_datagram + 1))


def test_memory_send_needs_configured_peer():
    a, b = MemoryTransport.pair()
    assert a.configure(1, 2)
    assert a.send(b"early") is False
    assert b.configure(2, 1)
    assert a.send(b"ok") is True
    assert b.has_pending()
    assert b.receive_blocking() == b"ok"
    assert b.receive_with_timeout(10) is None


def test_memory_loss_drops_everything():
    a, b = MemoryTransport.pair(Impairment(loss_rate=1.0, rng=random.Random(0)))
    a.configure(1, 2)
    b.configure(2, 1)
    assert a.send(b"gone") is False
    assert not b.has_pending()


def test_memory_unpaired_end_cannot_configure():
    assert MemoryTransport().configure(1, 2) is False


def test_closed_memory_end_stops_acknowledging():
    a, b = MemoryTransport.pair()
    a.configure(1, 2)
    b.configure(2, 1)
    assert a.send(b"queued") is True
    b.close()
    assert not b.has_pending()
    assert a.send(b"late") is False


@pytest.mark.parametrize("kwargs", [{"loss_rate": -0.1}, {"loss_rate": 1.5}, {"delay_ms": -1}])
def test_impairment_rejects_nonsense(kwargs):
    with pytest.raises(ValueError):
        Impairment(**kwargs)


def test_seeded_impairment_repeats():
    first = Impairment.seeded(3, loss_rate=0.5)
    second = Impairment.seeded(3, loss_rate=0.5)
    assert [first.lost() for _ in range(20)] == [second.lost() for _ in range(20)]
