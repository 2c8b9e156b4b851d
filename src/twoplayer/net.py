from __future__ import annotations

import logging
import queue
import random
import select
import socket
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Mapping, Protocol, Tuple

from .constants import DEFAULT_ACK_TIMEOUT_MS, MAX_DATAGRAM, POLL_INTERVAL_MS
from .link import LinkFrame


class Transport(Protocol):
    """Point-to-point datagram channel between two addressed peers.

    ``send`` reports whether the peer acknowledged the datagram; it does not
    retry on its own unless the concrete transport is told to.
    """

    max_datagram: int

    def configure(self, self_addr: int, peer_addr: int) -> bool: ...

    def send(self, payload: bytes) -> bool: ...

    def receive_with_timeout(self, timeout_ms: int) -> bytes | None: ...

    def receive_blocking(self) -> bytes: ...

    def has_pending(self) -> bool: ...


@dataclass(frozen=True, slots=True)
class Impairment:
    """Simulated bad link: each datagram is lost with ``loss_rate`` or else
    held for ``delay_ms``. Pass a seeded ``rng`` for a repeatable run."""

    loss_rate: float = 0.0
    delay_ms: int = 0
    rng: random.Random = field(default_factory=random.Random, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not 0.0 <= self.loss_rate <= 1.0:
            raise ValueError(f"loss_rate must lie in [0, 1], got {self.loss_rate}")
        if self.delay_ms < 0:
            raise ValueError(f"delay_ms must not be negative, got {self.delay_ms}")

    @classmethod
    def seeded(cls, seed: float | None, loss_rate: float = 0.0, delay_ms: int = 0) -> Impairment:
        return cls(loss_rate, delay_ms, random.Random(seed))

    def lost(self) -> bool:
        return self.loss_rate > 0 and self.rng.random() < self.loss_rate

    def delivers(self) -> bool:
        """False if the datagram is lost; otherwise wait out the delay."""
        if self.lost():
            return False
        if self.delay_ms:
            time.sleep(self.delay_ms / 1000.0)
        return True


class UdpTransport:
    """Acknowledged datagrams over UDP, one socket per player address.

    ``peers`` maps each player address to the ``(host, port)`` its socket is
    bound to. Every game packet travels in a ``LinkFrame``; the receiving side
    answers each DATA frame with an ACK carrying the same link sequence, and
    drops a repeated sequence after re-acknowledging it.
    """

    max_datagram = MAX_DATAGRAM

    def __init__(
        self,
        peers: Mapping[int, Tuple[str, int]],
        *,
        ack_timeout_ms: int = DEFAULT_ACK_TIMEOUT_MS,
        retries: int = 0,
        impairment: Impairment | None = None,
        poll_interval_ms: int = POLL_INTERVAL_MS,
    ):
        self.peers = dict(peers)
        self.ack_timeout_ms = ack_timeout_ms
        self.retries = retries
        self.impairment = impairment or Impairment()
        self.poll_interval_ms = poll_interval_ms
        self.sock: socket.socket | None = None
        self.addr = 0
        self.peer = 0
        self._inbox: deque[bytes] = deque()
        self._tx_seq = random.randrange(1 << 16)
        self._acked: int | None = None
        self._last_rx: int | None = None

    @classmethod
    def loopback(cls, port_1: int, port_2: int, **kwargs) -> "UdpTransport":
        return cls({1: ("127.0.0.1", port_1), 2: ("127.0.0.1", port_2)}, **kwargs)

    def configure(self, self_addr: int, peer_addr: int) -> bool:
        if self_addr not in self.peers or peer_addr not in self.peers:
            logging.error("no UDP endpoint for player %d or %d", self_addr, peer_addr)
            return False
        host, port = self.peers[self_addr]
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            sock.bind((host, port))
        except OSError as exc:
            sock.close()
            logging.error("cannot bind %s:%d: %s", host, port, exc)
            return False
        # Port 0 asks the OS for a free port; remember which one we got.
        self.peers[self_addr] = sock.getsockname()[:2]
        self.sock = sock
        self.addr = self_addr
        self.peer = peer_addr
        logging.info("player %d listening on %s:%d", self_addr, *self.peers[self_addr])
        return True

    def _socket(self) -> socket.socket:
        if self.sock is None:
            raise RuntimeError("transport used before configure()")
        return self.sock

    def _sendto(self, frame: LinkFrame) -> None:
        if not self.impairment.delivers():
            logging.debug("lost outbound %s seq=%d", frame.kind.name, frame.seq)
            return
        self._socket().sendto(frame.to_bytes(), self.peers[self.peer])

    def _pump(self, timeout_s: float) -> bool:
        """Read at most one datagram. Returns False if none was ready in time."""
        sock = self._socket()
        ready, _, _ = select.select([sock], [], [], max(0.0, timeout_s))
        if not ready:
            return False
        try:
            raw, _ = sock.recvfrom(65535)
        except (ConnectionResetError, ConnectionRefusedError):
            return False
        if self.impairment.lost():
            logging.debug("lost inbound %d bytes", len(raw))
            return True

        try:
            frame = LinkFrame.from_bytes(raw)
        except ValueError as exc:
            logging.debug("dropped bad frame: %s", exc)
            return True
        if frame.dst != self.addr or frame.src != self.peer:
            return True

        if frame.is_ack:
            if frame.acknowledges(self._tx_seq):
                self._acked = frame.seq
            return True

        self._sendto(frame.make_ack())
        if frame.seq == self._last_rx:
            logging.debug("duplicate frame seq=%d; re-acked", frame.seq)
            return True
        self._last_rx = frame.seq
        self._inbox.append(frame.payload)
        return True

    def send(self, payload: bytes) -> bool:
        if len(payload) > self.max_datagram:
            raise ValueError(f"payload too large: {len(payload)}")
        self._tx_seq = (self._tx_seq + 1) % (1 << 16)
        frame = LinkFrame.data(self.addr, self.peer, self._tx_seq, payload)

        for attempt in range(self.retries + 1):
            self._sendto(frame)
            deadline = time.monotonic() + self.ack_timeout_ms / 1000.0
            while self._acked != frame.seq:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                self._pump(remaining)
            if self._acked == frame.seq:
                return True
            logging.debug("no ack; seq=%d attempt=%d", frame.seq, attempt + 1)
        return False

    def receive_with_timeout(self, timeout_ms: int) -> bytes | None:
        deadline = time.monotonic() + timeout_ms / 1000.0
        while not self._inbox:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return None
            self._pump(remaining)
        return self._inbox.popleft()

    def receive_blocking(self) -> bytes:
        while not self._inbox:
            self._pump(self.poll_interval_ms / 1000.0)
        return self._inbox.popleft()

    def has_pending(self) -> bool:
        while self._pump(0.0):
            pass
        return bool(self._inbox)

    def close(self) -> None:
        if self.sock is not None:
            self.sock.close()
            self.sock = None


class MemoryTransport:
    """One end of an in-process link; build both ends with ``pair()``.

    A send is acknowledged only when the other end has been configured and the
    impairment did not drop the datagram. Inboxes are thread-safe queues so the
    two sessions can run in separate threads.
    """

    max_datagram = MAX_DATAGRAM

    def __init__(self, impairment: Impairment | None = None, poll_interval_ms: int = POLL_INTERVAL_MS):
        self.impairment = impairment or Impairment()
        self.poll_interval_ms = poll_interval_ms
        self.inbox: "queue.Queue[bytes]" = queue.Queue()
        self.peer_end: MemoryTransport | None = None
        self.configured = False
        self.addr = 0
        self.peer = 0

    @classmethod
    def pair(cls, impairment: Impairment | None = None) -> tuple["MemoryTransport", "MemoryTransport"]:
        a, b = cls(impairment), cls(impairment)
        a.peer_end, b.peer_end = b, a
        return a, b

    def configure(self, self_addr: int, peer_addr: int) -> bool:
        if self.peer_end is None:
            logging.error("memory transport has no peer end")
            return False
        self.addr = self_addr
        self.peer = peer_addr
        self.configured = True
        return True

    def send(self, payload: bytes) -> bool:
        if len(payload) > self.max_datagram:
            raise ValueError(f"payload too large: {len(payload)}")
        peer = self.peer_end
        if peer is None or not peer.configured:
            return False
        if not self.impairment.delivers():
            logging.debug("[player %d] lost outbound %d bytes", self.addr, len(payload))
            return False
        peer.inbox.put(bytes(payload))
        return True

    def receive_with_timeout(self, timeout_ms: int) -> bytes | None:
        try:
            return self.inbox.get(timeout=timeout_ms / 1000.0)
        except queue.Empty:
            return None

    def receive_blocking(self) -> bytes:
        while True:
            try:
                return self.inbox.get(timeout=self.poll_interval_ms / 1000.0)
            except queue.Empty:
                continue

    def has_pending(self) -> bool:
        return not self.inbox.empty()

    def close(self) -> None:
        """Stop accepting datagrams; later sends from the peer go unacknowledged."""
        self.configured = False
        while not self.inbox.empty():
            self.inbox.get_nowait()
