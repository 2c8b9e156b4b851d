"""Two Player Game engine.

Two peers at fixed addresses 1 and 2 share an acknowledged datagram link:
- ``packet``: typed packets with an explicit, fixed-size wire layout
- ``session``: the offer/seek/turn state machine driven by the host's loop
- ``net``: the transport contract plus UDP and in-process transports

Game rules plug in through move/result handlers; see ``twoplayer.games``.
"""

from .net import Impairment, MemoryTransport, Transport, UdpTransport
from .packet import Move, Packet, PacketSubType, PacketType, ProtocolError, Result, UnhandledSubtypeError
from .session import BaseHooks, GameState, Session, SessionConfig

__all__ = [
    "BaseHooks",
    "GameState",
    "Impairment",
    "MemoryTransport",
    "Move",
    "Packet",
    "PacketSubType",
    "PacketType",
    "ProtocolError",
    "Result",
    "Session",
    "SessionConfig",
    "Transport",
    "UdpTransport",
    "UnhandledSubtypeError",
]
