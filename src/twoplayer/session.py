from __future__ import annotations

import enum
import logging
import random
from dataclasses import dataclass
from typing import Callable, Protocol, TypeVar

from .constants import OFFER_TIMEOUT_MS, OFFER_TRIES, PLAYER_1, PLAYER_2
from .net import Transport
from .packet import (
    RESULT_SUBTYPES,
    Move,
    Packet,
    PacketSubType,
    PacketType,
    ProtocolError,
    Result,
    default_idle,
)

P = TypeVar("P", bound=Packet)


class GameState(enum.Enum):
    OFFERING = "Offering Game"
    SEEKING = "Seeking Game"
    MY_TURN = "My Turn"
    OPPONENTS_TURN = "Opponent's Turn"
    GAME_OVER = "Game Over"

    @property
    def label(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class SessionConfig:
    offer_tries: int = OFFER_TRIES
    offer_timeout_ms: int = OFFER_TIMEOUT_MS


class MoveHandler(Protocol):
    move_type: type[Move]

    def decide_move(self, move: Move) -> Move: ...


class ResultHandler(Protocol):
    result_type: type[Result]

    def generate_results(self, move: Move) -> tuple[Result, bool]: ...

    def process_results(self, result: Result) -> bool: ...


class SessionHooks(Protocol):
    def coin_flip(self) -> bool: ...

    def on_game_over(self) -> None: ...

    def on_fatal_error(self, session: "Session", reason: str) -> None: ...

    def on_flip_result(self, offerer_first: bool) -> None: ...

    def on_game_found(self) -> None: ...


class BaseHooks:
    """Default lifecycle hooks: a fair coin and log-only notifications.

    A fatal error ends the game, so the session goes back to offering on the
    following step.
    """

    def __init__(self, rng: random.Random | None = None):
        self.rng = rng or random.Random()

    def coin_flip(self) -> bool:
        return self.rng.random() < 0.5

    def on_game_over(self) -> None:
        logging.info("game over")

    def on_fatal_error(self, session: "Session", reason: str) -> None:
        session.state = GameState.GAME_OVER

    def on_flip_result(self, offerer_first: bool) -> None:
        logging.info("coin flip: %s moves first", "opponent" if offerer_first else "we")

    def on_game_found(self) -> None:
        logging.info("found a game; waiting on the coin flip")


class Session:
    """Drives one peer through offer/accept, the coin flip and alternating turns.

    The host calls ``start()`` once and then ``step()`` from its own loop; each
    step runs the handler for the current state to completion. Waits inside a
    step poll the transport and call ``idle`` between polls.

    ``moves`` and ``results`` hold the game rules, ``hooks`` the lifecycle
    callbacks; one game object may play all three parts.
    """

    def __init__(
        self,
        moves: MoveHandler,
        results: ResultHandler,
        transport: Transport,
        is_player_1: bool,
        hooks: SessionHooks | None = None,
        config: SessionConfig | None = None,
        idle: Callable[[], None] | None = None,
    ):
        self.moves = moves
        self.results = results
        self.transport = transport
        self.hooks = hooks if hooks is not None else BaseHooks()
        self.config = config or SessionConfig()
        self.idle = idle or default_idle
        if is_player_1:
            self.my_address, self.peer_address = PLAYER_1, PLAYER_2
        else:
            self.my_address, self.peer_address = PLAYER_2, PLAYER_1
        for packet_type in (moves.move_type, results.result_type):
            if packet_type.size() > transport.max_datagram:
                raise ValueError(
                    f"{packet_type.__name__} encodes to {packet_type.size()} bytes; "
                    f"transport carries at most {transport.max_datagram}"
                )
        self.state = GameState.OFFERING
        self.move_number = 1
        self.fatal_errors = 0

    def start(self) -> bool:
        if not self.transport.configure(self.my_address, self.peer_address):
            logging.error("transport setup failed for player %d", self.my_address)
            return False
        self.initialize()
        return True

    def initialize(self) -> None:
        self.state = GameState.OFFERING
        self.move_number = 1

    def step(self) -> None:
        handler = {
            GameState.OFFERING: self._offering,
            GameState.SEEKING: self._seeking,
            GameState.MY_TURN: self._my_turn,
            GameState.OPPONENTS_TURN: self._opponents_turn,
            GameState.GAME_OVER: self._game_over,
        }[self.state]
        handler()

    def run(self, should_stop: Callable[[], bool] | None = None) -> None:
        """Step forever, or until ``should_stop()`` returns True."""
        while should_stop is None or not should_stop():
            self.step()

    def _enter(self, state: GameState) -> None:
        logging.info("player %d: %s -> %s", self.my_address, self.state.label, state.label)
        self.state = state

    def _fatal(self, reason: str) -> None:
        self.fatal_errors += 1
        logging.error("player %d fatal error in %s: %s", self.my_address, self.state.label, reason)
        self.hooks.on_fatal_error(self, reason)

    def _bind(self, packet: P) -> P:
        return packet.bind(self.transport, self.idle)

    def _offering(self) -> None:
        # An ack only means the peer's link heard us; it may be in any state,
        # so the game starts on an ACCEPT, not on the ack.
        p = self._bind(Packet())
        self.move_number = 1
        for attempt in range(1, self.config.offer_tries + 1):
            if not p.send_typed(PacketType.OFFER):
                logging.debug("no reply to offer; attempt=%d", attempt)
                continue
            if not p.require_type_with_timeout(PacketType.ACCEPT, self.config.offer_timeout_ms):
                logging.debug("no accept for offer; attempt=%d", attempt)
                continue

            p.subtype = PacketSubType.NONE
            if not p.send_typed(PacketType.FOUND):
                logging.warning("found-game packet not acknowledged")
            offerer_first = bool(self.hooks.coin_flip())
            p.subtype = PacketSubType.FLIP_TRUE if offerer_first else PacketSubType.FLIP_FALSE
            if not p.send_typed(PacketType.COIN_FLIP):
                logging.warning("coin flip packet not acknowledged")
            self._enter(GameState.MY_TURN if offerer_first else GameState.OPPONENTS_TURN)
            return
        self._enter(GameState.SEEKING)

    def _seeking(self) -> None:
        p = self._bind(Packet())
        p.require_type(PacketType.OFFER)
        logging.info("player %d: offer received", self.my_address)
        if not p.send_typed(PacketType.ACCEPT):
            self._fatal("no ack during accepting game")
            return
        p.require_type(PacketType.FOUND)
        self.hooks.on_game_found()
        p.require_type(PacketType.COIN_FLIP)
        if p.subtype not in (PacketSubType.FLIP_TRUE, PacketSubType.FLIP_FALSE):
            self._fatal(f"coin flip packet carried '{p.subtype.label}'")
            return
        offerer_first = p.subtype == PacketSubType.FLIP_TRUE
        self.hooks.on_flip_result(offerer_first)
        self._enter(GameState.OPPONENTS_TURN if offerer_first else GameState.MY_TURN)
        self.move_number = 1

    def _my_turn(self) -> None:
        move = self._bind(self.moves.move_type(number=self.move_number))
        try:
            move = self.moves.decide_move(move)
        except ProtocolError as exc:
            self._fatal(str(exc))
            return
        if not isinstance(move, Move):
            self._fatal(f"decide_move returned {type(move).__name__}, not a Move")
            return
        self._bind(move)

        if move.number != self.move_number:
            if move.number == 0 and self.move_number == 1:
                logging.info("player %d: opening with move #0", self.my_address)
                self.move_number = 0
            else:
                self._fatal(f"move renumbered to {move.number}, expected {self.move_number}")
                return

        if not move.send():
            self._fatal("no ack from send move")
            return

        logging.debug("waiting for results #%d", self.move_number)
        result = self._bind(self.results.result_type())
        result.require()
        if result.number != self.move_number:
            self._fatal(
                f"results number mismatch: got {result.number}, expected {self.move_number}"
            )
            return

        try:
            ended = self.results.process_results(result)
        except ProtocolError as exc:
            self._fatal(str(exc))
            return
        self._enter(GameState.GAME_OVER if ended else GameState.OPPONENTS_TURN)
        self.move_number += 1

    def _opponents_turn(self) -> None:
        move = self._bind(self.moves.move_type())
        move.require()
        # The player who moves first may open with a pass numbered 0.
        if move.number == 0:
            self.move_number = 0
        elif move.number != self.move_number:
            self._fatal(
                f"opponent's move number mismatch: got {move.number}, expected {self.move_number}"
            )
            return

        try:
            result, ended = self.results.generate_results(move)
        except ProtocolError as exc:
            self._fatal(str(exc))
            return
        if not isinstance(result, Result) or result.subtype not in RESULT_SUBTYPES:
            self._fatal(f"no results for '{move.subtype.label}'")
            return

        result.number = move.number
        self._bind(result)
        self._enter(GameState.GAME_OVER if ended else GameState.MY_TURN)
        if not result.send():
            logging.warning("results #%d not acknowledged", result.number)
        self.move_number += 1

    def _game_over(self) -> None:
        self.hooks.on_game_over()
        self._enter(GameState.OFFERING)
