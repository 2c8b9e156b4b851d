from __future__ import annotations

import logging
import random
import socket
import threading
import time
from collections import Counter
from dataclasses import dataclass
from typing import Callable, Literal, Union

from .constants import DEFAULT_ACK_TIMEOUT_MS, PLAYER_2
from .games.battleship import Battleship, random_shot
from .games.demo import DemoGame, random_commands
from .games.tictactoe import TicTacToe, random_square
from .net import Impairment, MemoryTransport, UdpTransport
from .packet import default_idle
from .session import GameState, Session, SessionConfig

Game = Union[Battleship, DemoGame, TicTacToe]
GAMES = ("tictactoe", "demo", "battleship")


class Abandoned(Exception):
    """Raised from a session's idle hook once the run has given up on it."""


@dataclass(frozen=True, slots=True)
class SelfPlayResult:
    game: str
    games: int
    moves: int
    outcomes: dict[str, int]
    fatal_errors: int
    stalled: int
    duration_s: float


def play_games(session: Session, games: int, on_game_over: Callable[[int], None] | None = None) -> int:
    """Step ``session`` until it has finished ``games`` games; 0 plays forever.

    Between games player 1 offers the rematch and player 2 waits for it. Two
    peers that offer at the same moment both give up and end up seeking.
    Returns the number of finished games.
    """
    finished = 0
    while games <= 0 or finished < games:
        was_over = session.state is GameState.GAME_OVER
        session.step()
        if not was_over:
            continue
        finished += 1
        if on_game_over is not None:
            on_game_over(finished)
        if session.my_address == PLAYER_2:
            logging.info("player 2: waiting for the rematch offer")
            session.state = GameState.SEEKING
    return finished


def make_game(name: str, is_player_1: bool, rng: random.Random) -> Game:
    """An automated player for ``name``."""
    if name == "demo":
        return DemoGame(random_commands(rng), rng=rng)
    if name == "battleship":
        return Battleship(random_shot(rng), rng=rng)
    return TicTacToe(is_player_1, chooser=random_square(rng), rng=rng)


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def _stoppable(stop: threading.Event) -> Callable[[], None]:
    def idle() -> None:
        if stop.is_set():
            raise Abandoned()
        default_idle()

    return idle


def _drive(session: Session, games: int, on_game_over: Callable[[int], None] | None, done: threading.Event) -> None:
    try:
        if session.start():
            play_games(session, games, on_game_over)
    except Abandoned:
        logging.debug("player %d abandoned in %s", session.my_address, session.state.label)
    finally:
        done.set()


def run_selfplay(
    *,
    game: Literal["demo", "tictactoe", "battleship"] = "tictactoe",
    games: int = 1,
    transport: Literal["memory", "udp"] = "memory",
    loss_rate: float = 0.0,
    delay_ms: int = 0,
    retries: int = 0,
    ack_timeout_ms: int = DEFAULT_ACK_TIMEOUT_MS,
    offer_timeout_ms: int = 100,
    seed: int | None = None,
    timeout_s: float = 30.0,
) -> SelfPlayResult:
    """Play ``games`` games between two automated peers in this process.

    One pair of sessions plays every game, so rematches go through the same
    offer/seek handshake as the first game. Player 1's outcomes are tallied.
    Games not finished within ``timeout_s`` count as stalled; their sessions
    are stopped and the transports closed.
    """
    if game not in GAMES:
        raise ValueError(f"unknown game {game!r}")
    rng = random.Random(seed)
    config = SessionConfig(offer_timeout_ms=offer_timeout_ms)
    stop = threading.Event()
    impair = Impairment.seeded(rng.random(), loss_rate, delay_ms)

    a: Union[MemoryTransport, UdpTransport]
    b: Union[MemoryTransport, UdpTransport]
    if transport == "memory":
        a, b = MemoryTransport.pair(impair)
    else:
        ports = (_free_port(), _free_port())
        a = UdpTransport.loopback(*ports, ack_timeout_ms=ack_timeout_ms, retries=retries, impairment=impair)
        b = UdpTransport.loopback(*ports, ack_timeout_ms=ack_timeout_ms, retries=retries, impairment=impair)

    g1 = make_game(game, True, random.Random(rng.random()))
    g2 = make_game(game, False, random.Random(rng.random()))
    s1 = Session(g1, g1, a, True, hooks=g1, config=config, idle=_stoppable(stop))
    s2 = Session(g2, g2, b, False, hooks=g2, config=config, idle=_stoppable(stop))

    completed = 0

    def count(n: int) -> None:
        nonlocal completed
        completed = n

    start = time.monotonic()
    deadline = start + timeout_s
    done_1, done_2 = threading.Event(), threading.Event()
    t1 = threading.Thread(target=_drive, args=(s1, games, count, done_1), daemon=True)
    t2 = threading.Thread(target=_drive, args=(s2, games, None, done_2), daemon=True)

    # Player 2 only comes up once player 1 has given up offering, so the first
    # game does not start with both sides offering.
    t1.start()
    while s1.state is not GameState.SEEKING and not done_1.is_set() and time.monotonic() < deadline:
        time.sleep(0.001)
    t2.start()

    finished = done_1.wait(max(0.0, deadline - time.monotonic()))
    finished = done_2.wait(max(0.0, deadline - time.monotonic())) and finished
    if not finished:
        logging.warning("self-play stalled after %d of %d games", completed, games)
        stop.set()
        t1.join(1.0)
        t2.join(1.0)
    a.close()
    b.close()

    tally = Counter(g1.outcomes)
    if completed > len(g1.outcomes):
        tally["aborted"] += completed - len(g1.outcomes)
    return SelfPlayResult(
        game=game,
        games=games,
        moves=g1.moves_made + g2.moves_made,
        outcomes=dict(tally),
        fatal_errors=s1.fatal_errors + s2.fatal_errors,
        stalled=games - completed,
        duration_s=max(0.001, time.monotonic() - start),
    )
