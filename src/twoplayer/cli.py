from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import random
from typing import Optional, Sequence

from .constants import (
    DEFAULT_ACK_TIMEOUT_MS,
    DEFAULT_UDP_PORTS,
    OFFER_TIMEOUT_MS,
    OFFER_TRIES,
    PLAYER_1,
    PLAYER_2,
)
from .games.battleship import Battleship, Mark, parse_square, render_radar
from .games.demo import COMMANDS, DemoGame, DemoMove, parse_command
from .games.tictactoe import Board, Square, TicTacToe
from .net import Impairment, UdpTransport
from .selfplay import GAMES, Game, make_game, play_games, run_selfplay
from .session import Session, SessionConfig


def prompt_square(board: Board, mark: Square) -> Optional[int]:
    print(board.render())
    while True:
        text = input(f"You are {mark.name}. Square 1-9, or q to quit: ").strip().lower()
        if text == "q":
            return None
        if text.isdigit() and int(text) - 1 in board.empty_squares():
            return int(text) - 1
        print("That square is not free.")


def prompt_shot(radar: Sequence[Mark]) -> Optional[int]:
    print(render_radar(radar))
    while True:
        text = input("Fire at (A1-J10), or q to quit: ").strip()
        if text.lower() == "q":
            return None
        try:
            square = parse_square(text)
        except ValueError as exc:
            print(f"{exc}.")
            continue
        if radar[square] != Mark.UNKNOWN:
            print("Already fired there.")
            continue
        return square


def prompt_command(move: DemoMove) -> str:
    while True:
        text = input(f"Move #{move.number} [{' '.join(COMMANDS)}]: ").strip()
        try:
            parse_command(text)
        except ValueError as exc:
            print(f"{exc}.")
            continue
        return text or "D"


def console_game(name: str, is_player_1: bool, rng: random.Random) -> Game:
    if name == "demo":
        return DemoGame(prompt_command, rng=rng)
    if name == "battleship":
        return Battleship(prompt_shot, rng=rng)
    return TicTacToe(is_player_1, chooser=prompt_square, rng=rng)


def cmd_play(args: argparse.Namespace) -> int:
    is_player_1 = args.player == PLAYER_1
    rng = random.Random(args.seed)
    game = (make_game if args.auto else console_game)(args.game, is_player_1, rng)

    udp = UdpTransport(
        {PLAYER_1: (args.host_1, args.port_1), PLAYER_2: (args.host_2, args.port_2)},
        ack_timeout_ms=args.ack_timeout_ms,
        retries=args.retries,
        impairment=Impairment.seeded(args.seed, args.loss_rate, args.delay_ms),
    )
    config = SessionConfig(offer_tries=args.offer_tries, offer_timeout_ms=args.offer_timeout_ms)
    session = Session(game, game, udp, is_player_1, hooks=game, config=config)
    if not session.start():
        return 1

    finished = 0
    scored = 0

    def report(n: int) -> None:
        nonlocal finished, scored
        finished = n
        outcome = "aborted"
        if len(game.outcomes) > scored:
            scored = len(game.outcomes)
            outcome = game.outcomes[-1]
        print(f"game {n} over: {outcome}")

    try:
        play_games(session, args.games, report)
    except KeyboardInterrupt:
        pass
    finally:
        udp.close()

    payload = {
        "role": f"player {args.player}",
        "games": finished,
        "outcomes": game.outcomes,
        "fatal_errors": session.fatal_errors,
    }
    print(json.dumps(payload, indent=2) if args.json else payload)
    return 0


def cmd_selfplay(args: argparse.Namespace) -> int:
    r = run_selfplay(
        game=args.game,
        games=args.games,
        transport=args.transport,
        loss_rate=args.loss_rate,
        delay_ms=args.delay_ms,
        retries=args.retries,
        ack_timeout_ms=args.ack_timeout_ms,
        offer_timeout_ms=args.offer_timeout_ms,
        seed=args.seed,
        timeout_s=args.timeout_s,
    )
    payload = {"role": "selfplay", **dataclasses.asdict(r)}
    print(json.dumps(payload, indent=2) if args.json else payload)
    return 0 if r.stalled == 0 else 1


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(prog="twoplayer", description="Two-player turn-based games over a datagram link.")
    p.add_argument("--log-level", default="WARNING", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    sub = p.add_subparsers(dest="cmd", required=True)

    def add_common(x: argparse.ArgumentParser) -> None:
        x.add_argument("--game", choices=GAMES, default="tictactoe")
        x.add_argument("--offer-timeout-ms", type=int, default=OFFER_TIMEOUT_MS)
        x.add_argument("--ack-timeout-ms", type=int, default=DEFAULT_ACK_TIMEOUT_MS)
        x.add_argument("--retries", type=int, default=0, help="link-level resends per packet")
        x.add_argument("--loss-rate", type=float, default=0.0, help="simulate packet loss")
        x.add_argument("--delay-ms", type=int, default=0)
        x.add_argument("--seed", type=int, default=None)
        x.add_argument("--json", action="store_true")

    play = sub.add_parser("play", help="play as one peer over UDP")
    add_common(play)
    play.add_argument("--player", type=int, choices=[PLAYER_1, PLAYER_2], required=True)
    play.add_argument("--host-1", default="127.0.0.1")
    play.add_argument("--port-1", type=int, default=DEFAULT_UDP_PORTS[PLAYER_1])
    play.add_argument("--host-2", default="127.0.0.1")
    play.add_argument("--port-2", type=int, default=DEFAULT_UDP_PORTS[PLAYER_2])
    play.add_argument("--offer-tries", type=int, default=OFFER_TRIES)
    play.add_argument("--games", type=int, default=1, help="stop after this many games (0 = forever); player 1 offers each rematch")
    play.add_argument("--auto", action="store_true", help="let the computer choose moves")
    play.set_defaults(func=cmd_play)

    selfplay = sub.add_parser("selfplay", help="two automated peers in one process")
    add_common(selfplay)
    selfplay.set_defaults(offer_timeout_ms=100)
    selfplay.add_argument("--transport", choices=["memory", "udp"], default="memory")
    selfplay.add_argument("--games", type=int, default=10)
    selfplay.add_argument("--timeout-s", type=float, default=30.0)
    selfplay.set_defaults(func=cmd_selfplay)

    args = p.parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(asctime)s [%(levelname)s] %(message)s")
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
