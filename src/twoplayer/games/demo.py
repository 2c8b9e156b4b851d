"""Numeric demo game used to exercise every move and result subtype.

A move carries four signed 16-bit numbers. The side answering it sums the
first three and reports:

- WIN when the fourth number equals the sum,
- LOSE when it equals the negated sum,
- TIE when all four numbers are equal,
- otherwise NORMAL, HIT or MISS, picked at random.

A pass is answered with NORMAL results and a quit with LOSE.
"""
from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from typing import Callable

from ..packet import Move, PacketSubType, ProtocolError, Result, UnhandledSubtypeError
from ..session import BaseHooks

COMMANDS = "NDQPWLT"
DEFAULT_DATA = (1, 2, 3, 4)


def _wrap16(value: int) -> int:
    return ((value + 0x8000) & 0xFFFF) - 0x8000


@dataclass(slots=True)
class DemoMove(Move):
    data: list[int] = field(default_factory=lambda: list(DEFAULT_DATA))

    FIELDS = (("data", "4h"),)


@dataclass(slots=True)
class DemoResult(Result):
    data: int = 0

    FIELDS = (("data", "h"),)


def parse_command(command: str) -> tuple[str, list[int]]:
    """Split a command into its letter and numbers.

    Raises ValueError for an unknown letter, numbers after anything but
    ``N``, more than four numbers, or a number that does not parse.
    """
    parts = command.split()
    letter = parts[0].upper() if parts else "D"
    if letter not in COMMANDS:
        raise ValueError(f"unknown command {parts[0]!r}")
    args = parts[1:]
    if args and letter != "N":
        raise ValueError(f"{letter} takes no numbers")
    if len(args) > 4:
        raise ValueError("N takes at most four numbers")
    numbers = []
    for text in args:
        try:
            numbers.append(_wrap16(int(text)))
        except ValueError:
            raise ValueError(f"{text!r} is not a number") from None
    return letter, numbers


def apply_command(move: DemoMove, command: str) -> None:
    """Fill ``move`` from a one-letter command.

    ``N a b c d`` normal move with the given numbers, ``D`` default move,
    ``Q`` quit, ``P`` pass, ``W``/``L``/``T`` a winning, losing or tying move.
    A command that does not parse is a ProtocolError.
    """
    try:
        letter, numbers = parse_command(command)
    except ValueError as exc:
        raise ProtocolError(f"bad demo command {command!r}: {exc}") from exc

    move.subtype = PacketSubType.NORMAL_MOVE
    move.data = list(DEFAULT_DATA)
    if letter == "N":
        move.data[: len(numbers)] = numbers
    elif letter == "Q":
        move.subtype = PacketSubType.QUIT_MOVE
    elif letter == "P":
        move.subtype = PacketSubType.PASS_MOVE
    elif letter == "W":
        move.data[3] = 6
    elif letter == "L":
        move.data[3] = -6
    elif letter == "T":
        move.data = [5, 5, 5, 5]


def random_commands(rng: random.Random, max_moves: int = 40) -> Callable[[DemoMove], str]:
    """Automated player: mostly default moves, the occasional game ender.

    Quits once the game reaches move number ``max_moves``.
    """

    def choose(move: DemoMove) -> str:
        if move.number >= max_moves:
            return "Q"
        letter = rng.choice("DDDDDDNPWLT") if rng.random() < 0.8 else "W"
        if letter == "N":
            return "N " + " ".join(str(rng.randint(-10, 10)) for _ in range(4))
        return letter

    return choose


class DemoGame(BaseHooks):
    move_type = DemoMove
    result_type = DemoResult

    def __init__(self, chooser: Callable[[DemoMove], str], rng: random.Random | None = None):
        super().__init__(rng)
        self.chooser = chooser
        self.moves_made = 0
        self.outcomes: list[str] = []

    def decide_move(self, move: DemoMove) -> DemoMove:
        apply_command(move, self.chooser(move))
        if move.subtype == PacketSubType.PASS_MOVE and move.number == 1:
            # An opening pass goes out as move #0.
            move.number = 0
        self.moves_made += 1
        logging.info("my move #%d: %s %s", move.number, move.subtype.label, move.data)
        return move

    def generate_results(self, move: DemoMove) -> tuple[DemoResult, bool]:
        result = DemoResult(number=move.number)
        total = _wrap16(sum(move.data[:3]))
        result.data = total

        if move.subtype == PacketSubType.PASS_MOVE:
            result.subtype = PacketSubType.NORMAL_RESULT
            return result, False
        if move.subtype == PacketSubType.QUIT_MOVE:
            result.subtype = PacketSubType.LOSE
            self.outcomes.append("won")
            return result, True
        if move.subtype != PacketSubType.NORMAL_MOVE:
            raise UnhandledSubtypeError(f"demo game has no rule for '{move.subtype.label}'")

        if move.data[3] == total:
            result.subtype = PacketSubType.WIN
            self.outcomes.append("lost")
            return result, True
        if move.data[3] == -total:
            result.subtype = PacketSubType.LOSE
            self.outcomes.append("won")
            return result, True
        if len(set(move.data)) == 1:
            result.subtype = PacketSubType.TIE
            self.outcomes.append("tie")
            return result, True

        result.subtype = self.rng.choice(
            (PacketSubType.NORMAL_RESULT, PacketSubType.HIT, PacketSubType.MISS)
        )
        return result, False

    def process_results(self, result: DemoResult) -> bool:
        logging.info("results for #%d: %s data=%d", result.number, result.subtype.label, result.data)
        if result.subtype in (PacketSubType.NORMAL_RESULT, PacketSubType.HIT, PacketSubType.MISS):
            return False
        if result.subtype == PacketSubType.WIN:
            self.outcomes.append("won")
        elif result.subtype == PacketSubType.LOSE:
            self.outcomes.append("lost")
        elif result.subtype == PacketSubType.TIE:
            self.outcomes.append("tie")
        else:
            raise UnhandledSubtypeError(f"demo game has no rule for '{result.subtype.label}'")
        return True
