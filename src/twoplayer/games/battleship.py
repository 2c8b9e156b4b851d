"""Battleship on a 10 x 10 grid.

Each side hides five ships (lengths 5, 4, 3, 3, 2). A move is one shot at a
square 0-99. The side being shot at answers MISS, HIT (naming the ship when
the shot sank it) or WIN once all 17 ship squares are hit. A quit is
answered with LOSE.
"""
from __future__ import annotations

import enum
import logging
import random
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from ..packet import Move, PacketSubType, ProtocolError, Result, UnhandledSubtypeError
from ..session import BaseHooks

SIZE = 10
SQUARES = SIZE * SIZE
NO_SHIP = -1

FLEET = (
    ("Carrier", 5),
    ("Battleship", 4),
    ("Cruiser", 3),
    ("Submarine", 3),
    ("Patrol Boat", 2),
)


class Mark(enum.IntEnum):
    UNKNOWN = 0
    MISS = 1
    HIT = 2


@dataclass(slots=True)
class BattleshipMove(Move):
    shot: int = 0

    FIELDS = (("shot", "B"),)


@dataclass(slots=True)
class BattleshipResult(Result):
    shot: int = 0
    sunk: int = NO_SHIP

    FIELDS = (("shot", "B"), ("sunk", "b"))


def square_name(square: int) -> str:
    return f"{'ABCDEFGHIJ'[square // SIZE]}{square % SIZE + 1}"


def parse_square(text: str) -> int:
    """``"B7"`` -> 16. Raises ValueError for anything off the board."""
    text = text.strip().upper()
    if len(text) < 2 or text[0] not in "ABCDEFGHIJ" or not text[1:].isdigit():
        raise ValueError(f"{text!r} is not a square like A1 or J10")
    col = int(text[1:]) - 1
    if not 0 <= col < SIZE:
        raise ValueError(f"{text!r} is off the board")
    return "ABCDEFGHIJ".index(text[0]) * SIZE + col


@dataclass(slots=True)
class Ship:
    name: str
    length: int
    start: int
    vertical: bool
    hits: int = 0

    def squares(self) -> list[int]:
        step = SIZE if self.vertical else 1
        return [self.start + i * step for i in range(self.length)]

    def fits(self) -> bool:
        if not 0 <= self.start < SQUARES:
            return False
        if self.vertical:
            return self.start + SIZE * (self.length - 1) < SQUARES
        return self.start % SIZE + self.length <= SIZE

    @property
    def sunk(self) -> bool:
        return self.hits >= self.length


class Fleet:
    """Our ships and the shots the opponent has landed on them."""

    def __init__(self, ships: Sequence[Ship]):
        self.ships = list(ships)
        self._at: dict[int, int] = {}
        self._hit: set[int] = set()
        for index, ship in enumerate(self.ships):
            if not ship.fits():
                raise ValueError(f"{ship.name} does not fit at {square_name(ship.start)}")
            for square in ship.squares():
                if square in self._at:
                    raise ValueError(f"{ship.name} overlaps the {self.ships[self._at[square]].name}")
                self._at[square] = index

    @classmethod
    def random(cls, rng: random.Random) -> Fleet:
        ships: list[Ship] = []
        taken: set[int] = set()
        for name, length in FLEET:
            while True:
                ship = Ship(name, length, rng.randrange(SQUARES), rng.random() < 0.5)
                if ship.fits() and taken.isdisjoint(ship.squares()):
                    break
            ships.append(ship)
            taken.update(ship.squares())
        return cls(ships)

    def fire(self, square: int) -> tuple[bool, int]:
        """Take a shot. Returns (hit, index of the ship it sank or NO_SHIP).

        A second shot at a square already hit is a miss.
        """
        if not 0 <= square < SQUARES:
            raise ValueError(f"shot at square {square} is off the board")
        index = self._at.get(square)
        if index is None or square in self._hit:
            return False, NO_SHIP
        self._hit.add(square)
        ship = self.ships[index]
        ship.hits += 1
        return True, index if ship.sunk else NO_SHIP

    def all_sunk(self) -> bool:
        return all(ship.sunk for ship in self.ships)

    def render(self) -> str:
        cells = ["."] * SQUARES
        for ship in self.ships:
            for square in ship.squares():
                cells[square] = ship.name[0]
        for square in self._hit:
            cells[square] = "x"
        return _grid(cells)


def _grid(cells: Sequence[str]) -> str:
    rows = ["   " + " ".join(str(c + 1).rjust(2) for c in range(SIZE))]
    for r in range(SIZE):
        rows.append(f"{'ABCDEFGHIJ'[r]}  " + " ".join(cell.rjust(2) for cell in cells[r * SIZE : (r + 1) * SIZE]))
    return "\n".join(rows)


def render_radar(radar: Sequence[Mark]) -> str:
    symbols = {Mark.UNKNOWN: ".", Mark.MISS: "o", Mark.HIT: "x"}
    return _grid([symbols[m] for m in radar])


Chooser = Callable[[Sequence[Mark]], Optional[int]]


def first_unknown(radar: Sequence[Mark]) -> int:
    return radar.index(Mark.UNKNOWN)


def random_shot(rng: random.Random) -> Chooser:
    def choose(radar: Sequence[Mark]) -> int:
        return rng.choice([i for i, m in enumerate(radar) if m == Mark.UNKNOWN])

    return choose


class Battleship(BaseHooks):
    """Battleship rules. ``chooser`` picks the next shot from our radar, or
    returns None to resign. A new random fleet is laid out for every game
    unless ``fleet_factory`` says otherwise."""

    move_type = BattleshipMove
    result_type = BattleshipResult

    def __init__(
        self,
        chooser: Chooser = first_unknown,
        rng: random.Random | None = None,
        fleet_factory: Callable[[], Fleet] | None = None,
    ):
        super().__init__(rng)
        self.chooser = chooser
        self.fleet_factory = fleet_factory or (lambda: Fleet.random(self.rng))
        self.moves_made = 0
        self.outcomes: list[str] = []
        self.new_game()

    def new_game(self) -> None:
        self.fleet = self.fleet_factory()
        self.radar = [Mark.UNKNOWN] * SQUARES
        self.enemy_sunk: list[str] = []

    def decide_move(self, move: BattleshipMove) -> BattleshipMove:
        shot = self.chooser(self.radar)
        if shot is None:
            logging.info("quitting the game")
            move.subtype = PacketSubType.QUIT_MOVE
            return move
        if not 0 <= shot < SQUARES or self.radar[shot] != Mark.UNKNOWN:
            raise ProtocolError(f"cannot fire at square {shot} again")
        move.subtype = PacketSubType.NORMAL_MOVE
        move.shot = shot
        self.moves_made += 1
        return move

    def generate_results(self, move: BattleshipMove) -> tuple[BattleshipResult, bool]:
        result = BattleshipResult(number=move.number, shot=move.shot)
        if move.subtype == PacketSubType.QUIT_MOVE:
            logging.info("opponent quit")
            result.subtype = PacketSubType.LOSE
            self.outcomes.append("won")
            return result, True
        if move.subtype != PacketSubType.NORMAL_MOVE:
            raise UnhandledSubtypeError(f"battleship has no '{move.subtype.label}'")

        try:
            hit, sunk = self.fleet.fire(move.shot)
        except ValueError as exc:
            raise ProtocolError(f"opponent's move #{move.number}: {exc}") from exc
        result.sunk = sunk
        if not hit:
            result.subtype = PacketSubType.MISS
            return result, False
        if sunk != NO_SHIP:
            logging.info("enemy sank our %s", self.fleet.ships[sunk].name)
        if self.fleet.all_sunk():
            result.subtype = PacketSubType.WIN
            self.outcomes.append("lost")
            return result, True
        result.subtype = PacketSubType.HIT
        return result, False

    def process_results(self, result: BattleshipResult) -> bool:
        if result.subtype == PacketSubType.LOSE:
            # We resigned.
            self.outcomes.append("lost")
            return True
        if result.subtype not in (PacketSubType.MISS, PacketSubType.HIT, PacketSubType.WIN):
            raise UnhandledSubtypeError(f"battleship has no '{result.subtype.label}'")
        if not 0 <= result.shot < SQUARES:
            raise ProtocolError(f"results #{result.number}: shot {result.shot} is off the board")

        if result.subtype == PacketSubType.MISS:
            self.radar[result.shot] = Mark.MISS
            return False
        self.radar[result.shot] = Mark.HIT
        if result.sunk != NO_SHIP:
            if not 0 <= result.sunk < len(FLEET):
                raise ProtocolError(f"results #{result.number}: no ship {result.sunk}")
            self.enemy_sunk.append(FLEET[result.sunk][0])
            logging.info("we sank the enemy %s", FLEET[result.sunk][0])
        if result.subtype == PacketSubType.WIN:
            self.outcomes.append("won")
            return True
        return False

    def on_game_over(self) -> None:
        logging.info("game over; our fleet:\n%s", self.fleet.render())
        self.new_game()
