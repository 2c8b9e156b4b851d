from __future__ import annotations

import enum
import logging
import random
from dataclasses import dataclass
from typing import Callable, Optional

from ..packet import Move, PacketSubType, ProtocolError, Result, UnhandledSubtypeError
from ..session import BaseHooks


class Square(enum.IntEnum):
    EMPTY = 0
    X = 1
    O = 2


class Line(enum.IntEnum):
    NO_WIN = 0
    TOP_ROW = 1
    MIDDLE_ROW = 2
    BOTTOM_ROW = 3
    LEFT_COLUMN = 4
    MIDDLE_COLUMN = 5
    RIGHT_COLUMN = 6
    DESCENDING_DIAGONAL = 7
    ASCENDING_DIAGONAL = 8
    TIE = 9


LINES = {
    Line.TOP_ROW: (0, 1, 2),
    Line.MIDDLE_ROW: (3, 4, 5),
    Line.BOTTOM_ROW: (6, 7, 8),
    Line.LEFT_COLUMN: (0, 3, 6),
    Line.MIDDLE_COLUMN: (1, 4, 7),
    Line.RIGHT_COLUMN: (2, 5, 8),
    Line.DESCENDING_DIAGONAL: (0, 4, 8),
    Line.ASCENDING_DIAGONAL: (2, 4, 6),
}


@dataclass(slots=True)
class TicTacToeMove(Move):
    square: int = 0

    FIELDS = (("square", "B"),)


@dataclass(slots=True)
class TicTacToeResult(Result):
    line: int = Line.NO_WIN

    FIELDS = (("line", "B"),)


class Board:
    def __init__(self) -> None:
        self.squares: list[Square] = [Square.EMPTY] * 9

    def empty_squares(self) -> list[int]:
        return [i for i, s in enumerate(self.squares) if s == Square.EMPTY]

    def place(self, index: int, mark: Square) -> None:
        if not 0 <= index < 9:
            raise ValueError(f"square {index} is off the board")
        if self.squares[index] != Square.EMPTY:
            raise ValueError(f"square {index} is already occupied")
        self.squares[index] = mark

    def check(self, mark: Square) -> Line:
        """Winning line for ``mark``, TIE on a full board, NO_WIN otherwise."""
        for line, (a, b, c) in LINES.items():
            if self.squares[a] == self.squares[b] == self.squares[c] == mark:
                return line
        if not self.empty_squares():
            return Line.TIE
        return Line.NO_WIN

    def render(self) -> str:
        symbols = {Square.EMPTY: " ", Square.X: "X", Square.O: "O"}
        rows = []
        for r in range(3):
            cells = [
                symbols[self.squares[i]] if self.squares[i] else str(i + 1)
                for i in range(r * 3, r * 3 + 3)
            ]
            rows.append(" " + " | ".join(cells))
        return "\n---+---+---\n".join(rows)


Chooser = Callable[[Board, Square], Optional[int]]


def first_empty(board: Board, mark: Square) -> int:
    return board.empty_squares()[0]


def random_square(rng: random.Random) -> Chooser:
    def choose(board: Board, mark: Square) -> int:
        return rng.choice(board.empty_squares())

    return choose


class TicTacToe(BaseHooks):
    """Tic-tac-toe rules. Player 1 plays X, player 2 plays O.

    ``chooser`` returns the square for our next mark, or None to resign. The
    side receiving a move decides whether it won, tied or lost the game.
    """

    move_type = TicTacToeMove
    result_type = TicTacToeResult

    def __init__(self, is_player_1: bool, chooser: Chooser = first_empty, rng: random.Random | None = None):
        super().__init__(rng)
        self.my_mark = Square.X if is_player_1 else Square.O
        self.opponents_mark = Square.O if is_player_1 else Square.X
        self.chooser = chooser
        self.board = Board()
        self.moves_made = 0
        self.outcomes: list[str] = []
        self.winning_line = Line.NO_WIN

    def new_game(self) -> None:
        self.board = Board()
        self.winning_line = Line.NO_WIN

    def decide_move(self, move: TicTacToeMove) -> TicTacToeMove:
        square = self.chooser(self.board, self.my_mark)
        if square is None:
            logging.info("quitting the game")
            move.subtype = PacketSubType.QUIT_MOVE
            return move
        self.board.place(square, self.my_mark)
        move.subtype = PacketSubType.NORMAL_MOVE
        move.square = square
        self.moves_made += 1
        return move

    def generate_results(self, move: TicTacToeMove) -> tuple[TicTacToeResult, bool]:
        result = TicTacToeResult(number=move.number)
        if move.subtype == PacketSubType.QUIT_MOVE:
            logging.info("opponent quit")
            result.subtype = PacketSubType.LOSE
            self.outcomes.append("won")
            return result, True
        if move.subtype != PacketSubType.NORMAL_MOVE:
            raise UnhandledSubtypeError(f"tic-tac-toe has no '{move.subtype.label}'")

        try:
            self.board.place(move.square, self.opponents_mark)
        except ValueError as exc:
            raise ProtocolError(f"opponent's move #{move.number}: {exc}") from exc

        line = self.board.check(self.opponents_mark)
        result.line = line
        if line == Line.TIE:
            result.subtype = PacketSubType.TIE
            self.outcomes.append("tie")
            return result, True
        if line == Line.NO_WIN:
            result.subtype = PacketSubType.NORMAL_RESULT
            return result, False
        self.winning_line = line
        result.subtype = PacketSubType.WIN
        self.outcomes.append("lost")
        return result, True

    def process_results(self, result: TicTacToeResult) -> bool:
        if result.subtype == PacketSubType.NORMAL_RESULT:
            return False
        if result.subtype == PacketSubType.WIN:
            try:
                self.winning_line = Line(result.line)
            except ValueError as exc:
                raise ProtocolError(f"results #{result.number}: unknown line {result.line}") from exc
            self.outcomes.append("won")
        elif result.subtype == PacketSubType.TIE:
            self.outcomes.append("tie")
        elif result.subtype == PacketSubType.LOSE:
            # We resigned.
            self.outcomes.append("lost")
        else:
            raise UnhandledSubtypeError(f"tic-tac-toe has no '{result.subtype.label}'")
        return True

    def on_game_over(self) -> None:
        logging.info("game over:\n%s", self.board.render())
        self.new_game()
