"""Example games built on the session engine."""

from .battleship import Battleship, BattleshipMove, BattleshipResult
from .demo import DemoGame, DemoMove, DemoResult
from .tictactoe import TicTacToe, TicTacToeMove, TicTacToeResult

__all__ = [
    "Battleship",
    "BattleshipMove",
    "BattleshipResult",
    "DemoGame",
    "DemoMove",
    "DemoResult",
    "TicTacToe",
    "TicTacToeMove",
    "TicTacToeResult",
]
