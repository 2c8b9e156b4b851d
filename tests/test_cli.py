from __future__ import annotations

import pytest

from twoplayer.cli import prompt_command, prompt_shot
from twoplayer.games.battleship import SQUARES, Mark
from twoplayer.games.demo import DemoMove


def feed(monkeypatch, *lines):
    pending = iter(lines)
    monkeypatch.setattr("builtins.input", lambda prompt="": next(pending))


def test_prompt_command_asks_again_on_bad_numbers(monkeypatch, capsys):
    feed(monkeypatch, "N --1 2 3 4", "N 1 2 x", "N 1 -2 3 4")
    assert prompt_command(DemoMove(number=1)) == "N 1 -2 3 4"
    out = capsys.readouterr().out
    assert "'--1' is not a number" in out
    assert "'x' is not a number" in out


def test_prompt_command_defaults_on_empty_input(monkeypatch):
    feed(monkeypatch, "")
    assert prompt_command(DemoMove(number=1)) == "D"


def test_prompt_shot(monkeypatch):
    radar = [Mark.UNKNOWN] * SQUARES
    radar[0] = Mark.MISS
    feed(monkeypatch, "Z9", "A1", "a2")
    assert prompt_shot(radar) == 1


def test_prompt_shot_quit(monkeypatch):
    feed(monkeypatch, "q")
    assert prompt_shot([Mark.UNKNOWN] * SQUARES) is None
