from __future__ import annotations

import random

import pytest

from twoplayer.games.battleship import (
    FLEET,
    NO_SHIP,
    SQUARES,
    Battleship,
    BattleshipMove,
    BattleshipResult,
    Fleet,
    Mark,
    Ship,
    parse_square,
    random_shot,
    square_name,
)
from twoplayer.packet import PacketSubType, ProtocolError, UnhandledSubtypeError


def row_fleet():
    # every ship laid out horizontally from the first column of its own row
    return Fleet([Ship(name, length, row * 10, False) for row, (name, length) in enumerate(FLEET)])


def shots(*squares):
    pending = iter(squares)
    return lambda radar: next(pending)


@pytest.mark.parametrize("text, square", [("A1", 0), ("b7", 16), ("J10", 99)])
def test_square_names(text, square):
    assert parse_square(text) == square
    assert square_name(square) == text.upper()


@pytest.mark.parametrize("text", ["", "K1", "A0", "A11", "7B"])
def test_bad_square_names(text):
    with pytest.raises(ValueError):
        parse_square(text)


def test_ship_must_fit_on_the_board():
    assert Ship("Cruiser", 3, 7, False).fits()
    assert not Ship("Cruiser", 3, 8, False).fits()
    assert Ship("Cruiser", 3, 79, True).fits()
    assert not Ship("Cruiser", 3, 89, True).fits()


def test_fleet_rejects_overlap():
    with pytest.raises(ValueError):
        Fleet([Ship("Carrier", 5, 0, False), Ship("Submarine", 3, 2, True)])


def test_random_fleet_covers_seventeen_squares():
    fleet = Fleet.random(random.Random(5))
    squares = [s for ship in fleet.ships for s in ship.squares()]
    assert len(squares) == len(set(squares)) == 17


def test_fire_reports_hits_and_sinks():
    fleet = row_fleet()
    assert fleet.fire(45) == (False, NO_SHIP)
    assert fleet.fire(40) == (True, NO_SHIP)
    assert fleet.fire(40) == (False, NO_SHIP)
    assert fleet.fire(41) == (True, 4)
    with pytest.raises(ValueError):
        fleet.fire(SQUARES)


def test_sinking_every_ship_wins():
    defender = Battleship(fleet_factory=row_fleet)
    attacker = Battleship(fleet_factory=row_fleet)
    targets = [s for ship in row_fleet().ships for s in ship.squares()]

    for n, square in enumerate(targets, start=1):
        move = BattleshipMove(number=n, shot=square)
        result, ended = defender.generate_results(move)
        assert result.shot == square
        assert attacker.process_results(result) is ended
        if ended:
            break

    assert n == len(targets)
    assert result.subtype == PacketSubType.WIN
    assert (attacker.outcomes, defender.outcomes) == (["won"], ["lost"])
    assert attacker.enemy_sunk == [name for name, _ in FLEET]
    assert attacker.radar.count(Mark.HIT) == 17


def test_miss_marks_the_radar():
    game = Battleship(fleet_factory=row_fleet)
    assert game.process_results(BattleshipResult(number=1, subtype=PacketSubType.MISS, shot=55)) is False
    assert game.radar[55] == Mark.MISS


def test_chooser_cannot_repeat_a_shot():
    game = Battleship(chooser=shots(12, 12), fleet_factory=row_fleet)
    move = game.decide_move(BattleshipMove(number=1))
    assert move.shot == 12
    game.process_results(BattleshipResult(number=1, subtype=PacketSubType.HIT, shot=12))
    with pytest.raises(ProtocolError):
        game.decide_move(BattleshipMove(number=3))


def test_resigning_sends_quit_and_is_answered_with_lose():
    game = Battleship(chooser=lambda radar: None, fleet_factory=row_fleet)
    move = game.decide_move(BattleshipMove(number=1))
    assert move.subtype == PacketSubType.QUIT_MOVE
    result, ended = Battleship(fleet_factory=row_fleet).generate_results(move)
    assert ended and result.subtype == PacketSubType.LOSE
    assert game.process_results(result) is True
    assert game.outcomes == ["lost"]


def test_battleship_has_no_pass_or_tie():
    game = Battleship(fleet_factory=row_fleet)
    with pytest.raises(UnhandledSubtypeError):
        game.generate_results(BattleshipMove(number=1, subtype=PacketSubType.PASS_MOVE))
    with pytest.raises(UnhandledSubtypeError):
        game.process_results(BattleshipResult(number=1, subtype=PacketSubType.TIE))


def test_results_naming_an_unknown_ship_are_rejected():
    game = Battleship(fleet_factory=row_fleet)
    with pytest.raises(ProtocolError):
        game.process_results(BattleshipResult(number=1, subtype=PacketSubType.HIT, shot=3, sunk=7))


def test_random_shot_only_picks_unknown_squares():
    radar = [Mark.MISS] * SQUARES
    radar[42] = Mark.UNKNOWN
    assert random_shot(random.Random(0))(radar) == 42


def test_game_over_lays_out_a_new_fleet():
    fleets = iter([row_fleet(), Fleet([Ship("Carrier", 5, 95, False)])])
    game = Battleship(fleet_factory=lambda: next(fleets))
    game.radar[0] = Mark.HIT
    game.on_game_over()
    assert game.fleet.ships[0].start == 95
    assert game.radar[0] == Mark.UNKNOWN
