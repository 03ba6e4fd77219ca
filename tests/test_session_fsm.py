from __future__ import annotations

import pytest

from spellgrid.api.models import GameConfig, SessionPhase
from spellgrid.core.board import tile_at
from spellgrid.core.chain import ChainRejection
from spellgrid.errors import (
    GameInProgress,
    InvalidAction,
    InvalidLetter,
    InvalidTileLocation,
    NotEnoughGems,
    NotYourTurn,
)
from spellgrid.session import SOLO_PLAYER_ID, Session


ROWS = ["CATSX", "XXXXX", "XXXXX", "XXXXX", "XXXXX"]


@pytest.fixture()
def solo(dictionary, make_board) -> Session:
    s = Session(dictionary, GameConfig(total_rounds=2, turn_duration=5), seed=1)
    s.play_solo("Ann")
    s.start_game(board=make_board(ROWS))
    return s


def _duo(dictionary, **config) -> Session:
    s = Session(dictionary, GameConfig(**config), seed=2)
    s.host_lobby()
    s.add_player("p1", "Ann", is_host=True)
    s.add_player("p2", "Bob")
    s.toggle_ready("p1")
    s.toggle_ready("p2")
    return s


def test_solo_flow_starts_idle(dictionary) -> None:
    s = Session(dictionary)
    assert s.phase == SessionPhase.main_menu
    s.play_solo()
    assert s.phase == SessionPhase.title
    s.start_game()
    assert s.phase == SessionPhase.idle
    assert s.current_round == 1
    assert s.current_player_id == SOLO_PLAYER_ID


def test_add_and_remove_letters(solo: Session) -> None:
    solo.add_letter(SOLO_PLAYER_ID, (0, 0))
    solo.add_letter(SOLO_PLAYER_ID, (1, 0))
    assert solo.phase == SessionPhase.chaining
    assert solo.current_word == "CA"
    assert solo.current_score == 4

    solo.remove_letter(SOLO_PLAYER_ID)
    assert solo.chain == [(0, 0)]
    assert solo.current_word == "C"

    solo.remove_letter(SOLO_PLAYER_ID)
    assert solo.phase == SessionPhase.idle
    assert solo.chain == []
    assert solo.current_word == ""


def test_add_letter_rejections_leave_chain_alone(solo: Session) -> None:
    solo.add_letter(SOLO_PLAYER_ID, (0, 0))
    with pytest.raises(InvalidAction):
        solo.add_letter(SOLO_PLAYER_ID, (0, 0))
    with pytest.raises(InvalidAction):
        solo.add_letter(SOLO_PLAYER_ID, (3, 3))
    with pytest.raises(InvalidTileLocation):
        solo.add_letter(SOLO_PLAYER_ID, (0, 5))
    assert solo.chain == [(0, 0)]


def test_frozen_tiles_cannot_be_appended(solo: Session) -> None:
    solo.board[0][1] = solo.board[0][1].model_copy(update={"is_frozen": True})
    solo.add_letter(SOLO_PLAYER_ID, (0, 0))
    with pytest.raises(InvalidAction) as e:
        solo.add_letter(SOLO_PLAYER_ID, (1, 0))
    assert "Frozen" in str(e.value)


def test_accepted_word_scores_and_replaces_tiles(solo: Session) -> None:
    solo.board[0][1] = solo.board[0][1].model_copy(update={"has_gem": True})
    for coord in [(0, 0), (1, 0), (2, 0)]:
        solo.add_letter(SOLO_PLAYER_ID, coord)

    outcome = solo.stop_chaining(SOLO_PLAYER_ID)

    assert outcome.accepted
    assert (outcome.word, outcome.score, outcome.gems) == ("CAT", 5, 1)
    assert solo.phase == SessionPhase.idle
    assert solo.chain == []
    me = solo.players[SOLO_PLAYER_ID]
    assert me.score == 5
    assert me.gems == 4
    assert solo.round_scores == [5]
    # Used tiles were redrawn as plain tiles; the S next to them was not touched.
    assert not tile_at(solo.board, (1, 0)).has_gem
    assert tile_at(solo.board, (3, 0)).letter == "S"


def test_rejected_word_sets_message_until_next_success(solo: Session) -> None:
    solo.add_letter(SOLO_PLAYER_ID, (0, 0))
    outcome = solo.stop_chaining(SOLO_PLAYER_ID)

    assert not outcome.accepted
    assert outcome.rejection == ChainRejection.too_short
    assert solo.phase == SessionPhase.idle
    assert solo.message
    assert solo.players[SOLO_PLAYER_ID].score == 0

    solo.add_letter(SOLO_PLAYER_ID, (0, 0))
    assert solo.message is None


def test_gems_are_capped(solo: Session) -> None:
    me = solo.players[SOLO_PLAYER_ID]
    me.gems = 10
    solo.board[0][0] = solo.board[0][0].model_copy(update={"has_gem": True})
    for coord in [(0, 0), (1, 0), (2, 0)]:
        solo.add_letter(SOLO_PLAYER_ID, coord)
    solo.stop_chaining(SOLO_PLAYER_ID)
    assert me.gems == 10


def test_shuffle_without_gems_changes_nothing(solo: Session) -> None:
    solo.players[SOLO_PLAYER_ID].gems = 0
    before = [list(row) for row in solo.board]

    with pytest.raises(NotEnoughGems):
        solo.use_shuffle(SOLO_PLAYER_ID)

    assert solo.board == before
    assert solo.players[SOLO_PLAYER_ID].gems == 0


def test_shuffle_spends_one_gem_and_drops_chain(solo: Session) -> None:
    solo.add_letter(SOLO_PLAYER_ID, (0, 0))
    solo.use_shuffle(SOLO_PLAYER_ID)

    assert solo.players[SOLO_PLAYER_ID].gems == 2
    assert solo.phase == SessionPhase.idle
    assert solo.chain == []
    assert sorted(t.letter for row in solo.board for t in row) == sorted("".join(ROWS))


def test_replace_tile(solo: Session) -> None:
    solo.board[2][2] = solo.board[2][2].model_copy(update={"double_letter": True})
    solo.use_replace_tile(SOLO_PLAYER_ID, (2, 2), "q")

    tile = tile_at(solo.board, (2, 2))
    assert (tile.letter, tile.score, tile.double_letter) == ("Q", 10, True)
    assert solo.players[SOLO_PLAYER_ID].gems == 1

    with pytest.raises(NotEnoughGems):
        solo.use_replace_tile(SOLO_PLAYER_ID, (2, 2), "A")
    with pytest.raises(InvalidLetter):
        solo.use_replace_tile(SOLO_PLAYER_ID, (2, 2), "7")
    with pytest.raises(InvalidTileLocation):
        solo.use_replace_tile(SOLO_PLAYER_ID, (9, 2), "A")
    assert tile_at(solo.board, (2, 2)).letter == "Q"


def test_replace_tile_updates_word_in_progress(solo: Session) -> None:
    solo.add_letter(SOLO_PLAYER_ID, (0, 0))
    solo.add_letter(SOLO_PLAYER_ID, (1, 0))
    solo.use_replace_tile(SOLO_PLAYER_ID, (1, 0), "O")
    assert solo.phase == SessionPhase.chaining
    assert solo.current_word == "CO"


def test_disallowed_transition_is_invalid_action(solo: Session) -> None:
    with pytest.raises(InvalidAction):
        solo.remove_letter(SOLO_PLAYER_ID)
    with pytest.raises(InvalidAction):
        solo.stop_chaining(SOLO_PLAYER_ID)


def test_timer_tick_ends_turn_and_rounds(solo: Session) -> None:
    solo.add_letter(SOLO_PLAYER_ID, (0, 0))
    assert solo.tick(4) is None
    assert solo.turn_time_remaining == 1

    advance = solo.tick(3)
    assert advance is not None and advance.round_ended and not advance.game_over
    assert solo.current_round == 2
    assert solo.turn_time_remaining == 5
    assert solo.chain == []
    assert solo.round_scores == [0]

    advance = solo.tick(5)
    assert advance is not None and advance.game_over
    assert solo.phase == SessionPhase.game_over
    assert solo.tick() is None


def test_host_lobby_needs_everyone_ready(dictionary) -> None:
    s = Session(dictionary)
    s.host_lobby()
    s.add_player("p1", "Ann", is_host=True)
    with pytest.raises(InvalidAction):
        s.start_game()
    s.add_player("p2", "Bob")
    s.toggle_ready("p1")
    with pytest.raises(InvalidAction):
        s.start_game()
    s.toggle_ready("p2")
    s.start_game()
    assert s.phase == SessionPhase.idle


def test_start_game_resets_scores_and_gems(dictionary) -> None:
    s = _duo(dictionary)
    s.players["p1"].score = 40
    s.players["p2"].gems = 0

    s.start_game()

    assert [(p.score, p.gems) for p in s.players.values()] == [(0, 3), (0, 3)]
    with pytest.raises(GameInProgress):
        s.add_player("p3", "Cy")


def test_turns_rotate_through_players_then_rounds(dictionary) -> None:
    s = _duo(dictionary, total_rounds=2)
    s.start_game()
    assert s.current_player_id == "p1"

    with pytest.raises(NotYourTurn):
        s.add_letter("p2", (0, 0))

    first = s.end_turn("p1")
    assert not first.round_ended
    assert s.current_player_id == "p2"

    second = s.end_turn()
    assert second.round_ended and second.round == 1
    assert s.current_round == 2
    assert s.current_player_id == "p1"

    s.end_turn()
    last = s.end_turn()
    assert last.game_over
    assert s.phase == SessionPhase.game_over


def test_leaving_mid_chain_discards_chain(dictionary) -> None:
    s = _duo(dictionary)
    s.start_game()
    s.add_letter("p1", (0, 0))

    s.remove_player("p1")

    assert s.phase == SessionPhase.idle
    assert s.chain == []
    assert s.current_player_id == "p2"
    assert s.players["p2"].is_host


def test_winner_ties_go_to_earliest_joiner(dictionary) -> None:
    s = _duo(dictionary)
    s.players["p1"].score = 7
    s.players["p2"].score = 7
    assert s.winner().id == "p1"
    s.players["p2"].score = 8
    assert s.results().winner.id == "p2"
    assert Session(dictionary).winner() is None


def test_rematch_keeps_roster_in_fresh_lobby(dictionary) -> None:
    s = _duo(dictionary, total_rounds=1)
    s.start_game()
    s.force_end()

    fresh = s.rematch()

    assert fresh.phase == SessionPhase.host_lobby
    assert list(fresh.players) == ["p1", "p2"]
    assert not any(p.is_ready for p in fresh.players.values())
    assert fresh.players["p1"].is_host


def test_join_lobby_paths(dictionary) -> None:
    s = Session(dictionary)
    s.join_lobby()
    s.join_failed()
    assert s.phase == SessionPhase.main_menu

    s.join_lobby()
    s.lobby_joined()
    assert s.phase == SessionPhase.waiting_room
    s.leave_lobby()
    assert s.phase == SessionPhase.main_menu


def test_rejection_after_accepted_word_is_not_reported_as_accepted(solo: Session) -> None:
    for coord in [(0, 0), (1, 0), (2, 0)]:
        solo.add_letter(SOLO_PLAYER_ID, coord)
    assert solo.stop_chaining(SOLO_PLAYER_ID).accepted

    solo.add_letter(SOLO_PLAYER_ID, (3, 0))
    outcome = solo.stop_chaining(SOLO_PLAYER_ID)

    assert not outcome.accepted
    assert outcome.rejection == ChainRejection.too_short
    assert solo.players[SOLO_PLAYER_ID].score == 5
