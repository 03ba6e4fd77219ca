from __future__ import annotations

from typing import TYPE_CHECKING

from statemachine import State, StateMachine

from spellgrid.api.models import SessionPhase
from spellgrid.core.board import Coord

if TYPE_CHECKING:
    from spellgrid.session import Session


SHUFFLE_GEM_COST = 1
REPLACE_TILE_GEM_COST = 2


def _state(phase: SessionPhase, **kwargs: bool) -> State:
    return State(phase.value, value=phase.value, **kwargs)


class SessionFSM(StateMachine):
    """Lifecycle of one match, from menu through lobby and the round/turn loop.

    Solo play enters through `title`. Multiplayer enters through one of the
    lobby states. Guards only read the session. Every mutation is a transition
    action that calls back into the session.
    """

    main_menu = _state(SessionPhase.main_menu, initial=True)
    host_lobby = _state(SessionPhase.host_lobby)
    join_lobby = _state(SessionPhase.join_lobby)
    waiting_room = _state(SessionPhase.waiting_room)
    title = _state(SessionPhase.title)

    idle = _state(SessionPhase.idle)
    chaining = _state(SessionPhase.chaining)
    cleanup = _state(SessionPhase.cleanup)
    turn_ending = _state(SessionPhase.turn_ending)
    round_ending = _state(SessionPhase.round_ending)
    game_over = _state(SessionPhase.game_over, final=True)

    # menu and lobbies
    host_game = main_menu.to(host_lobby)
    join_game = main_menu.to(join_lobby)
    play_solo = main_menu.to(title)
    lobby_joined = join_lobby.to(waiting_room)
    join_failed = join_lobby.to(main_menu)
    leave = host_lobby.to(main_menu) | join_lobby.to(main_menu) | waiting_room.to(main_menu)

    start_game = (
        title.to(idle, on="begin_game")
        | host_lobby.to(idle, cond="lobby_ready", on="begin_game")
        | waiting_room.to(idle, on="begin_game")
    )

    # chain building
    add_letter = idle.to(chaining, cond="can_append", on="append_letter") | chaining.to.itself(
        cond="can_append", on="append_letter"
    )
    remove_letter = chaining.to(idle, cond="removing_last_letter") | chaining.to.itself(on="pop_letter")
    stop_chaining = chaining.to(cleanup, cond="chain_is_submittable", on="accept_word") | chaining.to(
        idle, on="reject_word"
    )
    cleanup_done = cleanup.to(idle)
    discard_chain = chaining.to(idle)

    # power-ups; shuffling moves tiles under a live chain, so the chain is dropped
    use_shuffle = idle.to.itself(internal=True, cond="can_afford_shuffle", on="apply_shuffle") | chaining.to(
        idle, cond="can_afford_shuffle", on="apply_shuffle"
    )
    use_replace_tile = idle.to.itself(
        internal=True, cond="can_afford_replace", on="apply_replace_tile"
    ) | chaining.to.itself(internal=True, cond="can_afford_replace", on="apply_replace_tile")

    # turns and rounds
    end_turn = idle.to(turn_ending, on="close_turn") | chaining.to(turn_ending, on="close_turn")
    next_turn = turn_ending.to(idle, cond="turns_remaining", on="advance_turn") | turn_ending.to(
        round_ending, on="close_round"
    )
    start_next_round = round_ending.to(game_over, cond="is_final_round") | round_ending.to(
        idle, on="begin_next_round"
    )
    force_end = (
        idle.to(game_over)
        | chaining.to(game_over)
        | cleanup.to(game_over)
        | turn_ending.to(game_over)
        | round_ending.to(game_over)
    )

    def __init__(self, session: Session):
        self.session = session
        super().__init__()

    @property
    def phase(self) -> SessionPhase:
        return SessionPhase(str(self.current_state.value))

    # ---- guards ----

    def lobby_ready(self) -> bool:
        players = self.session.players
        return len(players) >= self.session.config.min_players and all(p.is_ready for p in players.values())

    def can_append(self, coord: Coord) -> bool:
        return self.session.can_extend(coord)

    def removing_last_letter(self) -> bool:
        return len(self.session.chain) <= 1

    def chain_is_submittable(self) -> bool:
        return self.session.rejection_reason() is None

    def can_afford_shuffle(self, player_id: str) -> bool:
        return self.session.gems_of(player_id) >= SHUFFLE_GEM_COST

    def can_afford_replace(self, player_id: str) -> bool:
        return self.session.gems_of(player_id) >= REPLACE_TILE_GEM_COST

    def turns_remaining(self) -> bool:
        return self.session.turns_taken < self.session.turns_per_round

    def is_final_round(self) -> bool:
        return self.session.current_round >= self.session.config.total_rounds

    # ---- actions ----

    def begin_game(self, board=None) -> None:
        self.session._begin_game(board)

    def append_letter(self, coord: Coord) -> None:
        self.session._append(coord)

    def pop_letter(self) -> None:
        self.session._pop()

    def accept_word(self, player_id: str) -> None:
        self.session._accept_word(player_id)

    def reject_word(self) -> None:
        self.session._reject_word()

    def apply_shuffle(self, player_id: str) -> None:
        self.session._shuffle(player_id, SHUFFLE_GEM_COST)

    def apply_replace_tile(self, player_id: str, coord: Coord, letter: str) -> None:
        self.session._replace_tile(player_id, coord, letter, REPLACE_TILE_GEM_COST)

    def close_turn(self) -> None:
        self.session._close_turn()

    def advance_turn(self) -> None:
        self.session._advance_turn()

    def close_round(self) -> None:
        self.session._close_round()

    def begin_next_round(self) -> None:
        self.session._begin_round(self.session.current_round + 1)

    def on_enter_idle(self) -> None:
        self.session._clear_chain()
