"""
Turn resolution for Take 6.

Resolution is a step function over the Game aggregate: each call to
resolution_step() performs exactly one unit of work (reveal, one
placement, or end-of-turn progression) so the caller can persist the
game after every step. A step derives everything it needs from the
snapshot, which makes it safe to re-run against freshly loaded state.

States of a turn:

    COLLECTING ──all played──► REVEALED ──► PLACED ... ──► TURN_COMPLETE
                                   │           │
                                   ▼           ▼
                                 STALLED ◄─────┘   (card fits no row)
                                   │
                           choose_row()
                                   │
                                   ▼
                                 PLACED ...

A penalty that pushes a player to the score limit ends the game on the
spot (GAME_FINISHED); cards not yet placed stay committed.

Remaining plays are re-derived from the players whose played_card is
still set, so a resumed or restarted resolution never places a card twice.
"""

from enum import Enum
from typing import Optional

from constants import NUM_ROWS
from game import (
    FinishReason,
    Game,
    GameStatus,
    InvalidGameState,
    InvalidRow,
    Player,
    Unauthorized,
)
from models import events
from rows import legal_targets, place_card, select_target, take_row


class StepOutcome(str, Enum):
    """What a single resolution step did."""

    IDLE = "idle"                     # Nothing to do (not ready, stalled, not playing)
    REVEALED = "revealed"             # Cards revealed, placement may begin
    PLACED = "placed"                 # One card placed
    STALLED = "stalled"               # Waiting for a manual row choice
    TURN_COMPLETE = "turn_complete"   # Turn over, next turn (or round) begun
    GAME_FINISHED = "game_finished"


# Outcomes after which another step should be taken right away
CONTINUE = frozenset({StepOutcome.REVEALED, StepOutcome.PLACED})


def remaining_plays(game: Game) -> list[tuple[Player, int]]:
    """Committed, not yet placed plays in placement (ascending) order."""
    plays = [
        (player, player.played_card)
        for player in game.active_players()
        if player.played_card is not None
    ]
    return sorted(plays, key=lambda play: play[1])


def resolution_step(game: Game) -> StepOutcome:
    """
    Advance the current turn's resolution by one step.

    Returns:
        IDLE when there is nothing to do: the game is not playing, it is
        stalled on a row choice, or not every active player has played.
    """
    if game.status != GameStatus.PLAYING or game.is_stalled:
        return StepOutcome.IDLE

    if not game.turn_resolved:
        if not game.all_played():
            return StepOutcome.IDLE
        return _reveal(game)

    plays = remaining_plays(game)
    if not plays:
        advance_turn(game)
        if game.status == GameStatus.FINISHED:
            return StepOutcome.GAME_FINISHED
        return StepOutcome.TURN_COMPLETE

    player, card = plays[0]
    target = select_target(legal_targets(card, game.rows))
    if target is None:
        _stall(game, player, card)
        return StepOutcome.STALLED

    placement = place_card(game.rows, target.row_index, card)
    player.played_card = None

    if placement.took_row:
        player.score += placement.penalty
        game._emit(
            events.row_taken,
            player_id=player.id,
            card=card,
            row_index=placement.row_index,
            collected=placement.collected,
            penalty=placement.penalty,
        )
        if _reached_score_limit(game, player):
            return StepOutcome.GAME_FINISHED
    else:
        game._emit(
            events.card_placed,
            player_id=player.id,
            card=card,
            row_index=placement.row_index,
        )

    return StepOutcome.PLACED


def choose_row(game: Game, player_id: str, row_index: int) -> StepOutcome:
    """
    Resume a stalled turn with the stalled player's row choice.

    The chosen row is collected as a penalty and restarts with the
    pending card. Resolution then continues with the plays still waiting.

    Raises:
        InvalidGameState: If the game is not waiting for a row choice.
        Unauthorized: If player_id is not the player being waited on.
        InvalidRow: If row_index is not a valid row.
    """
    if game.status != GameStatus.PLAYING or not game.is_stalled:
        raise InvalidGameState("No row choice is pending")
    if player_id != game.waiting_for_row_choice:
        raise Unauthorized("It is not your row choice")
    if isinstance(row_index, bool) or not isinstance(row_index, int) \
            or not 0 <= row_index < NUM_ROWS:
        raise InvalidRow(f"Row must be between 0 and {NUM_ROWS - 1}")

    player = game.get_player(player_id)
    card = game.pending_card
    placement = take_row(game.rows, row_index, card)
    player.score += placement.penalty
    player.played_card = None

    game.waiting_for_row_choice = None
    game.pending_card = None
    game.turn_resolved = True

    game._emit(
        events.row_chosen,
        player_id=player_id,
        card=card,
        row_index=row_index,
        collected=placement.collected,
        penalty=placement.penalty,
    )

    if _reached_score_limit(game, player):
        return StepOutcome.GAME_FINISHED
    return StepOutcome.PLACED


def advance_turn(game: Game) -> None:
    """
    Move on after every card of the turn has been placed.

    Starts the next turn, deals the next round when the hand is used
    up, or finishes the game after the last round. Round and turn stay
    capped at their maximums when the game ends.
    """
    finished_turn = game.current_turn
    game._emit(events.turn_completed, round_num=game.round, turn=finished_turn)

    game.current_turn += 1
    if game.current_turn > game.rules.hand_size:
        if game.round >= game.rules.max_rounds:
            game.current_turn = game.rules.hand_size
            _clear_turn(game)
            _finish(game, FinishReason.ROUNDS_COMPLETED)
            return

        game.round += 1
        game.deal_round()

    _clear_turn(game)


def _reveal(game: Game) -> StepOutcome:
    """
    Claim the turn for resolution and reveal every committed card.

    Runs the pre-check: if any card fits no row, the turn stalls before
    anything is placed.
    """
    game.turn_resolved = True
    plays = remaining_plays(game)
    game._emit(
        events.cards_revealed,
        plays=[{"player_id": player.id, "card": card} for player, card in plays],
    )

    for player, card in plays:
        if not legal_targets(card, game.rows):
            _stall(game, player, card)
            return StepOutcome.STALLED

    return StepOutcome.REVEALED


def _stall(game: Game, player: Player, card: int) -> None:
    game.waiting_for_row_choice = player.id
    game.pending_card = card
    game.turn_resolved = False
    game._emit(events.row_choice_required, player_id=player.id, card=card)


def _clear_turn(game: Game) -> None:
    game.turn_resolved = False
    game.waiting_for_row_choice = None
    game.pending_card = None


def _reached_score_limit(game: Game, player: Player) -> bool:
    """End the game if ``player`` just reached the score limit."""
    if player.score < game.rules.score_limit:
        return False
    _finish(game, FinishReason.SCORE_LIMIT, player_id=player.id)
    return True


def _finish(game: Game, reason: FinishReason, player_id: Optional[str] = None) -> None:
    game.status = GameStatus.FINISHED
    game.finish_reason = reason
    game.waiting_for_row_choice = None
    game.pending_card = None
    game._emit(
        events.game_finished,
        reason=reason.value,
        scores=game.scores(),
        player_id=player_id,
    )
