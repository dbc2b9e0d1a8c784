"""
Game state and turn flow for Lockpick.

This module owns a single game's state (hands, piles, deck, turn pointer)
and the transitions that move it forward. Every transition is a pure
function: it takes a GameState, never mutates it, and returns a MoveResult
carrying either the new state or an error message.

Lockpick Rules Summary:
    - Cooperative: all players win or lose together
    - Four piles: two ascending (0, 1) and two descending (2, 3)
    - On your turn: play at least 2 cards (1 once the deck is empty)
    - End your turn to refill your hand from the deck
    - The team wins when every card has been played onto the piles

State machine:
    NoGame -> InProgress -> Won (or Lost when a player cannot play)
    InProgress cycles AwaitingPlays -> TurnComplete -> AwaitingPlays (next player)
"""

import copy
import time
from dataclasses import dataclass, field
from typing import Optional, Sequence, Union

from constants import PILE_COUNT
from rules import (
    can_play_card,
    create_deck,
    descending_start_value,
    hand_size,
    is_game_won,
    max_card_value,
    min_cards_required,
    pile_type_for,
    playable_moves,
    total_card_count,
)


@dataclass
class GameState:
    """
    Snapshot of one Lockpick game.

    Attributes:
        player_hands: One hand per seat, in seat order.
        current_player: Seat index whose turn it is.
        discard_piles: The four piles, oldest card first.
        deck: Undealt cards; draws come from the front.
        cards_played_this_turn: Plays made by the current player so far.
        turn_complete: Whether the current player has met the turn minimum.
        game_won: Whether every card has been played.
        game_over: Whether the game ended because a player could not play.
        total_cards: Size of the full deck for this table.
        max_card: Highest card value in the deck.
        descending_start: Conceptual starting value of the descending piles.
    """

    player_hands: list[list[int]]
    current_player: int = 0
    discard_piles: list[list[int]] = field(default_factory=lambda: [[] for _ in range(PILE_COUNT)])
    deck: list[int] = field(default_factory=list)
    cards_played_this_turn: int = 0
    turn_complete: bool = False
    game_won: bool = False
    game_over: bool = False
    total_cards: int = 0
    max_card: int = 0
    descending_start: int = 0
    game_started: bool = True
    created_at: float = field(default_factory=time.time)

    @property
    def player_count(self) -> int:
        return len(self.player_hands)

    @property
    def current_hand(self) -> list[int]:
        return self.player_hands[self.current_player]

    @property
    def min_cards_required(self) -> int:
        return min_cards_required(len(self.deck))

    @property
    def is_finished(self) -> bool:
        return self.game_won or self.game_over

    def card_count(self) -> int:
        """Count every card in hands, piles and deck (should equal total_cards)."""
        return (
            sum(len(hand) for hand in self.player_hands)
            + sum(len(pile) for pile in self.discard_piles)
            + len(self.deck)
        )

    def copy(self) -> "GameState":
        """Deep copy, so transitions never share lists with their input."""
        return copy.deepcopy(self)

    def is_valid(self) -> bool:
        """Structural sanity check used before transitions."""
        return (
            self.player_count > 0
            and 0 <= self.current_player < self.player_count
            and len(self.discard_piles) == PILE_COUNT
        )

    def to_dict(self) -> dict:
        """Convert to a JSON-serializable dict for clients and snapshots."""
        return {
            "player_hands": [list(hand) for hand in self.player_hands],
            "current_player": self.current_player,
            "discard_piles": [list(pile) for pile in self.discard_piles],
            "deck": list(self.deck),
            "cards_played_this_turn": self.cards_played_this_turn,
            "turn_complete": self.turn_complete,
            "game_won": self.game_won,
            "game_over": self.game_over,
            "total_cards": self.total_cards,
            "max_card": self.max_card,
            "descending_start": self.descending_start,
            "game_started": self.game_started,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "GameState":
        """
        Rebuild a GameState from its dict form.

        Older snapshots may lack the deck-scaling fields; those are derived
        from the number of hands.
        """
        hands = [list(hand) for hand in data["player_hands"]]
        num_players = len(hands)
        return cls(
            player_hands=hands,
            current_player=data.get("current_player", 0),
            discard_piles=[list(pile) for pile in data.get("discard_piles", [[]] * PILE_COUNT)],
            deck=list(data.get("deck", [])),
            cards_played_this_turn=data.get("cards_played_this_turn", 0),
            turn_complete=data.get("turn_complete", False),
            game_won=data.get("game_won", False),
            game_over=data.get("game_over", False),
            total_cards=data.get("total_cards") or total_card_count(num_players),
            max_card=data.get("max_card") or max_card_value(num_players),
            descending_start=data.get("descending_start") or descending_start_value(num_players),
            game_started=data.get("game_started", True),
            created_at=data.get("created_at", time.time()),
        )


@dataclass
class MoveResult:
    """Outcome of a state transition: the new state, or an error."""

    success: bool
    game_state: Optional[GameState] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, game_state: GameState) -> "MoveResult":
        return cls(success=True, game_state=game_state)

    @classmethod
    def fail(cls, error: str) -> "MoveResult":
        return cls(success=False, error=error)


# -----------------------------------------------------------------------------
# Transitions
# -----------------------------------------------------------------------------

def initialize_game(players: Union[int, Sequence[str]]) -> GameState:
    """
    Deal a new game.

    Args:
        players: Either a seat count or a sequence of player names (one
            seat per name, in turn order).

    Returns:
        A fresh GameState with every seat dealt a full hand.
    """
    num_players = players if isinstance(players, int) else len(players)
    num_players = max(1, num_players)

    deck = create_deck(num_players)
    size = hand_size(num_players)

    player_hands = []
    for _ in range(num_players):
        player_hands.append(deck[:size])
        deck = deck[size:]

    return GameState(
        player_hands=player_hands,
        deck=deck,
        total_cards=total_card_count(num_players),
        max_card=max_card_value(num_players),
        descending_start=descending_start_value(num_players),
    )


def play_card(state: GameState, card: int, pile_index: int) -> MoveResult:
    """
    Play a card from the current player's hand onto a pile.

    A card that is legal for the pile but absent from the current hand
    leaves the state unchanged and still reports success; callers must
    compare states if they need to know whether the play happened.

    Args:
        state: Current game state (not modified).
        card: Card value to play.
        pile_index: Target pile, 0-3.

    Returns:
        MoveResult with the new state, or an error naming the pile and card.
    """
    if state.is_finished:
        return MoveResult.fail("The game is already over")

    if not 0 <= pile_index < len(state.discard_piles):
        return MoveResult.fail(f"Pile {pile_index} does not exist")

    pile_type = pile_type_for(pile_index)
    if not can_play_card(card, state.discard_piles[pile_index], pile_type):
        return MoveResult.fail(f"Card {card} cannot be played on this {pile_type.value} pile")

    if card not in state.current_hand:
        return MoveResult.ok(state)

    new_state = state.copy()
    new_state.current_hand.remove(card)
    new_state.discard_piles[pile_index].append(card)
    new_state.cards_played_this_turn += 1
    new_state.turn_complete = new_state.cards_played_this_turn >= new_state.min_cards_required
    new_state.game_won = is_game_won(new_state.discard_piles, new_state.total_cards)

    return MoveResult.ok(new_state)


def end_turn(state: GameState) -> MoveResult:
    """
    End the current player's turn.

    Refills the player's hand from the deck (up to the hand size for this
    table) and passes the turn to the next seat.
    """
    if state.is_finished:
        return MoveResult.fail("The game is already over")

    required = state.min_cards_required
    if state.cards_played_this_turn < required:
        return MoveResult.fail(f"You must play at least {required} cards this turn")

    new_state = state.copy()
    hand = new_state.current_hand
    to_draw = min(hand_size(new_state.player_count) - len(hand), len(new_state.deck))
    if to_draw > 0:
        hand.extend(new_state.deck[:to_draw])
        new_state.deck = new_state.deck[to_draw:]

    new_state.current_player = (new_state.current_player + 1) % new_state.player_count
    new_state.cards_played_this_turn = 0
    new_state.turn_complete = False

    return MoveResult.ok(new_state)


def sort_current_player_hand(state: GameState) -> MoveResult:
    """Sort the acting player's hand ascending. No rule effect."""
    if state.is_finished:
        return MoveResult.fail("The game is already over")

    if not state.is_valid():
        return MoveResult.fail("Invalid game state")

    new_state = state.copy()
    new_state.current_hand.sort()
    return MoveResult.ok(new_state)


def handle_cant_play(state: GameState) -> MoveResult:
    """
    Declare that the current player cannot make a required play.

    Lockpick is lost when a player cannot reach the turn minimum, so this
    ends the game. It is rejected while the player still has a legal move
    or has already completed the turn.
    """
    if state.is_finished:
        return MoveResult.fail("The game is already over")

    if state.turn_complete:
        return MoveResult.fail("Your turn is complete - end your turn instead")

    if playable_moves(state.current_hand, state.discard_piles):
        return MoveResult.fail("You still have a card you can play")

    new_state = state.copy()
    new_state.game_over = True
    return MoveResult.ok(new_state)


# -----------------------------------------------------------------------------
# Status
# -----------------------------------------------------------------------------

def get_game_status(state: GameState) -> str:
    """
    Build a human-readable summary of the turn or the result.

    Derived purely from the state; never authoritative.
    """
    player_label = f"Player {state.current_player + 1}"

    if state.game_won:
        return (
            f"Congratulations! {player_label} won! All {state.total_cards} cards have been played! "
            f"(Max card {state.max_card}, descending starts at {state.descending_start})"
        )

    if state.game_over:
        played = sum(len(pile) for pile in state.discard_piles)
        return (
            f"Game over - {player_label} could not play. "
            f"{played} of {state.total_cards} cards were played."
        )

    cards_in_hand = len(state.current_hand)
    cards_in_deck = len(state.deck)

    if state.turn_complete:
        return (
            f"{player_label}'s turn complete! End turn to draw new cards. "
            f"({cards_in_hand} cards in hand, {cards_in_deck} cards in deck)"
        )

    remaining = max(0, state.min_cards_required - state.cards_played_this_turn)
    plural = "" if remaining == 1 else "s"
    return (
        f"{player_label}'s turn - Play {remaining} more card{plural} to complete your turn "
        f"({cards_in_hand} cards in hand, {cards_in_deck} cards in deck)"
    )
