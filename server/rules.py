"""
Card rules for Lockpick.

Pure functions with no state of their own: deck construction and scaling,
hand sizing, pile legality, and win detection. Both the turn engine
(game.py) and the local simulator build on these.

Pile rules:
    - Ascending piles accept a card higher than the top card, or exactly
      10 lower (the reverse exception).
    - Descending piles accept a card lower than the top card, or exactly
      10 higher.
    - An empty pile accepts any card. A card equal to the top is never legal.
"""

import random
from enum import Enum
from typing import Sequence

from constants import (
    ASCENDING_PILES,
    BASE_DESCENDING_START,
    BASE_MAX_CARD,
    BASE_PLAYER_COUNT,
    CARDS_PER_EXTRA_PLAYER,
    HAND_SIZES,
    LARGE_TABLE_HAND_SIZE,
    MIN_CARD,
    MIN_PLAYS_PER_TURN,
    MIN_PLAYS_PER_TURN_DECK_EMPTY,
    REVERSE_STEP,
)

# Seeded from system entropy once; never reseeded, so every shuffle is
# independent of the others.
_rng = random.SystemRandom()


class PileType(str, Enum):
    """Direction a discard pile must move in."""

    ASCENDING = "ascending"
    DESCENDING = "descending"


def pile_type_for(pile_index: int) -> PileType:
    """Piles 0-1 ascend, piles 2-3 descend."""
    return PileType.ASCENDING if pile_index in ASCENDING_PILES else PileType.DESCENDING


# -----------------------------------------------------------------------------
# Deck scaling
# -----------------------------------------------------------------------------

def max_card_value(num_players: int) -> int:
    """Highest card in the deck: 99, plus 10 per player beyond 5."""
    extra_players = max(0, num_players - BASE_PLAYER_COUNT)
    return BASE_MAX_CARD + CARDS_PER_EXTRA_PLAYER * extra_players


def total_card_count(num_players: int) -> int:
    """Number of cards in a full deck (cards run from 2 to the max card)."""
    return max_card_value(num_players) - MIN_CARD + 1


def descending_start_value(num_players: int) -> int:
    """Conceptual starting value of the descending piles."""
    max_card = max_card_value(num_players)
    return max_card + 1 if max_card >= BASE_DESCENDING_START else BASE_DESCENDING_START


def shuffle_deck(cards: Sequence[int]) -> list[int]:
    """
    Return a uniformly shuffled copy of the given cards (Fisher-Yates).

    The input sequence is not modified.
    """
    shuffled = list(cards)
    for i in range(len(shuffled) - 1, 0, -1):
        j = _rng.randint(0, i)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def create_deck(num_players: int) -> list[int]:
    """Build and shuffle the deck for a table of the given size."""
    return shuffle_deck(range(MIN_CARD, max_card_value(num_players) + 1))


def hand_size(num_players: int) -> int:
    """
    Cards each player holds after refilling.

    1 player: 8, 2 players: 7, 3-5: 6, 6-8: 5, 9 or more: 4.
    """
    for low, high, size in HAND_SIZES:
        if low <= num_players <= high:
            return size
    return LARGE_TABLE_HAND_SIZE


def min_cards_required(deck_remaining: int) -> int:
    """Plays required before a turn may end (fewer once the deck runs out)."""
    return MIN_PLAYS_PER_TURN_DECK_EMPTY if deck_remaining == 0 else MIN_PLAYS_PER_TURN


# -----------------------------------------------------------------------------
# Legality
# -----------------------------------------------------------------------------

def can_play_card(card: int, pile: Sequence[int], pile_type: str) -> bool:
    """
    Check whether a card may be placed on a pile.

    Args:
        card: The card value to play.
        pile: The pile's cards, oldest first.
        pile_type: "ascending" or "descending".

    Returns:
        True if the play is legal.
    """
    if not pile:
        return True

    top = pile[-1]
    if PileType(pile_type) == PileType.ASCENDING:
        return card > top or card == top - REVERSE_STEP
    return card < top or card == top + REVERSE_STEP


def playable_moves(hand: Sequence[int], piles: Sequence[Sequence[int]]) -> list[tuple[int, int]]:
    """List every legal (card, pile_index) pair for a hand."""
    moves = []
    for card in hand:
        for index, pile in enumerate(piles):
            if can_play_card(card, pile, pile_type_for(index)):
                moves.append((card, index))
    return moves


def is_game_won(piles: Sequence[Sequence[int]], total_cards: int) -> bool:
    """The team wins once every card in the deck sits on a pile."""
    return sum(len(pile) for pile in piles) == total_cards
