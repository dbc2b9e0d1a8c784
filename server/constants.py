"""
Game constants for Lockpick.

This module is the single source of truth for deck sizing, pile layout,
and hand sizes. Room-level limits come from config.py so they can be
tuned per deployment.

Deck scaling:
    - Up to 5 players: cards 2-99 (98 cards)
    - Each player beyond 5 adds 10 higher cards (6 players: 2-109)

Piles:
    - Piles 0 and 1 ascend (conceptually start at 1)
    - Piles 2 and 3 descend (conceptually start at 100, or max card + 1)
"""

import string

from config import config


# =============================================================================
# Deck Constants
# =============================================================================

MIN_CARD: int = 2
BASE_MAX_CARD: int = 99
BASE_PLAYER_COUNT: int = 5
CARDS_PER_EXTRA_PLAYER: int = 10
BASE_DESCENDING_START: int = 100

# A card exactly this far "backwards" from the top is always playable
REVERSE_STEP: int = 10


# =============================================================================
# Pile Constants
# =============================================================================

PILE_COUNT: int = 4
ASCENDING_PILES: tuple[int, ...] = (0, 1)
DESCENDING_PILES: tuple[int, ...] = (2, 3)


# =============================================================================
# Turn Constants
# =============================================================================

MIN_PLAYS_PER_TURN: int = 2
MIN_PLAYS_PER_TURN_DECK_EMPTY: int = 1

# (min players, max players) -> hand size
HAND_SIZES: list[tuple[int, int, int]] = [
    (1, 1, 8),
    (2, 2, 7),
    (3, 5, 6),
    (6, 8, 5),
]
LARGE_TABLE_HAND_SIZE: int = 4


# =============================================================================
# Room Constants
# =============================================================================

MIN_PLAYERS_TO_START: int = 2
MAX_PLAYERS: int = config.MAX_PLAYERS_PER_ROOM
ROOM_CODE_LENGTH: int = config.ROOM_CODE_LENGTH
ROOM_CODE_ALPHABET: str = string.ascii_uppercase + string.digits
