"""
Table and deck constants for the color-matching card game.

This module is the single source of truth for deck composition and seat
limits. These are rules of the game and are not read from the
environment; deployment settings live in config.py.

Deck composition per color (red, yellow, green, blue):
    - One 0
    - Two each of 1-9
    - Two each of skip, reverse, draw two
Plus four wild and four wild draw four cards: 108 cards in total.
"""


# =============================================================================
# Deck Composition
# =============================================================================

ZERO_COPIES_PER_COLOR: int = 1
NUMBER_COPIES_PER_COLOR: int = 2   # for each of 1-9
ACTION_COPIES_PER_COLOR: int = 2   # for each of skip, reverse, draw two
WILD_COPIES: int = 4               # for each of wild, wild draw four

COLOR_COUNT: int = 4
CARDS_PER_COLOR: int = (
    ZERO_COPIES_PER_COLOR
    + 9 * NUMBER_COPIES_PER_COLOR
    + 3 * ACTION_COPIES_PER_COLOR
)
DECK_SIZE: int = COLOR_COUNT * CARDS_PER_COLOR + 2 * WILD_COPIES


# =============================================================================
# Table Constants
# =============================================================================

MIN_PLAYERS = 2
MAX_PLAYERS = 4
STARTING_HAND_SIZE = 7

DRAW_TWO_PENALTY = 2
WILD_DRAW_FOUR_PENALTY = 4
