"""
Card and deck model for the color-matching card game.

Cards are immutable values. A card's identity never changes during a
match; only the pile that holds it does (hand, draw pile, discard pile).

Deck layout (see constants.py for counts):
    - 4 colors x (one 0, two each of 1-9, two each of skip/reverse/draw two)
    - 4 wild, 4 wild draw four
"""

import random
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Sequence

from constants import (
    ACTION_COPIES_PER_COLOR,
    NUMBER_COPIES_PER_COLOR,
    WILD_COPIES,
    ZERO_COPIES_PER_COLOR,
)


class CardColor(str, Enum):
    """
    Card colors.

    WILD is the color printed on wild cards; it is never a legal active
    color.
    """

    RED = "red"
    YELLOW = "yellow"
    GREEN = "green"
    BLUE = "blue"
    WILD = "wild"

    @classmethod
    def playable(cls) -> list["CardColor"]:
        """The four colors a wild card can name."""
        return [cls.RED, cls.YELLOW, cls.GREEN, cls.BLUE]


class CardType(str, Enum):
    """Card faces. Only NUMBER cards carry a value."""

    NUMBER = "number"
    SKIP = "skip"
    REVERSE = "reverse"
    DRAW_TWO = "draw_two"
    WILD = "wild"
    WILD_DRAW_FOUR = "wild_draw_four"


WILD_TYPES = frozenset({CardType.WILD, CardType.WILD_DRAW_FOUR})
ACTION_TYPES = (CardType.SKIP, CardType.REVERSE, CardType.DRAW_TWO)


def _new_card_id() -> str:
    return uuid.uuid4().hex[:12]


@dataclass(frozen=True)
class Card:
    """
    A single card.

    Attributes:
        color: Printed color (WILD for wild cards).
        type: Card face.
        value: 0-9 for number cards, None otherwise.
        id: Unique token identifying this physical card.
    """

    color: CardColor
    type: CardType
    value: Optional[int] = None
    id: str = field(default_factory=_new_card_id)

    def __post_init__(self) -> None:
        if self.type == CardType.NUMBER:
            if self.value is None or not 0 <= self.value <= 9:
                raise ValueError(f"Number card needs a value 0-9, got {self.value!r}")
        elif self.value is not None:
            raise ValueError(f"{self.type.value} card cannot carry a value")

        if (self.type in WILD_TYPES) != (self.color == CardColor.WILD):
            raise ValueError(f"{self.type.value} card cannot be {self.color.value}")

    @property
    def is_wild(self) -> bool:
        """Whether this is a wild or wild draw four."""
        return self.type in WILD_TYPES

    def label(self) -> str:
        """Short human-readable name, e.g. 'red 5' or 'wild draw four'."""
        if self.type == CardType.NUMBER:
            return f"{self.color.value} {self.value}"
        face = self.type.value.replace("_", " ")
        if self.is_wild:
            return face
        return f"{self.color.value} {face}"

    def to_dict(self) -> dict:
        """Convert card to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "color": self.color.value,
            "type": self.type.value,
            "value": self.value,
        }


def shuffle(cards: Sequence[Card], rng: Optional[random.Random] = None) -> list[Card]:
    """
    Return a uniformly shuffled copy of ``cards`` (Fisher-Yates).

    Args:
        cards: Cards to shuffle. Not modified.
        rng: Random source; defaults to the module-level generator.

    Returns:
        A new list holding the same cards in random order.
    """
    randint = rng.randint if rng else random.randint
    shuffled = list(cards)
    for i in range(len(shuffled) - 1, 0, -1):
        j = randint(0, i)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def build_deck(rng: Optional[random.Random] = None) -> list[Card]:
    """
    Build a full DECK_SIZE deck with fresh card ids, shuffled.

    Args:
        rng: Random source passed through to shuffle().

    Returns:
        The shuffled deck; the last element is the top card.
    """
    cards: list[Card] = []

    for color in CardColor.playable():
        for _ in range(ZERO_COPIES_PER_COLOR):
            cards.append(Card(color, CardType.NUMBER, 0))
        for value in range(1, 10):
            for _ in range(NUMBER_COPIES_PER_COLOR):
                cards.append(Card(color, CardType.NUMBER, value))
        for card_type in ACTION_TYPES:
            for _ in range(ACTION_COPIES_PER_COLOR):
                cards.append(Card(color, card_type))

    for _ in range(WILD_COPIES):
        cards.append(Card(CardColor.WILD, CardType.WILD))
        cards.append(Card(CardColor.WILD, CardType.WILD_DRAW_FOUR))

    return shuffle(cards, rng)
