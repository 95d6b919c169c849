"""
Game logic for the color-matching card game.

This module implements the authoritative rules engine for one match:
player seating, dealing, legality checks, card effects, forced draws and
the win condition.

Rules Summary:
    - 2-4 players, 7 cards each, one face-up card starts the discard pile
    - On your turn: play a card that matches the active color, or the
      number/face of the top discard, or any wild card; otherwise draw
    - Skip, reverse and draw two change turn order or stack a forced draw
    - Wild cards name the next active color
    - First player to empty their hand wins

Turn order:
    index = (index + direction + player_count) % player_count
"""

import random
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union

from cards import Card, CardColor, CardType, build_deck, shuffle
from constants import (
    DRAW_TWO_PENALTY,
    MAX_PLAYERS,
    MIN_PLAYERS,
    STARTING_HAND_SIZE,
    WILD_DRAW_FOUR_PENALTY,
)


class GamePhase(str, Enum):
    """
    Phases of a match.

    Flow: WAITING -> PLAYING -> GAME_OVER
    """

    WAITING = "waiting"      # Lobby, accepting participants
    PLAYING = "playing"      # Cards dealt, taking turns
    GAME_OVER = "game_over"  # Terminal; winner set unless the table emptied


@dataclass
class Player:
    """
    A participant in a match.

    Attributes:
        id: Unique identifier (the participant's connection id).
        name: Display name.
        hand: Cards held by the player. Order is not significant.
        declared_low_hand: Whether the player announced holding one card.
    """

    id: str
    name: str
    hand: list[Card] = field(default_factory=list)
    declared_low_hand: bool = False

    def find_card(self, card_id: str) -> Optional[Card]:
        """Return the card with this id if the player holds it."""
        for card in self.hand:
            if card.id == card_id:
                return card
        return None

    @property
    def hand_size(self) -> int:
        return len(self.hand)


@dataclass
class PlayResult:
    """Outcome of Game.play_card()."""

    success: bool
    message: str = ""
    card: Optional[Card] = None
    game_over: bool = False

    @classmethod
    def fail(cls, message: str) -> "PlayResult":
        return cls(success=False, message=message)


@dataclass
class DrawResult:
    """Outcome of Game.draw_card(). ``cards`` may be shorter than requested."""

    success: bool
    message: str = ""
    cards: list[Card] = field(default_factory=list)

    @classmethod
    def fail(cls, message: str) -> "DrawResult":
        return cls(success=False, message=message)


@dataclass
class MatchSummary:
    """
    Completed-match record handed to the match recorder.

    Attributes:
        room_id: Room the match was played in.
        players: One dict per remaining player: id, name, final_card_count.
        winner_id: ID of the player who emptied their hand.
        winner_name: Display name of the winner.
        duration_seconds: Time from start to end of play.
    """

    room_id: str
    players: list[dict]
    winner_id: str
    winner_name: str
    duration_seconds: int


def parse_color(value: Union[CardColor, str, None]) -> Optional[CardColor]:
    """Coerce a client-supplied color to CardColor, or None if unrecognized."""
    if value is None or isinstance(value, CardColor):
        return value
    try:
        return CardColor(str(value).lower())
    except ValueError:
        return None


@dataclass
class Game:
    """
    Authoritative state and rules controller for a single match.

    All public commands validate every precondition before mutating state,
    so a rejected command leaves the game exactly as it was.

    Attributes:
        game_id: Identifier of the owning room.
        players: Players in turn order (max 4).
        draw_pile: Face-down stack; the last element is the top card.
        discard_pile: Played cards; the last element is the top card.
        current_player_index: Index into players of whose turn it is.
        direction: +1 for clockwise, -1 after an odd number of reverses.
        active_color: The color the next play must match (never WILD).
        pending_draw: Stacked forced-draw count for the next draw.
        phase: Current phase (waiting, playing, game over).
        winner_id: Set once, when a player empties their hand.
        created_at: When the room's match was created.
        started_at: When cards were dealt.
        ended_at: When the match ended.
        rng: Optional random source for deterministic shuffles.
    """

    game_id: str = ""
    players: list[Player] = field(default_factory=list)
    draw_pile: list[Card] = field(default_factory=list)
    discard_pile: list[Card] = field(default_factory=list)
    current_player_index: int = 0
    direction: int = 1
    active_color: Optional[CardColor] = None
    pending_draw: int = 0
    phase: GamePhase = GamePhase.WAITING
    winner_id: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    rng: Optional[random.Random] = field(default=None, repr=False, compare=False)

    @property
    def started(self) -> bool:
        return self.phase != GamePhase.WAITING

    @property
    def ended(self) -> bool:
        return self.phase == GamePhase.GAME_OVER

    # -------------------------------------------------------------------------
    # Player Management
    # -------------------------------------------------------------------------

    def add_player(self, player_id: str, name: str) -> bool:
        """
        Seat a new player with an empty hand.

        Args:
            player_id: Unique player identifier.
            name: Display name.

        Returns:
            True if seated, False if the game is full, started, or the
            player is already seated.
        """
        if self.phase != GamePhase.WAITING:
            return False
        if len(self.players) >= MAX_PLAYERS:
            return False
        if self.get_player(player_id):
            return False
        self.players.append(Player(id=player_id, name=name))
        return True

    def remove_player(self, player_id: str) -> Optional[Player]:
        """
        Remove a player from the game by ID, in any phase.

        The turn pointer is kept on a seated player: it shifts down when an
        earlier seat leaves, and moves on in the current direction when the
        current player leaves. During play the departing hand goes back
        under the draw pile. If fewer than two players remain mid-match,
        the match ends without a winner.

        Args:
            player_id: The unique ID of the player to remove.

        Returns:
            The removed Player, or None if not found.
        """
        for i, player in enumerate(self.players):
            if player.id != player_id:
                continue

            removed = self.players.pop(i)
            remaining = len(self.players)

            if remaining == 0:
                self.current_player_index = 0
            elif i < self.current_player_index:
                self.current_player_index -= 1
            elif i == self.current_player_index and self.direction < 0:
                self.current_player_index = (i - 1) % remaining
            elif self.current_player_index >= remaining:
                self.current_player_index = 0

            if self.phase == GamePhase.PLAYING:
                self.draw_pile[:0] = shuffle(removed.hand, self.rng)
                removed.hand = []
                if remaining < MIN_PLAYERS:
                    self._end_game(winner_id=None)

            return removed
        return None

    def get_player(self, player_id: str) -> Optional[Player]:
        """
        Find a player by their ID.

        Args:
            player_id: The unique ID to search for.

        Returns:
            The Player if found, None otherwise.
        """
        for player in self.players:
            if player.id == player_id:
                return player
        return None

    def current_player(self) -> Optional[Player]:
        """Get the player whose turn it currently is."""
        if self.players:
            return self.players[self.current_player_index]
        return None

    # -------------------------------------------------------------------------
    # Game Lifecycle
    # -------------------------------------------------------------------------

    def start_game(self) -> bool:
        """
        Deal and flip the first discard.

        Builds a shuffled deck, deals STARTING_HAND_SIZE cards to each
        player in seat order, then turns up the first discard. Wild cards
        turned up are shuffled back into the draw pile until a colored card
        appears.

        Returns:
            True if started, False if already started or too few players.
        """
        if self.phase != GamePhase.WAITING:
            return False
        if len(self.players) < MIN_PLAYERS:
            return False

        self.draw_pile = build_deck(self.rng)
        self.discard_pile = []

        for player in self.players:
            player.hand = []
            player.declared_low_hand = False
        for _ in range(STARTING_HAND_SIZE):
            for player in self.players:
                player.hand.append(self.draw_pile.pop())

        first = self.draw_pile.pop()
        while first.is_wild:
            self.draw_pile.insert(0, first)
            self.draw_pile = shuffle(self.draw_pile, self.rng)
            first = self.draw_pile.pop()

        self.discard_pile.append(first)
        self.active_color = first.color
        self.current_player_index = 0
        self.direction = 1
        self.pending_draw = 0
        self.phase = GamePhase.PLAYING
        self.started_at = datetime.now(timezone.utc)
        return True

    def _end_game(self, winner_id: Optional[str]) -> None:
        self.phase = GamePhase.GAME_OVER
        self.winner_id = winner_id
        self.ended_at = datetime.now(timezone.utc)

    # -------------------------------------------------------------------------
    # Turn Actions
    # -------------------------------------------------------------------------

    def is_playable(self, card: Card) -> bool:
        """
        Check whether a card matches the table.

        Wild cards always match. Otherwise the card must share the active
        color, or be a number card with the same value as a number card on
        top of the discard pile, or share the top discard's action face.
        """
        if card.is_wild:
            return True
        if card.color == self.active_color:
            return True

        top = self.discard_top()
        if top is None:
            return False
        if card.type == CardType.NUMBER:
            return top.type == CardType.NUMBER and card.value == top.value
        return card.type == top.type

    def play_card(
        self,
        player_id: str,
        card_id: str,
        chosen_color: Union[CardColor, str, None] = None,
    ) -> PlayResult:
        """
        Play a card from the current player's hand onto the discard pile.

        Args:
            player_id: The player making the play.
            card_id: ID of a card in that player's hand.
            chosen_color: Color named by a wild card. Required for wilds,
                ignored otherwise.

        Returns:
            PlayResult; on failure nothing has changed.
        """
        if self.phase != GamePhase.PLAYING:
            return PlayResult.fail("Game not in progress")

        player = self.current_player()
        if player is None or player.id != player_id:
            return PlayResult.fail("Not your turn")

        card = player.find_card(card_id)
        if card is None:
            return PlayResult.fail("Card not in hand")

        if not self.is_playable(card):
            return PlayResult.fail("Card does not match")

        color = None
        if card.is_wild:
            color = parse_color(chosen_color)
            if color is None or color == CardColor.WILD:
                return PlayResult.fail("Choose a color for a wild card")

        player.hand.remove(card)
        self.discard_pile.append(card)
        self._apply_effect(card, color)

        if not player.hand:
            self._end_game(winner_id=player.id)
            return PlayResult(success=True, card=card, game_over=True)

        if player.hand_size > 1:
            player.declared_low_hand = False

        return PlayResult(success=True, card=card)

    def _apply_effect(self, card: Card, chosen_color: Optional[CardColor]) -> None:
        """Resolve a played card's effect and move the turn on."""
        if card.type == CardType.NUMBER:
            self.active_color = card.color
            self._advance_turn()
        elif card.type == CardType.SKIP:
            self._advance_turn(2)
        elif card.type == CardType.REVERSE:
            if len(self.players) == 2:
                self._advance_turn(2)
            else:
                self.direction = -self.direction
                self._advance_turn()
        elif card.type == CardType.DRAW_TWO:
            self.pending_draw += DRAW_TWO_PENALTY
            self._advance_turn()
        elif card.type == CardType.WILD:
            self.active_color = chosen_color
            self._advance_turn()
        elif card.type == CardType.WILD_DRAW_FOUR:
            self.pending_draw += WILD_DRAW_FOUR_PENALTY
            self.active_color = chosen_color
            self._advance_turn()
        else:
            raise ValueError(f"Unhandled card type: {card.type}")

    def _advance_turn(self, steps: int = 1) -> None:
        count = len(self.players)
        for _ in range(steps):
            self.current_player_index = (
                self.current_player_index + self.direction + count
            ) % count

    def draw_card(self, player_id: str) -> DrawResult:
        """
        Draw for the current player and end their turn.

        Draws max(1, pending_draw) cards. An empty draw pile is refilled
        from the discard pile (all but its top card); if both run dry the
        player simply receives fewer cards.

        Args:
            player_id: The player drawing.

        Returns:
            DrawResult with the cards drawn.
        """
        if self.phase != GamePhase.PLAYING:
            return DrawResult.fail("Game not in progress")

        player = self.current_player()
        if player is None or player.id != player_id:
            return DrawResult.fail("Not your turn")

        drawn: list[Card] = []
        for _ in range(max(1, self.pending_draw)):
            if not self.draw_pile:
                self._reshuffle_discard_pile()
            if not self.draw_pile:
                break
            card = self.draw_pile.pop()
            player.hand.append(card)
            drawn.append(card)

        self.pending_draw = 0
        if player.hand_size > 1:
            player.declared_low_hand = False
        self._advance_turn()

        return DrawResult(success=True, cards=drawn)

    def _reshuffle_discard_pile(self) -> None:
        """Turn the discard pile (minus its top card) into a new draw pile."""
        if len(self.discard_pile) <= 1:
            return
        top = self.discard_pile.pop()
        self.draw_pile = shuffle(self.discard_pile, self.rng)
        self.discard_pile = [top]

    def declare_low_hand(self, player_id: str) -> bool:
        """
        Announce that a player is down to one card.

        Returns:
            True if the match is in progress and the player holds exactly
            one card, False otherwise.
        """
        if self.phase != GamePhase.PLAYING:
            return False
        player = self.get_player(player_id)
        if player is None or player.hand_size != 1:
            return False
        player.declared_low_hand = True
        return True

    # -------------------------------------------------------------------------
    # State Queries
    # -------------------------------------------------------------------------

    def discard_top(self) -> Optional[Card]:
        """Get the top card of the discard pile (if any)."""
        if self.discard_pile:
            return self.discard_pile[-1]
        return None

    def total_cards(self) -> int:
        """Cards across all hands, the draw pile and the discard pile."""
        in_hands = sum(player.hand_size for player in self.players)
        return in_hands + len(self.draw_pile) + len(self.discard_pile)

    def summary(self) -> Optional[MatchSummary]:
        """
        Build the completed-match record.

        Returns:
            MatchSummary once a winner exists, None otherwise.
        """
        winner = self.get_player(self.winner_id) if self.winner_id else None
        if not self.ended or winner is None:
            return None

        start = self.started_at or self.created_at
        end = self.ended_at or datetime.now(timezone.utc)
        return MatchSummary(
            room_id=self.game_id,
            players=[
                {"id": p.id, "name": p.name, "final_card_count": p.hand_size}
                for p in self.players
            ],
            winner_id=winner.id,
            winner_name=winner.name,
            duration_seconds=int((end - start).total_seconds()),
        )
