"""
Per-viewer projections of a match.

The server never sends raw Game state. Each recipient gets a GameView in
which every hand is reduced to a card count except the viewer's own.
Observers (viewer_id=None, or any id that is not seated) see counts only.

Projection is a pure read: nothing on the Game is modified. Views are
rebuilt for every broadcast.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, TYPE_CHECKING

from cards import Card

if TYPE_CHECKING:
    from game import Game


@dataclass(frozen=True)
class PlayerView:
    """
    A player as seen by one viewer.

    Attributes:
        id: Player ID.
        name: Display name.
        hand_count: True number of cards in the player's hand.
        declared_low_hand: Whether the player announced holding one card.
        hand: The full hand, present only when the viewer is this player.
    """

    id: str
    name: str
    hand_count: int
    declared_low_hand: bool
    hand: Optional[tuple[Card, ...]] = None

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "hand_count": self.hand_count,
            "declared_low_hand": self.declared_low_hand,
        }
        if self.hand is not None:
            data["hand"] = [card.to_dict() for card in self.hand]
        return data


@dataclass(frozen=True)
class GameView:
    """Redacted match state for a single recipient."""

    game_id: str
    viewer_id: Optional[str]
    phase: str
    players: tuple[PlayerView, ...]
    current_player_id: Optional[str]
    direction: int
    active_color: Optional[str]
    pending_draw: int
    draw_pile_count: int
    discard_pile_count: int
    discard_top: Optional[Card]
    winner_id: Optional[str]
    created_at: datetime

    @property
    def started(self) -> bool:
        return self.phase != "waiting"

    @property
    def ended(self) -> bool:
        return self.phase == "game_over"

    def to_dict(self) -> dict:
        """Convert to the JSON payload sent over the wire."""
        return {
            "game_id": self.game_id,
            "viewer_id": self.viewer_id,
            "phase": self.phase,
            "started": self.started,
            "ended": self.ended,
            "players": [p.to_dict() for p in self.players],
            "current_player_id": self.current_player_id,
            "direction": self.direction,
            "active_color": self.active_color,
            "pending_draw": self.pending_draw,
            "draw_pile_count": self.draw_pile_count,
            "discard_pile_count": self.discard_pile_count,
            "discard_top": self.discard_top.to_dict() if self.discard_top else None,
            "winner_id": self.winner_id,
            "created_at": self.created_at.isoformat(),
        }


def project(game: "Game", viewer_id: Optional[str] = None) -> GameView:
    """
    Build the view of ``game`` that ``viewer_id`` is allowed to see.

    Args:
        game: Authoritative game state (read only).
        viewer_id: Seated player receiving the view, or None for observers.

    Returns:
        GameView with only the viewer's own hand revealed.
    """
    players = tuple(
        PlayerView(
            id=player.id,
            name=player.name,
            hand_count=player.hand_size,
            declared_low_hand=player.declared_low_hand,
            hand=tuple(player.hand) if viewer_id is not None and player.id == viewer_id else None,
        )
        for player in game.players
    )

    current = game.current_player() if game.started else None

    return GameView(
        game_id=game.game_id,
        viewer_id=viewer_id,
        phase=game.phase.value,
        players=players,
        current_player_id=current.id if current else None,
        direction=game.direction,
        active_color=game.active_color.value if game.active_color else None,
        pending_draw=game.pending_draw,
        draw_pile_count=len(game.draw_pile),
        discard_pile_count=len(game.discard_pile),
        discard_top=game.discard_top(),
        winner_id=game.winner_id,
        created_at=game.created_at,
    )


def get_state(game: "Game", viewer_id: Optional[str] = None) -> dict:
    """Shortcut for project(game, viewer_id).to_dict()."""
    return project(game, viewer_id).to_dict()
