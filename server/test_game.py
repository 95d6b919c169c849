"""
Test suite for the match rules engine.

Verifies:
- Seating limits and game start (deal, first discard, pile sizes)
- Play legality (color, value, face, wilds) and no mutation on rejection
- Card effects and turn order (skip, reverse, draw two, wilds)
- Forced-draw stacking and draw pile refills
- Low-hand declarations
- Departures mid-match
- Card conservation over many simulated turns

Run with: pytest test_game.py -v
"""

import copy
import random

import pytest

from cards import Card, CardColor, CardType
from constants import DECK_SIZE
from game import Game, GamePhase, Player, parse_color


RED, YELLOW, GREEN, BLUE, WILD = (
    CardColor.RED, CardColor.YELLOW, CardColor.GREEN, CardColor.BLUE, CardColor.WILD,
)


def num(color: CardColor, value: int) -> Card:
    return Card(color, CardType.NUMBER, value)


def action(color: CardColor, card_type: CardType) -> Card:
    return Card(color, card_type)


def wild(card_type: CardType = CardType.WILD) -> Card:
    return Card(WILD, card_type)


def make_game(num_players: int = 2, seed: int = 1) -> Game:
    game = Game(game_id="ROOM", rng=random.Random(seed))
    for i in range(num_players):
        assert game.add_player(f"p{i}", f"Player {i}")
    return game


def started_game(num_players: int = 2, seed: int = 1) -> Game:
    game = make_game(num_players, seed)
    assert game.start_game()
    return game


def rig(game: Game, hands: dict, top: Card, color: CardColor = None) -> None:
    """Replace hands and the discard pile to set up an exact position."""
    for pid, hand in hands.items():
        game.get_player(pid).hand = list(hand)
    game.discard_pile = [top]
    game.active_color = color or top.color


def assert_invariants(game: Game) -> None:
    assert game.total_cards() == DECK_SIZE
    assert game.discard_top() is not None
    assert 0 <= game.current_player_index < len(game.players)
    assert game.pending_draw >= 0
    assert game.active_color != WILD
    for player in game.players:
        if player.declared_low_hand:
            assert player.hand_size == 1


# =============================================================================
# Seating
# =============================================================================

class TestAddPlayer:

    def test_add_up_to_four(self):
        game = make_game(4)
        assert len(game.players) == 4
        assert not game.add_player("p4", "Fifth")
        assert len(game.players) == 4

    def test_new_player_has_empty_hand(self):
        game = make_game(1)
        player = game.get_player("p0")
        assert player.hand == []
        assert player.declared_low_hand is False

    def test_duplicate_id_rejected(self):
        game = make_game(1)
        assert not game.add_player("p0", "Again")

    def test_cannot_join_after_start(self):
        game = started_game(2)
        assert not game.add_player("late", "Late")
        assert len(game.players) == 2


# =============================================================================
# Start
# =============================================================================

class TestStartGame:

    def test_needs_two_players(self):
        game = make_game(1)
        assert not game.start_game()
        assert game.phase == GamePhase.WAITING

    def test_cannot_start_twice(self):
        game = started_game(2)
        assert not game.start_game()

    def test_two_player_deal(self):
        game = started_game(2)
        assert [p.hand_size for p in game.players] == [7, 7]
        assert len(game.draw_pile) == DECK_SIZE - 14 - 1 == 93
        assert len(game.discard_pile) == 1

    def test_four_player_deal(self):
        game = started_game(4)
        assert all(p.hand_size == 7 for p in game.players)
        assert len(game.draw_pile) == DECK_SIZE - 28 - 1

    def test_initial_state(self):
        game = started_game(3)
        assert game.phase == GamePhase.PLAYING
        assert game.started and not game.ended
        assert game.current_player_index == 0
        assert game.direction == 1
        assert game.pending_draw == 0
        assert game.active_color == game.discard_top().color
        assert game.started_at is not None

    @pytest.mark.parametrize("seed", range(40))
    def test_first_discard_never_wild(self, seed):
        game = started_game(2, seed)
        assert not game.discard_top().is_wild
        assert_invariants(game)

    def test_wild_first_discard_is_reshuffled(self, monkeypatch):
        """A wild turned up first goes back into the draw pile."""
        game = make_game(2)

        def fake_deck(rng=None):
            # 14 cards are dealt from the end, then the wild is turned up
            reds = [num(RED, v % 10) for v in range(DECK_SIZE - 1)]
            return reds[:DECK_SIZE - 15] + [wild()] + reds[DECK_SIZE - 15:]

        monkeypatch.setattr("game.build_deck", fake_deck)
        assert game.start_game()
        assert not game.discard_top().is_wild
        assert any(c.is_wild for c in game.draw_pile)
        assert game.discard_top().color == RED
        assert game.total_cards() == DECK_SIZE


# =============================================================================
# Play legality
# =============================================================================

class TestPlayLegality:

    def setup_method(self):
        self.game = started_game(2)

    def test_color_match(self):
        card = num(RED, 2)
        rig(self.game, {"p0": [card, num(BLUE, 9)]}, top=num(RED, 7))
        assert self.game.play_card("p0", card.id).success

    def test_value_match(self):
        card = num(BLUE, 7)
        rig(self.game, {"p0": [card, num(BLUE, 9)]}, top=num(RED, 7))
        assert self.game.play_card("p0", card.id).success
        assert self.game.active_color == BLUE

    def test_face_match(self):
        card = action(GREEN, CardType.SKIP)
        rig(self.game, {"p0": [card, num(BLUE, 9)]}, top=action(RED, CardType.SKIP))
        assert self.game.play_card("p0", card.id).success

    def test_number_does_not_match_action_by_value(self):
        card = num(BLUE, 0)
        rig(self.game, {"p0": [card, num(BLUE, 9)]}, top=action(RED, CardType.REVERSE))
        result = self.game.play_card("p0", card.id)
        assert not result.success
        assert result.message == "Card does not match"

    def test_mismatch_rejected(self):
        card = num(BLUE, 3)
        rig(self.game, {"p0": [card, num(BLUE, 9)]}, top=num(RED, 7))
        assert not self.game.play_card("p0", card.id).success

    def test_active_color_after_wild_is_matched(self):
        card = num(GREEN, 3)
        rig(self.game, {"p0": [card, num(BLUE, 9)]}, top=wild(), color=GREEN)
        assert self.game.play_card("p0", card.id).success

    def test_wild_always_playable(self):
        card = wild()
        rig(self.game, {"p0": [card, num(BLUE, 9)]}, top=num(RED, 7))
        assert self.game.play_card("p0", card.id, "yellow").success
        assert self.game.active_color == YELLOW

    def test_wild_needs_chosen_color(self):
        card = wild()
        rig(self.game, {"p0": [card, num(BLUE, 9)]}, top=num(RED, 7))
        result = self.game.play_card("p0", card.id)
        assert not result.success
        assert "color" in result.message.lower()

    def test_wild_cannot_choose_wild(self):
        card = wild(CardType.WILD_DRAW_FOUR)
        rig(self.game, {"p0": [card, num(BLUE, 9)]}, top=num(RED, 7))
        assert not self.game.play_card("p0", card.id, CardColor.WILD).success
        assert not self.game.play_card("p0", card.id, "purple").success

    def test_not_your_turn(self):
        card = num(RED, 2)
        rig(self.game, {"p1": [card, num(BLUE, 9)]}, top=num(RED, 7))
        result = self.game.play_card("p1", card.id)
        assert not result.success
        assert result.message == "Not your turn"

    def test_card_not_in_hand(self):
        result = self.game.play_card("p0", "no-such-card")
        assert not result.success
        assert result.message == "Card not in hand"

    def test_game_not_started(self):
        game = make_game(2)
        assert not game.play_card("p0", "x").success

    def test_rejected_play_changes_nothing(self):
        card = num(BLUE, 3)
        rig(self.game, {"p0": [card, num(BLUE, 9)]}, top=num(RED, 7))
        before = copy.deepcopy(self.game)

        assert not self.game.play_card("p0", card.id).success
        assert not self.game.play_card("p1", card.id).success
        assert not self.game.play_card("p0", "missing").success

        assert self.game == before

    def test_rejected_wild_changes_nothing(self):
        card = wild(CardType.WILD_DRAW_FOUR)
        rig(self.game, {"p0": [card, num(BLUE, 9)]}, top=num(RED, 7))
        before = copy.deepcopy(self.game)
        assert not self.game.play_card("p0", card.id, None).success
        assert self.game == before


# =============================================================================
# Effects and turn order
# =============================================================================

class TestEffects:

    def test_red_five_on_red(self):
        """Matching red 5 keeps red active and passes the turn."""
        game = started_game(2)
        card = num(RED, 5)
        rig(game, {"p0": [card, num(GREEN, 1)]}, top=num(RED, 8))

        result = game.play_card("p0", card.id)

        assert result.success
        assert game.active_color == RED
        assert game.current_player().id == "p1"
        assert game.discard_top() is card
        assert card not in game.get_player("p0").hand

    @pytest.mark.parametrize("num_players", [2, 3, 4])
    def test_number_advances_one(self, num_players):
        game = started_game(num_players)
        card = num(BLUE, 5)
        rig(game, {"p0": [card, num(GREEN, 1)]}, top=num(RED, 5))
        game.play_card("p0", card.id)
        assert game.current_player_index == 1
        assert game.active_color == BLUE

    def test_number_advances_one_backwards(self):
        game = started_game(3)
        game.direction = -1
        card = num(RED, 1)
        rig(game, {"p0": [card, num(GREEN, 1)]}, top=num(RED, 5))
        game.play_card("p0", card.id)
        assert game.current_player_index == 2

    def test_skip_three_players(self):
        game = started_game(3)
        card = action(RED, CardType.SKIP)
        rig(game, {"p0": [card, num(GREEN, 1)]}, top=num(RED, 5))
        game.play_card("p0", card.id)
        assert game.current_player_index == 2
        assert game.active_color == RED

    def test_skip_leaves_active_color(self):
        game = started_game(3)
        card = action(BLUE, CardType.SKIP)
        rig(game, {"p0": [card, num(GREEN, 1)]}, top=action(RED, CardType.SKIP))
        game.play_card("p0", card.id)
        assert game.active_color == RED

    def test_reverse_three_players(self):
        game = started_game(3)
        card = action(RED, CardType.REVERSE)
        rig(game, {"p0": [card, num(GREEN, 1)]}, top=num(RED, 5))
        game.play_card("p0", card.id)
        assert game.direction == -1
        assert game.current_player_index == 2

    def test_double_reverse_restores_direction(self):
        game = started_game(4)
        first = action(RED, CardType.REVERSE)
        second = action(GREEN, CardType.REVERSE)
        rig(game, {"p0": [first, num(GREEN, 1)], "p3": [second, num(GREEN, 2)]}, top=num(RED, 5))
        game.play_card("p0", first.id)
        assert game.current_player_index == 3
        game.play_card("p3", second.id)
        assert game.direction == 1
        assert game.current_player_index == 0

    def test_two_player_reverse_matches_skip(self):
        reverse_game = started_game(2, seed=5)
        skip_game = started_game(2, seed=5)
        reverse = action(RED, CardType.REVERSE)
        skip = action(RED, CardType.SKIP)
        rig(reverse_game, {"p0": [reverse, num(GREEN, 1)]}, top=num(RED, 5))
        rig(skip_game, {"p0": [skip, num(GREEN, 1)]}, top=num(RED, 5))

        reverse_game.play_card("p0", reverse.id)
        skip_game.play_card("p0", skip.id)

        assert reverse_game.current_player_index == skip_game.current_player_index == 0
        assert reverse_game.direction == skip_game.direction == 1

    def test_draw_two(self):
        game = started_game(3)
        card = action(RED, CardType.DRAW_TWO)
        rig(game, {"p0": [card, num(GREEN, 1)]}, top=num(RED, 5))
        game.play_card("p0", card.id)
        assert game.pending_draw == 2
        assert game.current_player_index == 1

    def test_stacked_draw_two(self):
        """A draw two on a pending draw two stacks to 4; the next draw takes all."""
        game = started_game(2)
        first = action(RED, CardType.DRAW_TWO)
        second = action(BLUE, CardType.DRAW_TWO)
        rig(game, {"p0": [first, num(GREEN, 1), num(GREEN, 2)], "p1": [second, num(GREEN, 3)]},
            top=num(RED, 5))

        assert game.play_card("p0", first.id).success
        assert game.pending_draw == 2
        assert game.play_card("p1", second.id).success
        assert game.pending_draw == 4

        hand_before = game.get_player("p0").hand_size
        result = game.draw_card("p0")

        assert result.success
        assert len(result.cards) == 4
        assert game.get_player("p0").hand_size == hand_before + 4
        assert game.pending_draw == 0
        assert game.current_player().id == "p1"

    def test_wild_sets_chosen_color(self):
        game = started_game(3)
        card = wild()
        rig(game, {"p0": [card, num(GREEN, 1)]}, top=num(RED, 5))
        game.play_card("p0", card.id, CardColor.GREEN)
        assert game.active_color == GREEN
        assert game.current_player_index == 1
        assert game.pending_draw == 0

    def test_wild_draw_four(self):
        game = started_game(3)
        card = wild(CardType.WILD_DRAW_FOUR)
        rig(game, {"p0": [card, num(GREEN, 1)]}, top=num(RED, 5))
        game.play_card("p0", card.id, "blue")
        assert game.active_color == BLUE
        assert game.pending_draw == 4
        assert game.current_player_index == 1


# =============================================================================
# Winning
# =============================================================================

class TestWinning:

    def test_last_card_wins(self):
        game = started_game(2)
        card = num(RED, 5)
        rig(game, {"p0": [card]}, top=num(RED, 8))

        result = game.play_card("p0", card.id)

        assert result.success and result.game_over
        assert game.phase == GamePhase.GAME_OVER
        assert game.winner_id == "p0"
        assert game.ended_at is not None

    def test_no_moves_after_game_over(self):
        game = started_game(2)
        card = num(RED, 5)
        rig(game, {"p0": [card], "p1": [num(RED, 1), num(RED, 2)]}, top=num(RED, 8))
        game.play_card("p0", card.id)

        assert not game.draw_card("p1").success
        assert not game.play_card("p1", game.get_player("p1").hand[0].id).success

    def test_summary(self):
        game = started_game(2)
        card = num(RED, 5)
        rig(game, {"p0": [card], "p1": [num(RED, 1), num(RED, 2)]}, top=num(RED, 8))
        game.play_card("p0", card.id)

        summary = game.summary()

        assert summary.room_id == "ROOM"
        assert summary.winner_id == "p0"
        assert summary.winner_name == "Player 0"
        assert summary.players == [
            {"id": "p0", "name": "Player 0", "final_card_count": 0},
            {"id": "p1", "name": "Player 1", "final_card_count": 2},
        ]
        assert summary.duration_seconds >= 0

    def test_no_summary_while_playing(self):
        assert started_game(2).summary() is None


# =============================================================================
# Drawing
# =============================================================================

class TestDrawCard:

    def test_draw_one_and_pass(self):
        game = started_game(2)
        result = game.draw_card("p0")
        assert result.success
        assert len(result.cards) == 1
        assert game.get_player("p0").hand_size == 8
        assert len(game.draw_pile) == 68
        assert game.current_player().id == "p1"
        assert_invariants(game)

    def test_drawn_card_comes_from_top(self):
        game = started_game(2)
        top = game.draw_pile[-1]
        result = game.draw_card("p0")
        assert result.cards == [top]

    def test_not_your_turn(self):
        game = started_game(2)
        before = copy.deepcopy(game)
        result = game.draw_card("p1")
        assert not result.success
        assert game == before

    def test_not_started(self):
        assert not make_game(2).draw_card("p0").success

    def test_refill_from_discard_keeps_top(self):
        game = started_game(2)
        top = num(RED, 5)
        buried = [num(BLUE, 1), num(BLUE, 2), num(BLUE, 3)]
        game.discard_pile = buried + [top]
        game.draw_pile = []

        result = game.draw_card("p0")

        assert len(result.cards) == 1
        assert result.cards[0] in buried
        assert game.discard_pile == [top]
        assert len(game.draw_pile) == 2

    def test_runs_dry_without_failing(self):
        game = started_game(2)
        game.draw_pile = [num(GREEN, 4)]
        game.discard_pile = [num(BLUE, 1), num(RED, 5)]
        game.pending_draw = 4

        result = game.draw_card("p0")

        assert result.success
        assert len(result.cards) == 2
        assert game.pending_draw == 0
        assert len(game.discard_pile) == 1
        assert game.current_player().id == "p1"


# =============================================================================
# Low hand
# =============================================================================

class TestLowHand:

    def test_declare_with_one_card(self):
        game = started_game(2)
        rig(game, {"p1": [num(RED, 1)]}, top=num(RED, 8))
        assert game.declare_low_hand("p1")
        assert game.get_player("p1").declared_low_hand

    def test_declare_with_more_cards_fails(self):
        game = started_game(2)
        assert not game.declare_low_hand("p0")
        assert not game.get_player("p0").declared_low_hand

    def test_declare_unknown_player(self):
        assert not started_game(2).declare_low_hand("ghost")

    def test_declare_before_start(self):
        game = make_game(2)
        game.get_player("p0").hand = [num(RED, 1)]
        assert not game.declare_low_hand("p0")

    def test_declare_after_game_over(self):
        game = started_game(2)
        card = num(RED, 5)
        rig(game, {"p0": [card], "p1": [num(GREEN, 1)]}, top=num(RED, 8))
        game.play_card("p0", card.id)

        assert game.ended
        assert not game.declare_low_hand("p1")
        assert not game.get_player("p1").declared_low_hand

    def test_play_down_to_one_then_declare(self):
        game = started_game(2)
        card = num(RED, 5)
        rig(game, {"p0": [card, num(GREEN, 1)]}, top=num(RED, 8))
        game.play_card("p0", card.id)
        assert game.declare_low_hand("p0")

    def test_draw_clears_flag(self):
        game = started_game(2)
        rig(game, {"p0": [num(GREEN, 1)]}, top=num(RED, 8))
        assert game.declare_low_hand("p0")
        game.draw_card("p0")
        assert game.get_player("p0").hand_size == 2
        assert not game.get_player("p0").declared_low_hand

    def test_play_leaving_several_cards_clears_flag(self):
        game = started_game(2)
        card = num(RED, 5)
        rig(game, {"p0": [card, num(GREEN, 1), num(GREEN, 2)]}, top=num(RED, 8))
        game.get_player("p0").declared_low_hand = True
        game.play_card("p0", card.id)
        assert not game.get_player("p0").declared_low_hand


# =============================================================================
# Departures
# =============================================================================

class TestRemovePlayer:

    def test_remove_while_waiting(self):
        game = make_game(3)
        removed = game.remove_player("p1")
        assert isinstance(removed, Player)
        assert [p.id for p in game.players] == ["p0", "p2"]
        assert game.phase == GamePhase.WAITING

    def test_remove_unknown(self):
        game = make_game(2)
        assert game.remove_player("ghost") is None

    def test_below_two_ends_without_winner(self):
        game = started_game(2)
        game.remove_player("p1")
        assert game.phase == GamePhase.GAME_OVER
        assert game.winner_id is None
        assert game.summary() is None

    def test_hand_returns_to_draw_pile(self):
        game = started_game(3)
        game.remove_player("p2")
        assert game.phase == GamePhase.PLAYING
        assert game.total_cards() == DECK_SIZE
        assert len(game.draw_pile) == DECK_SIZE - 14 - 1

    def test_earlier_seat_leaving_keeps_turn(self):
        game = started_game(4)
        game.current_player_index = 2
        game.remove_player("p0")
        assert game.current_player().id == "p2"

    def test_later_seat_leaving_keeps_turn(self):
        game = started_game(4)
        game.current_player_index = 1
        game.remove_player("p3")
        assert game.current_player().id == "p1"

    def test_current_player_leaving_passes_turn(self):
        game = started_game(4)
        game.current_player_index = 1
        game.remove_player("p1")
        assert game.current_player().id == "p2"

    def test_last_seat_leaving_on_own_turn_wraps(self):
        game = started_game(3)
        game.current_player_index = 2
        game.remove_player("p2")
        assert game.current_player().id == "p0"

    def test_current_player_leaving_reversed(self):
        game = started_game(4)
        game.direction = -1
        game.current_player_index = 0
        game.remove_player("p0")
        assert game.current_player().id == "p3"

    def test_remove_is_idempotent(self):
        game = started_game(3)
        game.remove_player("p1")
        before = copy.deepcopy(game)
        assert game.remove_player("p1") is None
        assert game == before


# =============================================================================
# Helpers
# =============================================================================

class TestParseColor:

    def test_strings(self):
        assert parse_color("red") == RED
        assert parse_color("BLUE") == BLUE

    def test_passthrough_and_unknown(self):
        assert parse_color(GREEN) == GREEN
        assert parse_color(None) is None
        assert parse_color("purple") is None


# =============================================================================
# Simulated matches
# =============================================================================

def _take_turn(game: Game, rng: random.Random) -> None:
    player = game.current_player()
    playable = [c for c in player.hand if game.is_playable(c)]
    if playable:
        card = rng.choice(playable)
        color = rng.choice(CardColor.playable()) if card.is_wild else None
        assert game.play_card(player.id, card.id, color).success
    else:
        assert game.draw_card(player.id).success

    if game.ended:
        return
    for p in game.players:
        if p.hand_size == 1 and rng.random() < 0.5:
            assert game.declare_low_hand(p.id)


class TestSimulatedMatches:

    @pytest.mark.parametrize("num_players,seed", [(2, 1), (3, 2), (4, 3), (2, 4), (4, 5)])
    def test_invariants_hold_every_turn(self, num_players, seed):
        game = started_game(num_players, seed)
        rng = random.Random(seed)
        assert_invariants(game)

        for _ in range(400):
            if game.ended:
                break
            _take_turn(game, rng)
            assert_invariants(game)

        if game.ended:
            winner = game.get_player(game.winner_id)
            assert winner.hand_size == 0
