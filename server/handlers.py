"""WebSocket message handlers for the card game.

Each handler corresponds to a single message type from the client.
Handlers are dispatched via the HANDLERS dict in main.py.

Every handler validates its payload first, then resolves the room, then
applies the command under the room's lock. Failures are reported to the
sending connection only; successes are fanned out through
broadcast_game_state so each recipient gets its own projection.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import WebSocket
from pydantic import BaseModel, Field, ValidationError

from constants import MIN_PLAYERS
from game import GamePhase
from logging_config import room_id_var
from room import Room, RoomManager
from views import get_state

logger = logging.getLogger(__name__)


@dataclass
class ConnectionContext:
    """State tracked per WebSocket connection."""

    websocket: WebSocket
    connection_id: str


# ---------------------------------------------------------------------------
# Inbound message models
# ---------------------------------------------------------------------------

class RoomMessage(BaseModel):
    room_id: str = Field(alias="roomId", min_length=1)


class CreateRoomMessage(BaseModel):
    name: str = Field(min_length=1, max_length=32)
    room_id: Optional[str] = Field(default=None, alias="roomId", min_length=1)


class JoinRoomMessage(RoomMessage):
    name: str = Field(min_length=1, max_length=32)


class PlayCardMessage(RoomMessage):
    card_id: str = Field(alias="cardId", min_length=1)
    chosen_color: Optional[str] = Field(default=None, alias="chosenColor")


async def send_error(ctx: ConnectionContext, message: str) -> None:
    await ctx.websocket.send_json({"type": "error", "message": message})


async def _parse(model: type[BaseModel], data: dict, ctx: ConnectionContext) -> Optional[BaseModel]:
    """Validate a payload, replying with an error when it is malformed."""
    try:
        return model.model_validate(data)
    except ValidationError as e:
        logger.debug(f"Rejected {data.get('type')} from {ctx.connection_id}: {e.errors()}")
        await send_error(ctx, f"Invalid {data.get('type', 'unknown')} message")
        return None


async def _get_room(room_manager: RoomManager, room_id: str, ctx: ConnectionContext) -> Optional[Room]:
    room = room_manager.get_room(room_id)
    if room is None:
        await send_error(ctx, "Room not found")
        return None
    room_id_var.set(room.code)
    return room


async def _still_registered(room_manager: RoomManager, room: Room, ctx: ConnectionContext) -> bool:
    """Re-check a room after waiting for its lock; a disconnect may have removed it."""
    if room_manager.get_room(room.code) is room:
        return True
    await send_error(ctx, "Room not found")
    return False


# ---------------------------------------------------------------------------
# Lobby / Room handlers
# ---------------------------------------------------------------------------

async def handle_create_room(data: dict, ctx: ConnectionContext, *, room_manager, **kw) -> None:
    msg = await _parse(CreateRoomMessage, data, ctx)
    if msg is None:
        return

    room = room_manager.create_room(msg.room_id)
    if room is None:
        await send_error(ctx, "Room already exists")
        return

    room_id_var.set(room.code)
    room.add_player(ctx.connection_id, msg.name, ctx.websocket)
    logger.info(f"{msg.name} created room {room.code}", extra={"room_id": room.code})

    await ctx.websocket.send_json({
        "type": "room_created",
        "roomId": room.code,
        "state": get_state(room.game, ctx.connection_id),
    })


async def handle_join_room(data: dict, ctx: ConnectionContext, *, room_manager, broadcast_game_state, **kw) -> None:
    msg = await _parse(JoinRoomMessage, data, ctx)
    if msg is None:
        return

    room = await _get_room(room_manager, msg.room_id, ctx)
    if room is None:
        return

    async with room.game_lock:
        if not await _still_registered(room_manager, room, ctx):
            return

        if ctx.connection_id in room.players or ctx.connection_id in room.observers:
            await send_error(ctx, "Already in this room")
            return

        if room.is_full():
            await send_error(ctx, "Room is full")
            return

        if room.game.started:
            await send_error(ctx, "Game already in progress")
            return

        if not room.add_player(ctx.connection_id, msg.name, ctx.websocket):
            await send_error(ctx, "Failed to join room")
            return

        logger.info(f"{msg.name} joined room {room.code}", extra={"room_id": room.code})

        await ctx.websocket.send_json({
            "type": "room_joined",
            "roomId": room.code,
            "state": get_state(room.game, ctx.connection_id),
        })

        await room.broadcast({
            "type": "player_joined",
            "players": room.player_list(),
        }, exclude=ctx.connection_id)
        await broadcast_game_state(room, "game_updated", exclude=ctx.connection_id)


async def handle_join_as_observer(data: dict, ctx: ConnectionContext, *, room_manager, **kw) -> None:
    msg = await _parse(RoomMessage, data, ctx)
    if msg is None:
        return

    room = await _get_room(room_manager, msg.room_id, ctx)
    if room is None:
        return

    async with room.game_lock:
        if not await _still_registered(room_manager, room, ctx):
            return

        if ctx.connection_id in room.players:
            await send_error(ctx, "Already playing in this room")
            return

        room.add_observer(ctx.connection_id, ctx.websocket)
        logger.info(
            f"Observer joined room {room.code} (total: {room.observer_count()})",
            extra={"room_id": room.code},
        )

        await ctx.websocket.send_json({
            "type": "observer_joined",
            "roomId": room.code,
            "state": get_state(room.game, None),
        })

        await room.broadcast({
            "type": "observer_count_update",
            "count": room.observer_count(),
        })


# ---------------------------------------------------------------------------
# Game lifecycle handlers
# ---------------------------------------------------------------------------

async def handle_start_game(data: dict, ctx: ConnectionContext, *, room_manager, broadcast_game_state, **kw) -> None:
    msg = await _parse(RoomMessage, data, ctx)
    if msg is None:
        return

    room = await _get_room(room_manager, msg.room_id, ctx)
    if room is None:
        return

    async with room.game_lock:
        if not await _still_registered(room_manager, room, ctx):
            return

        if not room.get_player(ctx.connection_id):
            await send_error(ctx, "Only players in this room can start the game")
            return

        if room.game.started:
            await send_error(ctx, "Game already started")
            return

        if len(room.players) < MIN_PLAYERS:
            await send_error(ctx, f"Need at least {MIN_PLAYERS} players")
            return

        if not room.game.start_game():
            await send_error(ctx, "Cannot start game")
            return

        logger.info(
            f"Game started in room {room.code} with {len(room.players)} players",
            extra={"room_id": room.code},
        )
        await broadcast_game_state(room, "game_started")


# ---------------------------------------------------------------------------
# Turn action handlers
# ---------------------------------------------------------------------------

async def handle_play_card(data: dict, ctx: ConnectionContext, *, room_manager, broadcast_game_state, **kw) -> None:
    msg = await _parse(PlayCardMessage, data, ctx)
    if msg is None:
        return

    room = await _get_room(room_manager, msg.room_id, ctx)
    if room is None:
        return

    async with room.game_lock:
        if not await _still_registered(room_manager, room, ctx):
            return

        result = room.game.play_card(ctx.connection_id, msg.card_id, msg.chosen_color)
        if not result.success:
            logger.debug(f"Rejected play in room {room.code}: {result.message}")
            await send_error(ctx, result.message or "Cannot play card")
            return

        logger.debug(f"{ctx.connection_id} played {result.card.label()} in room {room.code}")
        await broadcast_game_state(room, "game_updated")


async def handle_draw_card(data: dict, ctx: ConnectionContext, *, room_manager, broadcast_game_state, **kw) -> None:
    msg = await _parse(RoomMessage, data, ctx)
    if msg is None:
        return

    room = await _get_room(room_manager, msg.room_id, ctx)
    if room is None:
        return

    async with room.game_lock:
        if not await _still_registered(room_manager, room, ctx):
            return

        result = room.game.draw_card(ctx.connection_id)
        if not result.success:
            await send_error(ctx, result.message or "Cannot draw card")
            return

        await ctx.websocket.send_json({
            "type": "cards_drawn",
            "cards": [card.to_dict() for card in result.cards],
        })
        await broadcast_game_state(room, "game_updated")


async def handle_declare_low_hand(data: dict, ctx: ConnectionContext, *, room_manager, broadcast_game_state, **kw) -> None:
    msg = await _parse(RoomMessage, data, ctx)
    if msg is None:
        return

    room = await _get_room(room_manager, msg.room_id, ctx)
    if room is None:
        return

    async with room.game_lock:
        if not await _still_registered(room_manager, room, ctx):
            return

        if room.game.phase != GamePhase.PLAYING:
            await send_error(ctx, "Game not in progress")
            return

        if not room.game.declare_low_hand(ctx.connection_id):
            await send_error(ctx, "You can only declare with exactly one card left")
            return

        await room.broadcast({
            "type": "low_hand_declared",
            "playerId": ctx.connection_id,
        })
        await broadcast_game_state(room, "game_updated")


# ---------------------------------------------------------------------------
# Handler dispatch table
# ---------------------------------------------------------------------------

HANDLERS = {
    "create_room": handle_create_room,
    "join_room": handle_join_room,
    "join_as_observer": handle_join_as_observer,
    "start_game": handle_start_game,
    "play_card": handle_play_card,
    "draw_card": handle_draw_card,
    "declare_low_hand": handle_declare_low_hand,
}
