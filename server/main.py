"""FastAPI WebSocket server for the color-matching card game."""

import asyncio
import json
import logging
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from config import config
from room import RoomManager, Room
from handlers import HANDLERS, ConnectionContext, send_error
from logging_config import setup_logging, connection_id_var, room_id_var
from services.match_recorder import close_match_recorder, record_match_safe
from views import get_state

# Initialize Sentry if configured
if config.SENTRY_DSN:
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.starlette import StarletteIntegration

    sentry_sdk.init(
        dsn=config.SENTRY_DSN,
        environment=config.ENVIRONMENT,
        traces_sample_rate=0.1 if config.ENVIRONMENT == "production" else 1.0,
        integrations=[
            StarletteIntegration(transaction_style="endpoint"),
            FastApiIntegration(transaction_style="endpoint"),
        ],
    )
    logging.getLogger(__name__).info("Sentry error tracking initialized")

# Configure logging based on environment
setup_logging(
    level=config.LOG_LEVEL,
    environment=config.ENVIRONMENT,
)
logger = logging.getLogger(__name__)


room_manager = RoomManager()


async def _close_all_websockets():
    """Close all active WebSocket connections gracefully."""
    for room in list(room_manager.rooms.values()):
        for member in room.members():
            if member.websocket:
                try:
                    await member.websocket.close(code=1001, reason="Server shutting down")
                except Exception as e:
                    logger.debug(f"Failed to close connection {member.id}: {e}")
    logger.info("All WebSocket connections closed")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info(f"Card game server started (environment={config.ENVIRONMENT})")

    yield

    logger.info("Shutdown initiated...")
    await _close_all_websockets()
    room_manager.rooms.clear()
    close_match_recorder()
    logger.info("Shutdown complete")


app = FastAPI(
    title="Card Game Server",
    debug=config.DEBUG,
    version="1.0.0",
    lifespan=lifespan,
)


async def broadcast_game_state(room: Room, event_type: str = "game_updated", exclude: Optional[str] = None):
    """
    Send every member of a room its own view of the match.

    Participants see their own hand; observers see counts only. When the
    match has just ended, every member also receives game_ended and the
    result is handed to the match recorder.

    Args:
        room: Room whose state changed.
        event_type: Message type for the state push (game_started, game_updated).
        exclude: Optional connection ID to skip for the state push.
    """
    for pid, player in room.players.items():
        if pid == exclude:
            continue
        await room.send_to(pid, {
            "type": event_type,
            "state": get_state(room.game, pid),
        })

    observer_state = get_state(room.game, None)
    for oid in room.observers:
        if oid == exclude:
            continue
        await room.send_to(oid, {
            "type": event_type,
            "state": observer_state,
        })

    if room.game.ended and not room.end_announced:
        room.end_announced = True
        logger.info(
            f"Game over in room {room.code} (winner: {room.game.winner_id or 'none'})",
            extra={"room_id": room.code},
        )

        for pid in room.players:
            await room.send_to(pid, {
                "type": "game_ended",
                "winnerId": room.game.winner_id,
                "state": get_state(room.game, pid),
            })
        for oid in room.observers:
            await room.send_to(oid, {
                "type": "game_ended",
                "winnerId": room.game.winner_id,
                "state": observer_state,
            })

        # Record in the background
        asyncio.create_task(record_match_safe(room.game.summary()))


async def handle_disconnect(connection_id: str) -> None:
    """
    Remove a connection from every room it belongs to.

    Participants leave the match as well; a room whose last participant
    leaves is discarded along with its match. Safe to call more than once.
    """
    for room in room_manager.find_member_rooms(connection_id):
        async with room.game_lock:
            if room_manager.get_room(room.code) is not room:
                continue

            if connection_id in room.observers:
                room.remove_observer(connection_id)
                await room.broadcast({
                    "type": "observer_count_update",
                    "count": room.observer_count(),
                })

            member = room.remove_player(connection_id)
            if member is None:
                continue

            logger.info(f"{member.name} left room {room.code}", extra={"room_id": room.code})

            if room.is_empty():
                if room.observers:
                    await room.broadcast({
                        "type": "player_left",
                        "playerId": member.id,
                        "playerName": member.name,
                        "players": [],
                    })
                    await room.broadcast({"type": "error", "message": "Room closed"})
                room_manager.remove_room(room.code)
                continue

            await room.broadcast({
                "type": "player_left",
                "playerId": member.id,
                "playerName": member.name,
                "players": room.player_list(),
            })
            await broadcast_game_state(room, "game_updated")


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    await websocket.accept()

    connection_id = str(uuid.uuid4())
    connection_id_var.set(connection_id)
    logger.debug(f"WebSocket connected as {connection_id}")

    ctx = ConnectionContext(
        websocket=websocket,
        connection_id=connection_id,
    )

    # Shared dependencies passed to every handler
    handler_deps = dict(
        room_manager=room_manager,
        broadcast_game_state=broadcast_game_state,
    )

    try:
        while True:
            raw = await websocket.receive_text()
            room_id_var.set(None)
            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                await send_error(ctx, "Malformed message")
                continue
            if not isinstance(data, dict):
                await send_error(ctx, "Malformed message")
                continue

            handler = HANDLERS.get(data.get("type"))
            if handler is None:
                await send_error(ctx, f"Unknown message type: {data.get('type')}")
                continue

            try:
                await handler(data, ctx, **handler_deps)
            except WebSocketDisconnect:
                raise
            except Exception:
                logger.exception(f"Handler for {data.get('type')} failed")
                await send_error(ctx, "Internal server error")
    except WebSocketDisconnect:
        logger.debug(f"WebSocket {connection_id} disconnected")
    finally:
        await handle_disconnect(connection_id)


def run():
    """Run the server using uvicorn."""
    import uvicorn

    logger.info(f"Starting card game server on {config.HOST}:{config.PORT}")
    logger.info(f"Debug mode: {config.DEBUG}")

    uvicorn.run(
        "main:app",
        host=config.HOST,
        port=config.PORT,
        reload=config.DEBUG,
        log_level=config.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    run()
