"""
Room management for multiplayer matches.

This module handles room creation, membership, and WebSocket delivery for
game sessions.

A Room contains:
    - A shareable room id (client-chosen, or a generated 4-letter code)
    - The participants (2-4 seated players, each a WebSocket connection)
    - The observers (any number of read-only connections)
    - A Game instance with the authoritative match state

A room exists from its first create command until its last participant
leaves.
"""

import asyncio
import logging
import random
import string
from dataclasses import dataclass, field
from typing import Optional

from fastapi import WebSocket

from config import config
from constants import MAX_PLAYERS
from game import Game

logger = logging.getLogger(__name__)


@dataclass
class RoomMember:
    """
    A connection attached to a room (participant or observer).

    This is separate from game.Player - RoomMember tracks the connection,
    while game.Player tracks the hand and turn state.

    Attributes:
        id: Connection id (also the Player id for participants).
        name: Display name.
        websocket: WebSocket connection (None in unit tests that skip I/O).
    """

    id: str
    name: str
    websocket: Optional[WebSocket] = None


@dataclass
class Room:
    """
    A game room that hosts one match.

    Attributes:
        code: Shareable room id.
        players: Dict mapping participant connection IDs to RoomMembers,
            in seat order.
        observers: Dict mapping observer connection IDs to RoomMembers.
        game: The Game instance owned by this room.
        game_lock: asyncio.Lock serializing each command with its broadcast.
        end_announced: Whether game_ended has been sent for this match.
    """

    code: str
    players: dict[str, RoomMember] = field(default_factory=dict)
    observers: dict[str, RoomMember] = field(default_factory=dict)
    game: Game = field(default_factory=Game)
    game_lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    end_announced: bool = False

    def __post_init__(self) -> None:
        self.game.game_id = self.code

    def add_player(
        self,
        player_id: str,
        name: str,
        websocket: Optional[WebSocket] = None,
    ) -> Optional[RoomMember]:
        """
        Seat a participant.

        Args:
            player_id: Connection id of the participant.
            name: Display name.
            websocket: The participant's WebSocket connection.

        Returns:
            The created RoomMember, or None if the room is full, the match
            has started, or the connection is already seated.
        """
        if not self.game.add_player(player_id, name):
            return None
        member = RoomMember(id=player_id, name=name, websocket=websocket)
        self.players[player_id] = member
        return member

    def add_observer(
        self,
        observer_id: str,
        websocket: Optional[WebSocket] = None,
        name: str = "Observer",
    ) -> RoomMember:
        """Attach a read-only observer. Always succeeds while the room exists."""
        member = RoomMember(id=observer_id, name=name, websocket=websocket)
        self.observers[observer_id] = member
        return member

    def remove_player(self, player_id: str) -> Optional[RoomMember]:
        """
        Remove a participant from the room and from the match.

        Args:
            player_id: ID of the participant to remove.

        Returns:
            The removed RoomMember, or None if not found.
        """
        if player_id not in self.players:
            return None
        member = self.players.pop(player_id)
        self.game.remove_player(player_id)
        return member

    def remove_observer(self, observer_id: str) -> Optional[RoomMember]:
        """Detach an observer, or return None if it was not attached."""
        return self.observers.pop(observer_id, None)

    def get_player(self, player_id: str) -> Optional[RoomMember]:
        """Get a participant by ID, or None if not found."""
        return self.players.get(player_id)

    def is_empty(self) -> bool:
        """Check if the room has no participants."""
        return len(self.players) == 0

    def is_full(self) -> bool:
        return len(self.players) >= MAX_PLAYERS

    def observer_count(self) -> int:
        return len(self.observers)

    def player_list(self) -> list[dict]:
        """List of participants for client display, in seat order."""
        return [{"id": p.id, "name": p.name} for p in self.players.values()]

    def members(self) -> list[RoomMember]:
        """All connections in the room, participants first."""
        return list(self.players.values()) + list(self.observers.values())

    async def _send(self, member: RoomMember, message: dict) -> None:
        if not member.websocket:
            return
        try:
            await member.websocket.send_json(message)
        except Exception as e:
            logger.debug(f"Failed to send to {member.id} in room {self.code}: {e}")

    async def broadcast(self, message: dict, exclude: Optional[str] = None) -> None:
        """
        Send the same message to every participant and observer.

        Only for payloads without hidden information; match state goes out
        through per-recipient projections instead.

        Args:
            message: JSON-serializable message dict.
            exclude: Optional connection ID to skip.
        """
        for member in self.members():
            if member.id != exclude:
                await self._send(member, message)

    async def send_to(self, member_id: str, message: dict) -> None:
        """
        Send a message to a single participant or observer.

        Args:
            member_id: ID of the recipient connection.
            message: JSON-serializable message dict.
        """
        member = self.players.get(member_id) or self.observers.get(member_id)
        if member:
            await self._send(member, message)


class RoomManager:
    """
    Registry of all live rooms.

    Maps room ids to rooms, creates and discards them, and answers which
    rooms a connection belongs to. A single RoomManager instance is used
    by the server.
    """

    def __init__(self) -> None:
        """Initialize an empty room manager."""
        self.rooms: dict[str, Room] = {}

    def _generate_code(self, max_attempts: int = 100) -> str:
        """Generate a unique room code of ROOM_CODE_LENGTH letters."""
        for _ in range(max_attempts):
            code = "".join(random.choices(string.ascii_uppercase, k=config.ROOM_CODE_LENGTH))
            if code not in self.rooms:
                return code
        raise RuntimeError("Could not generate unique room code")

    def create_room(self, code: Optional[str] = None) -> Optional[Room]:
        """
        Register a new room.

        Args:
            code: Room id requested by the client, or None to generate one.

        Returns:
            The newly created Room, or None if the id is already taken.
        """
        if code is None:
            code = self._generate_code()
        elif code in self.rooms:
            return None
        room = Room(code=code)
        self.rooms[code] = room
        logger.info(f"Room {code} created", extra={"room_id": code})
        return room

    def get_room(self, code: str) -> Optional[Room]:
        """
        Get a room by its id.

        Args:
            code: The room id.

        Returns:
            The Room if found, None otherwise.
        """
        return self.rooms.get(code)

    def remove_room(self, code: str) -> None:
        """
        Delete a room and its match.

        Args:
            code: The room id to remove.
        """
        if self.rooms.pop(code, None) is not None:
            logger.info(f"Room {code} removed", extra={"room_id": code})

    def find_member_rooms(self, connection_id: str) -> list[Room]:
        """
        Find every room a connection belongs to, as participant or observer.

        Args:
            connection_id: The connection ID to search for.

        Returns:
            Matching rooms (possibly empty).
        """
        return [
            room for room in self.rooms.values()
            if connection_id in room.players or connection_id in room.observers
        ]
