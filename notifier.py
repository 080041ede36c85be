import asyncio
import logging
from collections import defaultdict
from typing import Any

from fastapi import WebSocket

logger = logging.getLogger(__name__)

TRANSACTION_UPDATED = "transaction_updated"


class RoomManager:
    """Tracks open WebSocket connections grouped into one room per user."""

    def __init__(self) -> None:
        self.rooms: dict[int, set[WebSocket]] = defaultdict(set)

    def join(self, user_id: int, websocket: WebSocket) -> None:
        self.rooms[user_id].add(websocket)
        logger.info(f"room_join: user_id={user_id} members={len(self.rooms[user_id])}")

    def leave(self, user_id: int, websocket: WebSocket) -> None:
        members = self.rooms.get(user_id)
        if not members:
            return
        members.discard(websocket)
        if not members:
            del self.rooms[user_id]
        logger.info(f"room_leave: user_id={user_id}")

    def members(self, user_id: int) -> list[WebSocket]:
        return list(self.rooms.get(user_id, ()))

    async def emit(self, user_id: int, event: str, data: dict[str, Any]) -> int:
        """Send ``event`` to every connection in the user's room.

        Connections that fail are dropped from the room. Returns the number
        of connections the event was handed to.
        """
        message = {"event": event, "data": data}
        sockets = self.members(user_id)
        results = await asyncio.gather(
            *(ws.send_json(message) for ws in sockets), return_exceptions=True
        )
        delivered = 0
        for ws, result in zip(sockets, results):
            if isinstance(result, Exception):
                logger.warning(
                    f"room_emit_failed: user_id={user_id} event={event} error={result!r}"
                )
                self.leave(user_id, ws)
                continue
            delivered += 1
        return delivered


rooms = RoomManager()


async def notify_transaction_changed(
    user_id: int, message: str, manager: RoomManager = rooms
) -> None:
    """Fire-and-forget broadcast run after the HTTP response is sent."""
    try:
        delivered = await manager.emit(
            user_id, TRANSACTION_UPDATED, {"message": message, "userId": user_id}
        )
    except Exception:
        logger.exception(f"notify_failed: user_id={user_id}")
        return
    logger.debug(f"notify_sent: user_id={user_id} delivered={delivered}")
