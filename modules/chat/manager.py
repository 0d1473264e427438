import logging
from uuid import uuid4
from typing import List
from .models import ChatMessageCreate, RelayMessage, ChatMessage
from .utils import manager, room_for_incident
from modules.shared.db import execute_query
from modules.shared.response import success_response, error_response
from modules.shared.utils import serialize_row

logger = logging.getLogger("chat.manager")

DEFAULT_HISTORY_LIMIT = 50


class NotJoinedError(Exception):
    """A relay connection tried to post to a room it has not joined."""


async def save_message(incident_id: str, user_id: str, message: str) -> dict:
    """Persist one chat message and return it with the author's username"""
    query = """
        WITH inserted AS (
            INSERT INTO chat_messages (id, incident_id, user_id, message, created_at)
            VALUES ($1, $2, $3, $4, NOW())
            RETURNING *
        )
        SELECT inserted.*, u.username
        FROM inserted
        JOIN users u ON inserted.user_id = u.id
    """
    result = await execute_query(query, (str(uuid4()), incident_id, user_id, message), fetch_one=True)
    return serialize_row(result)


async def get_messages_by_incident(incident_id: str, limit: int = DEFAULT_HISTORY_LIMIT) -> List[dict]:
    query = """
        SELECT cm.*, u.username
        FROM chat_messages cm
        JOIN users u ON cm.user_id = u.id
        WHERE cm.incident_id = $1
        ORDER BY cm.created_at DESC
        LIMIT $2
    """
    results = await execute_query(query, (incident_id, limit))
    return [serialize_row(r) for r in results]


async def relay_message(sender: dict, data: dict, connection=None) -> dict:
    """
    Handle a relay ``send-message``: persist first, then broadcast
    ``new-message`` to every connection joined to the incident room,
    the sender included. Raises if the payload is invalid or persistence fails;
    nothing is broadcast in that case.
    When ``connection`` is given it must have joined the incident room first.
    """
    payload = RelayMessage.model_validate(data)
    room = room_for_incident(payload.incident_id)
    if connection is not None and not manager.is_member(connection, room):
        raise NotJoinedError(f"join-incident {payload.incident_id} first")
    if payload.user_id and str(payload.user_id) != str(sender["id"]):
        logger.warning(
            f"Relay message claims user {payload.user_id} but connection belongs to {sender['id']}; using the latter"
        )
    saved = await save_message(payload.incident_id, sender["id"], payload.message)
    event = ChatMessage.from_row(saved, sender.get("username")).model_dump(by_alias=True)
    delivered = await manager.broadcast(room, {"event": "new-message", "data": event})
    logger.info(f"Relayed message {event['id']} to {delivered} connection(s) in {room}")
    return event


async def store_message(body: ChatMessageCreate, current_user: dict) -> dict:
    """Persist a message sent over REST"""
    logger.info(f"User {current_user['id']} is posting to incident {body.incident_id} over REST")
    try:
        saved = await save_message(body.incident_id, current_user["id"], body.message)
        return success_response(ChatMessage.from_row(saved), "Message saved successfully", status_code=201)
    except Exception as e:
        logger.exception("Error saving chat message")
        return error_response(str(e), 400)


async def get_history(incident_id: str, limit: int) -> dict:
    """Most recent messages first, in the same shape the relay broadcasts"""
    try:
        messages = [ChatMessage.from_row(row) for row in await get_messages_by_incident(incident_id, limit)]
        return success_response(messages, "Messages retrieved successfully")
    except Exception as e:
        logger.exception("Error retrieving chat messages")
        return error_response(str(e), 500)
