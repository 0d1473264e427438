from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Depends, Query
from pydantic import ValidationError
from typing import Optional
from .models import ChatMessageCreate
from .manager import relay_message, store_message, get_history, NotJoinedError, DEFAULT_HISTORY_LIMIT
from .utils import manager, room_for_incident
from modules.auth.manager import get_current_user, user_from_token
import json
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("")
@router.post("/", include_in_schema=False)
async def post_message(body: ChatMessageCreate, current_user: dict = Depends(get_current_user)):
    return await store_message(body, current_user)


@router.get("/incident/{incident_id}")
async def incident_history(incident_id: str, limit: int = Query(DEFAULT_HISTORY_LIMIT, ge=1, le=500)):
    return await get_history(incident_id, limit)


def _bearer_from_headers(websocket: WebSocket) -> Optional[str]:
    auth_header = websocket.headers.get("authorization", "")
    if auth_header.lower().startswith("bearer "):
        return auth_header[7:].strip()
    return None


async def _send_error(websocket: WebSocket, message: str) -> None:
    await websocket.send_json({"event": "error", "data": {"message": message}})


@router.websocket("/ws")
async def chat_relay(websocket: WebSocket, token: Optional[str] = Query(None)):
    """
    Chat relay. The bearer token travels as connection metadata (``?token=``
    or an Authorization header). Rooms are joined explicitly with
    ``join-incident``; ``send-message`` is persisted and broadcast to the room.
    """
    await websocket.accept()
    user = user_from_token(token or _bearer_from_headers(websocket))
    if user is None:
        logger.warning("Rejecting relay connection without a valid token")
        await websocket.close(code=4001, reason="Invalid token")
        return

    logger.info(f"Relay connection opened for user {user['id']}")
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                frame = json.loads(raw)
                event = frame["event"]
                data = frame.get("data")
            except (ValueError, KeyError, TypeError):
                await _send_error(websocket, "Malformed frame")
                continue

            if event == "join-incident":
                if data is None or data == "":
                    await _send_error(websocket, "join-incident requires an incident id")
                    continue
                incident_id = str(data)
                await manager.join(websocket, room_for_incident(incident_id))
                logger.info(f"User {user['id']} joined incident {incident_id}")
                await websocket.send_json({"event": "joined", "data": {"incidentId": incident_id}})
            elif event == "leave-incident":
                incident_id = str(data)
                await manager.leave(websocket, room_for_incident(incident_id))
                logger.info(f"User {user['id']} left incident {incident_id}")
                await websocket.send_json({"event": "left", "data": {"incidentId": incident_id}})
            elif event == "send-message":
                try:
                    await relay_message(user, data or {}, connection=websocket)
                except NotJoinedError as e:
                    await _send_error(websocket, str(e))
                except ValidationError as e:
                    await _send_error(websocket, f"Invalid message: {e.errors()[0]['msg']}")
                except Exception as e:
                    logger.exception("Error relaying message")
                    await _send_error(websocket, f"Message could not be delivered: {e}")
            else:
                await _send_error(websocket, f"Unknown event '{event}'")
    except WebSocketDisconnect:
        logger.info(f"Relay connection closed for user {user['id']}")
    finally:
        await manager.leave_all(websocket)
