"""
Chat relay client: one connection per viewed incident.

Lifecycle: DISCONNECTED -> CONNECTING -> JOINED -> DISCONNECTED. The message
list shown for an incident starts from a one-time history fetch and then
grows only from ``new-message`` broadcasts, the sender's own messages
included. Nothing is redelivered after a reconnect.
"""
import asyncio
import json
import logging
from enum import Enum
from typing import Callable, Dict, List, Optional
from urllib.parse import quote

import websockets
from websockets.exceptions import ConnectionClosed

from modules.offline.api import IncidentServiceClient
from modules.offline.storage import CredentialStore

logger = logging.getLogger(__name__)

MessageCallback = Callable[[Dict], None]


class RelayState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    JOINED = "joined"


class ChatRelayError(Exception):
    """The relay refused or dropped the connection."""


class ChatRelayClient:
    """
    ``send_message`` goes over the relay, whose server side persists it. The
    REST write is used when the relay emission fails; with
    ``mirror_writes=True`` it is issued for every message, as a redundant
    second write.
    """

    def __init__(self, incident_id: str, relay_url: str, api: IncidentServiceClient,
                 credentials: CredentialStore, on_message: Optional[MessageCallback] = None,
                 mirror_writes: bool = False, join_timeout: float = 10.0, history_limit: int = 50):
        self.incident_id = str(incident_id)
        self.relay_url = relay_url
        self.mirror_writes = mirror_writes
        self.join_timeout = join_timeout
        self.history_limit = history_limit
        self.state = RelayState.DISCONNECTED
        self.messages: List[Dict] = []
        self._seen_ids = set()
        self._api = api
        self._credentials = credentials
        self._on_message = on_message
        self._ws = None
        self._receive_task: Optional[asyncio.Task] = None

    async def open(self) -> List[Dict]:
        """Connect, join the incident room, then load history. Returns the message list."""
        token = self._credentials.token
        if not token:
            raise ChatRelayError("Not signed in")

        self.state = RelayState.CONNECTING
        try:
            self._ws = await websockets.connect(f"{self.relay_url}?token={quote(token)}")
            await self._ws.send(json.dumps({"event": "join-incident", "data": self.incident_id}))
            await asyncio.wait_for(self._wait_for_join(), timeout=self.join_timeout)
        except Exception as e:
            logger.error(f"Could not join chat for incident {self.incident_id}: {e}")
            await self._drop_connection()
            raise ChatRelayError(str(e)) from e

        self.state = RelayState.JOINED
        logger.info(f"Joined chat for incident {self.incident_id}")
        self._receive_task = asyncio.create_task(self._receive_loop())
        await self.load_history()
        return self.messages

    async def _wait_for_join(self) -> None:
        while True:
            frame = json.loads(await self._ws.recv())
            event, data = frame.get("event"), frame.get("data") or {}
            if event == "joined" and str(data.get("incidentId")) == self.incident_id:
                return
            if event == "error":
                raise ChatRelayError(data.get("message", "join refused"))

    async def load_history(self) -> List[Dict]:
        try:
            history = await self._api.get_chat_history(self.incident_id, limit=self.history_limit,
                                                       token=self._credentials.token)
        except Exception as e:
            logger.error(f"Could not load chat history for incident {self.incident_id}: {e}")
            return self.messages
        # Server order is most recent first; display is oldest first
        earlier = [m for m in reversed(history) if m.get("id") not in self._seen_ids]
        self._seen_ids.update(m.get("id") for m in earlier if m.get("id"))
        self.messages = earlier + self.messages
        return self.messages

    async def _receive_loop(self) -> None:
        try:
            async for raw in self._ws:
                try:
                    frame = json.loads(raw)
                except ValueError:
                    logger.warning("Ignoring malformed relay frame")
                    continue
                event, data = frame.get("event"), frame.get("data")
                if event == "new-message":
                    self._deliver(data)
                elif event == "error":
                    logger.warning(f"Relay error for incident {self.incident_id}: {data}")
        except ConnectionClosed as e:
            logger.warning(f"Chat relay connection for incident {self.incident_id} closed: {e}")
        finally:
            self.state = RelayState.DISCONNECTED

    def _deliver(self, message: Dict) -> None:
        if str(message.get("incidentId")) != self.incident_id:
            return
        message_id = message.get("id")
        if message_id and message_id in self._seen_ids:
            return
        if message_id:
            self._seen_ids.add(message_id)
        self.messages.append(message)
        if self._on_message is not None:
            try:
                self._on_message(message)
            except Exception:
                logger.exception("Chat message callback failed")

    async def send_message(self, text: str) -> bool:
        """
        Send a message. Returns True when it went out over the relay. If both
        the relay and the REST write fail, the REST error propagates and the
        message is lost.
        """
        text = text.strip()
        if not text:
            raise ValueError("Message is empty")

        relayed = False
        if self.state is RelayState.JOINED and self._ws is not None:
            frame = {
                "event": "send-message",
                "data": {"incidentId": self.incident_id, "userId": self._credentials.user_id, "message": text},
            }
            try:
                await self._ws.send(json.dumps(frame))
                relayed = True
            except Exception as e:
                logger.error(f"Relay send failed for incident {self.incident_id}: {e}")
                self.state = RelayState.DISCONNECTED

        if not relayed or self.mirror_writes:
            await self._api.post_chat_message(self.incident_id, text, self._credentials.token)
        return relayed

    async def close(self) -> None:
        if self._receive_task is not None:
            self._receive_task.cancel()
            try:
                await self._receive_task
            except asyncio.CancelledError:
                pass
            self._receive_task = None
        await self._drop_connection()
        logger.info(f"Left chat for incident {self.incident_id}")

    async def _drop_connection(self) -> None:
        ws, self._ws = self._ws, None
        self.state = RelayState.DISCONNECTED
        if ws is not None:
            try:
                await ws.close()
            except Exception as e:
                logger.debug(f"Error closing relay connection: {e}")
