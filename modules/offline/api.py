import logging
from typing import Any, Dict, List, Optional

import httpx

from .exceptions import IncidentServiceError

logger = logging.getLogger(__name__)


class IncidentServiceClient:
    """
    REST client for the Incident Service, chat storage and Reward Service.

    Responses use the ``{"status", "message", "data"}`` envelope; ``data`` is
    returned, and any non-2xx answer raises IncidentServiceError. Transport
    failures surface as IncidentServiceError without a status code.
    """

    def __init__(self, base_url: str, timeout: float = 10.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self._transport)

    async def _request(self, method: str, path: str, token: Optional[str] = None, **kwargs) -> Any:
        headers = kwargs.pop("headers", {})
        if token:
            headers["Authorization"] = f"Bearer {token}"
        try:
            async with self._client() as client:
                response = await client.request(method, path, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            raise IncidentServiceError(f"{method} {path} failed: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = None

        if not response.is_success:
            message = None
            if isinstance(body, dict):
                message = body.get("message") or body.get("detail")
            raise IncidentServiceError(str(message or response.reason_phrase), response.status_code)
        if isinstance(body, dict) and "data" in body:
            return body["data"]
        raise IncidentServiceError(f"Malformed response from {method} {path}", response.status_code)

    async def create_incident(self, report: Dict[str, Any], token: str) -> Dict[str, Any]:
        entity = await self._request("POST", "/api/incidents", token=token, json=report)
        logger.info(f"Incident Service accepted incident {entity.get('id')}")
        return entity

    async def get_nearby(self, latitude: float, longitude: float, radius: float,
                         token: Optional[str] = None) -> List[Dict[str, Any]]:
        params = {"latitude": latitude, "longitude": longitude, "radius": radius}
        return await self._request("GET", "/api/incidents/nearby", token=token, params=params)

    async def post_chat_message(self, incident_id: str, message: str, token: str) -> Dict[str, Any]:
        body = {"incident_id": str(incident_id), "message": message}
        return await self._request("POST", "/api/chat", token=token, json=body)

    async def get_chat_history(self, incident_id: str, limit: int = 50,
                               token: Optional[str] = None) -> List[Dict[str, Any]]:
        """Most recent first, as the server returns them."""
        return await self._request("GET", f"/api/chat/incident/{incident_id}", token=token,
                                   params={"limit": limit})

    async def add_points(self, user_id: str, action_type: str, token: str) -> Dict[str, Any]:
        body = {"user_id": str(user_id), "action_type": action_type}
        return await self._request("POST", "/api/rewards/add-points", token=token, json=body)

    async def login(self, email_or_username: str, password: str) -> Dict[str, Any]:
        """Returns ``{"token", "user"}``; bad credentials raise IncidentServiceError(401)."""
        body = {"email_or_username": email_or_username, "password": password}
        return await self._request("POST", "/api/auth/login", json=body)
