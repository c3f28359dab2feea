"""
Polychat API Client - async HTTP client for the Polychat backend.

One method per endpoint. Non-2xx responses and transport failures raise
ApiError carrying the server's message and the HTTP status (None when the
server was never reached).

Usage:
    async with ChatApiClient("http://127.0.0.1:8000") as api:
        data = await api.send_chat({"message": "hello", "userId": user_id})
"""

import logging
from typing import Any, Dict, Optional

import httpx

from errors import ApiError

logger = logging.getLogger(__name__)

UNREACHABLE_MESSAGE = "Unable to reach the Polychat API"


class ChatApiClient:
    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            base_url: API root (e.g., "http://127.0.0.1:8000")
            timeout: Per-request timeout in seconds
            headers: Extra headers (gateway auth, API keys)
            transport: Optional httpx transport (tests pass a MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            headers=headers,
            transport=transport,
        )

    async def __aenter__(self) -> "ChatApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        if params:
            params = {key: value for key, value in params.items() if value is not None}
        if json is not None:
            json = {key: value for key, value in json.items() if value is not None}

        try:
            response = await self._client.request(method, path, params=params, json=json)
        except httpx.HTTPError as e:
            logger.warning(f"{method} {path} failed: {e}")
            raise ApiError(UNREACHABLE_MESSAGE) from e

        if response.is_error:
            message = f"Request failed with status {response.status_code}"
            details = None
            try:
                body = response.json()
            except ValueError:
                body = None
            if isinstance(body, dict):
                message = body.get("message") or message
                details = body.get("details")
            logger.info(f"{method} {path} -> {response.status_code}: {message}")
            raise ApiError(message, details=details, status=response.status_code)

        try:
            return response.json()
        except ValueError as e:
            raise ApiError("Invalid response from the Polychat API", status=response.status_code) from e

    # === Chat ===

    async def send_chat(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", "/chat", json=payload)

    async def get_conversation(self, conversation_id: str, user_id: Optional[str] = None) -> Dict[str, Any]:
        return await self._request(
            "GET", "/chat", params={"conversationId": conversation_id, "userId": user_id}
        )

    # === Conversations ===

    async def list_conversations(
        self,
        user_id: str,
        q: Optional[str] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> Dict[str, Any]:
        return await self._request(
            "GET",
            "/conversations",
            params={"userId": user_id, "q": q, "limit": limit, "offset": offset},
        )

    async def create_conversation(
        self, user_id: Optional[str] = None, mentor_id: Optional[str] = None
    ) -> Dict[str, Any]:
        return await self._request("POST", "/conversations", json={"userId": user_id, "mentorId": mentor_id})

    async def rename_conversation(self, user_id: str, conversation_id: str, title: str) -> Dict[str, Any]:
        return await self._request(
            "PATCH",
            "/conversations",
            json={"userId": user_id, "conversationId": conversation_id, "title": title},
        )

    async def delete_conversation(self, user_id: str, conversation_id: str) -> Dict[str, Any]:
        return await self._request(
            "DELETE", "/conversations", json={"userId": user_id, "conversationId": conversation_id}
        )

    # === Chat model catalog ===

    async def list_chat_models(self, user_id: str) -> Dict[str, Any]:
        return await self._request("GET", "/chat-models", params={"userId": user_id})

    async def add_chat_model(self, user_id: str, model_id: str, label: str) -> Dict[str, Any]:
        return await self._request(
            "POST", "/chat-models", json={"userId": user_id, "modelId": model_id, "label": label}
        )

    async def remove_chat_model(self, user_id: str, model_id: str) -> Dict[str, Any]:
        return await self._request("DELETE", "/chat-models", json={"userId": user_id, "modelId": model_id})

    # === Mentor overrides ===

    async def get_mentor_override(self, user_id: str, mentor_id: str) -> Dict[str, Any]:
        return await self._request("GET", "/mentor-overrides", params={"userId": user_id, "mentorId": mentor_id})

    async def save_mentor_override(self, user_id: str, mentor_id: str, system_prompt: str) -> Dict[str, Any]:
        return await self._request(
            "POST",
            "/mentor-overrides",
            json={"userId": user_id, "mentorId": mentor_id, "systemPrompt": system_prompt},
        )

    async def delete_mentor_override(self, user_id: str, mentor_id: str) -> Dict[str, Any]:
        return await self._request("DELETE", "/mentor-overrides", json={"userId": user_id, "mentorId": mentor_id})

    # === Health ===

    async def health(self) -> Dict[str, Any]:
        return await self._request("GET", "/health")
