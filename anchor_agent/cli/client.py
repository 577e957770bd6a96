"""API client for the anchor-agent REST API."""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

import httpx


class AnchorClient:
    """HTTP client wrapping the anchor-agent API endpoints."""

    def __init__(self, base_url: str = "http://localhost:3001", timeout: float = 120) -> None:
        self.base_url = base_url.rstrip("/")
        # Chat turns include speech (and optionally video) generation.
        self._client = httpx.Client(base_url=f"{self.base_url}/api", timeout=timeout)

    def _handle(self, resp: httpx.Response) -> Any:
        if resp.status_code >= 400:
            try:
                body = resp.json()
                detail = body.get("details") or body.get("error") or resp.text
            except ValueError:
                detail = resp.text
            raise RuntimeError(f"API error ({resp.status_code}): {detail}")
        return resp.json()

    # --- Reference data ---

    def list_personas(self) -> list[dict]:
        return self._handle(self._client.get("/personas"))["personas"]

    def list_locations(self) -> list[str]:
        return self._handle(self._client.get("/locations"))["locations"]

    # --- Chats ---

    def list_chats(self, uid: str) -> list[dict]:
        return self._handle(self._client.get(f"/chats/{uid}"))["chats"]

    def get_chat(self, uid: str, chat_id: str) -> dict:
        return self._handle(self._client.get(f"/chats/{uid}/{chat_id}"))["chat"]

    def delete_chat(self, uid: str, chat_id: str) -> dict:
        return self._handle(self._client.delete(f"/chats/{uid}/{chat_id}"))

    def send_text(self, data: dict) -> dict:
        return self._handle(self._client.post("/chat/text", json=data))

    # --- Profiles ---

    def get_profile(self, uid: str) -> dict:
        return self._handle(self._client.get(f"/profile/{uid}"))["profile"]

    # --- Media ---

    def sign(self, key: str) -> str:
        return self._handle(self._client.get(f"/audio/sign/{quote(key)}"))["signedUrl"]
