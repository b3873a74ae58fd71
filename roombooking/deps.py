from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
from urllib.parse import quote, unquote

import httpx
from fastapi import Header

from roombooking import settings
from roombooking.errors import CollaboratorFailure


@dataclass
class Actor:
    """Who is making the request; recorded as changed_by in booking history."""

    name: str


def get_actor(x_username: str = Header(default="system")) -> Actor:
    """
    Reads the caller name forwarded by the gateway.
    Identity is only used for attribution, never for authorization.
    """
    name = unquote(x_username).strip() or "system"
    return Actor(name=name[:100])


def get_now() -> datetime:
    """Request time handed to the validator; override in tests to pin the clock."""
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# RoomsClient — thin async wrapper around the rooms service
# ---------------------------------------------------------------------------


@lru_cache(maxsize=1)
def _get_rooms_http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=settings.rooms_ms_url,
        timeout=httpx.Timeout(5.0),
        follow_redirects=True,
    )


class RoomsClient:
    """
    Thin async wrapper around the rooms service API.
    Forwards the caller name so the rooms service can log who asked.
    """

    @property
    def _client(self) -> httpx.AsyncClient:
        return _get_rooms_http_client()

    def _headers(self, actor: Actor) -> dict[str, str]:
        return {"X-Username": quote(actor.name)}

    async def room_exists(self, room_id: int, actor: Actor) -> bool:
        """True if the room is known. Raises CollaboratorFailure on upstream errors."""
        try:
            resp = await self._client.get(
                f"/rooms/{room_id}", headers=self._headers(actor)
            )
        except httpx.RequestError as exc:
            raise CollaboratorFailure("rooms-ms", str(exc)) from exc
        if resp.status_code == 404:
            return False
        if resp.status_code >= 400:
            raise CollaboratorFailure(
                "rooms-ms", f"returned {resp.status_code} for room {room_id}"
            )
        return True

    async def get_by_ids(self, room_ids: set[int], actor: Actor) -> list[dict]:
        """Bulk-fetch rooms by ID for name enrichment. Fails silently."""
        if not room_ids:
            return []
        try:
            params = [("ids", str(rid)) for rid in sorted(room_ids)]
            resp = await self._client.get(
                "/rooms/bulk", params=params, headers=self._headers(actor)
            )
            if resp.status_code >= 400 or not resp.content:
                return []
            return resp.json()
        except (httpx.RequestError, ValueError):
            return []


_rooms_client = RoomsClient()


def get_rooms_client() -> RoomsClient:
    return _rooms_client
